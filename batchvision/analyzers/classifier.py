"""Image classification backed by an ONNX model.

The shared handle is a :class:`ClassificationEngine`. Building the ONNX
engine (session creation plus a warm-up inference) is the expensive one-time
step guarded by :class:`~batchvision.resource.AnalyzerResource`.

Params (``params["classifier"]`` in a profile):
  model_path: str | None      ONNX image classifier
  labels_path: str | None     newline separated class names
  input_size: [H, W]          (default [224, 224])
  top_k: int                  number of predictions kept (default 3)
  mock: bool                  deterministic engine without a model (default False)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
import json
import logging

import numpy as np
from PIL import Image

from ..decode import PixelBuffer
from ..errors import AnalysisFailure, ResourceConstructionFailure
from ..execution import ParallelConfig, apply_thread_env, init_onnx_session_opts
from .base import Analyzer, AnalyzerKind

logger = logging.getLogger(__name__)

Prediction = Dict[str, Any]


def _softmax(x: np.ndarray) -> np.ndarray:
    z = x - np.max(x)
    e = np.exp(z)
    return e / e.sum()


def _as_probabilities(y: np.ndarray) -> np.ndarray:
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if y.size and y.min() >= 0.0 and abs(float(y.sum()) - 1.0) < 1e-3:
        return y
    return _softmax(y)


def rank(probs: np.ndarray, labels: Sequence[str], top_k: int) -> List[Prediction]:
    """Top ``top_k`` predictions by descending score (ties keep class order)."""

    k = max(1, min(int(top_k), probs.size))
    order = np.argsort(-probs, kind="stable")[:k]
    out = []
    for i in order:
        label = labels[i] if i < len(labels) else f"class_{i}"
        out.append({"label": label, "score": float(probs[i])})
    return out


class ClassificationEngine(ABC):
    top_k: int = 3

    @abstractmethod
    def infer(self, pixels: PixelBuffer) -> List[Prediction]:
        """Ranked ``{"label", "score"}`` predictions for one image."""


class OnnxClassificationEngine(ClassificationEngine):
    def __init__(self, session, labels: Sequence[str], input_size=(224, 224), top_k: int = 3):
        self.session = session
        self.labels = list(labels)
        self.input_size = (int(input_size[0]), int(input_size[1]))
        self.top_k = int(top_k)
        inp = session.get_inputs()[0]
        self._in_name = inp.name
        shape = inp.shape
        self._channels_first = len(shape) >= 4 and shape[1] == 3

    @classmethod
    def load(
        cls,
        model_path: str,
        labels_path: Optional[str] = None,
        *,
        input_size=(224, 224),
        top_k: int = 3,
        parallel: Optional[ParallelConfig] = None,
    ) -> "OnnxClassificationEngine":
        import onnxruntime as ort

        pcfg = parallel or ParallelConfig()
        with apply_thread_env(pcfg):
            so = init_onnx_session_opts(pcfg)
            session = ort.InferenceSession(
                str(model_path), sess_options=so, providers=["CPUExecutionProvider"]
            )
        labels = load_labels(labels_path) if labels_path else []
        engine = cls(session, labels, input_size=input_size, top_k=top_k)
        engine.warm_up()
        logger.info("classifier model loaded from %s (%d labels)", model_path, len(labels))
        return engine

    def warm_up(self) -> None:
        H, W = self.input_size
        shape = (1, 3, H, W) if self._channels_first else (1, H, W, 3)
        self.session.run(None, {self._in_name: np.zeros(shape, dtype=np.float32)})

    def _prepare(self, pixels: PixelBuffer) -> np.ndarray:
        H, W = self.input_size
        im = Image.fromarray(np.ascontiguousarray(pixels.rgb())).resize((W, H), Image.BILINEAR)
        arr = np.asarray(im, dtype=np.float32) / 127.5 - 1.0
        if self._channels_first:
            return np.transpose(arr, (2, 0, 1))[None, ...]
        return arr[None, ...]

    def infer(self, pixels: PixelBuffer) -> List[Prediction]:
        outs = self.session.run(None, {self._in_name: self._prepare(pixels)})
        probs = _as_probabilities(outs[0])
        return rank(probs, self.labels, self.top_k)


MOCK_LABELS = ["red", "green", "blue", "bright", "dark"]


class MockClassificationEngine(ClassificationEngine):
    """Deterministic engine scoring simple colour statistics."""

    def __init__(self, top_k: int = 3):
        self.top_k = int(top_k)
        self.labels = list(MOCK_LABELS)

    def infer(self, pixels: PixelBuffer) -> List[Prediction]:
        rgb = pixels.rgb().astype(np.float64) / 255.0
        r, g, b = (float(rgb[:, :, c].mean()) for c in range(3))
        lum = 0.299 * r + 0.587 * g + 0.114 * b
        logits = np.array([r, g, b, lum, 1.0 - lum]) * 4.0
        return rank(_softmax(logits), self.labels, self.top_k)


def load_labels(path) -> List[str]:
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [ln.strip() for ln in lines if ln.strip()]


def build_engine_factory(
    params: Optional[Dict[str, Any]] = None, parallel: Optional[ParallelConfig] = None
) -> Callable[[], ClassificationEngine]:
    """Return the zero-argument construction step for the shared engine."""

    p = dict(params or {})
    top_k = int(p.get("top_k", 3))
    if bool(p.get("mock", False)):
        return lambda: MockClassificationEngine(top_k=top_k)

    def factory() -> ClassificationEngine:
        model_path = p.get("model_path")
        if not model_path:
            raise ResourceConstructionFailure("classifier model_path not provided")
        if not Path(model_path).exists():
            raise ResourceConstructionFailure(f"classifier model not found at {model_path}")
        return OnnxClassificationEngine.load(
            model_path,
            p.get("labels_path"),
            input_size=p.get("input_size") or (224, 224),
            top_k=top_k,
            parallel=parallel,
        )

    return factory


class Classifier(Analyzer):
    kind = AnalyzerKind.CLASSIFIER
    artifact_suffix = ".prediction.json"
    requires_resource = True

    def analyze(self, pixels: PixelBuffer, handle: Any = None) -> List[Prediction]:
        if handle is None:
            raise AnalysisFailure("classifier invoked without a ready engine")
        return classify(pixels, handle)

    def encode(self, result: List[Prediction]) -> bytes:
        return json.dumps(result, indent=4).encode("utf-8")


def classify(pixels: PixelBuffer, engine: ClassificationEngine) -> List[Prediction]:
    """Route one image to the engine; ordering and truncation are the engine's."""

    return list(engine.infer(pixels))
