"""Morphological dilation with OpenCV."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import cv2
import numpy as np

from ..decode import PixelBuffer
from ..errors import AnalysisFailure
from .base import Analyzer, AnalyzerKind

_SHAPES = {
    "rect": cv2.MORPH_RECT,
    "ellipse": cv2.MORPH_ELLIPSE,
    "cross": cv2.MORPH_CROSS,
}

_ALPHA_FORMATS = {"png", "webp"}
_FORMATS = _ALPHA_FORMATS | {"jpg", "jpeg", "bmp", "tiff"}


@dataclass(frozen=True)
class DilationParams:
    kernel_size: int = 5
    shape: str = "rect"
    iterations: int = 1
    format: str = "png"

    def __post_init__(self):
        if int(self.kernel_size) < 1:
            raise ValueError("kernel_size must be >= 1")
        if self.shape not in _SHAPES:
            raise ValueError(f"unknown kernel shape {self.shape!r}")
        if self.format not in _FORMATS:
            raise ValueError(f"unsupported output format {self.format!r}")

    @classmethod
    def from_dict(cls, params: Optional[Dict[str, Any]] = None) -> "DilationParams":
        p = params or {}
        return cls(
            kernel_size=int(p.get("kernel_size", 5)),
            shape=str(p.get("shape", "rect")),
            iterations=int(p.get("iterations", 1)),
            format=str(p.get("format", "png")).lower().lstrip("."),
        )

    def kernel(self) -> np.ndarray:
        k = int(self.kernel_size)
        return cv2.getStructuringElement(_SHAPES[self.shape], (k, k))


def dilate(pixels: PixelBuffer, params: DilationParams) -> np.ndarray:
    src = np.ascontiguousarray(pixels.data)
    return cv2.dilate(src, params.kernel(), iterations=int(params.iterations))


class Transformer(Analyzer):
    kind = AnalyzerKind.TRANSFORMER

    def __init__(self, params: Optional[DilationParams] = None):
        self.params = params or DilationParams()
        self.artifact_suffix = f".dilated.{self.params.format}"

    def analyze(self, pixels: PixelBuffer, handle: Any = None) -> np.ndarray:
        return dilate(pixels, self.params)

    def encode(self, result: np.ndarray) -> bytes:
        fmt = self.params.format
        if fmt in _ALPHA_FORMATS:
            bgr = cv2.cvtColor(result, cv2.COLOR_RGBA2BGRA)
        else:
            bgr = cv2.cvtColor(result, cv2.COLOR_RGBA2BGR)
        ok, buf = cv2.imencode(f".{fmt}", bgr)
        if not ok:
            raise AnalysisFailure(f"cannot encode dilated image as {fmt}")
        return buf.tobytes()


def transform(pixels: PixelBuffer, params: Optional[DilationParams] = None) -> bytes:
    """Dilate one image and return the encoded artifact bytes."""

    return Transformer(params).process(pixels)
