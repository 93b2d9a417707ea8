import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .execution import ParallelConfig

DEFAULT_SOURCE_DIR = "examples"
DEFAULT_DEST_DIR = "out"


def profiles_dir() -> Path:
    # read at call time so BATCHVISION_PROFILES_DIR can change between runs
    return Path(os.getenv("BATCHVISION_PROFILES_DIR", "profiles"))


def models_dir() -> Path:
    return Path(os.getenv("BATCHVISION_MODELS_DIR", "models"))


def _read_json(p: Path) -> Dict[str, Any]:
    return json.loads(p.read_text(encoding="utf-8"))


def resolve_profile_path(name_or_path: str) -> Path:
    """
    Locate a batch profile file:
      - explicit absolute/relative path, or a bare name with/without .json
      - alias with '@N' suffix falls back to the core name (default@2 -> default)
      - directory configurable via env BATCHVISION_PROFILES_DIR
    """
    p = Path(name_or_path)
    root = profiles_dir()

    if p.suffix == ".json" and p.exists():
        return p
    if p.is_absolute() and p.exists():
        return p

    stem = p.name[:-5] if p.name.endswith(".json") else p.name
    cand = root / f"{stem}.json"
    if cand.exists():
        return cand

    core = stem.split("@", 1)[0]
    core_cand = root / f"{core}.json"
    if core and core_cand.exists():
        return core_cand

    available = sorted(x.name for x in root.glob("*.json"))
    raise FileNotFoundError(
        f"Profile '{name_or_path}' not found. Looked in {root}. Available: {available}"
    )


def load_profile(name_or_path: str) -> Dict[str, Any]:
    return _read_json(resolve_profile_path(name_or_path))


@dataclass
class BatchConfig:
    source_dir: str = DEFAULT_SOURCE_DIR
    dest_dir: str = DEFAULT_DEST_DIR
    extensions: Optional[List[str]] = None
    params: Dict[str, Any] = field(default_factory=dict)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    def classifier_params(self) -> Dict[str, Any]:
        return resolve_classifier_params(self.params.get("classifier"))

    def transformer_params(self) -> Dict[str, Any]:
        return dict(self.params.get("transformer") or {})


def _resolve_model_path(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    p = Path(path)
    return str(p if p.is_absolute() else models_dir() / p)


def resolve_classifier_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill model/label paths from the environment when the profile omits them."""

    p = dict(params or {})
    if p.get("mock"):
        return p
    p.setdefault("model_path", os.getenv("BATCHVISION_CLASSIFIER_MODEL"))
    p.setdefault("labels_path", os.getenv("BATCHVISION_CLASSIFIER_LABELS"))
    p["model_path"] = _resolve_model_path(p.get("model_path"))
    p["labels_path"] = _resolve_model_path(p.get("labels_path"))
    return p


def config_from_profile(prof: Dict[str, Any]) -> BatchConfig:
    par = prof.get("parallel") or {}
    return BatchConfig(
        source_dir=str(prof.get("source_dir", DEFAULT_SOURCE_DIR)),
        dest_dir=str(prof.get("dest_dir", DEFAULT_DEST_DIR)),
        extensions=prof.get("extensions"),
        params=dict(prof.get("params") or {}),
        parallel=ParallelConfig(**par),
    )
