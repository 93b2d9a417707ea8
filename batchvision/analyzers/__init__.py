from typing import Any, Dict, List, Optional

from .base import Analyzer, AnalyzerKind
from .classifier import Classifier, ClassificationEngine, build_engine_factory, classify
from .transformer import DilationParams, Transformer, transform


def default_analyzers(params: Optional[Dict[str, Any]] = None) -> List[Analyzer]:
    """Classifier then Transformer, the order jobs are emitted per item."""

    p = params or {}
    return [
        Classifier(),
        Transformer(DilationParams.from_dict(p.get("transformer"))),
    ]


__all__ = [
    "Analyzer",
    "AnalyzerKind",
    "Classifier",
    "ClassificationEngine",
    "DilationParams",
    "Transformer",
    "build_engine_factory",
    "classify",
    "default_analyzers",
    "transform",
]
