"""Base classes for per-image analyzers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from ..decode import PixelBuffer
from ..errors import AnalysisFailure, BatchVisionError


class AnalyzerKind(str, Enum):
    CLASSIFIER = "classifier"
    TRANSFORMER = "transformer"


class Analyzer(ABC):
    """One per-item operation producing a single artifact.

    Analyzers hold only read-only configuration, so one instance serves every
    job of its kind concurrently.
    """

    kind: AnalyzerKind
    artifact_suffix: str = ""
    requires_resource: bool = False

    def artifact_name(self, identifier: str) -> str:
        return f"{identifier}{self.artifact_suffix}"

    @abstractmethod
    def analyze(self, pixels: PixelBuffer, handle: Any = None) -> Any:
        """Run the analysis on a decoded image."""

    @abstractmethod
    def encode(self, result: Any) -> bytes:
        """Serialise an analysis result into artifact bytes."""

    def process(self, pixels: PixelBuffer, handle: Optional[Any] = None) -> bytes:
        try:
            return self.encode(self.analyze(pixels, handle))
        except BatchVisionError:
            raise
        except Exception as e:
            raise AnalysisFailure(f"{self.kind.value} failed: {e}") from e
