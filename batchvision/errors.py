"""Error taxonomy shared by the batch pipeline."""

from __future__ import annotations


class BatchVisionError(Exception):
    """Base class for every error the pipeline records on a job."""

    kind = "BatchVisionError"


class SourceUnavailable(BatchVisionError):
    kind = "SourceUnavailable"


class DecodeError(BatchVisionError):
    kind = "DecodeError"


class ResourceConstructionFailure(BatchVisionError):
    kind = "ResourceConstructionFailure"


class AnalysisFailure(BatchVisionError):
    kind = "AnalysisFailure"


class WriteFailure(BatchVisionError):
    kind = "WriteFailure"


__all__ = [
    "BatchVisionError",
    "SourceUnavailable",
    "DecodeError",
    "ResourceConstructionFailure",
    "AnalysisFailure",
    "WriteFailure",
]
