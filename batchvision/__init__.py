"""Public package interface for batchvision."""

from .api import build_resource, build_runner, run_batch, run_batch_async
from .errors import (
    AnalysisFailure,
    BatchVisionError,
    DecodeError,
    ResourceConstructionFailure,
    SourceUnavailable,
    WriteFailure,
)
from .execution import ParallelConfig, apply_thread_env, init_onnx_session_opts
from .jobs import Job, JobDispatcher, JobState
from .pipeline import BatchResult, BatchRunner
from .profiles import BatchConfig, config_from_profile, load_profile, resolve_profile_path
from .resource import AnalyzerResource, ResourceState

__all__ = [
    "AnalysisFailure",
    "AnalyzerResource",
    "BatchConfig",
    "BatchResult",
    "BatchRunner",
    "BatchVisionError",
    "DecodeError",
    "Job",
    "JobDispatcher",
    "JobState",
    "ParallelConfig",
    "ResourceConstructionFailure",
    "ResourceState",
    "SourceUnavailable",
    "WriteFailure",
    "apply_thread_env",
    "build_resource",
    "build_runner",
    "config_from_profile",
    "init_onnx_session_opts",
    "load_profile",
    "resolve_profile_path",
    "run_batch",
    "run_batch_async",
]
