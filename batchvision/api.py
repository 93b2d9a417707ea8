"""Public convenience API for running a batch."""

from __future__ import annotations

from typing import Optional

from .analyzers import build_engine_factory, default_analyzers
from .pipeline import BatchResult, BatchRunner
from .profiles import BatchConfig
from .resource import AnalyzerResource
from .source import ImageSource

__all__ = ["build_resource", "build_runner", "run_batch", "run_batch_async"]


def build_resource(cfg: Optional[BatchConfig] = None) -> AnalyzerResource:
    """Shared classifier engine, constructed lazily on first use."""
    cfg = cfg or BatchConfig()
    factory = build_engine_factory(cfg.classifier_params(), cfg.parallel)
    return AnalyzerResource(factory, name="classifier model")


def build_runner(cfg: Optional[BatchConfig] = None, resource: Optional[AnalyzerResource] = None) -> BatchRunner:
    cfg = cfg or BatchConfig()
    return BatchRunner(
        resource or build_resource(cfg),
        default_analyzers(cfg.params),
        source=ImageSource(cfg.extensions),
        parallel=cfg.parallel,
    )


async def run_batch_async(
    cfg: Optional[BatchConfig] = None,
    *,
    source_dir: Optional[str] = None,
    dest_dir: Optional[str] = None,
    resource: Optional[AnalyzerResource] = None,
) -> BatchResult:
    cfg = cfg or BatchConfig()
    runner = build_runner(cfg, resource)
    return await runner.run(source_dir or cfg.source_dir, dest_dir or cfg.dest_dir)


def run_batch(
    cfg: Optional[BatchConfig] = None,
    *,
    source_dir: Optional[str] = None,
    dest_dir: Optional[str] = None,
    resource: Optional[AnalyzerResource] = None,
) -> BatchResult:
    """Run a whole batch from synchronous code."""
    cfg = cfg or BatchConfig()
    runner = build_runner(cfg, resource)
    return runner.run_sync(source_dir or cfg.source_dir, dest_dir or cfg.dest_dir)
