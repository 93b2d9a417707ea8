"""Fan-out/fan-in batch orchestration.

:class:`BatchRunner` lists the items of a source directory, builds one job per
(item, analyzer) pair and runs them concurrently on an ``asyncio`` loop.
Blocking steps run in a thread pool; an ``asyncio.Semaphore`` bounds how many
jobs do blocking work at once. A job holds a slot only while it reads, decodes,
analyzes and writes, never while it waits for the shared resource. The runner
waits for every job to reach a terminal state before returning, and a failing
job never cancels its siblings.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import concurrent.futures as cf
import logging

from .analyzers import Analyzer, AnalyzerKind, default_analyzers
from .decode import ImageDecoder
from .errors import AnalysisFailure, BatchVisionError, WriteFailure
from .execution import ParallelConfig, make_executor
from .jobs import Job, JobDispatcher
from .metrics import Stopwatch, describe_runtime, measure
from .resource import AnalyzerResource
from .source import ImageSource
from .writer import ArtifactWriter

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    source_dir: str
    dest_dir: str
    jobs: List[Job]
    resource_state: Optional[str] = None
    duration_ms: float = 0.0
    runtime: Dict[str, Any] = field(default_factory=dict)

    @property
    def all_terminal(self) -> bool:
        """Every job finished, successfully or not."""
        return all(j.terminal for j in self.jobs)

    @property
    def all_succeeded(self) -> bool:
        return self.all_terminal and all(j.succeeded for j in self.jobs)

    @property
    def succeeded(self) -> List[Job]:
        return [j for j in self.jobs if j.succeeded]

    @property
    def failed(self) -> List[Job]:
        return [j for j in self.jobs if j.terminal and not j.succeeded]

    @property
    def failures_by_kind(self) -> Dict[str, int]:
        return dict(Counter(j.error_kind for j in self.failed))

    @property
    def artifacts(self) -> List[str]:
        return sorted(j.artifact for j in self.succeeded)

    def jobs_of(self, kind: AnalyzerKind) -> List[Job]:
        return [j for j in self.jobs if j.kind is kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_dir": self.source_dir,
            "dest_dir": self.dest_dir,
            "items": len({j.identifier for j in self.jobs}),
            "jobs_total": len(self.jobs),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "all_terminal": self.all_terminal,
            "all_succeeded": self.all_succeeded,
            "failures_by_kind": self.failures_by_kind,
            "resource_state": self.resource_state,
            "duration_ms": round(self.duration_ms, 3),
            "jobs": [j.to_dict() for j in self.jobs],
            "runtime": self.runtime,
        }


class BatchRunner:
    """Run every analyzer over every item of a source directory.

    ``resource`` is the shared analyzer resource handed to analyzers that
    declare ``requires_resource``; it is passed in explicitly so its
    lifetime can span several batches.
    """

    def __init__(
        self,
        resource: Optional[AnalyzerResource] = None,
        analyzers: Optional[Sequence[Analyzer]] = None,
        *,
        source: Optional[ImageSource] = None,
        decoder: Optional[ImageDecoder] = None,
        writer: Optional[ArtifactWriter] = None,
        parallel: Optional[ParallelConfig] = None,
        executor: Optional[cf.Executor] = None,
    ):
        self.analyzers = list(analyzers) if analyzers is not None else default_analyzers()
        if resource is None and any(a.requires_resource for a in self.analyzers):
            raise ValueError("a shared resource is required by the configured analyzers")
        self.resource = resource
        self.source = source or ImageSource()
        self.decoder = decoder or ImageDecoder()
        self.writer = writer or ArtifactWriter()
        self.parallel = parallel or ParallelConfig()
        self.dispatcher = JobDispatcher(self.analyzers)
        self._executor = executor

    def run_sync(self, source_dir, dest_dir) -> BatchResult:
        return asyncio.run(self.run(source_dir, dest_dir))

    async def run(self, source_dir, dest_dir) -> BatchResult:
        sw = Stopwatch()
        dest = Path(dest_dir)
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailure(f"cannot create destination {dest}: {e}") from e

        own_executor = self._executor is None
        executor = self._executor or make_executor(self.parallel)
        try:
            loop = asyncio.get_running_loop()
            identifiers = await loop.run_in_executor(executor, self.source.list, source_dir)
            logger.info("found %d items in %s", len(identifiers), source_dir)
            jobs = self.dispatcher.build_jobs(identifiers)

            warm_up = None
            if any(j.analyzer.requires_resource for j in jobs):
                # one readiness request per batch; jobs share the same construction
                warm_up = loop.create_task(self.resource.ensure_ready())

            slots = asyncio.Semaphore(int(self.parallel.max_in_flight_jobs))
            tasks = [
                loop.create_task(self._run_job(job, source_dir, dest, slots, executor))
                for job in jobs
            ]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
            for job, outcome in zip(jobs, outcomes):
                if isinstance(outcome, BaseException) and not job.terminal:
                    job.fail(outcome)
            if warm_up is not None:
                await asyncio.gather(warm_up, return_exceptions=True)
        finally:
            if own_executor:
                executor.shutdown(wait=True)

        result = BatchResult(
            source_dir=str(source_dir),
            dest_dir=str(dest),
            jobs=jobs,
            resource_state=self.resource.state.value if self.resource is not None else None,
            duration_ms=sw.elapsed_ms(),
            runtime=describe_runtime(self.parallel),
        )
        logger.info(
            "batch finished: %d/%d jobs succeeded in %.1f ms",
            len(result.succeeded),
            len(jobs),
            result.duration_ms,
        )
        if result.failed:
            logger.warning("failed jobs by kind: %s", result.failures_by_kind)
        return result

    async def _run_job(self, job: Job, source_dir, dest: Path, slots: asyncio.Semaphore, executor) -> Job:
        loop = asyncio.get_running_loop()
        sw = Stopwatch()
        job.start()
        analyzer = job.analyzer
        try:
            handle = None
            if analyzer.requires_resource:
                # slots are held only for blocking work, never while waiting
                # for the shared resource
                handle = await self.resource.ensure_ready()
            async with slots:
                item = await loop.run_in_executor(executor, self.source.read, source_dir, job.identifier)
                pixels = await loop.run_in_executor(executor, self.decoder.decode, item.payload)
                payload, job.metrics = await loop.run_in_executor(
                    executor,
                    measure,
                    lambda: analyzer.process(pixels, handle),
                    f"{job.identifier}:{job.kind.value}",
                )
                path = dest / analyzer.artifact_name(job.identifier)
                written = await loop.run_in_executor(executor, self.writer.write, path, payload)
        except BatchVisionError as e:
            job.ms = sw.elapsed_ms()
            job.fail(e)
            logger.warning("%s job for %s failed (%s): %s", job.kind.value, job.identifier, e.kind, e)
        except Exception as e:
            job.ms = sw.elapsed_ms()
            logger.exception("%s job for %s crashed", job.kind.value, job.identifier)
            job.fail(AnalysisFailure(f"{e.__class__.__name__}: {e}"))
        else:
            job.ms = sw.elapsed_ms()
            job.succeed(written.path, written.size)
            logger.info('[%s] write file => "%s"', job.kind.value, written.path)
        return job
