"""Units of concurrent work and their construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .analyzers.base import Analyzer, AnalyzerKind
from .errors import AnalysisFailure
from .metrics import JobMetrics


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = (JobState.SUCCEEDED, JobState.FAILED)


@dataclass
class Job:
    """One (item, analyzer) pair. Mutated only by its own execution."""

    identifier: str
    analyzer: Analyzer = field(repr=False)
    state: JobState = JobState.PENDING
    artifact: Optional[str] = None
    artifact_size: Optional[int] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    ms: float = 0.0
    metrics: Optional[JobMetrics] = field(default=None, repr=False)

    @property
    def kind(self) -> AnalyzerKind:
        return self.analyzer.kind

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED

    def start(self) -> None:
        if self.state is not JobState.PENDING:
            raise RuntimeError(f"job {self.identifier}/{self.kind.value} already {self.state.value}")
        self.state = JobState.RUNNING

    def succeed(self, artifact: str, size: Optional[int] = None) -> None:
        self._finish(JobState.SUCCEEDED)
        self.artifact = artifact
        self.artifact_size = size

    def fail(self, exc: BaseException) -> None:
        self._finish(JobState.FAILED)
        self.error_kind = getattr(exc, "kind", AnalysisFailure.kind)
        self.error = str(exc) or exc.__class__.__name__

    def _finish(self, state: JobState) -> None:
        if self.terminal:
            raise RuntimeError(f"job {self.identifier}/{self.kind.value} already {self.state.value}")
        self.state = state

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "item": self.identifier,
            "kind": self.kind.value,
            "state": self.state.value,
            "ms": round(self.ms, 3),
        }
        if self.metrics is not None:
            d["analysis_ms"] = round(self.metrics.ms, 3)
        if self.state is JobState.SUCCEEDED:
            d["artifact"] = self.artifact
            d["artifact_size"] = self.artifact_size
        elif self.state is JobState.FAILED:
            d["error_kind"] = self.error_kind
            d["error"] = self.error
        return d


class JobDispatcher:
    """Build one job per analyzer for every item, in item order."""

    def __init__(self, analyzers: Sequence[Analyzer]):
        kinds = [a.kind for a in analyzers]
        if len(set(kinds)) != len(kinds):
            raise ValueError(f"duplicate analyzer kinds: {[k.value for k in kinds]}")
        self.analyzers = list(analyzers)

    def build_jobs(self, items: Iterable[Any]) -> List[Job]:
        jobs = []
        for item in items:
            identifier = getattr(item, "identifier", item)
            for analyzer in self.analyzers:
                jobs.append(Job(identifier=str(identifier), analyzer=analyzer))
        return jobs
