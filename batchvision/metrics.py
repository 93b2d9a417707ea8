from __future__ import annotations

"""Simple structures for recording job timing and runtime details."""

from dataclasses import dataclass
from typing import Any, Dict
import time
import psutil


@dataclass
class JobMetrics:
    """Wall time of one job's analysis step.

    ``process_rss_bytes`` is the resident size of the whole process when the
    step finished; jobs run concurrently, so it is not attributable to one job.
    """

    name: str
    ms: float
    process_rss_bytes: int


def measure(fn, name: str):
    """Measure execution time of ``fn``.

    Parameters
    ----------
    fn:
        Callable with no arguments.
    name:
        Name of the job being measured.
    """

    start = time.perf_counter()
    result = fn()
    end = time.perf_counter()
    metrics = JobMetrics(
        name=name,
        ms=(end - start) * 1000.0,
        process_rss_bytes=psutil.Process().memory_info().rss,
    )
    return result, metrics


class Stopwatch:
    def __init__(self):
        self.start = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000.0


def describe_runtime(cfg) -> Dict[str, Any]:
    return {
        "parallel_config": dict(cfg.__dict__),
        "hw": {"cpu_count": psutil.cpu_count(), "ram_gb": psutil.virtual_memory().total / 1e9},
    }
