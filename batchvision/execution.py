from __future__ import annotations

"""Execution utilities for controlling concurrency and thread usage."""

from dataclasses import dataclass
import concurrent.futures as cf
import contextlib
import os
from typing import Dict, Iterator

import onnxruntime as ort


@dataclass
class ParallelConfig:
    """Configuration for concurrent execution of a batch.

    Attributes
    ----------
    max_in_flight_jobs:
        Maximum number of jobs allowed to run at the same time. Jobs beyond
        this bound wait for a free slot instead of being launched at once.
    io_threads:
        Size of the thread pool used for blocking work (file reads, decoding,
        inference, dilation and artifact writes).
    onnx_intra_threads:
        Number of intra-op threads used by ONNX Runtime sessions.
    onnx_inter_threads:
        Number of inter-op threads used by ONNX Runtime sessions.
    env_thread_caps:
        If ``True`` set environment thread related variables such as
        ``OMP_NUM_THREADS`` to avoid oversubscription.
    """

    max_in_flight_jobs: int = 8
    io_threads: int = 4
    onnx_intra_threads: int = 1
    onnx_inter_threads: int = 1
    env_thread_caps: bool = True

    def __post_init__(self) -> None:
        if int(self.max_in_flight_jobs) < 1:
            raise ValueError("max_in_flight_jobs must be >= 1")
        if int(self.io_threads) < 1:
            raise ValueError("io_threads must be >= 1")


_THREAD_VARS = [
    "OMP_NUM_THREADS",
    "OPENBLAS_NUM_THREADS",
    "MKL_NUM_THREADS",
    "NUMEXPR_NUM_THREADS",
]


@contextlib.contextmanager
def apply_thread_env(config: ParallelConfig) -> Iterator[None]:
    """Context manager to set/restore environment thread variables."""

    old: Dict[str, str] = {}
    if config.env_thread_caps:
        for v in _THREAD_VARS:
            old[v] = os.environ.get(v, "")
            os.environ[v] = str(config.onnx_intra_threads)
    try:
        yield
    finally:
        if config.env_thread_caps:
            for v, val in old.items():
                if val:
                    os.environ[v] = val
                else:
                    os.environ.pop(v, None)


def init_onnx_session_opts(config: ParallelConfig) -> ort.SessionOptions:
    """Create ONNX Runtime ``SessionOptions`` according to the configuration."""

    opts = ort.SessionOptions()
    opts.intra_op_num_threads = int(config.onnx_intra_threads)
    opts.inter_op_num_threads = int(config.onnx_inter_threads)
    opts.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
    return opts


def make_executor(config: ParallelConfig) -> cf.ThreadPoolExecutor:
    """Thread pool that runs the blocking suspension points of a batch."""

    return cf.ThreadPoolExecutor(
        max_workers=int(config.io_threads), thread_name_prefix="batchvision"
    )
