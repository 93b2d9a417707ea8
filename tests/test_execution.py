import os

import pytest

from batchvision.execution import ParallelConfig, apply_thread_env, init_onnx_session_opts, make_executor
from batchvision.metrics import describe_runtime, measure


def test_parallel_config_bounds():
    with pytest.raises(ValueError):
        ParallelConfig(max_in_flight_jobs=0)
    with pytest.raises(ValueError):
        ParallelConfig(io_threads=0)


def test_thread_env_is_restored(monkeypatch):
    monkeypatch.setenv("OMP_NUM_THREADS", "7")
    monkeypatch.delenv("MKL_NUM_THREADS", raising=False)
    with apply_thread_env(ParallelConfig(onnx_intra_threads=2)):
        assert os.environ["OMP_NUM_THREADS"] == "2"
        assert os.environ["MKL_NUM_THREADS"] == "2"
    assert os.environ["OMP_NUM_THREADS"] == "7"
    assert "MKL_NUM_THREADS" not in os.environ


def test_onnx_session_options():
    opts = init_onnx_session_opts(ParallelConfig(onnx_intra_threads=3, onnx_inter_threads=2))
    assert opts.intra_op_num_threads == 3
    assert opts.inter_op_num_threads == 2


def test_executor_size():
    ex = make_executor(ParallelConfig(io_threads=3))
    try:
        assert ex._max_workers == 3
    finally:
        ex.shutdown()


def test_measure_and_runtime():
    res, m = measure(lambda: 41 + 1, "answer")
    assert res == 42
    assert m.name == "answer" and m.ms >= 0
    assert m.process_rss_bytes > 0
    rt = describe_runtime(ParallelConfig())
    assert rt["parallel_config"]["max_in_flight_jobs"] == 8
    assert rt["hw"]["cpu_count"] >= 1
