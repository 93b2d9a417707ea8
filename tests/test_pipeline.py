import asyncio
import json
import shutil
import threading
import time

import pytest

from batchvision.analyzers import Analyzer, AnalyzerKind, default_analyzers
from batchvision.analyzers.classifier import MockClassificationEngine
from batchvision.errors import SourceUnavailable
from batchvision.execution import ParallelConfig
from batchvision.jobs import JobState
from batchvision.pipeline import BatchRunner
from batchvision.resource import AnalyzerResource, ResourceState
from batchvision.writer import ArtifactWriter


def make_runner(factory=None, **kw):
    res = AnalyzerResource(factory or MockClassificationEngine, name="test model")
    return BatchRunner(res, default_analyzers(), **kw), res


def test_two_items_produce_four_artifacts(image_dir, tmp_path):
    runner, _ = make_runner()
    out = tmp_path / "out"
    result = runner.run_sync(image_dir, out)

    assert result.all_terminal and result.all_succeeded
    assert sorted(p.name for p in out.iterdir()) == [
        "a.img.dilated.png",
        "a.img.prediction.json",
        "b.img.dilated.png",
        "b.img.prediction.json",
    ]
    preds = json.loads((out / "b.img.prediction.json").read_text(encoding="utf-8"))
    scores = [p["score"] for p in preds]
    assert scores == sorted(scores, reverse=True)
    assert result.resource_state == "ready"
    json.dumps(result.to_dict())


@pytest.mark.parametrize("n", [0, 1, 4])
def test_job_count_is_twice_item_count(tmp_path, make_image, n):
    src = tmp_path / "src"
    src.mkdir()
    for i in range(n):
        make_image(src / f"img{i}.png")
    runner, res = make_runner()
    result = runner.run_sync(src, tmp_path / "out")

    assert len(result.jobs) == 2 * n
    assert len(result.jobs_of(AnalyzerKind.CLASSIFIER)) == n
    assert len(result.jobs_of(AnalyzerKind.TRANSFORMER)) == n
    assert result.all_terminal
    if n == 0:
        assert res.state is ResourceState.UNINITIALIZED


def test_one_undecodable_item_is_isolated(image_dir, tmp_path):
    (image_dir / "c.img").write_bytes(b"definitely not an image")
    runner, _ = make_runner()
    out = tmp_path / "out"
    result = runner.run_sync(image_dir, out)

    assert len(result.jobs) == 6
    assert result.all_terminal and not result.all_succeeded
    failed = result.failed
    assert len(failed) == 2
    assert {j.identifier for j in failed} == {"c.img"}
    assert {j.kind for j in failed} == {AnalyzerKind.CLASSIFIER, AnalyzerKind.TRANSFORMER}
    assert all(j.error_kind == "DecodeError" for j in failed)
    assert len(result.succeeded) == 4
    assert not [p for p in out.iterdir() if p.name.startswith("c.img")]
    assert result.failures_by_kind == {"DecodeError": 2}


def test_single_bad_item(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "broken.img").write_bytes(b"\x00\x01\x02")
    runner, _ = make_runner()
    result = runner.run_sync(src, tmp_path / "out")

    assert [(j.kind, j.state, j.error_kind) for j in result.jobs] == [
        (AnalyzerKind.CLASSIFIER, JobState.FAILED, "DecodeError"),
        (AnalyzerKind.TRANSFORMER, JobState.FAILED, "DecodeError"),
    ]
    assert result.all_terminal and not result.all_succeeded
    assert list((tmp_path / "out").iterdir()) == []


def test_resource_failure_spares_transformer_jobs(image_dir, tmp_path):
    calls = {"n": 0}

    def factory():
        calls["n"] += 1
        raise OSError("cannot mmap model")

    runner, res = make_runner(factory)
    result = runner.run_sync(image_dir, tmp_path / "out")

    assert calls["n"] == 1
    assert res.state is ResourceState.FAILED
    assert result.resource_state == "failed"
    for job in result.jobs_of(AnalyzerKind.CLASSIFIER):
        assert job.state is JobState.FAILED
        assert job.error_kind == "ResourceConstructionFailure"
    for job in result.jobs_of(AnalyzerKind.TRANSFORMER):
        assert job.succeeded
    assert result.all_terminal and not result.all_succeeded


def test_resource_shared_across_batches(image_dir, tmp_path):
    runner, res = make_runner()
    runner.run_sync(image_dir, tmp_path / "out1")
    runner.run_sync(image_dir, tmp_path / "out2")
    assert res.constructions == 1


def test_missing_source_is_a_run_failure(tmp_path):
    runner, _ = make_runner()
    with pytest.raises(SourceUnavailable):
        runner.run_sync(tmp_path / "nope", tmp_path / "out")
    assert (tmp_path / "out").is_dir()


def test_artifact_paths_are_idempotent(image_dir, tmp_path):
    runner, _ = make_runner()
    out = tmp_path / "out"
    first = runner.run_sync(image_dir, out)
    names1 = sorted(p.name for p in out.iterdir())
    shutil.rmtree(out)
    second = runner.run_sync(image_dir, out)
    names2 = sorted(p.name for p in out.iterdir())
    assert names1 == names2
    assert first.artifacts == second.artifacts


def test_write_failure_is_recorded(image_dir, tmp_path):
    out = tmp_path / "out"
    (out / "a.img.prediction.json").mkdir(parents=True)
    runner, _ = make_runner()
    result = runner.run_sync(image_dir, out)

    failed = result.failed
    assert [(j.identifier, j.kind, j.error_kind) for j in failed] == [
        ("a.img", AnalyzerKind.CLASSIFIER, "WriteFailure")
    ]
    assert len(result.succeeded) == 3


def test_unexpected_errors_become_analysis_failures(image_dir, tmp_path):
    class ExplodingDecoder:
        def decode(self, payload):
            raise RuntimeError("boom")

    runner, _ = make_runner(decoder=ExplodingDecoder())
    result = runner.run_sync(image_dir, tmp_path / "out")
    assert result.all_terminal
    assert {j.error_kind for j in result.jobs} == {"AnalysisFailure"}
    assert all("boom" in j.error for j in result.jobs)


class TrackingAnalyzer(Analyzer):
    kind = AnalyzerKind.TRANSFORMER
    artifact_suffix = ".track"

    def __init__(self, delay=0.05, fail_on=()):
        self.delay = delay
        self.fail_on = set(fail_on)
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def analyze(self, pixels, handle=None):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
        finally:
            with self.lock:
                self.active -= 1
        return pixels.width

    def encode(self, result):
        return str(result).encode()


def test_in_flight_jobs_are_bounded(tmp_path, make_image):
    src = tmp_path / "src"
    src.mkdir()
    for i in range(8):
        make_image(src / f"{i}.png")
    tracker = TrackingAnalyzer()
    runner = BatchRunner(None, [tracker], parallel=ParallelConfig(max_in_flight_jobs=2, io_threads=8))
    result = runner.run_sync(src, tmp_path / "out")

    assert result.all_succeeded
    assert 1 <= tracker.peak <= 2


def test_fast_failure_does_not_short_circuit_slow_jobs(tmp_path, make_image):
    src = tmp_path / "src"
    src.mkdir()
    make_image(src / "a.png")
    make_image(src / "b.png")
    (src / "0-bad.png").write_bytes(b"garbage")
    tracker = TrackingAnalyzer(delay=0.2)
    runner = BatchRunner(None, [tracker], parallel=ParallelConfig(max_in_flight_jobs=8))
    out = tmp_path / "out"
    result = runner.run_sync(src, out)

    # every slow artifact is on disk by the time run() returns
    assert sorted(p.name for p in out.iterdir()) == ["a.png.track", "b.png.track"]
    assert [j.state for j in result.jobs] == [JobState.FAILED, JobState.SUCCEEDED, JobState.SUCCEEDED]


def test_runner_requires_resource_for_classifier():
    with pytest.raises(ValueError):
        BatchRunner(None, default_analyzers())


def test_run_inside_existing_loop(image_dir, tmp_path):
    runner, _ = make_runner()

    async def go():
        return await runner.run(image_dir, tmp_path / "out")

    assert asyncio.run(go()).all_succeeded


def test_slow_construction_does_not_block_transformer_jobs(tmp_path, make_image):
    src = tmp_path / "src"
    src.mkdir()
    for i in range(6):
        make_image(src / f"{i}.png")

    written = {}

    class TimedWriter(ArtifactWriter):
        def write(self, path, payload):
            art = super().write(path, payload)
            written[path.name] = time.perf_counter()
            return art

    built = {}

    def slow_factory():
        time.sleep(0.5)
        built["at"] = time.perf_counter()
        return MockClassificationEngine()

    res = AnalyzerResource(slow_factory, name="slow model")
    runner = BatchRunner(
        res,
        default_analyzers(),
        writer=TimedWriter(),
        parallel=ParallelConfig(max_in_flight_jobs=2, io_threads=4),
    )
    result = runner.run_sync(src, tmp_path / "out")

    assert result.all_succeeded
    dilated = [t for name, t in written.items() if ".dilated." in name]
    assert len(dilated) == 6
    assert max(dilated) < built["at"]


def test_artifact_size_is_reported(image_dir, tmp_path):
    runner, _ = make_runner()
    out = tmp_path / "out"
    result = runner.run_sync(image_dir, out)

    for job in result.succeeded:
        d = job.to_dict()
        assert d["artifact_size"] == (out / job.analyzer.artifact_name(job.identifier)).stat().st_size
        assert d["artifact_size"] > 0
