from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents

from photo_batch_corrector import batch  # noqa: E402
from photo_batch_corrector.adjustments import CorrectionParameters  # noqa: E402
from photo_batch_corrector.batch_learning import BatchProfile  # noqa: E402
from photo_batch_corrector.errors import TransformFailure  # noqa: E402
from photo_batch_corrector.pipeline import FileAnalysis, FileResult, ProcessingSettings  # noqa: E402
from photo_batch_corrector.processing_log import ProcessingLog  # noqa: E402


def _fake_result(input_path: Path, output_path: Path, written=()) -> FileResult:
    analysis = FileAnalysis(input_path, None, None, CorrectionParameters.defaults())
    return FileResult(input_path, output_path, analysis, (), tuple(written), 0.01)


def _jobs(tmp_path: Path, count: int):
    return [
        batch.Job(tmp_path / f"img{index}.jpg", tmp_path / "out" / f"img{index}_edited.jpg")
        for index in range(1, count + 1)
    ]


@documents("One failing job is recorded and counted without aborting the batch")
def test_failure_is_isolated(tmp_path: Path):
    def process(input_path, output_path, apply_enhancements, settings):
        if input_path.name == "img3.jpg":
            raise TransformFailure("engine rejected Contrast", path=input_path, stage="Contrast")
        return _fake_result(input_path, output_path)

    jobs = _jobs(tmp_path, 5)
    orchestrator = batch.BatchOrchestrator(ProcessingSettings(), jobs=2, progress=False, process=process)

    summary = orchestrator.run(jobs)

    assert (summary.total, summary.succeeded, summary.failed) == (5, 4, 1)
    assert summary.success_rate == pytest.approx(80.0)
    failed = [job for job in jobs if job.status is batch.JobStatus.FAILED]
    assert [job.input_path.name for job in failed] == ["img3.jpg"]
    assert "Contrast" in failed[0].error
    assert all(job.status is batch.JobStatus.SUCCEEDED for job in jobs if job not in failed)
    assert orchestrator.tracker.completed == 5


def test_unexpected_errors_are_isolated_too(tmp_path: Path):
    def process(input_path, output_path, apply_enhancements, settings):
        raise KeyError("boom")

    summary = batch.BatchOrchestrator(ProcessingSettings(), jobs=1, progress=False, process=process).run(
        _jobs(tmp_path, 2)
    )

    assert (summary.succeeded, summary.failed) == (0, 2)
    assert summary.jobs[0].error == "'boom'"


def test_apply_enhancements_flag_reaches_process(tmp_path: Path):
    seen = []

    def process(input_path, output_path, apply_enhancements, settings):
        seen.append(apply_enhancements)
        return _fake_result(input_path, output_path)

    batch.BatchOrchestrator(
        ProcessingSettings(), jobs=1, apply_enhancements=False, progress=False, process=process
    ).run(_jobs(tmp_path, 2))

    assert seen == [False, False]


def test_worker_pool_is_bounded(tmp_path: Path):
    lock = threading.Lock()
    active = 0
    peak = 0

    def process(input_path, output_path, apply_enhancements, settings):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return _fake_result(input_path, output_path)

    summary = batch.BatchOrchestrator(ProcessingSettings(), jobs=3, progress=False, process=process).run(
        _jobs(tmp_path, 12)
    )

    assert summary.succeeded == 12
    assert 1 <= peak <= 3


def test_orchestrator_rejects_non_positive_jobs():
    with pytest.raises(ValueError):
        batch.BatchOrchestrator(ProcessingSettings(), jobs=0)


def test_default_job_count_is_capped(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(batch.os, "cpu_count", lambda: 64)
    assert batch.default_job_count() == batch.MAX_DEFAULT_JOBS
    monkeypatch.setattr(batch.os, "cpu_count", lambda: None)
    assert batch.default_job_count() == 1


def test_job_state_machine(tmp_path: Path):
    job = batch.Job(tmp_path / "a.jpg", tmp_path / "a_edited.jpg")

    with pytest.raises(batch.InvalidTransition):
        job.succeed(_fake_result(job.input_path, job.output_path))

    job.start()
    with pytest.raises(batch.InvalidTransition):
        job.start()

    job.fail(RuntimeError("disk full"), 0.5)
    assert job.status is batch.JobStatus.FAILED
    assert (job.error, job.elapsed) == ("disk full", 0.5)
    with pytest.raises(batch.InvalidTransition):
        job.start()


@documents("ETA is the mean of the last five durations times the remaining count")
def test_eta_tracker_uses_rolling_window():
    tracker = batch.EtaTracker(total=10)
    assert tracker.eta() is None

    for duration in (1.0, 2.0, 3.0, 4.0, 5.0, 6.0):
        tracker.record(duration)

    assert tracker.completed == 6
    assert tracker.remaining == 4
    assert tracker.eta() == pytest.approx(16.0)


def test_eta_tracker_counts_monotonically_across_threads():
    tracker = batch.EtaTracker(total=200)
    counts = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            value = tracker.record(0.1)
            with lock:
                counts.append(value)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(counts) == list(range(1, 201))
    assert tracker.remaining == 0
    assert tracker.eta() == pytest.approx(0.0)


def test_processing_log_records_each_outcome(tmp_path: Path):
    def process(input_path, output_path, apply_enhancements, settings):
        if input_path.name == "img2.jpg":
            raise TransformFailure("bad stage", path=input_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"x" * 2048)
        return _fake_result(input_path, output_path, written=(output_path,))

    log_path = tmp_path / "processing_log.txt"
    with ProcessingLog(log_path, directory=tmp_path, total=3) as processing_log:
        summary = batch.BatchOrchestrator(
            ProcessingSettings(), jobs=2, progress=False, processing_log=processing_log, process=process
        ).run(_jobs(tmp_path, 3))
        processing_log.close(succeeded=summary.succeeded, failed=summary.failed)

    text = log_path.read_text(encoding="utf-8")
    assert "Total Files: 3" in text
    assert "] Processing: img2.jpg" in text
    assert "  FAILED: Could not process img2.jpg: bad stage" in text
    assert "(2.0 KB)" in text
    assert "Total: 3 | Success: 2 | Failed: 1" in text
    lines = text.splitlines()
    index = next(i for i, line in enumerate(lines) if line.endswith("Processing: img2.jpg"))
    assert "FAILED" in lines[index + 1]


def test_build_jobs_maps_outputs(tmp_path: Path):
    source_root = tmp_path / "in"
    nested = source_root / "day1" / "a.jpg"
    nested.parent.mkdir(parents=True)
    nested.write_bytes(b"")

    beside = batch.build_jobs([nested], input_root=source_root, suffix="_edited")
    mirrored = batch.build_jobs(
        [nested], input_root=source_root, output_root=tmp_path / "out", suffix="_v2", extension="png", recursive=True
    )

    assert beside[0].output_path == source_root / "day1" / "a_edited.jpg"
    assert mirrored[0].output_path == tmp_path / "out" / "day1" / "a_v2.png"
    assert mirrored[0].status is batch.JobStatus.PENDING
    assert (tmp_path / "out" / "day1").is_dir()


@documents("Batch learning completes before dispatch and feeds every job")
def test_run_batch_learns_profile_first(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    events = []
    profile = BatchProfile(avg_exposure=120.0, avg_color_temp_ratio=1.0, sample_count=2)

    def fake_learn(paths, provider=None, **kwargs):
        events.append(("learn", len(paths)))
        return profile

    def fake_run(self, jobs):
        events.append(("run", self.settings.batch))
        return batch.BatchSummary(total=len(jobs), succeeded=len(jobs), failed=0, elapsed=0.0)

    monkeypatch.setattr(batch, "learn_batch_profile", fake_learn)
    monkeypatch.setattr(batch.BatchOrchestrator, "run", fake_run)

    batch.run_batch(_jobs(tmp_path, 3), ProcessingSettings(), progress=False)

    assert events == [("learn", 3), ("run", profile)]


@pytest.mark.parametrize(
    "kwargs, settings, count",
    [
        ({"batch_consistency": False}, ProcessingSettings(), 3),
        ({"apply_enhancements": False}, ProcessingSettings(), 3),
        ({}, ProcessingSettings(analysis=False), 3),
        ({}, ProcessingSettings(), 1),
    ],
)
def test_run_batch_skips_learning(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, kwargs, settings, count):
    def fail_learn(*args, **kwargs):
        raise AssertionError("batch learning should not run")

    captured = []

    def fake_run(self, jobs):
        captured.append(self.settings.batch)
        return batch.BatchSummary(total=len(jobs), succeeded=len(jobs), failed=0, elapsed=0.0)

    monkeypatch.setattr(batch, "learn_batch_profile", fail_learn)
    monkeypatch.setattr(batch.BatchOrchestrator, "run", fake_run)

    batch.run_batch(_jobs(tmp_path, count), settings, progress=False, **kwargs)

    assert captured == [None]
