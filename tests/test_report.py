from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

try:
    from .documentation import documents
    from .samples import golden_signal
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents
    from tests.samples import golden_signal

from photo_batch_corrector import report  # noqa: E402
from photo_batch_corrector.adjustments import CorrectionParameters  # noqa: E402
from photo_batch_corrector.batch import BatchSummary  # noqa: E402
from photo_batch_corrector.classifiers import classify  # noqa: E402
from photo_batch_corrector.pipeline import FileAnalysis  # noqa: E402
from photo_batch_corrector.processing_log import ProcessingLog  # noqa: E402
from photo_batch_corrector.stages import build_pipeline  # noqa: E402
from photo_batch_corrector.synthesizer import synthesize  # noqa: E402


@pytest.mark.parametrize(
    "seconds, expected",
    [(None, "--"), (0.4, "0s"), (59, "59s"), (123, "2m 3s"), (3723, "1h 2m 3s")],
)
def test_format_duration(seconds, expected):
    assert report.format_duration(seconds) == expected


@pytest.mark.parametrize(
    "size, expected",
    [(512, "512 B"), (2048, "2.0 KB"), (5 * 1024 ** 2, "5.0 MB"), (3 * 1024 ** 3, "3.0 GB")],
)
def test_human_size(size, expected):
    assert report.human_size(size) == expected


def test_summary_report_totals():
    text = report.summary_report(BatchSummary(total=5, succeeded=4, failed=1, elapsed=125.0), "run.log")

    assert "Total Files:     5" in text
    assert "Success Rate:    80.0%" in text
    assert "Processing Time: 2m 5s" in text
    assert "Average Speed:   25.0 sec/image" in text
    assert "Check run.log for details" in text


def test_analysis_report_lists_sources():
    signal = golden_signal()
    classification = classify(signal)
    analysis = FileAnalysis(Path("IMG_001.jpg"), signal, classification, synthesize(signal, classification))

    text = report.analysis_report(analysis)

    assert "Image: IMG_001.jpg" in text
    assert "Mean Brightness:    95.3 / 255" in text
    assert "Noise Reduction:    10 [adaptive]" in text
    assert "Scene:" in text


def test_pipeline_report_numbers_stages():
    text = report.pipeline_report(build_pipeline(CorrectionParameters.defaults()))
    lines = text.splitlines()

    assert lines[0] == "   1. auto_level_gamma"
    assert lines[-1] == "   5. metadata_copy"


def test_processing_log_requires_open(tmp_path: Path):
    log = ProcessingLog(tmp_path / "log.txt", directory=tmp_path, total=1)
    with pytest.raises(RuntimeError):
        log.message("too early")


@documents("Two processing logs open at the same time keep their records apart")
def test_concurrent_processing_logs_do_not_mix(tmp_path: Path):
    first_path = tmp_path / "first.txt"
    second_path = tmp_path / "second.txt"

    with ProcessingLog(first_path, directory=tmp_path, total=1) as first, ProcessingLog(
        second_path, directory=tmp_path, total=1
    ) as second:
        first.record_result(Path("a.jpg"), True, "a_edited.jpg")
        second.record_result(Path("b.jpg"), False, "Could not process b.jpg")

    first_text = first_path.read_text(encoding="utf-8")
    second_text = second_path.read_text(encoding="utf-8")
    assert "Processing: a.jpg" in first_text
    assert "b.jpg" not in first_text
    assert "Processing: b.jpg" in second_text
    assert "a.jpg" not in second_text
