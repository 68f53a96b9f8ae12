from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

try:
    from .documentation import documents
    from .samples import write_image
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents
    from tests.samples import write_image

pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
pytest.importorskip("yaml")

from photo_batch_corrector import cli  # noqa: E402
from photo_batch_corrector.adjustments import Source  # noqa: E402
from photo_batch_corrector.processing_log import DEFAULT_LOG_NAME  # noqa: E402

pytestmark = pytest.mark.filterwarnings("ignore::photo_batch_corrector.errors.MissingMetadata")


def _shoot(folder: Path, count: int = 3) -> list:
    return [
        write_image(folder / f"IMG_{index:03d}.jpg", size=(48, 32), color=(90 + 20 * index, 100, 110))
        for index in range(count)
    ]


def test_top_level_script_still_invokable():
    script = ROOT / "process_photos.py"
    assert script.exists(), "shim script missing"

    result = subprocess.run(
        [sys.executable, str(script), "--help"],
        capture_output=True,
        text=True,
        check=False,
    )

    assert result.returncode == 0
    assert "Batch-correct photographs" in result.stdout


def test_parse_args_defaults(tmp_path: Path):
    args = cli.parse_args([str(tmp_path)])

    assert args.input == tmp_path
    assert args.suffix == "_edited"
    assert args.preset == "auto"
    assert args.profile == "standard"
    assert args.contrast is None
    assert args.jobs is None
    assert args.format == "jpg"


def test_parse_args_manual_overrides(tmp_path: Path):
    args = cli.parse_args([str(tmp_path), "_v2", "--contrast", "0", "--noise-reduction", "40", "--preset", "vivid"])
    overrides = cli.build_overrides(args)

    assert args.suffix == "_v2"
    assert overrides.provided() == {"contrast": 0.0, "noise_reduction": 40.0}


@pytest.mark.parametrize(
    "extra",
    [
        ["--contrast", "150"],
        ["--saturation", "-1"],
        ["--quality", "0"],
        ["--resize", "huge"],
        ["--jobs", "0"],
        ["--preset", "sepia"],
    ],
)
def test_parse_args_rejects_invalid_values(tmp_path: Path, extra):
    with pytest.raises(SystemExit):
        cli.parse_args([str(tmp_path), *extra])


@documents("Configuration files provide defaults that flags can still override")
def test_parse_args_reads_yaml_config(tmp_path: Path):
    config = tmp_path / "look.yaml"
    config.write_text("preset: portrait\nshadows: 25\nweb-version: yes\nno_metadata: 'off'\njobs: 2\n")

    args = cli.parse_args(["--config", str(config), str(tmp_path), "--jobs", "3"])

    assert args.preset == "portrait"
    assert args.shadows == 25.0
    assert args.web_version is True
    assert args.no_metadata is False
    assert args.jobs == 3


def test_parse_args_reads_json_config(tmp_path: Path):
    config = tmp_path / "look.json"
    config.write_text(json.dumps({"profile": "sensitive", "noise_reduction": 30, "format": "png"}))

    args = cli.parse_args(["--config", str(config), str(tmp_path)])

    assert args.profile == "sensitive"
    assert args.noise_reduction == 30.0
    assert cli.build_settings(args).output.pillow_format == "PNG"


@pytest.mark.parametrize(
    "content",
    [
        '{"unknown_option": 1}',
        '{"contrast": "strong"}',
        '{"preset": "sepia"}',
        '{"dry_run": "maybe"}',
        '["not", "a", "mapping"]',
        "{broken",
    ],
)
def test_parse_args_rejects_bad_config(tmp_path: Path, content: str):
    config = tmp_path / "bad.json"
    config.write_text(content)

    with pytest.raises(SystemExit):
        cli.parse_args(["--config", str(config), str(tmp_path)])


def test_parse_args_missing_config(tmp_path: Path):
    with pytest.raises(SystemExit):
        cli.parse_args(["--config", str(tmp_path / "absent.yaml"), str(tmp_path)])


def test_build_settings_maps_modes(tmp_path: Path):
    args = cli.parse_args([str(tmp_path), "--no-analysis", "--dry-run", "--no-metadata", "--preset", "bw"])
    settings = cli.build_settings(args)

    assert settings.analysis is False
    assert settings.dry_run is True
    assert settings.output.copy_metadata is False
    assert settings.preset.name == "bw"


@documents("A batch run writes one output per input and a processing log")
def test_run_pipeline_processes_folder(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    sources = _shoot(tmp_path)

    exit_code = cli.main([str(tmp_path), "--no-progress", "--jobs", "2"])

    assert exit_code == 0
    for source in sources:
        assert source.with_name(f"{source.stem}_edited.jpg").exists()
    log_text = (tmp_path / DEFAULT_LOG_NAME).read_text(encoding="utf-8")
    assert "Total Files: 3" in log_text
    assert log_text.count("SUCCESS:") == 3
    assert "Total: 3 | Success: 3 | Failed: 0" in log_text
    assert "All files processed successfully!" in capsys.readouterr().out


def test_rerun_ignores_previous_outputs(tmp_path: Path):
    _shoot(tmp_path, 2)
    assert cli.main([str(tmp_path), "--no-progress", "--no-log-file", "-q"]) == 0
    assert cli.main([str(tmp_path), "--no-progress", "--no-log-file", "-q"]) == 0

    assert sorted(path.name for path in tmp_path.glob("*_edited_edited*")) == []


def test_run_pipeline_output_dir_and_web_version(tmp_path: Path):
    source_dir = tmp_path / "shoot"
    _shoot(source_dir, 2)
    output_dir = tmp_path / "delivery"

    exit_code = cli.main(
        [str(source_dir), "--output-dir", str(output_dir), "--web-version", "--web-size", "20", "--no-progress", "-q"]
    )

    assert exit_code == 0
    assert sorted(path.name for path in output_dir.iterdir()) == [
        "IMG_000_edited.jpg",
        "IMG_000_edited_web.jpg",
        "IMG_001_edited.jpg",
        "IMG_001_edited_web.jpg",
    ]


@documents("Exit status is non-zero only when at least one job failed")
def test_run_pipeline_failure_sets_exit_code(tmp_path: Path):
    _shoot(tmp_path, 2)
    (tmp_path / "IMG_999.jpg").write_bytes(b"corrupt")

    exit_code = cli.main([str(tmp_path), "--no-progress", "-q"])

    assert exit_code == 1
    assert (tmp_path / "IMG_000_edited.jpg").exists()
    assert not (tmp_path / "IMG_999_edited.jpg").exists()
    log_text = (tmp_path / DEFAULT_LOG_NAME).read_text(encoding="utf-8")
    assert "FAILED: Could not process IMG_999.jpg" in log_text
    assert "Total: 3 | Success: 2 | Failed: 1" in log_text


def test_run_pipeline_dry_run_creates_no_outputs(tmp_path: Path):
    _shoot(tmp_path, 2)
    output_dir = tmp_path / "out"

    exit_code = cli.main([str(tmp_path), "--dry-run", "--output-dir", str(output_dir), "--no-progress", "-q"])

    assert exit_code == 0
    assert not output_dir.exists()
    assert not list(tmp_path.glob("*_edited.jpg"))
    assert not (tmp_path / DEFAULT_LOG_NAME).exists()


def test_run_pipeline_custom_log_file(tmp_path: Path):
    _shoot(tmp_path, 1)
    log_path = tmp_path / "logs" / "run.txt"

    assert cli.main([str(tmp_path), "--log-file", str(log_path), "--no-progress", "-q"]) == 0
    assert log_path.exists()
    assert not (tmp_path / DEFAULT_LOG_NAME).exists()


def test_run_pipeline_missing_folder(tmp_path: Path):
    assert cli.main([str(tmp_path / "absent"), "--no-progress"]) == 1


def test_run_pipeline_empty_folder(tmp_path: Path):
    assert cli.main([str(tmp_path), "--no-progress"]) == 0
    assert not (tmp_path / DEFAULT_LOG_NAME).exists()


def test_analyze_mode_prints_reports_without_writing(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    _shoot(tmp_path, 2)

    exit_code = cli.main([str(tmp_path), "--analyze", "--preset", "portrait"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "ANALYSIS MODE" in out
    assert out.count("Recommended Corrections:") == 2
    assert f"[{Source.PRESET.value}]" in out
    assert not list(tmp_path.glob("*_edited.jpg"))


def test_preview_processes_single_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    source = _shoot(tmp_path, 1)[0]

    exit_code = cli.main(["--preview", str(source), "--resize", "50%"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "auto_level_gamma" in out
    assert "resize" in out
    assert (tmp_path / "IMG_000_edited.jpg").exists()
    assert "Created:" in out


def test_preview_missing_file(tmp_path: Path):
    assert cli.main(["--preview", str(tmp_path / "absent.jpg")]) == 1


def test_no_enhance_converts_format(tmp_path: Path):
    _shoot(tmp_path, 1)

    assert cli.main([str(tmp_path), "-n", "--format", "png", "--no-progress", "-q", "--no-log-file"]) == 0
    assert (tmp_path / "IMG_000_edited.png").exists()
