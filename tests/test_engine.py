from __future__ import annotations

import io
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

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
from PIL import Image  # noqa: E402  # pylint: disable=wrong-import-position

from photo_batch_corrector import engine  # noqa: E402
from photo_batch_corrector import stages  # noqa: E402
from photo_batch_corrector.adjustments import CorrectionParameters  # noqa: E402
from photo_batch_corrector.errors import TransformFailure, UnreadableImage  # noqa: E402

MODEL_TAG = 0x0110


def _decode(encoded: engine.EncodedImage) -> Image.Image:
    image = Image.open(io.BytesIO(encoded.data))
    image.load()
    return image


def test_white_balance_scales_red_and_blue():
    arr = np.full((2, 2, 3), 0.5, dtype=np.float32)
    out = engine.white_balance(arr, stages.white_balance_stage(40))

    assert out[0, 0, 0] == pytest.approx(0.55)
    assert out[0, 0, 1] == pytest.approx(0.5)
    assert out[0, 0, 2] == pytest.approx(0.45)


def test_sigmoidal_contrast_pivots_on_midpoint():
    arr = np.array([[[0.25, 0.5, 0.75]]], dtype=np.float32)

    increased = engine.sigmoidal_contrast(arr, stages.contrast_stage(40))
    decreased = engine.sigmoidal_contrast(arr, stages.contrast_stage(-40))

    assert increased[0, 0, 0] < 0.25 and increased[0, 0, 2] > 0.75
    assert decreased[0, 0, 0] > 0.25 and decreased[0, 0, 2] < 0.75
    assert increased[0, 0, 1] == pytest.approx(0.5, abs=1e-4)


def test_shadow_recovery_lifts_midtones():
    arr = np.full((1, 1, 3), 0.25, dtype=np.float32)
    out = engine.shadow_recovery(arr, stages.shadow_stage(40))
    assert out[0, 0, 0] > 0.25


def test_vibrance_favours_muted_pixels():
    arr = np.array([[[0.5, 0.4, 0.35], [0.9, 0.1, 0.1]]], dtype=np.float32)
    out = engine.vibrance(arr, stages.vibrance_stage(60))

    def spread(pixels):
        return pixels.max(axis=-1) - pixels.min(axis=-1)

    gain = spread(out[0]) - spread(arr[0])
    assert gain[0] > 0
    assert gain[0] > gain[1]


def test_fit_within_never_enlarges():
    image = Image.new("RGB", (40, 20))
    assert engine.fit_within(image, 100).size == (40, 20)
    assert engine.fit_within(image, 10).size == (10, 5)


@documents("The engine executes a built pipeline and returns encoded outputs")
def test_apply_full_pipeline_produces_jpeg(tmp_path: Path):
    source = write_image(tmp_path / "frame.jpg", size=(64, 48))
    parameters = CorrectionParameters.defaults()
    pipeline = stages.build_pipeline(
        parameters,
        stages.OutputOptions(quality=90, watermark_text="Studio", resize="50%"),
    )

    outputs = engine.PillowTransformEngine().apply(source, pipeline)

    assert [output.role for output in outputs] == ["primary"]
    primary = outputs[0]
    assert primary.format == "JPEG"
    assert primary.extension == "jpg"
    assert _decode(primary).size == (32, 24)


def test_web_derivative_is_smaller_progressive_copy(tmp_path: Path):
    source = write_image(tmp_path / "frame.png", size=(300, 200))
    pipeline = stages.build_pipeline(
        CorrectionParameters.defaults(),
        stages.OutputOptions(format="png", web_version=True, web_size=100, web_quality=80),
    )

    primary, web = engine.PillowTransformEngine().apply(source, pipeline)

    assert primary.format == "PNG"
    assert _decode(primary).size == (300, 200)
    assert (web.role, web.format, web.suffix, web.size) == ("web", "JPEG", "_web", (100, 67))
    assert _decode(web).info.get("progressive")


def test_metadata_copy_preserves_exif(tmp_path: Path):
    source = tmp_path / "tagged.jpg"
    exif = Image.Exif()
    exif[MODEL_TAG] = "TestCam"
    Image.new("RGB", (16, 16), (120, 90, 80)).save(source, exif=exif)

    kept = engine.PillowTransformEngine().apply(source, [stages.Encode("JPEG", 90), stages.MetadataCopy()])
    stripped = engine.PillowTransformEngine().apply(source, [stages.Encode("JPEG", 90)])

    assert _decode(kept[0]).getexif().get(MODEL_TAG) == "TestCam"
    assert MODEL_TAG not in _decode(stripped[0]).getexif()


def test_watermark_marks_the_requested_corner():
    image = Image.new("RGB", (200, 100), (0, 0, 0))
    marked = engine.watermark(image, stages.Watermark("Studio", "bottomright", 100.0, point_size=20, margin=5))

    arr = np.asarray(marked)
    assert arr[50:, 100:].max() > 0
    assert arr[:40, :80].max() == 0


def test_missing_encode_stage_fails(tmp_path: Path):
    source = write_image(tmp_path / "frame.jpg")
    with pytest.raises(TransformFailure) as excinfo:
        engine.PillowTransformEngine().apply(source, [stages.AutoLevelGamma()])
    assert excinfo.value.stage == "Encode"


def test_rejected_stage_names_the_stage(tmp_path: Path):
    source = write_image(tmp_path / "frame.jpg")
    broken = stages.HighlightRecovery(highlights=-100, white_point_pct=0.0)

    with pytest.raises(TransformFailure) as excinfo:
        engine.PillowTransformEngine().apply(source, [broken, stages.Encode("JPEG", 90)])

    assert excinfo.value.stage == "HighlightRecovery"
    assert excinfo.value.path == source


def test_unreadable_source(tmp_path: Path):
    source = tmp_path / "broken.jpg"
    source.write_bytes(b"not an image")

    with pytest.raises(UnreadableImage):
        engine.PillowTransformEngine().apply(source, [stages.Encode("JPEG", 90)])
