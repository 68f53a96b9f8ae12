"""Signal extraction: turn a statistics provider's raw output into an ImageSignal.

The adapter is deliberately thin. Pixel measurements belong to a
:class:`StatisticsProvider`; this module only normalizes the provider's
mapping into an immutable record, substitutes sentinel values for missing
EXIF fields, and maps "cannot open" failures to :class:`UnreadableImage`.

Key Components
--------------

ExifSnapshot
    Camera metadata with documented sentinels (iso=0, focal length=0, no flash).

ImageSignal
    Everything the classifiers and the synthesizer are allowed to look at.

PillowStatisticsProvider
    Reference provider measuring a Pillow-decoded image with numpy.

extract
    The adapter entry point.
"""
from __future__ import annotations

import dataclasses
import logging
import math
import warnings
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import numpy as np
from PIL import Image

from .color_math import (
    circular_mean_degrees,
    hsl_saturation_lightness,
    laplacian,
    luminance,
    rgb_to_hsv,
    split_grid,
)
from .errors import MissingMetadata, UnreadableImage

LOGGER = logging.getLogger("photo_batch_corrector")

EXIF_IFD = 0x8769
TAG_MODEL = 0x0110
TAG_DATETIME = 0x0132
TAG_EXPOSURE_TIME = 0x829A
TAG_FNUMBER = 0x829D
TAG_ISO = 0x8827
TAG_DATETIME_ORIGINAL = 0x9003
TAG_FLASH = 0x9209
TAG_FOCAL_LENGTH = 0x920A
TAG_LENS_MODEL = 0xA434

SHADOW_CLIP_LEVEL = 5.0
HIGHLIGHT_CLIP_LEVEL = 250.0
SKIN_CR_RANGE = (133.0, 173.0)
SKIN_CB_RANGE = (77.0, 127.0)
HUE_SATURATION_FLOOR = 0.05

_EXIF_FIELDS = (
    "iso",
    "aperture",
    "shutter_speed",
    "focal_length_mm",
    "flash_fired",
    "camera_model",
    "lens_model",
    "timestamp",
)


@dataclasses.dataclass(frozen=True)
class ExifSnapshot:
    """Camera metadata relevant to correction decisions.

    Attributes:
        iso: Sensor sensitivity, 0 when unknown.
        aperture: f-number, 0.0 when unknown.
        shutter_speed: Exposure time in seconds, 0.0 when unknown.
        focal_length_mm: Focal length in millimetres, 0.0 when unknown.
        flash_fired: Whether the flash fired, False when unknown.
        camera_model: Camera model string, empty when unknown.
        lens_model: Lens model string, empty when unknown.
        timestamp: Original capture timestamp as recorded, None when unknown.
        missing: Names of fields that were substituted with sentinels.
    """

    iso: int = 0
    aperture: float = 0.0
    shutter_speed: float = 0.0
    focal_length_mm: float = 0.0
    flash_fired: bool = False
    camera_model: str = ""
    lens_model: str = ""
    timestamp: Optional[str] = None
    missing: Tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class ImageSignal:
    """Immutable per-image measurements consumed by classifiers and synthesis."""

    mean_brightness: float
    std_dev: float
    min_value: float
    max_value: float
    red_mean: float
    green_mean: float
    blue_mean: float
    shadow_clip_pct: float
    highlight_clip_pct: float
    sharpness_variance: float
    region_detail: Tuple[float, ...]
    region_brightness: Tuple[float, ...]
    skin_tone_pct: float
    center_skin_pct: float
    hue: float
    saturation: float
    lightness: float
    exif: ExifSnapshot
    aspect_ratio: float
    width: int = 0
    height: int = 0

    @property
    def center_detail(self) -> float:
        return self.region_detail[4]

    @property
    def outer_detail(self) -> float:
        outer = self.region_detail[:4] + self.region_detail[5:]
        return sum(outer) / len(outer)

    @property
    def center_brightness(self) -> float:
        return self.region_brightness[4]

    @property
    def edge_brightness(self) -> float:
        outer = self.region_brightness[:4] + self.region_brightness[5:]
        return sum(outer) / len(outer)

    @property
    def red_blue_ratio(self) -> float:
        return self.red_mean / max(self.blue_mean, 1.0)


class StatisticsProvider(Protocol):
    """External statistics engine consumed by :func:`extract`."""

    def compute_signal(self, path: Path) -> Mapping[str, Any]:
        """Return raw statistics for *path* using :class:`ImageSignal` field names.

        The ``exif`` entry is a mapping of :class:`ExifSnapshot` field names to raw
        values (``None`` when absent). Implementations raise ``OSError`` or
        ``ValueError`` when the file cannot be opened.
        """


def _float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return default
    if not math.isfinite(result):
        return default
    return round(result, 4)


def _percent(value: Any) -> float:
    return min(max(_float(value), 0.0), 100.0)


def _grid(value: Any) -> Tuple[float, ...]:
    if value is None:
        return (0.0,) * 9
    cells = tuple(_float(item) for item in value)
    if len(cells) != 9:
        raise ValueError(f"Regional grid must contain 9 cells, got {len(cells)}")
    return cells


def _first(value: Any) -> Any:
    if isinstance(value, (tuple, list)):
        return value[0] if value else None
    return value


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).strip("\x00").strip()
    return text or None


def normalise_exif(raw: Optional[Mapping[str, Any]]) -> ExifSnapshot:
    """Build an :class:`ExifSnapshot`, replacing absent or malformed fields with sentinels."""
    raw = raw or {}
    missing = []

    iso_raw = _first(raw.get("iso"))
    iso = int(_float(iso_raw)) if iso_raw is not None else 0
    if iso <= 0:
        iso = 0
        missing.append("iso")

    values: Dict[str, Any] = {"iso": iso}
    for name in ("aperture", "shutter_speed", "focal_length_mm"):
        number = _float(raw.get(name))
        if number <= 0:
            number = 0.0
            missing.append(name)
        values[name] = number

    flash = raw.get("flash_fired")
    if flash is None:
        missing.append("flash_fired")
        values["flash_fired"] = False
    else:
        values["flash_fired"] = bool(flash)

    for name in ("camera_model", "lens_model"):
        text = _text(raw.get(name))
        if text is None:
            missing.append(name)
        values[name] = text or ""

    timestamp = _text(raw.get("timestamp"))
    if timestamp is None:
        missing.append("timestamp")
    values["timestamp"] = timestamp

    return ExifSnapshot(missing=tuple(missing), **values)


def signal_from_statistics(stats: Mapping[str, Any]) -> ImageSignal:
    """Normalize a provider mapping into an :class:`ImageSignal`."""
    width = int(_float(stats.get("width")))
    height = int(_float(stats.get("height")))
    aspect = _float(stats.get("aspect_ratio"))
    if aspect <= 0 and width > 0 and height > 0:
        aspect = round(width / height, 4)
    return ImageSignal(
        mean_brightness=_float(stats.get("mean_brightness")),
        std_dev=_float(stats.get("std_dev")),
        min_value=_float(stats.get("min_value")),
        max_value=_float(stats.get("max_value")),
        red_mean=_float(stats.get("red_mean")),
        green_mean=_float(stats.get("green_mean")),
        blue_mean=_float(stats.get("blue_mean")),
        shadow_clip_pct=_percent(stats.get("shadow_clip_pct")),
        highlight_clip_pct=_percent(stats.get("highlight_clip_pct")),
        sharpness_variance=_float(stats.get("sharpness_variance")),
        region_detail=_grid(stats.get("region_detail")),
        region_brightness=_grid(stats.get("region_brightness")),
        skin_tone_pct=_percent(stats.get("skin_tone_pct")),
        center_skin_pct=_percent(stats.get("center_skin_pct")),
        hue=_float(stats.get("hue")) % 360.0,
        saturation=_percent(stats.get("saturation")),
        lightness=_percent(stats.get("lightness")),
        exif=normalise_exif(stats.get("exif")),
        aspect_ratio=aspect or 1.0,
        width=width,
        height=height,
    )


def read_exif(image: Image.Image) -> Dict[str, Any]:
    """Collect raw EXIF values from a Pillow image, ``None`` for absent tags."""
    exif = image.getexif()
    detail: Mapping[int, Any] = {}
    try:
        detail = exif.get_ifd(EXIF_IFD)
    except (KeyError, ValueError):  # pragma: no cover - malformed IFD pointers
        LOGGER.debug("Unable to read Exif IFD", exc_info=True)

    def lookup(tag: int) -> Any:
        if tag in detail:
            return detail[tag]
        return exif.get(tag)

    flash = _first(lookup(TAG_FLASH))
    return {
        "iso": lookup(TAG_ISO),
        "aperture": lookup(TAG_FNUMBER),
        "shutter_speed": lookup(TAG_EXPOSURE_TIME),
        "focal_length_mm": lookup(TAG_FOCAL_LENGTH),
        "flash_fired": None if flash is None else bool(int(flash) & 0x1),
        "camera_model": lookup(TAG_MODEL),
        "lens_model": lookup(TAG_LENS_MODEL),
        "timestamp": lookup(TAG_DATETIME_ORIGINAL) or lookup(TAG_DATETIME),
    }


class PillowStatisticsProvider:
    """Measure images with Pillow decoding and numpy statistics.

    Images are reduced to ``long_edge`` pixels before measuring, which keeps
    the statistics cheap and identical for identical inputs.
    """

    def __init__(self, long_edge: int = 1024) -> None:
        if long_edge < 3:
            raise ValueError("long_edge must be at least 3 pixels")
        self.long_edge = long_edge

    def compute_signal(self, path: Path) -> Mapping[str, Any]:
        with Image.open(path) as image:
            width, height = image.size
            exif = read_exif(image)
            rgb = image.convert("RGB")
        rgb.thumbnail((self.long_edge, self.long_edge), Image.Resampling.BILINEAR)
        arr = np.asarray(rgb, dtype=np.float32)
        ycbcr = np.asarray(rgb.convert("YCbCr"), dtype=np.float32)
        return self.measure(arr, ycbcr, width=width, height=height, exif=exif)

    @staticmethod
    def measure(
        arr: np.ndarray,
        ycbcr: np.ndarray,
        *,
        width: int,
        height: int,
        exif: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Compute raw statistics from 0-255 RGB and YCbCr arrays."""
        lum = luminance(arr)

        cb = ycbcr[..., 1]
        cr = ycbcr[..., 2]
        skin = (
            (cr >= SKIN_CR_RANGE[0])
            & (cr <= SKIN_CR_RANGE[1])
            & (cb >= SKIN_CB_RANGE[0])
            & (cb <= SKIN_CB_RANGE[1])
        )

        detail = []
        brightness = []
        for cell in split_grid(lum):
            detail.append(float(np.std(cell)) if cell.size else 0.0)
            brightness.append(float(np.mean(cell)) if cell.size else 0.0)
        center_skin = split_grid(skin)[4]

        normalised = arr / 255.0
        hsl_saturation, hsl_lightness = hsl_saturation_lightness(normalised)
        hsv = rgb_to_hsv(normalised)
        chromatic = hsv[..., 1] > HUE_SATURATION_FLOOR

        return {
            "mean_brightness": float(np.mean(arr)),
            "std_dev": float(np.std(arr)),
            "min_value": float(np.min(arr)),
            "max_value": float(np.max(arr)),
            "red_mean": float(np.mean(arr[..., 0])),
            "green_mean": float(np.mean(arr[..., 1])),
            "blue_mean": float(np.mean(arr[..., 2])),
            "shadow_clip_pct": float(np.mean(lum < SHADOW_CLIP_LEVEL) * 100.0),
            "highlight_clip_pct": float(np.mean(lum > HIGHLIGHT_CLIP_LEVEL) * 100.0),
            "sharpness_variance": float(np.var(laplacian(lum))),
            "region_detail": detail,
            "region_brightness": brightness,
            "skin_tone_pct": float(np.mean(skin) * 100.0),
            "center_skin_pct": float(np.mean(center_skin) * 100.0) if center_skin.size else 0.0,
            "hue": circular_mean_degrees(hsv[..., 0][chromatic]),
            "saturation": float(np.mean(hsl_saturation) * 100.0),
            "lightness": float(np.mean(hsl_lightness) * 100.0),
            "exif": dict(exif or {}),
            "aspect_ratio": width / height if height else 1.0,
            "width": width,
            "height": height,
        }


def extract(path: Path, provider: Optional[StatisticsProvider] = None) -> ImageSignal:
    """Measure *path* and return its :class:`ImageSignal`.

    Args:
        path: Image file to measure.
        provider: Statistics provider, defaults to :class:`PillowStatisticsProvider`.

    Returns:
        The normalized, immutable signal.

    Raises:
        UnreadableImage: If the provider cannot open or decode the file, or
            returns statistics that cannot be normalized.
    """
    provider = provider or PillowStatisticsProvider()
    path = Path(path)
    try:
        stats = provider.compute_signal(path)
    except UnreadableImage:
        raise
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise UnreadableImage(f"Cannot read {path}: {exc}", path=path) from exc

    try:
        signal = signal_from_statistics(stats)
    except (TypeError, ValueError) as exc:
        raise UnreadableImage(f"Statistics for {path} are malformed: {exc}", path=path) from exc
    if signal.exif.missing:
        LOGGER.debug("%s: EXIF defaults used for %s", path.name, ", ".join(signal.exif.missing))
        warnings.warn(MissingMetadata(path, signal.exif.missing), stacklevel=2)
    return signal


__all__ = [
    "ExifSnapshot",
    "ImageSignal",
    "PillowStatisticsProvider",
    "StatisticsProvider",
    "extract",
    "normalise_exif",
    "read_exif",
    "signal_from_statistics",
]
