"""Factories for signals and small on-disk images shared by the tests."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Optional

from photo_batch_corrector.signals import ExifSnapshot, ImageSignal

FLAT_GRID = (20.0,) * 9
MID_GREY = (128.0,) * 9


def make_signal(*, exif: Optional[ExifSnapshot] = None, **overrides: Any) -> ImageSignal:
    """A neutral, well exposed signal; keyword arguments replace single fields."""
    signal = ImageSignal(
        mean_brightness=128.0,
        std_dev=55.0,
        min_value=0.0,
        max_value=255.0,
        red_mean=128.0,
        green_mean=128.0,
        blue_mean=128.0,
        shadow_clip_pct=0.5,
        highlight_clip_pct=0.5,
        sharpness_variance=150.0,
        region_detail=FLAT_GRID,
        region_brightness=MID_GREY,
        skin_tone_pct=0.0,
        center_skin_pct=0.0,
        hue=200.0,
        saturation=50.0,
        lightness=50.0,
        exif=exif or ExifSnapshot(iso=200),
        aspect_ratio=1.0,
        width=600,
        height=600,
    )
    return dataclasses.replace(signal, **overrides)


def golden_signal(**overrides: Any) -> ImageSignal:
    """The documented sample frame: slightly dark, mildly warm, ISO 800."""
    values = dict(
        mean_brightness=95.3,
        std_dev=52.4,
        highlight_clip_pct=1.2,
        shadow_clip_pct=3.5,
        red_mean=98.2,
        green_mean=94.1,
        blue_mean=93.6,
        exif=ExifSnapshot(iso=800),
    )
    values.update(overrides)
    return make_signal(**values)


def write_image(path: Path, size=(64, 48), color=(120, 100, 90), *, gradient: bool = True) -> Path:
    """Write a small RGB image; the format follows the path's extension."""
    import numpy as np
    from PIL import Image

    width, height = size
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[...] = color
    if gradient:
        ramp = np.linspace(-40, 40, width, dtype=np.float32)
        arr = np.clip(arr.astype(np.float32) + ramp[None, :, None], 0, 255).astype(np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(arr).save(path)
    return path


__all__ = ["golden_signal", "make_signal", "write_image"]
