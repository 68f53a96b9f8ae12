"""Array helpers shared by the statistics provider and the transform engine.

All functions operate on float32 RGB arrays shaped ``(height, width, 3)``.
Values are in ``[0, 1]`` unless a function says otherwise.
"""
from __future__ import annotations

from typing import List

import numpy as np
from scipy import ndimage

_REC709 = (0.2126, 0.7152, 0.0722)


def luminance(arr: np.ndarray) -> np.ndarray:
    """Rec. 709 luma of an RGB array; the result keeps the input's scale."""
    return arr @ np.asarray(_REC709, dtype=np.float32)


def laplacian(gray: np.ndarray) -> np.ndarray:
    """4-neighbour Laplacian with edge replication, used as a sharpness proxy."""
    return ndimage.laplace(np.asarray(gray, dtype=np.float32), mode="nearest")


def split_grid(arr: np.ndarray, rows: int = 3, cols: int = 3) -> List[np.ndarray]:
    """Split a 2D array into ``rows * cols`` cells in row-major order."""
    cells: List[np.ndarray] = []
    for band in np.array_split(arr, rows, axis=0):
        cells.extend(np.array_split(band, cols, axis=1))
    return cells


def rgb_to_hsv(arr: np.ndarray) -> np.ndarray:
    """Return an HSV array (all channels in ``[0, 1]``) for RGB input in ``[0, 1]``."""
    value = arr.max(axis=-1)
    chroma = value - arr.min(axis=-1)
    safe_chroma = np.where(chroma > 0, chroma, 1.0)
    r, g, b = np.moveaxis(arr, -1, 0)

    sector = np.select(
        [value == r, value == g],
        [(g - b) / safe_chroma, 2.0 + (b - r) / safe_chroma],
        4.0 + (r - g) / safe_chroma,
    )
    hue = np.where(chroma > 0, (sector / 6.0) % 1.0, 0.0)
    saturation = np.where(value > 0, chroma / np.where(value > 0, value, 1.0), 0.0)
    return np.stack([hue, saturation, value], axis=-1).astype(np.float32)


def hsv_to_rgb(arr: np.ndarray) -> np.ndarray:
    """Inverse of :func:`rgb_to_hsv`."""
    hue, saturation, value = np.moveaxis(arr, -1, 0)
    channels = []
    # Red, green and blue sit at offsets 5, 3 and 1 on the six-sector hue wheel.
    for offset in (5.0, 3.0, 1.0):
        k = (offset + hue * 6.0) % 6.0
        ramp = np.clip(np.minimum(k, 4.0 - k), 0.0, 1.0)
        channels.append(value - value * saturation * ramp)
    return np.stack(channels, axis=-1).astype(np.float32)


def hsl_saturation_lightness(arr: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return HSL saturation and lightness planes for an RGB array in [0, 1]."""
    maxc = np.max(arr, axis=-1)
    minc = np.min(arr, axis=-1)
    lightness = (maxc + minc) / 2.0
    diff = maxc - minc
    denominator = 1.0 - np.abs(2.0 * lightness - 1.0)
    saturation = np.zeros_like(lightness)
    np.divide(diff, denominator, out=saturation, where=(diff > 0) & (denominator > 1e-6))
    return np.clip(saturation, 0.0, 1.0), lightness


def circular_mean_degrees(hue: np.ndarray) -> float:
    """Mean of hue values in ``[0, 1)`` turns, returned in degrees ``[0, 360)``."""
    if hue.size == 0:
        return 0.0
    angles = hue.astype(np.float64) * 2.0 * np.pi
    mean_angle = np.arctan2(np.mean(np.sin(angles)), np.mean(np.cos(angles)))
    return float(np.degrees(mean_angle) % 360.0)


__all__ = [
    "circular_mean_degrees",
    "hsl_saturation_lightness",
    "hsv_to_rgb",
    "laplacian",
    "luminance",
    "rgb_to_hsv",
    "split_grid",
]
