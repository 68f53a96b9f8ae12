"""Batch consistency learning: a sampled exposure/color baseline for the whole run.

The profile is computed once, sequentially, before any job is dispatched, and
is read-only afterwards.
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import UnreadableImage
from .signals import StatisticsProvider, extract

LOGGER = logging.getLogger("photo_batch_corrector")

DEFAULT_SAMPLE_SIZE = 10


@dataclasses.dataclass(frozen=True)
class BatchProfile:
    """Average exposure and red:blue ratio of the sampled files."""

    avg_exposure: float
    avg_color_temp_ratio: float
    sample_count: int


def sample_evenly(paths: Sequence[Path], sample_size: int = DEFAULT_SAMPLE_SIZE) -> List[Path]:
    """Pick up to *sample_size* evenly spaced entries, keeping their order."""
    total = len(paths)
    if sample_size <= 0 or total == 0:
        return []
    if total <= sample_size:
        return list(paths)
    step = total / sample_size
    return [paths[int(index * step)] for index in range(sample_size)]


def learn_batch_profile(
    paths: Sequence[Path],
    provider: Optional[StatisticsProvider] = None,
    *,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> Optional[BatchProfile]:
    """Measure a sample of the batch and average its exposure and color balance.

    Args:
        paths: Every input file of the batch, in processing order.
        provider: Statistics provider used for extraction.
        sample_size: Maximum number of files to measure.

    Returns:
        The batch profile, or ``None`` when no sampled file could be read.
    """
    exposures: List[float] = []
    ratios: List[float] = []
    for path in sample_evenly(paths, sample_size):
        try:
            signal = extract(path, provider)
        except UnreadableImage as exc:
            LOGGER.warning("Skipping %s while learning batch profile: %s", path, exc)
            continue
        exposures.append(signal.mean_brightness)
        ratios.append(signal.red_blue_ratio)

    if not exposures:
        LOGGER.warning("Batch learning found no readable samples; consistency disabled")
        return None

    profile = BatchProfile(
        avg_exposure=round(sum(exposures) / len(exposures), 4),
        avg_color_temp_ratio=round(sum(ratios) / len(ratios), 4),
        sample_count=len(exposures),
    )
    LOGGER.info(
        "Batch profile from %s sample(s): exposure %.1f, red:blue %.3f",
        profile.sample_count,
        profile.avg_exposure,
        profile.avg_color_temp_ratio,
    )
    return profile


__all__ = [
    "BatchProfile",
    "DEFAULT_SAMPLE_SIZE",
    "learn_batch_profile",
    "sample_evenly",
]
