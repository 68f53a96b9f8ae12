from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents

from hypothesis import given, strategies as st  # noqa: E402

from photo_batch_corrector import batch_learning  # noqa: E402

FULL_EXIF = {
    "iso": 200,
    "aperture": 4.0,
    "shutter_speed": 0.01,
    "focal_length_mm": 50,
    "flash_fired": False,
    "camera_model": "TestCam",
    "lens_model": "50mm",
    "timestamp": "2024:01:01 12:00:00",
}


class _MappedProvider:
    """Serves statistics by file name; names missing from the map are unreadable."""

    def __init__(self, stats: Dict[str, Dict[str, Any]]) -> None:
        self.stats = stats
        self.calls = []

    def compute_signal(self, path: Path) -> Dict[str, Any]:
        self.calls.append(path.name)
        if path.name not in self.stats:
            raise OSError(f"cannot identify image file {path}")
        return {**self.stats[path.name], "exif": FULL_EXIF}


def test_sample_evenly_spreads_over_batch():
    paths = [Path(f"{index:02d}.jpg") for index in range(25)]

    sample = batch_learning.sample_evenly(paths, 10)

    assert [path.stem for path in sample] == ["00", "02", "05", "07", "10", "12", "15", "17", "20", "22"]


def test_sample_evenly_small_batch_returns_everything():
    paths = [Path("a.jpg"), Path("b.jpg")]
    assert batch_learning.sample_evenly(paths, 10) == paths
    assert batch_learning.sample_evenly([], 10) == []


@given(st.integers(min_value=0, max_value=200), st.integers(min_value=1, max_value=20))
def test_sample_evenly_bounds(total, size):
    paths = [Path(f"{index}.jpg") for index in range(total)]
    sample = batch_learning.sample_evenly(paths, size)

    assert len(sample) == min(total, size)
    assert len(set(sample)) == len(sample)
    assert sample == sorted(sample, key=paths.index)


@documents("The batch profile averages exposure and red:blue ratio over the sample")
def test_learn_batch_profile_averages_samples():
    provider = _MappedProvider(
        {
            "a.jpg": {"mean_brightness": 100.0, "red_mean": 120.0, "blue_mean": 100.0},
            "b.jpg": {"mean_brightness": 140.0, "red_mean": 100.0, "blue_mean": 100.0},
        }
    )

    profile = batch_learning.learn_batch_profile([Path("a.jpg"), Path("b.jpg")], provider)

    assert profile == batch_learning.BatchProfile(avg_exposure=120.0, avg_color_temp_ratio=1.1, sample_count=2)


def test_learn_batch_profile_skips_unreadable_samples():
    provider = _MappedProvider({"good.jpg": {"mean_brightness": 90.0, "red_mean": 80.0, "blue_mean": 100.0}})

    profile = batch_learning.learn_batch_profile([Path("bad.jpg"), Path("good.jpg")], provider)

    assert provider.calls == ["bad.jpg", "good.jpg"]
    assert profile.sample_count == 1
    assert profile.avg_exposure == 90.0
    assert profile.avg_color_temp_ratio == pytest.approx(0.8)


def test_learn_batch_profile_none_without_readable_samples():
    provider = _MappedProvider({})
    assert batch_learning.learn_batch_profile([Path("x.jpg")], provider) is None
    assert batch_learning.learn_batch_profile([], provider) is None


def test_learn_batch_profile_limits_sample_size():
    names = [f"{index}.jpg" for index in range(30)]
    provider = _MappedProvider({name: {"mean_brightness": 100.0, "red_mean": 1, "blue_mean": 1} for name in names})

    profile = batch_learning.learn_batch_profile([Path(name) for name in names], provider, sample_size=5)

    assert profile.sample_count == 5
    assert len(provider.calls) == 5
