"""Correction knobs, precedence sources, documented ranges, and presets."""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Dict, Mapping, Optional, Tuple

LOGGER = logging.getLogger("photo_batch_corrector")


class Source(enum.Enum):
    """Which input determined a resolved correction value.

    ``rank`` encodes precedence: a higher rank always wins, whatever order the
    candidates were produced in. Calculated, adaptive, and batch-learned values
    share a tier because they are all derived from the measured signal.
    """

    DEFAULT = "default"
    CALCULATED = "calculated"
    ADAPTIVE = "adaptive"
    BATCH_LEARNED = "batch_learned"
    PRESET = "preset"
    MANUAL = "manual"

    @property
    def rank(self) -> int:
        return _SOURCE_RANK[self]


_SOURCE_RANK: Dict[Source, int] = {
    Source.DEFAULT: 0,
    Source.CALCULATED: 1,
    Source.ADAPTIVE: 1,
    Source.BATCH_LEARNED: 1,
    Source.PRESET: 2,
    Source.MANUAL: 3,
}

FIELD_NAMES: Tuple[str, ...] = (
    "brightness",
    "contrast",
    "highlights",
    "shadows",
    "temperature",
    "tint",
    "saturation",
    "vibrance",
    "noise_reduction",
    "sharpen",
    "clarity",
)

RANGES: Dict[str, Tuple[float, float]] = {
    "brightness": (0.0, 200.0),
    "contrast": (-100.0, 100.0),
    "highlights": (-100.0, 100.0),
    "shadows": (-100.0, 100.0),
    "temperature": (-100.0, 100.0),
    "tint": (-100.0, 100.0),
    "saturation": (0.0, 200.0),
    "vibrance": (0.0, 100.0),
    "noise_reduction": (0.0, 100.0),
    "sharpen": (0.0, 2.0),
    "clarity": (-100.0, 100.0),
}

DEFAULTS: Dict[str, float] = {
    "brightness": 100,
    "contrast": 0,
    "highlights": 0,
    "shadows": 0,
    "temperature": 0,
    "tint": 0,
    "saturation": 105,
    "vibrance": 0,
    "noise_reduction": 0,
    "sharpen": 0.5,
    "clarity": 0,
}


def clamp(name: str, value: float) -> float:
    """Clamp *value* to the documented range of correction field *name*."""
    minimum, maximum = RANGES[name]
    clamped = min(max(value, minimum), maximum)
    if clamped != value:
        LOGGER.debug("Clamped %s from %s to %s", name, value, clamped)
    return clamped


@dataclasses.dataclass
class AdjustmentSettings:
    """Explicitly supplied correction values; ``None`` means "not provided".

    Used both for manual overrides and for preset definitions, so an explicit
    ``0`` is distinguishable from an absent value.
    """

    brightness: Optional[float] = None
    contrast: Optional[float] = None
    highlights: Optional[float] = None
    shadows: Optional[float] = None
    temperature: Optional[float] = None
    tint: Optional[float] = None
    saturation: Optional[float] = None
    vibrance: Optional[float] = None
    noise_reduction: Optional[float] = None
    sharpen: Optional[float] = None
    clarity: Optional[float] = None

    def validate(self) -> None:
        """Reject values outside the documented knob ranges.

        Raises:
            ValueError: If any provided value is out of range.
        """
        for name in FIELD_NAMES:
            value = getattr(self, name)
            if value is None:
                continue
            minimum, maximum = RANGES[name]
            if not (minimum <= value <= maximum):
                raise ValueError(f"{name} must be between {minimum:g} and {maximum:g}, got {value}")

    def provided(self) -> Dict[str, float]:
        """Return only the fields that carry an explicit value."""
        return {name: getattr(self, name) for name in FIELD_NAMES if getattr(self, name) is not None}

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[float]]) -> "AdjustmentSettings":
        unknown = set(values) - set(FIELD_NAMES)
        if unknown:
            raise ValueError(f"Unknown correction fields: {', '.join(sorted(unknown))}")
        return cls(**dict(values))


@dataclasses.dataclass(frozen=True)
class Preset:
    """A named look: explicit values plus whether per-image analysis stays on."""

    name: str
    settings: AdjustmentSettings
    intelligent: bool
    description: str = ""


PRESETS: Dict[str, Preset] = {
    "auto": Preset(
        name="auto",
        settings=AdjustmentSettings(),
        intelligent=True,
        description="Intelligent per-image analysis",
    ),
    "portrait": Preset(
        name="portrait",
        settings=AdjustmentSettings(
            contrast=-10,
            highlights=-20,
            shadows=15,
            saturation=95,
            vibrance=20,
            clarity=-15,
            sharpen=0.3,
        ),
        intelligent=True,
        description="Soft, flattering look for portraits",
    ),
    "vivid": Preset(
        name="vivid",
        settings=AdjustmentSettings(
            contrast=20,
            highlights=-10,
            shadows=10,
            saturation=125,
            vibrance=40,
            clarity=25,
            sharpen=0.7,
        ),
        intelligent=False,
        description="Punchy, saturated colors",
    ),
    "soft": Preset(
        name="soft",
        settings=AdjustmentSettings(
            contrast=-15,
            highlights=10,
            shadows=20,
            saturation=85,
            vibrance=0,
            clarity=-25,
            sharpen=0.2,
        ),
        intelligent=False,
        description="Dreamy, muted tones",
    ),
    "bw": Preset(
        name="bw",
        settings=AdjustmentSettings(saturation=0, contrast=15, clarity=20, sharpen=0.6),
        intelligent=True,
        description="Professional black & white",
    ),
    "vintage": Preset(
        name="vintage",
        # vibrance below zero is outside the knob range and resolves to 0
        settings=AdjustmentSettings(
            temperature=25,
            contrast=-5,
            highlights=15,
            shadows=10,
            saturation=90,
            vibrance=-10,
        ),
        intelligent=False,
        description="Warm, faded vintage look",
    ),
    "natural": Preset(
        name="natural",
        settings=AdjustmentSettings(
            contrast=0,
            highlights=0,
            shadows=0,
            saturation=100,
            vibrance=0,
            clarity=0,
            sharpen=0.3,
        ),
        intelligent=False,
        description="Minimal processing, true to life",
    ),
}

DEFAULT_PRESET_NAME = "auto"


@dataclasses.dataclass(frozen=True)
class ResolvedValue:
    """A correction value together with the input that determined it."""

    value: float
    source: Source


@dataclasses.dataclass(frozen=True)
class CorrectionParameters:
    """Fully resolved, clamped correction knobs handed to the pipeline builder."""

    brightness: ResolvedValue
    contrast: ResolvedValue
    highlights: ResolvedValue
    shadows: ResolvedValue
    temperature: ResolvedValue
    tint: ResolvedValue
    saturation: ResolvedValue
    vibrance: ResolvedValue
    noise_reduction: ResolvedValue
    sharpen: ResolvedValue
    clarity: ResolvedValue
    batch_adjustment: Optional[float] = None

    @classmethod
    def defaults(cls) -> "CorrectionParameters":
        return cls(**{name: ResolvedValue(DEFAULTS[name], Source.DEFAULT) for name in FIELD_NAMES})

    def value(self, name: str) -> float:
        return getattr(self, name).value

    def source(self, name: str) -> Source:
        return getattr(self, name).source

    def values(self) -> Dict[str, float]:
        return {name: self.value(name) for name in FIELD_NAMES}

    def sources(self) -> Dict[str, Source]:
        return {name: self.source(name) for name in FIELD_NAMES}


__all__ = [
    "AdjustmentSettings",
    "CorrectionParameters",
    "DEFAULTS",
    "DEFAULT_PRESET_NAME",
    "FIELD_NAMES",
    "PRESETS",
    "Preset",
    "RANGES",
    "ResolvedValue",
    "Source",
    "clamp",
]
