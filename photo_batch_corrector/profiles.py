"""Processing profiles tuning the heuristic thresholds used during analysis.

Profiles do not change *what* the engine does, only how eagerly it reacts to
the measured signals:

- **standard**: documented default thresholds (cast threshold 8, blur threshold 100)
- **sensitive**: reacts to faint color casts and softer blur, stronger batch pull
- **conservative**: only corrects pronounced problems, weaker batch pull

Example Usage
-------------

    from photo_batch_corrector import PROCESSING_PROFILES

    profile = PROCESSING_PROFILES["sensitive"]
    profile.cast_strength(6.0)  # Returns 12.0 (deviation * 2, below the cap)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ProcessingProfile:
    """Thresholds and toggles consumed by the classifiers and the synthesizer.

    Attributes:
        name: Profile identifier.
        cast_threshold: Minimum channel deviation (0-255 units) that counts as a color cast.
        cast_strength_cap: Upper bound for color cast correction strength, in percent.
        backlight_strength: Base recovery strength applied to fully backlit frames.
        blur_threshold: Laplacian variance below which a frame is considered soft.
        sharp_threshold: Laplacian variance above which a frame is considered very sharp.
        batch_strength: Percentage of the batch delta applied as a consistency nudge.
        adaptive_noise: Derive noise reduction from ISO when nothing else sets it.
        adaptive_sharpen: Scale the default sharpen amount by measured sharpness.
        weather_adaptive: Let weather suggestions nudge contrast and saturation.
        mood_adaptive: Let mood suggestions nudge contrast and saturation.
        analysis_long_edge: Long edge (pixels) images are reduced to before measuring.
    """

    name: str
    cast_threshold: float = 8.0
    cast_strength_cap: float = 60.0
    backlight_strength: float = 40.0
    blur_threshold: float = 100.0
    sharp_threshold: float = 200.0
    batch_strength: float = 50.0
    adaptive_noise: bool = True
    adaptive_sharpen: bool = True
    weather_adaptive: bool = False
    mood_adaptive: bool = False
    analysis_long_edge: int = 1024

    def cast_strength(self, deviation: float) -> float:
        """Return correction strength for a color cast of *deviation* units.

        Args:
            deviation: Largest absolute channel deviation from the channel average.

        Returns:
            Strength in percent, proportional to the deviation and capped by the profile.
        """
        return min(abs(deviation) * 2.0, self.cast_strength_cap)

    def backlight_recovery(self, severity: float) -> float:
        """Scale the profile's base recovery strength by backlight *severity* (0-100)."""
        return round(severity / 100.0 * self.backlight_strength, 2)


DEFAULT_PROFILE_NAME = "standard"

PROCESSING_PROFILES: Dict[str, ProcessingProfile] = {
    "standard": ProcessingProfile(name="standard"),
    "sensitive": ProcessingProfile(
        name="sensitive",
        cast_threshold=2.5,
        cast_strength_cap=80.0,
        backlight_strength=55.0,
        blur_threshold=150.0,
        batch_strength=70.0,
        weather_adaptive=True,
        mood_adaptive=True,
    ),
    "conservative": ProcessingProfile(
        name="conservative",
        cast_threshold=12.0,
        cast_strength_cap=40.0,
        backlight_strength=25.0,
        blur_threshold=60.0,
        batch_strength=30.0,
        adaptive_sharpen=False,
    ),
}


__all__ = [
    "DEFAULT_PROFILE_NAME",
    "PROCESSING_PROFILES",
    "ProcessingProfile",
]
