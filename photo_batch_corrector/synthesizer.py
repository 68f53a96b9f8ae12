"""Resolve CorrectionParameters from manual, preset, calculated, and adaptive inputs.

Resolution is pure: the same signal, classification, settings, and batch
profile always produce the same parameters. Each field is resolved
independently by choosing the highest-precedence candidate present:

    Manual > Preset > BatchLearned > Calculated > Adaptive > Default

Batch-learned, calculated, and adaptive values all derive from the measured
signal; the fixed order among them only breaks ties inside that tier.
"""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Tuple

from .adjustments import (
    DEFAULTS,
    FIELD_NAMES,
    AdjustmentSettings,
    CorrectionParameters,
    ResolvedValue,
    Source,
    clamp,
)
from .batch_learning import BatchProfile
from .classifiers import CastKind, Classification, Exposure
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .signals import ImageSignal

LOGGER = logging.getLogger("photo_batch_corrector")

PRECEDENCE: Tuple[Source, ...] = (
    Source.MANUAL,
    Source.PRESET,
    Source.BATCH_LEARNED,
    Source.CALCULATED,
    Source.ADAPTIVE,
    Source.DEFAULT,
)

NOISE_STEPS: Tuple[Tuple[int, int], ...] = (
    (400, 0),
    (800, 10),
    (1600, 25),
    (3200, 40),
    (6400, 55),
    (12800, 70),
)
NOISE_CEILING = 85

BRIGHTNESS_CAP = 130
BRIGHTNESS_FLOOR = 80
HIGHLIGHTS_FLOOR = -50
SHADOWS_CAP = 40
CAST_TEMPERATURE = 15
CAST_TINT = 10
SHARPEN_BOOST_CAP = 1.0

BATCH_EXPOSURE_THRESHOLD = 2.0
BATCH_RATIO_THRESHOLD = 0.05


def calculate_corrections(signal: ImageSignal, classification: Classification) -> Dict[str, float]:
    """Per-image recommendations; only fields whose rule fired are returned.

    Args:
        signal: Measured image signal.
        classification: Classifier outputs for the same signal.

    Returns:
        Mapping of correction field name to calculated value.
    """
    calculated: Dict[str, float] = {}
    mean = signal.mean_brightness

    if classification.exposure is Exposure.UNDEREXPOSED:
        calculated["brightness"] = min(round(100 + (127 - mean) / 3), BRIGHTNESS_CAP)
    elif classification.exposure is Exposure.OVEREXPOSED:
        calculated["brightness"] = max(round(100 - (mean - 127) / 4), BRIGHTNESS_FLOOR)

    std = signal.std_dev
    if std < 40:
        calculated["contrast"] = round((50 - std) / 2)
    elif std > 70:
        calculated["contrast"] = round((std - 70) / -3)

    if signal.highlight_clip_pct > 2:
        calculated["highlights"] = max(round(-1 * signal.highlight_clip_pct * 3), HIGHLIGHTS_FLOOR)

    if signal.shadow_clip_pct > 2:
        calculated["shadows"] = min(round(signal.shadow_clip_pct * 2), SHADOWS_CAP)

    cast = classification.color_cast.kind
    if cast is CastKind.WARM:
        calculated["temperature"] = -CAST_TEMPERATURE
    elif cast is CastKind.COOL:
        calculated["temperature"] = CAST_TEMPERATURE
    elif cast is CastKind.GREEN:
        calculated["tint"] = CAST_TINT
    elif cast is CastKind.MAGENTA:
        calculated["tint"] = -CAST_TINT

    return calculated


def scene_corrections(classification: Classification) -> Dict[str, float]:
    """Calculated values contributed by the scene type."""
    adjustment = classification.scene.adjustment
    values: Dict[str, float] = {}
    for name in ("contrast", "shadows", "temperature", "vibrance", "clarity"):
        value = getattr(adjustment, name)
        if value:
            values[name] = value
    if adjustment.saturation is not None:
        values["saturation"] = adjustment.saturation
    return values


def adaptive_noise_reduction(iso: int) -> int:
    """Map ISO to a noise reduction strength with a monotonic step function."""
    for ceiling, strength in NOISE_STEPS:
        if iso <= ceiling:
            return strength
    return NOISE_CEILING


def adaptive_sharpen(base: float, variance: float, profile: ProcessingProfile) -> float:
    """Boost sharpening for soft frames and ease it off for very sharp ones."""
    if variance < profile.blur_threshold:
        return round(min(base * 1.5, SHARPEN_BOOST_CAP), 4)
    if variance > profile.sharp_threshold:
        return round(base * 0.7, 4)
    return base


def batch_nudges(
    signal: ImageSignal, batch: BatchProfile, strength: float
) -> Tuple[Optional[float], Optional[float]]:
    """Return (brightness, temperature) nudges toward the batch average.

    A nudge is ``None`` when the image is already within the no-op threshold.
    """
    brightness = None
    delta = batch.avg_exposure - signal.mean_brightness
    if abs(delta) > BATCH_EXPOSURE_THRESHOLD:
        brightness = round(delta * strength / 100.0, 2)

    temperature = None
    ratio_delta = batch.avg_color_temp_ratio - signal.red_blue_ratio
    if abs(ratio_delta) > BATCH_RATIO_THRESHOLD:
        temperature = round(ratio_delta * 100.0 * strength / 100.0, 2)
    return brightness, temperature


def resolve_field(name: str, candidates: Mapping[Source, float]) -> ResolvedValue:
    """Pick the highest-precedence candidate for *name* and clamp it.

    Args:
        name: Correction field name.
        candidates: Candidate values keyed by the source that produced them.

    Returns:
        The clamped value tagged with its source, or the default when empty.
    """
    for source in PRECEDENCE:
        if source in candidates:
            return ResolvedValue(clamp(name, candidates[source]), source)
    return ResolvedValue(clamp(name, DEFAULTS[name]), Source.DEFAULT)


def _apply_nudge(name: str, field: Dict[Source, float], nudge: Optional[float]) -> Optional[float]:
    # Explicit user and preset values are never nudged.
    if nudge is None or Source.MANUAL in field or Source.PRESET in field:
        return None
    base = resolve_field(name, field).value
    field[Source.BATCH_LEARNED] = round(base + nudge, 2)
    return nudge


def _weather_mood_candidates(
    classification: Classification, profile: ProcessingProfile
) -> Dict[str, float]:
    suggestions = []
    if profile.weather_adaptive:
        suggestions.append(classification.weather.suggestion)
    if profile.mood_adaptive:
        suggestions.append(classification.mood.suggestion)
    if not suggestions:
        return {}

    brightness = 100.0
    saturation = float(DEFAULTS["saturation"])
    contrast = 0.0
    for suggestion in suggestions:
        brightness *= suggestion.brightness / 100.0
        saturation *= suggestion.saturation / 100.0
        contrast += suggestion.contrast

    values: Dict[str, float] = {}
    if round(brightness) != 100:
        values["brightness"] = round(brightness)
    if round(saturation) != DEFAULTS["saturation"]:
        values["saturation"] = round(saturation)
    if contrast:
        values["contrast"] = contrast
    return values


def synthesize(
    signal: Optional[ImageSignal],
    classification: Optional[Classification],
    *,
    manual: Optional[AdjustmentSettings] = None,
    preset: Optional[AdjustmentSettings] = None,
    profile: Optional[ProcessingProfile] = None,
    batch: Optional[BatchProfile] = None,
    intelligent: bool = True,
) -> CorrectionParameters:
    """Resolve every correction field by precedence and clamp it to its range.

    Args:
        signal: Measured signal, or ``None`` when analysis is disabled.
        classification: Classifier outputs for *signal*.
        manual: Explicit user values.
        preset: Values defined by the active preset.
        profile: Thresholds and adaptive toggles.
        batch: Batch profile for consistency nudges, ``None`` to skip.
        intelligent: Whether per-image calculated values participate.

    Returns:
        Fully resolved parameters with per-field sources.
    """
    profile = profile or PROCESSING_PROFILES[DEFAULT_PROFILE_NAME]
    manual_values = manual.provided() if manual is not None else {}
    preset_values = preset.provided() if preset is not None else {}

    candidates: Dict[str, Dict[Source, float]] = {name: {} for name in FIELD_NAMES}
    for name, value in manual_values.items():
        candidates[name][Source.MANUAL] = value
    for name, value in preset_values.items():
        candidates[name][Source.PRESET] = value

    brightness_nudge: Optional[float] = None
    if signal is not None and classification is not None:
        if intelligent:
            calculated = scene_corrections(classification)
            calculated.update(calculate_corrections(signal, classification))
            if classification.backlight.backlit:
                # Recovery stacks on top of whatever shadow lift the formulas chose.
                calculated["shadows"] = calculated.get("shadows", 0) + round(classification.backlight.recovery)
            for name, value in calculated.items():
                candidates[name][Source.CALCULATED] = value

        for name, value in _weather_mood_candidates(classification, profile).items():
            candidates[name][Source.ADAPTIVE] = value

        if profile.adaptive_noise and signal.exif.iso > 0:
            step = adaptive_noise_reduction(signal.exif.iso)
            if step > 0:
                candidates["noise_reduction"][Source.ADAPTIVE] = step

        if profile.adaptive_sharpen:
            base = DEFAULTS["sharpen"]
            adapted = adaptive_sharpen(base, signal.sharpness_variance, profile)
            if adapted != base:
                candidates["sharpen"][Source.ADAPTIVE] = adapted

        if batch is not None:
            brightness_nudge, temperature_nudge = batch_nudges(signal, batch, profile.batch_strength)
            brightness_nudge = _apply_nudge("brightness", candidates["brightness"], brightness_nudge)
            _apply_nudge("temperature", candidates["temperature"], temperature_nudge)

    resolved = {name: resolve_field(name, candidates[name]) for name in FIELD_NAMES}
    parameters = CorrectionParameters(batch_adjustment=brightness_nudge, **resolved)
    LOGGER.debug(
        "Resolved parameters: %s",
        {name: (value.value, value.source.value) for name, value in resolved.items()},
    )
    return parameters


__all__ = [
    "BATCH_EXPOSURE_THRESHOLD",
    "BATCH_RATIO_THRESHOLD",
    "NOISE_STEPS",
    "PRECEDENCE",
    "adaptive_noise_reduction",
    "adaptive_sharpen",
    "batch_nudges",
    "calculate_corrections",
    "resolve_field",
    "scene_corrections",
    "synthesize",
]
