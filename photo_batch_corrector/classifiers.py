"""Heuristic classifiers mapping an ImageSignal to categorical judgements.

Every classifier is a pure function evaluating its branches in a fixed
priority order; the first matching branch wins. Confidences are fixed per
branch. The heuristics are best-effort proxies (skin-colored pixels stand in
for faces, channel ratios for lighting) and are not validated against ground
truth.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Optional

from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .signals import ImageSignal

LOGGER = logging.getLogger("photo_batch_corrector")

UNDEREXPOSED_BELOW = 80.0
OVEREXPOSED_ABOVE = 180.0
FACE_CENTER_SKIN_PCT = 25.0
FACE_TOTAL_SKIN_PCT = 8.0
BACKLIGHT_DELTA = 30.0


class Exposure(enum.Enum):
    UNDEREXPOSED = "underexposed"
    NORMAL = "normal"
    OVEREXPOSED = "overexposed"


class Scene(enum.Enum):
    NIGHT = "night"
    MACRO = "macro"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    INDOOR = "indoor"
    UNKNOWN = "unknown"


class Weather(enum.Enum):
    SUNNY = "sunny"
    CLOUDY = "cloudy"
    OVERCAST = "overcast"
    FOGGY = "foggy"
    SUNSET = "sunset"
    NIGHT = "night"


class CastKind(enum.Enum):
    NONE = "none"
    WARM = "warm"
    COOL = "cool"
    GREEN = "green"
    MAGENTA = "magenta"


class Light(enum.Enum):
    NONE = "none"
    GOLDEN_HOUR = "golden_hour"
    BLUE_HOUR = "blue_hour"


class Mood(enum.Enum):
    DRAMATIC = "dramatic"
    PEACEFUL = "peaceful"
    ENERGETIC = "energetic"
    ROMANTIC = "romantic"
    MYSTERIOUS = "mysterious"
    HAPPY = "happy"
    SAD = "sad"
    NEUTRAL = "neutral"


@dataclasses.dataclass(frozen=True)
class SceneAdjustment:
    """Calculated nudges a scene contributes when nothing more specific applies."""

    contrast: float = 0
    shadows: float = 0
    temperature: float = 0
    saturation: Optional[float] = None
    vibrance: float = 0
    clarity: float = 0


@dataclasses.dataclass(frozen=True)
class SceneResult:
    scene: Scene
    confidence: int
    adjustment: SceneAdjustment


@dataclasses.dataclass(frozen=True)
class ModulateSuggestion:
    """Suggested modulate/contrast change; percentages use 100 as neutral."""

    brightness: float = 100
    contrast: float = 0
    saturation: float = 100


@dataclasses.dataclass(frozen=True)
class WeatherResult:
    weather: Weather
    confidence: int
    suggestion: ModulateSuggestion


@dataclasses.dataclass(frozen=True)
class ColorCast:
    kind: CastKind
    deviation: float
    strength: float

    @property
    def detected(self) -> bool:
        return self.kind is not CastKind.NONE


@dataclasses.dataclass(frozen=True)
class LightResult:
    light: Light
    red_green: float
    red_blue: float
    blue_green: float


@dataclasses.dataclass(frozen=True)
class Backlight:
    backlit: bool
    severity: float
    recovery: float


@dataclasses.dataclass(frozen=True)
class MoodResult:
    mood: Mood
    confidence: int
    suggestion: ModulateSuggestion


@dataclasses.dataclass(frozen=True)
class QualityScore:
    technical: int
    aesthetic: int
    overall: float


@dataclasses.dataclass(frozen=True)
class Classification:
    """All classifier outputs for one signal; each sub-record is independent."""

    exposure: Exposure
    scene: SceneResult
    weather: WeatherResult
    color_cast: ColorCast
    light: LightResult
    backlight: Backlight
    mood: MoodResult
    quality: QualityScore
    face_detected: bool


SCENE_ADJUSTMENTS = {
    Scene.NIGHT: SceneAdjustment(contrast=-5, shadows=15),
    Scene.MACRO: SceneAdjustment(clarity=10, vibrance=10),
    Scene.PORTRAIT: SceneAdjustment(contrast=-5, clarity=-10, vibrance=10),
    Scene.LANDSCAPE: SceneAdjustment(contrast=5, vibrance=20, clarity=15),
    Scene.INDOOR: SceneAdjustment(shadows=10, temperature=-5),
    Scene.UNKNOWN: SceneAdjustment(),
}


def _ratio(numerator: float, denominator: float) -> float:
    return round(numerator / denominator, 4) if denominator > 0 else 0.0


def classify_exposure(signal: ImageSignal) -> Exposure:
    if signal.mean_brightness < UNDEREXPOSED_BELOW:
        return Exposure.UNDEREXPOSED
    if signal.mean_brightness > OVEREXPOSED_ABOVE:
        return Exposure.OVEREXPOSED
    return Exposure.NORMAL


def detect_face(signal: ImageSignal) -> bool:
    """Skin-centered proxy for a face; a color-space threshold, not a detector."""
    return (
        signal.center_skin_pct >= FACE_CENTER_SKIN_PCT
        and signal.skin_tone_pct >= FACE_TOTAL_SKIN_PCT
    )


def classify_scene(signal: ImageSignal) -> SceneResult:
    """Classify the scene type; the first matching branch wins.

    Args:
        signal: Measured image signal.

    Returns:
        Scene, fixed branch confidence, and the scene's calculated adjustment.
    """
    mean = signal.mean_brightness
    exif = signal.exif

    def result(scene: Scene, confidence: int) -> SceneResult:
        return SceneResult(scene, confidence, SCENE_ADJUSTMENTS[scene])

    if mean < 60 and (exif.iso > 1600 or mean < 40):
        return result(Scene.NIGHT, 85)
    if 0 < exif.focal_length_mm < 35 and signal.center_detail > 50:
        return result(Scene.MACRO, 80)
    if detect_face(signal):
        return result(Scene.PORTRAIT, 90)
    if signal.aspect_ratio > 1.4 and (
        signal.blue_mean >= signal.green_mean * 0.9 or signal.saturation > 40
    ):
        return result(Scene.LANDSCAPE, 75)
    if signal.green_mean > signal.blue_mean:
        return result(Scene.LANDSCAPE, 65)
    if exif.flash_fired:
        return result(Scene.INDOOR, 70)
    if signal.saturation < 35:
        return result(Scene.INDOOR, 50)
    return result(Scene.UNKNOWN, 25)


def classify_weather(signal: ImageSignal) -> WeatherResult:
    """Estimate the lighting conditions from brightness, spread, and channel ratios."""
    mean = signal.mean_brightness
    std = signal.std_dev
    red_blue = _ratio(signal.red_mean, signal.blue_mean)
    blue_red = _ratio(signal.blue_mean, signal.red_mean)

    if mean < 50:
        return WeatherResult(Weather.NIGHT, 80, ModulateSuggestion(brightness=110, contrast=5))
    if red_blue > 1.25 and mean < 150:
        return WeatherResult(Weather.SUNSET, 75, ModulateSuggestion(contrast=10, saturation=110))
    if std < 30 and mean > 150:
        return WeatherResult(
            Weather.FOGGY, 70, ModulateSuggestion(brightness=95, contrast=20, saturation=105)
        )
    if mean > 160 and std > 50:
        return WeatherResult(
            Weather.SUNNY, 80, ModulateSuggestion(brightness=95, contrast=-5, saturation=105)
        )
    if std < 45 and blue_red >= 1.0:
        return WeatherResult(
            Weather.OVERCAST, 65, ModulateSuggestion(brightness=108, contrast=12, saturation=112)
        )
    if 100 <= mean <= 160 and std < 55:
        return WeatherResult(
            Weather.CLOUDY, 60, ModulateSuggestion(brightness=105, contrast=8, saturation=108)
        )
    return WeatherResult(Weather.SUNNY, 40, ModulateSuggestion())


def detect_color_cast(signal: ImageSignal, profile: ProcessingProfile) -> ColorCast:
    """Classify the dominant color cast by per-channel deviation from the average.

    Args:
        signal: Measured image signal.
        profile: Supplies the deviation threshold and the strength cap.

    Returns:
        Cast kind, the largest absolute deviation, and the correction strength.
    """
    channels = (signal.red_mean, signal.green_mean, signal.blue_mean)
    average = sum(channels) / 3.0
    deviations = [round(value - average, 4) for value in channels]
    index = max(range(3), key=lambda idx: abs(deviations[idx]))
    deviation = deviations[index]

    if abs(deviation) <= profile.cast_threshold:
        return ColorCast(CastKind.NONE, abs(deviation), 0.0)

    if index == 0:
        kind = CastKind.WARM if deviation > 0 else CastKind.COOL
    elif index == 2:
        kind = CastKind.COOL if deviation > 0 else CastKind.WARM
    else:
        kind = CastKind.GREEN if deviation > 0 else CastKind.MAGENTA
    return ColorCast(kind, abs(deviation), profile.cast_strength(deviation))


def detect_golden_blue_hour(signal: ImageSignal) -> LightResult:
    red_green = _ratio(signal.red_mean, signal.green_mean)
    red_blue = _ratio(signal.red_mean, signal.blue_mean)
    blue_green = _ratio(signal.blue_mean, signal.green_mean)
    blue_red = _ratio(signal.blue_mean, signal.red_mean)

    if red_green > 1.1 and red_blue > 1.3:
        light = Light.GOLDEN_HOUR
    elif blue_green > 1.15 and blue_red > 1.2:
        light = Light.BLUE_HOUR
    else:
        light = Light.NONE
    return LightResult(light, red_green, red_blue, blue_green)


def detect_backlight(signal: ImageSignal, profile: ProcessingProfile) -> Backlight:
    """Compare the center cell against the outer ring of the brightness grid."""
    delta = signal.edge_brightness - signal.center_brightness
    if delta <= BACKLIGHT_DELTA:
        return Backlight(False, 0.0, 0.0)
    severity = round(min(max(delta, 0.0), 100.0), 2)
    return Backlight(True, severity, profile.backlight_recovery(severity))


def classify_mood(signal: ImageSignal) -> MoodResult:
    lightness = signal.lightness
    saturation = signal.saturation
    hue = signal.hue
    contrast = signal.std_dev
    warm_hue = hue < 60 or hue >= 300

    if lightness < 35 and contrast > 60:
        return MoodResult(Mood.DRAMATIC, 60, ModulateSuggestion(contrast=10, saturation=95))
    if lightness < 35:
        return MoodResult(Mood.MYSTERIOUS, 60, ModulateSuggestion(brightness=95, saturation=90))
    if saturation < 20 and lightness < 55:
        return MoodResult(Mood.SAD, 60, ModulateSuggestion(contrast=-5, saturation=90))
    if saturation > 55 and contrast > 50:
        return MoodResult(Mood.ENERGETIC, 60, ModulateSuggestion(contrast=8, saturation=110))
    if warm_hue and lightness > 55 and saturation < 45:
        return MoodResult(Mood.ROMANTIC, 60, ModulateSuggestion(brightness=103, contrast=-5))
    if lightness > 55 and saturation >= 35:
        return MoodResult(Mood.HAPPY, 60, ModulateSuggestion(brightness=103, saturation=105))
    if contrast < 45 and saturation < 45:
        return MoodResult(Mood.PEACEFUL, 60, ModulateSuggestion(contrast=-5, saturation=98))
    return MoodResult(Mood.NEUTRAL, 40, ModulateSuggestion())


def composition_score(signal: ImageSignal) -> int:
    """Up to 15 points when detail concentrates off-center on rule-of-thirds cells."""
    detail = signal.region_detail
    total = sum(detail)
    if total <= 0:
        return 0
    thirds = sum(detail[idx] for idx in (0, 2, 6, 8)) + detail[4] * 0.5
    share = thirds / total
    return int(round(min(share / 0.5, 1.0) * 15))


def score_quality(
    signal: ImageSignal,
    profile: ProcessingProfile,
    *,
    light: Optional[LightResult] = None,
    face_detected: Optional[bool] = None,
) -> QualityScore:
    """Technical and aesthetic scores, each clamped to [0, 100].

    Args:
        signal: Measured image signal.
        profile: Supplies the blur threshold.
        light: Golden/blue hour result, computed when omitted.
        face_detected: Face proxy result, computed when omitted.

    Returns:
        Technical, aesthetic, and their mean as ``overall``.
    """
    if light is None:
        light = detect_golden_blue_hour(signal)
    if face_detected is None:
        face_detected = detect_face(signal)

    technical = 50
    variance = signal.sharpness_variance
    blurry = variance < profile.blur_threshold
    if variance > 500:
        technical += 20
    elif variance > 200:
        technical += 10
    elif blurry:
        technical -= 15

    if signal.shadow_clip_pct < 1 and signal.highlight_clip_pct < 1:
        technical += 15
    elif signal.shadow_clip_pct > 5 or signal.highlight_clip_pct > 5:
        technical -= 15

    iso = signal.exif.iso
    if iso:
        if iso <= 400:
            technical += 10
        elif iso > 3200:
            technical -= 20
        elif iso > 1600:
            technical -= 10

    if blurry and signal.exif.shutter_speed > 1 / 60:
        technical -= 15

    aesthetic = 50 + composition_score(signal)
    if 25 <= signal.saturation <= 70:
        aesthetic += 10
    if signal.outer_detail > 0 and signal.center_detail >= signal.outer_detail * 1.2:
        aesthetic += 10
    if light.light is not Light.NONE:
        aesthetic += 10
    if face_detected:
        aesthetic += 5

    technical = min(max(technical, 0), 100)
    aesthetic = min(max(aesthetic, 0), 100)
    return QualityScore(technical, aesthetic, (technical + aesthetic) / 2)


def classify(signal: ImageSignal, profile: Optional[ProcessingProfile] = None) -> Classification:
    """Run every classifier once over *signal*."""
    profile = profile or PROCESSING_PROFILES[DEFAULT_PROFILE_NAME]
    face = detect_face(signal)
    light = detect_golden_blue_hour(signal)
    classification = Classification(
        exposure=classify_exposure(signal),
        scene=classify_scene(signal),
        weather=classify_weather(signal),
        color_cast=detect_color_cast(signal, profile),
        light=light,
        backlight=detect_backlight(signal, profile),
        mood=classify_mood(signal),
        quality=score_quality(signal, profile, light=light, face_detected=face),
        face_detected=face,
    )
    LOGGER.debug(
        "Classified scene=%s weather=%s cast=%s mood=%s quality=%.1f",
        classification.scene.scene.value,
        classification.weather.weather.value,
        classification.color_cast.kind.value,
        classification.mood.mood.value,
        classification.quality.overall,
    )
    return classification


__all__ = [
    "Backlight",
    "CastKind",
    "Classification",
    "ColorCast",
    "Exposure",
    "Light",
    "LightResult",
    "ModulateSuggestion",
    "Mood",
    "MoodResult",
    "QualityScore",
    "Scene",
    "SceneAdjustment",
    "SceneResult",
    "Weather",
    "WeatherResult",
    "classify",
    "classify_exposure",
    "classify_mood",
    "classify_scene",
    "classify_weather",
    "composition_score",
    "detect_backlight",
    "detect_color_cast",
    "detect_face",
    "detect_golden_blue_hour",
    "score_quality",
]
