"""Typed transform stages and the fixed-order pipeline builder.

The builder turns resolved :class:`CorrectionParameters` into an ordered tuple
of stage records for the transform engine. The order is fixed; a stage is only
ever omitted (when its parameter equals the no-op value), never moved. Every
numeric parameter is rounded to four decimals so identical parameters always
serialize to identical bytes.

Stage order
-----------

WhiteBalance, Tint, AutoLevelGamma, HighlightRecovery, ShadowRecovery,
Contrast, Clarity, Modulate, Vibrance, NoiseReduction, Sharpen, Resize,
Watermark, Encode, WebDerivative, MetadataCopy
"""
from __future__ import annotations

import dataclasses
import enum
import json
import logging
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from .adjustments import CorrectionParameters

LOGGER = logging.getLogger("photo_batch_corrector")

OUTPUT_FORMATS: Dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "tif": "TIFF",
    "tiff": "TIFF",
}
WATERMARK_POSITIONS = ("topleft", "topright", "bottomleft", "bottomright", "center")


class StageKind(enum.IntEnum):
    WHITE_BALANCE = 0
    TINT = 1
    AUTO_LEVEL_GAMMA = 2
    HIGHLIGHT_RECOVERY = 3
    SHADOW_RECOVERY = 4
    CONTRAST = 5
    CLARITY = 6
    MODULATE = 7
    VIBRANCE = 8
    NOISE_REDUCTION = 9
    SHARPEN = 10
    RESIZE = 11
    WATERMARK = 12
    ENCODE = 13
    WEB_DERIVATIVE = 14
    METADATA_COPY = 15


def _r(value: float) -> float:
    return round(float(value), 4)


@dataclasses.dataclass(frozen=True)
class WhiteBalance:
    kind: ClassVar[StageKind] = StageKind.WHITE_BALANCE
    temperature: float
    red_multiplier: float
    blue_multiplier: float


@dataclasses.dataclass(frozen=True)
class Tint:
    kind: ClassVar[StageKind] = StageKind.TINT
    tint: float
    green_multiplier: float


@dataclasses.dataclass(frozen=True)
class AutoLevelGamma:
    kind: ClassVar[StageKind] = StageKind.AUTO_LEVEL_GAMMA


@dataclasses.dataclass(frozen=True)
class HighlightRecovery:
    kind: ClassVar[StageKind] = StageKind.HIGHLIGHT_RECOVERY
    highlights: float
    white_point_pct: float


@dataclasses.dataclass(frozen=True)
class ShadowRecovery:
    kind: ClassVar[StageKind] = StageKind.SHADOW_RECOVERY
    shadows: float
    gamma: float


@dataclasses.dataclass(frozen=True)
class Contrast:
    kind: ClassVar[StageKind] = StageKind.CONTRAST
    contrast: float
    strength: float
    increase: bool
    midpoint_pct: float = 50.0


@dataclasses.dataclass(frozen=True)
class Clarity:
    """Positive clarity is a large-radius unsharp mask, negative a Gaussian blur."""

    kind: ClassVar[StageKind] = StageKind.CLARITY
    clarity: float
    amount: float
    blur_radius: float
    radius: float = 50.0
    sigma: float = 30.0
    threshold: float = 0.02


@dataclasses.dataclass(frozen=True)
class Modulate:
    kind: ClassVar[StageKind] = StageKind.MODULATE
    brightness: float
    saturation: float
    hue: float
    batch_adjustment: Optional[float] = None


@dataclasses.dataclass(frozen=True)
class Vibrance:
    kind: ClassVar[StageKind] = StageKind.VIBRANCE
    vibrance: float
    factor: float


class NoiseMethod(str, enum.Enum):
    DESPECKLE = "despeckle"
    DOUBLE_DESPECKLE = "double_despeckle"
    BLUR_RESHARPEN = "blur_resharpen"


@dataclasses.dataclass(frozen=True)
class NoiseReduction:
    kind: ClassVar[StageKind] = StageKind.NOISE_REDUCTION
    strength: float
    method: NoiseMethod
    blur_radius: float = 0.0
    resharpen_sigma: float = 0.0


@dataclasses.dataclass(frozen=True)
class Sharpen:
    kind: ClassVar[StageKind] = StageKind.SHARPEN
    amount: float
    radius: float = 0.5
    sigma: float = 0.5
    threshold: float = 0.05


@dataclasses.dataclass(frozen=True)
class Resize:
    """Either fit inside ``max_dimension`` (never enlarging) or scale by ``percent``."""

    kind: ClassVar[StageKind] = StageKind.RESIZE
    max_dimension: Optional[int] = None
    percent: Optional[float] = None


@dataclasses.dataclass(frozen=True)
class Watermark:
    kind: ClassVar[StageKind] = StageKind.WATERMARK
    text: str
    position: str
    opacity: float
    point_size: int = 36
    margin: int = 20


@dataclasses.dataclass(frozen=True)
class Encode:
    kind: ClassVar[StageKind] = StageKind.ENCODE
    format: str
    quality: int


@dataclasses.dataclass(frozen=True)
class WebDerivative:
    kind: ClassVar[StageKind] = StageKind.WEB_DERIVATIVE
    max_size: int
    quality: int
    suffix: str = "_web"


@dataclasses.dataclass(frozen=True)
class MetadataCopy:
    kind: ClassVar[StageKind] = StageKind.METADATA_COPY


PipelineStage = Union[
    WhiteBalance,
    Tint,
    AutoLevelGamma,
    HighlightRecovery,
    ShadowRecovery,
    Contrast,
    Clarity,
    Modulate,
    Vibrance,
    NoiseReduction,
    Sharpen,
    Resize,
    Watermark,
    Encode,
    WebDerivative,
    MetadataCopy,
]


def parse_resize(value: Optional[str]) -> Optional[Resize]:
    """Parse ``"2000"`` (max dimension) or ``"50%"`` (scale) into a Resize stage.

    Raises:
        ValueError: If the value is not a positive size or percentage.
    """
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip()
    try:
        if text.endswith("%"):
            percent = float(text[:-1])
            if percent <= 0:
                raise ValueError
            return Resize(percent=_r(percent))
        dimension = int(text)
        if dimension <= 0:
            raise ValueError
        return Resize(max_dimension=dimension)
    except ValueError:
        raise ValueError(f"Invalid resize value {value!r}; use pixels (2000) or percent (50%)") from None


@dataclasses.dataclass(frozen=True)
class OutputOptions:
    """Output-side settings that do not depend on the image content."""

    format: str = "jpg"
    quality: int = 100
    resize: Optional[str] = None
    watermark_text: str = ""
    watermark_position: str = "bottomright"
    watermark_opacity: float = 50
    web_version: bool = False
    web_size: int = 1200
    web_quality: int = 85
    copy_metadata: bool = True
    hue: float = 100

    def __post_init__(self) -> None:
        if self.format.lower() not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format {self.format!r}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"quality must be between 1 and 100, got {self.quality}")
        if not 1 <= self.web_quality <= 100:
            raise ValueError(f"web_quality must be between 1 and 100, got {self.web_quality}")
        if self.web_size <= 0:
            raise ValueError("web_size must be a positive number of pixels")
        if self.watermark_position not in WATERMARK_POSITIONS:
            raise ValueError(f"Unknown watermark position {self.watermark_position!r}")
        if not 0 <= self.watermark_opacity <= 100:
            raise ValueError("watermark_opacity must be between 0 and 100")
        parse_resize(self.resize)

    @property
    def extension(self) -> str:
        return self.format.lower()

    @property
    def pillow_format(self) -> str:
        return OUTPUT_FORMATS[self.extension]


def white_balance_stage(temperature: float) -> Optional[WhiteBalance]:
    if temperature == 0:
        return None
    shift = abs(temperature) / 400.0
    if temperature > 0:
        return WhiteBalance(_r(temperature), _r(1 + shift), _r(1 - shift))
    return WhiteBalance(_r(temperature), _r(1 - shift), _r(1 + shift))


def tint_stage(tint: float) -> Optional[Tint]:
    if tint == 0:
        return None
    shift = abs(tint) / 500.0
    multiplier = 1 - shift if tint > 0 else 1 + shift
    return Tint(_r(tint), _r(multiplier))


def highlight_stage(highlights: float) -> Optional[HighlightRecovery]:
    if highlights == 0:
        return None
    if highlights < 0:
        white_point = 100 - abs(highlights) / 2
    else:
        white_point = 100 + highlights / 4
    return HighlightRecovery(_r(highlights), _r(white_point))


def shadow_stage(shadows: float) -> Optional[ShadowRecovery]:
    if shadows == 0:
        return None
    if shadows > 0:
        gamma = 1 + shadows / 100
    else:
        gamma = 1 - abs(shadows) / 200
    return ShadowRecovery(_r(shadows), _r(gamma))


def contrast_stage(contrast: float) -> Optional[Contrast]:
    if contrast == 0:
        return None
    return Contrast(_r(contrast), _r(abs(contrast) / 10), contrast > 0)


def clarity_stage(clarity: float) -> Optional[Clarity]:
    if clarity == 0:
        return None
    if clarity > 0:
        return Clarity(_r(clarity), amount=_r(clarity / 50), blur_radius=0.0)
    return Clarity(_r(clarity), amount=0.0, blur_radius=_r(abs(clarity) / 25))


def modulate_stage(
    brightness: float, saturation: float, hue: float, batch_adjustment: Optional[float]
) -> Optional[Modulate]:
    if brightness == 100 and saturation == 100 and hue == 100:
        return None
    adjustment = None if batch_adjustment is None else _r(batch_adjustment)
    return Modulate(_r(brightness), _r(saturation), _r(hue), adjustment)


def vibrance_stage(vibrance: float) -> Optional[Vibrance]:
    if vibrance <= 0:
        return None
    return Vibrance(_r(vibrance), _r(1 + vibrance / 200))


def noise_stage(strength: float) -> Optional[NoiseReduction]:
    if strength <= 0:
        return None
    if strength < 30:
        return NoiseReduction(_r(strength), NoiseMethod.DESPECKLE)
    if strength < 60:
        return NoiseReduction(_r(strength), NoiseMethod.DOUBLE_DESPECKLE)
    return NoiseReduction(
        _r(strength), NoiseMethod.BLUR_RESHARPEN, blur_radius=_r(strength / 50), resharpen_sigma=0.5
    )


def sharpen_stage(amount: float) -> Optional[Sharpen]:
    if amount <= 0:
        return None
    return Sharpen(_r(amount))


def build_pipeline(
    parameters: CorrectionParameters,
    options: Optional[OutputOptions] = None,
    *,
    apply_enhancements: bool = True,
) -> Tuple[PipelineStage, ...]:
    """Convert resolved parameters into the fixed-order stage list.

    Args:
        parameters: Resolved and clamped correction parameters.
        options: Output settings (format, resize, watermark, web copy).
        apply_enhancements: ``False`` produces a straight conversion (resize,
            encode, metadata only).

    Returns:
        Stages in canonical order with no-op stages omitted.
    """
    options = options or OutputOptions()
    stages: List[Optional[PipelineStage]] = []
    if apply_enhancements:
        stages.extend(
            [
                white_balance_stage(parameters.value("temperature")),
                tint_stage(parameters.value("tint")),
                AutoLevelGamma(),
                highlight_stage(parameters.value("highlights")),
                shadow_stage(parameters.value("shadows")),
                contrast_stage(parameters.value("contrast")),
                clarity_stage(parameters.value("clarity")),
                modulate_stage(
                    parameters.value("brightness"),
                    parameters.value("saturation"),
                    options.hue,
                    parameters.batch_adjustment,
                ),
                vibrance_stage(parameters.value("vibrance")),
                noise_stage(parameters.value("noise_reduction")),
                sharpen_stage(parameters.value("sharpen")),
            ]
        )
    stages.append(parse_resize(options.resize))
    if apply_enhancements and options.watermark_text:
        stages.append(
            Watermark(options.watermark_text, options.watermark_position, _r(options.watermark_opacity))
        )
    stages.append(Encode(options.pillow_format, int(options.quality)))
    if apply_enhancements and options.web_version:
        stages.append(WebDerivative(int(options.web_size), int(options.web_quality)))
    if options.copy_metadata:
        stages.append(MetadataCopy())

    pipeline = tuple(stage for stage in stages if stage is not None)
    LOGGER.debug("Built pipeline: %s", ", ".join(stage.kind.name for stage in pipeline))
    return pipeline


def is_canonical_order(stages: Sequence[PipelineStage]) -> bool:
    """Return ``True`` when stage kinds appear in strictly increasing canonical order."""
    kinds = [stage.kind for stage in stages]
    return all(earlier < later for earlier, later in zip(kinds, kinds[1:]))


def stage_to_dict(stage: PipelineStage) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"stage": stage.kind.name.lower()}
    for field in dataclasses.fields(stage):
        value = getattr(stage, field.name)
        payload[field.name] = value.value if isinstance(value, enum.Enum) else value
    return payload


def pipeline_to_json(stages: Sequence[PipelineStage]) -> str:
    """Serialize *stages* deterministically for audit logs and dry runs."""
    return json.dumps([stage_to_dict(stage) for stage in stages], sort_keys=True, separators=(",", ":"))


__all__ = [
    "AutoLevelGamma",
    "Clarity",
    "Contrast",
    "Encode",
    "HighlightRecovery",
    "MetadataCopy",
    "Modulate",
    "NoiseMethod",
    "NoiseReduction",
    "OUTPUT_FORMATS",
    "OutputOptions",
    "PipelineStage",
    "Resize",
    "ShadowRecovery",
    "Sharpen",
    "StageKind",
    "Tint",
    "Vibrance",
    "WATERMARK_POSITIONS",
    "Watermark",
    "WebDerivative",
    "WhiteBalance",
    "build_pipeline",
    "is_canonical_order",
    "parse_resize",
    "pipeline_to_json",
    "stage_to_dict",
]
