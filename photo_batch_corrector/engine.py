"""Pixel transform engine that executes a built pipeline with numpy and Pillow.

Tone operations (channel multipliers, levels, gamma, sigmoidal contrast,
modulate, vibrance) run on float32 RGB arrays in ``[0, 1]``. Neighbourhood
filters (clarity, despeckle, blur, unsharp mask) go through
:mod:`PIL.ImageFilter`. ``Encode`` and ``WebDerivative`` snapshot the frame at
their position in the pipeline; encoding to bytes happens once every stage
has run so ``MetadataCopy`` can decide what the encoders embed.
"""
from __future__ import annotations

import dataclasses
import io
import logging
import math
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Type

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from .color_math import hsv_to_rgb, luminance, rgb_to_hsv
from .errors import TransformFailure, UnreadableImage
from .stages import (
    AutoLevelGamma,
    Clarity,
    Contrast,
    Encode,
    HighlightRecovery,
    MetadataCopy,
    Modulate,
    NoiseMethod,
    NoiseReduction,
    PipelineStage,
    Resize,
    ShadowRecovery,
    Sharpen,
    Tint,
    Vibrance,
    Watermark,
    WebDerivative,
    WhiteBalance,
)

LOGGER = logging.getLogger("photo_batch_corrector")

EXIF_FORMATS = {"JPEG", "PNG"}
EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "TIFF": "tif"}
TIFF_COMPRESSION = "tiff_lzw"


@dataclasses.dataclass(frozen=True)
class EncodedImage:
    """Encoded bytes for one output of a pipeline run.

    Attributes:
        role: ``"primary"`` for the main output, ``"web"`` for the derivative.
        data: Encoded file contents.
        format: Pillow format name.
        size: Pixel dimensions ``(width, height)``.
        suffix: Filename suffix appended to the output stem.
    """

    role: str
    data: bytes
    format: str
    size: Tuple[int, int]
    suffix: str = ""

    @property
    def extension(self) -> str:
        return EXTENSIONS.get(self.format, self.format.lower())


class TransformEngine(Protocol):
    """Executes pipeline stages in the exact order given."""

    def apply(self, source: Path, stages: Sequence[PipelineStage]) -> List[EncodedImage]:
        ...


@dataclasses.dataclass
class _Snapshot:
    role: str
    image: Image.Image
    format: str
    quality: int
    suffix: str = ""
    progressive: bool = False


def to_image(arr: np.ndarray) -> Image.Image:
    data = np.round(np.clip(arr, 0.0, 1.0) * 255.0).astype(np.uint8)
    return Image.fromarray(data)


def to_array(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0


def white_balance(arr: np.ndarray, stage: WhiteBalance) -> np.ndarray:
    out = arr.copy()
    out[:, :, 0] *= stage.red_multiplier
    out[:, :, 2] *= stage.blue_multiplier
    return np.clip(out, 0.0, 1.0)


def tint(arr: np.ndarray, stage: Tint) -> np.ndarray:
    out = arr.copy()
    out[:, :, 1] *= stage.green_multiplier
    return np.clip(out, 0.0, 1.0)


def auto_level_gamma(arr: np.ndarray) -> np.ndarray:
    """Stretch to the full range, then pick a gamma that centres mean luminance."""
    low = float(arr.min())
    high = float(arr.max())
    if high - low > 1e-6:
        arr = (arr - low) / (high - low)
    mean = float(np.mean(luminance(arr)))
    if 1e-4 < mean < 1.0 - 1e-4:
        exponent = math.log(0.5) / math.log(mean)
        arr = np.power(np.clip(arr, 0.0, 1.0), exponent)
    return np.clip(arr, 0.0, 1.0).astype(np.float32)


def highlight_recovery(arr: np.ndarray, stage: HighlightRecovery) -> np.ndarray:
    white = stage.white_point_pct / 100.0
    if white <= 0:
        raise ValueError(f"white point must be positive, got {stage.white_point_pct}")
    return np.clip(arr / white, 0.0, 1.0)


def shadow_recovery(arr: np.ndarray, stage: ShadowRecovery) -> np.ndarray:
    if stage.gamma <= 0:
        raise ValueError(f"gamma must be positive, got {stage.gamma}")
    return np.power(np.clip(arr, 0.0, 1.0), 1.0 / stage.gamma).astype(np.float32)


def sigmoidal_contrast(arr: np.ndarray, stage: Contrast) -> np.ndarray:
    """Sigmoidal contrast around the midpoint, or its inverse when decreasing."""
    alpha = stage.strength
    if alpha < 1e-4:
        return arr
    beta = stage.midpoint_pct / 100.0

    def sig(x):
        return 1.0 / (1.0 + np.exp(-x))

    low = sig(-alpha * beta)
    high = sig(alpha * (1.0 - beta))
    if stage.increase:
        out = (sig(alpha * (arr - beta)) - low) / (high - low)
    else:
        scaled = np.clip(arr * (high - low) + low, 1e-6, 1.0 - 1e-6)
        out = beta - np.log(1.0 / scaled - 1.0) / alpha
    return np.clip(out, 0.0, 1.0).astype(np.float32)


def clarity(image: Image.Image, stage: Clarity) -> Image.Image:
    if stage.amount > 0:
        return image.filter(
            ImageFilter.UnsharpMask(
                radius=stage.sigma,
                percent=int(round(stage.amount * 100)),
                threshold=int(round(stage.threshold * 255)),
            )
        )
    if stage.blur_radius > 0:
        return image.filter(ImageFilter.GaussianBlur(radius=stage.blur_radius))
    return image


def modulate(arr: np.ndarray, stage: Modulate) -> np.ndarray:
    hsv = rgb_to_hsv(arr)
    hsv[..., 0] = (hsv[..., 0] + (stage.hue - 100.0) / 200.0) % 1.0
    hsv[..., 1] = np.clip(hsv[..., 1] * stage.saturation / 100.0, 0.0, 1.0)
    hsv[..., 2] = np.clip(hsv[..., 2] * stage.brightness / 100.0, 0.0, 1.0)
    return hsv_to_rgb(hsv)


def vibrance(arr: np.ndarray, stage: Vibrance) -> np.ndarray:
    """Boost low saturations more than high ones."""
    hsv = rgb_to_hsv(arr)
    sat = hsv[..., 1]
    factor = stage.factor
    boosted = np.where(sat < 0.5, sat * factor, sat + (1.0 - sat) * (factor - 1.0) * 0.5)
    hsv[..., 1] = np.clip(boosted, 0.0, 1.0)
    return hsv_to_rgb(hsv)


def noise_reduction(image: Image.Image, stage: NoiseReduction) -> Image.Image:
    if stage.method is NoiseMethod.DESPECKLE:
        return image.filter(ImageFilter.MedianFilter(3))
    if stage.method is NoiseMethod.DOUBLE_DESPECKLE:
        return image.filter(ImageFilter.MedianFilter(3)).filter(ImageFilter.MedianFilter(3))
    blurred = image.filter(ImageFilter.GaussianBlur(radius=stage.blur_radius))
    return blurred.filter(ImageFilter.UnsharpMask(radius=stage.resharpen_sigma, percent=100, threshold=0))


def sharpen(image: Image.Image, stage: Sharpen) -> Image.Image:
    return image.filter(
        ImageFilter.UnsharpMask(
            radius=stage.sigma,
            percent=int(round(stage.amount * 100)),
            threshold=int(round(stage.threshold * 255)),
        )
    )


def fit_within(image: Image.Image, max_size: int) -> Image.Image:
    """Shrink *image* so its long edge is at most *max_size*; never enlarge."""
    width, height = image.size
    long_edge = max(width, height)
    if long_edge <= max_size:
        return image
    scale = max_size / float(long_edge)
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    LOGGER.debug("Resizing from %sx%s to %s", width, height, new_size)
    return image.resize(new_size, Image.Resampling.LANCZOS)


def resize(image: Image.Image, stage: Resize) -> Image.Image:
    if stage.max_dimension is not None:
        return fit_within(image, stage.max_dimension)
    if stage.percent is None:
        return image
    width, height = image.size
    scale = stage.percent / 100.0
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return image.resize(new_size, Image.Resampling.LANCZOS)


def _watermark_origin(
    position: str, canvas: Tuple[int, int], text: Tuple[int, int], margin: int
) -> Tuple[int, int]:
    width, height = canvas
    text_width, text_height = text
    if position == "center":
        return (width - text_width) // 2, (height - text_height) // 2
    x = margin if position.endswith("left") else width - text_width - margin
    y = margin if position.startswith("top") else height - text_height - margin
    return x, y


def watermark(image: Image.Image, stage: Watermark) -> Image.Image:
    """Composite white text at the requested corner with the given opacity."""
    try:
        font = ImageFont.truetype("DejaVuSans.ttf", size=stage.point_size)
    except OSError:
        font = ImageFont.load_default()
    overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    bbox = draw.textbbox((0, 0), stage.text, font=font)
    text_size = (bbox[2] - bbox[0], bbox[3] - bbox[1])
    origin = _watermark_origin(stage.position, image.size, text_size, stage.margin)
    alpha = int(round(255 * stage.opacity / 100.0))
    draw.text(origin, stage.text, fill=(255, 255, 255, alpha), font=font)
    return Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB")


class _Frame:
    """Current working frame, converted lazily between numpy and Pillow."""

    def __init__(self, image: Image.Image) -> None:
        self._image: Optional[Image.Image] = image
        self._array: Optional[np.ndarray] = None

    @property
    def array(self) -> np.ndarray:
        if self._array is None:
            assert self._image is not None
            self._array = to_array(self._image)
            self._image = None
        return self._array

    @array.setter
    def array(self, value: np.ndarray) -> None:
        self._array = value.astype(np.float32, copy=False)
        self._image = None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            assert self._array is not None
            self._image = to_image(self._array)
            self._array = None
        return self._image

    @image.setter
    def image(self, value: Image.Image) -> None:
        self._image = value
        self._array = None


class PillowTransformEngine:
    """Reference :class:`TransformEngine` built on numpy and Pillow."""

    def __init__(self) -> None:
        self._array_ops: Dict[Type, Callable[[np.ndarray, object], np.ndarray]] = {
            WhiteBalance: white_balance,
            Tint: tint,
            AutoLevelGamma: lambda arr, _stage: auto_level_gamma(arr),
            HighlightRecovery: highlight_recovery,
            ShadowRecovery: shadow_recovery,
            Contrast: sigmoidal_contrast,
            Modulate: modulate,
            Vibrance: vibrance,
        }
        self._image_ops: Dict[Type, Callable[[Image.Image, object], Image.Image]] = {
            Clarity: clarity,
            NoiseReduction: noise_reduction,
            Sharpen: sharpen,
            Resize: resize,
            Watermark: watermark,
        }

    def apply(self, source: Path, stages: Sequence[PipelineStage]) -> List[EncodedImage]:
        """Run *stages* against *source* and return the encoded outputs.

        Raises:
            UnreadableImage: If *source* cannot be decoded.
            TransformFailure: If a stage fails or no ``Encode`` stage is present.
        """
        try:
            with Image.open(source) as handle:
                handle.load()
                exif = handle.getexif()
                icc_profile = handle.info.get("icc_profile")
                frame = _Frame(handle.convert("RGB"))
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise UnreadableImage(f"Cannot open {source}: {exc}", path=source) from exc

        snapshots: List[_Snapshot] = []
        copy_metadata = False
        for stage in stages:
            name = type(stage).__name__
            try:
                if isinstance(stage, Encode):
                    snapshots.append(_Snapshot("primary", frame.image, stage.format, stage.quality))
                elif isinstance(stage, WebDerivative):
                    snapshots.append(
                        _Snapshot(
                            "web",
                            fit_within(frame.image, stage.max_size),
                            "JPEG",
                            stage.quality,
                            suffix=stage.suffix,
                            progressive=True,
                        )
                    )
                elif isinstance(stage, MetadataCopy):
                    copy_metadata = True
                elif type(stage) in self._array_ops:
                    frame.array = self._array_ops[type(stage)](frame.array, stage)
                elif type(stage) in self._image_ops:
                    frame.image = self._image_ops[type(stage)](frame.image, stage)
                else:
                    raise ValueError(f"Unsupported stage {name}")
            except (ValueError, TypeError, OSError, FloatingPointError) as exc:
                raise TransformFailure(f"{name} failed for {source}: {exc}", path=source, stage=name) from exc

        if not any(snapshot.role == "primary" for snapshot in snapshots):
            raise TransformFailure(f"Pipeline for {source} has no Encode stage", path=source, stage="Encode")

        return [
            self._encode(snapshot, exif if copy_metadata else None, icc_profile if copy_metadata else None, source)
            for snapshot in snapshots
        ]

    @staticmethod
    def _encode(
        snapshot: _Snapshot,
        exif: Optional[Image.Exif],
        icc_profile: Optional[bytes],
        source: Path,
    ) -> EncodedImage:
        save_kwargs: Dict[str, object] = {}
        if snapshot.format == "JPEG":
            save_kwargs.update(quality=snapshot.quality, optimize=True)
            if snapshot.progressive:
                save_kwargs["progressive"] = True
        elif snapshot.format == "TIFF":
            save_kwargs["compression"] = TIFF_COMPRESSION
        elif snapshot.format == "PNG":
            save_kwargs["optimize"] = True

        # Web derivatives are always stripped.
        if snapshot.role == "primary":
            if exif is not None and len(exif) and snapshot.format in EXIF_FORMATS:
                save_kwargs["exif"] = exif
            if icc_profile:
                save_kwargs["icc_profile"] = icc_profile

        buffer = io.BytesIO()
        try:
            snapshot.image.save(buffer, format=snapshot.format, **save_kwargs)
        except (OSError, ValueError) as exc:
            raise TransformFailure(
                f"Encoding {snapshot.role} output for {source} failed: {exc}", path=source, stage="Encode"
            ) from exc
        return EncodedImage(
            role=snapshot.role,
            data=buffer.getvalue(),
            format=snapshot.format,
            size=snapshot.image.size,
            suffix=snapshot.suffix,
        )


__all__ = [
    "EncodedImage",
    "PillowTransformEngine",
    "TransformEngine",
    "auto_level_gamma",
    "fit_within",
    "highlight_recovery",
    "modulate",
    "shadow_recovery",
    "sigmoidal_contrast",
    "to_array",
    "to_image",
    "vibrance",
    "white_balance",
]
