"""Per-file processing shared between the CLI, the orchestrator, and integrations."""
from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Optional, Tuple

from .adjustments import DEFAULT_PRESET_NAME, PRESETS, AdjustmentSettings, CorrectionParameters, Preset
from .batch_learning import BatchProfile
from .classifiers import Classification, classify
from .engine import PillowTransformEngine, TransformEngine
from .io_utils import write_outputs
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .signals import ImageSignal, PillowStatisticsProvider, StatisticsProvider, extract
from .stages import OutputOptions, PipelineStage, build_pipeline, pipeline_to_json
from .synthesizer import synthesize

LOGGER = logging.getLogger("photo_batch_corrector")
WORKER_LOGGER = LOGGER.getChild("worker")


@dataclasses.dataclass(frozen=True)
class ProcessingSettings:
    """Everything a job needs besides its input and output paths.

    Attributes:
        manual: Explicit user values; ``None`` fields are unset.
        preset: Active preset.
        profile: Classifier thresholds and adaptive toggles.
        output: Encoding, resize, watermark and web options.
        analysis: Measure and classify each image before synthesis.
        batch: Batch profile for consistency nudges.
        provider: Statistics provider (Pillow based when omitted).
        engine: Transform engine (Pillow based when omitted).
        dry_run: Build the pipeline but skip execution and writes.
    """

    manual: AdjustmentSettings = dataclasses.field(default_factory=AdjustmentSettings)
    preset: Preset = PRESETS[DEFAULT_PRESET_NAME]
    profile: ProcessingProfile = PROCESSING_PROFILES[DEFAULT_PROFILE_NAME]
    output: OutputOptions = dataclasses.field(default_factory=OutputOptions)
    analysis: bool = True
    batch: Optional[BatchProfile] = None
    provider: Optional[StatisticsProvider] = None
    engine: Optional[TransformEngine] = None
    dry_run: bool = False

    def statistics_provider(self) -> StatisticsProvider:
        """Return the configured provider, or a Pillow one sized by the profile."""
        return self.provider or PillowStatisticsProvider(self.profile.analysis_long_edge)


@dataclasses.dataclass(frozen=True)
class FileAnalysis:
    """Measured signal, classification and the parameters they resolve to."""

    path: Path
    signal: Optional[ImageSignal]
    classification: Optional[Classification]
    parameters: CorrectionParameters


@dataclasses.dataclass(frozen=True)
class FileResult:
    """Outcome of a successful :func:`process_file` call."""

    input_path: Path
    output_path: Path
    analysis: FileAnalysis
    stages: Tuple[PipelineStage, ...]
    written: Tuple[Path, ...]
    elapsed: float

    @property
    def parameters(self) -> CorrectionParameters:
        return self.analysis.parameters


def analyze(path: Path, settings: Optional[ProcessingSettings] = None) -> FileAnalysis:
    """Measure, classify and resolve parameters for *path* without writing.

    Raises:
        UnreadableImage: If the statistics provider cannot read *path*.
    """
    settings = settings or ProcessingSettings()
    signal: Optional[ImageSignal] = None
    classification: Optional[Classification] = None
    if settings.analysis:
        signal = extract(path, settings.statistics_provider())
        classification = classify(signal, settings.profile)
    parameters = synthesize(
        signal,
        classification,
        manual=settings.manual,
        preset=settings.preset.settings,
        profile=settings.profile,
        batch=settings.batch,
        intelligent=settings.preset.intelligent,
    )
    return FileAnalysis(path, signal, classification, parameters)


def process_file(
    input_path: Path,
    output_path: Path,
    apply_enhancements: bool = True,
    settings: Optional[ProcessingSettings] = None,
) -> FileResult:
    """Correct one file and write its outputs.

    Args:
        input_path: Source image.
        output_path: Primary output location; derivatives are written beside it.
        apply_enhancements: ``False`` performs a straight conversion.
        settings: Processing settings shared by the batch.

    Returns:
        The resolved parameters, stages and written paths.

    Raises:
        UnreadableImage: If the input cannot be read.
        TransformFailure: If the engine rejects a stage.
        OutputWriteFailure: If an output cannot be written.
    """
    settings = settings or ProcessingSettings()
    started = time.perf_counter()
    WORKER_LOGGER.info("Processing %s -> %s", input_path, output_path)

    if apply_enhancements:
        analysis = analyze(input_path, settings)
    else:
        analysis = FileAnalysis(input_path, None, None, CorrectionParameters.defaults())

    stages = build_pipeline(analysis.parameters, settings.output, apply_enhancements=apply_enhancements)
    WORKER_LOGGER.debug("Pipeline for %s: %s", input_path, pipeline_to_json(stages))

    if settings.dry_run:
        WORKER_LOGGER.info("Dry run enabled, skipping save for %s", output_path)
        written: Tuple[Path, ...] = ()
    else:
        engine = settings.engine or PillowTransformEngine()
        outputs = engine.apply(input_path, stages)
        written = tuple(write_outputs(output_path, outputs))

    return FileResult(
        input_path=input_path,
        output_path=output_path,
        analysis=analysis,
        stages=stages,
        written=written,
        elapsed=time.perf_counter() - started,
    )


__all__ = [
    "FileAnalysis",
    "FileResult",
    "ProcessingSettings",
    "WORKER_LOGGER",
    "analyze",
    "process_file",
]
