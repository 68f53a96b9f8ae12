"""Adaptive batch correction for photographs.

Each image is measured, classified, and turned into a deterministic, ordered
list of correction stages. A sampled batch profile keeps exposure and color
consistent across a shoot, and a bounded thread pool processes the batch with
per-file failure isolation.

Module Organization
-------------------

signals
    Signal extraction: the statistics provider protocol, the Pillow/numpy
    provider, and normalization into immutable :class:`ImageSignal` records.

classifiers
    Heuristic classifiers for exposure, scene, weather, color cast,
    golden/blue hour, backlight, mood, and quality.

synthesizer
    Per-image formulas, adaptive values, and the precedence merge that yields
    :class:`CorrectionParameters`.

stages
    Typed pipeline stages and the fixed-order pipeline builder.

engine
    Transform engine protocol and the Pillow/numpy reference engine.

batch_learning / batch
    Batch profile learning, job state machine, ETA tracking, and the
    orchestrator.

cli
    Command-line interface with presets, manual overrides, and JSON/YAML
    configuration files.

Example Usage
-------------

    from pathlib import Path
    from photo_batch_corrector import PRESETS, ProcessingSettings, process_file

    settings = ProcessingSettings(preset=PRESETS["portrait"])
    result = process_file(Path("IMG_001.jpg"), Path("IMG_001_edited.jpg"), True, settings)
    result.parameters.source("shadows")  # Source.PRESET
"""
from __future__ import annotations

import logging

__version__ = "1.0.0"

from .adjustments import (
    DEFAULT_PRESET_NAME,
    PRESETS,
    AdjustmentSettings,
    CorrectionParameters,
    Preset,
    ResolvedValue,
    Source,
)
from .batch import BatchOrchestrator, BatchSummary, EtaTracker, Job, JobStatus, build_jobs, run_batch
from .batch_learning import BatchProfile, learn_batch_profile
from .classifiers import Classification, classify
from .cli import main, parse_args, run_pipeline
from .engine import EncodedImage, PillowTransformEngine, TransformEngine
from .errors import CorrectionError, MissingMetadata, OutputWriteFailure, TransformFailure, UnreadableImage
from .io_utils import ProcessingContext, collect_images, ensure_output_path
from .pipeline import FileAnalysis, FileResult, ProcessingSettings, analyze, process_file
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .signals import ExifSnapshot, ImageSignal, PillowStatisticsProvider, StatisticsProvider, extract
from .stages import OutputOptions, build_pipeline, pipeline_to_json
from .synthesizer import synthesize

LOGGER = logging.getLogger("photo_batch_corrector")

__all__ = [
    "AdjustmentSettings",
    "BatchOrchestrator",
    "BatchProfile",
    "BatchSummary",
    "Classification",
    "CorrectionError",
    "CorrectionParameters",
    "DEFAULT_PRESET_NAME",
    "DEFAULT_PROFILE_NAME",
    "EncodedImage",
    "EtaTracker",
    "ExifSnapshot",
    "FileAnalysis",
    "FileResult",
    "ImageSignal",
    "Job",
    "JobStatus",
    "MissingMetadata",
    "OutputOptions",
    "OutputWriteFailure",
    "PRESETS",
    "PROCESSING_PROFILES",
    "PillowStatisticsProvider",
    "PillowTransformEngine",
    "Preset",
    "ProcessingContext",
    "ProcessingProfile",
    "ProcessingSettings",
    "ResolvedValue",
    "Source",
    "StatisticsProvider",
    "TransformEngine",
    "TransformFailure",
    "UnreadableImage",
    "analyze",
    "build_jobs",
    "build_pipeline",
    "classify",
    "collect_images",
    "ensure_output_path",
    "extract",
    "learn_batch_profile",
    "main",
    "parse_args",
    "pipeline_to_json",
    "process_file",
    "run_batch",
    "run_pipeline",
    "synthesize",
]
