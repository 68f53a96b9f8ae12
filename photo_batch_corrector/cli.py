"""Command-line interface wiring for the photo batch corrector."""
from __future__ import annotations

import argparse
import json
import logging
import uuid
import warnings
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import yaml

from . import __version__
from .adjustments import DEFAULT_PRESET_NAME, FIELD_NAMES, PRESETS, AdjustmentSettings
from .batch import build_jobs, default_job_count, run_batch
from .errors import CorrectionError, MissingMetadata
from .io_utils import DEFAULT_EXTENSIONS, DEFAULT_SUFFIX, collect_images, ensure_output_path
from .pipeline import ProcessingSettings, analyze, process_file
from .processing_log import DEFAULT_LOG_NAME, ProcessingLog
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES
from .report import analysis_report, human_size, pipeline_report, summary_report
from .stages import OUTPUT_FORMATS, WATERMARK_POSITIONS, OutputOptions, parse_resize

LOGGER = logging.getLogger("photo_batch_corrector")

_BOOLEAN_STRINGS = {"1": True, "true": True, "yes": True, "on": True, "0": False, "false": False, "no": False, "off": False}


def read_config_file(path: Path) -> Mapping[str, Any]:
    """Return the option mapping stored in ``path``.

    ``.yaml``/``.yml`` files go through PyYAML; anything else is read as JSON.
    An empty document yields an empty mapping.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        loaded = yaml.safe_load(text) if path.suffix.lower() in {".yaml", ".yml"} else json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Could not parse {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, Mapping):
        raise ValueError(f"{path} must hold a mapping of option names to values")
    return loaded


def _option_index(parser: argparse.ArgumentParser) -> dict[str, argparse.Action]:
    # Both ``dest`` names and long flags (``--web-size`` -> ``web_size``) are accepted.
    index: dict[str, argparse.Action] = {}
    for action in parser._actions:
        if action.dest in {argparse.SUPPRESS, "help", "config", "version"}:
            continue
        index[action.dest] = action
        for flag in action.option_strings:
            if flag.startswith("--"):
                index[flag[2:].replace("-", "_")] = action
    return index


def _config_value(action: argparse.Action, key: str, value: Any, path: Path) -> Any:
    if value is None:
        return None

    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction)):  # type: ignore[attr-defined]
        if isinstance(value, bool):
            return value
        flag = _BOOLEAN_STRINGS.get(str(value).strip().lower()) if isinstance(value, str) else None
        if flag is None:
            raise ValueError(f"'{key}' in {path} expects true or false, got {value!r}")
        return flag

    converted = value
    if action.type is not None:
        try:
            converted = action.type(value)
        except (TypeError, ValueError, argparse.ArgumentTypeError) as exc:
            raise ValueError(f"'{key}' in {path}: {exc}") from exc

    if action.choices is not None and converted not in action.choices:
        raise ValueError(f"'{key}' in {path} must be one of {sorted(action.choices)}, got {converted!r}")
    return converted


def config_defaults(parser: argparse.ArgumentParser, path: Path) -> dict[str, Any]:
    """Translate a config file into ``parser.set_defaults`` keyword arguments."""
    index = _option_index(parser)
    defaults: dict[str, Any] = {}
    for raw_key, value in read_config_file(path).items():
        if not isinstance(raw_key, str):
            raise ValueError(f"Option names in {path} must be strings, got {raw_key!r}")
        key = raw_key.replace("-", "_")
        action = index.get(key)
        if action is None:
            raise ValueError(f"Unknown option '{raw_key}' in {path}")
        defaults[action.dest] = _config_value(action, raw_key, value, path)
    return defaults


def _extensions(value: str) -> str:
    if not any(part.strip() for part in str(value).split(",")):
        raise argparse.ArgumentTypeError("expected a comma separated list of extensions")
    return str(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-batch-corrector",
        description="Batch-correct photographs with per-image analysis and batch consistency.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON, or YAML for .yaml/.yml)",
    )
    parser.add_argument("input", type=Path, nargs="?", default=Path("."), help="Folder that contains source images")
    parser.add_argument(
        "suffix",
        nargs="?",
        default=DEFAULT_SUFFIX,
        help="Filename suffix appended before the extension for processed files",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")

    looks = parser.add_argument_group("presets")
    looks.add_argument(
        "--preset",
        default=DEFAULT_PRESET_NAME,
        choices=sorted(PRESETS.keys()),
        help="Preset style that provides a starting point",
    )
    looks.add_argument(
        "--profile",
        default=DEFAULT_PROFILE_NAME,
        choices=sorted(PROCESSING_PROFILES.keys()),
        help="Processing profile that tunes analysis thresholds",
    )

    knobs = parser.add_argument_group("manual overrides (take precedence over presets and analysis)")
    knobs.add_argument("--brightness", type=float, default=None, help="Brightness percent (100 = unchanged)")
    knobs.add_argument("--contrast", type=float, default=None, help="Contrast (-100 to 100)")
    knobs.add_argument("--highlights", type=float, default=None, help="Highlights (-100 to 100, negative recovers)")
    knobs.add_argument("--shadows", type=float, default=None, help="Shadows (-100 to 100, positive lifts)")
    knobs.add_argument("--clarity", type=float, default=None, help="Local contrast (-100 to 100)")
    knobs.add_argument("--temperature", type=float, default=None, help="Temperature (-100 cool to 100 warm)")
    knobs.add_argument("--tint", type=float, default=None, help="Tint (-100 green to 100 magenta)")
    knobs.add_argument("--saturation", type=float, default=None, help="Saturation percent (100 = unchanged)")
    knobs.add_argument("--vibrance", type=float, default=None, help="Vibrance (0-100)")
    knobs.add_argument(
        "--noise-reduction", type=float, default=None, dest="noise_reduction", help="Noise reduction (0-100)"
    )
    knobs.add_argument("--sharpen", type=float, default=None, help="Sharpen amount (0-2)")
    knobs.add_argument("--hue", type=float, default=100.0, help="Hue rotation percent (100 = unchanged)")

    modes = parser.add_argument_group("modes")
    modes.add_argument(
        "-n", "--no-enhance", action="store_true", dest="no_enhance", help="Straight conversion without corrections"
    )
    modes.add_argument("--no-analysis", action="store_true", help="Skip per-image analysis; use presets and overrides only")
    modes.add_argument(
        "--no-batch-consistency", action="store_true", help="Do not nudge images toward the batch average"
    )
    modes.add_argument("--analyze", action="store_true", help="Print analysis reports without processing")
    modes.add_argument("--preview", type=Path, default=None, help="Process a single file to test settings")
    modes.add_argument("--dry-run", action="store_true", help="Show the planned pipeline without writing files")

    output = parser.add_argument_group("output")
    output.add_argument("--resize", default=None, help="Max dimension (2000) or percentage (50%%)")
    output.add_argument("--format", default="jpg", choices=sorted(OUTPUT_FORMATS.keys()), help="Output format")
    output.add_argument("--quality", type=int, default=100, help="Output quality 1-100")
    output.add_argument("--output-dir", type=Path, default=None, help="Write outputs here instead of beside the inputs")
    output.add_argument("--watermark", default="", help="Watermark text")
    output.add_argument(
        "--watermark-position", default="bottomright", choices=WATERMARK_POSITIONS, help="Watermark position"
    )
    output.add_argument("--watermark-opacity", type=float, default=50.0, help="Watermark opacity 0-100")
    output.add_argument("--web-version", action="store_true", help="Also write a smaller web-optimized copy")
    output.add_argument("--web-size", type=int, default=1200, help="Max dimension of the web copy")
    output.add_argument("--web-quality", type=int, default=85, help="Quality of the web copy")
    output.add_argument("--no-metadata", action="store_true", help="Do not copy EXIF or ICC data to outputs")

    run = parser.add_argument_group("run control")
    run.add_argument("-j", "--jobs", type=int, default=None, help="Concurrent jobs (default: CPU count, at most 8)")
    run.add_argument("--recursive", action="store_true", help="Process folders recursively")
    run.add_argument(
        "--extensions",
        type=_extensions,
        default=",".join(DEFAULT_EXTENSIONS),
        help="Comma separated input extensions, matched case-insensitively",
    )
    run.add_argument("--log-file", type=Path, default=None, help=f"Processing log path (default: <input>/{DEFAULT_LOG_NAME})")
    run.add_argument("--no-log-file", action="store_true", help="Do not write a processing log file")
    run.add_argument("-q", "--quiet", action="store_true", help="Suppress progress output and the summary")
    run.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    run.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    argv_list = list(argv) if argv is not None else None

    probe, _ = parser.parse_known_args(argv_list)
    if probe.config is not None:
        try:
            parser.set_defaults(**config_defaults(parser, probe.config))
        except (OSError, ValueError) as exc:
            parser.error(str(exc))

    args = parser.parse_args(argv_list)
    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be a positive integer")
    try:
        build_overrides(args).validate()
        build_output_options(args)
    except ValueError as exc:
        parser.error(str(exc))

    level = logging.WARNING if args.quiet and args.log_level == "INFO" else getattr(logging, args.log_level)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    return args


def build_overrides(args: argparse.Namespace) -> AdjustmentSettings:
    """Collect the manual knob values given on the command line or in the config."""
    overrides = AdjustmentSettings.from_mapping({name: getattr(args, name, None) for name in FIELD_NAMES})
    LOGGER.debug("Manual overrides: %s", overrides.provided())
    return overrides


def build_output_options(args: argparse.Namespace) -> OutputOptions:
    parse_resize(args.resize)
    return OutputOptions(
        format=args.format,
        quality=args.quality,
        resize=args.resize,
        watermark_text=args.watermark,
        watermark_position=args.watermark_position,
        watermark_opacity=args.watermark_opacity,
        web_version=args.web_version,
        web_size=args.web_size,
        web_quality=args.web_quality,
        copy_metadata=not args.no_metadata,
        hue=args.hue,
    )


def build_settings(args: argparse.Namespace) -> ProcessingSettings:
    return ProcessingSettings(
        manual=build_overrides(args),
        preset=PRESETS[args.preset],
        profile=PROCESSING_PROFILES[args.profile],
        output=build_output_options(args),
        analysis=not args.no_analysis,
        dry_run=args.dry_run,
    )


def _report_missing_metadata(message: warnings.WarningMessage) -> None:
    if isinstance(message.message, MissingMetadata):
        LOGGER.debug("%s", message.message)
    else:
        warnings.showwarning(message.message, message.category, message.filename, message.lineno)


def run_analysis(images: Iterable[Path], settings: ProcessingSettings) -> int:
    """Print an analysis report per image; unreadable files count as failures."""
    failures = 0
    print("ANALYSIS MODE".center(67))
    for path in images:
        try:
            print(analysis_report(analyze(path, settings)))
        except CorrectionError as exc:
            LOGGER.error("Cannot analyze %s: %s", path, exc)
            failures += 1
    print("Analysis complete. Run without --analyze to process images.")
    return 1 if failures else 0


def run_preview(args: argparse.Namespace, settings: ProcessingSettings) -> int:
    """Analyze and process a single file next to itself (or into --output-dir)."""
    source: Path = args.preview
    if not source.is_file():
        LOGGER.error("Preview file not found: %s", source)
        return 1
    apply_enhancements = not args.no_enhance
    destination = ensure_output_path(
        source.parent,
        args.output_dir,
        source,
        args.suffix,
        settings.output.extension,
        create=not args.dry_run,
    )
    try:
        result = process_file(source, destination, apply_enhancements, settings)
    except CorrectionError as exc:
        LOGGER.error("Could not process %s: %s", source, exc)
        return 1
    if result.analysis.signal is not None:
        print(analysis_report(result.analysis))
    print(pipeline_report(result.stages))
    for written in result.written:
        print(f"Created: {written} ({human_size(written.stat().st_size)})")
    return 0


def run_pipeline(args: argparse.Namespace) -> int:
    """Run the batch with the provided arguments and return the exit code."""

    run_id = uuid.uuid4().hex
    settings = build_settings(args)
    if args.preview is not None:
        return run_preview(args, settings)

    input_root = args.input.resolve()
    if not input_root.is_dir():
        LOGGER.error("Input folder '%s' does not exist or is not a directory", input_root)
        return 1

    extensions = [ext for ext in args.extensions.split(",") if ext.strip()]
    images = collect_images(input_root, args.recursive, extensions, exclude_suffix=args.suffix)
    if not images:
        LOGGER.warning("No images with extensions %s found in %s", ", ".join(extensions), input_root)
        return 0

    if args.analyze:
        return run_analysis(images, settings)

    output_root = args.output_dir.resolve() if args.output_dir is not None else None
    if output_root is not None and not args.dry_run:
        output_root.mkdir(parents=True, exist_ok=True)

    jobs = build_jobs(
        images,
        input_root=input_root,
        output_root=output_root,
        suffix=args.suffix,
        extension=settings.output.extension,
        recursive=args.recursive,
        create=not args.dry_run,
    )
    LOGGER.info(
        "Starting batch run %s: %s image(s) in %s with preset '%s' and profile '%s'",
        run_id,
        len(jobs),
        input_root,
        settings.preset.name,
        settings.profile.name,
    )

    processing_log: Optional[ProcessingLog] = None
    if not args.no_log_file and not args.dry_run:
        log_path = args.log_file or input_root / DEFAULT_LOG_NAME
        processing_log = ProcessingLog(log_path, directory=input_root, total=len(jobs)).open()

    summary = None
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", MissingMetadata)
            summary = run_batch(
                jobs,
                settings,
                apply_enhancements=not args.no_enhance,
                batch_consistency=not args.no_batch_consistency,
                max_workers=args.jobs or default_job_count(),
                processing_log=processing_log,
                progress=not (args.quiet or args.no_progress),
            )
        for message in caught:
            _report_missing_metadata(message)
    finally:
        if processing_log is not None:
            processing_log.close(
                succeeded=summary.succeeded if summary else 0,
                failed=summary.failed if summary else 0,
            )

    if args.dry_run:
        for job in jobs:
            LOGGER.info("Dry run: would process %s -> %s", job.input_path, job.output_path)
    if not args.quiet:
        print(summary_report(summary, str(processing_log.path) if processing_log else None))
    LOGGER.info("Finished batch run %s", run_id)
    return 1 if summary.failed else 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    return run_pipeline(args)


__all__ = [
    "build_output_options",
    "build_overrides",
    "build_parser",
    "build_settings",
    "main",
    "parse_args",
    "run_analysis",
    "run_pipeline",
    "run_preview",
]
