"""Human-readable text for analysis reports, dry runs, and batch summaries."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

from .adjustments import FIELD_NAMES, Source
from .stages import PipelineStage, stage_to_dict

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .batch import BatchSummary
    from .pipeline import FileAnalysis

RULE = "=" * 67
THIN_RULE = "-" * 67


def format_duration(seconds: Optional[float]) -> str:
    """Render seconds as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    if seconds is None:
        return "--"
    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def human_size(num_bytes: int) -> str:
    """Render a byte count as ``B``, ``KB``, ``MB`` or ``GB`` with one decimal."""
    if num_bytes >= 1024 ** 3:
        return f"{num_bytes / 1024 ** 3:.1f} GB"
    if num_bytes >= 1024 ** 2:
        return f"{num_bytes / 1024 ** 2:.1f} MB"
    if num_bytes >= 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes} B"


def _format_value(value: float) -> str:
    return f"{value:g}"


def analysis_report(analysis: "FileAnalysis") -> str:
    """Describe the measurements, classifications and recommended corrections."""
    lines: List[str] = [THIN_RULE, f"Image: {analysis.path.name}", THIN_RULE]
    signal = analysis.signal
    classification = analysis.classification
    if signal is not None and classification is not None:
        exif = signal.exif
        lines += [
            "",
            "Exposure Analysis:",
            f"  Mean Brightness:    {signal.mean_brightness:.1f} / 255",
            f"  Dynamic Range:      {signal.min_value:.0f} - {signal.max_value:.0f}",
            f"  Contrast (StdDev):  {signal.std_dev:.1f}",
            f"  Status:             {classification.exposure.value}",
            "",
            "Highlight/Shadow Clipping:",
            f"  Clipped Highlights: {signal.highlight_clip_pct:.1f}%",
            f"  Clipped Shadows:    {signal.shadow_clip_pct:.1f}%",
            "",
            "Color Analysis:",
            f"  Red Channel:        {signal.red_mean:.1f}",
            f"  Green Channel:      {signal.green_mean:.1f}",
            f"  Blue Channel:       {signal.blue_mean:.1f}",
            f"  Color Cast:         {classification.color_cast.kind.value}",
            "",
            "Scene:",
            f"  Type:               {classification.scene.scene.value} ({classification.scene.confidence}%)",
            f"  Weather:            {classification.weather.weather.value} ({classification.weather.confidence}%)",
            f"  Light:              {classification.light.light.value}",
            f"  Backlit:            {'yes' if classification.backlight.backlit else 'no'}",
            f"  Mood:               {classification.mood.mood.value}",
            f"  Face Detected:      {'yes' if classification.face_detected else 'no'}",
            "",
            "Quality:",
            f"  Technical:          {classification.quality.technical}",
            f"  Aesthetic:          {classification.quality.aesthetic}",
            f"  Overall:            {classification.quality.overall:.1f}",
            "",
            "Camera:",
            f"  Model:              {exif.camera_model or 'unknown'}",
            f"  ISO:                {exif.iso or 'unknown'}",
        ]
        if exif.missing:
            lines.append(f"  Missing EXIF:       {', '.join(exif.missing)}")
    lines += ["", "Recommended Corrections:"]
    parameters = analysis.parameters
    for name in FIELD_NAMES:
        value = parameters.value(name)
        source = parameters.source(name)
        marker = "" if source is Source.DEFAULT else f" [{source.value}]"
        label = f"{name.replace('_', ' ').title()}:"
        lines.append(f"  {label:<20}{_format_value(value)}{marker}")
    if parameters.batch_adjustment is not None:
        lines.append(f"  {'Batch Adjustment:':<20}{_format_value(parameters.batch_adjustment)}")
    lines.append("")
    return "\n".join(lines)


def pipeline_report(stages: Sequence[PipelineStage]) -> str:
    """One line per stage, as shown for dry runs and previews."""
    lines = []
    for index, stage in enumerate(stages, start=1):
        payload = stage_to_dict(stage)
        name = payload.pop("stage")
        params = ", ".join(f"{key}={value}" for key, value in sorted(payload.items()))
        lines.append(f"  {index:>2}. {name}" + (f" ({params})" if params else ""))
    return "\n".join(lines)


def summary_report(summary: "BatchSummary", log_path: Optional[str] = None) -> str:
    """Totals, success rate, elapsed time and average speed for a finished batch."""
    lines = [
        "",
        RULE,
        "PROCESSING SUMMARY".center(67),
        RULE,
        "",
        f"  Total Files:     {summary.total}",
        f"  Successful:      {summary.succeeded}",
        f"  Failed:          {summary.failed}",
        f"  Success Rate:    {summary.success_rate:.1f}%",
        "",
        f"  Processing Time: {format_duration(summary.elapsed)}",
        f"  Average Speed:   {summary.average_seconds:.1f} sec/image",
        "",
    ]
    if summary.failed == 0:
        lines.append("  All files processed successfully!")
    elif log_path:
        lines.append(f"  Check {log_path} for details on failed files.")
    else:
        lines.append("  Some files failed; rerun with --log-level DEBUG for details.")
    lines += ["", RULE]
    return "\n".join(lines)


__all__ = [
    "analysis_report",
    "format_duration",
    "human_size",
    "pipeline_report",
    "summary_report",
]
