"""Error taxonomy shared by extraction, execution, and the batch orchestrator."""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class CorrectionError(RuntimeError):
    """Base class for failures that abort a single correction job."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class UnreadableImage(CorrectionError):
    """Raised when the statistics provider cannot open or decode a file."""


class TransformFailure(CorrectionError):
    """Raised when the transform engine rejects a stage or its parameters."""

    def __init__(self, message: str, *, path: Optional[Path] = None, stage: Optional[str] = None) -> None:
        super().__init__(message, path=path)
        self.stage = stage


class OutputWriteFailure(CorrectionError):
    """Raised when an encoded image cannot be written to its destination."""


class MissingMetadata(UserWarning):
    """Non-fatal: EXIF fields were absent and replaced with sentinel defaults."""

    def __init__(self, path: Path, fields: Sequence[str]) -> None:
        super().__init__(f"{path}: missing EXIF fields {', '.join(fields)}")
        self.path = path
        self.fields = tuple(fields)


__all__ = [
    "CorrectionError",
    "MissingMetadata",
    "OutputWriteFailure",
    "TransformFailure",
    "UnreadableImage",
]
