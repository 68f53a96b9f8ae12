"""File-system primitives: input discovery, output naming, and atomic writes.

Key Components
--------------

ProcessingContext
    Context manager for atomic file operations with staged writes.

Functions
---------

collect_images
    Find input files by extension, case-insensitively.

ensure_output_path
    Map an input file to its output location.

write_outputs
    Persist encoded images next to the primary output path.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .engine import EncodedImage
from .errors import OutputWriteFailure

LOGGER = logging.getLogger("photo_batch_corrector")

DEFAULT_EXTENSIONS = ("jpg", "jpeg", "png", "tif", "tiff")
DEFAULT_SUFFIX = "_edited"


@dataclasses.dataclass
class ProcessingContext:
    """Stage a write in a hidden sibling file and move it into place on success.

    The staged file lives beside ``destination`` so ``os.replace`` never
    crosses a filesystem. If the block raises, the staged file is removed and
    ``destination`` is left as it was.
    """

    destination: Path
    tag: str = ".tmp"

    def __post_init__(self) -> None:
        self._pending: Optional[Path] = None

    def __enter__(self) -> Path:
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        self._pending = self.destination.with_name(f".{self.destination.name}{self.tag}-{uuid.uuid4().hex}")
        return self._pending

    def __exit__(self, exc_type, exc, tb) -> bool:
        pending, self._pending = self._pending, None
        if pending is None:
            return False
        if exc_type is not None:
            with contextlib.suppress(FileNotFoundError):
                pending.unlink()
            return False
        try:
            os.replace(pending, self.destination)
        except OSError:
            with contextlib.suppress(OSError):
                pending.unlink()
            raise
        return False


def normalise_extensions(extensions: Iterable[str]) -> List[str]:
    """Lower-case *extensions* and strip leading dots, keeping first-seen order."""
    seen: List[str] = []
    for ext in extensions:
        cleaned = ext.strip().lstrip(".").lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def collect_images(
    folder: Path,
    recursive: bool = False,
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    *,
    exclude_suffix: Optional[str] = None,
) -> List[Path]:
    """Return input files under *folder* whose extension matches, sorted.

    Args:
        folder: Directory to scan.
        recursive: Descend into sub-directories.
        extensions: Accepted extensions, matched case-insensitively.
        exclude_suffix: Skip files whose stem ends with this suffix (earlier outputs).
    """
    wanted = set(normalise_extensions(extensions))
    iterator = folder.rglob("*") if recursive else folder.glob("*")
    found = []
    for path in iterator:
        if not path.is_file() or path.suffix.lstrip(".").lower() not in wanted:
            continue
        if exclude_suffix and (path.stem.endswith(exclude_suffix) or path.stem.endswith(exclude_suffix + "_web")):
            continue
        found.append(path)
    return sorted(found)


def ensure_output_path(
    input_root: Path,
    output_root: Optional[Path],
    source: Path,
    suffix: str,
    extension: str,
    recursive: bool = False,
    *,
    create: bool = True,
) -> Path:
    """Map *source* to ``<stem><suffix>.<extension>`` under *output_root*.

    Without an output root the file lands next to its source. Recursive runs
    mirror the directory tree below *input_root*.
    """
    if output_root is None:
        destination_dir = source.parent
    elif recursive:
        destination_dir = output_root / source.parent.relative_to(input_root)
    else:
        destination_dir = output_root
    if create:
        destination_dir.mkdir(parents=True, exist_ok=True)
    return destination_dir / f"{source.stem}{suffix}.{extension.lstrip('.')}"


def derivative_path(primary: Path, encoded: EncodedImage) -> Path:
    """Return where a non-primary output is written, e.g. ``x_edited_web.jpg``."""
    if encoded.role == "primary":
        return primary
    return primary.with_name(f"{primary.stem}{encoded.suffix}.{encoded.extension}")


def write_outputs(primary: Path, outputs: Sequence[EncodedImage]) -> List[Path]:
    """Atomically write every encoded output and return the written paths.

    Raises:
        OutputWriteFailure: If a destination cannot be written.
    """
    if primary.exists() and not primary.is_file():
        raise OutputWriteFailure(f"Destination path exists but is not a file: {primary}", path=primary)

    written: List[Path] = []
    for encoded in outputs:
        destination = derivative_path(primary, encoded)
        try:
            with ProcessingContext(destination) as staged_path:
                staged_path.write_bytes(encoded.data)
        except OSError as exc:
            raise OutputWriteFailure(f"Cannot write {destination}: {exc}", path=destination) from exc
        LOGGER.debug("Wrote %s (%s bytes)", destination, len(encoded.data))
        written.append(destination)
    return written


__all__ = [
    "DEFAULT_EXTENSIONS",
    "DEFAULT_SUFFIX",
    "ProcessingContext",
    "collect_images",
    "derivative_path",
    "ensure_output_path",
    "normalise_extensions",
    "write_outputs",
]
