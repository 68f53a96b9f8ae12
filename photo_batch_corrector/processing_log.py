"""Plain-text processing log written alongside a batch run."""
from __future__ import annotations

import datetime as _dt
import logging
import threading
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger("photo_batch_corrector")

DEFAULT_LOG_NAME = "processing_log.txt"
RULE = "=" * 67
RECORD_FORMAT = "[%(asctime)s] %(message)s"
RECORD_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ProcessingLog:
    """Append timestamped records for one batch to a text file.

    The file carries a header, one ``Processing:`` record per job followed by
    its ``SUCCESS``/``FAILED`` line, and a footer with totals. Records go
    through this log's own file handler, so they never reach the console or
    another open log.

    Use as a context manager, or call :meth:`open` and :meth:`close`.
    """

    def __init__(self, path: Path, *, directory: Path, total: int) -> None:
        self.path = path
        self.directory = directory
        self.total = total
        self._lock = threading.Lock()
        self._handler: Optional[logging.FileHandler] = None
        self._logger = LOGGER.getChild("processing_log")

    def open(self) -> "ProcessingLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        header = [
            RULE,
            "Photo Batch Corrector - Processing Log",
            f"Started: {_dt.datetime.now():%Y-%m-%d %H:%M:%S}",
            f"Directory: {self.directory}",
            f"Total Files: {self.total}",
            RULE,
            "",
        ]
        self.path.write_text("\n".join(header) + "\n", encoding="utf-8")
        handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter(RECORD_FORMAT, RECORD_DATEFMT))
        self._handler = handler
        return self

    def message(self, text: str) -> None:
        if self._handler is None:
            raise RuntimeError("Processing log is not open")
        record = self._logger.makeRecord(self._logger.name, logging.INFO, __file__, 0, "%s", (text,), None)
        self._handler.handle(record)

    def record_result(self, source: Path, succeeded: bool, detail: str) -> None:
        """Write the ``Processing:`` line and its outcome as adjacent records."""
        status = "SUCCESS" if succeeded else "FAILED"
        with self._lock:
            self.message(f"Processing: {source.name}")
            self.message(f"  {status}: {detail}")

    def close(self, *, succeeded: int = 0, failed: int = 0) -> None:
        if self._handler is None:
            return
        self._handler.close()
        self._handler = None
        footer = [
            "",
            RULE,
            f"Processing completed: {_dt.datetime.now():%Y-%m-%d %H:%M:%S}",
            f"Total: {self.total} | Success: {succeeded} | Failed: {failed}",
            RULE,
        ]
        with self.path.open("a", encoding="utf-8") as stream:
            stream.write("\n".join(footer) + "\n")

    def __enter__(self) -> "ProcessingLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


__all__ = [
    "DEFAULT_LOG_NAME",
    "ProcessingLog",
]
