"""Parallel batch execution with per-job failure isolation and ETA tracking.

The batch profile is learned once, sequentially, before any job is
dispatched. Jobs then run on a bounded :class:`ThreadPoolExecutor`; each job
owns its signal, classification and parameters, so the only shared mutable
state is the :class:`EtaTracker` and the outcome counters, both guarded by a
single lock.
"""
from __future__ import annotations

import collections
import dataclasses
import enum
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Deque, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .adjustments import CorrectionParameters
from .batch_learning import learn_batch_profile
from .errors import CorrectionError
from .io_utils import DEFAULT_SUFFIX, ensure_output_path
from .pipeline import FileResult, ProcessingSettings, process_file
from .processing_log import ProcessingLog
from .report import format_duration, human_size

LOGGER = logging.getLogger("photo_batch_corrector")
WORKER_LOGGER = LOGGER.getChild("worker")

MAX_DEFAULT_JOBS = 8
ETA_WINDOW = 5


def default_job_count() -> int:
    """Number of CPUs, capped so a large host does not oversubscribe disk I/O."""
    return max(1, min(os.cpu_count() or 1, MAX_DEFAULT_JOBS))


class JobStatus(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
}


class InvalidTransition(ValueError):
    """Raised when a job is moved to a state its current state cannot reach."""


@dataclasses.dataclass
class Job:
    """One input file and its outcome; owned and mutated by the orchestrator."""

    input_path: Path
    output_path: Path
    status: JobStatus = JobStatus.PENDING
    parameters: Optional[CorrectionParameters] = None
    elapsed: Optional[float] = None
    error: Optional[str] = None
    outputs: Tuple[Path, ...] = ()

    def _transition(self, status: JobStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(f"{self.input_path}: cannot move from {self.status.value} to {status.value}")
        self.status = status

    def start(self) -> None:
        self._transition(JobStatus.RUNNING)

    def succeed(self, result: FileResult) -> None:
        self._transition(JobStatus.SUCCEEDED)
        self.parameters = result.parameters
        self.outputs = result.written
        self.elapsed = result.elapsed

    def fail(self, error: BaseException, elapsed: float) -> None:
        self._transition(JobStatus.FAILED)
        self.error = str(error) or type(error).__name__
        self.elapsed = elapsed


class EtaTracker:
    """Rolling estimate of the remaining time from the last few job durations."""

    def __init__(self, total: int, window: int = ETA_WINDOW) -> None:
        self.total = total
        self._durations: Deque[float] = collections.deque(maxlen=window)
        self._completed = 0
        self._lock = threading.Lock()

    def record(self, duration: float) -> int:
        """Record one finished job and return the completed count."""
        with self._lock:
            self._durations.append(duration)
            self._completed += 1
            return self._completed

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, self.total - self._completed)

    def eta(self) -> Optional[float]:
        """Average recent duration times remaining jobs, ``None`` before any sample."""
        with self._lock:
            if not self._durations:
                return None
            average = sum(self._durations) / len(self._durations)
            return average * max(0, self.total - self._completed)


@dataclasses.dataclass(frozen=True)
class BatchSummary:
    """Aggregate outcome of a batch run."""

    total: int
    succeeded: int
    failed: int
    elapsed: float
    jobs: Tuple[Job, ...] = ()

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return self.succeeded / self.total * 100.0

    @property
    def average_seconds(self) -> float:
        if not self.total:
            return 0.0
        return self.elapsed / self.total


ProcessFn = Callable[[Path, Path, bool, ProcessingSettings], FileResult]


class BatchOrchestrator:
    """Dispatch jobs on a bounded thread pool and isolate every failure.

    Args:
        settings: Settings shared by every job.
        jobs: Maximum concurrent jobs; defaults to :func:`default_job_count`.
        apply_enhancements: ``False`` performs straight conversions.
        processing_log: Optional open :class:`ProcessingLog` for per-job records.
        progress: Show a tqdm progress bar with an ETA postfix.
        process: Per-file callable, :func:`process_file` unless overridden.
    """

    def __init__(
        self,
        settings: ProcessingSettings,
        *,
        jobs: Optional[int] = None,
        apply_enhancements: bool = True,
        processing_log: Optional[ProcessingLog] = None,
        progress: bool = True,
        process: ProcessFn = process_file,
    ) -> None:
        if jobs is not None and jobs < 1:
            raise ValueError("jobs must be a positive integer")
        self.settings = settings
        self.max_workers = jobs or default_job_count()
        self.apply_enhancements = apply_enhancements
        self.processing_log = processing_log
        self.progress = progress
        self._process = process
        self._lock = threading.Lock()
        self._succeeded = 0
        self._failed = 0
        self.tracker = EtaTracker(0)

    def _run_job(self, job: Job) -> Job:
        job.start()
        started = time.perf_counter()
        try:
            result = self._process(job.input_path, job.output_path, self.apply_enhancements, self.settings)
        except CorrectionError as exc:
            WORKER_LOGGER.warning("Failed to process %s: %s", job.input_path, exc)
            job.fail(exc, time.perf_counter() - started)
        except Exception as exc:  # pylint: disable=broad-except
            WORKER_LOGGER.exception("Unexpected error while processing %s", job.input_path)
            job.fail(exc, time.perf_counter() - started)
        else:
            job.succeed(result)

        with self._lock:
            if job.status is JobStatus.SUCCEEDED:
                self._succeeded += 1
            else:
                self._failed += 1
        self.tracker.record(job.elapsed or 0.0)
        self._log_outcome(job)
        return job

    def _log_outcome(self, job: Job) -> None:
        if self.processing_log is None:
            return
        if job.status is JobStatus.SUCCEEDED:
            if job.outputs:
                primary = job.outputs[0]
                size = human_size(primary.stat().st_size) if primary.exists() else "0 B"
                detail = f"Created {primary} ({size})"
            else:
                detail = f"Dry run for {job.output_path}"
            self.processing_log.record_result(job.input_path, True, detail)
        else:
            self.processing_log.record_result(job.input_path, False, f"Could not process {job.input_path.name}: {job.error}")

    def run(self, jobs: Sequence[Job]) -> BatchSummary:
        """Process every job and return the totals; never raises for a job failure."""
        self.tracker = EtaTracker(len(jobs))
        with self._lock:
            self._succeeded = 0
            self._failed = 0
        started = time.perf_counter()
        LOGGER.info("Dispatching %s job(s) on %s worker(s)", len(jobs), self.max_workers)

        with tqdm(
            total=len(jobs),
            desc="Processing images",
            unit="image",
            disable=not self.progress,
        ) as bar:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(self._run_job, job) for job in jobs]
                for future in as_completed(futures):
                    job = future.result()
                    bar.update(1)
                    bar.set_postfix_str(f"{job.input_path.name} ETA {format_duration(self.tracker.eta())}")

        with self._lock:
            summary = BatchSummary(
                total=len(jobs),
                succeeded=self._succeeded,
                failed=self._failed,
                elapsed=time.perf_counter() - started,
                jobs=tuple(jobs),
            )
        LOGGER.info(
            "Finished batch: %s succeeded, %s failed in %s",
            summary.succeeded,
            summary.failed,
            format_duration(summary.elapsed),
        )
        return summary


def build_jobs(
    inputs: Sequence[Path],
    *,
    input_root: Path,
    output_root: Optional[Path] = None,
    suffix: str = DEFAULT_SUFFIX,
    extension: str = "jpg",
    recursive: bool = False,
    create: bool = True,
) -> List[Job]:
    """Create one pending job per input with its mapped output path."""
    return [
        Job(
            input_path=path,
            output_path=ensure_output_path(
                input_root, output_root, path, suffix, extension, recursive, create=create
            ),
        )
        for path in inputs
    ]


def run_batch(
    jobs: Sequence[Job],
    settings: ProcessingSettings,
    *,
    apply_enhancements: bool = True,
    batch_consistency: bool = True,
    max_workers: Optional[int] = None,
    processing_log: Optional[ProcessingLog] = None,
    progress: bool = True,
) -> BatchSummary:
    """Learn the batch profile when enabled, then dispatch every job.

    Learning completes before the first job starts, so every job reads the
    same profile.
    """
    if apply_enhancements and settings.analysis and batch_consistency and len(jobs) > 1:
        profile = learn_batch_profile([job.input_path for job in jobs], settings.statistics_provider())
        settings = dataclasses.replace(settings, batch=profile)
    orchestrator = BatchOrchestrator(
        settings,
        jobs=max_workers,
        apply_enhancements=apply_enhancements,
        processing_log=processing_log,
        progress=progress,
    )
    return orchestrator.run(jobs)


__all__ = [
    "BatchOrchestrator",
    "BatchSummary",
    "EtaTracker",
    "InvalidTransition",
    "Job",
    "JobStatus",
    "build_jobs",
    "default_job_count",
    "run_batch",
]
