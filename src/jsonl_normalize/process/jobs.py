"""File jobs and the batch-level counters that aggregate them."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from jsonl_normalize.storage.paths import InputFile


class JobStatus(str, Enum):
    """Lifecycle of a file job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class FileJob:
    """One input file scheduled for processing.

    A job only reaches SUCCEEDED once its output has been written, validated
    and promoted to ``output_path``.
    """

    index: int
    input_file: InputFile
    output_path: Path
    staging_path: Path
    debug_log_path: Path
    status: JobStatus = JobStatus.PENDING
    records: int = 0
    errors: int = 0
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def ordinal(self) -> int:
        """Ordinal of the input file."""
        return self.input_file.ordinal

    @property
    def name(self) -> str:
        """Input filename."""
        return self.input_file.path.name

    @property
    def duration_seconds(self) -> float:
        """Wall time spent on the job so far."""
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def mark_started(self) -> None:
        """Move to IN_PROGRESS."""
        self.status = JobStatus.IN_PROGRESS
        self.started_at = time.monotonic()

    def mark_succeeded(self, records: int, errors: int) -> None:
        """Move to SUCCEEDED with the file's record counts."""
        self.status = JobStatus.SUCCEEDED
        self.records = records
        self.errors = errors
        self.finished_at = time.monotonic()

    def mark_failed(self, error: str) -> None:
        """Move to FAILED; partial counts are discarded."""
        self.status = JobStatus.FAILED
        self.records = 0
        self.errors = 0
        self.error = error
        self.finished_at = time.monotonic()


@dataclass(frozen=True)
class BatchSummary:
    """Final figures for a batch run."""

    total_files: int
    skipped_files: int
    files_succeeded: int
    files_failed: int
    records_processed: int
    records_failed: int
    elapsed_seconds: float
    interrupted: bool = False
    failed_files: tuple[str, ...] = ()

    @property
    def files_per_second(self) -> float:
        """Completed files per second of wall time."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return (self.files_succeeded + self.files_failed) / self.elapsed_seconds

    @property
    def records_per_second(self) -> float:
        """Written records per second of wall time."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.records_processed / self.elapsed_seconds

    def to_dict(self) -> dict[str, Any]:
        """Summary as a plain dictionary."""
        return {
            "total_files": self.total_files,
            "skipped_files": self.skipped_files,
            "files_succeeded": self.files_succeeded,
            "files_failed": self.files_failed,
            "records_processed": self.records_processed,
            "records_failed": self.records_failed,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "files_per_second": round(self.files_per_second, 2),
            "records_per_second": round(self.records_per_second, 1),
            "interrupted": self.interrupted,
            "failed_files": list(self.failed_files),
        }


@dataclass
class BatchStats:
    """Aggregate counters owned by the orchestrator.

    Counters only change in ``record_job``, which workers call when a job
    finishes; the lock keeps concurrent completions from interleaving.
    """

    total_files: int = 0
    skipped_files: int = 0
    files_succeeded: int = 0
    files_failed: int = 0
    records_processed: int = 0
    records_failed: int = 0
    interrupted: bool = False
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None
    failed_files: list[str] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def completed_files(self) -> int:
        """Jobs that reached a terminal state."""
        return self.files_succeeded + self.files_failed

    @property
    def elapsed_seconds(self) -> float:
        """Wall time since the batch started."""
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    async def record_job(self, job: FileJob) -> None:
        """Fold a finished job into the counters.

        Args:
            job: Job in SUCCEEDED or FAILED state.

        Raises:
            ValueError: If the job hasn't finished.
        """
        async with self._lock:
            if job.status is JobStatus.SUCCEEDED:
                self.files_succeeded += 1
                self.records_processed += job.records
                self.records_failed += job.errors
            elif job.status is JobStatus.FAILED:
                self.files_failed += 1
                self.failed_files.append(job.name)
            else:
                msg = f"Job {job.name} is still {job.status.value}"
                raise ValueError(msg)

    def finish(self, interrupted: bool = False) -> BatchSummary:
        """Stop the clock and build the summary."""
        self.finished_at = time.monotonic()
        self.interrupted = interrupted
        return self.summary()

    def summary(self) -> BatchSummary:
        """Snapshot of the counters."""
        return BatchSummary(
            total_files=self.total_files,
            skipped_files=self.skipped_files,
            files_succeeded=self.files_succeeded,
            files_failed=self.files_failed,
            records_processed=self.records_processed,
            records_failed=self.records_failed,
            elapsed_seconds=self.elapsed_seconds,
            interrupted=self.interrupted,
            failed_files=tuple(self.failed_files),
        )
