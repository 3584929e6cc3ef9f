"""File processing and batch orchestration."""

from jsonl_normalize.process.file_processor import (
    FileResult,
    ProgressSignal,
    process_file,
)
from jsonl_normalize.process.jobs import BatchStats, BatchSummary, FileJob, JobStatus
from jsonl_normalize.process.orchestrator import BatchError, ShutdownFlag, run_batch
from jsonl_normalize.process.progress import ProgressTracker

__all__ = [
    "BatchError",
    "BatchStats",
    "BatchSummary",
    "FileJob",
    "FileResult",
    "JobStatus",
    "ProgressSignal",
    "ProgressTracker",
    "ShutdownFlag",
    "process_file",
    "run_batch",
]
