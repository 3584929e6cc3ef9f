"""Batch orchestrator.

Discovers input dumps, works out which still need processing, and runs them
through the file processor on a bounded pool. Each job is isolated: a
failure deletes that job's output and the batch carries on.

Scheduling is a static round-robin partition: with a pool of ``n`` workers,
worker ``k`` handles jobs ``k, k + n, k + 2n, ...`` in ascending ordinal
order. A single job or a pool of one runs sequentially. The file work itself
runs in worker threads so the event loop stays free to take signals and
update the counters.

Resume is derived from the output directory alone: ordinals that already
have a ``<ordinal>_processed.jsonl.gz`` are skipped. Outputs are written to a
``.partial`` staging file and only renamed into place after validation, so a
crash never leaves an artifact that looks complete.
"""

import asyncio
import logging
import signal

from jsonl_normalize.config import Config, ProcessorOptions
from jsonl_normalize.errors import (
    FileProcessingError,
    NormalizeError,
    OutputValidationError,
)
from jsonl_normalize.logging import flush_logging
from jsonl_normalize.process.file_processor import (
    ProgressCallback,
    ProgressSignal,
    process_file,
)
from jsonl_normalize.process.jobs import BatchStats, BatchSummary, FileJob
from jsonl_normalize.process.progress import ProgressTracker
from jsonl_normalize.storage.paths import InputFile, PathManager
from jsonl_normalize.storage.validator import validate_gzip_output

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class BatchError(NormalizeError):
    """Raised when the batch can't start at all."""


class ShutdownFlag:
    """Cooperative shutdown flag set by SIGINT/SIGTERM.

    In-flight jobs run to completion; workers check the flag before
    dispatching their next job.
    """

    def __init__(self) -> None:
        """Initialize an unset flag."""
        self._event = asyncio.Event()
        self.reason: str | None = None
        self._installed: list[signal.Signals] = []

    @property
    def is_set(self) -> bool:
        """Whether shutdown was requested."""
        return self._event.is_set()

    def request(self, reason: str = "shutdown requested") -> None:
        """Request shutdown; later requests are ignored."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.warning("Received %s, finishing in-flight jobs before exit...", reason)
        flush_logging()

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGINT and SIGTERM to ``request`` on the given loop."""
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request, sig.name)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not the main thread, or a platform without loop signal support
                logger.debug("Could not install handler for %s: %s", sig.name, e)
                continue
            self._installed.append(sig)
        logger.debug("Installed signal handlers for graceful shutdown")

    def uninstall(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remove handlers added by ``install``."""
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()


def select_inputs(paths: PathManager, config: Config) -> tuple[list[InputFile], int]:
    """Decide which inputs this run processes.

    Args:
        paths: Path manager for the run.
        config: Application configuration.

    Returns:
        Tuple of (inputs to process in ordinal order, number skipped by resume).

    Raises:
        BatchError: If the input directory doesn't exist.
    """
    if config.batch.specific_file:
        input_file = paths.find_input(config.batch.specific_file)
        if input_file is None:
            return [], 0
        logger.info("Processing specific file: %s", input_file.path.name)
        return [input_file], 0

    try:
        inputs = paths.discover_inputs()
    except FileNotFoundError as e:
        raise BatchError(str(e)) from e

    if not config.batch.resume:
        logger.info("Found %d files to process", len(inputs))
        return inputs, 0

    completed = paths.completed_ordinals()
    remaining = [item for item in inputs if item.ordinal not in completed]
    logger.info(
        "Found %d total files, %d remaining to process", len(inputs), len(remaining)
    )
    return remaining, len(inputs) - len(remaining)


def build_jobs(paths: PathManager, inputs: list[InputFile]) -> list[FileJob]:
    """Create pending jobs for the selected inputs."""
    return [
        FileJob(
            index=index,
            input_file=input_file,
            output_path=paths.output_path(input_file),
            staging_path=paths.staging_path(input_file),
            debug_log_path=paths.debug_log_path(input_file),
        )
        for index, input_file in enumerate(inputs)
    ]


def partition_jobs(jobs: list[FileJob], pool_size: int) -> list[list[FileJob]]:
    """Split jobs round-robin: worker k gets indices k, k + pool_size, ...

    Args:
        jobs: Jobs in dispatch order.
        pool_size: Number of workers.

    Returns:
        One job list per worker; never more lists than jobs.
    """
    workers = max(1, min(pool_size, len(jobs)))
    return [jobs[k::workers] for k in range(workers)]


def _discard_outputs(job: FileJob) -> None:
    for path in (job.staging_path, job.output_path):
        if path.exists():
            logger.warning("Removing invalid output file: %s", path)
            path.unlink(missing_ok=True)


def _process_and_validate(
    job: FileJob,
    options: ProcessorOptions,
    on_progress: ProgressCallback | None,
) -> tuple[int, int]:
    """Blocking part of a job: process, validate the staging file, promote it."""
    result = process_file(
        job.input_file.path,
        job.staging_path,
        options,
        on_progress=on_progress,
        debug_log=job.debug_log_path,
    )
    logger.info(
        "Processed %s: %d records with %d errors in %.2fs",
        job.name,
        result.records_written,
        result.records_failed,
        job.duration_seconds,
    )

    logger.info("Validating output file: %s", job.staging_path)
    validate_gzip_output(job.staging_path)
    job.staging_path.replace(job.output_path)
    return result.records_written, result.records_failed


async def run_job(
    job: FileJob,
    options: ProcessorOptions,
    stats: BatchStats,
    tracker: ProgressTracker,
) -> FileJob:
    """Run one job to a terminal state and fold it into the counters.

    Never raises for job-level failures; they are logged and reflected in
    ``job.status``.

    Args:
        job: Pending job.
        options: Processor options.
        stats: Batch counters.
        tracker: Progress display.

    Returns:
        The same job, now SUCCEEDED or FAILED.
    """
    loop = asyncio.get_running_loop()

    def on_progress(progress: ProgressSignal) -> None:
        # Called from the worker thread
        loop.call_soon_threadsafe(tracker.job_progress, progress)

    job.mark_started()
    tracker.job_started(job)
    logger.info("Starting processing: %s", job.name)

    try:
        records, errors = await asyncio.to_thread(
            _process_and_validate, job, options, on_progress
        )
    except (FileProcessingError, OutputValidationError, OSError) as e:
        logger.error("Error processing %s (ordinal %d): %s", job.name, job.ordinal, e)
        _discard_outputs(job)
        job.mark_failed(str(e))
    except Exception as e:
        logger.exception("Unexpected error processing %s (ordinal %d)", job.name, job.ordinal)
        _discard_outputs(job)
        job.mark_failed(f"unexpected error: {e}")
    else:
        job.mark_succeeded(records, errors)
        logger.info("Successfully completed processing: %s", job.name)

    await stats.record_job(job)
    tracker.job_finished(job, stats)
    return job


async def _run_worker(
    jobs: list[FileJob],
    options: ProcessorOptions,
    stats: BatchStats,
    tracker: ProgressTracker,
    shutdown: ShutdownFlag,
) -> None:
    for job in jobs:
        if shutdown.is_set:
            logger.info("Shutdown requested, not dispatching %s", job.name)
            return
        await run_job(job, options, stats, tracker)


async def run_batch(
    config: Config,
    tracker: ProgressTracker | None = None,
    shutdown: ShutdownFlag | None = None,
    handle_signals: bool = True,
    cpu_count: int | None = None,
) -> BatchSummary:
    """Run a full batch.

    Args:
        config: Application configuration.
        tracker: Progress display. Defaults to a silent tracker.
        shutdown: Shutdown flag. A fresh one is created if None.
        handle_signals: Install SIGINT/SIGTERM handlers for the run.
        cpu_count: Override for CPU detection when sizing the pool.

    Returns:
        BatchSummary; individual job failures don't make this raise.

    Raises:
        BatchError: If the input directory doesn't exist.
    """
    paths = PathManager(config)
    paths.ensure_directories()

    inputs, skipped = select_inputs(paths, config)
    jobs = build_jobs(paths, inputs)
    stats = BatchStats(total_files=len(jobs), skipped_files=skipped)

    if not jobs:
        logger.info("No files to process.")
        return stats.finish()

    tracker = tracker or ProgressTracker(quiet=True)
    shutdown = shutdown or ShutdownFlag()
    options = config.processor
    pool_size = config.batch.pool_size(cpu_count)
    loop = asyncio.get_running_loop()

    if handle_signals:
        shutdown.install(loop)
    tracker.set_total(len(jobs))
    tracker.start()

    try:
        if pool_size <= 1 or len(jobs) == 1:
            logger.info("Processing %d files sequentially", len(jobs))
            await _run_worker(jobs, options, stats, tracker, shutdown)
        else:
            partitions = partition_jobs(jobs, pool_size)
            logger.info(
                "Processing %d files with %d concurrent jobs", len(jobs), len(partitions)
            )
            await asyncio.gather(
                *(_run_worker(part, options, stats, tracker, shutdown) for part in partitions)
            )
    finally:
        tracker.stop()
        if handle_signals:
            shutdown.uninstall(loop)

    summary = stats.finish(interrupted=shutdown.is_set)
    _log_summary(summary)
    flush_logging()
    return summary


def _log_summary(summary: BatchSummary) -> None:
    logger.info(
        "Processing complete. Successfully processed %d of %d files (%d failures, %d skipped)",
        summary.files_succeeded,
        summary.total_files,
        summary.files_failed,
        summary.skipped_files,
    )
    logger.info(
        "Records processed: %d, errors encountered: %d, %.1fs elapsed "
        "(%.2f files/sec, %.0f records/sec)",
        summary.records_processed,
        summary.records_failed,
        summary.elapsed_seconds,
        summary.files_per_second,
        summary.records_per_second,
    )
    if summary.interrupted:
        logger.warning("Run was interrupted; rerun with resume to finish remaining files")
    for name in summary.failed_files:
        logger.warning("Failed: %s", name)
