"""Progress display for batch runs.

Renders a live file-level progress bar with the orchestrator's counters
using the rich library. The tracker only reads counters; it never changes
job outcomes, and the batch summary is the same with or without it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

if TYPE_CHECKING:
    from types import TracebackType

    from jsonl_normalize.process.file_processor import ProgressSignal
    from jsonl_normalize.process.jobs import BatchStats, FileJob


class ProgressTracker:
    """Tracks and displays batch progress.

    The display is only shown when not quiet and the console is a terminal.
    All methods are meant to be called from the event loop thread.
    """

    def __init__(
        self,
        total_files: int = 0,
        quiet: bool = False,
        console: Console | None = None,
    ) -> None:
        """Set up the tracker.

        Args:
            total_files: Number of jobs in the batch.
            quiet: Never render anything.
            console: Console to render on. Defaults to a new stderr console.
        """
        self.total_files = total_files
        self.quiet = quiet
        self.console = console or Console(stderr=True)
        self.files_succeeded = 0
        self.files_failed = 0
        self.records_processed = 0
        self.records_failed = 0
        self.peak_memory_mb = 0.0
        self.active: dict[str, int] = {}
        self._live: Live | None = None
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    @property
    def enabled(self) -> bool:
        """Whether the live display is rendered."""
        return not self.quiet and self.console.is_terminal

    def start(self) -> None:
        """Begin rendering; does nothing when disabled."""
        if not self.enabled:
            return

        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("ETA"),
            TimeRemainingColumn(),
            console=self.console,
        )
        self._task = self._progress.add_task("Files", total=self.total_files)

        self._live = Live(
            self._render(),
            console=self.console,
            refresh_per_second=4,
        )
        self._live.start()

    def stop(self) -> None:
        """Tear down the live display."""
        if self._live:
            self._live.stop()
            self._live = None
        self._progress = None
        self._task = None

    def _render(self) -> Table:
        """Build the renderable for the current counters."""
        table = Table(show_header=False, box=None, padding=(0, 1))

        if self._progress is not None:
            table.add_row(self._progress)

        table.add_row(
            f"[bold cyan]Files:[/] [green]{self.files_succeeded}✓[/] "
            f"[red]{self.files_failed}✗[/] | "
            f"[bold cyan]Records:[/] {self.records_processed:,} | "
            f"[bold cyan]Errors:[/] {self.records_failed:,}"
        )

        if self.active:
            in_flight = ", ".join(
                f"{name} ({count:,})" for name, count in sorted(self.active.items())
            )
            table.add_row(f"[bold cyan]Active:[/] {in_flight}")

        if self.peak_memory_mb:
            table.add_row(f"[bold cyan]Peak memory:[/] {self.peak_memory_mb:.0f}MB peak RSS")

        return table

    def refresh(self) -> None:
        """Re-render with the current counters."""
        if self._live:
            self._live.update(self._render())

    def set_total(self, total_files: int) -> None:
        """Set the number of jobs in the batch."""
        self.total_files = total_files
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, total=total_files)
        self.refresh()

    def job_started(self, job: FileJob) -> None:
        """Note that a job was dispatched."""
        self.active[job.name] = 0
        self.refresh()

    def job_progress(self, signal: ProgressSignal) -> None:
        """Record a periodic signal from a running job."""
        self.active[signal.source.name] = signal.records
        self.peak_memory_mb = max(self.peak_memory_mb, signal.peak_memory_mb)
        self.refresh()

    def job_finished(self, job: FileJob, stats: BatchStats) -> None:
        """Take the orchestrator's counters after a job completes."""
        self.active.pop(job.name, None)
        self.files_succeeded = stats.files_succeeded
        self.files_failed = stats.files_failed
        self.records_processed = stats.records_processed
        self.records_failed = stats.records_failed

        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, completed=stats.completed_files)

        self.refresh()

    def __enter__(self) -> ProgressTracker:
        """Start rendering."""
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop rendering."""
        self.stop()
