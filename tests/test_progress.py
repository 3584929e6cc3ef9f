"""Tests for the progress display."""

import io
from pathlib import Path

import pytest
from rich.console import Console

from jsonl_normalize.process.file_processor import ProgressSignal
from jsonl_normalize.process.jobs import BatchStats, FileJob
from jsonl_normalize.process.progress import ProgressTracker
from jsonl_normalize.storage.paths import InputFile


@pytest.fixture
def job(tmp_path: Path) -> FileJob:
    """Create a job for input 1."""
    return FileJob(
        index=0,
        input_file=InputFile(1, tmp_path / "1.jsonl.gz"),
        output_path=tmp_path / "1_processed.jsonl.gz",
        staging_path=tmp_path / "1_processed.jsonl.gz.partial",
        debug_log_path=tmp_path / "1_processed.jsonl.gz.debug.log",
    )


def _terminal() -> Console:
    return Console(file=io.StringIO(), force_terminal=True, width=120)


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_disabled_when_quiet(self) -> None:
        """Test that quiet mode never renders."""
        tracker = ProgressTracker(quiet=True, console=_terminal())
        assert not tracker.enabled

    def test_disabled_without_terminal(self) -> None:
        """Test that non-terminal consoles don't render."""
        tracker = ProgressTracker(console=Console(file=io.StringIO()))
        tracker.start()

        assert not tracker.enabled
        assert tracker._live is None
        tracker.stop()

    def test_start_and_stop(self) -> None:
        """Test the live display lifecycle on a terminal."""
        tracker = ProgressTracker(total_files=3, console=_terminal())

        with tracker:
            assert tracker._live is not None
            tracker.set_total(4)

        assert tracker._live is None
        assert tracker.total_files == 4

    def test_job_updates(self, job: FileJob) -> None:
        """Test that notifications update the displayed figures."""
        console = _terminal()
        tracker = ProgressTracker(total_files=1, console=console)
        stats = BatchStats(total_files=1, files_succeeded=1, records_processed=42)

        with tracker:
            tracker.job_started(job)
            assert tracker.active == {"1.jsonl.gz": 0}

            tracker.job_progress(
                ProgressSignal(
                    source=job.input_file.path, records=40, errors=1, peak_memory_mb=12.5
                )
            )
            assert tracker.active == {"1.jsonl.gz": 40}
            assert tracker.peak_memory_mb == 12.5

            tracker.job_finished(job, stats)

        assert tracker.active == {}
        assert tracker.files_succeeded == 1
        assert tracker.records_processed == 42
        assert "Records" in console.file.getvalue()  # type: ignore[attr-defined]

    def test_updates_without_display(self, job: FileJob) -> None:
        """Test that counters are tracked even when nothing renders."""
        tracker = ProgressTracker(quiet=True)
        stats = BatchStats(files_failed=1, records_failed=3)

        tracker.job_started(job)
        tracker.job_finished(job, stats)

        assert tracker.files_failed == 1
        assert tracker.records_failed == 3
