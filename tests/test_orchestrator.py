"""Tests for the batch orchestrator."""

import asyncio
import gzip
import os
import signal
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from jsonl_normalize.config import Config, apply_overrides
from jsonl_normalize.process.jobs import BatchStats, FileJob, JobStatus
from jsonl_normalize.process.orchestrator import (
    BatchError,
    ShutdownFlag,
    build_jobs,
    partition_jobs,
    run_batch,
    run_job,
    select_inputs,
)
from jsonl_normalize.process.progress import ProgressTracker
from jsonl_normalize.storage.paths import PathManager
from jsonl_normalize.storage.validator import validate_gzip_output

WriteGz = Callable[[Path, list[str]], Path]


def _tracker() -> MagicMock:
    return MagicMock(spec=ProgressTracker)


def _outputs(config: Config) -> list[str]:
    return sorted(p.name for p in config.batch.output_dir.iterdir())


class TestSelectInputs:
    """Tests for input selection."""

    def test_all_inputs_without_resume(
        self, test_config: Config, path_manager: PathManager, populated_inputs: list[Path]
    ) -> None:
        """Test that resume off selects every input."""
        config = apply_overrides(test_config, resume=False)
        path_manager.ensure_directories()
        (path_manager.output_dir / "3_processed.jsonl.gz").write_bytes(b"")

        inputs, skipped = select_inputs(path_manager, config)

        assert [f.ordinal for f in inputs] == [1, 2, 3, 4, 5]
        assert skipped == 0

    def test_resume_skips_completed(
        self, test_config: Config, path_manager: PathManager, populated_inputs: list[Path]
    ) -> None:
        """Test that ordinals with an output are skipped."""
        path_manager.ensure_directories()
        (path_manager.output_dir / "3_processed.jsonl.gz").write_bytes(b"")
        (path_manager.output_dir / "4_processed.jsonl.gz.partial").write_bytes(b"")

        inputs, skipped = select_inputs(path_manager, test_config)

        assert [f.ordinal for f in inputs] == [1, 2, 4, 5]
        assert skipped == 1

    def test_specific_file_ignores_resume(
        self, test_config: Config, path_manager: PathManager, populated_inputs: list[Path]
    ) -> None:
        """Test that a specific file is processed even if already done."""
        config = apply_overrides(test_config, specific_file="3.jsonl.gz")
        path_manager.ensure_directories()
        (path_manager.output_dir / "3_processed.jsonl.gz").write_bytes(b"")

        inputs, skipped = select_inputs(path_manager, config)

        assert [f.ordinal for f in inputs] == [3]
        assert skipped == 0

    def test_specific_file_missing(
        self, test_config: Config, path_manager: PathManager, populated_inputs: list[Path]
    ) -> None:
        """Test that a missing specific file yields no jobs."""
        config = apply_overrides(test_config, specific_file="99.jsonl.gz")
        assert select_inputs(path_manager, config) == ([], 0)

    def test_missing_input_dir(self, test_config: Config, path_manager: PathManager) -> None:
        """Test that a missing input directory is a batch error."""
        with pytest.raises(BatchError, match="Input directory not found"):
            select_inputs(path_manager, test_config)


class TestPartitionJobs:
    """Tests for round-robin partitioning."""

    def _jobs(self, path_manager: PathManager, count: int) -> list[FileJob]:
        path_manager.input_dir.mkdir(parents=True)
        for ordinal in range(1, count + 1):
            (path_manager.input_dir / f"{ordinal}.jsonl.gz").write_bytes(b"")
        return build_jobs(path_manager, path_manager.discover_inputs())

    def test_round_robin(self, path_manager: PathManager) -> None:
        """Test that worker k gets indices k, k + n, k + 2n."""
        jobs = self._jobs(path_manager, 5)

        partitions = partition_jobs(jobs, 2)

        assert [[j.ordinal for j in part] for part in partitions] == [[1, 3, 5], [2, 4]]

    def test_more_workers_than_jobs(self, path_manager: PathManager) -> None:
        """Test that no empty partitions are created."""
        jobs = self._jobs(path_manager, 3)
        assert [[j.ordinal for j in part] for part in partition_jobs(jobs, 8)] == [[1], [2], [3]]

    def test_build_jobs_paths(self, path_manager: PathManager) -> None:
        """Test that jobs carry their artifact paths."""
        job = self._jobs(path_manager, 1)[0]

        assert job.index == 0
        assert job.status is JobStatus.PENDING
        assert job.output_path == path_manager.output_dir / "1_processed.jsonl.gz"
        assert job.staging_path.name == "1_processed.jsonl.gz.partial"
        assert job.debug_log_path.name == "1_processed.jsonl.gz.debug.log"


class TestRunBatch:
    """Tests for run_batch."""

    @pytest.mark.asyncio
    async def test_processes_all_files(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test a clean batch across several workers."""
        tracker = _tracker()

        summary = await run_batch(test_config, tracker=tracker, handle_signals=False, cpu_count=4)

        assert summary.total_files == 5
        assert summary.files_succeeded == 5
        assert summary.files_failed == 0
        assert summary.records_processed == 15
        assert summary.records_failed == 0
        assert summary.interrupted is False
        assert _outputs(test_config) == [f"{i}_processed.jsonl.gz" for i in range(1, 6)]
        for i in range(1, 6):
            output = test_config.batch.output_dir / f"{i}_processed.jsonl.gz"
            assert validate_gzip_output(output) == 3
        assert tracker.job_finished.call_count == 5
        assert tracker.job_progress.call_count == 5
        tracker.set_total.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_corrupt_file_isolated(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that a corrupt input fails alone and leaves no artifact."""
        populated_inputs[1].write_bytes(b"\x1f\x8b garbage that is not deflate")

        summary = await run_batch(test_config, handle_signals=False, cpu_count=3)

        assert summary.files_succeeded == 4
        assert summary.files_failed == 1
        assert summary.failed_files == ("2.jsonl.gz",)
        assert summary.records_processed == 12
        assert _outputs(test_config) == [
            "1_processed.jsonl.gz",
            "3_processed.jsonl.gz",
            "4_processed.jsonl.gz",
            "5_processed.jsonl.gz",
        ]

    @pytest.mark.asyncio
    async def test_empty_output_fails_validation(
        self, test_config: Config, populated_inputs: list[Path], write_gz: WriteGz
    ) -> None:
        """Test that a file with no valid records fails post-write validation."""
        write_gz(populated_inputs[0], ["{broken", "", "[1]"])

        summary = await run_batch(test_config, handle_signals=False, cpu_count=1)

        assert summary.files_succeeded == 4
        assert summary.files_failed == 1
        assert not (test_config.batch.output_dir / "1_processed.jsonl.gz").exists()
        assert not (test_config.batch.output_dir / "1_processed.jsonl.gz.partial").exists()

    @pytest.mark.asyncio
    async def test_resume_skips_existing_output(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that a prior 3_processed.jsonl.gz means no job for 3.jsonl.gz."""
        output_dir = test_config.batch.output_dir
        output_dir.mkdir(parents=True)
        previous = output_dir / "3_processed.jsonl.gz"
        previous.write_bytes(gzip.compress(b'{"previous":true}\n'))
        tracker = _tracker()

        summary = await run_batch(test_config, tracker=tracker, handle_signals=False, cpu_count=2)

        dispatched = [call.args[0].name for call in tracker.job_started.call_args_list]
        assert "3.jsonl.gz" not in dispatched
        assert sorted(dispatched) == ["1.jsonl.gz", "2.jsonl.gz", "4.jsonl.gz", "5.jsonl.gz"]
        assert summary.skipped_files == 1
        assert summary.total_files == 4
        assert gzip.decompress(previous.read_bytes()) == b'{"previous":true}\n'

    @pytest.mark.asyncio
    async def test_rerun_retries_failures(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that a resumed run picks up files that failed earlier."""
        original = populated_inputs[1].read_bytes()
        populated_inputs[1].write_bytes(b"corrupt")
        first = await run_batch(test_config, handle_signals=False, cpu_count=1)
        populated_inputs[1].write_bytes(original)

        second = await run_batch(test_config, handle_signals=False, cpu_count=1)

        assert first.files_failed == 1
        assert second.total_files == 1
        assert second.skipped_files == 4
        assert second.files_succeeded == 1

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, test_config: Config, populated_inputs: list[Path]) -> None:
        """Test a run where every file is already processed."""
        await run_batch(test_config, handle_signals=False, cpu_count=2)
        tracker = _tracker()

        summary = await run_batch(test_config, tracker=tracker, handle_signals=False)

        assert summary.total_files == 0
        assert summary.skipped_files == 5
        tracker.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_sequential_order(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that a pool of one processes files in ordinal order."""
        tracker = _tracker()

        await run_batch(test_config, tracker=tracker, handle_signals=False, cpu_count=1)

        dispatched = [call.args[0].ordinal for call in tracker.job_started.call_args_list]
        assert dispatched == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_summary_same_without_tracker(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that the reporter has no effect on counters."""
        with_tracker = await run_batch(
            apply_overrides(test_config, resume=False),
            tracker=_tracker(),
            handle_signals=False,
            cpu_count=3,
        )
        without = await run_batch(
            apply_overrides(test_config, resume=False), handle_signals=False, cpu_count=3
        )

        timing = {"elapsed_seconds", "files_per_second", "records_per_second"}
        assert {k: v for k, v in with_tracker.to_dict().items() if k not in timing} == {
            k: v for k, v in without.to_dict().items() if k not in timing
        }

    @pytest.mark.asyncio
    async def test_missing_input_dir(self, test_config: Config) -> None:
        """Test that a missing input directory raises."""
        with pytest.raises(BatchError):
            await run_batch(test_config, handle_signals=False)

    @pytest.mark.asyncio
    async def test_debug_sidecars(self, test_config: Config, populated_inputs: list[Path]) -> None:
        """Test that debug mode writes one sidecar per output."""
        config = apply_overrides(test_config, debug_mode=True, specific_file="1.jsonl.gz")

        await run_batch(config, handle_signals=False)

        sidecar = config.batch.output_dir / "1_processed.jsonl.gz.debug.log"
        assert "problematic year value" in sidecar.read_text()


class TestShutdown:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_preset_flag_dispatches_nothing(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that no job starts once shutdown was requested."""
        shutdown = ShutdownFlag()
        shutdown.request("SIGINT")
        tracker = _tracker()

        summary = await run_batch(
            test_config, tracker=tracker, shutdown=shutdown, handle_signals=False, cpu_count=3
        )

        tracker.job_started.assert_not_called()
        assert summary.interrupted is True
        assert summary.files_succeeded == 0
        assert not list(test_config.batch.output_dir.iterdir())

    @pytest.mark.asyncio
    async def test_in_flight_job_finishes(
        self, test_config: Config, populated_inputs: list[Path]
    ) -> None:
        """Test that a request mid-run lets the current job finish and stops."""
        shutdown = ShutdownFlag()
        tracker = _tracker()
        tracker.job_started.side_effect = lambda job: shutdown.request("SIGTERM")

        summary = await run_batch(
            test_config, tracker=tracker, shutdown=shutdown, handle_signals=False, cpu_count=1
        )

        assert summary.interrupted is True
        assert summary.files_succeeded == 1
        assert _outputs(test_config) == ["1_processed.jsonl.gz"]
        assert shutdown.reason == "SIGTERM"

    @pytest.mark.asyncio
    async def test_signal_sets_flag(self) -> None:
        """Test that SIGTERM is routed to the flag while installed."""
        loop = asyncio.get_running_loop()
        shutdown = ShutdownFlag()
        shutdown.install(loop)
        try:
            assert signal.SIGTERM in shutdown._installed
            os.kill(os.getpid(), signal.SIGTERM)
            for _ in range(50):
                if shutdown.is_set:
                    break
                await asyncio.sleep(0.01)
        finally:
            shutdown.uninstall(loop)

        assert shutdown.is_set
        assert shutdown.reason == "SIGTERM"

    def test_request_is_idempotent(self) -> None:
        """Test that later requests keep the first reason."""
        shutdown = ShutdownFlag()
        shutdown.request("SIGINT")
        shutdown.request("SIGTERM")
        assert shutdown.reason == "SIGINT"


class TestRunJob:
    """Tests for a single job."""

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_failed(
        self,
        test_config: Config,
        path_manager: PathManager,
        populated_inputs: list[Path],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that an unexpected exception fails the job without escaping."""

        def explode(*args: object, **kwargs: object) -> None:
            raise RuntimeError("unexpected")

        monkeypatch.setattr("jsonl_normalize.process.orchestrator.process_file", explode)
        path_manager.ensure_directories()
        job = build_jobs(path_manager, path_manager.discover_inputs()[:1])[0]
        stats = BatchStats(total_files=1)

        result = await run_job(job, test_config.processor, stats, _tracker())

        assert result.status is JobStatus.FAILED
        assert "unexpected" in (result.error or "")
        assert stats.files_failed == 1
