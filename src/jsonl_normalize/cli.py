"""CLI entry point for jsonl-normalize.

Commands:
- run: Normalize every pending dump in the input directory
- process-file: Normalize a single file
- verify: Check processed artifacts against the warehouse contract
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from jsonl_normalize import __version__
from jsonl_normalize.config import Config, ProcessorOptions, apply_overrides, load_config
from jsonl_normalize.errors import FileProcessingError
from jsonl_normalize.logging import add_file_handler, flush_logging, get_logger, setup_logging
from jsonl_normalize.process.file_processor import process_file
from jsonl_normalize.process.jobs import BatchSummary
from jsonl_normalize.process.orchestrator import run_batch
from jsonl_normalize.process.progress import ProgressTracker
from jsonl_normalize.storage.paths import PathManager
from jsonl_normalize.storage.validator import verify_output_dir

console = Console()
logger = get_logger(__name__)


def _print_traceback(ctx: click.Context) -> None:
    if ctx.obj.get("verbose"):
        import traceback

        console.print("\n[dim]Traceback:[/dim]")
        console.print(traceback.format_exc())


@click.group()
@click.version_option(version=__version__, prog_name="jsonl-normalize")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Normalize line-delimited JSON dumps for warehouse ingestion.

    Flattens nested arrays, converts date-parts to ISO dates, fixes year
    fields, removes nulls and replaces hyphens in keys.

    \b
    Quick Start:
        1. Put <n>.jsonl.gz dumps in data/raw
        2. Run: jsonl-normalize run
        3. Check: jsonl-normalize verify data/processed
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config.yaml file",
)
@click.option("--input-dir", type=click.Path(path_type=Path), default=None, help="Raw dumps")
@click.option(
    "--output-dir", type=click.Path(path_type=Path), default=None, help="Processed outputs"
)
@click.option("--log-dir", type=click.Path(path_type=Path), default=None, help="Run logs")
@click.option(
    "--resume/--no-resume",
    default=None,
    envvar="RESUME",
    help="Skip inputs that already have a processed output (default: on)",
)
@click.option(
    "--file",
    "specific_file",
    default=None,
    envvar="FILE",
    help="Process only this input file",
)
@click.option("--jobs", "-j", type=int, default=None, help="Cap on concurrent files")
@click.option(
    "--debug/--no-debug",
    default=None,
    envvar="DEBUG",
    help="Write a .debug.log sidecar per file",
)
@click.option(
    "--quiet/--no-quiet",
    default=None,
    envvar="QUIET",
    help="No progress display or per-line messages",
)
@click.option("--no-log-file", is_flag=True, default=False, help="Don't write a run log file")
@click.pass_context
def run(
    ctx: click.Context,
    config: Path | None,
    input_dir: Path | None,
    output_dir: Path | None,
    log_dir: Path | None,
    resume: bool | None,
    specific_file: str | None,
    jobs: int | None,
    debug: bool | None,
    quiet: bool | None,
    no_log_file: bool,
) -> None:
    """Normalize every pending dump in the input directory.

    Inputs named <ordinal>.jsonl.gz are processed in ascending ordinal order
    into <ordinal>_processed.jsonl.gz. Files that fail are removed and
    reported; the run still exits 0. Rerunning with resume picks up whatever
    is missing, including earlier failures.
    """
    try:
        cfg = load_config(config) if config else Config()
        cfg = apply_overrides(
            cfg,
            input_dir=input_dir,
            output_dir=output_dir,
            log_dir=log_dir,
            resume=resume,
            specific_file=specific_file,
            max_concurrency=jobs,
            debug_mode=debug,
            quiet=quiet,
        )
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {e}")
        raise click.Abort() from e

    paths = PathManager(cfg)
    if not no_log_file:
        log_path = paths.run_log_path(datetime.now(UTC))
        add_file_handler(log_path)
        logger.info("Logging to %s", log_path)

    tracker = ProgressTracker(quiet=cfg.processor.quiet)

    try:
        summary = asyncio.run(run_batch(cfg, tracker=tracker))
    except Exception as e:
        logger.exception("Fatal error in main process")
        flush_logging()
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        _print_traceback(ctx)
        raise click.Abort() from e

    _print_summary(summary)


def _print_summary(summary: BatchSummary) -> None:
    table = Table(title="Processing Summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total time", f"{summary.elapsed_seconds:.1f}s")
    table.add_row("Files succeeded", f"[green]{summary.files_succeeded}[/green]")
    table.add_row("Files failed", f"[red]{summary.files_failed}[/red]")
    table.add_row("Files skipped (resume)", str(summary.skipped_files))
    table.add_row("Records processed", f"{summary.records_processed:,}")
    table.add_row("Record errors", f"{summary.records_failed:,}")
    table.add_row(
        "Performance",
        f"{summary.files_per_second:.2f} files/sec, {summary.records_per_second:,.0f} records/sec",
    )
    console.print()
    console.print(table)

    for name in summary.failed_files:
        console.print(f"  [red]✗[/red] {name}")
    if summary.interrupted:
        console.print("\n[yellow]Interrupted: rerun to process remaining files[/yellow]")


@main.command(name="process-file")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--debug", is_flag=True, default=False, help="Write a .debug.log sidecar")
@click.option("--quiet", is_flag=True, default=False, help="No per-line messages")
@click.option("--progress-every", type=click.IntRange(min=1), default=1000, show_default=True)
@click.pass_context
def process_file_command(
    ctx: click.Context,
    source: Path,
    destination: Path,
    debug: bool,
    quiet: bool,
    progress_every: int,
) -> None:
    """Normalize a single SOURCE file into DESTINATION (.jsonl.gz)."""
    options = ProcessorOptions(debug_mode=debug, quiet=quiet, progress_every=progress_every)

    try:
        result = process_file(source, destination, options)
    except FileProcessingError as e:
        console.print(f"[bold red]Failed:[/bold red] {e}")
        _print_traceback(ctx)
        raise click.Abort() from e

    console.print(f"[bold green]Wrote {destination}[/bold green]")
    console.print(f"  Records: {result.records_written:,}")
    console.print(f"  Errors: {result.records_failed:,}")


@main.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.option("--max-shown", type=int, default=20, show_default=True, help="Violations to list")
def verify(directory: Path, max_shown: int) -> None:
    """Check processed artifacts in DIRECTORY against the warehouse contract.

    Every line must be a JSON object with no nested arrays, no null values
    and no hyphenated keys.
    """
    report = verify_output_dir(directory)

    console.print(f"[bold]Files checked:[/bold] {report.files_checked}")
    console.print(f"[bold]Records:[/bold] {report.valid_records:,}/{report.total_records:,} valid")

    for note in report.notes[:max_shown]:
        console.print(f"  [yellow]![/yellow] {note}")
    for violation in report.violations[:max_shown]:
        console.print(f"  [red]✗[/red] {violation}")
    hidden = len(report.violations) - max_shown
    if hidden > 0:
        console.print(f"  ... and {hidden} more")

    if not report.valid:
        console.print("\n[bold red]Verification failed[/bold red]")
        raise click.Abort()

    console.print("\n[bold green]All files valid[/bold green]")


if __name__ == "__main__":
    main()
