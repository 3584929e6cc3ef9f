"""Streaming processor for one compressed JSONL file.

Reads the source line by line, runs each record through the normalization
pipeline and streams the result into a gzip writer. Memory use stays flat
regardless of file size: one line is in flight at a time, plus the writer's
bounded buffer and the codec state.

Failures come in two tiers:
- a bad line (invalid JSON, non-object record, encoding error) is counted and
  skipped;
- a stream failure (unreadable or corrupt source, write error) deletes the
  partial destination and raises ``FileProcessingError``.
"""

import contextlib
import logging
import re
import resource
import sys
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import IO

from jsonl_normalize.config import ProcessorOptions
from jsonl_normalize.errors import FileProcessingError, RecordError
from jsonl_normalize.normalize.pipeline import SerializedRecord, transform_line
from jsonl_normalize.storage.paths import debug_log_path_for
from jsonl_normalize.storage.writer import GzipJSONLWriter, iter_lines

logger = logging.getLogger(__name__)

# Raw-text scan for year values, used only for debug diagnostics
_YEAR_VALUE = re.compile(r'"year"\s*:\s*("[^"]*"|[^,}\]]*)')
_QUOTED_DIGITS = re.compile(r'"[0-9]+"')

EXCERPT_CHARS = 500


@dataclass(frozen=True)
class ProgressSignal:
    """Periodic progress emitted while a file is processed."""

    source: Path
    records: int
    errors: int
    peak_memory_mb: float


@dataclass(frozen=True)
class FileResult:
    """Outcome of a completed file."""

    records_written: int
    records_failed: int


ProgressCallback = Callable[[ProgressSignal], None]


def peak_memory_mb() -> float:
    """Peak resident set size of this process in MB."""
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform == "darwin":
        return peak / (1024 * 1024)
    return peak / 1024


def find_suspicious_years(text: str) -> list[str]:
    """Return raw ``year`` values that look like ranges, dates or words."""
    suspicious: list[str] = []
    for match in _YEAR_VALUE.finditer(text):
        value = match.group(1).strip()
        if "-" in value or "/" in value:
            suspicious.append(value)
        elif value.startswith('"') and not _QUOTED_DIGITS.fullmatch(value):
            suspicious.append(value)
    return suspicious


def _excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class DebugSidecar:
    """Per-file diagnostic log written when debug mode is on.

    Records malformed lines, suspicious ``year`` forms and corrective
    flattening. Never affects processing outcomes.
    """

    def __init__(self, path: Path, source: Path) -> None:
        """Initialize sidecar.

        Args:
            path: Sidecar log path.
            source: Input file the log describes.
        """
        self.path = path
        self.source = source
        self._file: IO[str] | None = None

    def __enter__(self) -> "DebugSidecar":
        """Open the sidecar."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w", encoding="utf-8", errors="backslashreplace")
        self._write(f"Debug log for {self.source}\n")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the sidecar."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def _write(self, text: str) -> None:
        if self._file is not None:
            self._file.write(text)

    def malformed(self, line_number: int, error: Exception, raw: bytes) -> None:
        """Record a line that was dropped."""
        content = raw.decode("utf-8", errors="replace")
        self._write(f"ERROR at line {line_number}: {error}\n")
        self._write(f"Line content: {_excerpt(content)}\n\n")

    def inspect(self, line_number: int, original: str, serialized: SerializedRecord) -> None:
        """Record suspicious patterns in a line that was written."""
        if serialized.unrepaired is not None:
            self._write(f"WARNING: Line {line_number} still contained nested arrays\n")
            self._write(f"JSON: {_excerpt(serialized.unrepaired)}\n")
            self._write(f"After final fix: {_excerpt(serialized.text)}\n\n")

        if '"year"' not in original:
            return
        for value in find_suspicious_years(original):
            self._write(f"Line {line_number}: Found problematic year value: {value}\n")
            self._write(f"Original: {_excerpt(original, 200)}\n")
            self._write(f"Processed: {_excerpt(serialized.text, 200)}\n\n")


def process_file(
    source: Path,
    destination: Path,
    options: ProcessorOptions | None = None,
    on_progress: ProgressCallback | None = None,
    debug_log: Path | None = None,
) -> FileResult:
    """Normalize one JSONL file into a gzip JSONL destination.

    Args:
        source: Input file; gzip if the name ends in ``.gz``.
        destination: Output ``.jsonl.gz`` path; created or truncated.
        options: Processor options. Defaults to ``ProcessorOptions()``.
        on_progress: Called every ``options.progress_every`` written records.
        debug_log: Sidecar path for debug mode. Defaults to
            ``<destination>.debug.log``.

    Returns:
        FileResult with written and failed record counts.

    Raises:
        FileProcessingError: If the source can't be read or decompressed, or
            the destination can't be written (the destination is deleted), or
            if the destination names the source file.
    """
    options = options or ProcessorOptions()
    if _same_file(source, destination):
        # The writer truncates the destination before the first read
        raise FileProcessingError(source, "destination is the source file")

    records = 0
    errors = 0
    line_number = 0

    with contextlib.ExitStack() as stack:
        sidecar: DebugSidecar | None = None
        try:
            if options.debug_mode:
                sidecar = stack.enter_context(
                    DebugSidecar(debug_log or debug_log_path_for(destination), source)
                )

            with GzipJSONLWriter(destination, compress_level=options.compress_level) as writer:
                for line_number, raw in iter_lines(source):
                    if not raw.strip():
                        continue

                    try:
                        text = raw.decode("utf-8")
                        serialized = transform_line(text)
                    except (RecordError, UnicodeDecodeError) as e:
                        errors += 1
                        if not options.quiet:
                            logger.warning(
                                "Error processing JSON at %s:%d: %s", source, line_number, e
                            )
                        if sidecar is not None:
                            sidecar.malformed(line_number, e, raw)
                        continue

                    writer.write_line(serialized.to_bytes())
                    records += 1

                    if sidecar is not None:
                        sidecar.inspect(line_number, text, serialized)

                    if records % options.progress_every == 0:
                        _emit_progress(source, records, errors, options, on_progress)

        except (OSError, EOFError, zlib.error) as e:
            # gzip.BadGzipFile is an OSError; EOFError means a truncated stream
            if not options.quiet:
                logger.error("Stream error in %s near line %d: %s", source, line_number, e)
            raise FileProcessingError(source, str(e), line_number) from e

    if not options.quiet:
        logger.info(
            "Finished processing %s: %d records, %d errors", source.name, records, errors
        )
    return FileResult(records_written=records, records_failed=errors)


def _same_file(source: Path, destination: Path) -> bool:
    """True when both paths name one file, through symlinks or hard links."""
    if source.resolve() == destination.resolve():
        return True
    try:
        return destination.exists() and destination.samefile(source)
    except OSError:
        # Missing source; iter_lines reports it as a stream error
        return False


def _emit_progress(
    source: Path,
    records: int,
    errors: int,
    options: ProcessorOptions,
    on_progress: ProgressCallback | None,
) -> None:
    signal = ProgressSignal(
        source=source,
        records=records,
        errors=errors,
        peak_memory_mb=peak_memory_mb(),
    )
    if not options.quiet:
        logger.info(
            "Processed %d lines of %s. Memory: %.0fMB peak RSS",
            records,
            source.name,
            signal.peak_memory_mb,
        )
    if on_progress is not None:
        on_progress(signal)
