"""Gzip JSONL reading and writing."""

import contextlib
import gzip
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

logger = logging.getLogger(__name__)

DEFAULT_COMPRESS_LEVEL = 6


def open_source(path: Path, compressed: bool | None = None) -> IO[bytes]:
    """Open a JSONL source for binary reading.

    Args:
        path: File to open.
        compressed: Force gzip on or off. Inferred from a ``.gz`` suffix if None.

    Returns:
        Binary file object yielding decompressed bytes.
    """
    if compressed is None:
        compressed = path.suffix == ".gz"
    if compressed:
        return gzip.open(path, "rb")
    return path.open("rb")


def iter_lines(path: Path, compressed: bool | None = None) -> Iterator[tuple[int, bytes]]:
    """Stream lines from a (possibly gzipped) JSONL file.

    Splits on ``\\n``, ``\\r\\n`` and lone ``\\r``. Line terminators are
    stripped; blank lines are yielded so that numbering matches the source.

    Args:
        path: File to read.
        compressed: Passed to ``open_source``.

    Yields:
        Tuples of (1-based line number, raw line bytes).

    Raises:
        OSError: If the file can't be read.
        gzip.BadGzipFile: If the gzip header is invalid.
        EOFError: If the gzip stream is truncated.
    """
    line_number = 0
    with open_source(path, compressed) as f:
        for chunk in f:
            for line in chunk.splitlines():
                line_number += 1
                yield line_number, line


class GzipJSONLWriter:
    """Incremental gzip JSONL writer.

    Lines are buffered up to ``buffer_size`` before being handed to the
    compressor, so memory stays bounded regardless of file size. If the
    context exits with an exception the partial file is deleted.

    Example:
        with GzipJSONLWriter(Path("data/processed/1_processed.jsonl.gz")) as writer:
            writer.write_line(b'{"id":1}')
    """

    def __init__(
        self,
        path: Path,
        compress_level: int = DEFAULT_COMPRESS_LEVEL,
        buffer_size: int = 256,
    ) -> None:
        """Initialize writer.

        Args:
            path: Destination ``.jsonl.gz`` path.
            compress_level: gzip compression level (1-9).
            buffer_size: Flush to the compressor after this many lines.
        """
        self.path = path
        self.compress_level = compress_level
        self.buffer_size = buffer_size
        self._file: gzip.GzipFile | None = None
        self._buffer: list[bytes] = []
        self._record_count = 0

    @property
    def record_count(self) -> int:
        """Number of lines accepted so far."""
        return self._record_count

    def __enter__(self) -> "GzipJSONLWriter":
        """Enter context manager."""
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context manager, discarding the file on error."""
        if exc_type is None:
            try:
                self.close()
            except BaseException:
                self.abort()
                raise
        else:
            self.abort()

    def open(self) -> None:
        """Create (or truncate) the destination."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = gzip.GzipFile(self.path, mode="wb", compresslevel=self.compress_level)

    def write_line(self, line: bytes) -> None:
        """Queue one serialized record; a newline is appended."""
        self._buffer.append(line)
        self._record_count += 1
        if len(self._buffer) >= self.buffer_size:
            self.flush()

    def flush(self) -> None:
        """Hand buffered lines to the compressor."""
        if self._buffer and self._file is not None:
            self._file.write(b"\n".join(self._buffer) + b"\n")
            self._buffer.clear()

    def close(self) -> None:
        """Flush buffer, finish the gzip stream and close the file."""
        if self._file is not None:
            self.flush()
            self._file.close()
            self._file = None

    def abort(self) -> None:
        """Close without flushing and delete the partial file."""
        self._buffer.clear()
        if self._file is not None:
            # The original failure is already propagating
            with contextlib.suppress(OSError):
                self._file.close()
            self._file = None
        self.path.unlink(missing_ok=True)
        logger.debug("Removed partial output %s", self.path)
