"""Exception hierarchy shared across the package."""

from pathlib import Path


class NormalizeError(Exception):
    """Base class for all jsonl-normalize errors."""


class RecordError(NormalizeError):
    """Raised when a single record cannot be normalized or serialized.

    Record errors are counted by the file processor and never abort the file.
    """


class FileProcessingError(NormalizeError):
    """Raised when a whole file fails (unreadable source, bad gzip, write error)."""

    def __init__(self, source: Path, message: str, line_number: int | None = None) -> None:
        self.source = source
        self.line_number = line_number
        location = f"{source}:{line_number}" if line_number is not None else str(source)
        super().__init__(f"{location}: {message}")


class OutputValidationError(NormalizeError):
    """Raised when a written artifact fails the post-write decompression check."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")
