"""Storage utilities for input discovery, gzip JSONL I/O and output validation."""

from jsonl_normalize.storage.paths import InputFile, PathManager
from jsonl_normalize.storage.validator import (
    ContractChecker,
    ContractViolation,
    VerificationReport,
    validate_gzip_output,
    verify_output_dir,
)
from jsonl_normalize.storage.writer import GzipJSONLWriter, iter_lines, open_source

__all__ = [
    "ContractChecker",
    "ContractViolation",
    "GzipJSONLWriter",
    "InputFile",
    "PathManager",
    "VerificationReport",
    "iter_lines",
    "open_source",
    "validate_gzip_output",
    "verify_output_dir",
]
