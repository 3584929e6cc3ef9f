"""Validation of processed artifacts.

Two levels:
- ``validate_gzip_output``: the post-write check run on every job. Fully
  decompresses the artifact and requires at least one non-blank line.
- ``ContractChecker``: line-by-line check of the warehouse contract (one JSON
  object per line, no nested arrays, no hyphenated keys, no nulls). Backs the
  ``verify`` command.
"""

from __future__ import annotations

import json
import logging
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jsonl_normalize.errors import OutputValidationError
from jsonl_normalize.storage.paths import OUTPUT_SUFFIX
from jsonl_normalize.storage.writer import iter_lines

logger = logging.getLogger(__name__)

# Cap per-line violations so a badly broken file doesn't flood the report
MAX_VIOLATIONS_PER_LINE = 5


def validate_gzip_output(path: Path) -> int:
    """Confirm an artifact is a complete gzip stream with content.

    Args:
        path: Artifact to check. Always read as gzip regardless of suffix.

    Returns:
        Number of non-blank lines.

    Raises:
        OutputValidationError: If the file is missing, not gzip, truncated,
            or holds no non-blank line.
    """
    if not path.exists():
        raise OutputValidationError(path, "file does not exist")

    non_blank = 0
    try:
        for _, line in iter_lines(path, compressed=True):
            if line.strip():
                non_blank += 1
    except (OSError, EOFError, zlib.error) as e:
        # gzip.BadGzipFile is an OSError
        msg = f"invalid gzip stream: {e}"
        raise OutputValidationError(path, msg) from e

    if non_blank == 0:
        raise OutputValidationError(path, "empty output")

    logger.debug("Validated %s: %d lines", path, non_blank)
    return non_blank


@dataclass(frozen=True)
class ContractViolation:
    """One way an artifact breaks the warehouse contract."""

    path: Path
    line_number: int | None
    code: str
    detail: str
    fatal: bool = True

    def __str__(self) -> str:
        location = str(self.path)
        if self.line_number is not None:
            location = f"{location}:{self.line_number}"
        return f"{location}: {self.code}: {self.detail}"


@dataclass
class VerificationReport:
    """Findings for one artifact or a directory of them.

    Attributes:
        files_checked: Artifacts opened.
        total_records: Non-blank lines seen.
        valid_records: Lines that met the contract.
        violations: Everything found, in file and line order.
        notes: Non-fatal observations such as blank lines.
    """

    files_checked: int = 0
    total_records: int = 0
    valid_records: int = 0
    violations: list[ContractViolation] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        """True when no fatal violation was recorded."""
        return not any(v.fatal for v in self.violations)

    def flag(
        self,
        path: Path,
        code: str,
        detail: str,
        line_number: int | None = None,
        fatal: bool = True,
    ) -> None:
        """Record a violation."""
        self.violations.append(ContractViolation(path, line_number, code, detail, fatal))

    def absorb(self, other: VerificationReport) -> None:
        """Fold another report's counts and findings into this one."""
        self.files_checked += other.files_checked
        self.total_records += other.total_records
        self.valid_records += other.valid_records
        self.violations += other.violations
        self.notes += other.notes


def find_contract_violations(value: Any, location: str = "$") -> list[tuple[str, str]]:
    """Walk a decoded record and list downstream contract violations.

    Args:
        value: Decoded JSON value.
        location: JSONPath-like location of ``value``.

    Returns:
        List of (code, detail) pairs.
    """
    violations: list[tuple[str, str]] = []

    if value is None:
        violations.append(("NULL_VALUE", f"null at {location}"))
    elif isinstance(value, list):
        if any(isinstance(item, list) for item in value):
            violations.append(("NESTED_ARRAY", f"array of arrays at {location}"))
        for index, item in enumerate(value):
            violations.extend(find_contract_violations(item, f"{location}[{index}]"))
    elif isinstance(value, dict):
        for key, item in value.items():
            if "-" in key:
                violations.append(("HYPHENATED_KEY", f"key {key!r} at {location}"))
            violations.extend(find_contract_violations(item, f"{location}.{key}"))

    return violations


def check_line(line: bytes) -> list[tuple[str, str]]:
    """Contract violations of one serialized record; empty when it's clean."""
    try:
        record = json.loads(line)
    except ValueError as e:
        return [("INVALID_JSON", str(e))]

    if not isinstance(record, dict):
        return [("NOT_AN_OBJECT", f"top-level {type(record).__name__}")]

    return find_contract_violations(record)[:MAX_VIOLATIONS_PER_LINE]


class ContractChecker:
    """Checks processed artifacts against the warehouse contract."""

    def __init__(self, pattern: str = f"*{OUTPUT_SUFFIX}") -> None:
        """Initialize checker.

        Args:
            pattern: Glob selecting artifacts in ``check_directory``.
        """
        self.pattern = pattern

    def check_file(self, path: Path) -> VerificationReport:
        """Check every line of one artifact.

        A missing or unreadable artifact, or one without records, is itself
        a violation.
        """
        report = VerificationReport(files_checked=1)

        if not path.is_file():
            report.flag(path, "FILE_NOT_FOUND", "no such artifact")
            return report

        try:
            for line_number, line in iter_lines(path, compressed=True):
                if not line.strip():
                    report.notes.append(f"{path}:{line_number}: blank line")
                    continue

                report.total_records += 1
                problems = check_line(line)
                for code, detail in problems:
                    report.flag(path, code, detail, line_number)
                if not problems:
                    report.valid_records += 1
        except (OSError, EOFError, zlib.error) as e:
            report.flag(path, "FILE_ERROR", f"unreadable after {report.total_records} records: {e}")
            return report

        if report.total_records == 0:
            report.flag(path, "EMPTY_FILE", "no records")
        return report

    def check_directory(self, directory: Path) -> VerificationReport:
        """Check every artifact in a directory, in name order."""
        report = VerificationReport()

        if not directory.is_dir():
            report.flag(directory, "DIRECTORY_NOT_FOUND", "no such directory")
            return report

        artifacts = sorted(directory.glob(self.pattern))
        if not artifacts:
            report.notes.append(f"{directory}: nothing matches {self.pattern}")

        for artifact in artifacts:
            logger.info("Verifying %s", artifact.name)
            report.absorb(self.check_file(artifact))

        return report


def verify_output_dir(directory: Path) -> VerificationReport:
    """Check every processed artifact in a directory."""
    return ContractChecker().check_directory(directory)
