"""Path management for input dumps, processed outputs and logs."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from jsonl_normalize.config import Config

logger = logging.getLogger(__name__)

INPUT_SUFFIX = ".jsonl.gz"
OUTPUT_SUFFIX = "_processed.jsonl.gz"
STAGING_SUFFIX = ".partial"
DEBUG_LOG_SUFFIX = ".debug.log"

INPUT_PATTERN = re.compile(r"^(\d+)\.jsonl\.gz$")
OUTPUT_PATTERN = re.compile(r"^(\d+)_processed\.jsonl\.gz$")


@dataclass(frozen=True, order=True)
class InputFile:
    """A discovered input dump.

    Attributes:
        ordinal: Leading numeric segment of the filename; defines processing order.
        path: Path to the ``<ordinal>.jsonl.gz`` file.
    """

    ordinal: int
    path: Path = field(compare=False)

    @property
    def stem(self) -> str:
        """Filename without ``.jsonl.gz``, leading zeros preserved."""
        return self.path.name[: -len(INPUT_SUFFIX)]


def parse_input_ordinal(name: str) -> int | None:
    """Return the ordinal of an input filename, or None if it doesn't match."""
    match = INPUT_PATTERN.match(name)
    return int(match.group(1)) if match else None


def parse_output_ordinal(name: str) -> int | None:
    """Return the ordinal of a processed output filename, or None."""
    match = OUTPUT_PATTERN.match(name)
    return int(match.group(1)) if match else None


class PathManager:
    """Manages paths for a batch run.

    Layout:
    - Input: <input_dir>/<ordinal>.jsonl.gz
    - Output: <output_dir>/<ordinal>_processed.jsonl.gz
    - Staging: <output_dir>/<ordinal>_processed.jsonl.gz.partial
    - Debug sidecar: <output_dir>/<ordinal>_processed.jsonl.gz.debug.log
    - Run log: <log_dir>/process_<timestamp>.log
    """

    def __init__(self, config: Config) -> None:
        """Initialize path manager with configuration.

        Args:
            config: Application configuration.
        """
        self.config = config

    @property
    def input_dir(self) -> Path:
        """Directory holding the raw dumps."""
        return Path(self.config.batch.input_dir)

    @property
    def output_dir(self) -> Path:
        """Directory receiving processed artifacts."""
        return Path(self.config.batch.output_dir)

    @property
    def log_dir(self) -> Path:
        """Directory receiving run logs."""
        return Path(self.config.batch.log_dir)

    def ensure_directories(self) -> None:
        """Create output and log directories if missing."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def discover_inputs(self) -> list[InputFile]:
        """List input dumps sorted by numeric ordinal.

        Files that don't follow ``<ordinal>.jsonl.gz`` are ignored.

        Raises:
            FileNotFoundError: If the input directory doesn't exist.
        """
        if not self.input_dir.is_dir():
            msg = f"Input directory not found: {self.input_dir}"
            raise FileNotFoundError(msg)

        inputs: list[InputFile] = []
        for path in self.input_dir.iterdir():
            ordinal = parse_input_ordinal(path.name)
            if ordinal is None or not path.is_file():
                logger.debug("Ignoring %s", path.name)
                continue
            inputs.append(InputFile(ordinal=ordinal, path=path))

        return sorted(inputs)

    def find_input(self, name: str) -> InputFile | None:
        """Resolve a specific input file by name (directory parts are ignored)."""
        filename = Path(name).name
        ordinal = parse_input_ordinal(filename)
        if ordinal is None:
            logger.error("%s does not match <ordinal>%s", filename, INPUT_SUFFIX)
            return None

        path = self.input_dir / filename
        if not path.is_file():
            logger.error("Specified file not found: %s", path)
            return None

        return InputFile(ordinal=ordinal, path=path)

    def completed_ordinals(self) -> set[int]:
        """Ordinals that already have a processed artifact in the output directory."""
        if not self.output_dir.is_dir():
            return set()

        completed: set[int] = set()
        for path in self.output_dir.iterdir():
            ordinal = parse_output_ordinal(path.name)
            if ordinal is not None:
                completed.add(ordinal)
        return completed

    def output_path(self, input_file: InputFile) -> Path:
        """Final processed artifact for an input."""
        return self.output_dir / f"{input_file.stem}{OUTPUT_SUFFIX}"

    def staging_path(self, input_file: InputFile) -> Path:
        """Temporary artifact written before validation and promotion."""
        return self.output_dir / f"{input_file.stem}{OUTPUT_SUFFIX}{STAGING_SUFFIX}"

    def debug_log_path(self, input_file: InputFile) -> Path:
        """Debug sidecar for an input."""
        return debug_log_path_for(self.output_path(input_file))

    def run_log_path(self, started_at: datetime) -> Path:
        """Log file for one batch run."""
        return self.log_dir / f"process_{started_at.strftime('%Y-%m-%dT%H-%M-%S')}.log"


def debug_log_path_for(destination: Path) -> Path:
    """Debug sidecar path next to a destination artifact."""
    return destination.with_name(destination.name + DEBUG_LOG_SUFFIX)
