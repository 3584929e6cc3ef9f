"""Test fixtures for jsonl-normalize.

Provides fixtures for:
- Writing gzip JSONL inputs
- Reading processed outputs back
- Test configurations and path managers
"""

import gzip
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from jsonl_normalize.config import Config
from jsonl_normalize.storage.paths import PathManager

WriteGz = Callable[[Path, list[str]], Path]
ReadGz = Callable[[Path], list[Any]]


@pytest.fixture
def write_gz() -> WriteGz:
    """Return a helper that writes lines as a gzip JSONL file.

    Returns:
        Function taking (path, lines) and returning the path.
    """

    def _write(path: Path, lines: list[str]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with gzip.open(path, "wt", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        return path

    return _write


@pytest.fixture
def read_gz() -> ReadGz:
    """Return a helper that decodes every non-blank line of a gzip JSONL file."""

    def _read(path: Path) -> list[Any]:
        with gzip.open(path, "rt", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    return _read


@pytest.fixture
def sample_records() -> list[dict[str, Any]]:
    """CrossRef-style records exercising every normalization stage."""
    return [
        {
            "DOI": "10.1000/a",
            "published-print": {"date-parts": [[2020, 5, 17]]},
            "reference-count": 12,
            "author": [{"given": "Ada", "family": "Lovelace", "ORCID": None}],
        },
        {
            "DOI": "10.1000/b",
            "issued": {"date-parts": [[2019]]},
            "year": "2019",
            "subject": [["Physics"], ["Chemistry"]],
        },
        {
            "DOI": "10.1000/c",
            "license": [{"start": {"date-parts": [[2018, 1, 1]]}, "URL": "http://x"}],
            "year": "2018-19",
        },
    ]


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create a config rooted in a temporary directory.

    Args:
        tmp_path: Pytest temporary directory.

    Returns:
        Config with quiet processing and a small progress interval.
    """
    return Config.model_validate(
        {
            "batch": {
                "input_dir": str(tmp_path / "raw"),
                "output_dir": str(tmp_path / "processed"),
                "log_dir": str(tmp_path / "logs"),
            },
            "processor": {"quiet": True, "progress_every": 2},
        }
    )


@pytest.fixture
def path_manager(test_config: Config) -> PathManager:
    """Create a PathManager for the test config."""
    return PathManager(test_config)


@pytest.fixture
def populated_inputs(
    test_config: Config,
    write_gz: WriteGz,
    sample_records: list[dict[str, Any]],
) -> list[Path]:
    """Write inputs 1..5 into the configured input directory."""
    input_dir = test_config.batch.input_dir
    return [
        write_gz(input_dir / f"{ordinal}.jsonl.gz", [json.dumps(r) for r in sample_records])
        for ordinal in range(1, 6)
    ]
