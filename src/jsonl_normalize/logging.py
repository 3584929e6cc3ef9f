"""Logging configuration.

Every module logs through ``logging.getLogger(__name__)``; this module only
wires handlers onto the root logger. Batch runs add a file handler so each
run leaves a ``process_<timestamp>.log`` behind.
"""

import logging
from pathlib import Path

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_FORMAT = '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure the root logger for the CLI.

    Args:
        verbose: Log at DEBUG instead of INFO.
        json_format: Emit one JSON object per record, for log shippers.
        log_file: Also write every record to this file.
    """
    level = logging.DEBUG if verbose else logging.INFO
    format_str = JSON_FORMAT if json_format else TEXT_FORMAT

    # No-op if the root logger already has handlers
    logging.basicConfig(level=level, format=format_str, datefmt=DATE_FORMAT)
    logging.getLogger().setLevel(level)

    if log_file is not None:
        add_file_handler(log_file, format_str)


def add_file_handler(log_file: Path, format_str: str | None = None) -> logging.FileHandler:
    """Attach a file handler to the root logger.

    Args:
        log_file: Log file path; parent directories are created.
        format_str: Record format. Defaults to the console format.

    Returns:
        The installed handler.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(format_str or TEXT_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger().addHandler(handler)
    return handler


def flush_logging() -> None:
    """Flush every handler on the root logger."""
    for handler in logging.getLogger().handlers:
        handler.flush()


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)
