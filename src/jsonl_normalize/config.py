"""Configuration loading and validation."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class ProcessorOptions(BaseModel):
    """Per-file processor options."""

    debug_mode: bool = Field(default=False, description="Write a debug sidecar per file")
    quiet: bool = Field(default=False, description="Suppress per-file progress and line errors")
    progress_every: int = Field(default=1000, ge=1, description="Records between progress signals")
    compress_level: int = Field(default=6, ge=1, le=9)


class BatchConfig(BaseModel):
    """Batch orchestrator configuration."""

    input_dir: Path = Field(default=Path("./data/raw"))
    output_dir: Path = Field(default=Path("./data/processed"))
    log_dir: Path = Field(default=Path("./logs"))
    resume: bool = True
    specific_file: str | None = Field(
        default=None, description="Process only this input file (resume is not consulted)"
    )
    max_concurrency: int | None = Field(
        default=None, ge=1, description="Cap on the worker pool size"
    )

    @field_validator("specific_file")
    @classmethod
    def blank_is_none(cls, v: str | None) -> str | None:
        """Treat an empty file name as unset."""
        if v is not None and not v.strip():
            return None
        return v

    def pool_size(self, cpu_count: int | None = None) -> int:
        """Worker pool size: one less than the CPU count, at least 1.

        Args:
            cpu_count: Override for the detected CPU count.

        Returns:
            Number of concurrent file jobs.
        """
        cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        size = max(1, cpus - 1)
        if self.max_concurrency is not None:
            size = min(size, self.max_concurrency)
        return size


class Config(BaseModel):
    """Root configuration model."""

    batch: BatchConfig = Field(default_factory=BatchConfig)
    processor: ProcessorOptions = Field(default_factory=ProcessorOptions)


def load_config(path: Path) -> Config:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValidationError: If the config is invalid.
    """
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open() as f:
        raw_config: dict[str, Any] | None = yaml.safe_load(f)

    return Config.model_validate(raw_config or {})


def apply_overrides(config: Config, **overrides: Any) -> Config:
    """Return a copy of the config with non-None overrides applied.

    Keys are looked up on ``batch`` first, then ``processor``.

    Args:
        config: Base configuration.
        **overrides: Field values; None means "keep the configured value".

    Returns:
        New validated Config.
    """
    data = config.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        if key in BatchConfig.model_fields:
            data["batch"][key] = value
        elif key in ProcessorOptions.model_fields:
            data["processor"][key] = value
        else:
            msg = f"Unknown configuration key: {key}"
            raise KeyError(msg)
    return Config.model_validate(data)
