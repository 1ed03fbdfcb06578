"""
Configuration module for fetchpubmed run parameters and environment overrides.
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings using Pydantic for validation
    and environment variable support.
    """

    # Remote addressing
    base_url: str = Field(
        default="https://ftp.ncbi.nlm.nih.gov/pubmed/baseline/",
        description="Host and path prefix of the baseline archive",
    )
    filename_template: str = Field(
        default="pubmed{year}n{seq:04d}.xml.gz",
        description="Remote filename, formatted with year and seq",
    )

    # Target range
    year: int = Field(default=25, description="Baseline year tag")
    start: int = Field(default=1, description="First sequence number (inclusive)")
    end: int = Field(default=1274, description="Last sequence number (inclusive)")

    # Output
    output_dir: Path = Field(default=Path("output"))
    rows_per_chunk: int = Field(
        default=100_000, description="Rows per output chunk file"
    )
    chunk_prefix: str = Field(default="parsed_page_")
    chunk_suffix: str = Field(default=".tsv")

    # Fetcher settings
    max_attempts: int = Field(default=3, description="Download attempts per file")
    backoff_base: float = Field(
        default=2.0, description="Backoff sleeps backoff_base ** attempt seconds"
    )
    connect_timeout: float = Field(default=30, description="Connect timeout (s)")
    max_time: float = Field(
        default=300, description="Overall transfer deadline per attempt (s)"
    )
    transport_retries: int = Field(
        default=3, description="Connection-level retries inside one attempt"
    )
    transport_retry_delay: float = Field(
        default=5.0, description="Backoff factor for connection-level retries"
    )
    min_speed: int = Field(
        default=1024, description="Slowest acceptable transfer rate (bytes/s)"
    )
    stall_time: float = Field(
        default=30, description="Seconds below min_speed before aborting"
    )
    download_chunk_size: int = Field(
        default=65536, description="Download chunk size in bytes"
    )

    # Pipeline
    channel_capacity: int = Field(
        default=64, description="Items buffered between pipeline stages"
    )

    # General settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Diagnostic log")

    model_config = {
        "env_prefix": "FETCHPUBMED_",
        "case_sensitive": False,
        "extra": "forbid",
    }

    @field_validator("start")
    @classmethod
    def check_start(cls, v):
        if v < 1:
            raise ValueError("start must be >= 1")
        return v

    @field_validator("max_attempts", "rows_per_chunk", "channel_capacity")
    @classmethod
    def check_positive(cls, v, info):
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @model_validator(mode="after")
    def check_range(self):
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) must be >= start ({self.start})")
        return self

    def create_directories(self) -> None:
        """Create the output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)


def load_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
    """
    Build settings from an optional YAML file plus explicit overrides.

    Values are layered: environment variables, then the YAML mapping, then
    ``overrides`` (entries that are ``None`` are ignored so unset CLI flags
    do not clobber the file).

    Args:
        path: YAML file holding a flat mapping of setting names to values.
        overrides: Keyword values that take precedence over the file.

    Raises:
        FileNotFoundError: If ``path`` is given but doesn't exist.
        ValueError: If the YAML document is not a mapping.
    """
    values: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        values.update(loaded)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


settings = Settings()
