"""
Abstract base class and result models for archive fetchers.
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

from pydantic import BaseModel, Field

from ...settings import Settings

logger = logging.getLogger(__name__)


class FetchTarget(BaseModel):
    """
    One remote archive file, identified by year tag and sequence number.
    """

    year: int = Field(..., description="Baseline year tag")
    seq: int = Field(..., ge=0, description="Sequence number within the year")
    base_url: str = Field(default="https://ftp.ncbi.nlm.nih.gov/pubmed/baseline/")
    filename_template: str = Field(default="pubmed{year}n{seq:04d}.xml.gz")

    model_config = {"frozen": True}

    @property
    def filename(self) -> str:
        return self.filename_template.format(year=self.year, seq=self.seq)

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.filename

    @classmethod
    def range(cls, year: int, start: int, end: int, **kwargs) -> List[FetchTarget]:
        """
        Targets for every sequence number in ``[start, end]``, ascending.
        """
        return [cls(year=year, seq=seq, **kwargs) for seq in range(start, end + 1)]

    @classmethod
    def from_settings(cls, settings: Settings) -> List[FetchTarget]:
        return cls.range(
            settings.year,
            settings.start,
            settings.end,
            base_url=settings.base_url,
            filename_template=settings.filename_template,
        )

    def __str__(self) -> str:
        return self.filename


class FetchStatus(Enum):
    """
    Terminal status of one target.
    """

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FetchState(Enum):
    """
    States of the per-target download state machine.
    """

    IDLE = "idle"
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FetchOutcome(BaseModel):
    """
    Result of processing one target.
    """

    target: FetchTarget
    status: FetchStatus
    attempts: int = 0
    last_error: Optional[str] = None
    error_message: Optional[str] = None
    rows_written: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is FetchStatus.SUCCEEDED


class FetchError(Exception):
    """
    One failed download attempt.

    Args:
        code: Short machine-readable cause, e.g. ``timeout`` or ``http_404``.
        message: Human-readable description.
        transient: Whether another attempt may succeed.
    """

    def __init__(self, code: str, message: str, transient: bool = True):
        super().__init__(message)
        self.code = code
        self.transient = transient


class FetchFailure(Exception):
    """
    Raised when a target could not be fetched within the permitted attempts.
    """

    def __init__(self, target: FetchTarget, attempts: int, last_error: FetchError):
        super().__init__(
            f"Failed to fetch {target.filename} after {attempts} attempt(s): "
            f"{last_error}"
        )
        self.target = target
        self.attempts = attempts
        self.last_error = last_error


class FetchedArchive:
    """
    A downloaded and validated archive held in a temporary file.

    Use as a context manager; the file is removed on exit.
    """

    def __init__(self, target: FetchTarget, path: Path, attempts: int):
        self.target = target
        self.path = path
        self.attempts = attempts

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size

    def iter_bytes(self, chunk_size: int = 65536) -> Iterator[bytes]:
        with self.path.open("rb") as fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    return
                yield chunk

    def discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> FetchedArchive:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()

    def __repr__(self) -> str:
        return f"FetchedArchive(target={self.target.filename}, path={self.path})"


def new_download_path(target: FetchTarget, directory: Optional[Path] = None) -> Path:
    """
    Create an empty temporary file for one download attempt.
    """
    fd, name = tempfile.mkstemp(
        prefix=f"{target.filename}.", suffix=".part", dir=directory
    )
    os.close(fd)
    return Path(name)


class BaseFetcher(ABC):
    """
    Abstract base class for archive fetchers.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}"
        )

    @abstractmethod
    def fetch(self, target: FetchTarget) -> FetchedArchive:
        """
        Download and validate one target.

        Raises:
            FetchFailure: If every permitted attempt failed.
        """
        pass

    @property
    @abstractmethod
    def fetcher_type(self) -> str:
        """
        Return the type identifier for this fetcher.
        """
        pass

    def close(self) -> None:
        """Release any held resources."""

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.settings.base_url})"
