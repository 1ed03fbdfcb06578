"""
HTTP/HTTPS fetcher for baseline archive files.

Each target gets a bounded number of attempts. An attempt downloads the whole
file into a fresh temporary file and then checks that it decompresses
cleanly; only a validated file is handed to the rest of the pipeline.
Between attempts the fetcher backs off exponentially. Inside an attempt,
urllib3 retries refused connections and transient HTTP statuses on its own.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ReadTimeoutError
from urllib3.util.retry import Retry

from ...settings import Settings
from ..decompress import ArchiveError, validate_archive
from .fetcher_base import (
    BaseFetcher,
    FetchedArchive,
    FetchError,
    FetchFailure,
    FetchState,
    FetchTarget,
    new_download_path,
)

logger = logging.getLogger(__name__)

# Statuses worth another try; any other 4xx fails the target at once
TRANSIENT_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def make_http_session(settings: Settings) -> requests.Session:
    """
    Build a session whose adapter retries transient connection faults.
    """
    session = requests.Session()
    retry = Retry(
        total=settings.transport_retries,
        connect=settings.transport_retries,
        read=settings.transport_retries,
        status=settings.transport_retries,
        status_forcelist=tuple(sorted(TRANSIENT_STATUS)),
        allowed_methods=frozenset({"GET"}),
        backoff_factor=settings.transport_retry_delay,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HttpFetcher(BaseFetcher):
    """
    Fetcher for HTTP/HTTPS archive downloads with retry and backoff.

    Args:
        settings: Timeouts, attempt bound and backoff parameters.
        session: HTTP session to use; built with ``make_http_session`` if
            omitted.
        sleep: Called with the backoff delay in seconds between attempts.
        clock: Monotonic clock used for the transfer deadline and stall check.
        download_dir: Where temporary downloads are placed.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        download_dir: Optional[Path] = None,
    ):
        super().__init__(settings)
        self.session = session or make_http_session(settings)
        self.sleep = sleep
        self.clock = clock
        self.download_dir = download_dir
        self.state = FetchState.IDLE

    @property
    def fetcher_type(self) -> str:
        return "http"

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (2 or later)."""
        return self.settings.backoff_base**attempt

    def fetch(self, target: FetchTarget) -> FetchedArchive:
        """
        Download and validate one target.

        Returns:
            The validated archive; the caller owns the temporary file.

        Raises:
            FetchFailure: If every permitted attempt failed, or an attempt
                failed with a permanent error.
        """
        max_attempts = self.settings.max_attempts
        last_error: Optional[FetchError] = None
        attempt = 0
        self._enter(FetchState.IDLE, target)

        while attempt < max_attempts:
            attempt += 1
            if attempt > 1:
                delay = self.backoff_delay(attempt)
                self._enter(FetchState.RETRYING, target)
                self.logger.warning(
                    "Retrying %s in %.0fs (attempt %d/%d)",
                    target.filename,
                    delay,
                    attempt,
                    max_attempts,
                )
                self.sleep(delay)

            self._enter(FetchState.ATTEMPTING, target)
            self.logger.info(
                "Fetching: %s (attempt %d/%d)", target.filename, attempt, max_attempts
            )
            path = new_download_path(target, self.download_dir)
            try:
                size = self._download(target.url, path)
                self._enter(FetchState.VALIDATING, target)
                self._validate(target, path, attempt)
            except FetchError as e:
                path.unlink(missing_ok=True)
                last_error = e
                self.logger.warning(
                    "Attempt %d/%d for %s failed (%s): %s",
                    attempt,
                    max_attempts,
                    target.filename,
                    e.code,
                    e,
                )
                if not e.transient:
                    break
                continue
            except BaseException:
                path.unlink(missing_ok=True)
                raise

            self._enter(FetchState.SUCCEEDED, target)
            self.logger.info("Downloaded %s (%d bytes)", target.filename, size)
            return FetchedArchive(target, path, attempt)

        self._enter(FetchState.FAILED, target)
        self.logger.error(
            "Error: Failed to fetch %s after %d attempt(s) (%s)",
            target.filename,
            attempt,
            last_error.code,
        )
        raise FetchFailure(target, attempt, last_error)

    def _enter(self, state: FetchState, target: FetchTarget) -> None:
        self.logger.debug(
            "%s: %s -> %s", target.filename, self.state.value, state.value
        )
        self.state = state

    def _download(self, url: str, path: Path) -> int:
        """
        Stream ``url`` into ``path``.

        Returns:
            Number of bytes written.

        Raises:
            FetchError: On HTTP errors, connection faults, the overall
                deadline, or sustained throughput below ``min_speed``.
        """
        settings = self.settings
        started = self.clock()
        deadline = started + settings.max_time
        window_start = started
        window_bytes = 0
        total = 0

        try:
            with self.session.get(
                url,
                stream=True,
                timeout=(settings.connect_timeout, settings.stall_time),
            ) as response:
                response.raise_for_status()
                with path.open("wb") as fh:
                    for chunk in response.iter_content(settings.download_chunk_size):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        total += len(chunk)
                        window_bytes += len(chunk)

                        now = self.clock()
                        if now > deadline:
                            raise FetchError(
                                "timeout",
                                f"Transfer exceeded {settings.max_time:.0f}s",
                            )
                        elapsed = now - window_start
                        if elapsed >= settings.stall_time:
                            rate = window_bytes / elapsed
                            if rate < settings.min_speed:
                                raise FetchError(
                                    "stalled",
                                    f"Transfer rate {rate:.0f} B/s below "
                                    f"{settings.min_speed} B/s for {elapsed:.0f}s",
                                )
                            window_start = now
                            window_bytes = 0
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            raise FetchError(
                f"http_{status}", str(e), transient=status in TRANSIENT_STATUS
            ) from e
        except requests.Timeout as e:
            raise FetchError("timeout", str(e)) from e
        except requests.ConnectionError as e:
            # requests reports a read timeout while streaming as ConnectionError
            if e.args and isinstance(e.args[0], ReadTimeoutError):
                raise FetchError("timeout", str(e)) from e
            raise FetchError("connection_error", str(e)) from e
        except requests.RequestException as e:
            raise FetchError("transfer_error", str(e)) from e

        return total

    def _validate(self, target: FetchTarget, path: Path, attempt: int) -> None:
        archive = FetchedArchive(target, path, attempt)
        try:
            validate_archive(archive.iter_bytes(self.settings.download_chunk_size))
        except ArchiveError as e:
            raise FetchError(e.code, f"Invalid archive: {e}") from e

    def close(self) -> None:
        self.session.close()
