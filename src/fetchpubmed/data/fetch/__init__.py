"""
Archive fetching: targets, outcomes, and the retrying HTTP fetcher.
"""

from .fetcher_base import (
    BaseFetcher,
    FetchedArchive,
    FetchError,
    FetchFailure,
    FetchOutcome,
    FetchState,
    FetchStatus,
    FetchTarget,
)
from .http_fetcher import HttpFetcher, make_http_session

__all__ = [
    "BaseFetcher",
    "FetchedArchive",
    "FetchError",
    "FetchFailure",
    "FetchOutcome",
    "FetchState",
    "FetchStatus",
    "FetchTarget",
    "HttpFetcher",
    "make_http_session",
]
