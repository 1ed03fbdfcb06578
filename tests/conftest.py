"""
Fixtures and test configuration for the fetchpubmed test suite.
"""

import gzip
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pytest
import requests

from fetchpubmed.settings import Settings


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def test_settings(temp_dir):
    """Create test settings writing into a temporary directory."""
    settings = Settings(
        output_dir=temp_dir / "output",
        year=25,
        start=1,
        end=2,
        log_level="DEBUG",
        max_attempts=3,
        connect_timeout=5,
        max_time=60,
        stall_time=30,
        min_speed=1,
        download_chunk_size=64,
        channel_capacity=4,
    )
    settings.create_directories()
    return settings


def _article(
    pmid: str = "1",
    authors: Sequence[str] = ("Smith",),
    year: Optional[str] = "2020",
    title: Optional[str] = "A title",
    abstract: Sequence[str] = ("An abstract.",),
) -> str:
    author_xml = "".join(
        f"<Author ValidYN=\"Y\"><LastName>{name}</LastName>"
        f"<ForeName>X</ForeName><Initials>X</Initials></Author>"
        for name in authors
    )
    if year:
        pub_date = f"<PubDate><Year>{year}</Year><Month>Jan</Month></PubDate>"
    else:
        pub_date = "<PubDate><Season>Spring</Season></PubDate>"
    title_xml = f"<ArticleTitle>{title}</ArticleTitle>" if title is not None else ""
    abstract_xml = ""
    if abstract:
        abstract_xml = (
            "<Abstract>"
            + "".join(f"<AbstractText>{part}</AbstractText>" for part in abstract)
            + "</Abstract>"
        )
    return (
        "<PubmedArticle>"
        "<MedlineCitation Status=\"MEDLINE\" Owner=\"NLM\">"
        f"<PMID Version=\"1\">{pmid}</PMID>"
        "<DateCompleted><Year>1999</Year><Month>01</Month><Day>01</Day></DateCompleted>"
        "<Article PubModel=\"Print\">"
        "<Journal><JournalIssue CitedMedium=\"Print\">"
        f"{pub_date}"
        "</JournalIssue><Title>Journal</Title></Journal>"
        f"{title_xml}"
        f"{abstract_xml}"
        f"<AuthorList CompleteYN=\"Y\">{author_xml}</AuthorList>"
        "</Article>"
        "</MedlineCitation>"
        "</PubmedArticle>\n"
    )


def _article_set(articles: Iterable[str]) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<!DOCTYPE PubmedArticleSet PUBLIC "-//NLM//DTD PubMedArticle, 1st January 2025//EN" '
        '"https://dtd.nlm.nih.gov/ncbi/pubmed/out/pubmed_250101.dtd">\n'
        "<PubmedArticleSet>\n" + "".join(articles) + "</PubmedArticleSet>\n"
    )


@pytest.fixture
def make_article():
    """Factory for one <PubmedArticle> element."""
    return _article


@pytest.fixture
def make_article_set():
    """Factory for a complete PubmedArticleSet document."""
    return _article_set


@pytest.fixture
def make_archive():
    """Factory producing gzip bytes for a document of ``count`` articles."""

    def build(count: int = 3, xml: Optional[str] = None) -> bytes:
        if xml is None:
            xml = _article_set(
                _article(pmid=str(i), title=f"Title {i}") for i in range(1, count + 1)
            )
        return gzip.compress(xml.encode("utf-8"))

    return build


def chunked(data: bytes, size: int) -> List[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


class FakeResponse:
    """Minimal stand-in for a streamed ``requests.Response``."""

    def __init__(self, status_code: int = 200, body: bytes = b"", chunk_size=16):
        self.status_code = status_code
        self.body = body
        self.chunk_size = chunk_size
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        yield from chunked(self.body, self.chunk_size)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


class FakeSession:
    """
    Session returning scripted responses per URL.

    Each URL maps to a list consumed one entry per request; the last entry
    repeats. Entries are ``FakeResponse`` objects or exceptions to raise.
    """

    def __init__(self, script: Dict[str, list]):
        self.script = {url: list(entries) for url, entries in script.items()}
        self.calls: List[str] = []
        self.closed = False

    def get(self, url, stream=False, timeout=None):
        self.calls.append(url)
        entries = self.script.get(url)
        if not entries:
            raise requests.ConnectionError(f"No route to {url}")
        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session_factory():
    """Build a ``FakeSession`` from a URL -> entries mapping."""
    return FakeSession


@pytest.fixture
def fake_response_factory():
    return FakeResponse


@pytest.fixture
def sleeps():
    """Records backoff delays instead of sleeping."""
    return []
