"""
Integration tests for the fetchpubmed project.

These tests run the whole pipeline, from scripted HTTP responses to chunk
files on disk.
"""

import gzip
import logging
import re

import pytest
import requests

from fetchpubmed.data.fetch import (
    BaseFetcher,
    FetchedArchive,
    FetchStatus,
    HttpFetcher,
)
from fetchpubmed.data.serialize import split_row
from fetchpubmed.pipeline import Orchestrator

BASE = "https://ftp.ncbi.nlm.nih.gov/pubmed/baseline/"
URL_1 = BASE + "pubmed25n0001.xml.gz"
URL_2 = BASE + "pubmed25n0002.xml.gz"


def read_rows(path):
    with path.open("r", encoding="utf-8", newline="") as fh:
        return [split_row(line) for line in fh]


class StaticFetcher(BaseFetcher):
    """Fetcher handing out fixed bytes per sequence number, unvalidated."""

    def __init__(self, settings, payloads, directory):
        super().__init__(settings)
        self.payloads = payloads
        self.directory = directory

    @property
    def fetcher_type(self):
        return "static"

    def fetch(self, target):
        path = self.directory / target.filename
        path.write_bytes(self.payloads[target.seq])
        return FetchedArchive(target, path, 1)


class TestPipelineIntegration:
    """Integration tests for complete runs."""

    @pytest.fixture
    def make_orchestrator(self, fake_session_factory, sleeps):
        def build(settings, script):
            fetcher = HttpFetcher(
                settings, session=fake_session_factory(script), sleep=sleeps.append
            )
            return Orchestrator(settings, fetcher=fetcher)

        return build

    @pytest.mark.integration
    def test_partial_failure_run(
        self,
        test_settings,
        make_orchestrator,
        fake_response_factory,
        make_archive,
        sleeps,
        caplog,
    ):
        """Test one good file and one unreachable file."""
        caplog.set_level(logging.INFO, logger="fetchpubmed")
        orchestrator = make_orchestrator(
            test_settings,
            {
                URL_1: [fake_response_factory(200, make_archive(3))],
                URL_2: [requests.ConnectionError("Connection refused")],
            },
        )

        report = orchestrator.run()
        report.log_summary()

        assert report.exit_code == 0
        assert report.failed == ("pubmed25n0002.xml.gz",)
        assert report.succeeded_count == 1
        assert sleeps == [4, 8]

        files = sorted(test_settings.output_dir.iterdir())
        assert [f.name for f in files] == ["parsed_page_0000.tsv"]
        rows = read_rows(files[0])
        assert [r[0] for r in rows] == ["25n0001_1", "25n0001_2", "25n0001_3"]
        assert [r[3] for r in rows] == ["Title 1", "Title 2", "Title 3"]
        assert all(len(r) == 5 for r in rows)

        failed_outcome = report.outcomes[1]
        assert failed_outcome.status is FetchStatus.FAILED
        assert failed_outcome.attempts == 3
        assert failed_outcome.last_error == "connection_error"

        assert "Completed: 1 succeeded, 1 failed" in caplog.text
        assert re.search(r"Wrote 3 rows to 1 chunk\(s\) .* in \d+\.\d{2}s", caplog.text)
        assert "pubmed25n0002.xml.gz" in caplog.text
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("1 file(s) failed to download" in r.getMessage() for r in warnings)

    @pytest.mark.integration
    def test_chunks_span_files(
        self, test_settings, make_orchestrator, fake_response_factory, make_archive
    ):
        """Test that chunk boundaries are independent of input files."""
        settings = test_settings.model_copy(update={"rows_per_chunk": 2})
        orchestrator = make_orchestrator(
            settings,
            {
                URL_1: [fake_response_factory(200, make_archive(3))],
                URL_2: [fake_response_factory(200, make_archive(4))],
            },
        )

        report = orchestrator.run()

        assert report.exit_code == 0
        assert report.failed == ()
        assert [c.row_count for c in report.chunks] == [2, 2, 2, 1]
        assert report.rows_written == 7

        rows = [r for c in report.chunks for r in read_rows(c.path)]
        assert [r[0] for r in rows] == [
            "25n0001_1",
            "25n0001_2",
            "25n0001_3",
            "25n0002_1",
            "25n0002_2",
            "25n0002_3",
            "25n0002_4",
        ]
        assert [r[0] for r in read_rows(report.chunks[1].path)] == [
            "25n0001_3",
            "25n0002_1",
        ]

    @pytest.mark.integration
    def test_all_files_fail(self, test_settings, make_orchestrator, fake_response_factory):
        """Test that download failures alone leave a zero exit code."""
        orchestrator = make_orchestrator(
            test_settings,
            {URL_1: [fake_response_factory(404)], URL_2: [fake_response_factory(404)]},
        )

        report = orchestrator.run()

        assert report.exit_code == 0
        assert report.failed == ("pubmed25n0001.xml.gz", "pubmed25n0002.xml.gz")
        assert report.chunks == []
        assert list(test_settings.output_dir.iterdir()) == []

    @pytest.mark.integration
    def test_malformed_records_dropped(
        self,
        test_settings,
        make_orchestrator,
        fake_response_factory,
        make_archive,
        make_article,
        make_article_set,
    ):
        """Test that a broken record is skipped and the rest written."""
        xml = make_article_set(
            [
                make_article(pmid="1"),
                "<PubmedArticle><ArticleTitle>Cut</PubmedArticle>\n",
                make_article(pmid="3"),
            ]
        )
        settings = test_settings.model_copy(update={"end": 1})
        orchestrator = make_orchestrator(
            settings, {URL_1: [fake_response_factory(200, make_archive(xml=xml))]}
        )

        report = orchestrator.run()

        assert report.rows_written == 2
        assert report.malformed_records == 1
        assert report.outcomes[0].succeeded

    @pytest.mark.integration
    def test_corruption_mid_stream(self, test_settings, temp_dir, make_archive):
        """Test that a stream failing after some records marks the file failed."""
        good = make_archive(5)
        payloads = {1: good[:-8], 2: make_archive(2)}
        fetch_dir = temp_dir / "fetched"
        fetch_dir.mkdir()
        orchestrator = Orchestrator(
            test_settings,
            fetcher=StaticFetcher(test_settings, payloads, fetch_dir),
        )

        report = orchestrator.run()

        first, second = report.outcomes
        assert first.status is FetchStatus.FAILED
        assert first.last_error == "corrupt_stream"
        assert second.succeeded
        assert report.failed == ("pubmed25n0001.xml.gz",)
        assert report.exit_code == 0
        # rows from before the failure stay in the output
        assert report.rows_written == first.rows_written + 2
        assert list(fetch_dir.iterdir()) == []

    @pytest.mark.integration
    def test_output_error_is_fatal(
        self, test_settings, make_orchestrator, fake_response_factory, make_archive
    ):
        """Test that an unwritable output directory aborts with exit code 74."""
        settings = test_settings.model_copy(
            update={"output_dir": test_settings.output_dir / "missing"}
        )
        orchestrator = make_orchestrator(
            settings,
            {
                URL_1: [fake_response_factory(200, make_archive(3))],
                URL_2: [fake_response_factory(200, make_archive(3))],
            },
        )

        report = orchestrator.run()

        assert report.exit_code == 74
        assert report.fatal_error is not None
        assert report.outcomes == []


def test_archive_fixture_round_trip(make_archive):
    assert gzip.decompress(make_archive(2)).count(b"<PubmedArticle>") == 2
