"""
End-to-end orchestration of a fetch run.

Targets are processed one after another. For each target the validated
archive is streamed through decompression and record extraction on worker
threads, while rows are serialized and written on the calling thread. A
single ``ChunkWriter`` spans the whole run, so chunk boundaries ignore which
archive a row came from.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..data.decompress import ArchiveError, decompress_stream
from ..data.extract import RecordExtractor
from ..data.fetch import (
    BaseFetcher,
    FetchedArchive,
    FetchFailure,
    FetchOutcome,
    FetchStatus,
    FetchTarget,
    HttpFetcher,
)
from ..data.records import OutputChunk
from ..data.serialize import serialize_record
from ..data.writer import ChunkWriter, OutputWriteError
from ..settings import Settings
from .stages import run_stage

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class RunReport:
    """
    Summary of a run: per-target outcomes, output chunks, and the fatal
    error that stopped the run, if any.
    """

    outcomes: List[FetchOutcome] = field(default_factory=list)
    chunks: List[OutputChunk] = field(default_factory=list)
    rows_written: int = 0
    malformed_records: int = 0
    fatal_error: Optional[BaseException] = None
    execution_time: float = 0.0

    @property
    def failed(self) -> Tuple[str, ...]:
        """Filenames of failed targets, in processing order."""
        return tuple(
            o.target.filename for o in self.outcomes if o.status is FetchStatus.FAILED
        )

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is FetchStatus.SUCCEEDED)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def exit_code(self) -> int:
        if self.fatal_error is None:
            return EXIT_OK
        return getattr(self.fatal_error, "exit_code", EXIT_FAILURE)

    def log_summary(self, log: logging.Logger = logger) -> None:
        """Report counts, failed targets and the final status."""
        log.info(
            "Completed: %d succeeded, %d failed",
            self.succeeded_count,
            self.failed_count,
        )
        log.info(
            "Wrote %d rows to %d chunk(s) (%d malformed records dropped) in %.2fs",
            self.rows_written,
            len(self.chunks),
            self.malformed_records,
            self.execution_time,
        )
        if self.failed:
            lines = "\n".join(f"  - {name}" for name in self.failed)
            log.warning(
                "WARNING: %d file(s) failed to download:\n%s", self.failed_count, lines
            )
        if self.fatal_error is not None:
            log.error(
                "Error: Pipeline failed with exit code %d: %s",
                self.exit_code,
                self.fatal_error,
            )
        else:
            log.info("Processing complete!")


class Orchestrator:
    """
    Drive fetch, decompress, extract, serialize and write for every target
    in the configured range.

    Args:
        settings: Range, output location and tuning parameters.
        fetcher: Fetcher to use; an ``HttpFetcher`` by default.
        writer: Chunk writer to use; built from ``settings`` by default.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[BaseFetcher] = None,
        writer: Optional[ChunkWriter] = None,
    ):
        self.settings = settings
        self.fetcher = fetcher or HttpFetcher(settings)
        self.writer = writer or ChunkWriter(
            settings.output_dir,
            rows_per_chunk=settings.rows_per_chunk,
            prefix=settings.chunk_prefix,
            suffix=settings.chunk_suffix,
        )
        self.logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}"
        )
        self._rows = 0

    def targets(self) -> List[FetchTarget]:
        return FetchTarget.from_settings(self.settings)

    def run(self) -> RunReport:
        """
        Process every target in order and return the run report.

        Per-target failures are recorded and the run continues. An output
        failure or any unexpected error stops the run; chunks closed before
        that point stay on disk.
        """
        settings = self.settings
        report = RunReport()
        start_time = time.time()
        self.logger.info(
            "Processing PubMed%d files %d to %d into %s/...",
            settings.year,
            settings.start,
            settings.end,
            settings.output_dir,
        )

        try:
            for target in self.targets():
                outcome = self._process(target, report)
                report.outcomes.append(outcome)
        except OutputWriteError as e:
            self.logger.error("Fatal output error: %s", e)
            report.fatal_error = e
        except Exception as e:
            self.logger.exception("Fatal pipeline error: %s", e)
            report.fatal_error = e
        finally:
            try:
                self.writer.close()
            except OutputWriteError as e:
                self.logger.error("Fatal output error: %s", e)
                if report.fatal_error is None:
                    report.fatal_error = e
            self.fetcher.close()
            report.chunks = list(self.writer.chunks)
            report.rows_written = self.writer.rows_written
            report.execution_time = time.time() - start_time

        return report

    def _process(self, target: FetchTarget, report: RunReport) -> FetchOutcome:
        try:
            archive = self.fetcher.fetch(target)
        except FetchFailure as e:
            return FetchOutcome(
                target=target,
                status=FetchStatus.FAILED,
                attempts=e.attempts,
                last_error=e.last_error.code,
                error_message=str(e.last_error),
            )

        extractor = RecordExtractor(target.year, target.seq)
        rows_before = self.writer.rows_written
        with archive:
            try:
                self._stream(archive, extractor)
            except ArchiveError as e:
                self.logger.error(
                    "Error: Failed to decompress %s: %s", target.filename, e
                )
                return FetchOutcome(
                    target=target,
                    status=FetchStatus.FAILED,
                    attempts=archive.attempts,
                    last_error="corrupt_stream",
                    error_message=str(e),
                    rows_written=self.writer.rows_written - rows_before,
                )
            finally:
                report.malformed_records += extractor.malformed

        rows = self.writer.rows_written - rows_before
        self.logger.info(
            "Processed %s: %d records (%d malformed dropped)",
            target.filename,
            rows,
            extractor.malformed,
        )
        return FetchOutcome(
            target=target,
            status=FetchStatus.SUCCEEDED,
            attempts=archive.attempts,
            rows_written=rows,
        )

    def _stream(self, archive: FetchedArchive, extractor: RecordExtractor) -> None:
        capacity = self.settings.channel_capacity
        name = archive.target.filename
        raw = archive.iter_bytes(self.settings.download_chunk_size)
        decompressed = run_stage(
            decompress_stream(raw), capacity, f"decompress:{name}"
        )
        records = run_stage(
            extractor.extract(decompressed), capacity, f"extract:{name}"
        )
        try:
            for record in records:
                self._rows += 1
                self.writer.write(serialize_record(record, self._rows))
        finally:
            records.close()
            decompressed.close()
