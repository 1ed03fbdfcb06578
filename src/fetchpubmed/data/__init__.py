"""
fetchpubmed data package: fetching, decompression, extraction and output.
"""

from .decompress import (
    ArchiveError,
    CorruptArchiveError,
    TruncatedArchiveError,
    decompress_stream,
    validate_archive,
)
from .extract import RecordExtractor
from .fetch import FetchOutcome, FetchStatus, FetchTarget, HttpFetcher
from .records import OutputChunk, Record
from .serialize import escape_field, serialize_record, split_row
from .writer import ChunkWriter, OutputWriteError

__all__ = [
    "ArchiveError",
    "CorruptArchiveError",
    "TruncatedArchiveError",
    "decompress_stream",
    "validate_archive",
    "RecordExtractor",
    "FetchOutcome",
    "FetchStatus",
    "FetchTarget",
    "HttpFetcher",
    "OutputChunk",
    "Record",
    "escape_field",
    "serialize_record",
    "split_row",
    "ChunkWriter",
    "OutputWriteError",
]
