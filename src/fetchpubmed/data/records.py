"""
Value types passed between the extraction and output stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class Record:
    """
    One bibliographic entry extracted from an archive file.

    ``identifier`` is derived from the file's year tag, sequence number and
    the record's position in that file; ``pmid`` is whatever the source
    carried and may be missing.
    """

    identifier: str
    authors: Tuple[str, ...] = ()
    year: Optional[str] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    pmid: Optional[str] = None


@dataclass(slots=True)
class OutputChunk:
    """
    One output file holding a contiguous slice of the row sequence.
    """

    index: int
    path: Path
    row_count: int = 0
    closed: bool = field(default=False, compare=False)
