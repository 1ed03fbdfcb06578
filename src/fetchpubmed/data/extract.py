"""
Incremental record extraction from PubMed XML.

The extractor is a tag scanner, not an XML parser: it walks the decompressed
text one tag at a time, keeps a stack of open element names only while inside
a record, and captures the handful of fields that end up in the output. Text
is consumed as it arrives; the only data carried between input chunks is the
unfinished tail of one tag (bounded by ``max_tag_length``) plus the text of
the field currently being read.

A record whose markup does not close properly is dropped and scanning
resumes at the next record start tag.
"""

from __future__ import annotations

import codecs
import html
import logging
import re
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Set

from .records import Record

logger = logging.getLogger(__name__)

RECORD_TAG = "PubmedArticle"
DEFAULT_MAX_TAG_LENGTH = 64 * 1024

_TAG_NAME = re.compile(r"[^\s/>]+")
_YEAR_IN_TEXT = re.compile(r"\d{4}")


class ScanState(Enum):
    """
    Top-level scanner state.
    """

    SEEKING_RECORD = "seeking_record"
    IN_RECORD = "in_record"


class FieldKind(Enum):
    """
    Fields captured while inside a record.
    """

    IDENTIFIER = "identifier"
    AUTHOR = "author"
    YEAR = "year"
    MEDLINE_DATE = "medline_date"
    TITLE = "title"
    ABSTRACT = "abstract"


class MalformedRecord(Exception):
    """
    Raised inside the scanner when the current record cannot be completed.
    Never escapes ``extract``.
    """


_REPEATED_FIELDS = frozenset({FieldKind.AUTHOR, FieldKind.ABSTRACT})


class _RecordBuilder:
    """Accumulates field values for the record being scanned."""

    def __init__(self) -> None:
        self.pmid: Optional[str] = None
        self.authors: List[str] = []
        self.year: Optional[str] = None
        self.medline_date: Optional[str] = None
        self.title: Optional[str] = None
        self.abstract_parts: List[str] = []
        self._seen: Set[FieldKind] = set()

    def wants(self, kind: FieldKind) -> bool:
        """
        Whether another occurrence of ``kind`` would be kept.

        Single-valued fields keep their first occurrence, even an empty one.
        """
        return kind in _REPEATED_FIELDS or kind not in self._seen

    def add(self, kind: FieldKind, value: str) -> None:
        self._seen.add(kind)
        if kind is FieldKind.AUTHOR:
            if value:
                self.authors.append(value)
        elif kind is FieldKind.ABSTRACT:
            if value:
                self.abstract_parts.append(value)
        elif kind is FieldKind.IDENTIFIER:
            self.pmid = value or None
        elif kind is FieldKind.YEAR:
            self.year = value or None
        elif kind is FieldKind.MEDLINE_DATE:
            self.medline_date = value or None
        elif kind is FieldKind.TITLE:
            self.title = value or None

    def build(self, identifier: str) -> Record:
        year = self.year
        if year is None and self.medline_date:
            match = _YEAR_IN_TEXT.search(self.medline_date)
            year = match.group(0) if match else None
        return Record(
            identifier=identifier,
            authors=tuple(self.authors),
            year=year,
            title=self.title,
            abstract=" ".join(self.abstract_parts) or None,
            pmid=self.pmid,
        )


def _field_for(name: str, parent: Optional[str]) -> Optional[FieldKind]:
    """Map an element and its parent to the field it carries, if any."""
    if name == "PMID":
        return FieldKind.IDENTIFIER
    if name == "LastName" and parent == "Author":
        return FieldKind.AUTHOR
    if name == "Year" and parent == "PubDate":
        return FieldKind.YEAR
    if name == "MedlineDate" and parent == "PubDate":
        return FieldKind.MEDLINE_DATE
    if name == "ArticleTitle":
        return FieldKind.TITLE
    if name == "AbstractText" and parent == "Abstract":
        return FieldKind.ABSTRACT
    return None


def clean_text(raw: str) -> str:
    """Decode entities and trim surrounding whitespace."""
    return html.unescape(raw).strip()


class RecordExtractor:
    """
    Scan decompressed PubMed XML and yield one ``Record`` per article.

    Args:
        year: Year tag of the source file, used in record identifiers.
        seq: Sequence number of the source file, used in record identifiers.
        record_tag: Element name that delimits a record.
        max_tag_length: Longest tag the scanner will buffer across chunks.
        encoding: Character encoding of the input bytes.
    """

    def __init__(
        self,
        year: int,
        seq: int,
        record_tag: str = RECORD_TAG,
        max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
        encoding: str = "utf-8",
    ):
        self.year = year
        self.seq = seq
        self.record_tag = record_tag
        self.max_tag_length = max_tag_length
        self.encoding = encoding

        self.state = ScanState.SEEKING_RECORD
        self.emitted = 0
        self.malformed = 0

        self._stack: List[str] = []
        self._builder: Optional[_RecordBuilder] = None
        self._field: Optional[FieldKind] = None
        self._field_depth = 0
        self._field_parts: List[str] = []
        self._ready: List[Record] = []
        self._started = False

    def make_identifier(self, position: int) -> str:
        return f"{self.year}n{self.seq:04d}_{position}"

    def extract(self, chunks: Iterable[bytes]) -> Iterator[Record]:
        """
        Yield records from a stream of decompressed bytes.

        Single pass: the extractor cannot be restarted once consumed.
        """
        if self._started:
            raise RuntimeError("RecordExtractor.extract can only run once")
        self._started = True

        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        carry = ""
        for chunk in chunks:
            text = carry + decoder.decode(chunk)
            carry = self._scan(text)
            if len(carry) > self.max_tag_length:
                self._overflow(len(carry))
                carry = ""
            yield from self._drain()

        # An unfinished tag at end of input is discarded
        self._scan(carry + decoder.decode(b"", final=True))
        yield from self._drain()

        if self.state is ScanState.IN_RECORD:
            self._drop("stream ended inside record")

        logger.debug(
            "Extracted %d records from %dn%04d (%d malformed dropped)",
            self.emitted,
            self.year,
            self.seq,
            self.malformed,
        )

    def _drain(self) -> Iterator[Record]:
        ready, self._ready = self._ready, []
        yield from ready

    # ------------------------------------------------------------------
    # Scanner
    # ------------------------------------------------------------------

    def _scan(self, text: str) -> str:
        """
        Consume every complete token in ``text``.

        Returns:
            The trailing fragment of an unfinished tag, to be prefixed to
            the next chunk.
        """
        pos = 0
        length = len(text)
        while pos < length:
            lt = text.find("<", pos)
            if lt < 0:
                self._text(text[pos:])
                return ""
            if lt > pos:
                self._text(text[pos:lt])
            gt = text.find(">", lt + 1)
            if gt < 0:
                return text[lt:]
            self._tag(text[lt + 1 : gt])
            pos = gt + 1
        return ""

    def _text(self, text: str) -> None:
        if self._field is not None:
            self._field_parts.append(text)

    def _tag(self, body: str) -> None:
        if not body or body[0] in "?!":
            # Declarations, processing instructions, comments
            return

        closing = body[0] == "/"
        if closing:
            body = body[1:]
        self_closing = body.endswith("/")
        match = _TAG_NAME.match(body)
        if match is None:
            if self.state is ScanState.IN_RECORD:
                self._drop(f"unreadable tag <{body[:40]}>")
            return
        name = match.group(0)

        if self.state is ScanState.SEEKING_RECORD:
            if name == self.record_tag and not closing and not self_closing:
                self._begin_record()
            return

        try:
            if closing:
                self._end_element(name)
            elif name == self.record_tag:
                raise MalformedRecord("record start inside record")
            elif not self_closing:
                self._start_element(name)
        except MalformedRecord as e:
            self._drop(str(e))
            if not closing and not self_closing and name == self.record_tag:
                self._begin_record()

    def _begin_record(self) -> None:
        self.state = ScanState.IN_RECORD
        self._builder = _RecordBuilder()
        self._stack = []
        self._field = None
        self._field_parts = []

    def _start_element(self, name: str) -> None:
        parent = self._stack[-1] if self._stack else None
        self._stack.append(name)
        if self._field is not None:
            # Inline markup inside a field contributes text only
            return
        kind = _field_for(name, parent)
        if kind is not None and self._builder.wants(kind):
            self._field = kind
            self._field_depth = len(self._stack)
            self._field_parts = []

    def _end_element(self, name: str) -> None:
        if name == self.record_tag:
            if self._stack:
                raise MalformedRecord(
                    f"record closed with <{self._stack[-1]}> still open"
                )
            self._finish_record()
            return
        if not self._stack or self._stack[-1] != name:
            expected = self._stack[-1] if self._stack else self.record_tag
            raise MalformedRecord(f"expected </{expected}>, found </{name}>")
        if self._field is not None and len(self._stack) == self._field_depth:
            self._builder.add(self._field, clean_text("".join(self._field_parts)))
            self._field = None
            self._field_parts = []
        self._stack.pop()

    def _finish_record(self) -> None:
        self.emitted += 1
        self._ready.append(self._builder.build(self.make_identifier(self.emitted)))
        self._reset()

    def _drop(self, reason: str) -> None:
        self.malformed += 1
        logger.debug(
            "Dropping malformed record in %dn%04d after record %d: %s",
            self.year,
            self.seq,
            self.emitted,
            reason,
        )
        self._reset()

    def _overflow(self, size: int) -> None:
        if self.state is ScanState.IN_RECORD:
            self._drop(f"tag longer than {self.max_tag_length} characters")
        else:
            logger.debug("Discarding %d characters of oversized markup", size)

    def _reset(self) -> None:
        self.state = ScanState.SEEKING_RECORD
        self._builder = None
        self._stack = []
        self._field = None
        self._field_parts = []
