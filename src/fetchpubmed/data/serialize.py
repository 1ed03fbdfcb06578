"""
Row serialization for extracted records.

Every row has exactly five tab-separated fields, each wrapped in double
quotes: identifier, authors, year, title, abstract.
"""

from typing import List, Optional

from .records import Record

FIELD_COUNT = 5
DELIMITER = "\t"
QUOTE = '"'
AUTHOR_SEPARATOR = ","

_UNSAFE = str.maketrans({"\t": " ", "\n": " ", "\r": " "})


def escape_field(value: Optional[str]) -> str:
    """
    Quote a single field.

    Tabs and line breaks become spaces, embedded quotes are doubled, and the
    result is wrapped in quotes. ``None`` becomes an empty quoted field.
    """
    if value is None:
        value = ""
    value = value.translate(_UNSAFE).replace(QUOTE, QUOTE * 2)
    return f"{QUOTE}{value}{QUOTE}"


def serialize_record(record: Record, ordinal: int) -> str:
    """
    Convert a record into one newline-terminated TSV row.

    Args:
        record: Record to serialize.
        ordinal: 1-based position of the row in the run; stands in for the
            identifier when the record has none.
    """
    identifier = record.identifier or str(ordinal)
    fields = (
        identifier,
        AUTHOR_SEPARATOR.join(record.authors),
        record.year,
        record.title,
        record.abstract,
    )
    return DELIMITER.join(escape_field(f) for f in fields) + "\n"


def split_row(row: str) -> List[str]:
    """
    Split a serialized row back into its unquoted field values.

    Raises:
        ValueError: If the row doesn't have five quoted fields.
    """
    parts = row.rstrip("\n").split(DELIMITER)
    if len(parts) != FIELD_COUNT:
        raise ValueError(f"Expected {FIELD_COUNT} fields, found {len(parts)}")
    values = []
    for part in parts:
        if len(part) < 2 or not (part.startswith(QUOTE) and part.endswith(QUOTE)):
            raise ValueError(f"Field is not quoted: {part[:40]!r}")
        values.append(part[1:-1].replace(QUOTE * 2, QUOTE))
    return values
