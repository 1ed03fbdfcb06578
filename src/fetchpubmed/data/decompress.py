"""
Streaming gzip decompression.

Output is produced incrementally as input chunks arrive, and never more than
``max_output`` bytes per yielded chunk, so neither side of the stream is held
in memory. Corrupt or truncated input raises instead of ending the stream
early.
"""

import logging
import zlib
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

# 16 + MAX_WBITS: expect a gzip header and trailer
GZIP_WBITS = 16 + zlib.MAX_WBITS
DEFAULT_MAX_OUTPUT = 256 * 1024


class ArchiveError(Exception):
    """
    Raised when a compressed stream cannot be decoded completely.
    """

    code = "archive_error"


class CorruptArchiveError(ArchiveError):
    """
    The input is not valid gzip data.
    """

    code = "corrupt_archive"


class TruncatedArchiveError(ArchiveError):
    """
    The input ended before the gzip trailer.
    """

    code = "truncated_archive"


def decompress_stream(
    chunks: Iterable[bytes], max_output: int = DEFAULT_MAX_OUTPUT
) -> Iterator[bytes]:
    """
    Decompress a gzip byte stream chunk by chunk.

    Concatenated gzip members are decoded back to back, as ``gunzip`` does.

    Args:
        chunks: Compressed input in arbitrary-sized pieces.
        max_output: Upper bound on the size of each yielded chunk.

    Yields:
        Decompressed bytes.

    Raises:
        CorruptArchiveError: If the data is not a valid gzip stream.
        TruncatedArchiveError: If the input ends mid-member or is empty.
    """
    decoder = zlib.decompressobj(GZIP_WBITS)
    seen_input = False

    for chunk in chunks:
        if not chunk:
            continue
        seen_input = True
        data = chunk
        while data:
            if decoder.eof:
                # Bytes after a finished member must start another member
                decoder = zlib.decompressobj(GZIP_WBITS)
            try:
                out = decoder.decompress(data, max_output)
            except zlib.error as e:
                raise CorruptArchiveError(f"Invalid gzip data: {e}") from e
            if out:
                yield out
            data = decoder.unused_data if decoder.eof else decoder.unconsumed_tail

    if not seen_input:
        raise TruncatedArchiveError("Empty input is not a gzip archive")

    # Drain anything the decoder is still holding
    while not decoder.eof:
        try:
            out = decoder.decompress(decoder.unconsumed_tail, max_output)
        except zlib.error as e:
            raise CorruptArchiveError(f"Invalid gzip data: {e}") from e
        if not out:
            break
        yield out

    if not decoder.eof:
        raise TruncatedArchiveError("Compressed stream ended before gzip trailer")


def validate_archive(chunks: Iterable[bytes]) -> int:
    """
    Decode a whole gzip stream, discarding the output.

    Returns:
        Number of decompressed bytes.

    Raises:
        ArchiveError: If the stream is corrupt or truncated.
    """
    total = 0
    for out in decompress_stream(chunks):
        total += len(out)
    logger.debug("Archive validated: %d bytes uncompressed", total)
    return total
