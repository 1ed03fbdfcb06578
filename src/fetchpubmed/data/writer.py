"""
Size-bounded output splitting.

Rows are appended to numbered chunk files in the output directory; a new
chunk starts after the current one reaches ``rows_per_chunk`` rows.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from .records import OutputChunk

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[OutputChunk], None]

# sysexits EX_IOERR
EXIT_IO_ERROR = 74


class OutputWriteError(Exception):
    """
    Raised when an output chunk cannot be created or written.

    This is fatal for the whole run.
    """

    exit_code = EXIT_IO_ERROR

    def __init__(self, path: Path, cause: BaseException):
        super().__init__(f"Cannot write output chunk {path}: {cause}")
        self.path = path
        self.cause = cause


class ChunkWriter:
    """
    Write rows to successive chunk files of at most ``rows_per_chunk`` rows.

    Files are named ``{prefix}{index:04d}{suffix}`` with indexes starting at
    0. At most one chunk is open at a time. ``on_open`` and ``on_close`` are
    called with the ``OutputChunk`` whenever a file is opened or closed.
    """

    def __init__(
        self,
        output_dir: Path,
        rows_per_chunk: int = 100_000,
        prefix: str = "parsed_page_",
        suffix: str = ".tsv",
        on_open: Optional[ChunkCallback] = None,
        on_close: Optional[ChunkCallback] = None,
    ):
        if rows_per_chunk < 1:
            raise ValueError("rows_per_chunk must be >= 1")
        self.output_dir = Path(output_dir)
        self.rows_per_chunk = rows_per_chunk
        self.prefix = prefix
        self.suffix = suffix
        self.on_open = on_open
        self.on_close = on_close

        self.chunks: List[OutputChunk] = []
        self.rows_written = 0
        self._current: Optional[OutputChunk] = None
        self._handle: Optional[TextIO] = None

    def chunk_path(self, index: int) -> Path:
        return self.output_dir / f"{self.prefix}{index:04d}{self.suffix}"

    @property
    def current(self) -> Optional[OutputChunk]:
        return self._current

    def write(self, row: str) -> None:
        """
        Append one serialized row, rolling over to a new chunk when needed.

        Raises:
            OutputWriteError: If the chunk cannot be opened or written.
        """
        if self._current is None:
            self._open_next()

        try:
            self._handle.write(row)
        except OSError as e:
            raise OutputWriteError(self._current.path, e) from e

        self._current.row_count += 1
        self.rows_written += 1
        if self._current.row_count >= self.rows_per_chunk:
            self._close_current()

    def close(self) -> None:
        """Close the open chunk, whatever its row count."""
        self._close_current()

    def _open_next(self) -> None:
        index = len(self.chunks)
        chunk = OutputChunk(index=index, path=self.chunk_path(index))
        try:
            handle = chunk.path.open("w", encoding="utf-8", newline="")
        except OSError as e:
            raise OutputWriteError(chunk.path, e) from e

        self._current = chunk
        self._handle = handle
        self.chunks.append(chunk)
        logger.debug("Opened chunk %s", chunk.path)
        if self.on_open is not None:
            self.on_open(chunk)

    def _close_current(self) -> None:
        if self._current is None:
            return
        chunk, handle = self._current, self._handle
        self._current = None
        self._handle = None
        try:
            handle.close()
        except OSError as e:
            raise OutputWriteError(chunk.path, e) from e
        chunk.closed = True
        logger.info("Wrote %d rows to %s", chunk.row_count, chunk.path)
        if self.on_close is not None:
            self.on_close(chunk)

    def __enter__(self) -> "ChunkWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
