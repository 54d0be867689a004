"""Read trimmed, non-empty records from a plain or gzip'd byte stream."""
import gzip
import logging
import zlib
from typing import BinaryIO, Iterator

from esbulk.exceptions import StreamReadError

logger = logging.getLogger(__name__)

READ_ERRORS = (OSError, EOFError, UnicodeDecodeError, zlib.error)


def open_stream(stream: BinaryIO, gzipped: bool = False) -> BinaryIO:
    """Wrap stream in gzip decompression if asked, failing early on a bad header."""
    if not gzipped:
        return stream
    reader = gzip.GzipFile(fileobj=stream, mode="rb")
    try:
        # GzipFile is lazy; peek forces the header to be read now.
        reader.peek(1)
    except READ_ERRORS as e:
        raise StreamReadError(f"cannot open gzip stream: {e}") from e
    return reader


def iter_records(stream: BinaryIO, encoding: str = "utf-8") -> Iterator[str]:
    """Yield each line of stream, stripped, skipping blank lines.

    The iterator is single-pass. A final line without a trailing newline is
    still a record. Any read or decode error is raised as StreamReadError.
    """
    lineno = 0
    try:
        for raw in stream:
            lineno += 1
            line = raw.decode(encoding).strip()
            if not line:
                continue
            yield line
    except READ_ERRORS as e:
        raise StreamReadError(f"read failed after line {lineno}: {e}") from e
    logger.debug("input exhausted after %d lines", lineno)


def read_records(stream: BinaryIO, gzipped: bool = False) -> Iterator[str]:
    """Open stream (optionally gunzipping it) and return its records."""
    return iter_records(open_stream(stream, gzipped))
