"""
Byte-level repair for captured credential dumps.

Dump files are produced by stealer logs, pastes and concatenation scripts, so
they routinely contain NUL padding, truncated multi-byte sequences and bytes in
unknown encodings. Nothing here ever raises on content: malformed substrings
are dropped and the result is always valid UTF-8 text the store will accept.
"""
from __future__ import annotations

import io
import re
from typing import BinaryIO, Iterator, Union

from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

NUL = b"\x00"
NEWLINE = b"\n"
DEFAULT_READ_SIZE = 512 * 1024
MAX_LINE_BYTES = 512 * 1024

_NON_NUL = re.compile(b"[^\x00]")


def _trim_line(line: bytes) -> bytes:
    # CRLF dumps are common
    if line.endswith(b"\r"):
        return line[:-1]
    return line


def _skip_nul(buffer: bytearray, pos: int) -> int:
    match = _NON_NUL.search(buffer, pos)
    return match.start() if match else len(buffer)


def iter_file_lines(
    handle: BinaryIO,
    read_size: int = DEFAULT_READ_SIZE,
    max_line: int = MAX_LINE_BYTES
) -> Iterator[bytes]:
    """
    Yield raw lines from a binary stream.

    Before each search for the next newline any leading run of NUL bytes is
    skipped, so padding between records never produces a phantom line. The
    newline (and a trailing carriage return) is not part of the yielded line.
    A final segment without a newline is yielded at end of stream.

    Lines longer than ``max_line`` bytes are dropped with a warning; at most
    ``max_line + read_size`` bytes are buffered at any time.

    Args:
        handle: Binary file-like object
        read_size: Bytes requested per read
        max_line: Longest line kept, in bytes

    Yields:
        Raw line bytes, not yet decoded
    """
    buffer = bytearray()
    # inside an overlong line: skip everything up to the next newline
    discarding = False
    while True:
        chunk = handle.read(read_size)
        if chunk:
            buffer += chunk

        pos = 0
        while True:
            if not discarding:
                pos = _skip_nul(buffer, pos)
            index = buffer.find(NEWLINE, pos)
            if index < 0:
                break
            if discarding:
                discarding = False
            elif index - pos > max_line:
                logger.warning(f"Dropped line of {index - pos} bytes (limit {max_line})")
            else:
                yield _trim_line(bytes(buffer[pos:index]))
            pos = index + 1
        del buffer[:pos]

        if len(buffer) > max_line:
            if not discarding:
                logger.warning(f"Dropped line longer than {max_line} bytes")
            discarding = True
            buffer.clear()
        if not chunk:
            break

    if not discarding:
        pos = _skip_nul(buffer, 0)
        if pos < len(buffer):
            yield _trim_line(bytes(buffer[pos:]))


def split_lines(data: bytes) -> Iterator[bytes]:
    """Split an in-memory byte string with the same rules as ``iter_file_lines``."""
    return iter_file_lines(io.BytesIO(data))


def sanitize(value: Union[bytes, bytearray, str]) -> str:
    """
    Make arbitrary bytes or text safe to store.

    NUL bytes are removed and any sequence that is not valid UTF-8 (or, for
    ``str`` input, a lone surrogate) is discarded. Total and idempotent:
    ``sanitize(sanitize(x)) == sanitize(x)``.

    Example:
        >>> sanitize(b"user\\x00name\\xff")
        'username'
    """
    if isinstance(value, str):
        if "\x00" in value:
            logger.debug("Removed NUL bytes from text field")
            value = value.replace("\x00", "")
        return value.encode("utf-8", errors="ignore").decode("utf-8")

    data = bytes(value)
    if NUL in data:
        logger.debug("Removed NUL bytes from raw line")
        data = data.replace(NUL, b"")
    return data.decode("utf-8", errors="ignore")


__all__ = ["iter_file_lines", "split_lines", "sanitize"]
