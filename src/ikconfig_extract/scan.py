"""Chunked forward scan of a seekable binary source for a literal byte pattern."""
from __future__ import annotations

import io
from typing import BinaryIO, Iterator

from ikconfig_core.errors import InvalidInputError, PatternNotFoundError
from ikconfig_core.protocol import SCAN_CHUNK_SIZE


def _check_pattern(pattern) -> bytes:
    if not isinstance(pattern, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"pattern must be bytes, not {type(pattern).__name__}")
    pattern = bytes(pattern)
    if not pattern:
        raise InvalidInputError("empty pattern")
    return pattern


def iter_pattern(src: BinaryIO, pattern: bytes, chunk_size: int = SCAN_CHUNK_SIZE) -> Iterator[int]:
    """Yield the absolute offset of every occurrence of ``pattern`` in ``src``.

    The source is read from offset 0 in chunks of at least ``len(pattern)``
    bytes. Consecutive chunks overlap by ``len(pattern) - 1`` bytes so an
    occurrence straddling a chunk boundary is still seen exactly once.
    Offsets point at the first byte of the match.
    """
    pattern = _check_pattern(pattern)
    if chunk_size <= 0:
        raise InvalidInputError(f"chunk size must be positive, got {chunk_size}")

    need = len(pattern)
    chunk_size = max(chunk_size, need)

    length = src.seek(0, io.SEEK_END)
    if length < need:
        return
    src.seek(0)

    tail_retried = False
    while True:
        start = src.tell()
        chunk = src.read(chunk_size)
        if not chunk:
            return

        if len(chunk) < need:
            # Pipe-backed or wrapped sources may return short reads; regular files
            # never do. Examine the last len(pattern) bytes of the stream once.
            if tail_retried:
                return
            tail_retried = True
            src.seek(length - need)
            continue

        pos = chunk.find(pattern)
        while pos != -1:
            yield start + pos
            pos = chunk.find(pattern, pos + 1)

        end = start + len(chunk)
        if end >= length:
            return

        # Re-read the tail so a match across the boundary is not skipped.
        src.seek(end - (need - 1))


def find_pattern(src: BinaryIO, pattern: bytes, chunk_size: int = SCAN_CHUNK_SIZE) -> int:
    """Return the offset of the first occurrence of ``pattern`` in ``src``.

    Raises PatternNotFoundError if there is none and InvalidInputError if the
    pattern is not a non-empty byte string.
    """
    for offset in iter_pattern(src, pattern, chunk_size):
        return offset
    raise PatternNotFoundError(pattern.hex(" ") if isinstance(pattern, bytes) else repr(pattern))
