"""In-kernel config extraction.

Stages, in order:

1. raw: look for ``IKCFG_ST`` + gzip magic in the image itself.
2. For each entry of MAGIC_TABLE: find the format's magic in the image,
   decompress from there into a scratch file, and run stage 1 on the scratch
   file. First success wins.
"""
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, NamedTuple
from warnings import warn

from ikconfig_core.errors import ConfigNotFoundError, IkconfigError, PatternNotFoundError
from ikconfig_core.protocol import (
    COPY_CHUNK_SIZE,
    MAGIC_BZIP2,
    MAGIC_GZIP,
    MAGIC_LZ4,
    MAGIC_LZMA,
    MAGIC_LZOP,
    MAGIC_XZ,
    MAGIC_ZSTD,
    MARKER,
    MARKER_PREFIX,
    SCAN_CHUNK_SIZE,
    SPOOL_MAX_SIZE,
)
from ikconfig_extract.decoders import bunzip2, gunzip, unlz4, unlzma, unlzo, unxz, unzstd
from ikconfig_extract.scan import find_pattern


class MagicEntry(NamedTuple):
    name: str
    magic: bytes
    decoder: Callable[[BinaryIO, BinaryIO], int]


# Trial order. gzip first: it is also the payload format and the cheapest to test.
MAGIC_TABLE: tuple[MagicEntry, ...] = (
    MagicEntry("gzip", MAGIC_GZIP, gunzip),
    MagicEntry("xz", MAGIC_XZ, unxz),
    MagicEntry("bzip2", MAGIC_BZIP2, bunzip2),
    MagicEntry("lzma", MAGIC_LZMA, unlzma),
    MagicEntry("lzo", MAGIC_LZOP, unlzo),
    MagicEntry("lz4", MAGIC_LZ4, unlz4),
    MagicEntry("zstd", MAGIC_ZSTD, unzstd),
)

RAW_STAGE = "raw"


def dump_config(src: BinaryIO, out: BinaryIO, chunk_size: int = SCAN_CHUNK_SIZE) -> int:
    """Find the config marker in ``src`` and write the decompressed config to ``out``.

    The gzip payload is decoded completely before anything reaches ``out``,
    so a corrupt payload leaves ``out`` untouched. Returns the config size.
    """
    offset = find_pattern(src, MARKER, chunk_size)
    src.seek(offset + len(MARKER_PREFIX))

    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as payload:
        size = gunzip(src, payload)
        payload.seek(0)
        shutil.copyfileobj(payload, out, COPY_CHUNK_SIZE)
    return size


def decompress_candidate(src: BinaryIO, entry: MagicEntry, scratch: BinaryIO,
                         chunk_size: int = SCAN_CHUNK_SIZE) -> tuple[int, int]:
    """Decode the first ``entry`` stream in ``src`` into ``scratch``.

    Returns ``(offset, decompressed_bytes)``.
    """
    offset = find_pattern(src, entry.magic, chunk_size)
    src.seek(offset)
    size = entry.decoder(src, scratch)
    scratch.flush()
    return offset, size


def try_decompress(src: BinaryIO, entry: MagicEntry, out: BinaryIO,
                   chunk_size: int = SCAN_CHUNK_SIZE) -> int:
    """Decompress the image as ``entry`` and look for the config inside."""
    with tempfile.TemporaryFile() as scratch:
        offset, size = decompress_candidate(src, entry, scratch, chunk_size)
        try:
            return dump_config(scratch, out, chunk_size)
        except PatternNotFoundError as e:
            raise PatternNotFoundError(
                f"no config marker in {size} bytes of {entry.name} data at offset {offset}"
            ) from e


def extract_config(src: BinaryIO, out: BinaryIO, chunk_size: int = SCAN_CHUNK_SIZE) -> str:
    """Write the config embedded in the kernel image ``src`` to ``out``.

    Returns the stage that produced it: ``"raw"`` or a MAGIC_TABLE name.
    Raises ConfigNotFoundError when every stage fails. I/O errors propagate.
    """
    attempts: list[tuple[str, Exception]] = []

    try:
        dump_config(src, out, chunk_size)
        return RAW_STAGE
    except IkconfigError as e:
        attempts.append((RAW_STAGE, e))
        if not isinstance(e, PatternNotFoundError):
            warn(f"Config marker found but payload unreadable: {e}")

    for entry in MAGIC_TABLE:
        try:
            try_decompress(src, entry, out, chunk_size)
            return entry.name
        except IkconfigError as e:
            attempts.append((entry.name, e))
            if not isinstance(e, PatternNotFoundError):
                warn(f"{entry.name} candidate rejected: {e}")

    raise ConfigNotFoundError(attempts)


def extract_config_file(path: Path, out: BinaryIO, chunk_size: int = SCAN_CHUNK_SIZE) -> str:
    with open(path, "rb") as image:
        return extract_config(image, out, chunk_size)
