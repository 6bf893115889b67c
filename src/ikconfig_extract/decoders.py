"""Stream decoders for the outer image compression formats.

Every decoder has the same shape: ``decoder(src, dst) -> int``. It reads a
compressed stream starting at the current position of ``src``, writes the
plaintext to ``dst`` and returns the number of bytes written. Failures raise
CorruptDataError or InvalidInputError; I/O errors propagate unchanged.

Decoders only transform bytes. Marker search lives in the extractor.
"""
from __future__ import annotations

import bz2
import lzma
import zlib
from typing import BinaryIO

import lz4.block
import zstandard

from ikconfig_core.errors import CorruptDataError, InvalidInputError
from ikconfig_core.protocol import COPY_CHUNK_SIZE, LZ4_LEGACY_BLOCK_SIZE, MAGIC_LZ4
from ikconfig_extract.lzop import unlzo

# LZ4_compressBound() of a full legacy block
LZ4_LEGACY_MAX_COMPRESSED = LZ4_LEGACY_BLOCK_SIZE + LZ4_LEGACY_BLOCK_SIZE // 255 + 16

_DECOMPRESS_ERRORS = (zlib.error, lzma.LZMAError, OSError, EOFError)


def _drain(name: str, src: BinaryIO, dst: BinaryIO, decomp) -> int:
    """Feed ``src`` through a zlib/bz2/lzma style decompressor until its stream ends.

    Bytes after the end of the stream are left alone.
    """
    written = 0
    while not decomp.eof:
        chunk = src.read(COPY_CHUNK_SIZE)
        if not chunk:
            raise CorruptDataError(f"{name}: stream truncated after {written} bytes")
        try:
            data = decomp.decompress(chunk)
        except _DECOMPRESS_ERRORS as e:
            raise CorruptDataError(f"{name}: {e}") from e
        dst.write(data)
        written += len(data)
    return written


def gunzip(src: BinaryIO, dst: BinaryIO) -> int:
    """Decode a single gzip member."""
    return _drain("gzip", src, dst, zlib.decompressobj(16 + zlib.MAX_WBITS))


def bunzip2(src: BinaryIO, dst: BinaryIO) -> int:
    return _drain("bzip2", src, dst, bz2.BZ2Decompressor())


def unlzma(src: BinaryIO, dst: BinaryIO) -> int:
    """Decode an xz or lzma-alone stream; the container is detected from its header."""
    return _drain("lzma", src, dst, lzma.LZMADecompressor(format=lzma.FORMAT_AUTO))


def unxz(src: BinaryIO, dst: BinaryIO) -> int:
    return unlzma(src, dst)


def unlz4(src: BinaryIO, dst: BinaryIO, tolerate_trailing: bool = True) -> int:
    """Decode an lz4 legacy frame.

    The legacy format has no end mark. In a kernel image the frame is followed
    by unrelated bytes, so the end of the stream only shows up as a block that
    fails to decode. With ``tolerate_trailing`` such an error ends the stream
    once some output has been produced.
    """
    magic = src.read(len(MAGIC_LZ4))
    if magic != MAGIC_LZ4:
        raise InvalidInputError(f"lz4: not a legacy frame (magic {magic.hex()})")

    written = 0
    try:
        while True:
            raw = src.read(4)
            if not raw:
                break
            if len(raw) < 4:
                raise CorruptDataError("lz4: truncated block header")
            if raw == MAGIC_LZ4:
                # Concatenated legacy frames
                continue

            size = int.from_bytes(raw, "little")
            if size == 0 or size > LZ4_LEGACY_MAX_COMPRESSED:
                raise CorruptDataError(f"lz4: invalid block size {size}")

            block = src.read(size)
            if len(block) < size:
                raise CorruptDataError(f"lz4: block truncated ({len(block)} of {size} bytes)")

            try:
                data = lz4.block.decompress(block, uncompressed_size=LZ4_LEGACY_BLOCK_SIZE)
            except lz4.block.LZ4BlockError as e:
                raise CorruptDataError(f"lz4: {e}") from e
            dst.write(data)
            written += len(data)
    except CorruptDataError:
        if tolerate_trailing and written:
            return written
        raise

    if not written:
        raise CorruptDataError("lz4: frame holds no blocks")
    return written


def unzstd(src: BinaryIO, dst: BinaryIO, tolerate_trailing: bool = True) -> int:
    """Decode one zstd frame.

    The frame is followed by the rest of the image; bytes after the frame end
    are left alone. A decode error or a source that runs out before the frame
    is complete ends the stream when ``tolerate_trailing`` is set and some
    output has been produced.
    """
    written = 0
    dobj = zstandard.ZstdDecompressor().decompressobj()
    try:
        while not dobj.eof:
            chunk = src.read(COPY_CHUNK_SIZE)
            if not chunk:
                raise CorruptDataError(f"zstd: truncated frame after {written} bytes")
            try:
                data = dobj.decompress(chunk)
            except zstandard.ZstdError as e:
                raise CorruptDataError(f"zstd: {e}") from e
            dst.write(data)
            written += len(data)
    except CorruptDataError:
        if tolerate_trailing and written:
            return written
        raise

    return written


__all__ = ["gunzip", "unxz", "bunzip2", "unlzma", "unlzo", "unlz4", "unzstd"]
