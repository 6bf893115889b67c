"""lzop container decoder.

The lzop container is parsed here by hand; only the raw LZO1X block
decompression comes from python-lzo.

Layout (all integers big-endian):

    magic(9) version(2) lib_version(2) [version_needed(2)] method(1) [level(1)]
    flags(4) [filter(4)] mode(4) mtime_low(4) [mtime_high(4)]
    name_len(1) name(name_len) header_checksum(4)
    [extra_len(4) extra(extra_len) extra_checksum(4)]
    blocks...

Each block is ``dst_len(4) src_len(4) [checksums] data(src_len)``; a zero
``dst_len`` ends the stream.
"""
from __future__ import annotations

import struct
import zlib
from typing import BinaryIO

import lzo

from ikconfig_core.errors import CorruptDataError, InvalidInputError
from ikconfig_core.protocol import (
    F_ADLER32_C,
    F_ADLER32_D,
    F_CRC32_C,
    F_CRC32_D,
    F_H_CRC32,
    F_H_EXTRA_FIELD,
    F_H_FILTER,
    F_STDIN,
    LZOP_BLOCK_SIZE,
    LZOP_MAX_BLOCK_SIZE,
    LZOP_MAX_VERSION_NEEDED,
    LZOP_MIN_VERSION,
    LZOP_SPLIT_FILE,
    LZOP_VERSION_EXTENDED,
    MAGIC_LZOP,
)

# M_LZO1X_1, M_LZO1X_1_15, M_LZO1X_999 all decode with lzo1x
LZOP_METHODS = (1, 2, 3)


def _read_exact(src: BinaryIO, n: int, what: str) -> bytes:
    data = src.read(n)
    if len(data) != n:
        raise CorruptDataError(f"lzop: truncated {what}")
    return data


def _u32(src: BinaryIO, what: str) -> int:
    return struct.unpack(">I", _read_exact(src, 4, what))[0]


def _checksum(use_crc32: bool, data: bytes) -> int:
    if use_crc32:
        return zlib.crc32(data) & 0xFFFFFFFF
    return zlib.adler32(data) & 0xFFFFFFFF


class _HeaderReader:
    """Reads header fields while keeping the raw bytes for the header checksum."""

    def __init__(self, src: BinaryIO):
        self.src = src
        self.raw = bytearray()

    def read(self, n: int, what: str) -> bytes:
        data = _read_exact(self.src, n, what)
        self.raw += data
        return data

    def u8(self, what: str) -> int:
        return self.read(1, what)[0]

    def u16(self, what: str) -> int:
        return struct.unpack(">H", self.read(2, what))[0]

    def u32(self, what: str) -> int:
        return struct.unpack(">I", self.read(4, what))[0]

    def take(self) -> bytes:
        data = bytes(self.raw)
        self.raw.clear()
        return data


def read_header(src: BinaryIO) -> dict:
    """Parse and validate the lzop header, leaving ``src`` at the first block."""
    magic = _read_exact(src, len(MAGIC_LZOP), "magic")
    if magic != MAGIC_LZOP:
        raise InvalidInputError(f"lzop: bad magic {magic.hex()}")

    h = _HeaderReader(src)
    version = h.u16("version")
    if version < LZOP_MIN_VERSION:
        raise InvalidInputError(f"lzop: unsupported version {version:#06x}")
    lib_version = h.u16("lib_version")

    version_needed = LZOP_MIN_VERSION
    if version >= LZOP_VERSION_EXTENDED:
        version_needed = h.u16("version_needed")
        if version_needed > LZOP_MAX_VERSION_NEEDED or version_needed < LZOP_MIN_VERSION:
            raise InvalidInputError(f"lzop: version_needed {version_needed:#06x} out of range")

    method = h.u8("method")
    if method not in LZOP_METHODS:
        raise InvalidInputError(f"lzop: unsupported method {method}")
    level = h.u8("level") if version >= LZOP_VERSION_EXTENDED else 0

    flags = h.u32("flags")
    filter_id = h.u32("filter") if flags & F_H_FILTER else 0
    mode = h.u32("mode")
    if flags & F_STDIN:
        mode = 0
    mtime_low = h.u32("mtime")
    mtime_high = h.u32("mtime_high") if version >= LZOP_VERSION_EXTENDED else 0

    name_len = h.u8("name length")
    name = h.read(name_len, "name") if name_len else b""

    use_crc32 = bool(flags & F_H_CRC32)
    expected = _checksum(use_crc32, h.take())
    stored = _u32(src, "header checksum")
    if stored != expected:
        raise CorruptDataError(f"lzop: header checksum {stored:#010x} != {expected:#010x}")

    extra = b""
    if flags & F_H_EXTRA_FIELD:
        extra_len = h.u32("extra field length")
        extra = h.read(extra_len, "extra field")
        expected = _checksum(use_crc32, h.take())
        stored = _u32(src, "extra field checksum")
        if stored != expected:
            raise CorruptDataError("lzop: extra field checksum mismatch")

    return {
        "version": version,
        "lib_version": lib_version,
        "version_needed": version_needed,
        "method": method,
        "level": level,
        "flags": flags,
        "filter": filter_id,
        "mode": mode,
        "mtime": (mtime_high << 32) | mtime_low,
        "name": name.decode("latin-1"),
        "extra": extra,
    }


def unlzo(src: BinaryIO, dst: BinaryIO) -> int:
    """Decode an lzop file into ``dst``; returns the number of bytes written."""
    header = read_header(src)
    flags = header["flags"]
    written = 0

    while True:
        dst_len = _u32(src, "block size")
        if dst_len == 0:
            break
        if dst_len == LZOP_SPLIT_FILE:
            raise InvalidInputError("lzop: this file is a split lzop file")
        if dst_len > LZOP_MAX_BLOCK_SIZE:
            raise CorruptDataError(f"lzop: block size {dst_len} exceeds {LZOP_MAX_BLOCK_SIZE}")

        src_len = _u32(src, "compressed block size")
        if src_len == 0 or src_len > dst_len:
            raise CorruptDataError(f"lzop: compressed size {src_len} invalid for block of {dst_len}")
        if dst_len > LZOP_BLOCK_SIZE:
            raise CorruptDataError(f"lzop: block size {dst_len} larger than {LZOP_BLOCK_SIZE}")

        d_adler32 = _u32(src, "adler32") if flags & F_ADLER32_D else None
        d_crc32 = _u32(src, "crc32") if flags & F_CRC32_D else None
        c_adler32 = c_crc32 = None
        if src_len < dst_len:
            if flags & F_ADLER32_C:
                c_adler32 = _u32(src, "compressed adler32")
            if flags & F_CRC32_C:
                c_crc32 = _u32(src, "compressed crc32")

        block = _read_exact(src, src_len, "block")

        if src_len < dst_len:
            if c_adler32 is not None and c_adler32 != _checksum(False, block):
                raise CorruptDataError("lzop: compressed adler32 mismatch")
            if c_crc32 is not None and c_crc32 != _checksum(True, block):
                raise CorruptDataError("lzop: compressed crc32 mismatch")
            try:
                data = lzo.decompress(block, False, dst_len)
            except lzo.error as e:
                raise CorruptDataError(f"lzop: compressed data violation ({e})") from e
            if len(data) != dst_len:
                raise CorruptDataError("lzop: compressed data violation")
        else:
            data = block

        if d_adler32 is not None and d_adler32 != _checksum(False, data):
            raise CorruptDataError("lzop: adler32 mismatch")
        if d_crc32 is not None and d_crc32 != _checksum(True, data):
            raise CorruptDataError("lzop: crc32 mismatch")

        dst.write(data)
        written += len(data)

    return written
