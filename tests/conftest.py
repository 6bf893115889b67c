import bz2
import gzip
import lzma
import struct
import zlib
from pathlib import Path

import lz4.block
import lzo
import pytest
import zstandard

from ikconfig_core.protocol import (
    F_ADLER32_C,
    F_ADLER32_D,
    LZ4_LEGACY_BLOCK_SIZE,
    LZOP_BLOCK_SIZE,
    MAGIC_LZ4,
    MAGIC_LZOP,
    MARKER_PREFIX,
    MARKER_SUFFIX,
)


def make_config(compression: str = "GZIP") -> bytes:
    lines = [
        "#",
        "# Automatically generated file; DO NOT EDIT.",
        "# Linux/x86 6.1.0 Kernel Configuration",
        "#",
        "CONFIG_CC_VERSION_TEXT=\"gcc (GCC) 12.2.0\"",
        "CONFIG_IKCONFIG=y",
        "CONFIG_IKCONFIG_PROC=y",
        f"CONFIG_KERNEL_{compression}=y",
        "# CONFIG_KERNEL_BZIP2 is not set" if compression != "BZIP2" else "# CONFIG_KERNEL_GZIP is not set",
    ]
    # Enough distinct options to make the payload span several scan chunks.
    lines += [f"CONFIG_OPTION_{i:04d}={'y' if i % 3 else 'm'}" for i in range(2000)]
    return ("\n".join(lines) + "\n").encode("ascii")


def filler(n: int, seed: int = 0) -> bytes:
    """Deterministic filler that cannot contain any magic number or the marker."""
    out = bytearray()
    i = seed
    while len(out) < n:
        out += b"sym_%08x\x00" % ((i * 2654435761) & 0xFFFFFFFF)
        i += 1
    return bytes(out[:n])


def make_vmlinux(config: bytes, head: int = 96 * 1024, tail: int = 48 * 1024) -> bytes:
    """Uncompressed kernel stand-in with an embedded IKCFG blob."""
    blob = MARKER_PREFIX + gzip.compress(config, mtime=0) + MARKER_SUFFIX
    return filler(head, 1) + blob + filler(tail, 2)


def lzop_header(flags: int = F_ADLER32_D, name: bytes = b"", version: int = 0x1030,
                version_needed: int = 0x0940, method: int = 1, extra: bytes | None = None,
                filter_id: int | None = None) -> bytes:
    fields = struct.pack(">HH", version, 0x2080)
    if version >= 0x0940:
        fields += struct.pack(">H", version_needed)
    fields += struct.pack(">B", method)
    if version >= 0x0940:
        fields += struct.pack(">B", 5)
    if extra is not None:
        flags |= 0x40
    if filter_id is not None:
        flags |= 0x800
    fields += struct.pack(">I", flags)
    if filter_id is not None:
        fields += struct.pack(">I", filter_id)
    fields += struct.pack(">II", 0o100644, 0)
    if version >= 0x0940:
        fields += struct.pack(">I", 0)
    fields += struct.pack(">B", len(name)) + name
    out = MAGIC_LZOP + fields + struct.pack(">I", zlib.adler32(fields))
    if extra is not None:
        ext = struct.pack(">I", len(extra)) + extra
        out += ext + struct.pack(">I", zlib.adler32(ext))
    return out


def lzop_compress(data: bytes, flags: int = F_ADLER32_D | F_ADLER32_C,
                  block_size: int = LZOP_BLOCK_SIZE, terminate: bool = True) -> bytes:
    out = bytearray(lzop_header(flags))
    for i in range(0, len(data), block_size):
        block = data[i:i + block_size]
        comp = lzo.compress(block, 1, False)
        stored = len(comp) >= len(block)
        payload = block if stored else comp
        out += struct.pack(">II", len(block), len(payload))
        if flags & F_ADLER32_D:
            out += struct.pack(">I", zlib.adler32(block))
        if not stored and flags & F_ADLER32_C:
            out += struct.pack(">I", zlib.adler32(comp))
        out += payload
    if terminate:
        out += b"\x00\x00\x00\x00"
    return bytes(out)


def lz4_legacy_compress(data: bytes) -> bytes:
    out = bytearray(MAGIC_LZ4)
    for i in range(0, len(data), LZ4_LEGACY_BLOCK_SIZE):
        comp = lz4.block.compress(data[i:i + LZ4_LEGACY_BLOCK_SIZE], store_size=False)
        out += struct.pack("<I", len(comp)) + comp
    return bytes(out)


def lzma_alone_compress(data: bytes) -> bytes:
    comp = lzma.compress(
        data,
        format=lzma.FORMAT_ALONE,
        filters=[{"id": lzma.FILTER_LZMA1, "preset": 6, "dict_size": 1 << 20}],
    )
    # Declare a 16 MiB dictionary so the header starts with 5d 00 00 00 like
    # the kernel's lzma -9 output. A larger window is always decodable.
    return comp[:1] + (1 << 24).to_bytes(4, "little") + comp[5:]


COMPRESSORS = {
    "gzip": lambda d: gzip.compress(d, mtime=0),
    "xz": lambda d: lzma.compress(d, format=lzma.FORMAT_XZ, check=lzma.CHECK_CRC32),
    "bzip2": bz2.compress,
    "lzma": lzma_alone_compress,
    "lzo": lzop_compress,
    "lz4": lz4_legacy_compress,
    "zstd": lambda d: zstandard.ZstdCompressor().compress(d),
}


def make_compressed_image(fmt: str, vmlinux: bytes) -> bytes:
    """bzImage-like layout: setup code, payload, little-endian size, padding."""
    setup = b"\x00" * 512 + filler(3000, 7)
    return setup + COMPRESSORS[fmt](vmlinux) + struct.pack("<I", len(vmlinux)) + b"\x00" * 60


@pytest.fixture
def kconfig() -> bytes:
    return make_config()


@pytest.fixture
def helpers():
    """Fixture builders exposed to the test modules."""
    return {
        "make_config": make_config,
        "make_vmlinux": make_vmlinux,
        "make_compressed_image": make_compressed_image,
        "filler": filler,
        "lzop_header": lzop_header,
        "lzop_compress": lzop_compress,
        "lz4_legacy_compress": lz4_legacy_compress,
        "compressors": COMPRESSORS,
    }


@pytest.fixture
def image_file(tmp_path):
    """Write a kernel image for ``fmt`` ("raw" or a compression name); returns (path, config)."""

    def build(fmt: str) -> tuple[Path, bytes]:
        config = make_config("GZIP" if fmt == "raw" else fmt.upper())
        vmlinux = make_vmlinux(config)
        data = vmlinux if fmt == "raw" else make_compressed_image(fmt, vmlinux)
        path = tmp_path / f"vmlinux.{fmt}"
        path.write_bytes(data)
        return path, config

    return build
