"""ikconfig protocol constants.

Single source of truth for magic values, the in-kernel config marker and
scan/decoder limits. Keep the magic table in sync with the kernel's
scripts/extract-ikconfig.
"""

# In-kernel config marker: "IKCFG_ST" followed by the gzip header
MARKER_PREFIX = b"IKCFG_ST"
MARKER_SUFFIX = b"IKCFG_ED"

# Compressed stream magics
MAGIC_GZIP  = b"\x1f\x8b\x08"
MAGIC_XZ    = b"\xfd7zXZ\x00"
MAGIC_BZIP2 = b"BZh"
MAGIC_LZMA  = b"\x5d\x00\x00\x00"
MAGIC_LZOP  = b"\x89LZO\x00\r\n\x1a\n"
MAGIC_LZ4   = b"\x02\x21\x4c\x18"  # legacy frame
MAGIC_ZSTD  = b"\x28\xb5\x2f\xfd"

MARKER = MARKER_PREFIX + MAGIC_GZIP

# Scan and copy sizing
SCAN_CHUNK_SIZE = 64 * 1024  # 64 KiB
COPY_CHUNK_SIZE = 64 * 1024
SPOOL_MAX_SIZE = 1024 * 1024  # config payloads above 1 MiB spill to disk

# lzop container
LZOP_MAX_BLOCK_SIZE = 64 * 1024 * 1024
LZOP_BLOCK_SIZE = 256 * 1024
LZOP_SPLIT_FILE = 0xFFFFFFFF
LZOP_MIN_VERSION = 0x0900
LZOP_MAX_VERSION_NEEDED = 0x1040
LZOP_VERSION_EXTENDED = 0x0940  # header grows version_needed, level, mtime_high

# lzop header flags
F_ADLER32_D     = 0x00000001
F_ADLER32_C     = 0x00000002
F_STDIN         = 0x00000004
F_H_EXTRA_FIELD = 0x00000040
F_CRC32_D       = 0x00000100
F_CRC32_C       = 0x00000200
F_H_FILTER      = 0x00000800
F_H_CRC32       = 0x00001000

# lz4 legacy frame: every block but the last inflates to exactly this size
LZ4_LEGACY_BLOCK_SIZE = 8 * 1024 * 1024
