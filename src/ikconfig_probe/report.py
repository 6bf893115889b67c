from __future__ import annotations

import hashlib
import io
import tempfile
from pathlib import Path
from typing import BinaryIO

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ikconfig_core.errors import IkconfigError, PatternNotFoundError
from ikconfig_core.protocol import MARKER, SCAN_CHUNK_SIZE
from ikconfig_extract.extractor import MAGIC_TABLE, RAW_STAGE, MagicEntry, dump_config
from ikconfig_extract.scan import iter_pattern

NOT_FOUND = "NOT_FOUND"
DECODE_ERROR = "DECODE_ERROR"
NO_CONFIG = "NO_CONFIG"
CONFIG_FOUND = "CONFIG_FOUND"

PROBE_SCHEMA = pa.schema(
    [
        ("stage", pa.string()),
        ("magic", pa.string()),
        ("offset", pa.int64()),
        ("candidates", pa.int64()),
        ("decompressed_bytes", pa.int64()),
        ("status", pa.string()),
        ("content_hash", pa.string()),
        ("detail", pa.string()),
    ]
)


def _record(stage: str, magic: bytes) -> dict:
    return {
        "stage": stage,
        "magic": magic.hex(),
        "offset": None,
        "candidates": 0,
        "decompressed_bytes": None,
        "status": NOT_FOUND,
        "content_hash": None,
        "detail": None,
    }


def _locate(src: BinaryIO, pattern: bytes, chunk_size: int) -> tuple[int | None, int]:
    """Return ``(first_offset, count)`` of ``pattern`` in ``src``."""
    first = None
    count = 0
    for off in iter_pattern(src, pattern, chunk_size):
        if first is None:
            first = off
        count += 1
    return first, count


def _read_config(rec: dict, src: BinaryIO, chunk_size: int) -> None:
    buf = io.BytesIO()
    try:
        dump_config(src, buf, chunk_size)
    except PatternNotFoundError:
        rec["status"] = NO_CONFIG
    except IkconfigError as e:
        rec["status"] = DECODE_ERROR
        rec["detail"] = str(e)
    else:
        rec["status"] = CONFIG_FOUND
        rec["content_hash"] = hashlib.sha256(buf.getvalue()).hexdigest()


def probe_raw(src: BinaryIO, chunk_size: int = SCAN_CHUNK_SIZE) -> dict:
    rec = _record(RAW_STAGE, MARKER)
    rec["offset"], rec["candidates"] = _locate(src, MARKER, chunk_size)
    if rec["offset"] is not None:
        _read_config(rec, src, chunk_size)
    return rec


def probe_entry(src: BinaryIO, entry: MagicEntry, chunk_size: int = SCAN_CHUNK_SIZE) -> dict:
    """Decode the first ``entry`` candidate in ``src`` and look for a config in it."""
    rec = _record(entry.name, entry.magic)
    rec["offset"], rec["candidates"] = _locate(src, entry.magic, chunk_size)
    if rec["offset"] is None:
        return rec

    with tempfile.TemporaryFile() as scratch:
        src.seek(rec["offset"])
        try:
            rec["decompressed_bytes"] = entry.decoder(src, scratch)
        except IkconfigError as e:
            rec["status"] = DECODE_ERROR
            rec["detail"] = str(e)
            return rec
        _read_config(rec, scratch, chunk_size)
    return rec


def probe_image(src: BinaryIO, chunk_size: int = SCAN_CHUNK_SIZE) -> list[dict]:
    """Run every extraction stage against ``src`` without stopping at the first hit."""
    records = [probe_raw(src, chunk_size)]
    for entry in MAGIC_TABLE:
        records.append(probe_entry(src, entry, chunk_size))
    return records


def write_probe_parquet(records: list[dict], out_path: Path) -> None:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(records, columns=PROBE_SCHEMA.names)
    df = df.astype({"offset": "Int64", "candidates": "Int64", "decompressed_bytes": "Int64"})

    table = pa.Table.from_pandas(df, schema=PROBE_SCHEMA, preserve_index=False)
    pq.write_table(table, out_path)
