import json
from pathlib import Path

import click

from ikconfig_core.protocol import SCAN_CHUNK_SIZE
from .report import CONFIG_FOUND, probe_image, write_probe_parquet


@click.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--parquet", "parquet_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Also write the probe records as a Parquet table.")
@click.option("--chunk-size", type=click.IntRange(min=1), default=SCAN_CHUNK_SIZE, show_default=True)
def main(image: Path, parquet_path: Path | None, chunk_size: int):
    """Report every magic number and config marker found in IMAGE."""
    try:
        with open(image, "rb") as f:
            records = probe_image(f, chunk_size)
    except OSError as e:
        click.echo(f"FATAL: {image}: {e}", err=True)
        raise SystemExit(1)

    if parquet_path is not None:
        write_probe_parquet(records, parquet_path)

    click.echo(json.dumps(records, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    if not any(r["status"] == CONFIG_FOUND for r in records):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
