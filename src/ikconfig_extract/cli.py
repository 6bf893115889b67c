"""ikconfig - dump the .config embedded in a kernel image."""
from __future__ import annotations

import io
from pathlib import Path

import click

from ikconfig_core.errors import IkconfigError
from ikconfig_core.protocol import SCAN_CHUNK_SIZE
from ikconfig_extract.extractor import extract_config_file


@click.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Write the config to this file instead of stdout.",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=SCAN_CHUNK_SIZE,
    show_default=True,
    help="Read size used when scanning for magic numbers.",
)
def main(image: Path, output: Path | None, chunk_size: int) -> None:
    """Extract the .config file from IMAGE, a kernel compiled with CONFIG_IKCONFIG."""
    try:
        if output is None:
            stdout = click.get_binary_stream("stdout")
            extract_config_file(image, stdout, chunk_size)
            stdout.flush()
        else:
            buf = io.BytesIO()
            extract_config_file(image, buf, chunk_size)
            output.write_bytes(buf.getvalue())
    except (IkconfigError, OSError) as e:
        # Fail closed with a single-line reason, no stack trace.
        click.echo(f"FATAL: {image}: {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
