"""CLI entry point for panozoom tiling."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from tqdm import tqdm

from panozoom.config import (
    DEFAULT_EDGE_POLICY,
    DEFAULT_OUTPUT_NAME,
    DEFAULT_OVERLAP,
    DEFAULT_PIXEL_FORMAT,
    DEFAULT_TILE_SIZE,
    DEFAULT_WORKERS,
    EDGE_POLICIES,
    JPEG_QUALITY,
    PIXEL_FORMATS,
    TILE_FORMAT,
    TILE_FORMATS,
)
from panozoom.errors import PanozoomError

from .backends import get_vips_import_error, is_vips_available
from .pyramid import TilingConfig, build_pyramid
from .sources import collect_image_files

logger = logging.getLogger(__name__)


def _check_prerequisites() -> None:
    """Check that pyvips is available.

    Exits the process with an error message if not.
    """
    if not is_vips_available():
        click.echo(click.style(
            "Error: panozoom requires pyvips. Install it with: pip install 'pyvips[binary]'",
            fg="red",
        ), err=True)
        reason = get_vips_import_error()
        if reason:
            click.echo(f"  Import error: {reason}", err=True)
        sys.exit(1)


def _print_header(images: list[Path], output_dir: Path, name: str, config: TilingConfig) -> None:
    """Print the CLI banner with tiling parameters."""
    click.echo(click.style("panozoom", fg="cyan", bold=True))
    click.echo(click.style("=" * 40, fg="cyan"))
    click.echo(f"Found {len(images)} image(s)")
    click.echo(f"Output: {output_dir / (name + '.dzi')}")
    click.echo(
        f"Tile size: {config.tile_size}px | Overlap: {config.overlap}px | "
        f"Edges: {config.edge_policy} | Format: {config.tile_format}"
    )
    click.echo()


class _TqdmProgress:
    """Feeds builder progress callbacks into a tqdm bar."""

    def __init__(self) -> None:
        self._bar = tqdm(desc="Tiling", unit="tile")

    def __call__(self, stage: str, current: int, total: int) -> None:
        if stage != "tiles":
            return
        if self._bar.total != total:
            self._bar.total = total
            self._bar.refresh()
        self._bar.update(current - self._bar.n)

    def close(self) -> None:
        self._bar.close()


@click.command()
@click.argument(
    "images",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=Path("tiles"),
    help="Output directory (default: ./tiles)",
)
@click.option(
    "-n",
    "--name",
    default=DEFAULT_OUTPUT_NAME,
    help=f"Pyramid name: writes NAME.dzi and NAME_files/ (default: {DEFAULT_OUTPUT_NAME})",
)
@click.option(
    "--tile-size",
    "-t",
    type=click.IntRange(1, 8192),
    default=DEFAULT_TILE_SIZE,
    help=f"Tile size in pixels (default: {DEFAULT_TILE_SIZE})",
)
@click.option(
    "--overlap",
    type=click.IntRange(0, None),
    default=DEFAULT_OVERLAP,
    help=f"Overlap in pixels between adjacent tiles (default: {DEFAULT_OVERLAP})",
)
@click.option(
    "--edge-policy",
    type=click.Choice(EDGE_POLICIES),
    default=DEFAULT_EDGE_POLICY,
    help="Crop edge tiles to their true size, or pad them to the full tile",
)
@click.option(
    "--pixel-format",
    type=click.Choice(list(PIXEL_FORMATS)),
    default=DEFAULT_PIXEL_FORMAT,
    help=f"Output pixel format (default: {DEFAULT_PIXEL_FORMAT})",
)
@click.option(
    "--format",
    "tile_format",
    type=click.Choice(TILE_FORMATS),
    default=TILE_FORMAT,
    help=f"Tile file format (default: {TILE_FORMAT})",
)
@click.option(
    "--quality",
    "-q",
    type=click.IntRange(1, 100),
    default=JPEG_QUALITY,
    help=f"JPEG quality (default: {JPEG_QUALITY})",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(1, None),
    default=DEFAULT_WORKERS,
    help=f"Tile extraction threads (default: {DEFAULT_WORKERS})",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Rebuild even if a complete pyramid already exists",
)
@click.option("--verbose", "-v", is_flag=True, help="Log progress details")
def main(
    images: tuple[Path, ...],
    output: Path,
    name: str,
    tile_size: int,
    overlap: int,
    edge_policy: str,
    pixel_format: str,
    tile_format: str,
    quality: int,
    workers: int,
    force: bool,
    verbose: bool,
) -> None:
    """Tile same-height images, joined left to right, into a DeepZoom pyramid.

    IMAGES are image files or directories; directories contribute their
    images sorted by file name. The panorama order is the order given.

    Examples:

        # Join three photos into tiles/tiles.dzi
        python -m panozoom left.jpg middle.jpg right.jpg

        # Every image of a directory, 512px PNG tiles
        python -m panozoom ./frames/ -o ./out -n pano -t 512 --format png
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = TilingConfig(
            tile_size=tile_size,
            overlap=overlap,
            edge_policy=edge_policy,
            pixel_format=pixel_format,
            tile_format=tile_format,
            workers=workers,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    image_files = collect_image_files(images)
    if not image_files:
        click.echo("No images found in the given paths", err=True)
        sys.exit(1)

    _check_prerequisites()
    _print_header(image_files, output, name, config)

    progress = _TqdmProgress()
    try:
        result = build_pyramid(
            image_files,
            output,
            name=name,
            config=config,
            quality=quality,
            progress_callback=progress,
            force=force,
        )
    except PanozoomError as e:
        progress.close()
        logger.error("Tiling failed: %s", e)
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
    progress.close()

    click.echo()
    if result is None:
        click.echo(click.style(
            "Skipped: pyramid already complete (use --force to rebuild)", fg="cyan"
        ))
    else:
        click.echo(click.style("Completed: ", bold=True) + click.style(str(result), fg="green"))


if __name__ == "__main__":
    main()
