"""CLI entry-point for surface plane classification."""

from __future__ import annotations

import logging

import click

from packages.core.config import load_settings
from packages.core.types import SurfaceType
from packages.planes.process import process_mesh_to_json, refresh_observer_from_file


def _settings_options(func):
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
                     default=None, help="JSON settings file."),
        click.option("--min-area", type=float, default=None, help="Minimum plane area (m²)."),
        click.option("--up-normal-threshold", type=float, default=None,
                     help="Minimum |normal.y| for horizontal planes."),
        click.option("--floor-buffer", type=float, default=None, help="Floor height tolerance (m)."),
        click.option("--ceiling-buffer", type=float, default=None, help="Ceiling height tolerance (m)."),
        click.option("--snap-degrees", "snap_to_gravity_threshold_deg", type=float, default=None,
                     help="Gravity snapping threshold (degrees)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """Surface plane classification pipeline."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )


@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", "output_file", default=None, help="Output JSON path.")
@_settings_options
def classify(input_file: str, output_file: str | None, config_path: str | None, **overrides):
    """Classify the planes of a mesh file and write a report JSON."""
    settings = load_settings(config_path, **overrides)
    json_str = process_mesh_to_json(input_file, output_path=output_file, settings=settings)
    click.echo(json_str)


@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--types", "types_", default="all", show_default=True,
              help="Comma-separated surface types, e.g. 'wall,floor'.")
@_settings_options
def planes(input_file: str, types_: str, config_path: str | None, **overrides):
    """List the active planes of the given types."""
    try:
        mask = SurfaceType.parse(types_)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--types") from exc

    settings = load_settings(config_path, **overrides)
    observer = refresh_observer_from_file(input_file, settings)
    try:
        for entry in observer.registry.entries(mask):
            g = entry.plane.geometry
            click.echo(
                f"{entry.surface_type.label():8s} "
                f"center=({g.center.x:.3f}, {g.center.y:.3f}, {g.center.z:.3f}) "
                f"area={g.area:.3f}"
            )
        click.echo(
            f"floor_y={observer.floor_y_position:.3f} ceiling_y={observer.ceiling_y_position:.3f}"
        )
    finally:
        observer.close()


if __name__ == "__main__":
    main()
