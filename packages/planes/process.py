"""End-to-end pipeline: load a mesh file → classified surface-plane report JSON."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from packages.core.config import SurfacePlaneSettings
from packages.core.types import SurfacePlaneReport
from packages.planes.mesh import load_mesh
from packages.planes.observer import SurfacePlaneObserver

logger = logging.getLogger(__name__)


def refresh_observer_from_file(
    input_path: str | Path,
    settings: Optional[SurfacePlaneSettings] = None,
) -> SurfacePlaneObserver:
    """Load *input_path* and run one refresh cycle on a fresh observer."""
    input_path = Path(input_path)
    logger.info("Loading %s …", input_path.name)
    mesh = load_mesh(input_path)

    observer = SurfacePlaneObserver(lambda: [mesh], settings=settings)
    asyncio.run(observer.make_planes())
    return observer


def process_mesh(
    input_path: str | Path,
    settings: Optional[SurfacePlaneSettings] = None,
) -> SurfacePlaneReport:
    """Run the full pipeline on a single mesh file.

    1. Load the mesh.
    2. Extract bounded planes.
    3. Classify them (floor / ceiling / wall / platform / unknown).
    4. Register them and assemble a :class:`SurfacePlaneReport`.
    """
    observer = refresh_observer_from_file(input_path, settings)
    try:
        return observer.report(source_file=Path(input_path).name)
    finally:
        observer.close()


def process_mesh_to_json(
    input_path: str | Path,
    output_path: str | Path | None = None,
    settings: Optional[SurfacePlaneSettings] = None,
) -> str:
    """Run the pipeline and write the report to a JSON file.

    Returns the JSON string.
    """
    report = process_mesh(input_path, settings)
    json_str = report.model_dump_json(indent=2)

    if output_path is None:
        output_path = Path(input_path).with_suffix(".planes.json")
    Path(output_path).write_text(json_str)
    logger.info("Wrote plane report → %s", output_path)
    return json_str
