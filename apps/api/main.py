"""FastAPI application for surface plane classification.

Accepts a mesh upload, runs a plane refresh on it, and serves the active
classified planes (as renderable visual records) to the viewer.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from packages.core.config import SurfacePlaneSettings
from packages.core.types import SurfaceType
from packages.planes.mesh import load_mesh
from packages.planes.observer import SurfacePlaneObserver
from packages.planes.registry import RefreshError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Surface Planes API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

settings = SurfacePlaneSettings()

# ── In-memory store (single-mesh MVP) ────────────────────────────────
_state: dict = {
    "mesh": None,         # MeshData or None
    "observer": None,     # SurfacePlaneObserver or None
    "source_file": None,  # original filename
}


def _require_observer() -> SurfacePlaneObserver:
    observer = _state["observer"]
    if observer is None:
        raise HTTPException(404, "No mesh uploaded yet")
    return observer


def reset_state() -> None:
    """Close the current observer and forget the uploaded mesh."""
    if _state["observer"] is not None:
        _state["observer"].close()
    _state["mesh"] = None
    _state["observer"] = None
    _state["source_file"] = None


async def _run_refresh(observer: SurfacePlaneObserver) -> bool:
    try:
        return await observer.make_planes()
    except RefreshError as e:
        logger.exception("Plane refresh failed")
        raise HTTPException(500, f"Plane refresh failed: {e}")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/upload")
async def upload_mesh(file: UploadFile = File(...)):
    """Upload a PLY mesh, classify its planes, and store the results."""
    if not file.filename:
        raise HTTPException(400, "No filename provided")

    suffix = Path(file.filename).suffix.lower()
    if suffix != ".ply":
        raise HTTPException(400, f"Unsupported format '{suffix}'. Use .ply")

    logger.info("Receiving mesh: %s", file.filename)
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        shutil.copyfileobj(file.file, tmp)
        tmp_path = Path(tmp.name)

    try:
        mesh = load_mesh(tmp_path)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        logger.exception("Loading mesh failed")
        raise HTTPException(500, f"Loading mesh failed: {e}")
    finally:
        tmp_path.unlink(missing_ok=True)

    reset_state()
    observer = SurfacePlaneObserver(lambda m=mesh: [m], settings=settings)
    _state["mesh"] = mesh
    _state["observer"] = observer
    _state["source_file"] = file.filename

    await _run_refresh(observer)
    logger.info("Upload processed: %d active planes", len(observer.registry))
    return {
        "filename": file.filename,
        "triangle_count": mesh.triangle_count,
        "planes_active": len(observer.registry),
        "counts": observer.registry.counts(),
    }


@app.post("/refresh")
async def refresh_planes():
    """Re-run plane classification on the stored mesh."""
    observer = _require_observer()
    refreshed = await _run_refresh(observer)
    return {"refreshed": refreshed, "planes_active": len(observer.registry)}


@app.get("/planes")
def get_planes(types: str = "all"):
    """Return visual records of the active planes whose type is in *types*."""
    observer = _require_observer()
    try:
        mask = SurfaceType.parse(types)
    except ValueError as e:
        raise HTTPException(400, str(e))

    visuals = [
        json.loads(observer.renderer.get(handle).model_dump_json())
        for handle in observer.get_active_planes(mask)
    ]
    return {"count": len(visuals), "planes": visuals}


@app.get("/references")
def get_references():
    """Return the floor and ceiling heights from the last refresh."""
    observer = _require_observer()
    return {
        "floor_y": observer.floor_y_position,
        "ceiling_y": observer.ceiling_y_position,
    }


@app.get("/report")
def get_report():
    """Return the full classified-plane report."""
    observer = _require_observer()
    report = observer.report(source_file=_state["source_file"] or "")
    return JSONResponse(content=json.loads(report.model_dump_json()))
