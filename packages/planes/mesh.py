"""Triangle-mesh snapshots and mesh file loading.

Supported formats
-----------------
* **PLY** – via the ``plyfile`` library.  The file must carry a ``face``
  element; polygons with more than three corners are fan-triangulated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
from plyfile import PlyData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeshData:
    """Vertex, triangle and (optional) per-vertex normal arrays of one mesh."""

    vertices: np.ndarray
    triangles: np.ndarray
    normals: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)
        if len(triangles) and (triangles.min() < 0 or triangles.max() >= len(vertices)):
            raise ValueError("triangle indices out of range for vertex array")
        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "triangles", triangles)
        if self.normals is not None:
            object.__setattr__(
                self, "normals", np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            )

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    def with_recomputed_normals(self) -> "MeshData":
        """Return a copy whose vertex normals are rebuilt from the triangles."""
        return MeshData(
            vertices=self.vertices,
            triangles=self.triangles,
            normals=compute_vertex_normals(self.vertices, self.triangles),
        )


def compute_vertex_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals; isolated vertices get a zero vector."""
    normals = np.zeros_like(vertices, dtype=np.float64)
    if len(triangles) == 0:
        return normals
    v0 = vertices[triangles[:, 0]]
    v1 = vertices[triangles[:, 1]]
    v2 = vertices[triangles[:, 2]]
    # cross product length is twice the area, so summing it weights by area
    face_normals = np.cross(v1 - v0, v2 - v0)
    for corner in range(3):
        np.add.at(normals, triangles[:, corner], face_normals)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return normals / lengths


def _triangulate(faces) -> np.ndarray:
    triangles: list[tuple[int, int, int]] = []
    for face in faces:
        idx = [int(i) for i in face]
        for k in range(1, len(idx) - 1):
            triangles.append((idx[0], idx[k], idx[k + 1]))
    return np.asarray(triangles, dtype=np.int64).reshape(-1, 3)


def load_ply_mesh(path: str | Path) -> MeshData:
    """Read a binary or ASCII PLY triangle mesh."""
    logger.info("Reading PLY mesh %s", Path(path).name)
    ply = PlyData.read(str(path))
    vertex = ply["vertex"]
    positions = np.column_stack(
        [np.asarray(vertex[axis], dtype=np.float64) for axis in ("x", "y", "z")]
    )

    element_names = [el.name for el in ply.elements]
    if "face" not in element_names:
        raise ValueError(f"{Path(path).name} has no 'face' element; a triangle mesh is required")

    face = ply["face"]
    prop_names = [p.name for p in face.properties]
    index_prop = next(
        (n for n in ("vertex_indices", "vertex_index") if n in prop_names), None
    )
    if index_prop is None:
        raise ValueError(f"{Path(path).name} faces carry no vertex index list")
    triangles = _triangulate(face[index_prop])

    normals = None
    vertex_props = [p.name for p in vertex.properties]
    if all(n in vertex_props for n in ("nx", "ny", "nz")):
        normals = np.column_stack(
            [np.asarray(vertex[n], dtype=np.float64) for n in ("nx", "ny", "nz")]
        )

    logger.info("PLY mesh loaded: %d vertices, %d triangles", len(positions), len(triangles))
    return MeshData(vertices=positions, triangles=triangles, normals=normals)


def load_mesh(path: str | Path) -> MeshData:
    """Auto-detect format and return a :class:`MeshData`.

    Raises ``ValueError`` for unsupported extensions.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext == ".ply":
        return load_ply_mesh(p)
    raise ValueError(f"Unsupported mesh format '{ext}'. Supported: .ply")
