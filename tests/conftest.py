"""Shared test fixtures – synthetic room meshes and bounded-plane factories."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from plyfile import PlyData, PlyElement

from packages.core.types import BoundedPlane, Vec3
from packages.planes.mesh import MeshData


def make_plane(
    y: float = 0.0,
    normal: tuple[float, float, float] = (0.0, 1.0, 0.0),
    area: float = 1.0,
    x: float = 0.0,
    z: float = 0.0,
) -> BoundedPlane:
    """A bounded plane centred at (x, y, z) with the given unit normal and area."""
    n = np.asarray(normal, dtype=np.float64)
    n = n / np.linalg.norm(n)
    half = float(np.sqrt(area)) / 2
    return BoundedPlane(
        center=Vec3(x=x, y=y, z=z),
        half_extents=Vec3(x=half, y=half, z=0.0),
        normal=Vec3(x=float(n[0]), y=float(n[1]), z=float(n[2])),
        area=area,
    )


def make_quad(
    center,
    u_half,
    v_half,
    normal,
) -> tuple[np.ndarray, np.ndarray]:
    """Two triangles spanning ``center ± u_half ± v_half``, wound to face *normal*."""
    c = np.asarray(center, dtype=np.float64)
    u = np.asarray(u_half, dtype=np.float64)
    v = np.asarray(v_half, dtype=np.float64)
    vertices = np.array([c - u - v, c + u - v, c + u + v, c - u + v])
    triangles = np.array([[0, 1, 2], [0, 2, 3]])
    if np.dot(np.cross(u, v), np.asarray(normal, dtype=np.float64)) < 0:
        triangles = triangles[:, ::-1].copy()
    return vertices, triangles


def combine_quads(quads: list[tuple[np.ndarray, np.ndarray]]) -> MeshData:
    vertices: list[np.ndarray] = []
    triangles: list[np.ndarray] = []
    offset = 0
    for verts, tris in quads:
        vertices.append(verts)
        triangles.append(tris + offset)
        offset += len(verts)
    return MeshData(vertices=np.vstack(vertices), triangles=np.vstack(triangles))


FLOOR_Y = -1.6
CEILING_Y = 1.0
TABLE_Y = -0.85

_S = float(np.sqrt(0.5))

# Room 4 m (x) × 2.6 m (y) × 3 m (z).  The origin sits at head height, so
# the floor is below y = 0 and the ceiling above.  Normals face inward.
ROOM_QUADS = {
    "floor": ((0, FLOOR_Y, 0), (2, 0, 0), (0, 0, 1.5), (0, 1, 0)),
    "ceiling": ((0, CEILING_Y, 0), (2, 0, 0), (0, 0, 1.5), (0, -1, 0)),
    "wall_west": ((-2, -0.3, 0), (0, 0, 1.5), (0, 1.3, 0), (1, 0, 0)),
    "wall_east": ((2, -0.3, 0), (0, 0, 1.5), (0, 1.3, 0), (-1, 0, 0)),
    "wall_north": ((0, -0.3, -1.5), (2, 0, 0), (0, 1.3, 0), (0, 0, 1)),
    "wall_south": ((0, -0.3, 1.5), (2, 0, 0), (0, 1.3, 0), (0, 0, -1)),
    "table": ((-0.5, TABLE_Y, 0.3), (0.6, 0, 0), (0, 0, 0.3), (0, 1, 0)),
    # 45° slanted board: neither horizontal nor vertical
    "ramp": ((1.0, -0.5, 0.0), (0.6, 0, 0), (0, 0.4 * _S, -0.4 * _S), (0, _S, _S)),
}


def room_mesh_data() -> MeshData:
    return combine_quads([make_quad(*quad) for quad in ROOM_QUADS.values()])


@pytest.fixture()
def room_mesh() -> MeshData:
    """Floor, ceiling, four walls, a table top and a slanted ramp."""
    return room_mesh_data()


def write_mesh_ply(path: Path, mesh: MeshData) -> None:
    """Write *mesh* as a binary PLY with ``vertex`` and ``face`` elements."""
    vertex = np.empty(len(mesh.vertices), dtype=[("x", "f8"), ("y", "f8"), ("z", "f8")])
    vertex["x"] = mesh.vertices[:, 0]
    vertex["y"] = mesh.vertices[:, 1]
    vertex["z"] = mesh.vertices[:, 2]
    face = np.empty(len(mesh.triangles), dtype=[("vertex_indices", "i4", (3,))])
    face["vertex_indices"] = mesh.triangles
    PlyData(
        [PlyElement.describe(vertex, "vertex"), PlyElement.describe(face, "face")],
        text=False,
    ).write(str(path))


@pytest.fixture()
def room_ply(tmp_path: Path, room_mesh: MeshData) -> Path:
    path = tmp_path / "room.ply"
    write_mesh_ply(path, room_mesh)
    return path
