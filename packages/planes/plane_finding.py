"""Mesh → bounded plane extraction.

Adjacent triangles whose normals and plane offsets agree are grown into
planar regions (connected components of a filtered face-adjacency graph).
Each region becomes one :class:`BoundedPlane`: an oriented rectangle
fitted to the region's projected vertices.

Normals within ``snap_to_gravity_threshold_deg`` of vertical are snapped
to exactly ±Y, and normals that close to horizontal get their vertical
component zeroed, so floors read level and walls read plumb.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree
from scipy.spatial.transform import Rotation

from packages.core.types import BoundedPlane, Quaternion, Vec3
from packages.planes.mesh import MeshData

logger = logging.getLogger(__name__)

_UP = np.array([0.0, 1.0, 0.0])


# ── per-face geometry ────────────────────────────────────────────────

def _weld_vertices(vertices: np.ndarray, tolerance: float) -> np.ndarray:
    """Map every vertex to a canonical index shared by coincident vertices."""
    n = len(vertices)
    if n == 0 or tolerance <= 0:
        return np.arange(n)
    pairs = cKDTree(vertices).query_pairs(tolerance, output_type="ndarray")
    if len(pairs) == 0:
        return np.arange(n)
    graph = coo_matrix(
        (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])), shape=(n, n)
    )
    _, labels = connected_components(graph, directed=False)
    return labels


def _face_geometry(
    vertices: np.ndarray, triangles: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return ``(unit_normals, areas, centroids)`` per triangle."""
    v0 = vertices[triangles[:, 0]]
    v1 = vertices[triangles[:, 1]]
    v2 = vertices[triangles[:, 2]]
    cross = np.cross(v1 - v0, v2 - v0)
    lengths = np.linalg.norm(cross, axis=1)
    areas = 0.5 * lengths
    normals = cross / np.maximum(lengths, 1e-12)[:, None]
    centroids = (v0 + v1 + v2) / 3.0
    return normals, areas, centroids


def _shared_edge_pairs(triangles: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return face index pairs ``(a, b)`` that share an edge."""
    n_faces = len(triangles)
    edges = np.concatenate(
        [triangles[:, [0, 1]], triangles[:, [1, 2]], triangles[:, [2, 0]]]
    )
    edges.sort(axis=1)
    owners = np.tile(np.arange(n_faces), 3)
    order = np.lexsort((edges[:, 1], edges[:, 0]))
    edges = edges[order]
    owners = owners[order]
    same = np.all(edges[1:] == edges[:-1], axis=1)
    return owners[:-1][same], owners[1:][same]


# ── region fitting ───────────────────────────────────────────────────

def snap_normal_to_gravity(normal: np.ndarray, threshold_deg: float) -> np.ndarray:
    """Snap *normal* to ±Y or to the horizontal plane when within *threshold_deg*."""
    n = normal / np.linalg.norm(normal)
    if threshold_deg <= 0:
        return n
    ny = float(np.clip(n[1], -1.0, 1.0))
    angle_to_vertical = math.degrees(math.acos(abs(ny)))
    if angle_to_vertical <= threshold_deg:
        return np.array([0.0, math.copysign(1.0, ny), 0.0])
    if abs(ny) <= math.sin(math.radians(threshold_deg)):
        flat = np.array([n[0], 0.0, n[2]])
        length = np.linalg.norm(flat)
        if length > 1e-12:
            return flat / length
    return n


def _in_plane_basis(normal: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    helper = _UP if abs(normal[1]) < 0.9 else np.array([1.0, 0.0, 0.0])
    u = np.cross(helper, normal)
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)
    return u, v


def fit_bounded_plane(
    points: np.ndarray,
    normal: np.ndarray,
    anchor: np.ndarray,
    area: float,
) -> BoundedPlane:
    """Fit an oriented rectangle to *points* on the plane through *anchor*.

    The rectangle's in-plane axes follow the principal directions of the
    projected points; its local +Z is *normal*.
    """
    n = normal / np.linalg.norm(normal)
    rel = points - anchor
    projected = rel - np.outer(rel @ n, n)

    u, v = _in_plane_basis(n)
    coords = np.column_stack((projected @ u, projected @ v))
    if len(coords) >= 2:
        cov = np.cov(coords, rowvar=False)
        _, eigvecs = np.linalg.eigh(cov)
        major = eigvecs[:, -1]  # largest eigenvalue → long side
        axis_u = major[0] * u + major[1] * v
        axis_u /= np.linalg.norm(axis_u)
    else:
        axis_u = u
    axis_v = np.cross(n, axis_u)

    cu = projected @ axis_u
    cv = projected @ axis_v
    mid_u = (cu.max() + cu.min()) / 2 if len(cu) else 0.0
    mid_v = (cv.max() + cv.min()) / 2 if len(cv) else 0.0
    half_u = (cu.max() - cu.min()) / 2 if len(cu) else 0.0
    half_v = (cv.max() - cv.min()) / 2 if len(cv) else 0.0
    center = anchor + mid_u * axis_u + mid_v * axis_v

    qx, qy, qz, qw = Rotation.from_matrix(np.column_stack((axis_u, axis_v, n))).as_quat()
    return BoundedPlane(
        center=Vec3(x=float(center[0]), y=float(center[1]), z=float(center[2])),
        rotation=Quaternion(x=float(qx), y=float(qy), z=float(qz), w=float(qw)),
        half_extents=Vec3(x=float(half_u), y=float(half_v), z=0.0),
        normal=Vec3(x=float(n[0]), y=float(n[1]), z=float(n[2])),
        area=float(area),
    )


# ── public API ───────────────────────────────────────────────────────

def _planes_from_mesh(
    mesh: MeshData,
    *,
    snap_to_gravity_threshold_deg: float,
    min_area: float,
    normal_tolerance_deg: float,
    distance_tolerance: float,
    weld_tolerance: float,
) -> list[BoundedPlane]:
    if mesh.triangle_count == 0:
        return []

    canonical = _weld_vertices(mesh.vertices, weld_tolerance)
    triangles = canonical[mesh.triangles]
    normals, areas, centroids = _face_geometry(mesh.vertices, mesh.triangles)
    if mesh.normals is not None and len(mesh.normals) == len(mesh.vertices):
        # a face wound against its corners' vertex normals is flipped to agree
        corner_normals = mesh.normals[mesh.triangles].sum(axis=1)
        normals[np.einsum("ij,ij->i", normals, corner_normals) < 0] *= -1

    keep = areas > 1e-12
    face_ids = np.nonzero(keep)[0]
    if len(face_ids) == 0:
        return []
    triangles = triangles[keep]
    normals = normals[keep]
    areas = areas[keep]
    centroids = centroids[keep]
    offsets = np.einsum("ij,ij->i", normals, centroids)

    a, b = _shared_edge_pairs(triangles)
    cos_tol = math.cos(math.radians(normal_tolerance_deg))
    coplanar = (np.einsum("ij,ij->i", normals[a], normals[b]) >= cos_tol) & (
        np.abs(offsets[a] - offsets[b]) <= distance_tolerance
    )
    a, b = a[coplanar], b[coplanar]

    n_faces = len(face_ids)
    graph = coo_matrix((np.ones(len(a), dtype=np.int8), (a, b)), shape=(n_faces, n_faces))
    n_regions, labels = connected_components(graph, directed=False)

    planes: list[BoundedPlane] = []
    for region in range(n_regions):
        members = np.nonzero(labels == region)[0]
        region_area = float(areas[members].sum())
        if region_area < min_area:
            continue

        weighted = (normals[members] * areas[members, None]).sum(axis=0)
        if np.linalg.norm(weighted) < 1e-12:
            continue
        normal = snap_normal_to_gravity(weighted, snap_to_gravity_threshold_deg)
        anchor = (centroids[members] * areas[members, None]).sum(axis=0) / region_area

        vertex_ids = np.unique(mesh.triangles[face_ids[members]])
        planes.append(
            fit_bounded_plane(mesh.vertices[vertex_ids], normal, anchor, region_area)
        )
    logger.debug(
        "Mesh with %d triangles → %d region(s), %d plane(s) ≥ %.3f m²",
        mesh.triangle_count, n_regions, len(planes), min_area,
    )
    return planes


def find_planes(
    meshes: Sequence[MeshData],
    snap_to_gravity_threshold_deg: float = 5.0,
    min_area: float = 0.025,
    *,
    normal_tolerance_deg: float = 10.0,
    distance_tolerance: float = 0.02,
    weld_tolerance: float = 1e-5,
) -> list[BoundedPlane]:
    """Extract bounded planes from every mesh in *meshes*.

    Face normals come from the triangles.  When a mesh carries vertex
    normals they only decide each face's orientation, so stray winding
    does not split a surface into opposing regions.

    Output order is mesh order, then region discovery order within a mesh.
    """
    planes: list[BoundedPlane] = []
    for mesh in meshes:
        planes.extend(
            _planes_from_mesh(
                mesh,
                snap_to_gravity_threshold_deg=snap_to_gravity_threshold_deg,
                min_area=min_area,
                normal_tolerance_deg=normal_tolerance_deg,
                distance_tolerance=distance_tolerance,
                weld_tolerance=weld_tolerance,
            )
        )
    logger.info("Found %d plane(s) in %d mesh(es)", len(planes), len(meshes))
    return planes
