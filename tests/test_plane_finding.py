"""Tests for mesh → bounded plane extraction."""

from __future__ import annotations

import math

import numpy as np
from scipy.spatial.transform import Rotation

from conftest import CEILING_Y, FLOOR_Y, ROOM_QUADS, combine_quads, make_quad
from packages.core.types import Quaternion
from packages.planes.mesh import MeshData
from packages.planes.plane_finding import (
    find_planes,
    fit_bounded_plane,
    snap_normal_to_gravity,
)


def _rotate(q: Quaternion, v: np.ndarray) -> np.ndarray:
    return Rotation.from_quat([q.x, q.y, q.z, q.w]).apply(v)


def _normal(plane) -> np.ndarray:
    return np.array(plane.normal.as_tuple())


class TestFindPlanes:
    def test_room_yields_one_plane_per_surface(self, room_mesh: MeshData):
        planes = find_planes([room_mesh], 5.0, 0.025)
        assert len(planes) == len(ROOM_QUADS)

    def test_floor_and_ceiling_geometry(self, room_mesh: MeshData):
        planes = find_planes([room_mesh], 5.0, 0.025)
        floor, ceiling = planes[0], planes[1]

        np.testing.assert_allclose(_normal(floor), [0, 1, 0], atol=1e-9)
        np.testing.assert_allclose(floor.center.as_tuple(), [0, FLOOR_Y, 0], atol=1e-9)
        assert math.isclose(floor.area, 12.0, rel_tol=1e-9)
        np.testing.assert_allclose(
            floor.half_extents.as_tuple(), [2.0, 1.5, 0.0], atol=1e-9
        )

        np.testing.assert_allclose(_normal(ceiling), [0, -1, 0], atol=1e-9)
        assert math.isclose(ceiling.center.y, CEILING_Y)

    def test_rotation_maps_local_z_to_normal(self, room_mesh: MeshData):
        for plane in find_planes([room_mesh], 5.0, 0.025):
            np.testing.assert_allclose(
                _rotate(plane.rotation, np.array([0.0, 0.0, 1.0])), _normal(plane), atol=1e-9
            )

    def test_min_area_filters_small_regions(self, room_mesh: MeshData):
        planes = find_planes([room_mesh], 5.0, 0.8)
        assert len(planes) == len(ROOM_QUADS) - 1  # the 0.72 m² table is dropped
        assert all(p.area >= 0.8 for p in planes)

    def test_planes_from_several_meshes_keep_mesh_order(self):
        floor = combine_quads([make_quad(*ROOM_QUADS["floor"])])
        wall = combine_quads([make_quad(*ROOM_QUADS["wall_west"])])
        planes = find_planes([wall, floor], 5.0, 0.025)
        assert len(planes) == 2
        assert abs(planes[0].normal.x) == 1.0
        assert planes[1].normal.y == 1.0

    def test_empty_mesh(self):
        empty = MeshData(vertices=np.empty((0, 3)), triangles=np.empty((0, 3), dtype=int))
        assert find_planes([empty], 5.0, 0.025) == []
        assert find_planes([], 5.0, 0.025) == []

    def test_near_level_floor_is_snapped(self):
        tilt = math.radians(3.0)
        normal = (0.0, math.cos(tilt), math.sin(tilt))
        v_half = (0.0, -math.sin(tilt) * 1.0, math.cos(tilt) * 1.0)
        mesh = combine_quads([make_quad((0, -1.5, 0), (1.5, 0, 0), v_half, normal)])

        snapped = find_planes([mesh], 5.0, 0.025)[0]
        assert snapped.normal.as_tuple() == (0.0, 1.0, 0.0)

        raw = find_planes([mesh], 0.0, 0.025)[0]
        np.testing.assert_allclose(_normal(raw), normal, atol=1e-9)

    def test_split_vertex_mesh_is_welded(self):
        vertices, triangles = make_quad(*ROOM_QUADS["floor"])
        split = MeshData(vertices=vertices[triangles.ravel()], triangles=np.arange(6).reshape(2, 3))

        assert len(find_planes([split], 5.0, 0.025)) == 1
        assert len(find_planes([split], 5.0, 0.025, weld_tolerance=0.0)) == 2

    def test_vertex_normals_orient_stray_winding(self):
        vertices = np.array([[0, -1, 0], [1, -1, 0], [1, -1, 1], [0, -1, 1]], dtype=float)
        triangles = np.array([[0, 2, 1], [0, 2, 3]])  # second face wound downward

        split = find_planes([MeshData(vertices=vertices, triangles=triangles)], 5.0, 0.025)
        assert len(split) == 2

        up = np.tile([0.0, 1.0, 0.0], (4, 1))
        (plane,) = find_planes(
            [MeshData(vertices=vertices, triangles=triangles, normals=up)], 5.0, 0.025
        )
        assert math.isclose(plane.area, 1.0)
        np.testing.assert_allclose(_normal(plane), [0.0, 1.0, 0.0])


class TestSnapNormalToGravity:
    def test_near_vertical_snaps_to_axis(self):
        n = np.array([0.02, -0.999, 0.01])
        np.testing.assert_array_equal(snap_normal_to_gravity(n, 5.0), [0.0, -1.0, 0.0])

    def test_near_horizontal_loses_vertical_component(self):
        n = np.array([1.0, 0.03, 0.0])
        snapped = snap_normal_to_gravity(n, 5.0)
        assert snapped[1] == 0.0
        assert math.isclose(np.linalg.norm(snapped), 1.0)

    def test_slanted_is_unchanged(self):
        n = np.array([0.0, 1.0, 1.0])
        np.testing.assert_allclose(snap_normal_to_gravity(n, 5.0), n / np.linalg.norm(n))


class TestFitBoundedPlane:
    def test_rectangle_extents_follow_long_side(self):
        points = np.array([[0, -1, 1.5], [2, -1, 1.5], [2, -1, 2.5], [0, -1, 2.5]], dtype=float)
        plane = fit_bounded_plane(points, np.array([0.0, 1.0, 0.0]), points.mean(axis=0), 2.0)
        np.testing.assert_allclose(plane.center.as_tuple(), [1.0, -1.0, 2.0], atol=1e-9)
        np.testing.assert_allclose(plane.half_extents.as_tuple(), [1.0, 0.5, 0.0], atol=1e-9)
        assert plane.area == 2.0

    def test_rotation_maps_local_x_to_long_side(self):
        points = np.array([[0, -1, 1.5], [2, -1, 1.5], [2, -1, 2.5], [0, -1, 2.5]], dtype=float)
        plane = fit_bounded_plane(points, np.array([0.0, 1.0, 0.0]), points.mean(axis=0), 2.0)
        local_x = _rotate(plane.rotation, np.array([1.0, 0.0, 0.0]))
        np.testing.assert_allclose(np.abs(local_x), [1.0, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(
            _rotate(plane.rotation, np.array([0.0, 0.0, 1.0])), [0.0, 1.0, 0.0], atol=1e-9
        )
