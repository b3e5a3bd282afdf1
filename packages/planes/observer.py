"""Refresh-cycle orchestration: meshes → bounded planes → classification → registry.

The observer runs on an asyncio event loop, which plays the owner thread:
only the loop thread mutates the registry.  A cycle has three stages:

(a) snapshot the meshes and recompute their normals,
(b) find and classify planes on a worker thread,
(c) swap the result into the registry.

Cancelling the task during (a) or (b) leaves the previous planes in place.
Stage (c) has no suspension point, so once it starts it finishes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Hashable, Optional, Sequence

from packages.core.config import SurfacePlaneSettings
from packages.core.types import (
    BoundedPlane,
    ClassificationResult,
    SurfacePlaneReport,
    SurfaceType,
)
from packages.planes.classify import classify_planes
from packages.planes.mesh import MeshData
from packages.planes.plane_finding import find_planes
from packages.planes.registry import PlaneRegistry, RefreshError
from packages.planes.render import PlaneRenderer, SceneRenderer

logger = logging.getLogger(__name__)

MeshSource = Callable[[], Sequence[MeshData]]
PlaneFinder = Callable[[Sequence[MeshData], float, float], Sequence[BoundedPlane]]
CompletionCallback = Callable[[], None]


def snapshot_meshes(meshes: Sequence[MeshData]) -> list[MeshData]:
    """Copy *meshes* and rebuild their normals so the worker owns its input."""
    return [
        MeshData(vertices=m.vertices.copy(), triangles=m.triangles.copy()).with_recomputed_normals()
        for m in meshes
    ]


class SurfacePlaneObserver:
    """Keeps the plane registry in sync with the latest mesh snapshot."""

    def __init__(
        self,
        mesh_source: MeshSource,
        renderer: Optional[PlaneRenderer] = None,
        settings: Optional[SurfacePlaneSettings] = None,
        *,
        plane_finder: PlaneFinder = find_planes,
    ) -> None:
        self.settings = settings or SurfacePlaneSettings()
        self.renderer = renderer or SceneRenderer(plane_thickness=self.settings.plane_thickness)
        self.registry = PlaneRegistry(
            self.renderer,
            draw_mask=self.settings.draw_mask,
            discard_mask=self.settings.discard_mask,
            physics_layer=self.settings.physics_layer,
            material=self.settings.default_material,
        )
        self.last_result: Optional[ClassificationResult] = None
        self._mesh_source = mesh_source
        self._plane_finder = plane_finder
        self._callbacks: list[CompletionCallback] = []
        self._floor_y = 0.0
        self._ceiling_y = 0.0
        self._making_planes = False
        self._closed = False

    # ── host surface ─────────────────────────────────────────────────
    @property
    def floor_y_position(self) -> float:
        """Height of the largest upward-facing plane below the origin."""
        return self._floor_y

    @property
    def ceiling_y_position(self) -> float:
        """Height of the largest downward-facing plane above the origin."""
        return self._ceiling_y

    @property
    def making_planes(self) -> bool:
        return self._making_planes

    def on_planes_complete(self, callback: CompletionCallback) -> CompletionCallback:
        """Register *callback*; it is called once after every completed refresh."""
        self._callbacks.append(callback)
        return callback

    def get_active_planes(self, mask: SurfaceType) -> list[Hashable]:
        return self.registry.get_active_planes(mask)

    def report(self, source_file: str = "") -> SurfacePlaneReport:
        return SurfacePlaneReport(
            source_file=source_file,
            floor_y=self._floor_y,
            ceiling_y=self._ceiling_y,
            planes=self.registry.planes(),
            counts=self.registry.counts(),
        )

    # ── refresh cycle ────────────────────────────────────────────────
    async def make_planes(self) -> bool:
        """Run one refresh cycle.

        Returns ``False`` when a cycle is already running, when the
        observer is closed, or when the result was discarded.
        """
        if self._closed:
            logger.warning("make_planes() called on a closed observer")
            return False
        if self._making_planes:
            logger.debug("Plane refresh already in progress; request ignored")
            return False

        self._making_planes = True
        try:
            await asyncio.sleep(0)
            meshes = snapshot_meshes(self._mesh_source())
            logger.info("Refreshing planes from %d mesh(es)", len(meshes))

            work = asyncio.to_thread(self._find_and_classify, meshes)
            timeout = self.settings.classify_timeout_s
            result = await (asyncio.wait_for(work, timeout) if timeout else work)

            if self._closed:
                logger.info("Observer closed while classifying; result discarded")
                return False
            if not self._swap(result):
                return False
        finally:
            self._making_planes = False

        self._notify_complete()
        return True

    def close(self) -> None:
        """Tear the registry down.  A cycle still in flight is discarded."""
        if self._closed:
            return
        self._closed = True
        self.registry.teardown()

    # ── internals ────────────────────────────────────────────────────
    def _find_and_classify(self, meshes: Sequence[MeshData]) -> ClassificationResult:
        s = self.settings
        planes = self._plane_finder(meshes, s.snap_to_gravity_threshold_deg, s.min_area)
        return classify_planes(
            list(planes),
            up_normal_threshold=s.up_normal_threshold,
            floor_buffer=s.floor_buffer,
            ceiling_buffer=s.ceiling_buffer,
        )

    def _adopt(self, result: ClassificationResult) -> None:
        self._floor_y = result.references.floor_y
        self._ceiling_y = result.references.ceiling_y
        self.last_result = result

    def _swap(self, result: ClassificationResult) -> bool:
        try:
            installed = self.registry.refresh(result.planes)
        except RefreshError:
            # the registry has already dropped the old planes
            self._adopt(result)
            raise
        if not installed:
            logger.warning("Registry busy; classification result discarded")
            return False
        self._adopt(result)
        logger.info(
            "Planes refreshed: %d active, floor_y=%.3f, ceiling_y=%.3f",
            len(self.registry), self._floor_y, self._ceiling_y,
        )
        return True

    def _notify_complete(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Plane completion callback failed")
