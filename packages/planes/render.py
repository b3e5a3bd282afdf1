"""Visual representations of classified planes.

The registry only talks to a :class:`PlaneRenderer`; any scene graph can
sit behind it.  :class:`SceneRenderer` keeps an in-memory scene of
:class:`PlaneVisual` records that the API serves to the viewer.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from typing import Hashable, Optional, Protocol

from packages.core.types import BoundedPlane, PlaneVisual, SurfaceType, Vec3

logger = logging.getLogger(__name__)


class PlaneRenderer(Protocol):
    """Create / destroy / show-hide capability the plane registry needs."""

    def create_container(self, name: str) -> None: ...

    def destroy_container(self) -> None: ...

    def create_visual(
        self,
        geometry: BoundedPlane,
        surface_type: SurfaceType,
        layer: int,
        material: Optional[str] = None,
    ) -> Hashable: ...

    def destroy_visual(self, handle: Hashable) -> None: ...

    def set_visible(self, handle: Hashable, visible: bool) -> None: ...


class SceneRenderer:
    """In-memory scene: one thin box per plane, parented to a single container."""

    def __init__(self, *, plane_thickness: float = 0.01) -> None:
        self.plane_thickness = plane_thickness
        self.container: Optional[str] = None
        self.visuals: dict[int, PlaneVisual] = {}
        self.destroy_counts: Counter[int] = Counter()
        self._ids = itertools.count(1)

    def create_container(self, name: str) -> None:
        self.container = name
        logger.debug("Created plane container '%s'", name)

    def destroy_container(self) -> None:
        for handle in list(self.visuals):
            self.destroy_visual(handle)
        logger.debug("Destroyed plane container '%s'", self.container)
        self.container = None

    def create_visual(
        self,
        geometry: BoundedPlane,
        surface_type: SurfaceType,
        layer: int,
        material: Optional[str] = None,
    ) -> int:
        if self.container is None:
            raise RuntimeError("create_container() must be called before create_visual()")
        handle = next(self._ids)
        extents = geometry.half_extents
        self.visuals[handle] = PlaneVisual(
            handle=handle,
            surface_type=surface_type,
            position=geometry.center,
            rotation=geometry.rotation,
            scale=Vec3(x=extents.x * 2, y=extents.y * 2, z=self.plane_thickness),
            layer=layer,
            material=material,
        )
        return handle

    def destroy_visual(self, handle: int) -> None:
        del self.visuals[handle]
        self.destroy_counts[handle] += 1

    def set_visible(self, handle: int, visible: bool) -> None:
        self.visuals[handle].visible = visible

    def get(self, handle: int) -> PlaneVisual:
        return self.visuals[handle]
