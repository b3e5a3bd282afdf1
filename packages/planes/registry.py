"""Registry of the currently active classified planes and their visuals.

Each refresh replaces the whole set: every visual from the previous set is
destroyed before any visual of the new set is created, so two sets are
never live at once.  Only one refresh runs at a time; a refresh requested
while another is in progress is ignored.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Hashable, Optional, Sequence

from packages.core.config import DEFAULT_DISCARD_MASK, DEFAULT_DRAW_MASK
from packages.core.types import ClassifiedPlane, SurfaceType
from packages.planes.classify import count_types
from packages.planes.render import PlaneRenderer

logger = logging.getLogger(__name__)


class RefreshError(RuntimeError):
    """No visual could be created for a non-empty refresh."""


class RegistryClosedError(RuntimeError):
    """The registry was torn down."""


@dataclass(frozen=True)
class RegisteredPlane:
    plane: ClassifiedPlane
    handle: Hashable

    @property
    def surface_type(self) -> SurfaceType:
        return self.plane.surface_type


def matches_mask(surface_type: SurfaceType, mask: SurfaceType) -> bool:
    return (mask & surface_type) == surface_type


class PlaneRegistry:
    """Owns the active ``(plane, type, visual handle)`` set."""

    def __init__(
        self,
        renderer: PlaneRenderer,
        *,
        draw_mask: SurfaceType = DEFAULT_DRAW_MASK,
        discard_mask: SurfaceType = DEFAULT_DISCARD_MASK,
        physics_layer: int = 31,
        material: Optional[str] = None,
        container_name: str = "SurfacePlanes",
    ) -> None:
        self.renderer = renderer
        self.draw_mask = draw_mask
        self.discard_mask = discard_mask
        self.physics_layer = physics_layer
        self.material = material
        self.container_name = container_name
        self._active: list[RegisteredPlane] = []
        self._refresh_lock = threading.Lock()
        self._container_created = False
        self._closed = False

    # ── state ────────────────────────────────────────────────────────
    @property
    def refreshing(self) -> bool:
        return self._refresh_lock.locked()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._active)

    # ── mutation ─────────────────────────────────────────────────────
    def refresh(self, planes: Sequence[ClassifiedPlane]) -> bool:
        """Replace the active set with *planes*.

        Returns ``False`` without touching anything when another refresh is
        in progress.  A plane whose visual cannot be created is skipped;
        :class:`RefreshError` is raised if that happens to every plane.
        """
        if self._closed:
            raise RegistryClosedError("cannot refresh a registry that was torn down")
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Refresh already in progress; request ignored")
            return False

        installed: list[RegisteredPlane] = []
        candidates = 0
        try:
            self._ensure_container()
            self._destroy_active()

            for plane in planes:
                if matches_mask(plane.surface_type, self.discard_mask):
                    logger.debug("Discarding %s plane", plane.surface_type.label())
                    continue
                candidates += 1
                entry = self._install(plane)
                if entry is not None:
                    installed.append(entry)
        finally:
            self._active = installed
            self._refresh_lock.release()

        if candidates and not installed:
            raise RefreshError(f"could not create a visual for any of {candidates} plane(s)")
        logger.info(
            "Registry refreshed: %d active plane(s), %d skipped",
            len(installed), candidates - len(installed),
        )
        return True

    def set_draw_mask(self, mask: SurfaceType) -> None:
        """Change which types are drawn and re-apply visibility."""
        self.draw_mask = mask
        for entry in self._active:
            self.renderer.set_visible(entry.handle, matches_mask(entry.surface_type, mask))

    def teardown(self) -> None:
        """Destroy every active visual and the container.  Safe to call twice."""
        if self._closed:
            return
        self._destroy_active()
        if self._container_created:
            self.renderer.destroy_container()
            self._container_created = False
        self._closed = True
        logger.info("Registry torn down")

    # ── queries ──────────────────────────────────────────────────────
    def get_active_planes(self, mask: SurfaceType) -> list[Hashable]:
        """Visual handles of active planes whose type is within *mask*."""
        return [e.handle for e in self._active if matches_mask(e.surface_type, mask)]

    def entries(self, mask: Optional[SurfaceType] = None) -> list[RegisteredPlane]:
        if mask is None:
            return list(self._active)
        return [e for e in self._active if matches_mask(e.surface_type, mask)]

    def planes(self) -> list[ClassifiedPlane]:
        return [e.plane for e in self._active]

    def counts(self) -> dict[str, int]:
        return count_types(self.planes())

    # ── helpers ──────────────────────────────────────────────────────
    def _ensure_container(self) -> None:
        if not self._container_created:
            self.renderer.create_container(self.container_name)
            self._container_created = True

    def _destroy_active(self) -> None:
        previous, self._active = self._active, []
        for entry in previous:
            try:
                self.renderer.destroy_visual(entry.handle)
            except Exception:
                logger.warning("Failed to destroy visual %r", entry.handle, exc_info=True)

    def _install(self, plane: ClassifiedPlane) -> Optional[RegisteredPlane]:
        try:
            handle = self.renderer.create_visual(
                plane.geometry, plane.surface_type, self.physics_layer, self.material
            )
        except Exception:
            logger.warning(
                "Could not create visual for %s plane; skipping",
                plane.surface_type.label(), exc_info=True,
            )
            return None

        try:
            self.renderer.set_visible(handle, matches_mask(plane.surface_type, self.draw_mask))
        except Exception:
            logger.warning("Could not set visibility on %r; dropping it", handle, exc_info=True)
            try:
                self.renderer.destroy_visual(handle)
            except Exception:
                logger.warning("Failed to destroy visual %r", handle, exc_info=True)
            return None
        return RegisteredPlane(plane=plane, handle=handle)
