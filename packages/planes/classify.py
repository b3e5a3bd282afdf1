"""Plane classification: floor/ceiling reference discovery and type assignment.

Classification runs in two passes over one immutable batch of planes:

1. **Reference heights** – the largest upward-facing horizontal plane
   centred below y = 0 sets the floor height; the largest downward-facing
   one centred above y = 0 sets the ceiling height.  Either defaults to 0.
2. **Type assignment** – each plane is labelled from its normal's vertical
   component and its height relative to those references.

Everything here is pure; a batch can be classified on a worker thread.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from packages.core.types import (
    BoundedPlane,
    ClassificationResult,
    ClassifiedPlane,
    ReferenceHeights,
    SurfaceType,
)

logger = logging.getLogger(__name__)


def find_reference_heights(
    planes: Iterable[BoundedPlane],
    up_normal_threshold: float = 0.9,
) -> ReferenceHeights:
    """Return floor / ceiling heights from the largest qualifying planes.

    Only a strictly larger area replaces the current candidate, so on an
    exact tie the first plane seen wins.
    """
    floor_y = 0.0
    ceiling_y = 0.0
    max_floor_area = 0.0
    max_ceiling_area = 0.0

    for plane in planes:
        y = plane.vertical_position
        ny = plane.normal.y
        if y < 0 and ny >= up_normal_threshold:
            if plane.area > max_floor_area:
                max_floor_area = plane.area
                floor_y = y
        elif y > 0 and ny <= -up_normal_threshold:
            if plane.area > max_ceiling_area:
                max_ceiling_area = plane.area
                ceiling_y = y

    return ReferenceHeights(floor_y=floor_y, ceiling_y=ceiling_y)


def classify_plane(
    plane: BoundedPlane,
    references: ReferenceHeights,
    up_normal_threshold: float = 0.9,
    floor_buffer: float = 0.1,
    ceiling_buffer: float = 0.1,
) -> SurfaceType:
    """Classify a plane by its normal direction and height.

    * ``n_y >= threshold`` → floor, or platform when higher than
      ``floor_y + floor_buffer`` (a table top).
    * ``n_y <= -threshold`` → ceiling, or platform when lower than
      ``ceiling_y - ceiling_buffer``.
    * ``|n_y| <= 1 - threshold`` → wall.
    * anything else → unknown (a slanted surface).
    """
    ny = plane.normal.y
    y = plane.vertical_position

    if ny >= up_normal_threshold:
        if y > references.floor_y + floor_buffer:
            return SurfaceType.PLATFORM
        return SurfaceType.FLOOR
    if ny <= -up_normal_threshold:
        if y < references.ceiling_y - ceiling_buffer:
            return SurfaceType.PLATFORM
        return SurfaceType.CEILING
    if abs(ny) <= 1 - up_normal_threshold:
        return SurfaceType.WALL
    return SurfaceType.UNKNOWN


def classify_planes(
    planes: Sequence[BoundedPlane],
    up_normal_threshold: float = 0.9,
    floor_buffer: float = 0.1,
    ceiling_buffer: float = 0.1,
) -> ClassificationResult:
    """Classify a batch of planes.

    Planes with non-finite values or a non-positive area are dropped with a
    warning and counted in ``rejected``; the rest are classified in input
    order.
    """
    valid: list[BoundedPlane] = []
    rejected = 0
    for index, plane in enumerate(planes):
        if plane.is_finite():
            valid.append(plane)
        else:
            rejected += 1
            logger.warning("Rejecting malformed plane %d (non-finite geometry or area <= 0)", index)

    references = find_reference_heights(valid, up_normal_threshold)
    logger.debug(
        "Reference heights: floor_y=%.3f ceiling_y=%.3f",
        references.floor_y, references.ceiling_y,
    )

    classified = [
        ClassifiedPlane(
            geometry=plane,
            surface_type=classify_plane(
                plane, references, up_normal_threshold, floor_buffer, ceiling_buffer
            ),
        )
        for plane in valid
    ]

    counts = count_types(classified)
    logger.info(
        "Classified %d plane(s): %s",
        len(classified),
        ", ".join(f"{name}={n}" for name, n in counts.items() if n) or "none",
    )
    return ClassificationResult(planes=classified, references=references, rejected=rejected)


def count_types(planes: Iterable[ClassifiedPlane]) -> dict[str, int]:
    """Return ``{type_name: count}`` with every type present, zero or not."""
    counts = {member.label(): 0 for member in SurfaceType}
    for plane in planes:
        counts[plane.surface_type.label()] += 1
    return counts
