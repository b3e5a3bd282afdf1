"""Pydantic models for bounded planes, semantic surface types and refresh artefacts.

A refresh cycle turns mesh geometry into :class:`BoundedPlane` descriptors,
labels each with a :class:`SurfaceType`, and hands the result to the plane
registry.  Y is up; lengths are metres.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import IntFlag
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ── tiny helpers ──────────────────────────────────────────────────────
class Vec3(BaseModel):
    """A 3-component vector (x, y, z) in metres."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


class Quaternion(BaseModel):
    """A rotation quaternion (x, y, z, w)."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.z, self.w)


# ── semantic surface types ───────────────────────────────────────────
class SurfaceType(IntFlag):
    """Semantic plane type.  Members combine into masks with ``|``."""

    FLOOR = 1
    CEILING = 2
    WALL = 4
    PLATFORM = 8
    UNKNOWN = 16

    @classmethod
    def all(cls) -> "SurfaceType":
        mask = cls(0)
        for member in cls:
            mask |= member
        return mask

    @classmethod
    def parse(cls, text: str) -> "SurfaceType":
        """Build a mask from comma- or pipe-separated names, e.g. ``"wall,floor"``.

        ``"all"`` selects every type; an empty string selects none.
        """
        mask = cls(0)
        for raw in text.replace("|", ",").split(","):
            name = raw.strip().upper()
            if not name:
                continue
            if name == "ALL":
                mask |= cls.all()
                continue
            try:
                mask |= cls[name]
            except KeyError:
                raise ValueError(
                    f"Unknown surface type '{raw.strip()}'. "
                    f"Expected one of: {', '.join(m.name.lower() for m in cls)}"
                ) from None
        return mask

    @classmethod
    def coerce(cls, value: "SurfaceType | int | str") -> "SurfaceType":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.isdigit():
                return cls(int(stripped))
            return cls.parse(stripped)
        return cls(int(value))

    def label(self) -> str:
        """Lower-case name(s), ``"wall|floor"`` style for combined masks."""
        return "|".join(m.name.lower() for m in type(self) if m in self)


# ── plane geometry ───────────────────────────────────────────────────
class BoundedPlane(BaseModel):
    """A finite, oriented rectangle approximating one flat surface.

    ``half_extents`` are expressed in the plane's local frame (x, y span the
    surface, z is the thickness axis along ``normal``).  Values are not
    checked for finiteness here; see :meth:`is_finite`.
    """

    model_config = ConfigDict(frozen=True)

    center: Vec3
    rotation: Quaternion = Field(default_factory=Quaternion)
    half_extents: Vec3
    normal: Vec3
    area: float

    @property
    def vertical_position(self) -> float:
        return self.center.y

    def is_finite(self) -> bool:
        values = (
            *self.center.as_tuple(),
            *self.rotation.as_tuple(),
            *self.half_extents.as_tuple(),
            *self.normal.as_tuple(),
            self.area,
        )
        return all(math.isfinite(v) for v in values) and self.area > 0


class ClassifiedPlane(BaseModel):
    """A bounded plane labelled with exactly one semantic type."""

    model_config = ConfigDict(frozen=True)

    geometry: BoundedPlane
    surface_type: SurfaceType

    @field_validator("surface_type", mode="before")
    @classmethod
    def _coerce_type(cls, value):
        return SurfaceType.coerce(value)

    @field_serializer("surface_type")
    def _serialize_type(self, value: SurfaceType) -> str:
        return value.label()


class ReferenceHeights(BaseModel):
    """Floor and ceiling heights discovered by one classification pass."""

    floor_y: float = 0.0
    ceiling_y: float = 0.0


class ClassificationResult(BaseModel):
    """Output of :func:`packages.planes.classify.classify_planes`."""

    planes: list[ClassifiedPlane] = Field(default_factory=list)
    references: ReferenceHeights = Field(default_factory=ReferenceHeights)
    rejected: int = 0


# ── visual records ───────────────────────────────────────────────────
class PlaneVisual(BaseModel):
    """Renderable description of one classified plane."""

    handle: int
    surface_type: SurfaceType
    position: Vec3
    rotation: Quaternion
    scale: Vec3 = Field(description="Full in-plane size (x, y) and render thickness (z)")
    layer: int
    material: Optional[str] = None
    visible: bool = True
    cast_shadows: bool = False

    @field_serializer("surface_type")
    def _serialize_type(self, value: SurfaceType) -> str:
        return value.label()


# ── refresh report ───────────────────────────────────────────────────
class SurfacePlaneReport(BaseModel):
    """Serializable snapshot of the planes active after a refresh."""

    version: str = "0.1.0"
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    units: str = "metres"
    source_file: str = ""
    floor_y: float = 0.0
    ceiling_y: float = 0.0
    planes: list[ClassifiedPlane] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)
