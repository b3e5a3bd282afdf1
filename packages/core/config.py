"""Runtime configuration for plane classification and the plane registry.

Settings come from keyword arguments, ``SURFACE_PLANES_*`` environment
variables or an optional ``.env`` file.  Masks accept an int or a
comma-separated list of type names (``"wall,floor"``).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from packages.core.types import SurfaceType

logger = logging.getLogger(__name__)

DEFAULT_DRAW_MASK = (
    SurfaceType.FLOOR | SurfaceType.CEILING | SurfaceType.WALL | SurfaceType.PLATFORM
)
DEFAULT_DISCARD_MASK = SurfaceType.UNKNOWN


class SurfacePlaneSettings(BaseSettings):
    """Options recognised by the classifier, registry and observer."""

    model_config = SettingsConfigDict(
        env_prefix="SURFACE_PLANES_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    min_area: float = Field(0.025, gt=0, description="Minimum area (m²) for a plane to exist.")
    up_normal_threshold: float = Field(
        0.9,
        gt=0,
        le=1.0,
        description="Minimum |normal.y| for a horizontal plane; walls need |normal.y| <= 1 - threshold.",
    )
    floor_buffer: float = Field(0.1, ge=0, description="Height above the floor still counted as floor.")
    ceiling_buffer: float = Field(0.1, ge=0, description="Depth below the ceiling still counted as ceiling.")
    snap_to_gravity_threshold_deg: float = Field(5.0, ge=0, le=90)
    draw_mask: SurfaceType = DEFAULT_DRAW_MASK
    discard_mask: SurfaceType = DEFAULT_DISCARD_MASK
    physics_layer: int = Field(31, ge=0, le=31)
    plane_thickness: float = Field(0.01, ge=0)
    default_material: Optional[str] = None
    classify_timeout_s: Optional[float] = Field(None, gt=0)

    @field_validator("draw_mask", "discard_mask", mode="before")
    @classmethod
    def _parse_mask(cls, value):
        return SurfaceType.coerce(value)

    @model_validator(mode="after")
    def _check_band_coverage(self) -> "SurfacePlaneSettings":
        if not self.band_coverage_ok:
            logger.warning(
                "up_normal_threshold=%.3f is outside (0.5, 1.0]: wall and "
                "horizontal bands overlap, some planes may be mislabelled",
                self.up_normal_threshold,
            )
        return self

    @property
    def band_coverage_ok(self) -> bool:
        return 0.5 < self.up_normal_threshold <= 1.0


def load_settings(path: str | Path | None = None, **overrides) -> SurfacePlaneSettings:
    """Build settings from an optional JSON file, then apply *overrides*.

    ``None`` overrides are ignored so CLI options can be passed straight through.
    """
    values: dict = {}
    if path is not None:
        values.update(json.loads(Path(path).read_text()))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SurfacePlaneSettings(**values)
