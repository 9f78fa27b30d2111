"""
scene.py
========
One Landsat Collection 2 Level-2 observation as delivered by a scene
catalog: raw (unscaled) band arrays, the QA_PIXEL bitmask, the QA_RADSAT
saturation mask, and scene-level metadata.  Scenes are read-only inputs;
scaling and masking produce new objects in :mod:`epoch_composite.landsat`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping, Tuple

import numpy as np

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from epoch_composite.grid import PixelGrid


@dataclass(frozen=True, eq=False)
class Scene:
    """A single satellite observation on a :class:`PixelGrid`.

    Attributes:
        scene_id: Catalog identifier (e.g. ``"LC08_L2SP_168061_20200714_02_T1"``).
        acquired: Acquisition timestamp.
        cloud_cover: Scene-level cloud cover percentage, 0-100.
        qa_pixel: ``(H, W)`` integer QA_PIXEL bitmask.
        qa_radsat: ``(H, W)`` integer radiometric saturation mask; 0 = unsaturated.
        bands: Band name → ``(H, W)`` raw digital numbers, e.g.
               ``{"SR_B4": ..., "ST_B10": ...}``.
        grid: Pixel grid shared by every array above.
    """

    scene_id: str
    acquired: datetime
    cloud_cover: float
    qa_pixel: np.ndarray
    qa_radsat: np.ndarray
    bands: Mapping[str, np.ndarray]
    grid: PixelGrid = field(repr=False)

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.cloud_cover) <= 100.0:
            raise InputValidationError(
                f"Scene '{self.scene_id}': cloud cover {self.cloud_cover} is outside [0, 100]."
            )
        if not self.bands:
            raise InputValidationError(f"Scene '{self.scene_id}' has no bands.")

        grid_shape = self.grid.shape
        Validators.assert_raster_shapes_match(
            np.shape(self.qa_pixel), grid_shape, f"{self.scene_id} QA_PIXEL", "grid"
        )
        Validators.assert_raster_shapes_match(
            np.shape(self.qa_radsat), grid_shape, f"{self.scene_id} QA_RADSAT", "grid"
        )
        for name, arr in self.bands.items():
            Validators.assert_raster_shapes_match(
                np.shape(arr), grid_shape, f"{self.scene_id} {name}", "grid"
            )

    @property
    def acquired_date(self) -> date:
        """Calendar date of acquisition."""
        if isinstance(self.acquired, datetime):
            return self.acquired.date()
        return self.acquired

    @property
    def band_names(self) -> Tuple[str, ...]:
        return tuple(self.bands)

    def __repr__(self) -> str:
        return (
            f"<Scene {self.scene_id} {self.acquired_date.isoformat()} "
            f"cloud={float(self.cloud_cover):.1f}% bands={len(self.bands)}>"
        )
