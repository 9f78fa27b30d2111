"""
grid.py
=======
The common pixel grid that scenes and composites are aligned to.

A ``PixelGrid`` is a north-up raster definition (CRS, affine transform,
height, width).  Every scene handed to the composite builder must share
one grid; when no scene is available the grid is derived from the AOI
in its UTM zone so that an empty epoch still yields a correctly shaped,
fully invalid composite.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Tuple

import numpy as np
from pyproj import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine, from_origin
from shapely.geometry import mapping

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

if TYPE_CHECKING:
    from epoch_composite.aoi import AreaOfInterest

# Landsat Collection 2 Level-2 products are delivered at 30 m
DEFAULT_RESOLUTION = 30.0


@dataclass(frozen=True)
class PixelGrid:
    """North-up raster grid definition.

    Attributes:
        crs: CRS string, normalised through pyproj (e.g. ``"EPSG:32737"``).
        transform: Affine pixel → CRS transform.
        height: Number of rows.
        width: Number of columns.
    """

    crs: str
    transform: Affine
    height: int
    width: int

    def __post_init__(self) -> None:
        Validators.assert_crs_valid(self.crs)
        object.__setattr__(self, "crs", CRS.from_user_input(self.crs).to_string())
        if self.height < 1 or self.width < 1:
            raise InputValidationError(
                f"Pixel grid must be at least 1x1, got {self.height}x{self.width}."
            )
        if self.transform.b != 0 or self.transform.d != 0:
            raise InputValidationError("Rotated pixel grids are not supported.")

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_aoi(
        cls,
        aoi: AreaOfInterest,
        resolution: float = DEFAULT_RESOLUTION,
        crs: str | None = None,
    ) -> PixelGrid:
        """Build a grid covering *aoi*, snapped to multiples of *resolution*.

        Args:
            aoi: Area to cover.
            resolution: Pixel size in CRS units (metres for UTM).
            crs: Target CRS; defaults to the AOI's UTM zone.
        """
        if resolution <= 0:
            raise InputValidationError(f"Grid resolution must be positive, got {resolution}.")
        target = crs or aoi.utm_crs().to_string()
        minx, miny, maxx, maxy = aoi.to_crs(target).bounds

        left = math.floor(minx / resolution) * resolution
        bottom = math.floor(miny / resolution) * resolution
        right = math.ceil(maxx / resolution) * resolution
        top = math.ceil(maxy / resolution) * resolution

        width = max(int(round((right - left) / resolution)), 1)
        height = max(int(round((top - bottom) / resolution)), 1)
        return cls(
            crs=target,
            transform=from_origin(left, top, resolution, resolution),
            height=height,
            width=width,
        )

    # ------------------------------------------------------------------
    # Geometry helpers
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        """``(height, width)``."""
        return (self.height, self.width)

    @property
    def resolution(self) -> Tuple[float, float]:
        """``(x_size, y_size)`` pixel size in CRS units (both positive)."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """``(minx, miny, maxx, maxy)`` in the grid CRS."""
        t = self.transform
        xs = (t.c, t.c + t.a * self.width)
        ys = (t.f, t.f + t.e * self.height)
        return (min(xs), min(ys), max(xs), max(ys))

    def x_coords(self) -> np.ndarray:
        """Pixel-centre x coordinates, one per column."""
        t = self.transform
        return t.c + (np.arange(self.width) + 0.5) * t.a

    def y_coords(self) -> np.ndarray:
        """Pixel-centre y coordinates, one per row."""
        t = self.transform
        return t.f + (np.arange(self.height) + 0.5) * t.e

    def mask(self, aoi: AreaOfInterest) -> np.ndarray:
        """Rasterise *aoi* onto this grid.

        A pixel is inside when its centre falls inside the AOI.

        Returns:
            Boolean ``(height, width)`` array, ``True`` inside the AOI.
        """
        geom = aoi.to_crs(self.crs)
        return geometry_mask(
            [mapping(geom)],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )

    def __repr__(self) -> str:
        xres, yres = self.resolution
        return f"<PixelGrid {self.crs} {self.height}x{self.width} px @ {xres:g}x{yres:g}>"
