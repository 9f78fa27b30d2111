"""
Shared fixtures for the Epoch Composite Builder tests.

All imagery is synthetic: a 10 x 10 pixel grid in EPSG:4326 at 0.01°
spacing just south of the equator near Nairobi, and scenes whose raw
digital numbers are derived from the reflectance / kelvin values the
test wants to see after scaling.  No network access is needed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping

import numpy as np
import pytest
from rasterio.transform import from_origin

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.grid import PixelGrid
from epoch_composite.landsat import OPTICAL_OFFSET, OPTICAL_SCALE, THERMAL_OFFSET, THERMAL_SCALE
from epoch_composite.scene import Scene

WEST, NORTH = 36.0, -1.0
STEP = 0.01
SIZE = 10


def raw_reflectance(value) -> np.ndarray:
    """Digital numbers that scale to *value* reflectance."""
    return ((np.asarray(value, dtype=np.float64) - OPTICAL_OFFSET) / OPTICAL_SCALE).astype(np.float32)


def raw_kelvin(value) -> np.ndarray:
    """Digital numbers that scale to *value* kelvin."""
    return ((np.asarray(value, dtype=np.float64) - THERMAL_OFFSET) / THERMAL_SCALE).astype(np.float32)


@pytest.fixture
def grid() -> PixelGrid:
    return PixelGrid(
        crs="EPSG:4326",
        transform=from_origin(WEST, NORTH, STEP, STEP),
        height=SIZE,
        width=SIZE,
    )


@pytest.fixture
def aoi() -> AreaOfInterest:
    """Covers every pixel centre of :func:`grid`."""
    return AreaOfInterest.from_bbox(WEST, NORTH - SIZE * STEP, WEST + SIZE * STEP, NORTH, label="Test AOI")


@pytest.fixture
def west_half_aoi() -> AreaOfInterest:
    """Covers columns 0-4 of :func:`grid`."""
    return AreaOfInterest.from_bbox(WEST, NORTH - SIZE * STEP, WEST + 5 * STEP, NORTH, label="West half")


@pytest.fixture
def make_scene(grid: PixelGrid) -> Callable[..., Scene]:
    """Factory for scenes with uniform or per-pixel physical values.

    ``reflectance`` and ``kelvin`` may be scalars or ``(10, 10)`` arrays;
    ``qa`` and ``radsat`` likewise.  SR_B2/SR_B3/SR_B4 all receive the
    same reflectance.
    """

    def _make(
        scene_id: str,
        acquired: str = "2020-07-01",
        cloud_cover: float = 5.0,
        reflectance=0.1,
        kelvin=300.0,
        qa=0,
        radsat=0,
        bands: Mapping[str, np.ndarray] | None = None,
    ) -> Scene:
        shape = grid.shape
        if bands is None:
            sr = np.broadcast_to(raw_reflectance(reflectance), shape).copy()
            bands = {
                "SR_B2": sr,
                "SR_B3": sr.copy(),
                "SR_B4": sr.copy(),
                "ST_B10": np.broadcast_to(raw_kelvin(kelvin), shape).copy(),
            }
        return Scene(
            scene_id=scene_id,
            acquired=datetime.fromisoformat(acquired),
            cloud_cover=cloud_cover,
            qa_pixel=np.broadcast_to(np.asarray(qa, dtype=np.uint16), shape).copy(),
            qa_radsat=np.broadcast_to(np.asarray(radsat, dtype=np.uint16), shape).copy(),
            bands=dict(bands),
            grid=grid,
        )

    return _make
