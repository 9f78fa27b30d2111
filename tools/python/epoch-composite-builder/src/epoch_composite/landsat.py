"""
landsat.py
==========
Radiometric scaling and cloud / saturation masking for Landsat 8/9
Collection 2 Level-2 products.

The scale factors and the QA bit width below are fixed by the C2 L2
surface-reflectance and surface-temperature products and are not
parameters of any function.

QA_PIXEL low bits (all five must be clear for a pixel to be used)::

    bit 0  fill
    bit 1  dilated cloud
    bit 2  cirrus
    bit 3  cloud
    bit 4  cloud shadow
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from epoch_composite.scene import Scene

# ---------------------------------------------------------------------------
# Product constants
# ---------------------------------------------------------------------------

OPTICAL_SCALE = 0.0000275
OPTICAL_OFFSET = -0.2
THERMAL_SCALE = 0.00341802
THERMAL_OFFSET = 149.0

QA_CLOUD_BITS = 0b11111

OPTICAL_BAND = re.compile(r"^SR_B\d+$")
THERMAL_BAND = re.compile(r"^ST_B\d+$")

# Band layout used when no scene is available to infer one from
DEFAULT_BANDS: Tuple[str, ...] = (
    "SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7", "ST_B10",
)


# ---------------------------------------------------------------------------
# Derived scene types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ScaledScene:
    """A scene whose SR bands are reflectance and ST bands are kelvin."""

    scene: Scene
    bands: Dict[str, np.ndarray]


@dataclass(frozen=True, eq=False)
class MaskedScene:
    """A scaled scene with invalid pixels set to NaN in every band.

    Attributes:
        scene: The source scene (for metadata).
        bands: Band name → float32 array, NaN where ``valid`` is False.
        valid: Boolean ``(H, W)`` validity mask derived from QA.
    """

    scene: Scene
    bands: Dict[str, np.ndarray]
    valid: np.ndarray


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


def scale_band(name: str, raw: np.ndarray) -> np.ndarray:
    """Apply the product scale transform for band *name*.

    ``SR_B*`` → ``raw * 0.0000275 - 0.2`` (reflectance),
    ``ST_B*`` → ``raw * 0.00341802 + 149.0`` (kelvin);
    any other band is returned as float32 without rescaling.
    """
    values = np.asarray(raw, dtype=np.float32)
    if OPTICAL_BAND.match(name):
        return (values * np.float32(OPTICAL_SCALE) + np.float32(OPTICAL_OFFSET)).astype(np.float32)
    if THERMAL_BAND.match(name):
        return (values * np.float32(THERMAL_SCALE) + np.float32(THERMAL_OFFSET)).astype(np.float32)
    return values.copy()


def scale_scene(scene: Scene) -> ScaledScene:
    """Rescale every band of *scene* to physical units."""
    return ScaledScene(
        scene=scene,
        bands={name: scale_band(name, raw) for name, raw in scene.bands.items()},
    )


def valid_pixel_mask(qa_pixel: np.ndarray, qa_radsat: np.ndarray) -> np.ndarray:
    """Return ``True`` where no cloud/shadow/cirrus/fill bit is set and no band saturated."""
    qa = np.asarray(qa_pixel).astype(np.uint16)
    radsat = np.asarray(qa_radsat)
    return ((qa & QA_CLOUD_BITS) == 0) & (radsat == 0)


def mask_scene(scaled: ScaledScene) -> MaskedScene:
    """Invalidate cloudy or saturated pixels across all bands of *scaled*."""
    valid = valid_pixel_mask(scaled.scene.qa_pixel, scaled.scene.qa_radsat)
    bands = {
        name: np.where(valid, arr, np.float32(np.nan)).astype(np.float32)
        for name, arr in scaled.bands.items()
    }
    return MaskedScene(scene=scaled.scene, bands=bands, valid=valid)

