"""
composite.py
============
Per-epoch median compositing.

Pipeline for one epoch::

  1.  Filter   acquisition date in [start, end] and cloud cover < threshold
  2.  Scale    SR bands → reflectance, ST bands → kelvin
  3.  Mask     QA_PIXEL low five bits and QA_RADSAT must be zero
  4.  Reduce   per-pixel, per-band median over valid observations
  5.  Clip     pixels whose centre lies outside the AOI become invalid
  6.  Tag      epoch label / year / dates attached as attributes

Invalid pixels are NaN throughout.  A pixel with no valid observation is
NaN in the composite and is never filled with zero.

``run_all_epochs`` applies the same procedure to each epoch
independently; nothing is cached or shared between epochs.
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import xarray as xr

from shared.python.exceptions import BandNotFoundError, InputValidationError
from shared.python.validators import Validators

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.epochs import Epoch, check_unique_labels
from epoch_composite.grid import PixelGrid
from epoch_composite.landsat import DEFAULT_BANDS, MaskedScene, mask_scene, scale_scene
from epoch_composite.scene import Scene

logger = logging.getLogger("geoscripthub.epoch_composite.composite")

DEFAULT_CLOUD_THRESHOLD = 20.0


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Composite:
    """Median composite for one epoch.

    Attributes:
        epoch: The epoch this composite represents.
        data: ``(band, y, x)`` float32 DataArray; NaN marks invalid pixels.
        grid: Pixel grid the data is aligned to.
        scene_count: Number of scenes that passed the date/cloud filter.
        scene_ids: IDs of those scenes, ordered by acquisition time.
        cloud_threshold: Cloud-cover threshold the filter used.
    """

    epoch: Epoch
    data: xr.DataArray
    grid: PixelGrid = field(repr=False)
    scene_count: int = 0
    scene_ids: Tuple[str, ...] = ()
    cloud_threshold: float = DEFAULT_CLOUD_THRESHOLD

    @property
    def label(self) -> str:
        return self.epoch.label

    @property
    def year(self) -> int:
        return self.epoch.year

    @property
    def band_names(self) -> List[str]:
        return [str(b) for b in self.data["band"].values]

    def band(self, name: str) -> np.ndarray:
        """Return the ``(y, x)`` array for band *name*.

        Raises:
            BandNotFoundError: If *name* is not in the composite.
        """
        if name not in self.band_names:
            raise BandNotFoundError(name, self.band_names)
        return self.data.sel(band=name).values

    def valid_mask(self, band: Optional[str] = None) -> np.ndarray:
        """Boolean ``(y, x)`` mask of valid pixels.

        With *band* given, validity of that band; otherwise a pixel counts
        as valid when any band holds a value.
        """
        if band is not None:
            return ~np.isnan(self.band(band))
        return ~np.isnan(self.data.values).all(axis=0)

    @property
    def valid_fraction(self) -> float:
        """Share of grid pixels that are valid in at least one band."""
        return float(self.valid_mask().mean())

    @property
    def is_empty(self) -> bool:
        """``True`` when no pixel in any band is valid."""
        return not bool(self.valid_mask().any())

    def __str__(self) -> str:
        return (
            f"{self.epoch}: {self.scene_count} scene(s), "
            f"{self.valid_fraction:.1%} valid pixels"
        )


class EpochResult(NamedTuple):
    """One entry of :func:`run_all_epochs`."""

    composite: Composite
    scene_count: int


# ---------------------------------------------------------------------------
# Stage helpers
# ---------------------------------------------------------------------------


def filter_scenes(
    scenes: Sequence[Scene],
    epoch: Epoch,
    cloud_threshold: float = DEFAULT_CLOUD_THRESHOLD,
) -> List[Scene]:
    """Keep scenes acquired within *epoch* with cloud cover strictly below the threshold.

    The result is ordered by ``(acquired, scene_id)`` so it does not depend
    on input order.
    """
    kept = [
        s for s in scenes
        if epoch.contains(s.acquired) and float(s.cloud_cover) < cloud_threshold
    ]
    return sorted(kept, key=lambda s: (s.acquired_date, str(s.acquired), s.scene_id))


def resolve_grid(
    scenes: Sequence[Scene],
    aoi: AreaOfInterest,
    grid: Optional[PixelGrid] = None,
) -> PixelGrid:
    """Pick the pixel grid for compositing and check every scene is on it.

    Precedence: explicit *grid*, then the first scene's grid, then a 30 m
    grid derived from *aoi*.

    Raises:
        InputValidationError: If any scene sits on a different grid.
    """
    target = grid or (scenes[0].grid if scenes else PixelGrid.from_aoi(aoi))
    for s in scenes:
        if s.grid != target:
            raise InputValidationError(
                f"Scene '{s.scene_id}' is on {s.grid!r}, expected {target!r}. "
                "All scenes must share one pixel grid."
            )
    return target


def band_layout(scenes: Sequence[Scene]) -> Tuple[str, ...]:
    """Union of band names across *scenes* in canonical order.

    Landsat C2 L2 bands come first in their standard order, any other
    bands follow alphabetically, so the layout does not depend on scene
    order.  Falls back to the default layout when *scenes* is empty.
    """
    names = {name for s in scenes for name in s.bands}
    if not names:
        return DEFAULT_BANDS
    known = [b for b in DEFAULT_BANDS if b in names]
    return tuple(known + sorted(names.difference(DEFAULT_BANDS)))


def _median_reduce(
    masked: Sequence[MaskedScene],
    bands: Sequence[str],
    grid: PixelGrid,
) -> np.ndarray:
    """NaN-skipping median over the time axis → ``(band, y, x)`` float32."""
    empty = np.full(grid.shape, np.nan, dtype=np.float32)
    planes = np.stack(
        [np.stack([m.bands.get(b, empty) for b in bands]) for m in masked]
    )
    stack = xr.DataArray(planes, dims=("time", "band", "y", "x"))

    # all-NaN pixels legitimately reduce to NaN
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        reduced = stack.median(dim="time", skipna=True)
    return reduced.values.astype(np.float32)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_composite(
    scenes: Sequence[Scene],
    aoi: AreaOfInterest,
    epoch: Epoch,
    cloud_threshold: float = DEFAULT_CLOUD_THRESHOLD,
    *,
    grid: Optional[PixelGrid] = None,
) -> Composite:
    """Build the cloud-masked median composite of *scenes* for *epoch*.

    Args:
        scenes: Candidate scenes, all on one pixel grid.  Scenes outside
                the epoch or at/above the cloud threshold are ignored.
        aoi: Area the composite is clipped to.
        epoch: Date range to composite.
        cloud_threshold: Scenes need cloud cover strictly below this (percent).
        grid: Optional explicit pixel grid (see :func:`resolve_grid`).

    Returns:
        A :class:`Composite`.  When no scene passes the filter the composite
        is entirely NaN and ``scene_count`` is 0.

    Raises:
        InputValidationError: On an out-of-range threshold or mismatched
            scene grids.
    """
    Validators.assert_cloud_threshold_valid(cloud_threshold)
    scenes = list(scenes)
    target = resolve_grid(scenes, aoi, grid)
    bands = band_layout(scenes)
    selected = filter_scenes(scenes, epoch, cloud_threshold)

    logger.debug(
        "%s: %d of %d scene(s) pass filter (cloud < %g%%).",
        epoch.label, len(selected), len(scenes), cloud_threshold,
    )

    if selected:
        masked = [mask_scene(scale_scene(s)) for s in selected]
        data = _median_reduce(masked, bands, target)
    else:
        data = np.full((len(bands), *target.shape), np.nan, dtype=np.float32)

    inside = target.mask(aoi)
    data = np.where(inside[np.newaxis, :, :], data, np.float32(np.nan)).astype(np.float32)

    da = xr.DataArray(
        data,
        dims=("band", "y", "x"),
        coords={"band": list(bands), "y": target.y_coords(), "x": target.x_coords()},
        name=epoch.label,
        attrs={
            "label": epoch.label,
            "year": epoch.year,
            "start": epoch.start.isoformat(),
            "end": epoch.end.isoformat(),
            "scene_count": len(selected),
            "cloud_threshold": float(cloud_threshold),
            "crs": target.crs,
        },
    )
    return Composite(
        epoch=epoch,
        data=da,
        grid=target,
        scene_count=len(selected),
        scene_ids=tuple(s.scene_id for s in selected),
        cloud_threshold=float(cloud_threshold),
    )


def run_all_epochs(
    scenes: Sequence[Scene],
    aoi: AreaOfInterest,
    epochs: Sequence[Epoch],
    cloud_threshold: float = DEFAULT_CLOUD_THRESHOLD,
    *,
    grid: Optional[PixelGrid] = None,
    max_workers: int = 1,
) -> Dict[str, EpochResult]:
    """Composite every epoch independently.

    Args:
        scenes: Candidate scenes for all epochs.
        aoi: Area every composite is clipped to.
        epochs: Epochs to build, labels must be unique.  Ranges may overlap.
        cloud_threshold: Scene cloud-cover threshold (percent).
        grid: Optional explicit pixel grid.
        max_workers: Thread-pool size; ``1`` runs sequentially.

    Returns:
        ``{epoch.label: EpochResult(composite, scene_count)}`` in epoch order.

    Raises:
        EpochConfigError: On duplicate epoch labels.
        InputValidationError: On a bad threshold, worker count, or grid.
    """
    epochs = list(epochs)
    check_unique_labels(epochs)
    Validators.assert_cloud_threshold_valid(cloud_threshold)
    if max_workers < 1:
        raise InputValidationError(f"max_workers must be >= 1, got {max_workers}.")

    scenes = tuple(scenes)
    target = resolve_grid(scenes, aoi, grid)

    def _one(epoch: Epoch) -> Composite:
        return build_composite(scenes, aoi, epoch, cloud_threshold, grid=target)

    if max_workers > 1 and len(epochs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            composites = list(pool.map(_one, epochs))
    else:
        composites = [_one(e) for e in epochs]

    results: Dict[str, EpochResult] = {}
    for epoch, composite in zip(epochs, composites):
        results[epoch.label] = EpochResult(composite, composite.scene_count)
        if composite.scene_count == 0:
            logger.warning("Epoch %s: no scenes passed the filter; composite is empty.", epoch)
        else:
            logger.info("Epoch %s", composite)
    return results
