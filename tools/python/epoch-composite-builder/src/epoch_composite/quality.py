"""
quality.py
==========
Read-only diagnostics over finished composites.

``summarize`` returns band percentiles over valid pixels inside an AOI
(e.g. land-surface temperature from ``ST_B10``).  When there is nothing to
measure it raises ``UndefinedStatisticError`` instead of returning a number.
``QualityReport`` bundles the per-epoch scene count with those percentiles
for output; nothing here feeds back into composite construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from shared.python.exceptions import UndefinedStatisticError
from shared.python.validators import Validators

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.composite import Composite, EpochResult

logger = logging.getLogger("geoscripthub.epoch_composite.quality")

DEFAULT_PERCENTILES = (5.0, 25.0, 50.0, 75.0, 95.0)
DEFAULT_STATS_BAND = "ST_B10"


def summarize(
    composite: Composite,
    aoi: AreaOfInterest,
    band: str,
    percentiles: Sequence[float] = DEFAULT_PERCENTILES,
) -> Dict[float, float]:
    """Percentiles of *band* over valid composite pixels inside *aoi*.

    Args:
        composite: Composite to measure.
        aoi: Region to measure; may be smaller than the composite's AOI.
        band: Band name, e.g. ``"ST_B10"``.
        percentiles: Ranks in [0, 100]; linear interpolation between samples.

    Returns:
        ``{percentile: value}`` in the order requested.

    Raises:
        BandNotFoundError: If *band* is not in the composite.
        InputValidationError: If a percentile is out of range.
        UndefinedStatisticError: If no valid pixel of *band* lies in *aoi*.
    """
    Validators.assert_percentiles_valid(percentiles)
    values = composite.band(band)
    inside = composite.grid.mask(aoi)
    sample = values[inside & ~np.isnan(values)]

    if sample.size == 0:
        raise UndefinedStatisticError(band, f"composite '{composite.label}'")

    ranks = [float(p) for p in percentiles]
    computed = np.percentile(sample.astype(np.float64), ranks)
    return {rank: float(v) for rank, v in zip(ranks, computed)}


@dataclass(frozen=True)
class QualityReport:
    """Per-epoch quality-control summary.

    Attributes:
        label: Epoch label.
        year: Epoch start year.
        start: Epoch start date, ISO-8601.
        end: Epoch end date, ISO-8601.
        scene_count: Scenes that passed the date/cloud filter.
        band: Band the percentiles describe.
        valid_pixels: Valid pixels of *band* inside the AOI.
        valid_fraction: Share of AOI pixels that are valid in *band*.
        percentiles: ``{rank: value}``, or ``None`` when undefined.
    """

    label: str
    year: int
    start: str
    end: str
    scene_count: int
    band: str
    valid_pixels: int
    valid_fraction: float
    percentiles: Optional[Dict[float, float]] = field(default=None)

    @property
    def is_defined(self) -> bool:
        return self.percentiles is not None

    def to_dict(self) -> dict:
        """JSON-friendly representation; percentile keys become strings like ``"p50"``."""
        return {
            "label": self.label,
            "year": self.year,
            "start": self.start,
            "end": self.end,
            "scene_count": self.scene_count,
            "band": self.band,
            "valid_pixels": self.valid_pixels,
            "valid_fraction": round(self.valid_fraction, 6),
            "percentiles": (
                {rank_key(k): v for k, v in self.percentiles.items()}
                if self.percentiles is not None else None
            ),
        }

    def __str__(self) -> str:
        if self.percentiles is None:
            stats = "undefined (no valid pixels)"
        else:
            stats = " ".join(f"{rank_key(k)}={v:.3f}" for k, v in self.percentiles.items())
        return f"{self.label}: scenes={self.scene_count} {self.band} {stats}"


def rank_key(rank: float) -> str:
    """``5.0`` → ``"p5"``, ``97.5`` → ``"p97.5"``."""
    return f"p{rank:g}"


def build_report(
    result: EpochResult,
    aoi: AreaOfInterest,
    band: str = DEFAULT_STATS_BAND,
    percentiles: Sequence[float] = DEFAULT_PERCENTILES,
) -> QualityReport:
    """Summarise one epoch, recording an undefined statistic as ``None``.

    Raises:
        BandNotFoundError: If *band* is not in the composite.
    """
    composite = result.composite
    inside = composite.grid.mask(aoi)
    valid = composite.valid_mask(band) & inside
    inside_count = int(inside.sum())

    try:
        stats: Optional[Dict[float, float]] = summarize(composite, aoi, band, percentiles)
    except UndefinedStatisticError as exc:
        logger.warning("%s", exc.message)
        stats = None

    return QualityReport(
        label=composite.label,
        year=composite.year,
        start=composite.epoch.start.isoformat(),
        end=composite.epoch.end.isoformat(),
        scene_count=result.scene_count,
        band=band,
        valid_pixels=int(valid.sum()),
        valid_fraction=float(valid.sum()) / inside_count if inside_count else 0.0,
        percentiles=stats,
    )
