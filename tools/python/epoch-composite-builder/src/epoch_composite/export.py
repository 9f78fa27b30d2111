"""
export.py
=========
Save composites and quality reports to disk.

Supported formats
-----------------
GeoTIFF   -- one multi-band float32 raster per epoch, NaN → nodata
JSON      -- quality report for all epochs
CSV       -- same report, one row per epoch, one column per percentile
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Dict, Sequence

import numpy as np
import rasterio
from rasterio.crs import CRS

from shared.python.exceptions import InputValidationError, OutputWriteError

from epoch_composite.composite import Composite
from epoch_composite.quality import QualityReport, rank_key

logger = logging.getLogger("geoscripthub.epoch_composite.export")

NODATA = -9999.0
GENERATOR = "epoch-composite-builder v1.0"


def safe_filename(label: str) -> str:
    """Make an epoch label usable as a file name stem."""
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in label.strip())
    return cleaned or "epoch"


class CompositeWriter:
    """Write per-epoch composites to a directory.

    Parameters
    ----------
    output_dir:
        Root directory for all saved files.  Created if it does not exist.
    study_name:
        Short prefix added to every output filename.
    """

    def __init__(self, output_dir: Path | str, study_name: str = "composite") -> None:
        self.out_dir = Path(output_dir)
        self.study_name = study_name
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(self.out_dir), str(exc)) from exc

    def path_for(self, composite: Composite, suffix: str) -> Path:
        return self.out_dir / f"{self.study_name}_{safe_filename(composite.label)}{suffix}"

    def write_geotiff(self, composite: Composite, path: Path | None = None) -> Path:
        """Write all bands of *composite* to a tiled, LZW-compressed GeoTIFF.

        Invalid (NaN) pixels are written as ``-9999`` and declared as nodata.
        Band descriptions carry the band names; dataset tags carry the epoch.

        Raises:
            OutputWriteError: If rasterio cannot write the file.
        """
        path = Path(path) if path is not None else self.path_for(composite, ".tif")
        data = composite.data.values
        out = np.where(np.isnan(data), NODATA, data).astype(np.float32)
        grid = composite.grid

        profile = dict(
            driver="GTiff",
            height=grid.height,
            width=grid.width,
            count=out.shape[0],
            dtype="float32",
            crs=CRS.from_user_input(grid.crs),
            transform=grid.transform,
            nodata=NODATA,
            compress="lzw",
        )
        # GTiff block sizes must be multiples of 16
        if grid.height >= 256 and grid.width >= 256:
            profile.update(tiled=True, blockxsize=256, blockysize=256)

        try:
            with rasterio.open(path, "w", **profile) as dst:
                dst.write(out)
                for idx, name in enumerate(composite.band_names, start=1):
                    dst.set_band_description(idx, name)
                dst.update_tags(
                    epoch=composite.label,
                    year=str(composite.year),
                    start=composite.epoch.start.isoformat(),
                    end=composite.epoch.end.isoformat(),
                    scene_count=str(composite.scene_count),
                    cloud_threshold=f"{composite.cloud_threshold:g}",
                    generator=GENERATOR,
                )
        except (rasterio.errors.RasterioError, OSError) as exc:
            raise OutputWriteError(str(path), str(exc)) from exc

        logger.debug("Saved raster : %s", path.name)
        return path

    def write_all(self, composites: Sequence[Composite]) -> Dict[str, Path]:
        """Write one GeoTIFF per composite; return ``{label: path}``."""
        return {c.label: self.write_geotiff(c) for c in composites}


# ---------------------------------------------------------------------------
# Quality report
# ---------------------------------------------------------------------------


def write_report(
    reports: Sequence[QualityReport],
    path: Path,
    fmt: str = "json",
    *,
    indent: int = 2,
) -> Path:
    """Serialise quality reports to JSON or CSV.

    Undefined statistics are written as ``null`` (JSON) or empty cells (CSV).

    Raises:
        InputValidationError: On an unknown *fmt*.
        OutputWriteError: If the file cannot be written.
    """
    fmt = fmt.lower()
    if fmt not in ("json", "csv"):
        raise InputValidationError(f"Unsupported report format {fmt!r}; use 'json' or 'csv'.")
    path = Path(path)

    try:
        if fmt == "json":
            payload = {"epochs": [r.to_dict() for r in reports]}
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=indent)
        else:
            _write_report_csv(reports, path)
    except OSError as exc:
        raise OutputWriteError(str(path), str(exc)) from exc

    logger.debug("Saved report : %s", path.name)
    return path


def _write_report_csv(reports: Sequence[QualityReport], path: Path) -> None:
    ranks: Dict[str, None] = {}
    for r in reports:
        for k in (r.percentiles or {}):
            ranks.setdefault(rank_key(k), None)

    fieldnames = [
        "label", "year", "start", "end", "scene_count",
        "band", "valid_pixels", "valid_fraction", *ranks,
    ]
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        for r in reports:
            row = r.to_dict()
            pct = row.pop("percentiles") or {}
            row.update({key: pct.get(key, "") for key in ranks})
            writer.writerow(row)
