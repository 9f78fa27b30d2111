"""
Epoch Composite Builder — Run Configuration
============================================
Parses a JSON run configuration into :class:`RunConfig`.

Example configuration::

    {
        "aoi": {"bbox": [36.65, -1.45, 37.10, -1.15], "label": "Nairobi"},
        "epochs": [
            {"label": "2020-dry", "start": "2020-06-01", "end": "2020-12-31"}
        ],
        "cloud_threshold": 20,
        "stats_band": "ST_B10",
        "percentiles": [5, 25, 50, 75, 95]
    }

The ``aoi`` block accepts exactly one of ``bbox``, ``coordinates``,
``geojson``, or ``path`` (with optional ``layer``, ``field``, ``value``)
for an administrative boundary file.  Relative paths resolve against the
configuration file's directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.composite import DEFAULT_CLOUD_THRESHOLD
from epoch_composite.epochs import Epoch, check_unique_labels
from epoch_composite.grid import DEFAULT_RESOLUTION
from epoch_composite.quality import DEFAULT_PERCENTILES, DEFAULT_STATS_BAND

_AOI_SOURCES = ("bbox", "coordinates", "geojson", "path")


@dataclass
class RunConfig:
    """Full run configuration.

    Attributes:
        aoi: Resolved area of interest.
        epochs: Epochs to composite, unique labels.
        cloud_threshold: Scenes need cloud cover strictly below this (percent).
        stats_band: Band summarised in the quality report.
        percentiles: Percentile ranks for the quality report.
        resolution: Pixel size in metres for catalog fetches.
        platforms: Landsat platforms to query (``"landsat-8"``, ``"landsat-9"``).
        max_workers: Epochs composited in parallel.
        write_geotiff: Write one multi-band GeoTIFF per epoch.
        write_quicklook: Write one true-colour PNG per epoch.
        report_format: ``"json"`` or ``"csv"``.
    """

    aoi: AreaOfInterest
    epochs: list[Epoch]
    cloud_threshold: float = DEFAULT_CLOUD_THRESHOLD
    stats_band: str = DEFAULT_STATS_BAND
    percentiles: list[float] = field(default_factory=lambda: list(DEFAULT_PERCENTILES))
    resolution: float = DEFAULT_RESOLUTION
    platforms: list[str] = field(default_factory=lambda: ["landsat-8"])
    max_workers: int = 1
    write_geotiff: bool = True
    write_quicklook: bool = False
    report_format: Literal["json", "csv"] = "json"

    def validate(self) -> None:
        """Check cross-field constraints.

        Raises:
            InputValidationError: On any out-of-range value.
            EpochConfigError: On an empty epoch list or duplicate labels.
        """
        if not self.epochs:
            raise InputValidationError("Config key 'epochs' must list at least one epoch.")
        check_unique_labels(self.epochs)
        Validators.assert_cloud_threshold_valid(self.cloud_threshold)
        Validators.assert_percentiles_valid(self.percentiles)
        Validators.assert_positive_number(self.resolution, "resolution")
        Validators.assert_positive_number(self.max_workers, "max_workers", integer=True)
        if not self.platforms or not all(isinstance(p, str) for p in self.platforms):
            raise InputValidationError("Config key 'platforms' must be a non-empty list of names.")
        if not isinstance(self.stats_band, str) or not self.stats_band:
            raise InputValidationError(f"'stats_band' must be a band name, got {self.stats_band!r}.")
        if self.report_format not in ("json", "csv"):
            raise InputValidationError(
                f"'report_format' must be 'json' or 'csv', got {self.report_format!r}."
            )


# ---------------------------------------------------------------------------
# Config parser
# ---------------------------------------------------------------------------


def parse_aoi(raw: dict[str, Any], base_dir: Path) -> AreaOfInterest:
    """Build an :class:`AreaOfInterest` from the config ``aoi`` block."""
    if not isinstance(raw, dict):
        raise InputValidationError("Config key 'aoi' must be an object.")
    sources = [k for k in _AOI_SOURCES if k in raw]
    if len(sources) != 1:
        raise InputValidationError(
            f"Config 'aoi' needs exactly one of {', '.join(_AOI_SOURCES)}; got {sources or 'none'}."
        )
    label = raw.get("label")
    source = sources[0]

    if source == "bbox":
        bbox = raw["bbox"]
        if not isinstance(bbox, list) or len(bbox) != 4:
            raise InputValidationError("'aoi.bbox' must be [west, south, east, north].")
        return AreaOfInterest.from_bbox(*[float(v) for v in bbox], label=label)
    if source == "coordinates":
        return AreaOfInterest.from_coordinates(
            [tuple(pt) for pt in raw["coordinates"]],
            label=label or "User-defined polygon",
        )
    if source == "geojson":
        if not isinstance(raw["geojson"], dict):
            raise InputValidationError("'aoi.geojson' must be a GeoJSON object.")
        return AreaOfInterest.from_geojson(raw["geojson"], label=label or "GeoJSON polygon")

    path = Path(raw["path"])
    if not path.is_absolute():
        path = base_dir / path
    return AreaOfInterest.from_file(
        path,
        layer=raw.get("layer"),
        field=raw.get("field"),
        value=raw.get("value"),
        label=label,
    )


def load_config(config_path: Path) -> RunConfig:
    """Parse a JSON configuration file into a validated :class:`RunConfig`.

    Args:
        config_path: Path to the JSON config file.

    Returns:
        A fully populated, validated ``RunConfig``.

    Raises:
        InputValidationError: If the file cannot be read or parsed, or a
            value is invalid.  Malformed epochs and AOIs raise the more
            specific ``EpochConfigError`` / ``AOIValidationError``.
    """
    config_path = Path(config_path)
    try:
        raw: dict[str, Any] = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise InputValidationError(
            f"Failed to read config file '{config_path}': {exc}"
        ) from exc

    if not isinstance(raw, dict):
        raise InputValidationError(f"Config file '{config_path}' must contain a JSON object.")
    if "aoi" not in raw:
        raise InputValidationError("Config key 'aoi' is required.")

    epochs_raw = raw.get("epochs", [])
    if not isinstance(epochs_raw, list):
        raise InputValidationError("Config key 'epochs' must be a list.")
    for key in ("percentiles", "platforms"):
        if key in raw and not isinstance(raw[key], list):
            raise InputValidationError(f"Config key '{key}' must be a list.")

    try:
        config = RunConfig(
            aoi=parse_aoi(raw["aoi"], config_path.parent),
            epochs=[Epoch.from_dict(e) for e in epochs_raw],
            cloud_threshold=raw.get("cloud_threshold", DEFAULT_CLOUD_THRESHOLD),
            stats_band=raw.get("stats_band", DEFAULT_STATS_BAND),
            percentiles=list(raw.get("percentiles", DEFAULT_PERCENTILES)),
            resolution=raw.get("resolution", DEFAULT_RESOLUTION),
            platforms=list(raw.get("platforms", ["landsat-8"])),
            max_workers=raw.get("max_workers", 1),
            write_geotiff=bool(raw.get("write_geotiff", True)),
            write_quicklook=bool(raw.get("write_quicklook", False)),
            report_format=str(raw.get("report_format", "json")).lower(),  # type: ignore[arg-type]
        )
    except (TypeError, ValueError, KeyError) as exc:
        raise InputValidationError(f"Invalid value in config '{config_path}': {exc}") from exc

    config.validate()
    return config
