"""
aoi.py
======
Define the analysis area from multiple input types:
  - Bounding box [west, south, east, north]
  - Polygon as a list of (lon, lat) coordinate pairs
  - GeoJSON geometry or Feature mapping
  - Administrative boundary from a Shapefile / GeoPackage / GeoJSON,
    optionally selected by attribute value

Every constructor returns an immutable ``AreaOfInterest`` in WGS84
(EPSG:4326).  Empty, zero-area, and self-intersecting geometries are
rejected at construction time with ``AOIValidationError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence, Tuple, Union

import geopandas as gpd
from pyproj import CRS
from shapely.errors import GeometryTypeError
from shapely.geometry import MultiPolygon, Polygon, box, shape
from shapely.ops import unary_union
from shapely.validation import explain_validity

from shared.python.exceptions import AOIValidationError, InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("geoscripthub.epoch_composite.aoi")

SUPPORTED_VECTOR_EXTENSIONS = [".shp", ".gpkg", ".geojson", ".json"]

AOIGeometry = Union[Polygon, MultiPolygon]


def _utm_crs_from_lonlat(lon: float, lat: float) -> CRS:
    """Return the EPSG UTM CRS that covers *lon*, *lat*."""
    zone = min(int((lon + 180) / 6) + 1, 60)
    base = 32600 if lat >= 0 else 32700
    return CRS.from_epsg(base + zone)


# ---------------------------------------------------------------------------
# Area of interest
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AreaOfInterest:
    """A validated polygonal analysis area in geographic coordinates.

    Attributes:
        geometry: Shapely ``Polygon`` or ``MultiPolygon`` in EPSG:4326
                  (x = longitude, y = latitude).
        label: Human-readable name used in logs and output metadata.

    Raises:
        AOIValidationError: If the geometry is not polygonal, empty,
            invalid (e.g. self-intersecting), has zero area, or lies
            outside the longitude/latitude range.
    """

    geometry: AOIGeometry
    label: str = "AOI"

    def __post_init__(self) -> None:
        geom = self.geometry
        if not isinstance(geom, (Polygon, MultiPolygon)):
            raise AOIValidationError(
                self.label,
                f"expected a Polygon or MultiPolygon, got {type(geom).__name__}",
            )
        if geom.is_empty:
            raise AOIValidationError(self.label, "geometry is empty")
        if not geom.is_valid:
            raise AOIValidationError(self.label, explain_validity(geom))
        if geom.area <= 0:
            raise AOIValidationError(self.label, "geometry has zero area")

        west, south, east, north = geom.bounds
        if west < -180 or east > 180 or south < -90 or north > 90:
            raise AOIValidationError(
                self.label,
                f"bounds ({west}, {south}, {east}, {north}) are outside "
                "geographic coordinate range",
            )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_bbox(
        cls,
        west: float,
        south: float,
        east: float,
        north: float,
        label: str | None = None,
    ) -> AreaOfInterest:
        """Define the AOI from a WGS84 bounding box.

        Args:
            west, south, east, north: Box edges in decimal degrees.
            label: Optional name; defaults to a compact bbox string.
        """
        name = label or f"bbox({west:.3f},{south:.3f},{east:.3f},{north:.3f})"
        if west >= east or south >= north:
            raise AOIValidationError(
                name,
                f"bbox edges must satisfy west < east and south < north, "
                f"got ({west}, {south}, {east}, {north})",
            )
        return cls(geometry=box(west, south, east, north), label=name)

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Sequence[Tuple[float, float]],
        label: str = "User-defined polygon",
    ) -> AreaOfInterest:
        """Define the AOI from an explicit ring of ``(lon, lat)`` pairs.

        The ring is closed automatically if the first and last points differ.
        """
        coords = [(float(lon), float(lat)) for lon, lat in coordinates]
        if len(set(coords)) < 3:
            raise AOIValidationError(label, "a polygon needs at least three distinct vertices")
        if coords[0] != coords[-1]:
            coords.append(coords[0])
        return cls(geometry=Polygon(coords), label=label)

    @classmethod
    def from_geojson(
        cls,
        geojson: Mapping[str, Any],
        label: str = "GeoJSON polygon",
    ) -> AreaOfInterest:
        """Define the AOI from a GeoJSON geometry or Feature mapping."""
        geometry = geojson.get("geometry", geojson) if geojson.get("type") == "Feature" else geojson
        try:
            geom = shape(geometry)
        except (GeometryTypeError, ValueError, KeyError, AttributeError) as exc:
            raise AOIValidationError(label, f"unreadable GeoJSON geometry: {exc}") from exc
        return cls(geometry=geom, label=label)

    @classmethod
    def from_file(
        cls,
        path: Path | str,
        layer: str | None = None,
        field: str | None = None,
        value: Any = None,
        label: str | None = None,
    ) -> AreaOfInterest:
        """Read an administrative boundary from a vector file.

        All matching features are reprojected to WGS84 and dissolved into a
        single geometry.

        Args:
            path: Shapefile, GeoPackage, or GeoJSON path.
            layer: Layer name, relevant for multi-layer GeoPackages.
            field: Attribute column used to select the boundary feature(s).
            value: Value of *field* to select.  Required when *field* is set.
            label: Optional name; defaults to *value* or the file stem.

        Raises:
            InputValidationError: If the file is missing, has an
                unsupported extension, or *field* is not a column.
            AOIValidationError: If no feature matches or the dissolved
                geometry is not a valid polygon.
        """
        path = Path(path)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, SUPPORTED_VECTOR_EXTENSIONS)
        name = label or (str(value) if value is not None else path.stem)

        gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)

        if field is not None:
            if field not in gdf.columns:
                available = ", ".join(f"'{c}'" for c in gdf.columns if c != "geometry")
                raise InputValidationError(
                    f"Column '{field}' not found in '{path.name}'. "
                    f"Available columns: {available}"
                )
            gdf = gdf[gdf[field] == value]

        if gdf.empty:
            raise AOIValidationError(name, f"no features selected from '{path.name}'")

        if gdf.crs is None:
            logger.warning("'%s' has no CRS — assuming WGS84 (EPSG:4326).", path.name)
            gdf = gdf.set_crs("EPSG:4326")

        dissolved = unary_union(gdf.to_crs("EPSG:4326").geometry)
        logger.debug("Read %d feature(s) from %s for AOI '%s'.", len(gdf), path.name, name)
        return cls(geometry=dissolved, label=name)

    # ------------------------------------------------------------------
    # Derived representations
    # ------------------------------------------------------------------

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """``(west, south, east, north)`` in decimal degrees."""
        west, south, east, north = self.geometry.bounds
        return (float(west), float(south), float(east), float(north))

    def utm_crs(self) -> CRS:
        """Best-fit UTM CRS derived from the AOI centroid."""
        centroid = self.geometry.centroid
        return _utm_crs_from_lonlat(centroid.x, centroid.y)

    def to_crs(self, crs: CRS | str) -> AOIGeometry:
        """Return the AOI geometry reprojected to *crs*."""
        series = gpd.GeoSeries([self.geometry], crs="EPSG:4326")
        return series.to_crs(crs).iloc[0]

    def area_km2(self) -> float:
        """Planar area in square kilometres, measured in the AOI's UTM zone."""
        return float(self.to_crs(self.utm_crs()).area) / 1e6

    def __repr__(self) -> str:
        w, s, e, n = self.bounds
        return (
            f"<AreaOfInterest '{self.label}' "
            f"bbox=({w:.4f},{s:.4f},{e:.4f},{n:.4f}) "
            f"~{e - w:.3f}x{n - s:.3f} deg>"
        )
