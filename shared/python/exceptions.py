"""
GeoScriptHub — Custom Exception Hierarchy
==========================================
All GeoScriptHub tools raise exceptions from this module so callers can
catch them at the right level of granularity.

Hierarchy::

    GeoScriptHubError                    ← catch-all base
    ├── InputValidationError             ← bad files, bad config values
    │   ├── EpochConfigError             ← epoch with start > end, duplicate labels
    │   └── AOIValidationError           ← empty / self-intersecting AOI
    ├── CRSError                         ← invalid / unknown CRS string
    ├── RasterError                      ← rasterio / numpy / xarray issues
    │   ├── BandNotFoundError            ← requested band is not in the composite
    │   └── UndefinedStatisticError      ← no valid pixels to compute a statistic
    ├── CatalogError                     ← scene catalog search / read failures
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import EpochConfigError

    raise EpochConfigError("2021-Q1", "start 2021-03-31 is after end 2021-01-01")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class GeoScriptHubError(Exception):
    """Base exception for all GeoScriptHub tools.

    Catch this to handle any tool-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(GeoScriptHubError):
    """Raised when a tool's inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class EpochConfigError(InputValidationError):
    """Raised when an epoch definition is malformed.

    Args:
        label: Label of the offending epoch (e.g. ``"2020-dry"``).
        reason: Short explanation of what is wrong with it.

    Example::

        raise EpochConfigError("2020-dry", "start 2020-12-31 is after end 2020-06-01")
    """

    def __init__(self, label: str, reason: str) -> None:
        super().__init__(f"Invalid epoch '{label}': {reason}")
        self.label: str = label
        self.reason: str = reason


class AOIValidationError(InputValidationError):
    """Raised when an area of interest geometry is empty or invalid.

    Args:
        label: Human label of the AOI being constructed.
        reason: Why the geometry was rejected, usually the shapely
                ``explain_validity`` text.
    """

    def __init__(self, label: str, reason: str) -> None:
        super().__init__(f"Invalid area of interest '{label}': {reason}")
        self.label: str = label
        self.reason: str = reason


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(GeoScriptHubError):
    """Raised when a coordinate reference system string cannot be parsed
    or matched to a known CRS.

    Args:
        crs_string: The raw CRS string that caused the error
                    (e.g. ``"EPSG:99999"``).

    Example::

        raise CRSError("EPSG:99999")
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:4326') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(GeoScriptHubError):
    """Raised for general raster processing failures (rasterio / numpy).

    Subclass this for more specific raster errors.
    """


class BandNotFoundError(RasterError):
    """Raised when a requested band name is not present in a raster.

    Args:
        band: The band name that was requested (e.g. ``"ST_B10"``).
        available: Band names that ARE present, used to build a helpful
                   error message.

    Example::

        raise BandNotFoundError("ST_B11", ["SR_B4", "SR_B5", "ST_B10"])
    """

    def __init__(self, band: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{b}'" for b in available) or "none"
        super().__init__(
            f"Band '{band}' not found. Available bands: {available_str}"
        )
        self.band: str = band
        self.available: list[str] = available


class UndefinedStatisticError(RasterError):
    """Raised when a statistic is requested over a region with no valid pixels.

    Callers must branch on this explicitly; a fabricated ``0`` or a bare
    ``NaN`` is never returned in its place.

    Args:
        band: Band the statistic was requested for.
        context: Short description of the region / composite, used in the
                 message (e.g. the epoch label).
    """

    def __init__(self, band: str, context: str) -> None:
        super().__init__(
            f"Statistic for band '{band}' is undefined: "
            f"{context} has no valid pixels inside the area of interest."
        )
        self.band: str = band
        self.context: str = context


# ---------------------------------------------------------------------------
# Scene catalog
# ---------------------------------------------------------------------------


class CatalogError(GeoScriptHubError):
    """Raised when the scene catalog cannot be searched or read.

    Args:
        catalog: Name of the catalog backend (e.g. ``"planetary-computer"``).
        reason: Underlying library or HTTP error message.
    """

    def __init__(self, catalog: str, reason: str) -> None:
        super().__init__(f"Scene catalog '{catalog}' failed: {reason}")
        self.catalog: str = catalog
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(GeoScriptHubError):
    """Raised when the tool cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.

    Example::

        raise OutputWriteError("/read-only/dir/composite.tif", "Permission denied")
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
