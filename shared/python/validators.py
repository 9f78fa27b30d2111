"""
GeoScriptHub — Shared Input Validators
=======================================
Static utility methods used across GeoScriptHub Python tools to validate
common preconditions before processing begins.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans — this
makes ``validate_inputs`` implementations in each tool simple and
readable::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.input_path)
            Validators.assert_supported_extension(self.input_path, [".json"])
            Validators.assert_output_dir_writable(self.output_path)
"""

from __future__ import annotations

import math
import numbers
from pathlib import Path
from typing import Sequence

# Lazy import for pyproj so tools that never check a CRS avoid the
# import cost at startup.
#   pyproj → assert_crs_valid

from shared.python.exceptions import (
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks shared across all tools.

    All methods are ``@staticmethod`` — this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Args:
            path: Path object to check.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.

        Example::

            Validators.assert_file_exists(Path("config/nairobi.json"))
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_dir: Path) -> None:
        """Assert that *output_dir* exists (creating it if needed) and is a directory.

        Args:
            output_dir: Directory the tool will write its outputs into.
                        Created, with any missing parents, if absent.

        Raises:
            OutputWriteError: If the directory cannot be created or a
                regular file already occupies the path.
        """
        output_dir = Path(output_dir)
        if output_dir.exists() and not output_dir.is_dir():
            raise OutputWriteError(str(output_dir), "path exists and is not a directory")
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_dir), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Sequence of allowed extensions, each starting with
                        a dot (e.g. ``[".shp", ".geojson", ".gpkg"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.

        Example::

            Validators.assert_supported_extension(
                Path("boundaries/counties.gpkg"),
                [".shp", ".geojson", ".gpkg"],
            )
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / projection checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a valid CRS.

        Uses :mod:`pyproj` to attempt parsing.  Accepts EPSG codes
        (``"EPSG:4326"``), PROJ strings, and WKT strings.

        Args:
            crs_string: The CRS identifier to validate (e.g. ``"EPSG:32737"``).

        Raises:
            CRSError: If *crs_string* is not recognised by pyproj.
        """
        from pyproj import CRS  # noqa: PLC0415
        from pyproj.exceptions import CRSError as ProjCRSError  # noqa: PLC0415

        try:
            CRS.from_user_input(crs_string)
        except ProjCRSError as exc:
            raise CRSError(crs_string) from exc

    # ------------------------------------------------------------------
    # Numeric parameter checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_percentiles_valid(percentiles: Sequence[float]) -> None:
        """Assert that *percentiles* is non-empty and every value lies in [0, 100].

        Args:
            percentiles: Requested percentile ranks, e.g. ``[5, 25, 50, 75, 95]``.

        Raises:
            InputValidationError: If the sequence is empty or a value is
                out of range or not a finite number.
        """
        if len(percentiles) == 0:
            raise InputValidationError("At least one percentile must be requested.")
        for p in percentiles:
            if not isinstance(p, numbers.Real) or isinstance(p, bool) or not math.isfinite(p):
                raise InputValidationError(f"Percentile {p!r} is not a finite number.")
            if p < 0 or p > 100:
                raise InputValidationError(
                    f"Percentile {p} is out of range; values must lie in [0, 100]."
                )

    @staticmethod
    def assert_cloud_threshold_valid(threshold: float) -> None:
        """Assert that a scene cloud-cover threshold lies in (0, 100].

        A threshold of ``0`` would reject every scene (the filter is a
        strict less-than), so it is treated as a configuration mistake.

        Raises:
            InputValidationError: If *threshold* is outside (0, 100].
        """
        if not isinstance(threshold, numbers.Real) or isinstance(threshold, bool):
            raise InputValidationError(f"Cloud threshold {threshold!r} is not a number.")
        if not 0 < threshold <= 100:
            raise InputValidationError(
                f"Cloud threshold must lie in (0, 100], got {threshold}."
            )

    @staticmethod
    def assert_positive_number(value: float, name: str, *, integer: bool = False) -> None:
        """Assert that *value* is a finite number greater than zero.

        Args:
            value: Value to check; numpy scalars are accepted.
            name: Parameter name used in the error message.
            integer: Require a whole number (e.g. a worker count).

        Raises:
            InputValidationError: If *value* is not a (whole) number or is <= 0.
        """
        kind = numbers.Integral if integer else numbers.Real
        if not isinstance(value, kind) or isinstance(value, bool):
            noun = "an integer" if integer else "a number"
            raise InputValidationError(f"'{name}' must be {noun}, got {value!r}.")
        if not math.isfinite(value) or value <= 0:
            raise InputValidationError(f"'{name}' must be positive, got {value}.")

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_raster_shapes_match(
        shape_a: tuple[int, ...],
        shape_b: tuple[int, ...],
        label_a: str = "Band A",
        label_b: str = "Band B",
    ) -> None:
        """Assert that two raster arrays have identical (rows, cols) shapes.

        This is required before any pixel-wise stacking or masking.

        Args:
            shape_a: ``(rows, cols)`` of the first raster array.
            shape_b: ``(rows, cols)`` of the second raster array.
            label_a: Human-readable name for the first array (used in the
                     error message).
            label_b: Human-readable name for the second array.

        Raises:
            InputValidationError: If the shapes do not match.

        Example::

            Validators.assert_raster_shapes_match(
                scene.qa_pixel.shape, scene.grid.shape, "QA_PIXEL", "grid"
            )
        """
        if tuple(shape_a) != tuple(shape_b):
            raise InputValidationError(
                f"Raster shape mismatch: {label_a} is {tuple(shape_a)} but "
                f"{label_b} is {tuple(shape_b)}. "
                "All arrays must have identical dimensions."
            )
