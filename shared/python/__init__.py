"""
GeoScriptHub — Shared Python Package
=====================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so individual tools can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import UndefinedStatisticError
"""

from shared.python.base_tool import GeoTool, configure_logging
from shared.python.exceptions import (
    AOIValidationError,
    BandNotFoundError,
    CatalogError,
    CRSError,
    EpochConfigError,
    GeoScriptHubError,
    InputValidationError,
    OutputWriteError,
    RasterError,
    UndefinedStatisticError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "configure_logging",
    "Validators",
    "GeoScriptHubError",
    "InputValidationError",
    "EpochConfigError",
    "AOIValidationError",
    "CRSError",
    "RasterError",
    "BandNotFoundError",
    "UndefinedStatisticError",
    "CatalogError",
    "OutputWriteError",
]
