"""
Epoch Composite Builder
=======================
A GeoScriptHub tool that builds cloud-masked median composites of Landsat
Collection 2 Level-2 imagery, one per named epoch, and summarises each
composite with band percentiles over an area of interest.

Public API::

    from epoch_composite import (
        AreaOfInterest, Epoch, build_composite, run_all_epochs, summarize,
        EpochCompositeBuilder,
    )
"""

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.builder import EpochCompositeBuilder
from epoch_composite.catalog import InMemoryCatalog, PlanetaryComputerCatalog, SceneCatalog
from epoch_composite.composite import Composite, EpochResult, build_composite, run_all_epochs
from epoch_composite.config import RunConfig, load_config
from epoch_composite.epochs import Epoch
from epoch_composite.grid import PixelGrid
from epoch_composite.quality import QualityReport, build_report, summarize
from epoch_composite.scene import Scene

__all__ = [
    "AreaOfInterest",
    "Composite",
    "Epoch",
    "EpochCompositeBuilder",
    "EpochResult",
    "InMemoryCatalog",
    "PixelGrid",
    "PlanetaryComputerCatalog",
    "QualityReport",
    "RunConfig",
    "Scene",
    "SceneCatalog",
    "build_composite",
    "build_report",
    "load_config",
    "run_all_epochs",
    "summarize",
]
__version__ = "1.0.0"
