"""
Epoch Composite Builder — Pipeline Tool
========================================
Config-driven tool that fetches Landsat scenes once for the union of all
epoch date ranges, builds one median composite per epoch, summarises each
one, and writes the outputs.  Inherits from
:class:`~shared.python.base_tool.GeoTool` and implements the Template
Method pattern.

Usage::

    from pathlib import Path
    from epoch_composite.builder import EpochCompositeBuilder

    tool = EpochCompositeBuilder(
        input_path=Path("examples/nairobi.json"),
        output_path=Path("output/nairobi"),
    )
    tool.run()

    for report in tool.reports:
        print(report)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from shared.python.base_tool import GeoTool
from shared.python.validators import Validators

from epoch_composite.catalog import PlanetaryComputerCatalog, SceneCatalog
from epoch_composite.composite import EpochResult, run_all_epochs
from epoch_composite.config import RunConfig, load_config
from epoch_composite.epochs import union_range
from epoch_composite.grid import PixelGrid
from epoch_composite.export import CompositeWriter, safe_filename, write_report
from epoch_composite.quality import QualityReport, build_report
from epoch_composite.viz import save_true_color_png

logger = logging.getLogger("geoscripthub.epoch_composite")


class EpochCompositeBuilder(GeoTool):
    """Build per-epoch median composites and a quality report.

    Args:
        input_path: Path to the JSON run configuration.
        output_path: Directory for GeoTIFFs, quicklooks and the report.
        catalog: Scene source.  Defaults to a
            :class:`~epoch_composite.catalog.PlanetaryComputerCatalog`
            configured from the run config.
        cloud_threshold: Optional override for the config value.
        report_format: Optional override (``"json"`` / ``"csv"``).
        write_quicklook: Optional override for PNG quicklooks.
        verbose: Enable debug-level logging.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        catalog: Optional[SceneCatalog] = None,
        cloud_threshold: Optional[float] = None,
        report_format: Optional[str] = None,
        write_quicklook: Optional[bool] = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(input_path=input_path, output_path=output_path, verbose=verbose)
        self.catalog = catalog
        self.config: RunConfig | None = None
        self._overrides = {
            "cloud_threshold": cloud_threshold,
            "report_format": report_format,
            "write_quicklook": write_quicklook,
        }
        self._results: Dict[str, EpochResult] = {}
        self._reports: List[QualityReport] = []
        self._outputs: Dict[str, Path] = {}

    # ------------------------------------------------------------------
    # GeoTool interface
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Load and validate the run configuration; prepare the output directory.

        Raises:
            InputValidationError: On a missing or malformed config.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_file_exists(self.input_path)
        Validators.assert_supported_extension(self.input_path, [".json"])

        config = load_config(self.input_path)
        for key, value in self._overrides.items():
            if value is not None:
                setattr(config, key, value.lower() if isinstance(value, str) else value)
        config.validate()
        self.config = config

        Validators.assert_output_dir_writable(self.output_path)
        logger.info(
            "Configuration validated — AOI %s, %d epoch(s), cloud < %g%%.",
            config.aoi.label, len(config.epochs), config.cloud_threshold,
        )

    def process(self) -> None:
        """Fetch scenes, composite every epoch, summarise, and write outputs."""
        assert self.config is not None, "Call validate_inputs() first."
        cfg = self.config

        catalog = self.catalog
        if catalog is None:
            catalog = PlanetaryComputerCatalog(
                platforms=cfg.platforms,
                resolution=cfg.resolution,
                max_cloud_cover=cfg.cloud_threshold,
            )
        start, end = union_range(cfg.epochs)
        scenes = catalog.fetch_scenes(cfg.aoi, start, end)
        logger.info("Catalog returned %d scene(s) for %s → %s.", len(scenes), start, end)
        # with no scenes the grid must still honour the configured resolution
        grid = None if scenes else PixelGrid.from_aoi(cfg.aoi, resolution=cfg.resolution)

        self._results = run_all_epochs(
            scenes,
            cfg.aoi,
            cfg.epochs,
            cfg.cloud_threshold,
            grid=grid,
            max_workers=cfg.max_workers,
        )
        self._reports = [
            build_report(result, cfg.aoi, cfg.stats_band, cfg.percentiles)
            for result in self._results.values()
        ]
        self._write_outputs()

    def summary_lines(self) -> list[str]:
        return [str(r) for r in self._reports]

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def _write_outputs(self) -> None:
        assert self.config is not None
        cfg = self.config
        study = safe_filename(cfg.aoi.label)
        writer = CompositeWriter(self.output_path, study_name=study)
        outputs: Dict[str, Path] = {}

        for label, result in self._results.items():
            composite = result.composite
            if cfg.write_geotiff:
                outputs[f"{label}:geotiff"] = writer.write_geotiff(composite)
            if cfg.write_quicklook:
                png = writer.path_for(composite, "_truecolor.png")
                outputs[f"{label}:quicklook"] = save_true_color_png(composite, png)

        report_path = self.output_path / f"{study}_quality.{cfg.report_format}"
        outputs["report"] = write_report(self._reports, report_path, cfg.report_format)
        self._outputs = outputs
        logger.info("Wrote %d output file(s) to '%s'.", len(outputs), self.output_path)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def results(self) -> Dict[str, EpochResult]:
        """``{epoch label: EpochResult}`` from the last run, or ``{}``."""
        return self._results

    @property
    def reports(self) -> List[QualityReport]:
        """Quality reports from the last run, in epoch order, or ``[]``."""
        return self._reports

    @property
    def outputs(self) -> Dict[str, Path]:
        """Paths written by the last run, keyed ``"<label>:<kind>"`` plus ``"report"``."""
        return self._outputs
