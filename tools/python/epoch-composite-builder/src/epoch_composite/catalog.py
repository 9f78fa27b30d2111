"""
catalog.py
==========
Scene catalogs the composite builder can draw from.

``SceneCatalog`` is the single lookup the builder needs:
``fetch_scenes(aoi, start, end) -> list[Scene]``.

Implementations
---------------
InMemoryCatalog           -- scenes already loaded in memory (tests, notebooks)
PlanetaryComputerCatalog  -- Landsat Collection 2 Level-2 from Microsoft
                             Planetary Computer via STAC, streamed with
                             stackstac onto the AOI's UTM grid

The catalog is the only I/O boundary in the tool; retries live here and
nowhere else.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import numpy as np
import xarray as xr

from shared.python.exceptions import CatalogError, InputValidationError

from epoch_composite.aoi import AreaOfInterest
from epoch_composite.grid import DEFAULT_RESOLUTION, PixelGrid
from epoch_composite.scene import Scene

logger = logging.getLogger("geoscripthub.epoch_composite.catalog")

PLANETARY_COMPUTER_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"
LANDSAT_COLLECTION = "landsat-c2-l2"

# Planetary Computer asset key -> Collection 2 band name
ASSET_BANDS: Dict[str, str] = {
    "coastal": "SR_B1",
    "blue": "SR_B2",
    "green": "SR_B3",
    "red": "SR_B4",
    "nir08": "SR_B5",
    "swir16": "SR_B6",
    "swir22": "SR_B7",
    "lwir11": "ST_B10",
    "qa_pixel": "QA_PIXEL",
    "qa_radsat": "QA_RADSAT",
}

# QA_PIXEL bit 0 marks fill; used where the stack has no data
_QA_FILL = 1


class SceneCatalog(Protocol):
    """Anything that can look up scenes for an AOI and date range."""

    def fetch_scenes(self, aoi: AreaOfInterest, start: date, end: date) -> List[Scene]:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryCatalog:
    """Serve pre-built scenes, filtered by acquisition date (inclusive)."""

    def __init__(self, scenes: Sequence[Scene]) -> None:
        self._scenes = tuple(scenes)

    def fetch_scenes(self, aoi: AreaOfInterest, start: date, end: date) -> List[Scene]:
        return [s for s in self._scenes if start <= s.acquired_date <= end]

    def __len__(self) -> int:
        return len(self._scenes)


# ---------------------------------------------------------------------------
# Microsoft Planetary Computer
# ---------------------------------------------------------------------------


class PlanetaryComputerCatalog:
    """Stream Landsat C2 L2 scenes from Microsoft Planetary Computer.

    Parameters
    ----------
    platforms:
        STAC ``platform`` values to include, e.g. ``("landsat-8",)`` or
        ``("landsat-8", "landsat-9")``.
    resolution:
        Output pixel size in metres on the AOI's UTM grid.
    max_cloud_cover:
        Optional server-side pre-filter on ``eo:cloud_cover``.  The
        composite builder applies its own threshold regardless.
    max_retries:
        STAC search attempts before giving up.
    retry_delay:
        Seconds to wait between attempts.
    chunk_size:
        Dask chunk size in pixels for x and y.
    """

    name = "planetary-computer"

    def __init__(
        self,
        platforms: Sequence[str] = ("landsat-8",),
        resolution: float = DEFAULT_RESOLUTION,
        max_cloud_cover: Optional[float] = None,
        max_retries: int = 3,
        retry_delay: float = 5.0,
        chunk_size: int = 1024,
    ) -> None:
        if not platforms:
            raise InputValidationError("At least one Landsat platform must be given.")
        if max_retries < 1:
            raise InputValidationError(f"max_retries must be >= 1, got {max_retries}.")
        self.platforms = tuple(platforms)
        self.resolution = resolution
        self.max_cloud_cover = max_cloud_cover
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.chunk_size = chunk_size
        self._client = None

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def fetch_scenes(self, aoi: AreaOfInterest, start: date, end: date) -> List[Scene]:
        """Search, stack and materialise every scene covering *aoi* in [start, end]."""
        items = self.search_items(aoi, start, end)
        if not items:
            logger.warning(
                "No %s scenes found for %s between %s and %s.",
                LANDSAT_COLLECTION, aoi.label, start, end,
            )
            return []

        import stackstac  # noqa: PLC0415

        grid = PixelGrid.from_aoi(aoi, resolution=self.resolution)
        epsg = aoi.utm_crs().to_epsg()
        try:
            stack = stackstac.stack(
                items,
                assets=list(ASSET_BANDS),
                epsg=epsg,
                resolution=self.resolution,
                bounds=grid.bounds,
                dtype="float32",  # type: ignore[arg-type]
                fill_value=np.float32("nan"),  # type: ignore[arg-type]
                rescale=False,   # scaling is applied per band in landsat.py
                chunksize={"x": self.chunk_size, "y": self.chunk_size},  # type: ignore[arg-type]
            )
        except (ValueError, KeyError) as exc:
            raise CatalogError(self.name, f"could not stack {len(items)} item(s): {exc}") from exc

        cloud = {
            item.id: float(item.properties.get("eo:cloud_cover", 100.0))
            for item in items
        }
        t, h, w = stack.sizes["time"], stack.sizes["y"], stack.sizes["x"]
        logger.info("Stacked %d scene(s) at %gm → %dx%d px.", t, self.resolution, h, w)
        return self.scenes_from_stack(stack, cloud)

    def search_items(self, aoi: AreaOfInterest, start: date, end: date) -> list:
        """STAC search with retry.

        Raises:
            CatalogError: When every attempt fails.
        """
        from pystac_client.exceptions import APIError  # noqa: PLC0415

        query: Dict[str, dict] = {"platform": {"in": list(self.platforms)}}
        if self.max_cloud_cover is not None:
            query["eo:cloud_cover"] = {"lt": self.max_cloud_cover}

        for attempt in range(1, self.max_retries + 1):
            try:
                search = self._catalog().search(
                    collections=[LANDSAT_COLLECTION],
                    bbox=aoi.bounds,
                    datetime=f"{start.isoformat()}/{end.isoformat()}",
                    query=query,
                )
                items = list(search.items())
                logger.info(
                    "Found %d %s item(s) for %s (%s → %s).",
                    len(items), "/".join(self.platforms), aoi.label, start, end,
                )
                return items
            except (APIError, OSError) as exc:
                logger.warning("STAC search attempt %d/%d failed: %s", attempt, self.max_retries, exc)
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)
                else:
                    raise CatalogError(self.name, str(exc)) from exc

        return []  # unreachable but satisfies mypy

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _catalog(self):
        """Open the STAC client once; ``sign_inplace`` adds SAS tokens to asset hrefs."""
        if self._client is None:
            import planetary_computer  # noqa: PLC0415
            import pystac_client  # noqa: PLC0415

            self._client = pystac_client.Client.open(
                PLANETARY_COMPUTER_URL,
                modifier=planetary_computer.sign_inplace,
            )
        return self._client

    @staticmethod
    def scenes_from_stack(
        stack: xr.DataArray,
        cloud_cover: Mapping[str, float],
    ) -> List[Scene]:
        """Split a ``(time, band, y, x)`` stack into one :class:`Scene` per time step.

        The stack's ``band`` coordinate holds Planetary Computer asset keys;
        its ``attrs`` carry ``crs`` and ``transform`` as stackstac sets them.
        Missing QA data is treated as fill so those pixels are masked.
        """
        grid = PixelGrid(
            crs=str(stack.attrs["crs"]),
            transform=stack.attrs["transform"],
            height=int(stack.sizes["y"]),
            width=int(stack.sizes["x"]),
        )
        asset_keys = [str(b) for b in stack["band"].values]
        missing_qa = {"qa_pixel", "qa_radsat"} - set(asset_keys)
        if missing_qa:
            raise CatalogError(
                PlanetaryComputerCatalog.name,
                f"stack lacks QA asset(s): {', '.join(sorted(missing_qa))}",
            )

        scenes: List[Scene] = []
        for i in range(stack.sizes["time"]):
            layer = stack.isel(time=i)
            values = np.asarray(layer.values, dtype=np.float32)
            planes = dict(zip(asset_keys, values))

            scene_id = str(layer["id"].values) if "id" in layer.coords else f"scene-{i}"
            acquired = np.datetime64(layer["time"].values, "us").astype(object)

            qa_pixel = np.where(np.isnan(planes["qa_pixel"]), _QA_FILL, planes["qa_pixel"])
            qa_radsat = np.nan_to_num(planes["qa_radsat"], nan=0.0)
            bands = {
                ASSET_BANDS.get(key, key): arr
                for key, arr in planes.items()
                if key not in ("qa_pixel", "qa_radsat")
            }

            scenes.append(Scene(
                scene_id=scene_id,
                acquired=acquired,
                cloud_cover=float(cloud_cover.get(scene_id, 100.0)),
                qa_pixel=qa_pixel.astype(np.uint16),
                qa_radsat=qa_radsat.astype(np.uint16),
                bands=bands,
                grid=grid,
            ))
        return scenes
