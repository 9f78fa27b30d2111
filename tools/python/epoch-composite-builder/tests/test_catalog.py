"""
Tests — Scene catalogs
======================
Runs offline: the Planetary Computer catalog is exercised through
:meth:`scenes_from_stack` with a synthetic stackstac-shaped DataArray and
through a stub STAC client for the retry loop.
"""

from __future__ import annotations

from datetime import date

import numpy as np
import pytest
import xarray as xr
from pystac_client.exceptions import APIError
from rasterio.transform import from_origin

from epoch_composite.catalog import InMemoryCatalog, PlanetaryComputerCatalog
from shared.python.exceptions import CatalogError, InputValidationError


def _stack(assets: list[str], n_time: int = 2) -> xr.DataArray:
    """A ``(time, band, y, x)`` array shaped like ``stackstac.stack`` output."""
    data = np.full((n_time, len(assets), 4, 5), 10000.0, dtype=np.float32)
    if "qa_pixel" in assets:
        data[:, assets.index("qa_pixel")] = 21824.0   # clear, low confidence cloud
        data[1, assets.index("qa_pixel"), 0, 0] = np.nan
    if "qa_radsat" in assets:
        data[:, assets.index("qa_radsat")] = 0.0
    return xr.DataArray(
        data,
        dims=("time", "band", "y", "x"),
        coords={
            "time": np.array(["2020-07-01T07:45:00", "2020-07-17T07:45:00"][:n_time], dtype="datetime64[ns]"),
            "band": assets,
            "id": ("time", ["LC08_A", "LC08_B"][:n_time]),
        },
        attrs={"crs": "epsg:32737", "transform": from_origin(250000, 9850000, 30, 30)},
    )


class TestInMemoryCatalog:
    def test_date_window_inclusive(self, make_scene, aoi) -> None:
        catalog = InMemoryCatalog([
            make_scene("a", acquired="2020-05-31"),
            make_scene("b", acquired="2020-06-01"),
            make_scene("c", acquired="2020-12-31"),
        ])
        found = catalog.fetch_scenes(aoi, date(2020, 6, 1), date(2020, 12, 31))
        assert [s.scene_id for s in found] == ["b", "c"]
        assert len(catalog) == 3


class TestScenesFromStack:
    def test_split_per_time_step(self) -> None:
        stack = _stack(["red", "lwir11", "qa_pixel", "qa_radsat"])
        scenes = PlanetaryComputerCatalog.scenes_from_stack(stack, {"LC08_A": 3.5})

        assert [s.scene_id for s in scenes] == ["LC08_A", "LC08_B"]
        assert scenes[0].cloud_cover == 3.5
        # missing metadata counts as fully cloudy
        assert scenes[1].cloud_cover == 100.0
        assert scenes[0].band_names == ("SR_B4", "ST_B10")
        assert scenes[0].acquired_date == date(2020, 7, 1)
        assert scenes[0].grid.shape == (4, 5)
        assert scenes[0].grid.crs == "EPSG:32737"

    def test_missing_qa_becomes_fill(self) -> None:
        scenes = PlanetaryComputerCatalog.scenes_from_stack(
            _stack(["red", "qa_pixel", "qa_radsat"]), {}
        )
        assert scenes[1].qa_pixel[0, 0] & 1
        assert scenes[1].qa_pixel[1, 1] == 21824

    def test_stack_without_qa_rejected(self) -> None:
        with pytest.raises(CatalogError, match="qa_pixel"):
            PlanetaryComputerCatalog.scenes_from_stack(_stack(["red", "qa_radsat"]), {})


class _FlakySearch:
    def __init__(self, items) -> None:
        self._items = items

    def items(self):
        return iter(self._items)


class _FlakyClient:
    """Fails *failures* times, then returns *items*."""

    def __init__(self, failures: int, items) -> None:
        self.failures = failures
        self.items = items
        self.calls = 0

    def search(self, **kwargs):
        self.calls += 1
        self.last_kwargs = kwargs
        if self.calls <= self.failures:
            raise APIError("503 Service Unavailable")
        return _FlakySearch(self.items)


class TestPlanetaryComputerSearch:
    def test_retries_then_succeeds(self, aoi) -> None:
        catalog = PlanetaryComputerCatalog(platforms=("landsat-8", "landsat-9"), retry_delay=0.0)
        client = _FlakyClient(failures=2, items=["item-1"])
        catalog._client = client

        items = catalog.search_items(aoi, date(2020, 6, 1), date(2020, 12, 31))
        assert items == ["item-1"]
        assert client.calls == 3
        assert client.last_kwargs["collections"] == ["landsat-c2-l2"]
        assert client.last_kwargs["datetime"] == "2020-06-01/2020-12-31"
        assert client.last_kwargs["query"] == {"platform": {"in": ["landsat-8", "landsat-9"]}}

    def test_gives_up(self, aoi) -> None:
        catalog = PlanetaryComputerCatalog(max_retries=2, retry_delay=0.0)
        catalog._client = _FlakyClient(failures=5, items=[])
        with pytest.raises(CatalogError, match="503"):
            catalog.search_items(aoi, date(2020, 6, 1), date(2020, 12, 31))

    def test_cloud_prefilter_in_query(self, aoi) -> None:
        catalog = PlanetaryComputerCatalog(max_cloud_cover=20, retry_delay=0.0)
        client = _FlakyClient(failures=0, items=[])
        catalog._client = client
        catalog.search_items(aoi, date(2020, 6, 1), date(2020, 12, 31))
        assert client.last_kwargs["query"]["eo:cloud_cover"] == {"lt": 20}

    def test_no_items_returns_empty(self, aoi) -> None:
        catalog = PlanetaryComputerCatalog(retry_delay=0.0)
        catalog._client = _FlakyClient(failures=0, items=[])
        assert catalog.fetch_scenes(aoi, date(2020, 6, 1), date(2020, 12, 31)) == []

    def test_bad_arguments(self) -> None:
        with pytest.raises(InputValidationError):
            PlanetaryComputerCatalog(platforms=())
        with pytest.raises(InputValidationError):
            PlanetaryComputerCatalog(max_retries=0)
