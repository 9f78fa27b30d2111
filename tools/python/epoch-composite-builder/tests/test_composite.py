"""
Tests — Median compositing
==========================
Behaviour of :func:`~epoch_composite.composite.build_composite` and
:func:`~epoch_composite.composite.run_all_epochs` on synthetic scenes.
"""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest
from rasterio.transform import from_origin

from epoch_composite.composite import (
    band_layout,
    build_composite,
    filter_scenes,
    resolve_grid,
    run_all_epochs,
)
from epoch_composite.epochs import Epoch
from epoch_composite.grid import PixelGrid
from epoch_composite.landsat import DEFAULT_BANDS
from shared.python.exceptions import BandNotFoundError, EpochConfigError, InputValidationError

EPOCH = Epoch("2020-dry", "2020-06-01", "2020-12-31")
CLOUD = 0b1000


def _cloud_outside(cols: slice) -> np.ndarray:
    """QA array that is cloudy everywhere except columns *cols*."""
    qa = np.full((10, 10), CLOUD, dtype=np.uint16)
    qa[:, cols] = 0
    return qa


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFilterScenes:
    def test_date_bounds_inclusive(self, make_scene) -> None:
        scenes = [
            make_scene("before", acquired="2020-05-31"),
            make_scene("first", acquired="2020-06-01"),
            make_scene("last", acquired="2020-12-31T23:00:00"),
            make_scene("after", acquired="2021-01-01"),
        ]
        kept = filter_scenes(scenes, EPOCH, 20.0)
        assert [s.scene_id for s in kept] == ["first", "last"]

    def test_cloud_threshold_is_strict(self, make_scene) -> None:
        scenes = [make_scene("under", cloud_cover=19.9), make_scene("at", cloud_cover=20.0)]
        assert [s.scene_id for s in filter_scenes(scenes, EPOCH, 20.0)] == ["under"]

    def test_sorted_by_acquisition(self, make_scene) -> None:
        scenes = [make_scene("b", acquired="2020-08-01"), make_scene("a", acquired="2020-07-01")]
        assert [s.scene_id for s in filter_scenes(scenes, EPOCH)] == ["a", "b"]


# ---------------------------------------------------------------------------
# Compositing
# ---------------------------------------------------------------------------


class TestBuildComposite:
    def test_median_of_three(self, make_scene, aoi) -> None:
        scenes = [
            make_scene("s1", acquired="2020-07-01", reflectance=0.10, kelvin=295.0),
            make_scene("s2", acquired="2020-08-01", reflectance=0.30, kelvin=305.0),
            make_scene("s3", acquired="2020-09-01", reflectance=0.20, kelvin=300.0),
        ]
        comp = build_composite(scenes, aoi, EPOCH, 20.0)

        assert comp.scene_count == 3
        assert comp.scene_ids == ("s1", "s2", "s3")
        np.testing.assert_allclose(comp.band("SR_B4"), 0.20, atol=1e-4)
        np.testing.assert_allclose(comp.band("ST_B10"), 300.0, atol=1e-2)
        assert comp.data.dtype == np.float32
        assert comp.data.dims == ("band", "y", "x")

    def test_even_count_median_averages(self, make_scene, aoi) -> None:
        scenes = [
            make_scene("s1", reflectance=0.10),
            make_scene("s2", acquired="2020-07-02", reflectance=0.20),
        ]
        comp = build_composite(scenes, aoi, EPOCH)
        np.testing.assert_allclose(comp.band("SR_B4"), 0.15, atol=1e-4)

    def test_metadata_attached(self, make_scene, aoi) -> None:
        comp = build_composite([make_scene("s1")], aoi, EPOCH, 15.0)
        assert comp.label == "2020-dry"
        assert comp.year == 2020
        assert comp.data.attrs["label"] == "2020-dry"
        assert comp.data.attrs["year"] == 2020
        assert comp.data.attrs["scene_count"] == 1
        assert comp.data.attrs["cloud_threshold"] == 15.0
        assert comp.cloud_threshold == 15.0

    def test_cloudy_scene_excluded(self, make_scene, aoi) -> None:
        clear = make_scene("clear", cloud_cover=5.0, reflectance=0.1)
        cloudy = make_scene("cloudy", acquired="2020-07-02", cloud_cover=20.0, reflectance=0.9)
        with_cloudy = build_composite([clear, cloudy], aoi, EPOCH, 20.0)
        without = build_composite([clear], aoi, EPOCH, 20.0)

        np.testing.assert_array_equal(with_cloudy.data.values, without.data.values)
        assert with_cloudy.scene_count == 1

    def test_fully_masked_pixels_are_nan_not_zero(self, make_scene, aoi) -> None:
        qa = np.zeros((10, 10), dtype=np.uint16)
        qa[3, 4] = CLOUD
        scenes = [
            make_scene("s1", qa=qa),
            make_scene("s2", acquired="2020-07-15", qa=qa),
        ]
        comp = build_composite(scenes, aoi, EPOCH)

        assert np.isnan(comp.data.values[:, 3, 4]).all()
        assert not np.isnan(comp.data.values[:, 3, 3]).any()
        assert not comp.valid_mask()[3, 4]

    def test_masked_observation_skipped_in_median(self, make_scene, aoi) -> None:
        qa = np.zeros((10, 10), dtype=np.uint16)
        qa[0, 0] = CLOUD
        scenes = [
            make_scene("s1", reflectance=0.1),
            make_scene("s2", acquired="2020-07-02", reflectance=0.2),
            make_scene("s3", acquired="2020-07-03", reflectance=0.9, qa=qa),
        ]
        comp = build_composite(scenes, aoi, EPOCH)
        band = comp.band("SR_B4")
        assert band[0, 0] == pytest.approx(0.15, abs=1e-4)
        assert band[5, 5] == pytest.approx(0.2, abs=1e-4)

    def test_pixels_outside_aoi_invalid(self, make_scene, west_half_aoi) -> None:
        comp = build_composite([make_scene("s1")], west_half_aoi, EPOCH)
        assert comp.valid_mask()[:, :5].all()
        assert not comp.valid_mask()[:, 5:].any()

    def test_idempotent(self, make_scene, aoi) -> None:
        scenes = [
            make_scene("s1", reflectance=0.12),
            make_scene("s2", acquired="2020-07-20", reflectance=0.18),
        ]
        first = build_composite(scenes, aoi, EPOCH)
        second = build_composite(scenes, aoi, EPOCH)
        np.testing.assert_array_equal(first.data.values, second.data.values)
        assert first.scene_ids == second.scene_ids

    def test_order_independent(self, make_scene, aoi) -> None:
        rng = np.random.default_rng(7)
        scenes = [
            make_scene(f"s{i}", acquired=f"2020-07-{i + 1:02d}", reflectance=rng.uniform(0.0, 0.4, (10, 10)))
            for i in range(5)
        ]
        forward = build_composite(scenes, aoi, EPOCH)
        backward = build_composite(list(reversed(scenes)), aoi, EPOCH)
        np.testing.assert_array_equal(forward.data.values, backward.data.values)

    def test_band_union_across_scenes(self, make_scene, aoi, grid) -> None:
        extra = make_scene("s2", acquired="2020-07-02")
        only_red = make_scene("s1", bands={"SR_B4": np.full(grid.shape, 10000.0, dtype=np.float32)})
        comp = build_composite([only_red, extra], aoi, EPOCH)
        assert comp.band_names == ["SR_B2", "SR_B3", "SR_B4", "ST_B10"]
        # ST_B10 comes from s2 alone
        np.testing.assert_allclose(comp.band("ST_B10"), 300.0, atol=1e-2)

    def test_band_order_independent_of_scene_order(self, make_scene, aoi, grid) -> None:
        extra = make_scene("s2", acquired="2020-07-02")
        odd = make_scene("s1", bands={
            "QA_AEROSOL": np.zeros(grid.shape, dtype=np.float32),
            "SR_B5": np.full(grid.shape, 20000.0, dtype=np.float32),
        })
        forward = build_composite([odd, extra], aoi, EPOCH)
        backward = build_composite([extra, odd], aoi, EPOCH)
        assert forward.band_names == ["SR_B2", "SR_B3", "SR_B4", "SR_B5", "ST_B10", "QA_AEROSOL"]
        assert backward.band_names == forward.band_names
        np.testing.assert_array_equal(forward.data.values, backward.data.values)

    def test_numpy_scalar_threshold(self, make_scene, aoi) -> None:
        scenes = [make_scene("under", cloud_cover=19.0), make_scene("at", acquired="2020-07-02", cloud_cover=20.0)]
        comp = build_composite(scenes, aoi, EPOCH, np.float32(20))
        assert comp.scene_count == 1
        assert comp.cloud_threshold == 20.0

    def test_unknown_band(self, make_scene, aoi) -> None:
        comp = build_composite([make_scene("s1")], aoi, EPOCH)
        with pytest.raises(BandNotFoundError):
            comp.band("SR_B9")

    @pytest.mark.parametrize("threshold", [0, -5, 101, True])
    def test_bad_threshold(self, make_scene, aoi, threshold) -> None:
        with pytest.raises(InputValidationError):
            build_composite([make_scene("s1")], aoi, EPOCH, threshold)


class TestScenarios:
    def test_disjoint_clear_footprints_union(self, make_scene, aoi) -> None:
        """Three scenes, each clear over a different strip; last strip never clear."""
        scenes = [
            make_scene("a", acquired="2020-07-01", reflectance=0.1, qa=_cloud_outside(slice(0, 3))),
            make_scene("b", acquired="2020-08-01", reflectance=0.2, qa=_cloud_outside(slice(3, 6))),
            make_scene("c", acquired="2020-09-01", reflectance=0.3, qa=_cloud_outside(slice(6, 8))),
        ]
        comp = build_composite(scenes, aoi, EPOCH, 20.0)
        red = comp.band("SR_B4")

        np.testing.assert_allclose(red[:, 0:3], 0.1, atol=1e-4)
        np.testing.assert_allclose(red[:, 3:6], 0.2, atol=1e-4)
        np.testing.assert_allclose(red[:, 6:8], 0.3, atol=1e-4)
        assert np.isnan(red[:, 8:]).all()
        assert comp.valid_fraction == pytest.approx(0.8)

    def test_all_scenes_overcast(self, make_scene, aoi) -> None:
        scenes = [
            make_scene("a", cloud_cover=100.0),
            make_scene("b", acquired="2020-08-01", cloud_cover=100.0),
        ]
        comp = build_composite(scenes, aoi, EPOCH, 20.0)
        assert comp.scene_count == 0
        assert comp.is_empty
        assert np.isnan(comp.data.values).all()
        assert comp.grid == scenes[0].grid

    def test_no_scenes_at_all(self, aoi) -> None:
        comp = build_composite([], aoi, EPOCH)
        assert comp.scene_count == 0
        assert comp.is_empty
        assert tuple(comp.band_names) == DEFAULT_BANDS
        assert comp.grid.crs == "EPSG:32737"


# ---------------------------------------------------------------------------
# Grid / band helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_mismatched_grids_rejected(self, make_scene, aoi, grid) -> None:
        moved = PixelGrid(grid.crs, from_origin(36.01, -1.0, 0.01, 0.01), 10, 10)
        a = make_scene("a")
        b = replace(make_scene("b"), grid=moved)
        with pytest.raises(InputValidationError, match="share one pixel grid"):
            resolve_grid([a, b], aoi)

    def test_explicit_grid_wins(self, make_scene, aoi, grid) -> None:
        assert resolve_grid([make_scene("a")], aoi, grid) is grid

    def test_band_layout_default(self) -> None:
        assert band_layout([]) == DEFAULT_BANDS


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class TestRunAllEpochs:
    def test_overlapping_epochs_are_independent(self, make_scene, aoi) -> None:
        scenes = [
            make_scene("jun", acquired="2020-06-15", reflectance=0.1),
            make_scene("aug", acquired="2020-08-15", reflectance=0.2),
            make_scene("oct", acquired="2020-10-15", reflectance=0.3),
        ]
        epochs = [
            Epoch("jun-aug", "2020-06-01", "2020-08-31"),
            Epoch("aug-oct", "2020-08-01", "2020-10-31"),
        ]
        results = run_all_epochs(scenes, aoi, epochs, 20.0)

        assert list(results) == ["jun-aug", "aug-oct"]
        assert results["jun-aug"].scene_count == 2
        assert results["aug-oct"].scene_count == 2
        np.testing.assert_allclose(results["jun-aug"].composite.band("SR_B4"), 0.15, atol=1e-4)
        np.testing.assert_allclose(results["aug-oct"].composite.band("SR_B4"), 0.25, atol=1e-4)

        alone = build_composite(scenes, aoi, epochs[1], 20.0)
        np.testing.assert_array_equal(alone.data.values, results["aug-oct"].composite.data.values)

    def test_empty_epoch_reported(self, make_scene, aoi) -> None:
        epochs = [Epoch("2020", "2020-01-01", "2020-12-31"), Epoch("2019", "2019-01-01", "2019-12-31")]
        results = run_all_epochs([make_scene("s1")], aoi, epochs)
        assert results["2019"].scene_count == 0
        assert results["2019"].composite.is_empty
        assert results["2019"].composite.grid == results["2020"].composite.grid

    def test_parallel_matches_sequential(self, make_scene, aoi) -> None:
        scenes = [make_scene(f"s{m}", acquired=f"2020-{m:02d}-10", reflectance=m / 50) for m in range(1, 13)]
        epochs = [Epoch(f"Q{q}", f"2020-{3 * q - 2:02d}-01", f"2020-{3 * q:02d}-28") for q in range(1, 5)]
        seq = run_all_epochs(scenes, aoi, epochs)
        par = run_all_epochs(scenes, aoi, epochs, max_workers=4)
        assert list(seq) == list(par)
        for label in seq:
            np.testing.assert_array_equal(seq[label].composite.data.values, par[label].composite.data.values)

    def test_duplicate_labels_rejected(self, make_scene, aoi) -> None:
        with pytest.raises(EpochConfigError):
            run_all_epochs([make_scene("s1")], aoi, [EPOCH, EPOCH])

    def test_bad_worker_count(self, make_scene, aoi) -> None:
        with pytest.raises(InputValidationError):
            run_all_epochs([make_scene("s1")], aoi, [EPOCH], max_workers=0)
