"""
Tests for aquaculture_atlas.workflow module.

Tests cover:
- Per-species scoring on the synthetic West Coast grid
- Narrower tolerance windows never increase suitable area
- Inputs are reusable across species (not mutated)
- Misaligned depth grids are resampled, not rejected
- Outputs (CSV, Parquet, markdown, map, sidecar) and their determinism
- Building SST/depth layers from raw Kelvin and elevation rasters
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import json

import numpy as np
import pandas as pd
import pytest

from aquaculture_atlas.cell_area import cell_areas_km2
from aquaculture_atlas.config import ConfigurationError, SpeciesBounds
from aquaculture_atlas.io_utils import atomic_write_geoparquet
from aquaculture_atlas.raster import grids_match, write_raster
from aquaculture_atlas.workflow import (
    DEPTH_LAYER_NAME,
    SST_LAYER_NAME,
    build_environment_layers,
    load_prepared_inputs,
    run_species_workflow,
    score_species,
    sst_paths_from_params,
    suitable_area,
    write_species_outputs,
)


class TestScoreSpecies:
    """Tests for score_species()."""

    def test_oyster_areas(self, oyster, sst_layer, depth_layer, zones):
        """Oyster: SST 12..28 (rows 0-8), depth 0..60 (cols 0-3), minus the land cell."""
        result = score_species(oyster, sst_layer, depth_layer, zones)

        expected_mask = np.zeros((10, 10), dtype=np.uint8)
        expected_mask[0:9, 0:4] = 1
        expected_mask[0, 0] = 0
        np.testing.assert_array_equal(result.mask.data, expected_mask)

        expected_km2 = cell_areas_km2(sst_layer)[expected_mask.astype(bool)].sum()
        areas = result.areas()
        assert set(areas) == {"1", "2"}
        assert areas["1"] == pytest.approx(expected_km2, rel=1e-9)
        assert areas["2"] == 0.0
        assert result.total_suitable_area_km2 == pytest.approx(expected_km2, rel=1e-9)

    def test_table_layout(self, oyster, sst_layer, depth_layer, zones):
        result = score_species(oyster, sst_layer, depth_layer, zones)
        assert list(result.table.columns) == [
            "species", "zone_id", "zone_name", "suitable_area_km2", "zone_area_km2", "pct_suitable"
        ]
        assert (result.table["species"] == "oyster").all()
        assert len(result.table) == len(zones)

    def test_narrower_temperature_window_never_larger(self, sst_layer, depth_layer, zones):
        """Same depth window, lobster's SST window inside oyster's."""
        oyster = SpeciesBounds("oyster", 0, 70, 11, 30)
        lobster = SpeciesBounds("lobster", 0, 70, 23.7, 28)

        oyster_areas = score_species(oyster, sst_layer, depth_layer, zones).areas()
        lobster_areas = score_species(lobster, sst_layer, depth_layer, zones).areas()

        for zone_id in oyster_areas:
            assert lobster_areas[zone_id] <= oyster_areas[zone_id]
        assert lobster_areas["1"] > 0

    @pytest.mark.parametrize("inner,outer", [
        ((20, 60, 14, 22), (0, 100, 12, 26)),
        ((0, 0, 10, 28), (0, 20, 10, 28)),
        ((40, 180, 10, 10), (0, 180, 10, 28)),
    ])
    def test_nested_windows_monotone(self, inner, outer, sst_layer, depth_layer, zones):
        small = score_species(SpeciesBounds("inner", *inner), sst_layer, depth_layer, zones)
        large = score_species(SpeciesBounds("outer", *outer), sst_layer, depth_layer, zones)
        assert (small.table["suitable_area_km2"].to_numpy()
                <= large.table["suitable_area_km2"].to_numpy()).all()
        assert small.total_suitable_area_km2 <= large.total_suitable_area_km2

    def test_inputs_not_mutated(self, oyster, lobster, sst_layer, depth_layer, zones):
        sst_before = sst_layer.data.copy()
        depth_before = depth_layer.data.copy()
        zones_before = zones.copy()

        first = score_species(oyster, sst_layer, depth_layer, zones)
        score_species(lobster, sst_layer, depth_layer, zones)
        again = score_species(oyster, sst_layer, depth_layer, zones)

        np.testing.assert_array_equal(sst_layer.data, sst_before)
        np.testing.assert_array_equal(depth_layer.data, depth_before)
        assert zones.geom_equals(zones_before).all()
        assert list(zones.columns) == list(zones_before.columns)
        pd.testing.assert_frame_equal(first.table, again.table)

    def test_depth_on_other_grid_is_aligned(self, oyster, sst_layer, make_layer, zones):
        # 1 degree depth grid: 0, 40, 80, 120, 160 m by column
        coarse = make_layer(np.repeat([[0.0, 40.0, 80.0, 120.0, 160.0]], 5, axis=0),
                            res=1.0, name="depth")
        result = score_species(oyster, sst_layer, coarse, zones)

        assert grids_match(result.mask, sst_layer)
        expected_mask = np.zeros((10, 10), dtype=np.uint8)
        expected_mask[0:9, 0:4] = 1
        np.testing.assert_array_equal(result.mask.data, expected_mask)

    def test_zones_in_other_crs(self, oyster, sst_layer, depth_layer, zones):
        direct = score_species(oyster, sst_layer, depth_layer, zones)
        reprojected = score_species(oyster, sst_layer, depth_layer, zones.to_crs("EPSG:3857"))
        np.testing.assert_allclose(reprojected.table["suitable_area_km2"],
                                   direct.table["suitable_area_km2"], rtol=1e-6)

    def test_no_suitable_cells(self, sst_layer, depth_layer, zones):
        bounds = SpeciesBounds("deep", 500, 1000, 0, 40)
        result = score_species(bounds, sst_layer, depth_layer, zones)
        assert result.total_suitable_area_km2 == 0.0
        assert result.table["suitable_area_km2"].tolist() == [0.0, 0.0]

    def test_empty_zones_raise(self, oyster, sst_layer, depth_layer, zones):
        with pytest.raises(ConfigurationError):
            score_species(oyster, sst_layer, depth_layer, zones.iloc[0:0])


class TestOutputs:
    """Tests for run_species_workflow() and write_species_outputs()."""

    def test_map_written(self, oyster, sst_layer, depth_layer, zones, tmp_path):
        map_path = run_species_workflow(oyster, sst_layer, depth_layer, zones, output_dir=tmp_path)

        assert map_path == tmp_path / "figures" / "oyster_suitable_area.png"
        assert map_path.exists()
        assert map_path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
        assert (tmp_path / "tables" / "oyster_suitable_area.csv").exists()
        assert (tmp_path / "tables" / "oyster_suitable_area.parquet").exists()
        assert (tmp_path / "reports" / "oyster_suitable_area.md").exists()

    def test_csv_is_deterministic(self, oyster, sst_layer, depth_layer, zones, tmp_path):
        run_species_workflow(oyster, sst_layer, depth_layer, zones, output_dir=tmp_path / "a")
        run_species_workflow(oyster, sst_layer, depth_layer, zones, output_dir=tmp_path / "b")

        first = (tmp_path / "a" / "tables" / "oyster_suitable_area.csv").read_bytes()
        second = (tmp_path / "b" / "tables" / "oyster_suitable_area.csv").read_bytes()
        assert first == second

    def test_csv_content(self, lobster, sst_layer, depth_layer, zones, tmp_path):
        run_species_workflow(lobster, sst_layer, depth_layer, zones, output_dir=tmp_path)
        table = pd.read_csv(tmp_path / "tables" / "lobster_suitable_area.csv", dtype={"zone_id": str})
        assert table["zone_id"].tolist() == ["1", "2"]
        assert table["species"].unique().tolist() == ["lobster"]
        assert (table["suitable_area_km2"] <= table["zone_area_km2"]).all()

    def test_sidecar_records_bounds(self, oyster, sst_layer, depth_layer, zones, tmp_path):
        result = score_species(oyster, sst_layer, depth_layer, zones)
        outputs = write_species_outputs(
            result, zones,
            tables_dir=tmp_path, figures_dir=tmp_path, reports_dir=tmp_path,
            run_id="test_run",
        )
        metadata = json.loads(outputs["metadata"].read_text())
        assert metadata["run_id"] == "test_run"
        assert metadata["parameters"]["max_temp"] == 30
        assert metadata["extra"]["boundary_rule"] == "fractional"
        assert metadata["output_hash"]

    def test_markdown_lists_zones(self, oyster, sst_layer, depth_layer, zones, tmp_path):
        run_species_workflow(oyster, sst_layer, depth_layer, zones, output_dir=tmp_path)
        text = (tmp_path / "reports" / "oyster_suitable_area.md").read_text()
        assert "| West |" in text
        assert "| East |" in text
        assert "**Total**" in text


class TestSuitableArea:
    """Tests for the suitable_area() entry point."""

    def test_returns_map_path(self, sst_layer, depth_layer, zones, tmp_path):
        path = suitable_area("oyster", 0, 70, 11, 30, sst_layer, depth_layer, zones,
                             output_dir=tmp_path)
        assert path.exists()
        assert path.suffix == ".png"

    def test_invalid_bounds_raise(self, sst_layer, depth_layer, zones, tmp_path):
        with pytest.raises(ConfigurationError):
            suitable_area("oyster", 70, 0, 11, 30, sst_layer, depth_layer, zones,
                          output_dir=tmp_path)
        assert not (tmp_path / "figures").exists()


class TestBuildEnvironmentLayers:
    """Tests for build_environment_layers()."""

    def test_kelvin_mean_and_elevation(self, make_layer):
        year1 = make_layer(np.full((10, 10), 290.15), name="sst_2008")
        year2 = make_layer(np.full((10, 10), 292.15), name="sst_2009")
        elevation = make_layer(np.full((5, 5), -30.0), res=1.0, name="depth")

        sst, depth = build_environment_layers([year1, year2], elevation)

        assert sst.name == SST_LAYER_NAME
        assert depth.name == DEPTH_LAYER_NAME
        np.testing.assert_allclose(sst.data, 18.0)
        np.testing.assert_allclose(depth.data, 30.0)
        assert grids_match(sst, depth)

    def test_celsius_and_depth_conventions(self, sst_layer, depth_layer):
        sst, depth = build_environment_layers([sst_layer], depth_layer,
                                              sst_units="celsius", depth_convention="depth")
        np.testing.assert_array_equal(sst.data, sst_layer.data)
        np.testing.assert_array_equal(depth.data, depth_layer.data)

    def test_requires_sst(self, depth_layer):
        with pytest.raises(ValueError, match="SST"):
            build_environment_layers([], depth_layer)


class TestInputDiscovery:
    """Tests for sst_paths_from_params() and load_prepared_inputs()."""

    def test_sst_glob(self, tmp_path):
        for year in (2009, 2008, 2010):
            (tmp_path / f"average_annual_sst_{year}.tif").touch()
        (tmp_path / "notes.txt").touch()
        params = {"inputs": {"sst": str(tmp_path)},
                  "sst": {"pattern": "average_annual_sst_*.tif"}}

        files = sst_paths_from_params(params)
        assert [f.name for f in files] == [
            "average_annual_sst_2008.tif", "average_annual_sst_2009.tif", "average_annual_sst_2010.tif"
        ]

    def test_sst_list(self, tmp_path):
        params = {"inputs": {"sst": [str(tmp_path / "a.tif"), str(tmp_path / "b.tif")]}}
        assert sst_paths_from_params(params) == [tmp_path / "a.tif", tmp_path / "b.tif"]

    def test_empty_sst_directory_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            sst_paths_from_params({"inputs": {"sst": str(tmp_path)}})

    def test_load_prepared_inputs(self, sst_layer, depth_layer, zones, tmp_path):
        write_raster(tmp_path / f"{SST_LAYER_NAME}.tif", sst_layer)
        write_raster(tmp_path / f"{DEPTH_LAYER_NAME}.tif", depth_layer)
        atomic_write_geoparquet(tmp_path / "zones.parquet", zones)

        sst, depth, loaded = load_prepared_inputs(tmp_path, tmp_path / "zones.parquet")
        assert grids_match(sst, depth)
        assert loaded["zone_id"].tolist() == ["1", "2"]
        assert loaded.crs.to_epsg() == 4326


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
