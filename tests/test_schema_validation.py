"""
Tests for aquaculture_atlas.schemas module.

Tests cover:
- Schema definitions are complete
- Schema validation catches missing columns
- Schema validation catches type mismatches
- Schema validation catches null values in non-nullable columns
- GeoDataFrame validation of CRS and empty geometries
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pandas as pd
import numpy as np
import geopandas as gpd
from shapely.geometry import Polygon, box

from aquaculture_atlas.schemas import (
    SCHEMA_REGISTRY,
    SCHEMA_SUITABLE_AREA,
    SCHEMA_SPECIES_SUMMARY,
    SCHEMA_ZONES,
    TableSchema,
    ColumnSpec,
    validate_schema,
    validate_geodataframe,
    get_schema,
    register_schema,
    SchemaValidationError,
)


class TestSchemaRegistry:
    """Tests for schema registry completeness."""

    def test_registry_has_required_schemas(self):
        """Registry should contain all canonical output schemas."""
        for schema_name in ["zones", "suitable_area", "species_summary"]:
            assert schema_name in SCHEMA_REGISTRY, f"Missing schema: {schema_name}"

    def test_get_schema_returns_schema(self):
        assert isinstance(get_schema("suitable_area"), TableSchema)

    def test_get_schema_raises_on_unknown(self):
        """get_schema() should raise ValueError for unknown schemas."""
        with pytest.raises(ValueError, match="Unknown schema"):
            get_schema("nonexistent_schema")

    def test_register_schema(self):
        schema = TableSchema("scratch_test", "Scratch", [ColumnSpec("a", "float64")])
        register_schema(schema)
        try:
            assert get_schema("scratch_test") is schema
        finally:
            SCHEMA_REGISTRY.pop("scratch_test")


class TestSuitableAreaSchema:
    """Tests for the suitable_area schema."""

    @pytest.fixture
    def valid_area_df(self):
        return pd.DataFrame({
            "species": ["oyster", "oyster"],
            "zone_id": ["1", "2"],
            "zone_name": ["Central California", "Northern California"],
            "suitable_area_km2": [120.5, 0.0],
            "zone_area_km2": [200000.0, 150000.0],
            "pct_suitable": [0.06025, 0.0],
        })

    def test_schema_has_required_columns(self):
        expected = ["species", "zone_id", "zone_name", "suitable_area_km2",
                    "zone_area_km2", "pct_suitable"]
        assert SCHEMA_SUITABLE_AREA.all_columns() == expected

    def test_valid_dataframe_passes(self, valid_area_df):
        assert validate_schema(valid_area_df, SCHEMA_SUITABLE_AREA) == []

    def test_accepts_schema_by_name(self, valid_area_df):
        assert validate_schema(valid_area_df, "suitable_area") == []

    def test_missing_required_column_fails(self, valid_area_df):
        df = valid_area_df.drop(columns=["suitable_area_km2"])
        with pytest.raises(SchemaValidationError, match="Missing required column.*suitable_area_km2"):
            validate_schema(df, SCHEMA_SUITABLE_AREA)

    def test_area_must_be_float(self, valid_area_df):
        df = valid_area_df.copy()
        df["suitable_area_km2"] = df["suitable_area_km2"].astype(str)
        with pytest.raises(SchemaValidationError, match="dtype"):
            validate_schema(df, SCHEMA_SUITABLE_AREA)

    def test_null_area_fails(self, valid_area_df):
        df = valid_area_df.copy()
        df.loc[0, "suitable_area_km2"] = np.nan
        with pytest.raises(SchemaValidationError, match="null values"):
            validate_schema(df, SCHEMA_SUITABLE_AREA)

    def test_strict_rejects_extra_columns(self, valid_area_df):
        df = valid_area_df.assign(extra=1.0)
        assert validate_schema(df, SCHEMA_SUITABLE_AREA) == []
        with pytest.raises(SchemaValidationError, match="Unexpected columns"):
            validate_schema(df, SCHEMA_SUITABLE_AREA, strict=True)


class TestSpeciesSummarySchema:
    """Tests for the species_summary schema."""

    def test_valid_summary_passes(self):
        df = pd.DataFrame({
            "species": ["oyster"],
            "min_depth": [0.0],
            "max_depth": [70.0],
            "min_temp": [11.0],
            "max_temp": [30.0],
            "total_suitable_area_km2": [1500.0],
            "zone_suitable_area_km2": [1400.0],
        })
        assert validate_schema(df, SCHEMA_SPECIES_SUMMARY) == []


class TestValidateGeoDataFrame:
    """Tests for validate_geodataframe()."""

    @pytest.fixture
    def zones_gdf(self):
        return gpd.GeoDataFrame(
            {"zone_id": ["1", "2"], "zone_name": ["A", "B"]},
            geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)],
            crs="EPSG:4326",
        )

    def test_valid_zones_pass(self, zones_gdf):
        assert validate_geodataframe(zones_gdf, SCHEMA_ZONES) == []

    def test_crs_mismatch_fails(self, zones_gdf):
        with pytest.raises(SchemaValidationError, match="CRS mismatch"):
            validate_geodataframe(zones_gdf, SCHEMA_ZONES, expected_crs="EPSG:3857")

    def test_missing_crs_fails(self, zones_gdf):
        gdf = gpd.GeoDataFrame(zones_gdf.drop(columns="geometry"),
                               geometry=list(zones_gdf.geometry))
        with pytest.raises(SchemaValidationError, match="no CRS"):
            validate_geodataframe(gdf, SCHEMA_ZONES)

    def test_empty_geometry_fails(self, zones_gdf):
        gdf = zones_gdf.copy()
        gdf.loc[1, "geometry"] = Polygon()
        with pytest.raises(SchemaValidationError, match="empty geometries"):
            validate_geodataframe(gdf, SCHEMA_ZONES)

    def test_plain_dataframe_rejected(self):
        with pytest.raises(SchemaValidationError, match="Expected GeoDataFrame"):
            validate_geodataframe(pd.DataFrame({"zone_id": ["1"]}), SCHEMA_ZONES)


class TestTableSchema:
    """Tests for ColumnSpec and TableSchema dataclasses."""

    def test_column_spec_defaults(self):
        spec = ColumnSpec(name="test", dtype="object")
        assert spec.required is True
        assert spec.nullable is False
        assert spec.description == ""

    def test_required_columns(self):
        schema = TableSchema(
            name="test",
            description="Test schema",
            columns=[
                ColumnSpec("required_col", "object", required=True),
                ColumnSpec("optional_col", "object", required=False),
            ]
        )
        assert schema.required_columns() == ["required_col"]
        assert schema.all_columns() == ["required_col", "optional_col"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
