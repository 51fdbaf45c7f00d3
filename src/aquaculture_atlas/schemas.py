"""
Schema validation for canonical outputs.

Every canonical table is validated on write. Schema drift is a hard failure.
"""

from dataclasses import dataclass

import pandas as pd


class SchemaValidationError(Exception):
    """Raised when data does not conform to expected schema."""
    pass


@dataclass
class ColumnSpec:
    """Specification for a single column."""
    name: str
    dtype: str  # pandas dtype string (e.g., "int64", "float64", "object", "geometry")
    required: bool = True
    nullable: bool = False
    description: str = ""


@dataclass
class TableSchema:
    """Schema definition for a table."""
    name: str
    description: str
    columns: list[ColumnSpec]

    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.required]

    def all_columns(self) -> list[str]:
        return [c.name for c in self.columns]


# =============================================================================
# Schema definitions for canonical outputs
# =============================================================================

SCHEMA_ZONES = TableSchema(
    name="zones",
    description="Canonical zone polygons (exclusive economic zones)",
    columns=[
        ColumnSpec("zone_id", "object", required=True, nullable=False,
                   description="Unique zone identifier"),
        ColumnSpec("zone_name", "object", required=True, nullable=False,
                   description="Human-readable zone name"),
        ColumnSpec("geometry", "geometry", required=True, nullable=False,
                   description="Zone polygon"),
    ]
)

SCHEMA_SUITABLE_AREA = TableSchema(
    name="suitable_area",
    description="Suitable habitat area per zone for one or more species",
    columns=[
        ColumnSpec("species", "object", required=True, nullable=False,
                   description="Species label"),
        ColumnSpec("zone_id", "object", required=True, nullable=False,
                   description="Zone identifier"),
        ColumnSpec("zone_name", "object", required=True, nullable=False,
                   description="Zone name"),
        ColumnSpec("suitable_area_km2", "float64", required=True, nullable=False,
                   description="Suitable area within the zone (km²)"),
        ColumnSpec("zone_area_km2", "float64", required=True, nullable=False,
                   description="Geodesic area of the zone (km²)"),
        ColumnSpec("pct_suitable", "float64", required=True, nullable=False,
                   description="Suitable share of the zone (0-100)"),
    ]
)

SCHEMA_SPECIES_SUMMARY = TableSchema(
    name="species_summary",
    description="One row per species: bounds and total suitable area",
    columns=[
        ColumnSpec("species", "object", required=True, nullable=False),
        ColumnSpec("min_depth", "float64", required=True, nullable=False),
        ColumnSpec("max_depth", "float64", required=True, nullable=False),
        ColumnSpec("min_temp", "float64", required=True, nullable=False),
        ColumnSpec("max_temp", "float64", required=True, nullable=False),
        ColumnSpec("total_suitable_area_km2", "float64", required=True, nullable=False,
                   description="Suitable area over the whole grid"),
        ColumnSpec("zone_suitable_area_km2", "float64", required=True, nullable=False,
                   description="Suitable area summed over zones"),
    ]
)

# Registry of all schemas
SCHEMA_REGISTRY: dict[str, TableSchema] = {
    "zones": SCHEMA_ZONES,
    "suitable_area": SCHEMA_SUITABLE_AREA,
    "species_summary": SCHEMA_SPECIES_SUMMARY,
}


# =============================================================================
# Validation functions
# =============================================================================

def validate_schema(
    df: pd.DataFrame,
    schema: TableSchema | str,
    strict: bool = False,
) -> list[str]:
    """
    Validate a DataFrame against a schema.

    Args:
        df: DataFrame to validate.
        schema: TableSchema object or schema name from registry.
        strict: If True, fail on extra columns not in schema.

    Returns:
        Empty list when valid.

    Raises:
        SchemaValidationError: If validation fails.
    """
    if isinstance(schema, str):
        schema = get_schema(schema)

    errors = []

    for col in schema.columns:
        if col.required and col.name not in df.columns:
            errors.append(f"Missing required column: {col.name}")

    if strict:
        extra_cols = set(df.columns) - set(schema.all_columns())
        if extra_cols:
            errors.append(f"Unexpected columns: {sorted(extra_cols)}")

    for col in schema.columns:
        if col.name not in df.columns:
            continue

        series = df[col.name]

        if not col.nullable and series.isna().any():
            null_count = series.isna().sum()
            errors.append(f"Column '{col.name}' has {null_count} null values but is not nullable")

        if col.dtype != "geometry":
            actual_dtype = str(series.dtype)
            expected_dtype = col.dtype

            compatible = False
            if expected_dtype == "object" and actual_dtype in ("object", "string", "str", "category"):
                compatible = True
            elif expected_dtype == "int64" and actual_dtype in ("int64", "int32", "Int64", "Int32"):
                compatible = True
            elif expected_dtype == "float64" and actual_dtype in ("float64", "float32", "Float64"):
                compatible = True
            elif expected_dtype == actual_dtype:
                compatible = True

            if not compatible:
                errors.append(f"Column '{col.name}' has dtype '{actual_dtype}', expected '{expected_dtype}'")

    if errors:
        error_msg = f"Schema validation failed for '{schema.name}':\n" + "\n".join(f"  - {e}" for e in errors)
        raise SchemaValidationError(error_msg)

    return errors


def validate_geodataframe(
    gdf: pd.DataFrame,
    schema: TableSchema | str,
    check_crs: bool = True,
    expected_crs: str = "EPSG:4326",
) -> list[str]:
    """
    Validate a GeoDataFrame against a schema, its CRS, and for empty geometries.

    Raises:
        SchemaValidationError: If validation fails.
    """
    import geopandas as gpd

    errors = []

    if not isinstance(gdf, gpd.GeoDataFrame):
        raise SchemaValidationError("Expected GeoDataFrame but got DataFrame")

    if check_crs:
        if gdf.crs is None:
            errors.append("GeoDataFrame has no CRS defined")
        else:
            try:
                if gdf.crs.to_epsg() != int(expected_crs.split(":")[1]):
                    errors.append(f"CRS mismatch: got {gdf.crs}, expected {expected_crs}")
            except (ValueError, IndexError, AttributeError):
                errors.append(f"CRS mismatch: got {gdf.crs}, expected {expected_crs}")

    if gdf.geometry.is_empty.any():
        empty_count = gdf.geometry.is_empty.sum()
        errors.append(f"GeoDataFrame has {empty_count} empty geometries")

    if errors:
        try:
            validate_schema(gdf, schema)
        except SchemaValidationError as e:
            errors.extend(str(e).split("\n")[1:])

        error_msg = "GeoDataFrame validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise SchemaValidationError(error_msg)

    validate_schema(gdf, schema)

    return errors


def get_schema(name: str) -> TableSchema:
    """
    Get a schema by name from the registry.

    Raises:
        ValueError: If schema not found.
    """
    if name not in SCHEMA_REGISTRY:
        raise ValueError(f"Unknown schema: {name}. Available: {list(SCHEMA_REGISTRY.keys())}")
    return SCHEMA_REGISTRY[name]


def register_schema(schema: TableSchema) -> None:
    """Register a new schema in the registry."""
    SCHEMA_REGISTRY[schema.name] = schema
