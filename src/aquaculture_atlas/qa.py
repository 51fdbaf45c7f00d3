"""
Quality assurance checks for layers, zones and suitability results.

This module provides QA checks for:
- CRS validation
- Study-area bounds
- Unique zone identifiers
- Empty / invalid geometries
- Data completeness
- Raster grid alignment and mask values
- Area invariants (per-zone area within zone, zone sum within global total)
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from aquaculture_atlas.logging_utils import log_qa_check
from aquaculture_atlas.raster import RasterLayer, grids_match


# US West Coast EEZ study area (WGS84 / EPSG:4326)
WEST_COAST_BOUNDS = {
    "min_lon": -131.0,
    "max_lon": -117.0,
    "min_lat": 30.0,
    "max_lat": 49.5,
}

EXPECTED_CRS_WGS84 = "EPSG:4326"

# Absolute slack (km^2) for floating point sums in area invariants
AREA_TOLERANCE_KM2 = 1e-6


@dataclass
class QAResult:
    """Result of a QA check."""
    check_name: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    def __bool__(self) -> bool:
        return self.passed


def _report(result: QAResult, logger: logging.Logger | None) -> QAResult:
    if logger:
        log_qa_check(logger, result.check_name, result.passed, result.message,
                     **(result.details or {}))
    return result


def _is_gdf(obj) -> bool:
    import geopandas as gpd
    return isinstance(obj, gpd.GeoDataFrame)


# =============================================================================
# CRS and bounds checks
# =============================================================================

def check_crs(
    gdf: pd.DataFrame,
    expected_crs: str | None = EXPECTED_CRS_WGS84,
    logger: logging.Logger | None = None,
) -> QAResult:
    """
    Check that a GeoDataFrame has a CRS, and that it is expected_crs if given.
    """
    check_name = "crs_valid"

    if not _is_gdf(gdf):
        result = QAResult(check_name, False, "Input is not a GeoDataFrame",
                          {"type": type(gdf).__name__})
    elif gdf.crs is None:
        result = QAResult(check_name, False, "GeoDataFrame has no CRS defined", {"crs": None})
    elif expected_crs is None:
        result = QAResult(check_name, True, f"CRS is defined: {gdf.crs}", {"crs": str(gdf.crs)})
    else:
        actual_epsg = gdf.crs.to_epsg()
        try:
            expected_epsg = int(expected_crs.split(":")[1])
        except (IndexError, ValueError):
            expected_epsg = None

        if expected_epsg is not None and actual_epsg == expected_epsg:
            result = QAResult(check_name, True, f"CRS is {expected_crs}",
                              {"crs": str(gdf.crs), "expected": expected_crs})
        elif expected_epsg is None and gdf.crs.equals(expected_crs):
            result = QAResult(check_name, True, f"CRS is {expected_crs}",
                              {"crs": str(gdf.crs)})
        else:
            result = QAResult(check_name, False,
                              f"CRS mismatch: got EPSG:{actual_epsg}, expected {expected_crs}",
                              {"crs": str(gdf.crs), "expected": expected_crs})

    return _report(result, logger)


def check_bounds(
    gdf: pd.DataFrame,
    bounds: dict | None = None,
    tolerance: float = 0.5,
    logger: logging.Logger | None = None,
) -> QAResult:
    """
    Check that geometries fall within the study-area bounding box.

    Args:
        gdf: GeoDataFrame (any CRS; compared in WGS84).
        bounds: Dict with min_lon, max_lon, min_lat, max_lat.
        tolerance: Slack in degrees.
    """
    check_name = "bounds_study_area"
    bounds = bounds or WEST_COAST_BOUNDS

    if not _is_gdf(gdf):
        result = QAResult(check_name, False, "Input is not a GeoDataFrame")
    elif gdf.crs is None:
        result = QAResult(check_name, False, "Cannot check bounds: no CRS defined")
    else:
        gdf_wgs84 = gdf.to_crs("EPSG:4326") if gdf.crs.to_epsg() != 4326 else gdf
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in gdf_wgs84.total_bounds)

        within = (
            min_lon >= bounds["min_lon"] - tolerance and
            max_lon <= bounds["max_lon"] + tolerance and
            min_lat >= bounds["min_lat"] - tolerance and
            max_lat <= bounds["max_lat"] + tolerance
        )
        details = {
            "data_bounds": {"min_lon": min_lon, "min_lat": min_lat,
                            "max_lon": max_lon, "max_lat": max_lat},
            "expected_bounds": bounds,
        }
        message = ("All geometries within study area" if within
                   else "Some geometries outside study area")
        result = QAResult(check_name, within, message, details)

    return _report(result, logger)


# =============================================================================
# ID and geometry checks
# =============================================================================

def check_unique_ids(
    df: pd.DataFrame,
    id_column: str,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that an ID column has unique values."""
    check_name = "unique_ids"

    if id_column not in df.columns:
        result = QAResult(check_name, False, f"ID column '{id_column}' not found",
                          {"columns": list(df.columns)})
    else:
        total = len(df)
        unique = int(df[id_column].nunique())
        if total == unique:
            result = QAResult(check_name, True, f"All {total} IDs are unique",
                              {"total": total, "unique": unique, "column": id_column})
        else:
            counts = df[id_column].value_counts()
            result = QAResult(check_name, False, f"Found {total - unique} duplicate IDs", {
                "total": total,
                "unique": unique,
                "sample_duplicates": counts[counts > 1].head(5).to_dict(),
                "column": id_column,
            })

    return _report(result, logger)


def check_no_empty_geoms(
    gdf: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that there are no empty or null geometries."""
    check_name = "no_empty_geoms"

    if not _is_gdf(gdf):
        result = QAResult(check_name, False, "Input is not a GeoDataFrame")
    else:
        null_count = int(gdf.geometry.isna().sum())
        empty_count = int(gdf.geometry.is_empty.sum())
        passed = empty_count == 0 and null_count == 0
        message = (f"All {len(gdf)} geometries are non-empty" if passed
                   else f"Found {empty_count} empty and {null_count} null geometries")
        result = QAResult(check_name, passed, message,
                          {"total": len(gdf), "empty": empty_count, "null": null_count})

    return _report(result, logger)


def check_valid_geoms(
    gdf: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that all geometries are topologically valid."""
    check_name = "valid_geoms"

    if not _is_gdf(gdf):
        result = QAResult(check_name, False, "Input is not a GeoDataFrame")
    else:
        invalid_count = int((~gdf.geometry.is_valid).sum())
        passed = invalid_count == 0
        message = (f"All {len(gdf)} geometries are topologically valid" if passed
                   else f"Found {invalid_count} invalid geometries")
        result = QAResult(check_name, passed, message,
                          {"total": len(gdf), "invalid": invalid_count})

    return _report(result, logger)


def check_no_nulls(
    df: pd.DataFrame,
    columns: list[str],
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that the given columns have no null values."""
    check_name = "no_nulls"

    missing_cols = [c for c in columns if c not in df.columns]
    if missing_cols:
        result = QAResult(check_name, False, f"Columns not found: {missing_cols}",
                          {"missing_columns": missing_cols})
    else:
        null_counts = {c: int(df[c].isna().sum()) for c in columns}
        total_nulls = sum(null_counts.values())
        if total_nulls == 0:
            result = QAResult(check_name, True,
                              f"No null values in {len(columns)} checked columns",
                              {"columns": columns})
        else:
            result = QAResult(check_name, False, f"Found {total_nulls} null values",
                              {"columns_with_nulls": {k: v for k, v in null_counts.items() if v}})

    return _report(result, logger)


# =============================================================================
# Raster checks
# =============================================================================

def check_grid_alignment(
    a: RasterLayer,
    b: RasterLayer,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that two layers share CRS, shape and transform."""
    check_name = "grid_alignment"
    passed = grids_match(a, b)
    details = {
        "layers": [a.name, b.name],
        "shapes": [list(a.shape), list(b.shape)],
        "crs": [str(a.crs), str(b.crs)],
    }
    message = (f"'{a.name}' and '{b.name}' share a grid" if passed
               else f"'{a.name}' and '{b.name}' are on different grids")
    return _report(QAResult(check_name, passed, message, details), logger)


def check_binary_mask(
    mask: RasterLayer,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that a mask holds only 0 and 1."""
    check_name = "binary_mask"
    values = np.unique(mask.data)
    passed = bool(np.isin(values, [0, 1]).all())
    message = (f"Mask '{mask.name}' is binary" if passed
               else f"Mask '{mask.name}' has values outside {{0, 1}}")
    return _report(QAResult(check_name, passed, message,
                            {"values": [float(v) for v in values[:10]]}), logger)


# =============================================================================
# Area invariants
# =============================================================================

def check_area_within_zone(
    table: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check 0 <= suitable_area_km2 <= zone_area_km2 for every zone."""
    check_name = "area_within_zone"
    suitable = table["suitable_area_km2"]
    negative = table.loc[suitable < 0, "zone_id"].tolist()
    exceeding = table.loc[
        suitable > table["zone_area_km2"] + AREA_TOLERANCE_KM2, "zone_id"
    ].tolist()
    passed = not negative and not exceeding
    message = ("Suitable area within [0, zone area] for every zone" if passed
               else f"{len(negative)} negative, {len(exceeding)} exceeding zone area")
    return _report(QAResult(check_name, passed, message,
                            {"negative": negative, "exceeding": exceeding}), logger)


def check_zone_total_within_global(
    table: pd.DataFrame,
    total_suitable_area_km2: float,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that suitable area summed over zones does not exceed the global total."""
    check_name = "zone_total_within_global"
    zone_total = float(table["suitable_area_km2"].sum())
    slack = max(AREA_TOLERANCE_KM2, 1e-9 * total_suitable_area_km2)
    passed = zone_total <= total_suitable_area_km2 + slack
    message = (f"Zone total {zone_total:,.3f} km² <= global {total_suitable_area_km2:,.3f} km²"
               if passed else
               f"Zone total {zone_total:,.3f} km² exceeds global {total_suitable_area_km2:,.3f} km² "
               f"(overlapping zones?)")
    return _report(QAResult(check_name, passed, message, {
        "zone_total_km2": zone_total,
        "global_total_km2": total_suitable_area_km2,
    }), logger)


# =============================================================================
# Aggregate QA runners
# =============================================================================

def _raise_on_failure(results: list[QAResult]) -> None:
    failed = [r for r in results if not r.passed]
    if failed:
        messages = [f"{r.check_name}: {r.message}" for r in failed]
        raise ValueError("QA checks failed:\n" + "\n".join(messages))


def run_zone_qa_checks(
    gdf: pd.DataFrame,
    id_column: str = "zone_id",
    expected_crs: str | None = EXPECTED_CRS_WGS84,
    bounds: dict | None = None,
    logger: logging.Logger | None = None,
    fail_on_error: bool = True,
) -> list[QAResult]:
    """
    Run the standard QA checks for a zone layer.

    Raises:
        ValueError: If fail_on_error and any check fails.
    """
    results = [
        check_crs(gdf, expected_crs, logger),
        check_bounds(gdf, bounds, logger=logger),
        check_unique_ids(gdf, id_column, logger),
        check_no_empty_geoms(gdf, logger),
        check_valid_geoms(gdf, logger),
    ]
    if fail_on_error:
        _raise_on_failure(results)
    return results


def run_result_qa_checks(
    table: pd.DataFrame,
    mask: RasterLayer,
    total_suitable_area_km2: float,
    logger: logging.Logger | None = None,
    fail_on_error: bool = True,
) -> list[QAResult]:
    """
    Run QA checks on one species' suitability result.

    Raises:
        ValueError: If fail_on_error and any check fails.
    """
    results = [
        check_binary_mask(mask, logger),
        check_no_nulls(table, ["zone_id", "suitable_area_km2", "zone_area_km2"], logger),
        check_area_within_zone(table, logger),
        check_zone_total_within_global(table, total_suitable_area_km2, logger),
    ]
    if fail_on_error:
        _raise_on_failure(results)
    return results
