#!/usr/bin/env python3
"""
01_prepare_zones.py

Build the canonical zone layer (exclusive economic zones) used to
aggregate suitable area.

Pipeline Step: 01

Inputs:
    - data/raw/zones/wc_regions_clean.shp (any geopandas-readable vector file)
    - configs/params.yml (zone id/name columns, canonical CRS, study area)

Outputs:
    - data/processed/zones/zones_canonical.parquet (GeoParquet)
    - data/processed/zones/zones_canonical_metadata.json

QA Checks:
    - CRS present and correct
    - Bounds within the study area
    - Unique zone ids
    - No empty geometries
    - No invalid geometries

Failure Modes:
    - Missing id column
    - Duplicate ids
    - Empty geometry
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import logging

import geopandas as gpd

from aquaculture_atlas.paths import paths, ensure_dir, resolve_path
from aquaculture_atlas.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, log_crs_reprojected, get_run_id
)
from aquaculture_atlas.config import load_params
from aquaculture_atlas.cell_area import geodesic_area_km2
from aquaculture_atlas.hashing import write_metadata_sidecar
from aquaculture_atlas.io_utils import atomic_write_geoparquet, read_vector
from aquaculture_atlas.qa import run_zone_qa_checks
from aquaculture_atlas.schemas import SCHEMA_ZONES, validate_geodataframe
from aquaculture_atlas.zonal import prepare_zones


SCRIPT_NAME = "01_prepare_zones"


def normalize_zones(
    raw: gpd.GeoDataFrame,
    params: dict,
    logger: logging.Logger,
) -> gpd.GeoDataFrame:
    """Map source columns to zone_id / zone_name and reproject to the canonical CRS."""
    log_step_start(logger, "normalize_zones")
    logger.info(f"Input columns: {list(raw.columns)}")

    zone_params = params["zones"]
    target_crs = zone_params.get("crs", params["alignment"]["reference_crs"])

    zones = prepare_zones(raw, zone_params["id_column"], zone_params["name_column"])

    if zones.crs is None:
        log_crs_reprojected(logger, "zones", None, target_crs, "no CRS defined; assigned")
        zones = zones.set_crs(target_crs)
    elif zones.crs.to_epsg() != int(target_crs.split(":")[1]):
        log_crs_reprojected(logger, "zones", zones.crs, target_crs, "canonical CRS")
        zones = zones.to_crs(target_crs)

    log_step_end(logger, "normalize_zones", row_count=len(zones))
    return zones


def write_outputs(
    zones: gpd.GeoDataFrame,
    logger: logging.Logger,
    run_id: str,
    input_files: list,
    config_files: list,
) -> dict:
    """Write the canonical zones with a metadata sidecar."""
    log_step_start(logger, "write_outputs")

    output_dir = ensure_dir(paths.processed_zones)
    parquet_path = output_dir / "zones_canonical.parquet"
    atomic_write_geoparquet(parquet_path, zones)
    log_output_written(logger, parquet_path, row_count=len(zones))

    areas = geodesic_area_km2(zones)
    metadata_path = write_metadata_sidecar(
        output_path=parquet_path,
        run_id=run_id,
        input_files=input_files,
        config_files=config_files,
        parameters={"crs": str(zones.crs)},
        row_count=len(zones),
        extra={
            "zones": dict(zip(zones["zone_id"], zones["zone_name"])),
            "zone_area_km2": dict(zip(zones["zone_id"], areas.round(3).tolist())),
            "bounds": [float(v) for v in zones.total_bounds],
        },
    )
    logger.info(f"Wrote metadata sidecar: {metadata_path}")

    log_step_end(logger, "write_outputs")
    return {"parquet": parquet_path, "metadata": metadata_path}


def main():
    """Main entry point for 01_prepare_zones."""
    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    logger.info("=" * 60)
    logger.info(f"Starting {SCRIPT_NAME}")
    logger.info(f"Run ID: {run_id}")
    logger.info("=" * 60)

    try:
        params = load_params()
        zones_file = resolve_path(params["inputs"]["zones"])

        raw = read_vector(zones_file)
        logger.info(f"Read {len(raw)} zones from {zones_file}")

        zones = normalize_zones(raw, params, logger)

        run_zone_qa_checks(
            zones,
            expected_crs=params["zones"].get("crs", params["alignment"]["reference_crs"]),
            bounds=params.get("study_area"),
            logger=logger,
            fail_on_error=True,
        )
        validate_geodataframe(zones, SCHEMA_ZONES, expected_crs=zones.crs.to_string())

        outputs = write_outputs(zones, logger, run_id, [zones_file], [paths.params_yml])

        logger.info("=" * 60)
        logger.info(f"{SCRIPT_NAME} completed successfully")
        logger.info(f"   Zones: {zones['zone_name'].tolist()}")
        logger.info(f"   Output: {outputs['parquet']}")
        logger.info("=" * 60)

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
