#!/usr/bin/env python3
"""
02_score_species.py

Score every configured species: classify the prepared SST and depth
layers against the species' bounds, aggregate suitable area per zone,
and render a map and table for each.

Pipeline Step: 02

Inputs:
    - data/processed/layers/sst_mean_c.tif, depth_m.tif (step 00)
    - data/processed/zones/zones_canonical.parquet (step 01)
    - configs/species.yml, configs/params.yml

Outputs:
    - data/processed/suitability/<species>_suitable_area.{csv,parquet}
    - data/processed/suitability/suitable_area_all_species.csv
    - data/processed/suitability/species_summary.csv
    - reports/figures/<species>_suitable_area.png
    - reports/tables/<species>_suitable_area.md

QA Checks:
    - Mask is binary
    - No nulls in area columns
    - 0 <= suitable area <= zone area
    - Zone total <= global suitable area

Failure Modes:
    - Invalid species bounds (min > max, non-numeric)
    - Unknown species name on the command line
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import argparse
import logging

import pandas as pd

from aquaculture_atlas.paths import paths, ensure_dir
from aquaculture_atlas.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, get_run_id
)
from aquaculture_atlas.config import ConfigurationError, load_params, load_species
from aquaculture_atlas.hashing import write_metadata_sidecar
from aquaculture_atlas.io_utils import atomic_write_csv, clean_tmp_files
from aquaculture_atlas.qa import run_result_qa_checks
from aquaculture_atlas.schemas import SCHEMA_SPECIES_SUMMARY, SCHEMA_SUITABLE_AREA, validate_schema
from aquaculture_atlas.workflow import (
    DEPTH_LAYER_NAME, SST_LAYER_NAME, SuitabilityResult,
    load_prepared_inputs, score_species, write_species_outputs
)


SCRIPT_NAME = "02_score_species"


def summarize(results: list[SuitabilityResult]) -> pd.DataFrame:
    """One row per species: bounds plus global and in-zone suitable area."""
    rows = []
    for result in results:
        row = result.bounds.to_dict()
        for key in ("min_depth", "max_depth", "min_temp", "max_temp"):
            row[key] = float(row[key])
        row["total_suitable_area_km2"] = result.total_suitable_area_km2
        row["zone_suitable_area_km2"] = result.zone_suitable_area_km2
        rows.append(row)
    return pd.DataFrame(rows)


def write_combined_outputs(
    results: list[SuitabilityResult],
    logger: logging.Logger,
    run_id: str,
    input_files: list[Path],
    config_files: list[Path],
) -> dict:
    """Write the all-species table and the species summary."""
    log_step_start(logger, "write_combined_outputs")
    output_dir = ensure_dir(paths.processed_suitability)

    combined = pd.concat([r.table for r in results], ignore_index=True)
    combined = combined.sort_values(["species", "zone_id"], kind="mergesort").reset_index(drop=True)
    validate_schema(combined, SCHEMA_SUITABLE_AREA)
    combined_path = atomic_write_csv(output_dir / "suitable_area_all_species.csv", combined)
    log_output_written(logger, combined_path, row_count=len(combined))

    summary = summarize(results)
    validate_schema(summary, SCHEMA_SPECIES_SUMMARY)
    summary_path = atomic_write_csv(output_dir / "species_summary.csv", summary)
    log_output_written(logger, summary_path, row_count=len(summary))

    write_metadata_sidecar(
        output_path=combined_path,
        run_id=run_id,
        input_files=input_files,
        config_files=config_files,
        parameters={"species": [r.bounds.species for r in results]},
        row_count=len(combined),
    )

    log_step_end(logger, "write_combined_outputs")
    return {"combined": combined_path, "summary": summary_path}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Score configured species for aquaculture suitability")
    parser.add_argument("--species", nargs="+", default=None,
                        help="Species keys from configs/species.yml (default: all)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Main entry point for 02_score_species."""
    args = parse_args(argv)

    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    logger.info("=" * 60)
    logger.info(f"Starting {SCRIPT_NAME}")
    logger.info(f"Run ID: {run_id}")
    logger.info("=" * 60)

    try:
        params = load_params()
        species = load_species(names=args.species)
        logger.info(f"Species: {[s.species for s in species]}")

        sst, depth, zones = load_prepared_inputs()
        logger.info(f"Loaded layers {sst.shape} in {sst.crs} and {len(zones)} zones")

        input_files = [
            paths.processed_layers / f"{SST_LAYER_NAME}.tif",
            paths.processed_layers / f"{DEPTH_LAYER_NAME}.tif",
            paths.processed_zones / "zones_canonical.parquet",
        ]
        config_files = [paths.params_yml, paths.species_yml]

        clean_tmp_files(paths.processed_suitability)

        results = []
        for bounds in species:
            result = score_species(
                bounds, sst, depth, zones,
                resampling=params["alignment"]["resampling"],
                reference_crs=params["alignment"]["reference_crs"],
                logger=logger,
            )
            run_result_qa_checks(result.table, result.mask, result.total_suitable_area_km2,
                                 logger=logger, fail_on_error=True)
            results.append(result)

        # Every species scored and checked before anything is written
        for result in results:
            outputs = write_species_outputs(
                result, zones,
                run_id=run_id,
                dpi=params["render"]["dpi"],
                input_files=input_files,
                config_files=config_files,
                logger=logger,
            )
            logger.info(f"   {result.bounds.species}: map at {outputs['map']}")

        combined = write_combined_outputs(results, logger, run_id, input_files, config_files)

        logger.info("=" * 60)
        logger.info(f"{SCRIPT_NAME} completed successfully")
        for result in results:
            logger.info(f"   {result.bounds.species}: {result.zone_suitable_area_km2:,.1f} km² within zones")
        logger.info(f"   Combined table: {combined['combined']}")
        logger.info("=" * 60)

        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        logger.error("Run steps 00 and 01 first (aquaculture-atlas-layers, aquaculture-atlas-zones).")
        return 1

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
