#!/usr/bin/env python3
"""
00_prepare_layers.py

Build the two environmental layers the suitability workflow classifies:
mean sea surface temperature (deg C) and depth (m below sea level), on a
single shared grid.

Pipeline Step: 00

Inputs:
    - data/raw/sst/average_annual_sst_*.tif (yearly composites)
    - data/raw/depth/depth.tif (bathymetry, elevation convention)
    - configs/params.yml (units, reference CRS, resampling)

Outputs:
    - data/processed/layers/sst_mean_c.tif
    - data/processed/layers/depth_m.tif
    - data/processed/layers/*_metadata.json

QA Checks:
    - SST and depth share CRS, shape and transform

Failure Modes:
    - Missing input rasters
    - Unknown unit convention in params.yml
    CRS mismatches are NOT failures: layers are reprojected with a warning.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import argparse
import logging

import numpy as np

from aquaculture_atlas.paths import paths, ensure_dir, resolve_path
from aquaculture_atlas.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, get_run_id
)
from aquaculture_atlas.config import load_params
from aquaculture_atlas.hashing import check_hashes_match, sidecar_path_for, write_metadata_sidecar
from aquaculture_atlas.qa import check_grid_alignment
from aquaculture_atlas.raster import RasterLayer, read_raster, write_raster
from aquaculture_atlas.workflow import (
    DEPTH_LAYER_NAME, SST_LAYER_NAME, build_environment_layers, sst_paths_from_params
)


SCRIPT_NAME = "00_prepare_layers"


def read_inputs(
    sst_files: list[Path],
    depth_file: Path,
    logger: logging.Logger,
) -> tuple[list[RasterLayer], RasterLayer]:
    """Read every SST composite and the bathymetry raster."""
    log_step_start(logger, "read_inputs", sst_files=len(sst_files))

    sst_layers = []
    for f in sst_files:
        layer = read_raster(f)
        logger.info(f"Read {f.name}: shape={layer.shape}, crs={layer.crs}, res={layer.res}")
        sst_layers.append(layer)

    depth = read_raster(depth_file, name="depth")
    logger.info(f"Read {depth_file.name}: shape={depth.shape}, crs={depth.crs}, res={depth.res}")

    log_step_end(logger, "read_inputs")
    return sst_layers, depth


def summarize_layer(layer: RasterLayer) -> dict:
    valid = layer.data[~np.isnan(layer.data)]
    return {
        "shape": list(layer.shape),
        "crs": str(layer.crs),
        "res": list(layer.res),
        "bounds": list(layer.bounds),
        "valid_cells": int(valid.size),
        "min": float(valid.min()) if valid.size else None,
        "max": float(valid.max()) if valid.size else None,
    }


def write_outputs(
    sst: RasterLayer,
    depth: RasterLayer,
    logger: logging.Logger,
    run_id: str,
    input_files: list[Path],
    config_files: list[Path],
    params: dict,
) -> dict:
    """Write both layers with metadata sidecars."""
    log_step_start(logger, "write_outputs")

    output_dir = ensure_dir(paths.processed_layers)
    outputs = {}

    for layer in (sst, depth):
        path = write_raster(output_dir / f"{layer.name}.tif", layer)
        log_output_written(logger, path)
        write_metadata_sidecar(
            output_path=path,
            run_id=run_id,
            input_files=input_files,
            config_files=config_files,
            parameters={
                "sst_units": params["sst"]["units"],
                "depth_convention": params["depth"]["convention"],
                "resampling": params["alignment"]["resampling"],
                "reference_crs": params["alignment"]["reference_crs"],
            },
            extra=summarize_layer(layer),
        )
        outputs[layer.name] = path

    log_step_end(logger, "write_outputs")
    return outputs


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[1])
    parser.add_argument("--force", action="store_true",
                        help="Rebuild even if inputs and config are unchanged")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Main entry point for 00_prepare_layers."""
    args = parse_args(argv)

    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    logger.info("=" * 60)
    logger.info(f"Starting {SCRIPT_NAME}")
    logger.info(f"Run ID: {run_id}")
    logger.info("=" * 60)

    try:
        params = load_params()
        sst_files = sst_paths_from_params(params)
        depth_file = resolve_path(params["inputs"]["depth"])
        input_files = sst_files + [depth_file]
        config_files = [paths.params_yml]

        layer_paths = [paths.processed_layers / f"{name}.tif" for name in (SST_LAYER_NAME, DEPTH_LAYER_NAME)]
        sidecar = sidecar_path_for(layer_paths[0])
        if not args.force and check_hashes_match(sidecar, input_files, config_files, layer_paths):
            logger.info("Inputs and config unchanged since last run; nothing to do (use --force)")
            return 0

        sst_layers, depth_raw = read_inputs(sst_files, depth_file, logger)

        sst, depth = build_environment_layers(
            sst_layers,
            depth_raw,
            sst_units=params["sst"]["units"],
            depth_convention=params["depth"]["convention"],
            resampling=params["alignment"]["resampling"],
            reference_crs=params["alignment"]["reference_crs"],
            logger=logger,
        )

        qa = check_grid_alignment(sst, depth, logger)
        if not qa.passed:
            raise ValueError(f"QA checks failed:\n  - {qa.check_name}: {qa.message}")

        outputs = write_outputs(sst, depth, logger, run_id, input_files, config_files, params)

        logger.info("=" * 60)
        logger.info(f"{SCRIPT_NAME} completed successfully")
        logger.info(f"   SST years averaged: {len(sst_layers)}")
        logger.info(f"   Grid: {sst.shape} @ {sst.res} in {sst.crs}")
        logger.info(f"   Outputs: {outputs[SST_LAYER_NAME]}, {outputs[DEPTH_LAYER_NAME]}")
        logger.info("=" * 60)

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        logger.error("Place the SST composites and bathymetry under data/raw/ (see configs/params.yml).")
        return 1

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
