"""
Generalised species suitability workflow.

score_species() is the pure part: given a species' bounds and its own
copies of the SST, depth and zone inputs it aligns, classifies and
aggregates, and returns a SuitabilityResult. run_species_workflow() adds
the side effects (tables, map, metadata sidecar) and returns the map path.
Nothing here keeps state between calls.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import pandas as pd

from aquaculture_atlas.alignment import align_layers, align_to, ensure_crs
from aquaculture_atlas.classify import suitability_mask
from aquaculture_atlas.config import DEFAULT_REFERENCE_CRS, SpeciesBounds
from aquaculture_atlas.hashing import write_metadata_sidecar
from aquaculture_atlas.io_utils import (
    atomic_write_csv, atomic_write_parquet, read_geoparquet
)
from aquaculture_atlas.logging_utils import (
    get_module_logger, get_run_id, log_output_written, log_species_scored,
    log_step_end, log_step_start
)
from aquaculture_atlas.paths import paths, resolve_path
from aquaculture_atlas.raster import (
    RasterLayer, mean_layers, normalize_units, read_raster
)
from aquaculture_atlas.render import plot_suitability_map, write_area_table
from aquaculture_atlas.schemas import SCHEMA_SUITABLE_AREA, validate_schema
from aquaculture_atlas.zonal import aggregate_suitable_area, areas_by_zone, total_suitable_area_km2

SST_LAYER_NAME = "sst_mean_c"
DEPTH_LAYER_NAME = "depth_m"


@dataclass
class SuitabilityResult:
    """Outcome of scoring one species."""
    bounds: SpeciesBounds
    mask: RasterLayer
    table: pd.DataFrame
    total_suitable_area_km2: float

    def areas(self) -> dict[str, float]:
        """Mapping zone_id -> suitable area (km^2), one entry per zone."""
        return areas_by_zone(self.table)

    @property
    def zone_suitable_area_km2(self) -> float:
        """Suitable area summed over zones (at most the global total)."""
        return float(self.table["suitable_area_km2"].sum())


# =============================================================================
# Input preparation
# =============================================================================

def build_environment_layers(
    sst_layers: list[RasterLayer],
    depth_layer: RasterLayer,
    sst_units: str = "kelvin",
    depth_convention: str = "elevation",
    resampling: str = "nearest",
    reference_crs: str = DEFAULT_REFERENCE_CRS,
    logger: logging.Logger | None = None,
) -> tuple[RasterLayer, RasterLayer]:
    """
    Reduce yearly SST composites to one mean layer in deg C, convert
    bathymetry to positive depth, and put both on the SST grid.

    Returns:
        (sst_mean_c, depth_m) on a shared grid.
    """
    logger = get_module_logger(logger, __name__)
    if not sst_layers:
        raise ValueError("At least one SST layer is required")

    log_step_start(logger, "build_environment_layers", sst_layers=len(sst_layers))

    aligned = align_layers(sst_layers, resampling, reference_crs, logger)
    sst = mean_layers(aligned, name=SST_LAYER_NAME)
    sst = normalize_units(sst, "sst", sst_units)

    depth = normalize_units(depth_layer, "depth", depth_convention)
    depth = align_to(depth, sst, resampling, reference_crs, logger)
    depth = depth.with_data(depth.data, name=DEPTH_LAYER_NAME)

    log_step_end(logger, "build_environment_layers", shape=list(sst.shape), crs=str(sst.crs))
    return sst, depth


def load_prepared_inputs(
    layers_dir: Path | str | None = None,
    zones_path: Path | str | None = None,
) -> tuple[RasterLayer, RasterLayer, gpd.GeoDataFrame]:
    """Read the outputs of the layer and zone preparation steps."""
    layers_dir = Path(layers_dir or paths.processed_layers)
    zones_path = Path(zones_path or paths.processed_zones / "zones_canonical.parquet")
    sst = read_raster(layers_dir / f"{SST_LAYER_NAME}.tif", name=SST_LAYER_NAME)
    depth = read_raster(layers_dir / f"{DEPTH_LAYER_NAME}.tif", name=DEPTH_LAYER_NAME)
    zones = read_geoparquet(zones_path)
    return sst, depth, zones


def sst_paths_from_params(params: dict) -> list[Path]:
    """SST files named in params.yml, either a list of files or a directory glob."""
    source = params["inputs"]["sst"]
    if isinstance(source, list):
        return [resolve_path(p) for p in source]
    directory = resolve_path(source)
    files = sorted(directory.glob(params.get("sst", {}).get("pattern", "*.tif")))
    if not files:
        raise FileNotFoundError(f"No SST rasters found in {directory}")
    return files


# =============================================================================
# Workflow
# =============================================================================

def score_species(
    bounds: SpeciesBounds,
    sst: RasterLayer,
    depth: RasterLayer,
    zones: gpd.GeoDataFrame,
    resampling: str = "nearest",
    reference_crs: str = DEFAULT_REFERENCE_CRS,
    logger: logging.Logger | None = None,
) -> SuitabilityResult:
    """
    Score zones for one species.

    Inputs are copied, so callers can reuse them across species. Depth and
    zones are brought onto the SST grid; a missing or different CRS is
    reprojected with a warning, never an error.

    Args:
        bounds: Species tolerance bounds.
        sst: Mean sea surface temperature (deg C).
        depth: Depth (m, positive below sea level).
        zones: Canonical zone table.

    Returns:
        SuitabilityResult with one table row per zone.

    Raises:
        ConfigurationError: On invalid zones.
    """
    logger = get_module_logger(logger, __name__)
    log_step_start(logger, f"score_species[{bounds.species}]", **bounds.to_dict())

    sst = ensure_crs(sst.copy(), reference_crs, logger)
    depth = align_to(depth.copy(), sst, resampling, reference_crs, logger)
    mask = suitability_mask(sst, depth, bounds)

    table = aggregate_suitable_area(mask, zones.copy(), logger)
    table.insert(0, "species", bounds.species)
    total = total_suitable_area_km2(mask)

    result = SuitabilityResult(
        bounds=bounds,
        mask=mask,
        table=table,
        total_suitable_area_km2=total,
    )

    log_species_scored(logger, bounds.species, int(mask.data.sum()), total,
                       result.zone_suitable_area_km2)
    log_step_end(logger, f"score_species[{bounds.species}]")
    return result


def write_species_outputs(
    result: SuitabilityResult,
    zones: gpd.GeoDataFrame,
    tables_dir: Path | str | None = None,
    figures_dir: Path | str | None = None,
    reports_dir: Path | str | None = None,
    run_id: str | None = None,
    dpi: int = 150,
    input_files: list[Path] | None = None,
    config_files: list[Path] | None = None,
    logger: logging.Logger | None = None,
) -> dict[str, Path]:
    """
    Write the table (CSV + Parquet), markdown summary, map and sidecar for one species.

    Returns:
        Dict of written paths keyed by "csv", "parquet", "markdown", "map", "metadata".
    """
    logger = get_module_logger(logger, __name__)
    tables_dir = Path(tables_dir or paths.processed_suitability)
    figures_dir = Path(figures_dir or paths.reports_figures)
    reports_dir = Path(reports_dir or paths.reports_tables)
    slug = result.bounds.slug

    table = result.table.sort_values("zone_id", kind="mergesort").reset_index(drop=True)
    validate_schema(table, SCHEMA_SUITABLE_AREA)

    outputs = {}
    outputs["csv"] = atomic_write_csv(tables_dir / f"{slug}_suitable_area.csv", table)
    log_output_written(logger, outputs["csv"], row_count=len(table))

    outputs["parquet"] = atomic_write_parquet(tables_dir / f"{slug}_suitable_area.parquet", table)
    log_output_written(logger, outputs["parquet"], row_count=len(table))

    outputs["markdown"] = write_area_table(table, reports_dir / f"{slug}_suitable_area.md", result.bounds)
    log_output_written(logger, outputs["markdown"])

    zones_with_area = zones[["zone_id", "geometry"]].assign(
        zone_id=zones["zone_id"].astype(str)
    ).merge(
        table.drop(columns=["species"]), on="zone_id", how="left"
    )
    outputs["map"] = plot_suitability_map(
        zones_with_area, result.bounds, figures_dir / f"{slug}_suitable_area.png", dpi=dpi
    )
    log_output_written(logger, outputs["map"])

    outputs["metadata"] = write_metadata_sidecar(
        output_path=outputs["csv"],
        run_id=run_id or get_run_id(),
        input_files=input_files,
        config_files=config_files,
        parameters=result.bounds.to_dict(),
        row_count=len(table),
        extra={
            "total_suitable_area_km2": result.total_suitable_area_km2,
            "zone_suitable_area_km2": result.zone_suitable_area_km2,
            "suitable_cells": int(result.mask.data.sum()),
            "grid_crs": str(result.mask.crs),
            "boundary_rule": "fractional",
        },
    )
    return outputs


def run_species_workflow(
    bounds: SpeciesBounds,
    sst: RasterLayer,
    depth: RasterLayer,
    zones: gpd.GeoDataFrame,
    output_dir: Path | str | None = None,
    resampling: str = "nearest",
    reference_crs: str = DEFAULT_REFERENCE_CRS,
    dpi: int = 150,
    logger: logging.Logger | None = None,
) -> Path:
    """
    Score one species and render its map.

    With output_dir set, tables, map and markdown all go under it
    (tables/, figures/, reports/); otherwise the canonical project paths
    are used.

    Returns:
        Path to the rendered map.
    """
    result = score_species(bounds, sst, depth, zones, resampling, reference_crs, logger)

    if output_dir is not None:
        output_dir = Path(output_dir)
        dirs = {
            "tables_dir": output_dir / "tables",
            "figures_dir": output_dir / "figures",
            "reports_dir": output_dir / "reports",
        }
    else:
        dirs = {}

    outputs = write_species_outputs(result, zones, dpi=dpi, logger=logger, **dirs)
    return outputs["map"]


def suitable_area(
    species: str,
    min_depth: float,
    max_depth: float,
    min_temp: float,
    max_temp: float,
    sst: RasterLayer,
    depth: RasterLayer,
    zones: gpd.GeoDataFrame,
    output_dir: Path | str | None = None,
    logger: logging.Logger | None = None,
) -> Path:
    """Species label plus four bounds in, rendered map path out."""
    bounds = SpeciesBounds(
        species=species,
        min_depth=min_depth,
        max_depth=max_depth,
        min_temp=min_temp,
        max_temp=max_temp,
    )
    return run_species_workflow(bounds, sst, depth, zones, output_dir=output_dir, logger=logger)
