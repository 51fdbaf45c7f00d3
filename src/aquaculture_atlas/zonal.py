"""
Suitable area per zone.

Boundary rule: fractional attribution. Every suitable cell contributes
cell_area * (cell box ∩ zone).area / cell box.area to each zone it touches.
A cell on the line between two zones is split between them in proportion
to overlap, so zones that partition the study area never double count
and never drop a boundary cell. Overlapping zones are rejected up front
by validate_zones. The overlap fraction is measured in the
grid's own coordinates; the cell area it scales is the true (ellipsoidal
or projected) area from cell_area.
"""

import logging

import numpy as np
import pandas as pd
import geopandas as gpd
import shapely
from pyproj import CRS as ProjCRS

from aquaculture_atlas.cell_area import cell_areas_km2, geodesic_area_km2
from aquaculture_atlas.config import ConfigurationError
from aquaculture_atlas.logging_utils import (
    get_module_logger, log_crs_reprojected, log_step_start, log_step_end
)
from aquaculture_atlas.raster import RasterLayer

ZONE_COLUMNS = ["zone_id", "zone_name", "geometry"]
AREA_COLUMNS = ["zone_id", "zone_name", "suitable_area_km2", "zone_area_km2", "pct_suitable"]

# Shared area below this fraction of the smaller zone is treated as a shared edge
OVERLAP_TOLERANCE = 1e-6


# =============================================================================
# Zone preparation
# =============================================================================

def prepare_zones(
    gdf: gpd.GeoDataFrame,
    id_column: str = "zone_id",
    name_column: str | None = "zone_name",
) -> gpd.GeoDataFrame:
    """
    Normalise a zone layer to the canonical zone_id / zone_name / geometry schema.

    IDs are stored as strings; rows are sorted by zone_id.

    Raises:
        ConfigurationError: On a missing id column, no zones, duplicate
            ids, or empty geometries.
    """
    if id_column not in gdf.columns:
        raise ConfigurationError(
            f"Zone id column '{id_column}' not found. Columns: {list(gdf.columns)}"
        )

    zones = gpd.GeoDataFrame(
        {
            "zone_id": gdf[id_column].astype(str).to_numpy(),
            "zone_name": (
                gdf[name_column].astype(str).to_numpy()
                if name_column and name_column in gdf.columns
                else gdf[id_column].astype(str).to_numpy()
            ),
        },
        geometry=gdf.geometry.to_numpy(),
        crs=gdf.crs,
    )
    validate_zones(zones)
    return zones.sort_values("zone_id", kind="mergesort").reset_index(drop=True)


def validate_zones(zones: gpd.GeoDataFrame) -> None:
    """
    Raises:
        ConfigurationError: If zones cannot support aggregation, including
            zones whose polygons overlap.
    """
    if len(zones) == 0:
        raise ConfigurationError("Zone table is empty")
    if "zone_id" not in zones.columns:
        raise ConfigurationError("Zone table has no zone_id column")
    duplicated = zones["zone_id"][zones["zone_id"].duplicated()].unique().tolist()
    if duplicated:
        raise ConfigurationError(f"Duplicate zone ids: {duplicated[:5]}")
    empty = zones.geometry.isna() | zones.geometry.is_empty
    if empty.any():
        raise ConfigurationError(
            f"Zones with empty geometry: {zones.loc[empty, 'zone_id'].tolist()[:5]}"
        )
    overlapping = overlapping_zone_pairs(zones)
    if overlapping:
        raise ConfigurationError(
            f"Overlapping zones would be counted twice: {overlapping[:5]}"
        )


def overlapping_zone_pairs(
    zones: gpd.GeoDataFrame,
    tolerance: float = OVERLAP_TOLERANCE,
) -> list[tuple[str, str]]:
    """
    Pairs of zone ids whose polygons share area.

    Shared edges and slivers below tolerance (as a fraction of the smaller
    zone's area) do not count.
    """
    geoms = shapely.make_valid(zones.geometry.to_numpy())
    left, right = shapely.STRtree(geoms).query(geoms, predicate="intersects")
    keep = left < right
    left, right = left[keep], right[keep]
    if len(left) == 0:
        return []

    shared = shapely.area(shapely.intersection(geoms[left], geoms[right]))
    smaller = np.minimum(shapely.area(geoms[left]), shapely.area(geoms[right]))
    hit = shared > tolerance * smaller

    ids = zones["zone_id"].astype(str).to_numpy()
    return [(str(a), str(b)) for a, b in zip(ids[left[hit]], ids[right[hit]])]


def zones_to_grid_crs(
    zones: gpd.GeoDataFrame,
    mask: RasterLayer,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    """Reproject zones to the mask CRS; zones with no CRS are assumed to share it."""
    logger = get_module_logger(logger, __name__)
    target = ProjCRS.from_user_input(mask.crs.to_wkt())
    if zones.crs is None:
        log_crs_reprojected(logger, "zones", None, mask.crs, "no CRS defined; assumed grid CRS")
        return zones.set_crs(target)
    if not same_crs(zones.crs, target):
        log_crs_reprojected(logger, "zones", zones.crs, mask.crs, "CRS mismatch")
        return zones.to_crs(target)
    return zones


def same_crs(a: ProjCRS, b: ProjCRS) -> bool:
    """Compare by EPSG code when both have one, else by full definition."""
    epsg_a, epsg_b = a.to_epsg(), b.to_epsg()
    if epsg_a is not None and epsg_b is not None:
        return epsg_a == epsg_b
    return a.equals(b)


# =============================================================================
# Aggregation
# =============================================================================

def _window(geom, mask: RasterLayer) -> tuple[int, int, int, int]:
    """Row/col window (r0, r1, c0, c1) of grid cells that can touch geom."""
    minx, miny, maxx, maxy = geom.bounds
    inverse = ~mask.transform
    cols, rows = zip(*(inverse * (x, y) for x in (minx, maxx) for y in (miny, maxy)))
    r0 = max(int(np.floor(min(rows))), 0)
    r1 = min(int(np.ceil(max(rows))), mask.height)
    c0 = max(int(np.floor(min(cols))), 0)
    c1 = min(int(np.ceil(max(cols))), mask.width)
    return r0, r1, c0, c1


def cell_boxes(mask: RasterLayer, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    """Shapely boxes for the given cells of a north-up grid."""
    t = mask.transform
    x0 = t.c + t.a * cols
    x1 = x0 + t.a
    y0 = t.f + t.e * rows
    y1 = y0 + t.e
    return shapely.box(np.minimum(x0, x1), np.minimum(y0, y1),
                       np.maximum(x0, x1), np.maximum(y0, y1))


def coverage_fractions(geom, boxes: np.ndarray) -> np.ndarray:
    """Fraction of each box covered by geom, in [0, 1]."""
    shapely.prepare(geom)
    fractions = np.zeros(len(boxes), dtype=np.float64)
    touching = shapely.intersects(geom, boxes)
    if not touching.any():
        return fractions

    inside = touching & shapely.contains(geom, boxes)
    fractions[inside] = 1.0

    partial = touching & ~inside
    if partial.any():
        overlap = shapely.area(shapely.intersection(boxes[partial], geom))
        fractions[partial] = overlap / shapely.area(boxes[partial])

    return np.clip(fractions, 0.0, 1.0)


def total_suitable_area_km2(mask: RasterLayer) -> float:
    """Suitable area over the whole grid, ignoring zones."""
    suitable = mask.data.astype(bool)
    if not suitable.any():
        return 0.0
    return float(cell_areas_km2(mask)[suitable].sum())


def aggregate_suitable_area(
    mask: RasterLayer,
    zones: gpd.GeoDataFrame,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Suitable area per zone from a binary mask.

    Args:
        mask: uint8 suitability mask (1 = suitable).
        zones: Canonical zone table (zone_id, zone_name, geometry).
        logger: Optional logger.

    Returns:
        DataFrame with one row per zone, sorted by zone_id:
        zone_id, zone_name, suitable_area_km2, zone_area_km2, pct_suitable.

    Raises:
        ConfigurationError: On invalid zones, a mask without CRS, or a
            rotated grid.
    """
    logger = get_module_logger(logger, __name__)
    validate_zones(zones)
    if mask.crs is None:
        raise ConfigurationError(f"Mask '{mask.name}' has no CRS; align layers first")
    t = mask.transform
    if t.b != 0 or t.d != 0:
        raise ConfigurationError("Zonal aggregation needs a north-up grid")

    log_step_start(logger, "aggregate_suitable_area", zones=len(zones))

    zones = zones_to_grid_crs(zones, mask, logger)
    zones = zones.sort_values("zone_id", kind="mergesort").reset_index(drop=True)
    areas = cell_areas_km2(mask)
    suitable = mask.data.astype(bool)

    suitable_km2 = []
    for geom in zones.geometry:
        r0, r1, c0, c1 = _window(geom, mask)
        if r0 >= r1 or c0 >= c1:
            suitable_km2.append(0.0)
            continue
        rows, cols = np.nonzero(suitable[r0:r1, c0:c1])
        if len(rows) == 0:
            suitable_km2.append(0.0)
            continue
        rows = rows + r0
        cols = cols + c0
        fractions = coverage_fractions(geom, cell_boxes(mask, rows, cols))
        suitable_km2.append(float(np.sum(fractions * areas[rows, cols])))

    zone_km2 = geodesic_area_km2(zones)
    # Planar overlap vs geodesic zone area can differ by rounding at the edge
    suitable_km2 = np.clip(np.asarray(suitable_km2, dtype=np.float64), 0.0, zone_km2)
    with np.errstate(invalid="ignore", divide="ignore"):
        pct = np.where(zone_km2 > 0, 100.0 * suitable_km2 / zone_km2, 0.0)

    table = pd.DataFrame({
        "zone_id": zones["zone_id"].astype(str).to_numpy(),
        "zone_name": zones["zone_name"].astype(str).to_numpy(),
        "suitable_area_km2": suitable_km2,
        "zone_area_km2": zone_km2,
        "pct_suitable": pct,
    })

    log_step_end(logger, "aggregate_suitable_area",
                 total_suitable_km2=float(table["suitable_area_km2"].sum()))
    return table


def areas_by_zone(table: pd.DataFrame) -> dict[str, float]:
    """Mapping zone_id -> suitable area (km^2)."""
    return dict(zip(table["zone_id"], table["suitable_area_km2"].astype(float)))
