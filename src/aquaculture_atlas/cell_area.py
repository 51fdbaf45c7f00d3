"""
Per-cell and per-polygon area in square kilometres.

On a geographic (lon/lat) grid cell area shrinks towards the poles, so each
row gets its own area from the ellipsoid. On a projected grid every cell
has the same planar area.
"""

import math

import numpy as np
import geopandas as gpd
from pyproj import CRS as ProjCRS
from pyproj import Geod

from aquaculture_atlas.config import ConfigurationError
from aquaculture_atlas.raster import RasterLayer

M2_PER_KM2 = 1_000_000.0


def _zone_area_from_equator(lat_deg: np.ndarray, geod: Geod) -> np.ndarray:
    """
    Area (m^2) of the full-circle ellipsoidal band between the equator and lat_deg.

    Divided by 360 it gives the area per degree of longitude.
    """
    b = geod.b
    e = math.sqrt(geod.es)
    s = np.sin(np.radians(lat_deg))
    if e == 0:
        return 2 * math.pi * b * b * s
    return 2 * math.pi * b * b * (
        s / (2 * (1 - e * e * s * s))
        + np.log((1 + e * s) / (1 - e * s)) / (4 * e)
    )


def cell_areas_km2(layer: RasterLayer) -> np.ndarray:
    """
    Area of every cell of a layer, same shape as layer.data.

    Raises:
        ConfigurationError: If the layer has no CRS, or is a rotated
            geographic grid.
    """
    if layer.crs is None:
        raise ConfigurationError(f"Cannot compute cell areas for '{layer.name}': no CRS")

    crs = ProjCRS.from_user_input(layer.crs.to_wkt())
    t = layer.transform

    if crs.is_geographic:
        if t.b != 0 or t.d != 0:
            raise ConfigurationError(
                f"Layer '{layer.name}' has a rotated geographic grid; cell areas are undefined"
            )
        geod = crs.get_geod()
        rows = np.arange(layer.height + 1, dtype=np.float64)
        edges = np.clip(t.f + t.e * rows, -90.0, 90.0)
        band = np.abs(np.diff(_zone_area_from_equator(edges, geod)))
        row_areas = band * abs(t.a) / 360.0 / M2_PER_KM2
        return np.repeat(row_areas[:, np.newaxis], layer.width, axis=1)

    unit_factor = crs.axis_info[0].unit_conversion_factor if crs.axis_info else 1.0
    pixel_area = abs(t.a * t.e - t.b * t.d) * unit_factor * unit_factor
    return np.full(layer.shape, pixel_area / M2_PER_KM2, dtype=np.float64)


def total_area_km2(layer: RasterLayer) -> float:
    """Area covered by the whole grid."""
    return float(cell_areas_km2(layer).sum())


def geodesic_area_km2(gdf: gpd.GeoDataFrame) -> np.ndarray:
    """
    Ellipsoidal area of each geometry, in km^2.

    Raises:
        ConfigurationError: If the GeoDataFrame has no CRS.
    """
    if gdf.crs is None:
        raise ConfigurationError("Cannot compute zone areas: zones have no CRS")

    geographic = gdf.to_crs("EPSG:4326")
    geod = Geod(ellps="WGS84")
    areas = [
        abs(geod.geometry_area_perimeter(geom)[0]) / M2_PER_KM2
        for geom in geographic.geometry
    ]
    return np.asarray(areas, dtype=np.float64)
