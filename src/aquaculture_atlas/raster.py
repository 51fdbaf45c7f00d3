"""
Raster layer model, GeoTIFF I/O and cell-wise reductions.

A RasterLayer is a single 2-D band held in memory as float64 with no-data
encoded as NaN, together with its affine transform and CRS. Masks use the
same container with uint8 0/1 values.
"""

from dataclasses import dataclass, replace
from pathlib import Path

import numpy as np
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.transform import array_bounds

from aquaculture_atlas.io_utils import atomic_write

KELVIN_OFFSET = 273.15


@dataclass
class RasterLayer:
    """A single-band raster on a defined grid."""
    data: np.ndarray
    transform: Affine
    crs: CRS | None
    name: str = "layer"

    def __post_init__(self):
        if self.data.ndim != 2:
            raise ValueError(
                f"Raster layer '{self.name}' must be 2-D, got shape {self.data.shape}; "
                f"reduce multi-band stacks first (e.g. mean_layers)"
            )
        if self.crs is not None and not isinstance(self.crs, CRS):
            self.crs = CRS.from_user_input(self.crs)

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(west, south, east, north) in CRS units."""
        return array_bounds(self.height, self.width, self.transform)

    @property
    def res(self) -> tuple[float, float]:
        return (abs(self.transform.a), abs(self.transform.e))

    def with_data(self, data: np.ndarray, name: str | None = None) -> "RasterLayer":
        """Same grid, new values."""
        return replace(self, data=data, name=name or self.name)

    def copy(self) -> "RasterLayer":
        return replace(self, data=self.data.copy())


def grids_match(a: RasterLayer, b: RasterLayer, tolerance: float = 1e-9) -> bool:
    """True when both layers share CRS, shape and transform."""
    if a.shape != b.shape:
        return False
    if (a.crs is None) != (b.crs is None):
        return False
    if a.crs is not None and a.crs != b.crs:
        return False
    return a.transform.almost_equals(b.transform, precision=tolerance)


# =============================================================================
# GeoTIFF I/O
# =============================================================================

def read_raster(path: Path | str, name: str | None = None, band: int = 1) -> RasterLayer:
    """
    Read one band of a raster file into a RasterLayer.

    The band's declared nodata value (and any masked cells) become NaN.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    with rasterio.open(path) as src:
        masked = src.read(band, masked=True)
        data = np.ma.filled(masked.astype(np.float64), np.nan)
        return RasterLayer(
            data=data,
            transform=src.transform,
            crs=src.crs if src.crs else None,
            name=name or path.stem,
        )


def write_raster(path: Path | str, layer: RasterLayer) -> Path:
    """Write a RasterLayer to a single-band GeoTIFF atomically."""
    is_mask = layer.data.dtype == np.uint8

    def write_gtiff(temp_path: Path, layer: RasterLayer):
        profile = {
            "driver": "GTiff",
            "height": layer.height,
            "width": layer.width,
            "count": 1,
            "dtype": "uint8" if is_mask else "float64",
            "transform": layer.transform,
            "nodata": None if is_mask else np.nan,
        }
        if layer.crs is not None:
            profile["crs"] = layer.crs
        with rasterio.open(temp_path, "w", **profile) as dst:
            dst.write(layer.data, 1)

    return atomic_write(path, write_gtiff, layer)


# =============================================================================
# Reductions and unit conversions
# =============================================================================

def mean_layers(layers: list[RasterLayer], name: str = "mean") -> RasterLayer:
    """
    Cell-wise mean of layers on the same grid.

    NaN cells are skipped; a cell that is NaN in every layer stays NaN.

    Raises:
        ValueError: On an empty list or mismatched grids.
    """
    if not layers:
        raise ValueError("mean_layers needs at least one layer")

    first = layers[0]
    for other in layers[1:]:
        if not grids_match(first, other):
            raise ValueError(
                f"Layer '{other.name}' is not on the grid of '{first.name}'; align before averaging"
            )

    stack = np.stack([layer.data.astype(np.float64) for layer in layers])
    counts = np.sum(~np.isnan(stack), axis=0)
    totals = np.nansum(stack, axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        mean = np.where(counts > 0, totals / counts, np.nan)

    return first.with_data(mean, name=name)


def kelvin_to_celsius(layer: RasterLayer) -> RasterLayer:
    return layer.with_data(layer.data - KELVIN_OFFSET)


def elevation_to_depth(layer: RasterLayer) -> RasterLayer:
    """Elevation (negative below sea level) to depth (positive below sea level)."""
    return layer.with_data(-layer.data)


def normalize_units(layer: RasterLayer, kind: str, convention: str) -> RasterLayer:
    """
    Bring a layer to the units classification expects.

    kind="sst": convention "kelvin" or "celsius".
    kind="depth": convention "elevation" or "depth".
    """
    if kind == "sst":
        return kelvin_to_celsius(layer) if convention == "kelvin" else layer
    if kind == "depth":
        return elevation_to_depth(layer) if convention == "elevation" else layer
    raise ValueError(f"Unknown layer kind: {kind}")
