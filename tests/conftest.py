"""
Pytest configuration and shared fixtures.

Fixtures build small synthetic rasters and zone layers in memory so the
suite runs without the raw SST / bathymetry downloads.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import numpy as np
import geopandas as gpd
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from aquaculture_atlas.config import SpeciesBounds
from aquaculture_atlas.raster import RasterLayer


# Study grid: lon -125..-120, lat 35..40 at 0.5 degree (10 x 10 cells)
GRID_WEST = -125.0
GRID_NORTH = 40.0
GRID_RES = 0.5
GRID_SIZE = 10


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    from aquaculture_atlas.paths import get_project_root
    return get_project_root()


@pytest.fixture
def make_layer():
    """Factory for RasterLayers on a north-up grid."""
    def _make(data, west=GRID_WEST, north=GRID_NORTH, res=GRID_RES,
              crs="EPSG:4326", name="layer"):
        data = np.asarray(data)
        if data.dtype != np.uint8:
            data = data.astype(np.float64)
        return RasterLayer(
            data=data,
            transform=from_origin(west, north, res, res),
            crs=CRS.from_user_input(crs) if crs else None,
            name=name,
        )
    return _make


@pytest.fixture
def sst_layer(make_layer):
    """Mean SST in deg C: 28 in the northernmost row down to 10 in the southernmost."""
    rows = 28.0 - 2.0 * np.arange(GRID_SIZE)
    data = np.repeat(rows[:, np.newaxis], GRID_SIZE, axis=1)
    return make_layer(data, name="sst_mean_c")


@pytest.fixture
def depth_layer(make_layer):
    """Depth in m: 0 in the westernmost column, +20 m per column, one land cell."""
    cols = 20.0 * np.arange(GRID_SIZE)
    data = np.repeat(cols[np.newaxis, :], GRID_SIZE, axis=0)
    data[0, 0] = np.nan
    return make_layer(data, name="depth_m")


@pytest.fixture
def zones():
    """Two zones splitting the study grid at lon -122.5 (a cell edge)."""
    return gpd.GeoDataFrame(
        {
            "zone_id": ["1", "2"],
            "zone_name": ["West", "East"],
        },
        geometry=[
            box(-125.0, 35.0, -122.5, 40.0),
            box(-122.5, 35.0, -120.0, 40.0),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def oyster():
    return SpeciesBounds("oyster", min_depth=0, max_depth=70, min_temp=11, max_temp=30)


@pytest.fixture
def lobster():
    return SpeciesBounds("lobster", min_depth=0, max_depth=90, min_temp=23.7, max_temp=28)


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (quick sanity checks)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow (may take > 10 seconds)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires prepared pipeline data)"
    )
