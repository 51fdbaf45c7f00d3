"""
Marine Aquaculture Suitability Atlas

Scores exclusive economic zones on the US West Coast for marine aquaculture
of a given species, from sea surface temperature and bathymetry rasters.

Core modules:
    - paths: Canonical root and path resolution
    - logging_utils: JSONL structured logging
    - io_utils: Atomic writes and I/O helpers
    - config: Species bounds and pipeline parameters
    - raster: Raster layer model, GeoTIFF I/O and reductions
    - alignment: CRS / grid reconciliation between layers
    - cell_area: Per-cell area on geographic and projected grids
    - classify: Threshold classification into suitability masks
    - zonal: Suitable area per zone
    - workflow: Generalised species workflow
    - render: Choropleth maps and summary tables
    - qa: Quality assurance checks (CRS, bounds, area invariants)
    - schemas: Schema validation for canonical outputs
    - hashing: File, config, and code hashing for reproducibility
"""

__version__ = "0.1.0"
__author__ = "Aquaculture Atlas Team"
