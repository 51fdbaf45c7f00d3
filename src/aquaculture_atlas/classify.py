"""
Threshold classification into binary suitability masks.

Each physical variable is classified against its own closed interval
[lo, hi]; a cell equal to either bound is suitable. No-data (NaN) cells
are always unsuitable. Masks from several variables are combined with a
logical AND, never a weighted score.
"""

import math

import numpy as np

from aquaculture_atlas.config import ConfigurationError, SpeciesBounds
from aquaculture_atlas.raster import RasterLayer, grids_match


def classify_range(layer: RasterLayer, lo: float, hi: float, name: str | None = None) -> RasterLayer:
    """
    Classify a layer against the closed interval [lo, hi].

    Returns:
        uint8 RasterLayer on the same grid: 1 where lo <= v <= hi, else 0.

    Raises:
        ConfigurationError: If lo > hi or either bound is not finite.
    """
    if not (math.isfinite(lo) and math.isfinite(hi)):
        raise ConfigurationError(f"Classification bounds must be finite, got [{lo}, {hi}]")
    if lo > hi:
        raise ConfigurationError(f"Lower bound {lo} is greater than upper bound {hi}")

    values = layer.data
    # NaN compares False on both sides, so no-data falls out as 0
    with np.errstate(invalid="ignore"):
        inside = (values >= lo) & (values <= hi)

    return layer.with_data(inside.astype(np.uint8), name=name or f"{layer.name}_in_{lo:g}_{hi:g}")


def combine_masks(*masks: RasterLayer, name: str = "suitability") -> RasterLayer:
    """
    Logical AND of binary masks of identical shape.

    Raises:
        ValueError: With no masks, or masks of different shape.
    """
    if not masks:
        raise ValueError("combine_masks needs at least one mask")

    first = masks[0]
    for mask in masks[1:]:
        if mask.shape != first.shape:
            raise ValueError(
                f"Mask '{mask.name}' has shape {mask.shape}, expected {first.shape}"
            )

    combined = np.ones(first.shape, dtype=bool)
    for mask in masks:
        combined &= mask.data.astype(bool)

    return first.with_data(combined.astype(np.uint8), name=name)


def suitability_mask(
    sst: RasterLayer,
    depth: RasterLayer,
    bounds: SpeciesBounds,
) -> RasterLayer:
    """
    Suitability mask for one species from aligned SST (deg C) and depth (m) layers.

    Raises:
        ValueError: If the two layers are not on the same grid.
    """
    if not grids_match(sst, depth):
        raise ValueError("SST and depth layers must be aligned before classification")

    temp_ok = classify_range(sst, bounds.min_temp, bounds.max_temp, name="temperature_ok")
    depth_ok = classify_range(depth, bounds.min_depth, bounds.max_depth, name="depth_ok")
    return combine_masks(temp_ok, depth_ok, name=f"{bounds.slug}_suitability")
