"""
CRS and grid reconciliation between raster layers.

Layers that disagree on CRS, resolution or extent are resampled onto a
reference grid. Misalignment is never an error: it is corrected and logged
as a warning. A layer with no CRS at all is assumed to be in the fixed
reference CRS.
"""

import logging

import numpy as np
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.warp import reproject

from aquaculture_atlas.config import DEFAULT_REFERENCE_CRS
from aquaculture_atlas.logging_utils import get_module_logger, log_crs_reprojected
from aquaculture_atlas.raster import RasterLayer, grids_match


def _resampling(method: str | Resampling) -> Resampling:
    if isinstance(method, Resampling):
        return method
    try:
        return Resampling[method]
    except KeyError:
        raise ValueError(f"Unknown resampling method: {method}") from None


def ensure_crs(
    layer: RasterLayer,
    reference_crs: str | CRS = DEFAULT_REFERENCE_CRS,
    logger: logging.Logger | None = None,
) -> RasterLayer:
    """Assign the fixed reference CRS to a layer that has none."""
    if layer.crs is not None:
        return layer
    logger = get_module_logger(logger, __name__)
    target = CRS.from_user_input(reference_crs)
    log_crs_reprojected(logger, layer.name, None, target, "no CRS defined; assigned reference CRS")
    aligned = layer.copy()
    aligned.crs = target
    return aligned


def align_to(
    layer: RasterLayer,
    reference: RasterLayer,
    resampling: str | Resampling = "nearest",
    reference_crs: str | CRS = DEFAULT_REFERENCE_CRS,
    logger: logging.Logger | None = None,
) -> RasterLayer:
    """
    Resample a layer onto the grid of a reference layer.

    Returns the layer unchanged if the grids already match. Mask layers
    (uint8) always use nearest-neighbour so they stay binary.

    Args:
        layer: Layer to align.
        reference: Layer whose CRS, transform and shape are the target.
        resampling: rasterio resampling method name.
        reference_crs: CRS assumed for layers that have none.
        logger: Optional logger for structured events.
    """
    logger = get_module_logger(logger, __name__)
    reference = ensure_crs(reference, reference_crs, logger)
    layer = ensure_crs(layer, reference_crs, logger)

    if grids_match(layer, reference):
        return layer

    if layer.crs != reference.crs:
        reason = "CRS mismatch"
    elif layer.shape != reference.shape:
        reason = "extent/resolution mismatch"
    else:
        reason = "transform mismatch"
    log_crs_reprojected(logger, layer.name, layer.crs, reference.crs, reason)

    is_mask = layer.data.dtype == np.uint8
    method = Resampling.nearest if is_mask else _resampling(resampling)

    if is_mask:
        destination = np.zeros(reference.shape, dtype=np.uint8)
        src_nodata = dst_nodata = None
    else:
        destination = np.full(reference.shape, np.nan, dtype=np.float64)
        src_nodata = dst_nodata = np.nan

    reproject(
        source=layer.data.astype(np.uint8 if is_mask else np.float64),
        destination=destination,
        src_transform=layer.transform,
        src_crs=layer.crs,
        src_nodata=src_nodata,
        dst_transform=reference.transform,
        dst_crs=reference.crs,
        dst_nodata=dst_nodata,
        resampling=method,
    )

    return RasterLayer(
        data=destination,
        transform=reference.transform,
        crs=reference.crs,
        name=layer.name,
    )


def align_layers(
    layers: list[RasterLayer],
    resampling: str | Resampling = "nearest",
    reference_crs: str | CRS = DEFAULT_REFERENCE_CRS,
    logger: logging.Logger | None = None,
) -> list[RasterLayer]:
    """Align every layer to the grid of the first one."""
    if not layers:
        return []
    reference = ensure_crs(layers[0], reference_crs, logger)
    return [reference] + [
        align_to(layer, reference, resampling, reference_crs, logger)
        for layer in layers[1:]
    ]
