"""
Choropleth maps and markdown tables of suitable area per zone.
"""

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import matplotlib.pyplot as plt
import pandas as pd

from aquaculture_atlas.config import SpeciesBounds
from aquaculture_atlas.io_utils import atomic_write_figure, atomic_write_text


def bounds_caption(bounds: SpeciesBounds) -> str:
    return (
        f"depth {bounds.min_depth:g}-{bounds.max_depth:g} m, "
        f"SST {bounds.min_temp:g}-{bounds.max_temp:g} °C"
    )


def plot_suitability_map(
    zones_with_area: gpd.GeoDataFrame,
    bounds: SpeciesBounds,
    output_path: Path | str,
    column: str = "suitable_area_km2",
    cmap: str = "YlGnBu",
    dpi: int = 150,
) -> Path:
    """
    Render a choropleth of suitable area by zone and save it as PNG.

    Args:
        zones_with_area: Zones joined with the aggregated area table.
        bounds: Species bounds, used for the title.
        output_path: Destination PNG.
        column: Column to shade.

    Returns:
        The written path.
    """
    fig, ax = plt.subplots(figsize=(7, 9))
    try:
        zones_with_area.plot(
            column=column,
            cmap=cmap,
            legend=True,
            edgecolor="black",
            linewidth=0.4,
            ax=ax,
            legend_kwds={"label": "Suitable area (km²)", "shrink": 0.6},
        )
        for _, row in zones_with_area.iterrows():
            point = row.geometry.representative_point()
            ax.annotate(row["zone_name"], xy=(point.x, point.y),
                        ha="center", fontsize=7)

        ax.set_title(f"Suitable {bounds.species} habitat by zone\n{bounds_caption(bounds)}")
        ax.set_axis_off()
        return atomic_write_figure(output_path, fig, dpi=dpi)
    finally:
        plt.close(fig)


def format_area_table(table: pd.DataFrame, bounds: SpeciesBounds | None = None) -> str:
    """Markdown table of suitable area per zone, sorted by zone_id."""
    table = table.sort_values("zone_id", kind="mergesort")

    lines = []
    if bounds is not None:
        lines.append(f"### {bounds.species.capitalize()} ({bounds_caption(bounds)})")
        lines.append("")

    lines.append("| Zone | Suitable area (km²) | Zone area (km²) | Suitable (%) |")
    lines.append("|------|--------------------:|----------------:|-------------:|")
    for _, row in table.iterrows():
        lines.append(
            f"| {row['zone_name']} | {row['suitable_area_km2']:,.1f} | "
            f"{row['zone_area_km2']:,.1f} | {row['pct_suitable']:.2f} |"
        )
    lines.append(
        f"| **Total** | {table['suitable_area_km2'].sum():,.1f} | "
        f"{table['zone_area_km2'].sum():,.1f} | |"
    )
    return "\n".join(lines) + "\n"


def write_area_table(
    table: pd.DataFrame,
    output_path: Path | str,
    bounds: SpeciesBounds | None = None,
) -> Path:
    return atomic_write_text(output_path, format_area_table(table, bounds))
