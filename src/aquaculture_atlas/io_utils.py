"""
Atomic writes and I/O helper utilities.

Outputs are written to a temp file in the target directory and then
renamed into place. Leftover .tmp artifacts are treated as failures.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    import geopandas as gpd
    import pandas as pd

from aquaculture_atlas.paths import ensure_dir

# Decimal places kept in CSV tables so reruns are byte-identical
CSV_FLOAT_FORMAT = "%.6f"


def atomic_write(
    target_path: Path | str,
    write_func: Callable,
    *args,
    **kwargs
) -> Path:
    """
    Write to a file atomically using a temporary file and rename.

    The target file is never left in a partially-written state. If the
    write fails, the target file is unchanged.

    Args:
        target_path: Final destination path.
        write_func: Called as write_func(temp_path, *args, **kwargs).

    Returns:
        The target path (as Path object).
    """
    target_path = Path(target_path)
    ensure_dir(target_path.parent)

    # Same directory as the target so the rename stays on one filesystem
    temp_fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f"{target_path.stem}_",
        dir=target_path.parent
    )
    temp_path = Path(temp_path)

    try:
        os.close(temp_fd)
        write_func(temp_path, *args, **kwargs)
        temp_path.replace(target_path)
        return target_path

    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write_json(target_path: Path | str, data: Any, indent: int = 2) -> Path:
    """Write JSON data to a file atomically."""
    def write_json(temp_path: Path, data: Any, indent: int):
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, default=str)

    return atomic_write(target_path, write_json, data, indent)


def atomic_write_text(target_path: Path | str, content: str) -> Path:
    """Write text content to a file atomically."""
    def write_text(temp_path: Path, content: str):
        with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)

    return atomic_write(target_path, write_text, content)


def atomic_write_csv(
    target_path: Path | str,
    df: "pd.DataFrame",
    float_format: str = CSV_FLOAT_FORMAT,
) -> Path:
    """
    Write a DataFrame to CSV atomically with a fixed float format.

    Rows are written in the order given; callers sort before writing.
    """
    def write_csv(temp_path: Path, df: "pd.DataFrame"):
        df.to_csv(temp_path, index=False, float_format=float_format, lineterminator="\n")

    return atomic_write(target_path, write_csv, df)


def atomic_write_parquet(
    target_path: Path | str,
    df: "pd.DataFrame",
    **kwargs
) -> Path:
    """
    Write a DataFrame to Parquet atomically.

    Args:
        target_path: Destination file path.
        df: DataFrame to write.
        **kwargs: Passed to pyarrow.parquet.write_table.
    """
    import pyarrow as pa
    import pyarrow.parquet as pq

    def write_parquet(temp_path: Path, df: "pd.DataFrame", **kwargs):
        table = pa.Table.from_pandas(df, preserve_index=False)
        pq.write_table(table, temp_path, **kwargs)

    return atomic_write(target_path, write_parquet, df, **kwargs)


def atomic_write_geoparquet(
    target_path: Path | str,
    gdf: "gpd.GeoDataFrame",
) -> Path:
    """Write a GeoDataFrame to GeoParquet atomically."""
    def write_geoparquet(temp_path: Path, gdf):
        gdf.to_parquet(temp_path, index=False)

    return atomic_write(target_path, write_geoparquet, gdf)


def atomic_write_figure(target_path: Path | str, fig, dpi: int = 150) -> Path:
    """Save a matplotlib figure as PNG atomically."""
    def write_png(temp_path: Path, fig, dpi: int):
        # Fixed metadata keeps reruns byte-stable
        fig.savefig(temp_path, format="png", dpi=dpi, bbox_inches="tight",
                    metadata={"Software": None})

    return atomic_write(target_path, write_png, fig, dpi)


# =============================================================================
# Read utilities
# =============================================================================

def read_parquet(file_path: Path | str) -> "pd.DataFrame":
    """
    Read a Parquet file into a DataFrame.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    import pandas as pd

    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Parquet file not found: {file_path}")
    return pd.read_parquet(file_path)


def read_geoparquet(file_path: Path | str) -> "gpd.GeoDataFrame":
    """
    Read a GeoParquet file into a GeoDataFrame.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    import geopandas as gpd

    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"GeoParquet file not found: {file_path}")
    return gpd.read_parquet(file_path)


def read_vector(file_path: Path | str) -> "gpd.GeoDataFrame":
    """
    Read any vector file geopandas understands (shapefile, GeoPackage, GeoJSON).

    GeoParquet is routed to read_geoparquet.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    import geopandas as gpd

    file_path = Path(file_path)
    if file_path.suffix == ".parquet":
        return read_geoparquet(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Vector file not found: {file_path}")
    return gpd.read_file(file_path)


def read_json(file_path: Path | str) -> Any:
    """
    Read a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {file_path}")
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def read_yaml(file_path: Path | str) -> Any:
    """
    Read a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"YAML file not found: {file_path}")
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# =============================================================================
# Cleanup utilities
# =============================================================================

def clean_tmp_files(directory: Path | str, pattern: str = "*.tmp") -> list[Path]:
    """
    Remove .tmp files from a directory (failed atomic writes).

    Returns:
        List of removed file paths.
    """
    directory = Path(directory)
    removed = []

    if directory.exists():
        for tmp_file in directory.glob(pattern):
            tmp_file.unlink()
            removed.append(tmp_file)

    return removed
