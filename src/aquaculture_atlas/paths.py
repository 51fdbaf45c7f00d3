"""
Canonical root detection and path resolution.

All scripts use aquaculture_atlas.paths to resolve paths. No relative ../
anywhere. The .project-root file marks the repository root.
"""

from pathlib import Path
from typing import Union

# Cached project root
_PROJECT_ROOT: Path | None = None


def get_project_root() -> Path:
    """
    Find and return the project root directory.

    Searches upward from this file's location for .project-root marker.
    Result is cached.

    Returns:
        Path to the project root directory.

    Raises:
        FileNotFoundError: If .project-root marker is not found.
    """
    global _PROJECT_ROOT

    if _PROJECT_ROOT is not None:
        return _PROJECT_ROOT

    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        marker = current / ".project-root"
        if marker.exists():
            _PROJECT_ROOT = current
            return _PROJECT_ROOT

        parent = current.parent
        if parent == current:
            break
        current = parent

    raise FileNotFoundError(
        "Could not find .project-root marker. "
        "Ensure you are running from within the Aquaculture Atlas repository."
    )


def get_path(*parts: str) -> Path:
    """
    Resolve a path relative to the project root.

    Example:
        >>> get_path("data", "processed", "layers")
        PosixPath('/path/to/project/data/processed/layers')
    """
    return get_project_root() / Path(*parts)


def resolve_path(path: Union[str, Path]) -> Path:
    """Resolve a config-supplied path; relative paths are taken from the project root."""
    p = Path(path)
    if p.is_absolute():
        return p
    return get_project_root() / p


# =============================================================================
# Canonical path constants
# =============================================================================

class Paths:
    """
    Canonical path constants for the project.

    All paths are resolved relative to the project root.
    """

    @property
    def root(self) -> Path:
        """Project root directory."""
        return get_project_root()

    # -------------------------------------------------------------------------
    # Config paths
    # -------------------------------------------------------------------------
    @property
    def configs(self) -> Path:
        return get_path("configs")

    @property
    def params_yml(self) -> Path:
        return get_path("configs", "params.yml")

    @property
    def species_yml(self) -> Path:
        return get_path("configs", "species.yml")

    # -------------------------------------------------------------------------
    # Data paths - Raw
    # -------------------------------------------------------------------------
    @property
    def data_raw(self) -> Path:
        return get_path("data", "raw")

    @property
    def raw_sst(self) -> Path:
        return get_path("data", "raw", "sst")

    @property
    def raw_depth(self) -> Path:
        return get_path("data", "raw", "depth")

    @property
    def raw_zones(self) -> Path:
        return get_path("data", "raw", "zones")

    # -------------------------------------------------------------------------
    # Data paths - Processed
    # -------------------------------------------------------------------------
    @property
    def data_processed(self) -> Path:
        return get_path("data", "processed")

    @property
    def processed_layers(self) -> Path:
        return get_path("data", "processed", "layers")

    @property
    def processed_zones(self) -> Path:
        return get_path("data", "processed", "zones")

    @property
    def processed_suitability(self) -> Path:
        return get_path("data", "processed", "suitability")

    # -------------------------------------------------------------------------
    # Logs
    # -------------------------------------------------------------------------
    @property
    def logs(self) -> Path:
        return get_path("logs")

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------
    @property
    def reports(self) -> Path:
        return get_path("reports")

    @property
    def reports_figures(self) -> Path:
        return get_path("reports", "figures")

    @property
    def reports_tables(self) -> Path:
        return get_path("reports", "tables")


# Singleton instance for convenience
paths = Paths()


def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        The Path object for the directory.
    """
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p
