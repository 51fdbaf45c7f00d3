"""
Species bounds and pipeline parameters.

configs/species.yml holds one entry per species:

    species:
      oyster:
        depth_m: [0, 70]
        temperature_c: [11, 30]

configs/params.yml holds input locations, unit conventions, the fixed
reference CRS and render options. Both are validated here so that
degenerate settings surface as ConfigurationError instead of silently
producing empty maps.
"""

import math
import numbers
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any

from aquaculture_atlas.io_utils import read_yaml
from aquaculture_atlas.paths import paths


# Used when an input layer carries no CRS at all
DEFAULT_REFERENCE_CRS = "EPSG:4326"

SST_UNITS = ("kelvin", "celsius")
DEPTH_CONVENTIONS = ("elevation", "depth")
RESAMPLING_METHODS = ("nearest", "bilinear", "cubic", "average")


class ConfigurationError(ValueError):
    """Raised when thresholds, zones or params cannot produce a meaningful result."""
    pass


@dataclass(frozen=True)
class SpeciesBounds:
    """
    Environmental tolerance of one species.

    Depth is in metres below sea level (positive down); temperature in deg C.
    Both windows are closed intervals.
    """
    species: str
    min_depth: float
    max_depth: float
    min_temp: float
    max_temp: float

    def __post_init__(self):
        validate_bounds(self)
        # numpy scalars from a DataFrame row become plain floats
        for name in ("min_depth", "max_depth", "min_temp", "max_temp"):
            object.__setattr__(self, name, float(getattr(self, name)))

    @property
    def slug(self) -> str:
        """Filesystem-safe species label."""
        return "".join(c if c.isalnum() else "_" for c in self.species.strip().lower()).strip("_")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _check_interval(name: str, lo: float, hi: float) -> None:
    for label, value in ((f"min_{name}", lo), (f"max_{name}", hi)):
        if not isinstance(value, numbers.Real) or isinstance(value, bool):
            raise ConfigurationError(f"{label} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ConfigurationError(f"{label} must be finite, got {value}")
    if lo > hi:
        raise ConfigurationError(f"min_{name} ({lo}) is greater than max_{name} ({hi})")


def validate_bounds(bounds: SpeciesBounds) -> None:
    """
    Check a SpeciesBounds record.

    Raises:
        ConfigurationError: empty label, non-numeric or non-finite bounds,
            min > max, or a negative depth.
    """
    if not isinstance(bounds.species, str) or not bounds.species.strip():
        raise ConfigurationError("species label must be a non-empty string")
    _check_interval("depth", bounds.min_depth, bounds.max_depth)
    _check_interval("temp", bounds.min_temp, bounds.max_temp)
    if bounds.min_depth < 0:
        raise ConfigurationError(
            f"min_depth ({bounds.min_depth}) is negative; depth is metres below sea level"
        )


def parse_species(name: str, entry: dict) -> SpeciesBounds:
    """Build SpeciesBounds from one species.yml entry."""
    try:
        min_depth, max_depth = entry["depth_m"]
        min_temp, max_temp = entry["temperature_c"]
    except KeyError as e:
        raise ConfigurationError(f"Species '{name}' is missing key {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Species '{name}': depth_m and temperature_c must be [min, max] pairs"
        ) from e

    return SpeciesBounds(
        species=entry.get("label", name),
        min_depth=min_depth,
        max_depth=max_depth,
        min_temp=min_temp,
        max_temp=max_temp,
    )


def load_species(
    config_path: Path | str | None = None,
    names: list[str] | None = None,
) -> list[SpeciesBounds]:
    """
    Load species bounds from species.yml.

    Args:
        config_path: Defaults to configs/species.yml.
        names: Optional subset of species keys, in the order wanted.

    Raises:
        ConfigurationError: On an unknown species or malformed entry.
    """
    data = read_yaml(config_path or paths.species_yml) or {}
    entries = data.get("species")
    if not entries:
        raise ConfigurationError("species.yml has no 'species' section")

    if names is None:
        names = list(entries)

    unknown = [n for n in names if n not in entries]
    if unknown:
        raise ConfigurationError(f"Unknown species: {unknown}. Available: {list(entries)}")

    return [parse_species(n, entries[n]) for n in names]


def load_params(config_path: Path | str | None = None) -> dict[str, Any]:
    """
    Load and check params.yml.

    Missing optional sections are filled with defaults.

    Raises:
        ConfigurationError: On missing input paths or unknown conventions.
    """
    params = read_yaml(config_path or paths.params_yml) or {}

    inputs = params.get("inputs") or {}
    for key in ("sst", "depth", "zones"):
        if key not in inputs:
            raise ConfigurationError(f"params.yml inputs is missing '{key}'")

    sst = params.setdefault("sst", {})
    sst.setdefault("units", "kelvin")
    if sst["units"] not in SST_UNITS:
        raise ConfigurationError(f"sst.units must be one of {SST_UNITS}, got {sst['units']!r}")

    depth = params.setdefault("depth", {})
    depth.setdefault("convention", "elevation")
    if depth["convention"] not in DEPTH_CONVENTIONS:
        raise ConfigurationError(
            f"depth.convention must be one of {DEPTH_CONVENTIONS}, got {depth['convention']!r}"
        )

    alignment = params.setdefault("alignment", {})
    alignment.setdefault("reference_crs", DEFAULT_REFERENCE_CRS)
    alignment.setdefault("resampling", "nearest")
    if alignment["resampling"] not in RESAMPLING_METHODS:
        raise ConfigurationError(
            f"alignment.resampling must be one of {RESAMPLING_METHODS}, "
            f"got {alignment['resampling']!r}"
        )

    zones = params.setdefault("zones", {})
    zones.setdefault("id_column", "rgn_id")
    zones.setdefault("name_column", "rgn")

    params.setdefault("render", {}).setdefault("dpi", 150)

    return params
