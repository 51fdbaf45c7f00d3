"""
File, config, and code hashing utilities for reproducibility.

Each output gets a sidecar <stem>_metadata.json with input file hashes,
config digests, git commit, library versions, timestamp and run_id. The
sidecars also let a step skip work when its inputs have not changed.
"""

import hashlib
import json
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from aquaculture_atlas.io_utils import atomic_write_json
from aquaculture_atlas.paths import get_project_root

TRACKED_LIBRARIES = [
    "numpy",
    "pandas",
    "geopandas",
    "shapely",
    "pyproj",
    "rasterio",
    "pyarrow",
    "matplotlib",
]


def hash_file(file_path: Path | str, algorithm: str = "sha256") -> str:
    """
    Compute the hash of a file, reading in chunks.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {file_path}")

    hasher = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            hasher.update(chunk)

    return hasher.hexdigest()


def hash_dict(data: dict, algorithm: str = "sha256") -> str:
    """Hash of a dictionary, JSON-serialised with sorted keys."""
    content = json.dumps(data, sort_keys=True, default=str)
    hasher = hashlib.new(algorithm)
    hasher.update(content.encode("utf-8"))
    return hasher.hexdigest()


def hash_config(config_path: Path | str) -> str:
    """
    Content hash of a YAML or JSON config.

    The file is parsed and re-serialised, so comments and key order do not
    change the digest. Other file types are hashed raw.
    """
    config_path = Path(config_path)

    if config_path.suffix in (".yml", ".yaml"):
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    elif config_path.suffix == ".json":
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    else:
        return hash_file(config_path)

    return hash_dict(data if isinstance(data, dict) else {"value": data})


def _git(*args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=get_project_root(),
            timeout=5
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    return result.stdout.strip() if result.returncode == 0 else None


def get_code_version() -> dict[str, Any]:
    """Git commit (8 chars) and dirty flag; None outside a git checkout."""
    commit = _git("rev-parse", "--short=8", "HEAD")
    status = _git("status", "--porcelain")
    return {
        "git_commit": commit,
        "git_dirty": None if status is None else len(status) > 0,
    }


def get_library_versions() -> dict[str, str]:
    """Versions of the interpreter and the geospatial stack."""
    versions = {"python": sys.version.split()[0]}

    for lib in TRACKED_LIBRARIES:
        try:
            module = __import__(lib)
            versions[lib] = getattr(module, "__version__", "unknown")
        except ImportError:
            versions[lib] = "not installed"

    return versions


def create_metadata_sidecar(
    output_path: Path | str,
    run_id: str,
    input_files: list[Path | str] | None = None,
    config_files: list[Path | str] | None = None,
    parameters: dict[str, Any] | None = None,
    row_count: int | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the metadata sidecar dictionary for an output file.

    Args:
        output_path: Path to the output file.
        run_id: Unique run identifier.
        input_files: Input files to hash.
        config_files: Config files to hash.
        parameters: Runtime parameters.
        row_count: Rows in the output, if tabular.
        extra: Anything else worth recording.
    """
    output_path = Path(output_path)

    metadata = {
        "output_file": output_path.name,
        "output_path": str(output_path),
        "run_id": run_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "code_version": get_code_version(),
        "library_versions": get_library_versions(),
    }

    if input_files:
        metadata["input_file_hashes"] = {
            Path(f).name: hash_file(f) for f in input_files if Path(f).exists()
        }

    if config_files:
        metadata["config_hashes"] = {
            Path(f).name: hash_config(f) for f in config_files if Path(f).exists()
        }

    if parameters:
        metadata["parameters"] = parameters

    if row_count is not None:
        metadata["row_count"] = row_count

    if output_path.exists():
        metadata["output_hash"] = hash_file(output_path)

    if extra:
        metadata["extra"] = extra

    return metadata


def sidecar_path_for(output_path: Path | str) -> Path:
    output_path = Path(output_path)
    return output_path.parent / f"{output_path.stem}_metadata.json"


def write_metadata_sidecar(
    output_path: Path | str,
    run_id: str,
    input_files: list[Path | str] | None = None,
    config_files: list[Path | str] | None = None,
    parameters: dict[str, Any] | None = None,
    row_count: int | None = None,
    extra: dict[str, Any] | None = None,
) -> Path:
    """
    Write <stem>_metadata.json next to an output.

    Returns:
        Path to the written metadata file.
    """
    metadata = create_metadata_sidecar(
        output_path=output_path,
        run_id=run_id,
        input_files=input_files,
        config_files=config_files,
        parameters=parameters,
        row_count=row_count,
        extra=extra,
    )

    sidecar_path = sidecar_path_for(output_path)

    atomic_write_json(sidecar_path, metadata)

    return sidecar_path


def check_hashes_match(
    metadata_path: Path | str,
    input_files: list[Path | str] | None = None,
    config_files: list[Path | str] | None = None,
    output_files: list[Path | str] | None = None,
) -> bool:
    """
    True if the inputs and configs recorded in a sidecar are unchanged.

    The current file set must equal the recorded one, so an input added or
    removed since the last run counts as changed. A missing sidecar, input
    or output also counts as changed.
    """
    metadata_path = Path(metadata_path)

    if not metadata_path.exists():
        return False

    if output_files and not all(Path(f).exists() for f in output_files):
        return False

    with open(metadata_path, "r", encoding="utf-8") as f:
        metadata = json.load(f)

    checks = [
        (input_files, "input_file_hashes", hash_file),
        (config_files, "config_hashes", hash_config),
    ]
    for files, key, hasher in checks:
        if not files:
            continue
        stored = metadata.get(key, {})
        files = [Path(f) for f in files]
        if {f.name for f in files} != set(stored):
            return False
        for f in files:
            if not f.exists() or stored[f.name] != hasher(f):
                return False

    return True
