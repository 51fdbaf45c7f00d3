"""
Command-line interface entry points for pipeline scripts.

Entry points for the pyproject.toml [project.scripts] section:

    aquaculture-atlas-layers     # Run step 00
    aquaculture-atlas-zones      # Run step 01
    aquaculture-atlas-score      # Run step 02 (extra args are passed through)
    aquaculture-atlas-run-all    # Run full pipeline

These are wrappers around the scripts/ directory files.
"""

import subprocess
import sys

from aquaculture_atlas.paths import get_project_root

PIPELINE_STEPS = [
    ("00_prepare_layers.py", "Preparing SST and depth layers"),
    ("01_prepare_zones.py", "Preparing zones"),
    ("02_score_species.py", "Scoring species"),
]


def _run_script(script_name: str, args: list[str] | None = None) -> int:
    """Run a pipeline script and return its exit code."""
    script_path = get_project_root() / "scripts" / script_name

    if not script_path.exists():
        print(f"Error: Script not found: {script_path}", file=sys.stderr)
        return 1

    command = [sys.executable, str(script_path), *(args or [])]
    result = subprocess.run(command, cwd=get_project_root())
    return result.returncode


def run_00_layers() -> int:
    """Run step 00: Average SST, convert units, align depth."""
    return _run_script("00_prepare_layers.py", sys.argv[1:])


def run_01_zones() -> int:
    """Run step 01: Build canonical zone polygons."""
    return _run_script("01_prepare_zones.py", sys.argv[1:])


def run_02_score() -> int:
    """Run step 02: Score every configured species."""
    return _run_script("02_score_species.py", sys.argv[1:])


def run_all() -> int:
    """
    Run the full pipeline in order.

    Returns the first non-zero exit code, or 0 if all succeed.
    """
    print("=" * 60)
    print("Aquaculture Atlas - Full Pipeline")
    print("=" * 60)

    for script_name, description in PIPELINE_STEPS:
        print(f"\n[{description}]")
        print("-" * 40)

        exit_code = _run_script(script_name)

        if exit_code != 0:
            print(f"\nPipeline failed at: {script_name}")
            return exit_code

    print("\n" + "=" * 60)
    print("Full pipeline completed successfully")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(run_all())
