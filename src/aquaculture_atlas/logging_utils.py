"""
Structured logging for the pipeline scripts and the library.

Scripts call get_logger(), which writes to the console and appends one JSON
object per record to logs/<script>_<run_id>.jsonl. Library functions take
an optional logger and fall back to their module logger, so they can be
used from a notebook without any setup.

JSONL entries carry timestamp, run_id, level, logger and message, plus
event_type and context when logged through one of the helpers below:

    logger_init, step_start, step_end, qa_check, crs_reprojected,
    species_scored, output_written
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from aquaculture_atlas.paths import paths, ensure_dir

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LOGGERS: dict[str, logging.Logger] = {}
_RUN_ID: str | None = None


def generate_run_id() -> str:
    """YYYYMMDD_HHMMSS_<8 hex chars>, UTC."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{stamp}_{uuid.uuid4().hex[:8]}"


def get_run_id() -> str:
    """Run id shared by every script logger and sidecar in this process."""
    global _RUN_ID
    if _RUN_ID is None:
        _RUN_ID = generate_run_id()
    return _RUN_ID


class JSONLHandler(logging.Handler):
    """Append log records to a .jsonl file, opened on first use."""

    def __init__(self, log_path: Path, run_id: str):
        super().__init__()
        self.log_path = log_path
        self.run_id = run_id
        self._file = None

    def emit(self, record: logging.LogRecord):
        try:
            if self._file is None:
                ensure_dir(self.log_path.parent)
                self._file = open(self.log_path, "a", encoding="utf-8")

            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "run_id": self.run_id,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            for key in ("event_type", "context"):
                if hasattr(record, key):
                    entry[key] = getattr(record, key)
            if record.exc_info:
                entry["exception"] = self.format(record)

            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except Exception:
            self.handleError(record)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
        super().close()


def get_logger(
    script_name: str,
    run_id: str | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    log_dir: Path | None = None,
) -> logging.Logger:
    """
    Logger for a pipeline script, created once per (script, run id).

    Args:
        script_name: e.g. "02_score_species"; also names the JSONL file.
        run_id: Becomes the process run id when given.
        log_dir: Defaults to paths.logs.
    """
    global _RUN_ID
    if run_id is not None:
        _RUN_ID = run_id
    run_id = get_run_id()

    key = f"{script_name}_{run_id}"
    if key in _LOGGERS:
        return _LOGGERS[key]

    logger = logging.getLogger(key)
    logger.setLevel(min(console_level, file_level))
    logger.handlers = []
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    logger.addHandler(console)

    jsonl = JSONLHandler(Path(log_dir or paths.logs) / f"{key}.jsonl", run_id)
    jsonl.setLevel(file_level)
    logger.addHandler(jsonl)

    _LOGGERS[key] = logger
    log_event(logger, logging.INFO, f"Logger initialized for {script_name}", "logger_init",
              script_name=script_name, run_id=run_id)
    return logger


def get_module_logger(logger: logging.Logger | None, name: str) -> logging.Logger:
    """Return the caller-supplied logger, or the module logger for library code."""
    return logger if logger is not None else logging.getLogger(name)


# =============================================================================
# Typed events
# =============================================================================

def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    event_type: str,
    **context: Any
) -> None:
    logger.log(level, message, extra={"event_type": event_type, "context": context})


def log_step_start(logger: logging.Logger, step_name: str, **context: Any) -> None:
    log_event(logger, logging.INFO, f"Starting: {step_name}", "step_start",
              step_name=step_name, **context)


def log_step_end(logger: logging.Logger, step_name: str, **context: Any) -> None:
    log_event(logger, logging.INFO, f"Completed: {step_name}", "step_end",
              step_name=step_name, **context)


def log_qa_check(
    logger: logging.Logger,
    check_name: str,
    passed: bool,
    details: str | None = None,
    **context: Any
) -> None:
    """Failed checks are logged at ERROR."""
    message = f"QA Check [{check_name}]: {'PASSED' if passed else 'FAILED'}"
    if details:
        message += f" - {details}"
    log_event(logger, logging.INFO if passed else logging.ERROR, message, "qa_check",
              check_name=check_name, passed=passed, details=details, **context)


def log_crs_reprojected(
    logger: logging.Logger,
    layer_name: str,
    source_crs: Any,
    target_crs: Any,
    reason: str,
) -> None:
    """A layer or zone table was reprojected or had a CRS assigned. Always a warning."""
    log_event(logger, logging.WARNING,
              f"Reprojecting {layer_name}: {source_crs} -> {target_crs} ({reason})",
              "crs_reprojected",
              layer=layer_name, source_crs=str(source_crs),
              target_crs=str(target_crs), reason=reason)


def log_species_scored(
    logger: logging.Logger,
    species: str,
    suitable_cells: int,
    total_km2: float,
    zone_km2: float,
) -> None:
    log_event(logger, logging.INFO,
              f"{species}: {suitable_cells:,} suitable cells, {total_km2:,.1f} km² suitable, "
              f"{zone_km2:,.1f} km² within zones",
              "species_scored",
              species=species, suitable_cells=suitable_cells,
              total_suitable_area_km2=total_km2, zone_suitable_area_km2=zone_km2)


def log_output_written(
    logger: logging.Logger,
    output_path: str | Path,
    row_count: int | None = None,
    **context: Any
) -> None:
    message = f"Output written: {output_path}"
    if row_count is not None:
        message += f" ({row_count:,} rows)"
    log_event(logger, logging.INFO, message, "output_written",
              output_path=str(output_path), row_count=row_count, **context)
