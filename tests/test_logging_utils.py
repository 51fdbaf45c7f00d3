"""
Tests for aquaculture_atlas.logging_utils module.

Tests cover:
- JSONL log file with run_id, event_type and context
- Reprojection events logged as warnings
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import json
import logging

import pytest

from aquaculture_atlas.logging_utils import (
    generate_run_id,
    get_logger,
    get_module_logger,
    log_crs_reprojected,
    log_qa_check,
    log_species_scored,
    log_step_start,
)


def read_entries(log_dir: Path) -> list[dict]:
    files = list(log_dir.glob("*.jsonl"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text().splitlines()]


def close_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.close()


class TestJsonlLogging:
    """Structured log output."""

    def test_run_id_format(self):
        run_id = generate_run_id()
        date, time, suffix = run_id.split("_")
        assert len(date) == 8 and len(time) == 6 and len(suffix) == 8

    def test_events_written_as_jsonl(self, tmp_path):
        logger = get_logger("test_jsonl", run_id="run_a", log_dir=tmp_path)
        try:
            log_step_start(logger, "classify", species="oyster")
            log_crs_reprojected(logger, "depth", "EPSG:3857", "EPSG:4326", "CRS mismatch")
        finally:
            close_handlers(logger)

        entries = read_entries(tmp_path)
        assert all(e["run_id"] == "run_a" for e in entries)
        assert entries[0]["event_type"] == "logger_init"

        step = entries[1]
        assert step["event_type"] == "step_start"
        assert step["context"] == {"step_name": "classify", "species": "oyster"}

        reprojected = entries[2]
        assert reprojected["level"] == "WARNING"
        assert reprojected["event_type"] == "crs_reprojected"
        assert reprojected["context"]["target_crs"] == "EPSG:4326"

    def test_failed_qa_logged_as_error(self, tmp_path):
        logger = get_logger("test_qa_log", run_id="run_b", log_dir=tmp_path)
        try:
            log_qa_check(logger, "unique_ids", False, "Found 1 duplicate IDs")
        finally:
            close_handlers(logger)

        entry = read_entries(tmp_path)[-1]
        assert entry["level"] == "ERROR"
        assert entry["context"]["passed"] is False

    def test_species_scored_event(self, tmp_path):
        logger = get_logger("test_scored", run_id="run_d", log_dir=tmp_path)
        try:
            log_species_scored(logger, "oyster", 35, 1234.5, 1200.0)
        finally:
            close_handlers(logger)

        entry = read_entries(tmp_path)[-1]
        assert entry["event_type"] == "species_scored"
        assert entry["message"] == "oyster: 35 suitable cells, 1,234.5 km² suitable, 1,200.0 km² within zones"
        assert entry["context"]["zone_suitable_area_km2"] == 1200.0

    def test_logger_reused(self, tmp_path):
        first = get_logger("test_reuse", run_id="run_c", log_dir=tmp_path)
        second = get_logger("test_reuse", run_id="run_c", log_dir=tmp_path)
        try:
            assert first is second
        finally:
            close_handlers(first)


class TestModuleLogger:
    """Library code falls back to module loggers."""

    def test_supplied_logger_returned(self):
        logger = logging.getLogger("supplied")
        assert get_module_logger(logger, "ignored") is logger

    def test_default_is_named_logger(self):
        assert get_module_logger(None, "aquaculture_atlas.zonal").name == "aquaculture_atlas.zonal"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
