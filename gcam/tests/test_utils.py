"""Tests for logging setup and the atomic file helpers."""

from __future__ import annotations

import json
import logging
import logging.handlers
from pathlib import Path

import pytest

from gcam.utils import fs
from gcam.utils.logging_config import (
    ContextFormatter,
    get_context,
    pop_context,
    push_context,
    setup_logging,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_logging():
    """Restore the root logger after a test that calls setup_logging."""
    root = logging.getLogger()
    level = root.level
    yield
    setup_logging("WARNING", to_stderr=False, capture_warnings=False)
    logging.captureWarnings(False)
    root.setLevel(level)
    pop_context()


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("gcam.test", logging.INFO, __file__, 1, msg, None, None)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("clean_logging")
class TestLogging:
    def test_idempotent(self) -> None:
        root = logging.getLogger()
        before = len(root.handlers)
        first = setup_logging("INFO")
        second = setup_logging("DEBUG")
        assert len(first) == len(second) == 1
        assert len(root.handlers) == before + 1
        assert first[0] not in root.handlers
        assert root.level == logging.DEBUG

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError):
            setup_logging("LOUD")

    def test_file_handler_writes_json(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "gcam.log"
        setup_logging("INFO", log_file, json=True, to_stderr=False, context={"app": "test"})
        logging.getLogger("gcam.test").info("exported %d lines", 12)
        for handler in logging.getLogger().handlers:
            handler.flush()
        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["msg"] == "exported 12 lines"
        assert entry["app"] == "test"
        assert entry["lvl"] == "INFO"

    def test_unknown_rotation(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            setup_logging("INFO", tmp_path / "x.log", rotate={"mode": "weekly"}, to_stderr=False)

    def test_size_rotation(self, tmp_path: Path) -> None:
        handlers = setup_logging(
            "INFO", tmp_path / "x.log", rotate={"mode": "size", "max_bytes": 100}, to_stderr=False,
        )
        assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)


class TestContext:
    def test_push_and_pop(self) -> None:
        try:
            push_context(project="bracket", file="a.gcam")
            assert get_context() == {"project": "bracket", "file": "a.gcam"}
            pop_context(["file"])
            assert get_context() == {"project": "bracket"}
        finally:
            pop_context()
        assert get_context() == {}

    def test_human_format_includes_context(self) -> None:
        formatter = ContextFormatter("human", use_color=False)
        try:
            push_context(project="bracket")
            line = formatter.format(_record())
        finally:
            pop_context()
        assert "| INFO     | project=bracket | hello" in line

    def test_bad_mode(self) -> None:
        with pytest.raises(ValueError):
            ContextFormatter("xml")


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class TestFs:
    def test_atomic_write_creates_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "part.gcam"
        fs.atomic_write_bytes(target, b"\x01\x02")
        assert target.read_bytes() == b"\x01\x02"
        assert not (target.parent / "part.gcam.tmp").exists()

    def test_text_keeps_line_endings(self, tmp_path: Path) -> None:
        target = tmp_path / "part.ngc"
        fs.atomic_write_text(target, "G90\r\nM30\r\n")
        assert target.read_bytes() == b"G90\r\nM30\r\n"

    def test_overwrite(self, tmp_path: Path) -> None:
        target = tmp_path / "part.ngc"
        fs.atomic_write_text(target, "old")
        fs.atomic_write_text(target, "new")
        assert target.read_text() == "new"

    def test_yaml_round_trip(self, tmp_path: Path) -> None:
        doc = {"schema": "project.v1", "machine": {"decimals": 4, "name": "router"}}
        path = tmp_path / "cfg.yaml"
        fs.atomic_yaml_dump(doc, path)
        assert fs.load_yaml(path) == doc
        assert path.read_text().startswith("schema:")

    def test_load_yaml_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            fs.load_yaml(tmp_path / "nope.yaml")

    def test_ensure_dir(self, tmp_path: Path) -> None:
        path = fs.ensure_dir(tmp_path / "x" / "y")
        assert path.is_dir()
        assert fs.ensure_dir(path) == path
