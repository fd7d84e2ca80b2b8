"""Tests for the export_project command-line script."""

from __future__ import annotations

from pathlib import Path

import pytest

from gcam.blocks import DrillHoles, Point, Tool
from gcam.project import Project
from gcam.scripts.export_project import main
from gcam.utils.logging_config import pop_context, setup_logging


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def quiet_logging():
    """main() installs a stderr handler; put the root logger back afterwards."""
    yield
    setup_logging("WARNING", to_stderr=False, capture_warnings=False)
    pop_context()


@pytest.fixture()
def saved_project(tmp_path: Path) -> Path:
    """A small drilling program saved in the binary format."""
    project = Project()
    project.name = "bracket"
    project.new_program()
    project.insert_before_end(Tool(project))
    holes = project.insert_before_end(DrillHoles(project))
    for xy in [(0.0, 0.0), (10.0, 0.0)]:
        pt = holes.append(Point(project))
        pt.p = xy
    path = tmp_path / "bracket.gcam"
    project.save(path)
    return path


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestExport:
    def test_export_to_output(self, saved_project: Path, tmp_path: Path, capsys) -> None:
        out = tmp_path / "out" / "bracket.ngc"
        assert main([str(saved_project), "-o", str(out), "--log-level", "WARNING"]) == 0
        code = out.read_text()
        assert "M30" in code
        assert "G83" in code
        printed = capsys.readouterr().out
        assert "Project: bracket" in printed
        assert "Drill Holes" in printed
        assert f"G-code to {out}" in printed

    def test_default_output_next_to_project(self, saved_project: Path) -> None:
        assert main([str(saved_project), "--log-level", "WARNING"]) == 0
        assert saved_project.with_suffix(".ngc").exists()

    def test_convert_only(self, saved_project: Path, tmp_path: Path, capsys) -> None:
        target = tmp_path / "bracket.gcamx"
        assert main([str(saved_project), "--convert", str(target), "--log-level", "WARNING"]) == 0
        assert target.read_text().startswith("<?xml")
        assert not saved_project.with_suffix(".ngc").exists()
        assert "Converted to" in capsys.readouterr().out
        converted = Project.load(target)
        assert [b.TYPE for b in converted.blocks] == [b.TYPE for b in Project.load(saved_project).blocks]

    def test_missing_project(self, tmp_path: Path, capsys) -> None:
        assert main([str(tmp_path / "absent.gcam"), "--log-level", "WARNING"]) == 1
        assert "Error loading project" in capsys.readouterr().out

    def test_malformed_project(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "junk.gcam"
        path.write_bytes(b"not a project file")
        assert main([str(path), "--log-level", "WARNING"]) == 1
        assert "Error loading project" in capsys.readouterr().out

    def test_bad_config(self, saved_project: Path, tmp_path: Path, capsys) -> None:
        cfg = tmp_path / "shop.yaml"
        cfg.write_text("machine:\n  decimals: 42\n")
        assert main([str(saved_project), "-c", str(cfg), "--log-level", "WARNING"]) == 1
        assert "Error loading config" in capsys.readouterr().out

    def test_config_applies_line_endings(self, saved_project: Path, tmp_path: Path) -> None:
        cfg = tmp_path / "shop.yaml"
        cfg.write_text("output:\n  crlf: true\n")
        out = tmp_path / "crlf.ngc"
        assert main([str(saved_project), "-c", str(cfg), "-o", str(out), "--log-level", "WARNING"]) == 0
        assert b"\r\n" in out.read_bytes()
