"""Tests for scanline pocket clearing."""

from __future__ import annotations

import re

import pytest

from gcam.blocks import Line, Tool
from gcam.emitter import GCodeWriter
from gcam.pocket import Pocket, PocketRow, crossings
from gcam.project import Project


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def square(project: Project) -> list[Line]:
    """Free-standing 10 mm square on a 10 x 10 mm stock."""
    project.material_size = (10.0, 10.0, 1.0)
    corners = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
    lines = []
    for i, start in enumerate(corners):
        line = Line(project)
        line.set_ends(start, corners[(i + 1) % 4])
        lines.append(line)
    return lines


class TestCrossings:
    def test_sorted_and_merged(self, square: list[Line]) -> None:
        assert crossings(square, 5.0) == pytest.approx([0.0, 10.0])
        # the bottom edge and both sides meet the row at the same two points
        assert crossings(square, 0.0) == pytest.approx([0.0, 10.0])

    def test_outside_the_contour(self, square: list[Line]) -> None:
        assert crossings(square, 12.0) == []


class TestPrep:
    def test_one_row_per_half_diameter(self, project: Project, tool: Tool, square) -> None:
        pocket = Pocket(project, tool).prep(square)
        assert [row.y for row in pocket.rows] == pytest.approx([float(y) for y in range(11)])
        assert all(row.segments == [(0.0, 10.0)] for row in pocket.rows)
        assert pocket.segment_count == 11

    def test_rows_follow_the_material_origin(self, project: Project, tool: Tool, square) -> None:
        project.material_origin = (0.0, 5.0, 0.0)
        pocket = Pocket(project, tool).prep(square)
        assert pocket.rows[0].y == pytest.approx(-5.0)
        assert pocket.rows[0].segments == []
        assert pocket.segment_count == 6

    def test_zero_diameter_tool_gives_no_rows(self, project: Project, tool: Tool, square) -> None:
        tool.diameter = 0.0
        assert Pocket(project, tool).prep(square).rows == []


class TestSubtract:
    @staticmethod
    def _pocket(project: Project, tool: Tool, segments) -> Pocket:
        pocket = Pocket(project, tool)
        pocket.rows = [PocketRow(0.0, list(segments))]
        return pocket

    def test_island_splits_a_segment(self, project: Project, tool: Tool) -> None:
        outer = self._pocket(project, tool, [(0.0, 10.0)])
        outer.subtract(self._pocket(project, tool, [(3.0, 4.0)]))
        assert outer.rows[0].segments == [(0.0, 3.0), (4.0, 10.0)]

    def test_overlaps_trim_the_ends(self, project: Project, tool: Tool) -> None:
        outer = self._pocket(project, tool, [(0.0, 10.0)])
        outer.subtract(self._pocket(project, tool, [(-1.0, 2.0), (8.0, 12.0)]))
        assert outer.rows[0].segments == [(2.0, 8.0)]

    def test_full_cover_removes_the_segment(self, project: Project, tool: Tool) -> None:
        outer = self._pocket(project, tool, [(0.0, 10.0), (20.0, 30.0)])
        outer.subtract(self._pocket(project, tool, [(-1.0, 11.0)]))
        assert outer.rows[0].segments == [(20.0, 30.0)]


class TestMake:
    def test_zig_zag_with_padding(self, project: Project, tool: Tool, square) -> None:
        w = GCodeWriter(project)
        Pocket(project, tool).prep(square).make(w, -0.5, 0.0)
        code = w.getvalue()
        assert code.startswith("\n(Preliminary Pocket Milling Phase, Strategy: Traditional)\n\n")
        assert code.count("(move to next segment)") == 11
        assert "G00 X0.20000 Y0.00000 (move to next segment)" in code
        assert "G01 X9.80000\n" in code
        # second row runs right to left
        assert "G00 Y1.00000 (move to next segment)" in code
        assert "G01 X0.20000\n" in code
        assert code.endswith("(retract)\n")
        xs = [float(v) for v in re.findall(r"X(-?\d+\.\d+)", code)]
        assert min(xs) == pytest.approx(0.2) and max(xs) == pytest.approx(9.8)

    def test_narrow_segments_are_skipped(self, project: Project, tool: Tool, square) -> None:
        tool.diameter = 9.0
        w = GCodeWriter(project)
        Pocket(project, tool).prep(square).make(w, -0.5, 0.0)
        assert "(Preliminary Pocket Milling Phase" in w.getvalue()
        assert "next segment" not in w.getvalue()

    def test_empty_pocket_writes_nothing(self, project: Project, tool: Tool, square) -> None:
        project.material_origin = (0.0, 50.0, 0.0)
        w = GCodeWriter(project)
        Pocket(project, tool).prep(square).make(w, -0.5, 0.0)
        assert w.getvalue() == ""
