"""Tests for per-block G-code generation."""

from __future__ import annotations

import re

import numpy as np
import pytest

from gcam.blocks import (
    Begin,
    BoltHoles,
    Code,
    DrillHoles,
    End,
    Image,
    Point,
    Sketch,
    Stl,
    Template,
    Tool,
)
from gcam.constants import BlockFlags, CutSide, Driver, DrillingMotion, MachineOption, Units
from gcam.project import Project


def _xs(code: str) -> list[float]:
    return [float(v) for v in re.findall(r"X(-?\d+\.\d+)", code)]


def _holes(project: Project, points: list[tuple[float, float]]) -> DrillHoles:
    holes = project.append(DrillHoles(project))
    for xy in points:
        pt = holes.append(Point(project))
        pt.p = xy
    return holes


# ---------------------------------------------------------------------------
# Begin / End
# ---------------------------------------------------------------------------


class TestBeginEnd:
    def test_begin_preamble(self, project: Project) -> None:
        project.name = "bracket"
        code = Begin(project).make()
        assert "(Project: bracket)" in code
        assert "(Material Size: X=1.00000 Y=1.00000 Z=1.00000)" in code
        assert "\n(BEGIN: Initialize Mill)\n\n" in code
        assert "(Machine coordinates)" in code
        assert code.endswith("G21 (units are millimeters)\nG90 (absolute positioning)\n")

    def test_begin_inch_and_workspace(self, project: Project) -> None:
        project.units = Units.INCH
        begin = Begin(project)
        begin.coordinate_system = 1
        code = begin.make()
        assert "G54 (workspace 1)" in code
        assert "G20 (units are inches)" in code

    def test_haas_wrapping(self, project: Project) -> None:
        project.driver = Driver.HAAS
        project.project_number = 42
        assert Begin(project).make().startswith("%\nO00042\n")
        assert End(project).make().endswith("M30 (program end and reset)\n%\n")

    def test_end_parks(self, project: Project) -> None:
        code = End(project).make()
        assert "G00 Z25.00000 (retract)" in code
        assert "G00 X0.00000 Y0.00000 (move to parking position)" in code
        assert code.endswith("M30 (program end and reset)\n")

    def test_end_homes_with_switches(self, project: Project) -> None:
        project.machine_options = MachineOption.HOME_SWITCHES
        project.ztraverse = 2.0
        code = End(project).make()
        assert "G28 Z2.00000 (return to home)" in code
        assert "parking" not in code


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------


class TestTool:
    def test_feed_from_material_table(self, project: Project) -> None:
        tool = Tool(project)
        assert tool.feed == pytest.approx(0.1 * 25.4)
        assert tool.plunge_ratio == pytest.approx(0.1)

    def test_plunge_ratio_override(self, project: Project) -> None:
        project.tool_plunge_ratio = 0.5
        assert Tool(project).plunge_ratio == pytest.approx(0.5)

    def test_minimal_tool_change(self, project: Project) -> None:
        tool = Tool(project)
        tool.diameter = 3.0
        code = tool.make()
        assert code.startswith("\n(TOOL CHANGE: Tool Change)\n\n")
        assert "(Tool Diameter: 3.000000)" in code
        assert "M05" not in code
        assert code.endswith("F2.540 (set feed rate)\n")

    def test_full_machine(self, project: Project) -> None:
        project.machine_options = (
            MachineOption.SPINDLE_CONTROL
            | MachineOption.AUTO_TOOL_CHANGE
            | MachineOption.COOLANT
        )
        tool = Tool(project)
        tool.label = "endmill"
        tool.number = 3
        code = tool.make()
        assert "M05 (spindle off)" in code
        assert "M06 T03 (endmill)" in code
        assert "S2000 (set spindle speed)" in code
        assert "M03 (spindle on)" in code
        assert "M08 (coolant on)" in code


# ---------------------------------------------------------------------------
# Drill holes
# ---------------------------------------------------------------------------


class TestDrillHoles:
    def test_canned_cycle_in_nearest_order(self, project: Project, tool: Tool) -> None:
        holes = _holes(project, [(0.0, 0.0), (10.0, 0.0), (1.0, 0.0)])
        code = holes.make()
        assert "G83 Z-1.00000 F0.254 R0.00000 X0.00000 Y0.00000 (Point)\n" in code
        assert code.index("X1.00000 Y0.00000") < code.index("X10.00000 Y0.00000")
        assert "G80 (end canned cycle)" in code
        assert "F2.540 (restore feed rate)" in code

    def test_peck_increment_in_canned_cycle(self, project: Project, tool: Tool) -> None:
        holes = _holes(project, [(0.0, 0.0)])
        holes.increment = 0.25
        assert "G83 Z-1.00000 F0.254 R0.00000 Q0.25000 " in holes.make()

    def test_duplicates_and_suppressed_are_skipped(self, project: Project, tool: Tool) -> None:
        holes = _holes(project, [(0.0, 0.0), (5.0, 0.0), (0.0, 0.0)])
        holes.children[1].flags |= BlockFlags.SUPPRESS
        code = holes.make()
        assert code.count("(Point)") == 1

    def test_simple_motion_pecks(self, project: Project, tool: Tool) -> None:
        project.drilling_motion = DrillingMotion.SIMPLE
        holes = _holes(project, [(2.0, 3.0)])
        holes.increment = 0.4
        code = holes.make()
        assert "G83" not in code
        assert "G00 X2.00000 Y3.00000 (move to Point)" in code
        assert code.count("(slow plunge)") == 3
        assert "G00 Z-0.38000 (fast plunge)" in code
        assert "G01 Z-1.00000" in code
        assert code.endswith("G00 Z0.00000 (retract)\n")

    def test_repeated_make_gives_same_code(self, project: Project, tool: Tool) -> None:
        project.drilling_motion = DrillingMotion.SIMPLE
        holes = _holes(project, [(0.0, 0.0), (10.0, 0.0)])
        first = holes.make()
        assert "G00 X0.00000 Y0.00000 (move to Point)" in first
        assert holes.make() == first

    def test_make_all_tracks_position_across_blocks(self, project: Project, tool: Tool) -> None:
        project.drilling_motion = DrillingMotion.SIMPLE
        _holes(project, [(0.0, 0.0)])
        _holes(project, [(0.0, 0.0)])
        code = project.make_all()
        # the second block starts where the first one left the tool
        assert code.count("G00 X0.00000 Y0.00000 (move to Point)") == 1
        assert project.make_all() == code

    def test_missing_tool_sets_status(self, project: Project) -> None:
        holes = _holes(project, [(0.0, 0.0)])
        assert holes.make() == ""
        assert holes.status == "No tool found"

    def test_status_recovers(self, project: Project) -> None:
        holes = _holes(project, [(0.0, 0.0)])
        holes.make()
        project.blocks.insert(0, Tool(project))
        assert holes.make() != ""
        assert holes.status == "OK"

    def test_pattern(self, project: Project) -> None:
        holes = _holes(project, [(0.0, 0.0)])
        created = holes.pattern(3, (10.0, 0.0), (0.0, 0.0), 0.0)
        assert len(created) == 2
        assert [pt.p for pt in holes.children] == [(0.0, 0.0), (10.0, 0.0), (20.0, 0.0)]

    def test_pattern_single_count_is_noop(self, project: Project) -> None:
        holes = _holes(project, [(0.0, 0.0)])
        assert holes.pattern(1, (10.0, 0.0), (0.0, 0.0), 0.0) == []
        assert len(holes.children) == 1


# ---------------------------------------------------------------------------
# Bolt holes
# ---------------------------------------------------------------------------


class TestBoltHoles:
    def test_drilled_when_tool_matches(self, project: Project) -> None:
        tool = project.append(Tool(project))
        tool.diameter = 6.25
        bolts = project.append(BoltHoles(project))
        code = bolts.make()
        assert "G81 Z-1.00000" in code
        assert code.count("(hole #") == 4
        assert re.search(r"X12\.50000 Y-?0\.00000 \(hole #1\)", code)
        assert "G80 (end canned cycle)" in code

    def test_milled_when_tool_is_smaller(self, project: Project, tool: Tool) -> None:
        bolts = project.append(BoltHoles(project))
        bolts.number = (2, 2)
        bolts.rebuild()
        code = bolts.make()
        assert "G81" not in code
        assert "(Hole #1)" in code and "(Hole #2)" in code
        assert "G02" in code or "G03" in code
        # offset state is reset once the holes are cut
        assert bolts.owned_offset.tool == 0.0

    def test_pocket_clears_each_hole(self, project: Project, tool: Tool) -> None:
        project.material_size = (30.0, 30.0, 1.0)
        bolts = project.append(BoltHoles(project))
        bolts.number = (1, 1)
        bolts.position = (0.0, 10.0)
        bolts.pocket = 1
        bolts.rebuild()
        code = bolts.make()
        passes = code.count("(Pass at depth:")
        assert passes >= 1
        assert code.count("(Preliminary Pocket Milling Phase, Strategy: Traditional)") == passes
        # hole centre (12.5, 10), milled radius 2.125: rows 9, 10 and 11 fit the tool
        assert code.count("(move to next segment)") == 3 * passes
        assert "G00 X14.17500 Y9.00000 (move to next segment)" in code
        assert code.index("(Preliminary Pocket") < code.index("(Hole Contour Milling Phase)")

    def test_no_pocket_by_default(self, project: Project, tool: Tool) -> None:
        project.material_size = (30.0, 30.0, 1.0)
        bolts = project.append(BoltHoles(project))
        assert "Pocket" not in bolts.make()


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------


class TestCode:
    def test_text_is_copied_verbatim(self, project: Project) -> None:
        code = project.append(Code(project))
        code.text = "M8 (coolant on)\nG04 P2"
        assert code.make() == "\n(CODE: Code)\n\nM8 (coolant on)\nG04 P2\n"

    def test_empty_block_writes_placeholder(self, project: Project) -> None:
        code = project.append(Code(project))
        assert code.make() == "\n(CODE: Code)\n\n(Insert Custom G-Code Here)\n"

    def test_suppressed(self, project: Project) -> None:
        code = project.append(Code(project))
        code.text = "M8"
        code.flags |= BlockFlags.SUPPRESS
        assert code.make() == ""

    def test_position_is_unknown_afterwards(self, project: Project, tool: Tool) -> None:
        project.drilling_motion = DrillingMotion.SIMPLE
        _holes(project, [(0.0, 0.0)])
        project.append(Code(project)).text = "G00 X50 Y50"
        _holes(project, [(0.0, 0.0)])
        code = project.make_all()
        assert code.count("G00 X0.00000 Y0.00000 (move to Point)") == 2

    def test_inside_template(self, project: Project) -> None:
        template = project.append(Template(project))
        template.append(Code(project)).text = "M9\n"
        assert template.make().endswith("\n(CODE: Code)\n\nM9\n")


# ---------------------------------------------------------------------------
# Sketch
# ---------------------------------------------------------------------------


class TestSketch:
    @pytest.fixture()
    def sketch(self, project: Project, tool: Tool, add_square) -> Sketch:
        sketch = project.append(Sketch(project))
        add_square(sketch)
        return sketch

    def test_closed_square(self, sketch: Sketch) -> None:
        assert sketch.is_closed()
        assert sketch.is_joined()

    def test_open_chain(self, sketch: Sketch) -> None:
        sketch.remove(sketch.children[-1])
        assert not sketch.is_closed()
        assert not sketch.is_joined()

    def test_shuffled_square_closes_but_is_not_joined(self, sketch: Sketch) -> None:
        first = sketch.children[0]
        sketch.remove(first)
        sketch.insert(2, first)
        assert sketch.is_closed()
        assert not sketch.is_joined()

    def test_passes_reach_bottom(self, sketch: Sketch) -> None:
        code = sketch.make()
        assert "\n(SKETCH: Sketch)\n\n" in code
        assert "(Pass at depth: -0.10000)" in code
        assert "(Pass at depth: -1.00000)" in code
        assert "(Primary Contour Milling Phase)" in code

    def test_make_leaves_children_untouched(self, sketch: Sketch) -> None:
        before = [line.ends() for line in sketch.children]
        sketch.make()
        assert [line.ends() for line in sketch.children] == before
        assert sketch.owned_offset.tool == 0.0

    def test_along_cuts_on_the_contour(self, sketch: Sketch) -> None:
        sketch.extruder.cut_side = CutSide.ALONG
        xs = set(_xs(sketch.make()))
        assert xs <= {0.0, 10.0}

    def test_outside_grows_by_tool_radius(self, sketch: Sketch) -> None:
        sketch.extruder.cut_side = CutSide.OUTSIDE
        code = sketch.make()
        assert "X11.00000" in code
        assert "G03" in code

    def test_inside_shrinks_by_tool_radius(self, sketch: Sketch) -> None:
        sketch.extruder.cut_side = CutSide.INSIDE
        code = sketch.make()
        assert "X9.00000" in code
        assert "X11.00000" not in code
        assert "X-1.00000" not in code

    def test_inside_corners_are_trimmed(self, sketch: Sketch) -> None:
        sketch.extruder.cut_side = CutSide.INSIDE
        code = sketch.make()
        assert "transition" not in code
        assert set(_xs(code)) <= {1.0, 9.0}

    def test_pocket_clears_inside(self, project: Project, sketch: Sketch) -> None:
        project.material_size = (20.0, 20.0, 1.0)
        sketch.pocket = 1
        code = sketch.make()
        passes = code.count("(Pass at depth:")
        assert code.count("(Preliminary Pocket Milling Phase, Strategy: Traditional)") == passes
        # the 1..9 contour leaves rows y = 1..9 for the 2 mm tool
        assert code.count("(move to next segment)") == 9 * passes
        assert "G00 X8.80000 Y1.00000 (move to next segment)" in code
        first = code[code.index("(Preliminary Pocket"):code.index("(Primary Contour")]
        assert min(_xs(first)) == pytest.approx(1.2)
        assert max(_xs(first)) == pytest.approx(8.8)

    def test_pocket_needs_a_closed_inside_cut(self, project: Project, sketch: Sketch) -> None:
        project.material_size = (20.0, 20.0, 1.0)
        sketch.pocket = 1
        sketch.extruder.cut_side = CutSide.ALONG
        assert "Pocket" not in sketch.make()
        sketch.extruder.cut_side = CutSide.INSIDE
        sketch.remove(sketch.children[-1])
        assert "Pocket" not in sketch.make()

    def test_outward_taper_clears_the_ring(self, project: Project, sketch: Sketch) -> None:
        project.material_size = (40.0, 40.0, 4.0)
        sketch.extruder.cut_side = CutSide.OUTSIDE
        sketch.extruder.resolution = 2.0
        sketch.extruder.children[0].set_ends((0.0, 0.0), (8.0, -4.0))
        sketch.move((10.0, 10.0))
        code = sketch.make()
        # at -2 the profile sits 4 mm inside the bottom one
        first = code[:code.index("(Pass at depth: -4.00000)")]
        assert "(Preliminary Pocket Milling Phase, Strategy: Traditional)" in first
        assert "(Secondary Contour Milling Phase)" in first
        assert first.index("(Secondary Contour") < first.index("(Primary Contour")
        # the bottom pass matches the bottom contour
        last = code[code.index("(Pass at depth: -4.00000)"):]
        assert "Pocket" not in last
        assert "Secondary" not in last

    def test_without_tool(self, project: Project, add_square) -> None:
        sketch = project.append(Sketch(project))
        add_square(sketch)
        assert sketch.make() == ""
        assert sketch.status == "No tool found"


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------


class TestTemplate:
    def test_children_are_placed(self, project: Project, tool: Tool) -> None:
        template = project.append(Template(project))
        template.position = (100.0, 0.0)
        holes = template.append(DrillHoles(project))
        pt = holes.append(Point(project))
        pt.p = (1.0, 2.0)
        code = template.make()
        assert "\n(TEMPLATE: Template)\n\n" in code
        assert "X101.00000 Y2.00000 (Point)" in code

    def test_rotation(self, project: Project, tool: Tool) -> None:
        template = project.append(Template(project))
        template.rotation = 90.0
        holes = template.append(DrillHoles(project))
        pt = holes.append(Point(project))
        pt.p = (1.0, 0.0)
        template.make()
        x, y = pt.with_offset()
        assert (x, y) == pytest.approx((0.0, 1.0), abs=1e-9)

    def test_suppressed(self, project: Project, tool: Tool) -> None:
        template = project.append(Template(project))
        template.flags |= BlockFlags.SUPPRESS
        assert template.make() == ""


# ---------------------------------------------------------------------------
# Image / STL
# ---------------------------------------------------------------------------


class TestImage:
    def test_raster_serpentine(self, project: Project) -> None:
        image = Image(project)
        image.size = (2.0, 2.0, -1.0)
        image.resize((2, 2))
        image.dmap[:] = [[0.0, 0.5], [1.0, 0.0]]
        pts = image.raster()
        assert [p[:2] for p in pts] == [(0.5, 0.5), (1.5, 0.5), (1.5, 1.5), (0.5, 1.5)]
        assert [p[2] for p in pts] == pytest.approx([0.0, -0.5, 0.0, -1.0])

    def test_make(self, project: Project, tool: Tool) -> None:
        image = project.append(Image(project))
        image.resize((3, 1))
        code = image.make()
        assert "\n(IMAGE: Image)\n\n" in code
        assert code.count("G01") == 3

    def test_empty_depth_map_is_skipped(self, project: Project, tool: Tool) -> None:
        image = project.append(Image(project))
        assert image.make() == ""
        assert image.status == "OK"


class TestStl:
    @pytest.fixture()
    def pyramid(self) -> np.ndarray:
        apex = (0.5, 0.5, 1.0)
        base = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)]
        return np.array(
            [[base[i], base[(i + 1) % 4], apex] for i in range(4)],
            dtype=np.float64,
        )

    def test_layers(self, project: Project, pyramid: np.ndarray) -> None:
        stl = Stl(project)
        stl.slices = 2
        stl.set_triangles(pyramid)
        layers = stl.layers()
        assert [z for z, _ in layers] == pytest.approx([-0.5, -1.0])
        # the half-height slice crosses all four faces
        assert layers[0][1].shape == (4, 2, 2)

    def test_make(self, project: Project, tool: Tool, pyramid: np.ndarray) -> None:
        stl = project.append(Stl(project))
        stl.slices = 2
        stl.set_triangles(pyramid)
        code = stl.make()
        assert "\n(STL: STL)\n\n" in code
        assert "(Slice at depth: -0.50000)" in code

    def test_empty_mesh_is_skipped(self, project: Project, tool: Tool) -> None:
        stl = project.append(Stl(project))
        assert stl.make() == ""
