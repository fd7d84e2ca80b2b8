"""Tests for the block tree, geometry queries, transforms and cloning."""

from __future__ import annotations

import math

import pytest

from gcam.blocks import (
    Arc,
    BoltHoles,
    DrillHoles,
    Extrusion,
    Line,
    Point,
    Sketch,
    Template,
    Tool,
    create_block,
)
from gcam.blocks.base import NULL_AABB, aabb_is_valid, aabb_union, find_tool
from gcam.constants import BlockFlags, BlockType, EndsMode, Units
from gcam.errors import BlockError, UnsupportedOperation
from gcam.project import Project


class TestTree:
    def test_rejects_invalid_child(self, project: Project) -> None:
        holes = DrillHoles(project)
        with pytest.raises(BlockError):
            holes.append(Line(project))

    def test_rejects_invalid_top_level(self, project: Project) -> None:
        with pytest.raises(BlockError):
            project.append(Point(project))

    def test_append_sets_parent(self, project: Project) -> None:
        sketch = project.append(Sketch(project))
        line = sketch.append(Line(project))
        assert line.parent is sketch
        assert line.level() == 1
        assert sketch.level() == 0

    def test_level_is_independent_of_drill_depth(self, project: Project) -> None:
        template = project.append(Template(project))
        holes = template.append(DrillHoles(project))
        holes.append(Point(project))
        assert holes.level() == 1
        assert holes.depth == pytest.approx(-1.0)
        lines = project.summary()
        assert lines[1] == "  DRILL HOLES: Drill Holes"
        assert lines[2].startswith("    POINT:")

    def test_insert_after_and_remove(self, project: Project) -> None:
        holes = DrillHoles(project)
        a = holes.append(Point(project))
        c = holes.append(Point(project))
        b = holes.insert_after(a, Point(project))
        assert holes.children == [a, b, c]
        holes.remove(b)
        assert holes.children == [a, c]
        assert b.parent is None
        with pytest.raises(BlockError):
            holes.remove(b)

    def test_new_program_and_insert_before_end(self, project: Project) -> None:
        project.new_program()
        tool = project.insert_before_end(Tool(project))
        assert [b.TYPE for b in project.blocks] == [BlockType.BEGIN, BlockType.TOOL, BlockType.END]
        assert project.blocks[1] is tool

    def test_walk_visits_extruder_before_children(self, project: Project) -> None:
        sketch = project.append(Sketch(project))
        line = sketch.append(Line(project))
        order = list(sketch.walk())
        assert order[0] is sketch
        assert order[1] is sketch.extruder
        assert order[-1] is line

    def test_create_block_unknown_type(self, project: Project) -> None:
        with pytest.raises(BlockError):
            create_block(BlockType.BEZIER, project)

    def test_create_block_defaults(self, project: Project) -> None:
        block = create_block(BlockType.DRILL_HOLES, project)
        assert isinstance(block, DrillHoles)
        assert block.comment == "Drill Holes"
        assert block.depth == pytest.approx(-project.material_size[2])


class TestFindTool:
    def test_nearest_preceding_sibling(self, project: Project) -> None:
        first = project.append(Tool(project))
        second = project.append(Tool(project))
        holes = project.append(DrillHoles(project))
        assert find_tool(holes) is second
        assert find_tool(first) is first

    def test_searches_ancestors(self, project: Project) -> None:
        tool = project.append(Tool(project))
        template = project.append(Template(project))
        holes = template.append(DrillHoles(project))
        assert find_tool(holes) is tool

    def test_none_when_missing(self, project: Project) -> None:
        holes = project.append(DrillHoles(project))
        assert find_tool(holes) is None


class TestCapabilities:
    def test_unsupported_transform_raises(self, project: Project) -> None:
        tool = Tool(project)
        with pytest.raises(UnsupportedOperation):
            tool.move((1.0, 0.0))

    def test_unsupported_is_not_implemented(self) -> None:
        assert issubclass(UnsupportedOperation, NotImplementedError)
        assert issubclass(UnsupportedOperation, BlockError)

    def test_drill_holes_cannot_flip(self) -> None:
        assert not DrillHoles.supports("flip")
        assert Sketch.supports("flip")


class TestAabb:
    def test_sentinel_is_invalid(self) -> None:
        assert not aabb_is_valid(NULL_AABB)

    def test_union_ignores_sentinel(self) -> None:
        box = ((0.0, 0.0), (1.0, 1.0))
        assert aabb_union(NULL_AABB, box) == box
        assert aabb_union(box, NULL_AABB) == box

    def test_empty_containers(self, project: Project) -> None:
        assert DrillHoles(project).aabb() == NULL_AABB
        assert Sketch(project).aabb() == NULL_AABB

    def test_drill_holes_grow_by_tool_radius(self, project: Project, tool: Tool) -> None:
        holes = project.append(DrillHoles(project))
        for xy in [(0.0, 0.0), (10.0, 5.0)]:
            pt = holes.append(Point(project))
            pt.p = xy
        assert holes.aabb() == ((-1.0, -1.0), (11.0, 6.0))

    def test_quarter_arc(self, project: Project) -> None:
        arc = Arc(project)
        arc.p = (1.0, 0.0)
        arc.radius = 1.0
        arc.start_angle = 0.0
        arc.sweep_angle = 90.0
        (x0, y0), (x1, y1) = arc.aabb()
        assert (x0, y0) == pytest.approx((0.0, 0.0), abs=1e-9)
        assert (x1, y1) == pytest.approx((1.0, 1.0), abs=1e-9)


class TestLine:
    def test_defaults_follow_units(self, project: Project) -> None:
        line = Line(project)
        assert line.p1 == (25.0, 0.0)
        project.units = Units.INCH
        assert Line(project).p1 == (1.0, 0.0)

    def test_make_suppresses_unchanged_axis(self, project: Project) -> None:
        code = Line(project).make()
        assert code == "G01 X0.00000 Y0.00000\nG01 X25.00000 (LINE: Line)\n"

    def test_eval(self, project: Project) -> None:
        line = Line(project)
        line.set_ends((0.0, 0.0), (10.0, 10.0))
        assert line.eval(5.0) == pytest.approx([5.0])
        assert line.eval(11.0) == []

    def test_length_and_tangent(self, project: Project) -> None:
        line = Line(project)
        line.set_ends((0.0, 0.0), (3.0, 4.0))
        assert line.length() == pytest.approx(5.0)
        _, leave = line.ends(EndsMode.GET_TANGENT)
        assert leave == pytest.approx((0.6, 0.8))

    def test_suppressed_makes_nothing(self, project: Project) -> None:
        line = Line(project)
        line.flags |= BlockFlags.SUPPRESS
        assert line.make() == ""


class TestArc:
    def test_default_geometry(self, project: Project) -> None:
        arc = Arc(project)
        assert arc.center() == pytest.approx((12.5, 0.0))
        assert arc.end_point() == pytest.approx((12.5, 12.5))
        assert arc.length() == pytest.approx(12.5 * math.pi / 2.0)

    def test_make_clockwise(self, project: Project) -> None:
        code = Arc(project).make()
        assert "G02 X12.50000 Y12.50000 I12.50000" in code
        assert code.endswith("(ARC: Arc)\n")

    def test_flip_direction_keeps_shape(self, project: Project) -> None:
        arc = Arc(project)
        start, end = arc.ends()
        arc.flip_direction()
        assert arc.ends()[0] == pytest.approx(end)
        assert arc.ends()[1] == pytest.approx(start, abs=1e-9)
        assert arc.sweep_angle == pytest.approx(90.0)

    def test_eval_full_circle(self, project: Project) -> None:
        arc = Arc(project)
        arc.p = (0.0, 0.0)
        arc.radius = 1.0
        arc.start_angle = 180.0
        arc.sweep_angle = 360.0
        xs = sorted(arc.eval(0.0))
        assert xs == pytest.approx([0.0, 2.0], abs=1e-6)


class TestTransforms:
    def test_move_inverse(self, project: Project) -> None:
        line = Line(project)
        line.set_ends((1.0, 2.0), (3.0, 4.0))
        line.move((5.0, -1.0))
        line.move((-5.0, 1.0))
        assert line.ends() == ((1.0, 2.0), (3.0, 4.0))

    def test_spin_inverse(self, project: Project) -> None:
        arc = Arc(project)
        arc.p = (3.0, 1.0)
        arc.spin((1.0, 1.0), 90.0)
        assert arc.p == pytest.approx((1.0, 3.0))
        arc.spin((1.0, 1.0), -90.0)
        assert arc.p == pytest.approx((3.0, 1.0))
        assert arc.start_angle == pytest.approx(180.0)

    def test_full_turn_is_identity(self, project: Project) -> None:
        holes = DrillHoles(project)
        pt = holes.append(Point(project))
        pt.p = (4.0, -3.0)
        holes.spin((1.0, 2.0), 360.0)
        assert pt.p == pytest.approx((4.0, -3.0), abs=1e-4)

    def test_flip_twice_is_identity(self, project: Project) -> None:
        arc = Arc(project)
        arc.p = (2.0, 3.0)
        arc.flip((0.0, 0.0), 0.0)
        assert arc.p == (2.0, -3.0)
        assert arc.sweep_angle == pytest.approx(90.0)
        arc.flip((0.0, 0.0), 0.0)
        assert arc.p == (2.0, 3.0)
        assert arc.start_angle == pytest.approx(180.0)
        assert arc.sweep_angle == pytest.approx(-90.0)

    def test_sketch_move_propagates(self, project: Project, add_square) -> None:
        sketch = Sketch(project)
        lines = add_square(sketch)
        sketch.move((1.0, 1.0))
        assert lines[0].p0 == (1.0, 1.0)
        # the profile lives in depth space and is not moved
        assert sketch.extruder.children[0].p0 == (0.0, 0.0)

    def test_scale(self, project: Project) -> None:
        holes = DrillHoles(project)
        pt = holes.append(Point(project))
        pt.p = (1.0, 2.0)
        holes.scale(2.0)
        assert pt.p == (2.0, 4.0)
        assert holes.depth == pytest.approx(-2.0)


class TestClone:
    def test_clone_is_independent(self, project: Project, add_square) -> None:
        sketch = Sketch(project)
        add_square(sketch)
        copy = sketch.clone()
        assert len(copy.children) == 4
        assert all(child.parent is copy for child in copy.children)
        assert copy.extruder is not sketch.extruder
        assert copy.extruder.parent is copy
        copy.children[0].set_ends((5.0, 5.0), (6.0, 6.0))
        assert sketch.children[0].p0 == (0.0, 0.0)

    def test_owned_offset_copied_by_value(self, project: Project) -> None:
        holes = DrillHoles(project)
        copy = holes.clone()
        assert copy.owned_offset is not holes.owned_offset

    def test_clone_requires_capability(self, project: Project) -> None:
        project.new_program()
        with pytest.raises(UnsupportedOperation):
            project.blocks[0].clone()


class TestExtrusion:
    def test_default_wall(self, project: Project) -> None:
        ext = Extrusion(project)
        assert ext.depth_range() == (0.0, -1.0)
        assert not ext.taper_exists()
        assert ext.evaluate_offset(-0.5) == pytest.approx(0.0)
        assert ext.evaluate_offset(1.0) is None

    def test_pass_depths_land_on_bottom(self, project: Project) -> None:
        ext = Extrusion(project)
        ext.resolution = 0.3
        depths = list(ext.pass_depths())
        assert depths == pytest.approx([-0.3, -0.6, -0.9, -1.0])
        assert list(ext.pass_depths(from_top=True))[0] == 0.0

    def test_taper(self, project: Project) -> None:
        ext = Extrusion(project)
        ext.children[0].set_ends((0.0, 0.0), (1.0, -1.0))
        assert ext.taper_exists()
        assert ext.evaluate_offset(-0.5) == pytest.approx(0.5)


class TestBoltHoles:
    def test_radial_centers(self, project: Project) -> None:
        bolts = BoltHoles(project)
        centers = bolts.hole_centers()
        assert len(centers) == 4
        assert centers[0] == pytest.approx((12.5, 0.0))
        assert centers[1] == pytest.approx((0.0, 12.5), abs=1e-9)

    def test_matrix_serpentine(self, project: Project) -> None:
        bolts = BoltHoles(project)
        bolts.type = 1
        bolts.number = (2, 2)
        bolts.offset_distance = 1.0
        assert bolts.hole_centers() == [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0)]

    def test_rebuild_makes_full_circles(self, project: Project) -> None:
        bolts = BoltHoles(project)
        assert len(bolts.children) == 4
        assert all(arc.sweep_angle == 360.0 for arc in bolts.children)
        bolts.number = (6, 6)
        bolts.rebuild()
        assert len(bolts.children) == 6

    def test_move_moves_holes(self, project: Project) -> None:
        bolts = BoltHoles(project)
        bolts.move((10.0, 0.0))
        assert bolts.children[0].center() == pytest.approx((22.5, 0.0))
