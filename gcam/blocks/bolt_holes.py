"""BoltHoles: a radial or rectangular pattern of identical round holes.

The hole arcs are derived from the pattern parameters by
:meth:`BoltHoles.rebuild` and are never persisted.  When the hole
diameter matches the tool each hole is simply drilled; otherwise it is
milled as a full circle, pass by pass down the extruder's profile,
after a scanline pocket pass when ``pocket`` is set.
"""

from __future__ import annotations

import math
from typing import Sequence

from gcam import contour, gmath
from gcam.blocks.arc import Arc
from gcam.blocks.base import AABB, NULL_AABB, Block, aabb_union
from gcam.blocks.extrusion import Extrusion
from gcam.codec.stream import (
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    scan_float,
    scan_floats,
    scan_int,
    scan_ints,
)
from gcam.constants import BlockType, BoltHolesType, DrillingMotion, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import PRECISION, Vec2
from gcam.pocket import Pocket

TAG_EXTRUSION = 0x00
TAG_POSITION = 0x01
TAG_HOLE_DIAMETER = 0x02
TAG_OFFSET_DISTANCE = 0x03
TAG_TYPE = 0x04
TAG_NUMBER = 0x05
TAG_OFFSET_ANGLE = 0x06
TAG_POCKET = 0x07


class BoltHoles(Block):
    """Pattern of ``number`` holes around or from ``position``.

    Attributes
    ----------
    type : BoltHolesType
        ``RADIAL`` places ``number[0]`` holes on a circle of radius
        ``offset_distance``, the first at ``offset_angle``.  ``MATRIX``
        places ``number[0] x number[1]`` holes on a square grid with
        pitch ``offset_distance``, visited column by column in a
        serpentine.
    hole_diameter : float
    pocket : int
        Clear the inside of each hole with a scanline pocket before its
        contour pass.  Drilled holes ignore it.
    """

    TYPE = BlockType.BOLT_HOLES
    XML_TAG = "bolt-holes"
    DEFAULT_COMMENT = "Bolt Holes"
    CAPABILITIES = frozenset({"make", "move", "spin", "scale", "clone", "aabb"})
    OWNED_SIDE = -1.0
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.position: Vec2 = (0.0, 0.0)
        self.number: tuple[int, int] = (4, 4)
        self.type: int = BoltHolesType.RADIAL
        self.hole_diameter = self.units(0.25)
        self.offset_distance = self.units(0.5)
        self.offset_angle = 0.0
        self.pocket = 0
        self.attach_extruder(Extrusion(project, self))
        self.rebuild()

    # ------------------------------------------------------------------
    # Derived holes
    # ------------------------------------------------------------------

    def hole_centers(self) -> list[Vec2]:
        """Local hole centres in machining order."""
        x, y = self.position
        pitch = self.offset_distance
        centers: list[Vec2] = []
        if self.type == BoltHolesType.RADIAL:
            count = self.number[0]
            for i in range(max(0, count)):
                angle = math.radians(self.offset_angle + 360.0 * i / count)
                centers.append((x + pitch * math.cos(angle), y + pitch * math.sin(angle)))
        elif self.type == BoltHolesType.MATRIX:
            cols, rows = self.number
            for i in range(max(0, cols)):
                for j in range(max(0, rows)):
                    row = rows - j - 1 if i % 2 else j
                    centers.append((x + i * pitch, y + row * pitch))
        return centers

    def rebuild(self) -> None:
        """Regenerate the hole arcs from the pattern parameters."""
        self.children.clear()
        radius = self.hole_diameter * 0.5
        for cx, cy in self.hole_centers():
            arc = Arc(self.project, self)
            arc.radius = radius
            arc.p = (cx - radius, cy)
            arc.start_angle = 180.0
            arc.sweep_angle = 360.0
            self.append(arc)

    def _loaded(self) -> None:
        self.rebuild()

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _make(self, w: GCodeWriter) -> None:
        if not self.children or self.suppressed:
            return
        tool = self._tool_or_status()
        if tool is None:
            return

        project = self.project
        extruder = self.extruder
        offset = self.owned_offset
        offset.inherit(self.offset)
        offset.side = -1.0
        offset.tool = tool.diameter * 0.5
        safe_z = project.ztraverse
        canned = project.drilling_motion == DrillingMotion.CANNED
        drilled = math.fabs(self.hole_diameter - tool.diameter) < PRECISION
        _, z1 = extruder.depth_range()

        w.section(f"BOLT HOLES: {self.comment}")

        if drilled and canned:
            w.drill("G81", z1, tool.feed * tool.plunge_ratio, safe_z)

        for number, hole in enumerate(self.children, start=1):
            if drilled:
                cx, cy = hole.center(EndsMode.GET_WITH_OFFSET)
                if canned:
                    w.xy_pair(cx, cy, f"hole #{number}")
                else:
                    w.move_to(
                        cx, cy, z1, safe_z, project.material_origin[2], tool, f"hole #{number}"
                    )
                continue
            self._mill_hole(w, hole, number, tool)

        if drilled:
            if canned:
                w.command("G80", "end canned cycle")
                w.feed(tool.feed, "normal feed rate")
            w.retract(safe_z)

        offset.tool = 0.0
        offset.eval = 0.0

    def _mill_hole(self, w: GCodeWriter, hole: Block, number: int, tool) -> None:
        safe_z = self.project.ztraverse
        touch_z = self.project.material_origin[2]
        w.section(f"Hole #{number}")
        w.retract(safe_z)
        for z in self.extruder.pass_depths():
            w.section(f"Pass at depth: {w.number(z)}")
            self.owned_offset.eval = self.extruder.evaluate_offset(z) or 0.0
            piece = contour.snapshot([hole])
            baked = contour.convert_to_no_offset(piece)
            if self.pocket:
                Pocket(self.project, tool).prep(piece).make(w, z, touch_z)
            e0, _ = piece[0].ends(EndsMode.GET_WITH_OFFSET)
            w.section("Hole Contour Milling Phase")
            w.move_to(e0[0], e0[1], z, safe_z, touch_z, tool, "start of contour")
            baked.z = (z, z)
            w.append(piece[0].make())
            touch_z = z
        w.retract(safe_z)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        radius = self.hole_diameter / 2.0
        box = NULL_AABB
        for hole in self.children:
            if hole.TYPE != BlockType.ARC:
                continue
            cx, cy = hole.center(EndsMode.GET)
            box = aabb_union(box, ((cx - radius, cy - radius), (cx + radius, cy + radius)))
        return box

    def move(self, delta: Sequence[float]) -> None:
        self.position = gmath.add(self.position, delta)
        self.rebuild()

    def spin(self, datum: Sequence[float], angle: float) -> None:
        self.position = gmath.spin_about(self.position, datum, angle)
        self.offset_angle = gmath.wrap_to_360(self.offset_angle + angle)
        self.rebuild()

    def scale(self, factor: float) -> None:
        self.position = gmath.mul(self.position, factor)
        self.hole_diameter *= factor
        self.offset_distance *= factor
        self.extruder.scale(factor)
        self.rebuild()

    def _copy_into(self, new: "BoltHoles") -> None:
        new.position = self.position
        new.number = self.number
        new.type = self.type
        new.hole_diameter = self.hole_diameter
        new.offset_distance = self.offset_distance
        new.offset_angle = self.offset_angle
        new.pocket = self.pocket
        new.extruder = self.extruder.clone(new)
        new.rebuild()

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        self._save_extruder(writer, TAG_EXTRUSION)
        writer.tag_f64s(TAG_POSITION, self.position)
        writer.tag_f64(TAG_HOLE_DIAMETER, self.hole_diameter)
        writer.tag_f64(TAG_OFFSET_DISTANCE, self.offset_distance)
        writer.tag_u8(TAG_TYPE, self.type)
        writer.tag_i32s(TAG_NUMBER, self.number)
        writer.tag_f64(TAG_OFFSET_ANGLE, self.offset_angle)
        writer.tag_u8(TAG_POCKET, self.pocket)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_EXTRUSION:
            self._load_extruder(reader)
        elif tag == TAG_POSITION:
            self.position = reader.read_f64s(tag, dsize, 2)
        elif tag == TAG_HOLE_DIAMETER:
            self.hole_diameter = reader.read_f64(tag, dsize)
        elif tag == TAG_OFFSET_DISTANCE:
            self.offset_distance = reader.read_f64(tag, dsize)
        elif tag == TAG_TYPE:
            self.type = reader.read_u8(tag, dsize)
        elif tag == TAG_NUMBER:
            self.number = reader.read_i32s(tag, dsize, 2)
        elif tag == TAG_OFFSET_ANGLE:
            self.offset_angle = reader.read_f64(tag, dsize)
        elif tag == TAG_POCKET:
            self.pocket = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_int("type", self.type)
        writer.attr_int("pocket", self.pocket)
        writer.attr_ints("number", self.number)
        writer.attr_flts("position", self.position)
        writer.attr_flt("hole-diameter", self.hole_diameter)
        writer.attr_flt("offset-distance", self.offset_distance)
        writer.attr_flt("offset-angle", self.offset_angle)

    def _xml_body(self, writer: XmlWriter, depth: int) -> None:
        # holes are derived, only the profile is stored
        if self.extruder is not None:
            self.extruder.save_xml(writer)

    def _parse_attr(self, name: str, value: str) -> None:
        if name in ("type", "pocket"):
            number = scan_int(value)
            if number is not None:
                setattr(self, name, number & 0xFF)
        elif name == "number":
            counts = scan_ints(value, 2)
            if counts is not None:
                self.number = counts
        elif name == "position":
            xy = scan_floats(value, 2)
            if xy is not None:
                self.position = xy
        elif name in ("hole-diameter", "offset-distance", "offset-angle"):
            number = scan_float(value)
            if number is not None:
                setattr(self, name.replace("-", "_"), number)
