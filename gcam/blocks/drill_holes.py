"""DrillHoles: a list of Point children drilled to a common depth.

Two drilling motions are supported, selected project-wide:

* ``CANNED`` opens one ``G83`` cycle and lists an ``X Y`` pair per hole.
* ``SIMPLE`` spells every hole out as explicit moves, pecking down by
  ``increment`` with a rapid relief retract between pecks.
"""

from __future__ import annotations

import logging
from typing import Sequence

from gcam import optimizer
from gcam.blocks.base import AABB, NULL_AABB, Block, aabb_is_valid, find_tool
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_float, scan_int
from gcam.constants import BlockType, DrillingMotion, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import PRECISION
from gcam.pattern import pattern

logger = logging.getLogger(__name__)

TAG_NUMBER = 0x00
TAG_DEPTH = 0x01
TAG_INCREMENT = 0x02
TAG_OPTIMAL_PATH = 0x03

# Rapid back down to this fraction of the last peck depth before feeding
# again.
PECK_RELIEF_RATIO = 0.95


class DrillHoles(Block):
    """Drill every Point child to ``depth``.

    Attributes
    ----------
    depth : float
        Target z relative to the material origin (zero or negative).
    increment : float
        Peck step; zero drills each hole in one plunge.
    optimal_path : int
        Non-zero reorders holes with
        :func:`gcam.optimizer.nearest_neighbour_order` while making code.
    """

    TYPE = BlockType.DRILL_HOLES
    XML_TAG = "drill-holes"
    DEFAULT_COMMENT = "Drill Holes"
    CAPABILITIES = frozenset({"make", "move", "spin", "scale", "clone", "aabb"})
    OWNED_SIDE = -1.0
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.depth = -project.material_size[2]
        self.increment = 0.0
        self.optimal_path = 1

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def visiting_order(self) -> list[Block]:
        """Holes in the order ``make`` drills them."""
        if not self.optimal_path:
            return list(self.children)
        return optimizer.nearest_neighbour_order(
            self.children,
            position=lambda point: point.with_offset(),
            skip=lambda point: point.suppressed,
        )

    def _make(self, w: GCodeWriter) -> None:
        if not self.children or self.suppressed:
            return
        tool = self._tool_or_status()
        if tool is None:
            return

        project = self.project
        self.owned_offset.inherit(self.offset)
        safe_z = project.ztraverse
        touch_z = project.material_origin[2]
        target_z = self.depth
        canned = project.drilling_motion == DrillingMotion.CANNED

        w.section(f"DRILL HOLES: {self.comment}")

        plunge = tool.feed * tool.plunge_ratio
        if canned:
            if self.increment <= PRECISION:
                w.drill("G83", target_z, plunge, safe_z)
            else:
                w.q_drill("G83", target_z, plunge, safe_z, self.increment)

        holes = self.visiting_order()
        for point in holes:
            if point.suppressed:
                continue
            x, y = point.with_offset()
            if canned:
                w.xy_pair(x, y, point.comment)
                continue

            if self.increment < PRECISION:
                z = target_z
            elif touch_z - target_z > self.increment:
                z = touch_z - self.increment
            else:
                z = target_z
            w.move_to(x, y, z, safe_z, touch_z, tool, point.comment)
            while z > target_z:
                w.retract(safe_z)
                w.plummet(PECK_RELIEF_RATIO * z)
                if z - target_z > self.increment:
                    z -= self.increment
                else:
                    z = target_z
                w.descend(z, tool)
            w.retract(safe_z)

        if canned:
            w.command("G80", "end canned cycle")
            w.feed(tool.feed, "restore feed rate")
        w.retract(safe_z)
        logger.debug("drill holes %r: %d of %d holes", self.comment, len(holes), len(self.children))

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        """Hole centres grown by the tool radius; the sentinel when empty."""
        tool = find_tool(self)
        radius = tool.diameter / 2.0 if tool is not None else 0.0
        box = NULL_AABB
        for point in self.children:
            if point.TYPE != BlockType.POINT:
                continue
            x, y = point.p
            hole = ((x - radius, y - radius), (x + radius, y + radius))
            if not aabb_is_valid(box):
                box = hole
            else:
                box = (
                    (min(box[0][0], hole[0][0]), min(box[0][1], hole[0][1])),
                    (max(box[1][0], hole[1][0]), max(box[1][1], hole[1][1])),
                )
        return box

    def scale(self, factor: float) -> None:
        self.depth *= factor
        self.increment *= factor
        super().scale(factor)

    def pattern(
        self,
        count: int,
        delta: Sequence[float],
        datum: Sequence[float],
        angle: float,
    ) -> list[Block]:
        return pattern(self, count, delta, datum, angle)

    def _copy_into(self, new: "DrillHoles") -> None:
        new.depth = self.depth
        new.increment = self.increment
        new.optimal_path = self.optimal_path
        self._clone_children_into(new)

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        self._save_children(writer, TAG_NUMBER)
        writer.tag_f64(TAG_DEPTH, self.depth)
        writer.tag_f64(TAG_INCREMENT, self.increment)
        writer.tag_u8(TAG_OPTIMAL_PATH, self.optimal_path)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_NUMBER:
            self._load_children(reader, tag, dsize)
        elif tag == TAG_DEPTH:
            self.depth = reader.read_f64(tag, dsize)
        elif tag == TAG_INCREMENT:
            self.increment = reader.read_f64(tag, dsize)
        elif tag == TAG_OPTIMAL_PATH:
            self.optimal_path = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flt("depth", self.depth)
        writer.attr_flt("increment", self.increment)
        writer.attr_int("optimal-path", self.optimal_path)

    def _parse_attr(self, name: str, value: str) -> None:
        if name in ("depth", "increment"):
            number = scan_float(value)
            if number is not None:
                setattr(self, name, number)
        elif name == "optimal-path":
            flag = scan_int(value)
            if flag is not None:
                self.optimal_path = flag & 0xFF
