"""Extrusion: the side profile a Sketch or BoltHoles contour is cut with.

The profile lives in (x, z) space: ``y`` of each child line or arc is the
depth, ``x`` the lateral offset applied to the parent contour at that
depth.  A straight vertical line (the default) cuts a plain wall; a
slanted line or an arc produces a taper or a fillet.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, Mapping

from gcam import gmath
from gcam.blocks.base import Block
from gcam.blocks.line import Line
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_float, scan_int
from gcam.constants import BlockFlags, BlockType, CutSide, EndsMode
from gcam.gmath import PRECISION, Vec2

logger = logging.getLogger(__name__)

TAG_NUMBER = 0x00
TAG_RESOLUTION = 0x01
TAG_CUT_SIDE = 0x02


def default_resolution(material_depth: float) -> float:
    """Depth step used by new extrusions: 1% of the material depth, at least 0.001."""
    return max(0.001, math.floor(100.0 * material_depth) * 0.001)


class Extrusion(Block):
    TYPE = BlockType.EXTRUSION
    XML_TAG = "extrusion"
    DEFAULT_COMMENT = "Extrusion"
    DEFAULT_FLAGS = int(BlockFlags.LOCK)
    CAPABILITIES = frozenset({"make", "scale", "clone", "ends"})
    OWNED_SIDE = 1.0
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        depth = project.material_size[2]
        self.resolution = default_resolution(depth)
        self.cut_side: int = CutSide.INSIDE
        wall = Line(project, self)
        wall.set_ends((0.0, 0.0), (0.0, -depth))
        self.append(wall)

    # ------------------------------------------------------------------
    # Profile queries
    # ------------------------------------------------------------------

    def ends(self, mode: EndsMode = EndsMode.GET) -> tuple[Vec2, Vec2]:
        """Start of the first profile element and end of the last one."""
        if not self.children:
            return (0.0, 0.0), (0.0, 0.0)
        p0, _ = self.children[0].ends(EndsMode.GET)
        _, p1 = self.children[-1].ends(EndsMode.GET)
        return p0, p1

    def evaluate_offset(self, z: float) -> float | None:
        """Lateral offset of the profile at depth *z*.

        Returns
        -------
        float or None
            x of the first profile element whose depth range spans *z*,
            or ``None`` when no element does.
        """
        for child in self.children:
            p0, p1 = child.ends(EndsMode.GET)
            if min(p0[1], p1[1]) <= z <= max(p0[1], p1[1]):
                xs = child.eval(z)
                if xs:
                    return xs[0]
                return p0[0] if gmath.is_equal(p0[1], z) else p1[0]
        return None

    def taper_exists(self) -> bool:
        """True when the profile is anything other than one vertical wall."""
        if not self.children:
            return False
        e0, _ = self.children[0].ends(EndsMode.GET)
        for child in self.children:
            if child.TYPE == BlockType.ARC:
                return True
            e1, e2 = child.ends(EndsMode.GET)
            if math.fabs(e1[0] - e0[0]) > PRECISION or math.fabs(e2[0] - e0[0]) > PRECISION:
                return True
        return False

    def depth_range(self) -> tuple[float, float]:
        """``(top, bottom)`` depth of the profile."""
        p0, p1 = self.ends(EndsMode.GET)
        return max(p0[1], p1[1]), min(p0[1], p1[1])

    def pass_depths(self, from_top: bool = False) -> Iterator[float]:
        """Depths of successive cutting passes, top to bottom.

        The first pass is one ``resolution`` below the top unless
        *from_top* is set; the last one always lands on the bottom.
        """
        z0, z1 = self.depth_range()
        step = self.resolution
        if from_top:
            z = z0
        elif z0 - z1 > step:
            z = z0 - step
        else:
            z = z1
        while z >= z1:
            yield z
            if z - z1 > step:
                z -= step
            elif z - z1 > PRECISION:
                z = z1
            else:
                break

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def scale(self, factor: float) -> None:
        self.resolution *= factor
        self._propagate("scale", lambda child: child.scale(factor))

    def _copy_into(self, new: "Extrusion") -> None:
        new.resolution = self.resolution
        new.cut_side = self.cut_side
        self._clone_children_into(new)

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        self._save_children(writer, TAG_NUMBER)
        writer.tag_f64(TAG_RESOLUTION, self.resolution)
        writer.tag_u8(TAG_CUT_SIDE, self.cut_side)

    def load_binary(self, reader: BinaryReader) -> None:
        # the persisted profile replaces the default wall
        self.children.clear()
        super().load_binary(reader)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_NUMBER:
            self._load_children(reader, tag, dsize)
        elif tag == TAG_RESOLUTION:
            self.resolution = reader.read_f64(tag, dsize)
        elif tag == TAG_CUT_SIDE:
            self.cut_side = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flt("resolution", self.resolution)
        writer.attr_int("cut-side", self.cut_side)

    def parse(self, attrs: Mapping[str, str]) -> None:
        self.children.clear()
        super().parse(attrs)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "resolution":
            resolution = scan_float(value)
            if resolution is not None:
                self.resolution = resolution
        elif name == "cut-side":
            side = scan_int(value)
            if side is not None:
                self.cut_side = side & 0xFF
