"""Template: a placed, rotated group of top-level style blocks."""

from __future__ import annotations

from typing import Sequence

from gcam import gmath
from gcam.blocks.base import AABB, NULL_AABB, Block, aabb_union
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_float, scan_floats
from gcam.constants import BlockType, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import Vec2

TAG_NUMBER = 0x00
TAG_POSITION = 0x01
TAG_ROTATION = 0x02


class Template(Block):
    """Group whose children are placed at ``position`` turned by ``rotation``.

    Nested templates compound: the owned offset's origin is ``position``
    mapped through the parent's offset, and its rotation is the parent's
    rotation plus ``rotation``.
    """

    TYPE = BlockType.TEMPLATE
    XML_TAG = "template"
    DEFAULT_COMMENT = "Template"
    CAPABILITIES = frozenset({"make", "move", "spin", "flip", "scale", "clone", "aabb"})
    OWNED_SIDE = 0.0
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.position: Vec2 = (0.0, 0.0)
        self.rotation = 0.0

    def place(self) -> None:
        """Compose the owned offset from the parent's and this template's placement."""
        parent = self.offset
        offset = self.owned_offset
        offset.origin = gmath.transform(self.position, parent.rotation, parent.origin)
        offset.rotation = gmath.wrap_to_360(parent.rotation + self.rotation)

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        self.place()
        w.section(f"TEMPLATE: {self.comment}")
        for child in self.children:
            w.append(child.make())

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        """Union of the children's boxes.

        In ``GET`` mode the box is mapped through this template's own
        placement, so boxes stay comparable across nesting levels;
        ``GET_WITH_OFFSET`` boxes are already absolute.
        """
        if mode not in (EndsMode.GET, EndsMode.GET_WITH_OFFSET):
            return NULL_AABB
        box = NULL_AABB
        for child in self.children:
            if child.supports("aabb"):
                box = aabb_union(box, child.aabb(mode))
        (x0, y0), (x1, y1) = box
        if mode == EndsMode.GET and x0 < x1 and y0 < y1:
            a = gmath.transform((x0, y0), self.rotation, self.position)
            b = gmath.transform((x1, y1), self.rotation, self.position)
            box = (
                (min(a[0], b[0]), min(a[1], b[1])),
                (max(a[0], b[0]), max(a[1], b[1])),
            )
        return box

    def spin(self, datum: Sequence[float], angle: float) -> None:
        # the datum is given in the parent's frame
        local = gmath.sub(datum, self.position)
        local = gmath.rotate(local, gmath.wrap_to_360(-self.rotation))
        super().spin(local, angle)

    def flip(self, datum: Sequence[float], angle: float) -> None:
        x, y = self.position
        if gmath.is_equal(angle, 0.0):
            self.position = (x, 2.0 * datum[1] - y)
            self.rotation = gmath.wrap_to_360(360.0 - self.rotation)
        if gmath.is_equal(angle, 90.0):
            self.position = (2.0 * datum[0] - x, y)
            self.rotation = gmath.wrap_to_360(360.0 - self.rotation)
        super().flip((0.0, 0.0), angle)

    def scale(self, factor: float) -> None:
        self.position = gmath.mul(self.position, factor)
        super().scale(factor)

    def _copy_into(self, new: "Template") -> None:
        new.position = self.position
        new.rotation = self.rotation
        self._clone_children_into(new)

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        self._save_children(writer, TAG_NUMBER)
        writer.tag_f64s(TAG_POSITION, self.position)
        writer.tag_f64(TAG_ROTATION, self.rotation)

    def load_binary(self, reader: BinaryReader) -> None:
        self.children.clear()
        super().load_binary(reader)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_NUMBER:
            self._load_children(reader, tag, dsize)
        elif tag == TAG_POSITION:
            self.position = reader.read_f64s(tag, dsize, 2)
        elif tag == TAG_ROTATION:
            self.rotation = reader.read_f64(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("position", self.position)
        writer.attr_flt("rotation", self.rotation)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "position":
            xy = scan_floats(value, 2)
            if xy is not None:
                self.position = xy
        elif name == "rotation":
            angle = scan_float(value)
            if angle is not None:
                self.rotation = angle
