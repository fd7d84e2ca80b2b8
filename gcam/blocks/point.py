"""Point: a single drill location inside a DrillHoles block."""

from __future__ import annotations

from typing import Sequence

from gcam import gmath
from gcam.blocks.base import Block
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_floats
from gcam.constants import BlockType
from gcam.gmath import Vec2

TAG_POSITION = 0x00


class Point(Block):
    TYPE = BlockType.POINT
    XML_TAG = "point"
    DEFAULT_COMMENT = "Point"
    CAPABILITIES = frozenset({"move", "spin", "flip", "scale", "clone"})

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.p: Vec2 = (0.0, 0.0)

    def with_offset(self) -> Vec2:
        """Position placed by the inherited rotation and origin."""
        return self.offset.place(self.p)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def move(self, delta: Sequence[float]) -> None:
        self.p = gmath.add(self.p, delta)

    def spin(self, datum: Sequence[float], angle: float) -> None:
        self.p = gmath.spin_about(self.p, datum, angle)

    def flip(self, datum: Sequence[float], angle: float) -> None:
        self.p = gmath.flip_about(self.p, datum, angle)

    def scale(self, factor: float) -> None:
        self.p = gmath.mul(self.p, factor)

    def _copy_into(self, new: "Point") -> None:
        new.p = self.p

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_f64s(TAG_POSITION, self.p)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_POSITION:
            self.p = reader.read_f64s(tag, dsize, 2)
            return True
        return False

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("position", self.p)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "position":
            xy = scan_floats(value, 2)
            if xy is not None:
                self.p = xy
