"""Line segment, a contour element of Sketch and Extrusion profiles."""

from __future__ import annotations

import math
from typing import Sequence

from gcam import gmath
from gcam.blocks.base import AABB, Block
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_floats
from gcam.constants import BlockType, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import PRECISION, Vec2

TAG_POINTS = 0x00


class Line(Block):
    """Straight segment from ``p0`` to ``p1`` in local coordinates."""

    TYPE = BlockType.LINE
    XML_TAG = "line"
    DEFAULT_COMMENT = "Line"
    CAPABILITIES = frozenset({
        "make", "move", "spin", "flip", "scale", "clone",
        "aabb", "ends", "eval", "length",
    })

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.p0: Vec2 = (0.0, 0.0)
        self.p1: Vec2 = (self.units(1.0), 0.0)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def with_offset(self) -> tuple[Vec2, Vec2, Vec2]:
        """Placed endpoints shifted sideways by tool and profile offsets.

        Returns
        -------
        tuple
            ``(p0, p1, normal)``; the normal is unit length times the
            offset side, or zero for a degenerate segment.
        """
        off = self.offset
        a = off.place(self.p0)
        b = off.place(self.p1)
        dx = a[0] - b[0]
        dy = a[1] - b[1]
        mag = math.hypot(dx, dy)
        if mag > 0.0:
            normal = (-dy / mag * off.side, dx / mag * off.side)
        else:
            normal = (0.0, 0.0)
        shift = gmath.mul(normal, off.eval + off.tool)
        return gmath.add(a, shift), gmath.add(b, shift), normal

    def ends(self, mode: EndsMode = EndsMode.GET) -> tuple[Vec2, Vec2]:
        if mode == EndsMode.GET:
            return self.p0, self.p1
        if mode == EndsMode.GET_WITH_OFFSET:
            p0, p1, _ = self.with_offset()
            return p0, p1
        if mode == EndsMode.GET_NORMAL:
            _, _, normal = self.with_offset()
            return normal, normal
        if mode == EndsMode.GET_TANGENT:
            return (
                gmath.unit(gmath.sub(self.p0, self.p1)),
                gmath.unit(gmath.sub(self.p1, self.p0)),
            )
        raise ValueError(f"unknown ends mode {mode!r}")

    def set_ends(self, p0: Sequence[float], p1: Sequence[float]) -> None:
        self.p0 = gmath.vec2(p0)
        self.p1 = gmath.vec2(p1)

    def eval(self, y: float) -> list[float]:
        """X values where the placed segment crosses height *y*."""
        p0, p1, _ = self.with_offset()
        if (y - PRECISION > p0[1] and y - PRECISION > p1[1]) or (
            y + PRECISION < p0[1] and y + PRECISION < p1[1]
        ):
            return []
        dx = p0[0] - p1[0]
        dy = p0[1] - p1[1]
        if math.fabs(dx) < PRECISION:
            return [p0[0]]
        if math.fabs(dy) < PRECISION:
            return [p0[0], p1[0]]
        return [p0[0] + (y - p0[1]) / (dy / dx)]

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        p0, p1, _ = self.with_offset()
        return (
            (min(p0[0], p1[0]), min(p0[1], p1[1])),
            (max(p0[0], p1[0]), max(p0[1], p1[1])),
        )

    def length(self) -> float:
        return gmath.distance(self.p0, self.p1)

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        text = f"LINE: {self.comment}"
        p0, p1, _ = self.with_offset()
        z = self.offset.z
        w.line_2d(p0[0], p0[1], "")
        if math.fabs(z[0] - z[1]) < PRECISION:
            w.line_2d(p1[0], p1[1], text)
        else:
            w.line_3d(p1[0], p1[1], z[1], text)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def move(self, delta: Sequence[float]) -> None:
        self.p0 = gmath.add(self.p0, delta)
        self.p1 = gmath.add(self.p1, delta)

    def spin(self, datum: Sequence[float], angle: float) -> None:
        self.p0 = gmath.spin_about(self.p0, datum, angle)
        self.p1 = gmath.spin_about(self.p1, datum, angle)

    def flip(self, datum: Sequence[float], angle: float) -> None:
        self.p0 = gmath.flip_about(self.p0, datum, angle)
        self.p1 = gmath.flip_about(self.p1, datum, angle)

    def scale(self, factor: float) -> None:
        self.p0 = gmath.mul(self.p0, factor)
        self.p1 = gmath.mul(self.p1, factor)

    def flip_direction(self) -> None:
        self.p0, self.p1 = self.p1, self.p0

    def _copy_into(self, new: "Line") -> None:
        new.p0 = self.p0
        new.p1 = self.p1

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_f64s(TAG_POINTS, (*self.p0, *self.p1))

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_POINTS:
            x0, y0, x1, y1 = reader.read_f64s(tag, dsize, 4)
            self.p0 = (x0, y0)
            self.p1 = (x1, y1)
            return True
        return False

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("start-point", self.p0)
        writer.attr_flts("end-point", self.p1)

    def _parse_attr(self, name: str, value: str) -> None:
        xy = scan_floats(value, 2)
        if xy is None:
            return
        if name == "start-point":
            self.p0 = xy
        elif name == "end-point":
            self.p1 = xy
