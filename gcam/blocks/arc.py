"""Circular arc, a contour element of Sketch, Extrusion and BoltHoles.

An arc is stored by its start point ``p``, ``radius``, ``start_angle``
(the polar angle of ``p`` around the center) and a signed
``sweep_angle``: positive sweeps run counter-clockwise.
"""

from __future__ import annotations

import math
from typing import Sequence

from gcam import gmath
from gcam.blocks.base import AABB, Block
from gcam.codec.stream import (
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    scan_float,
    scan_floats,
    scan_int,
)
from gcam.constants import BlockType, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import ANGULAR_PRECISION, PRECISION, Vec2

TAG_START_POINT = 0x00
TAG_RADIUS = 0x01
TAG_START_ANGLE = 0x02
TAG_SWEEP_ANGLE = 0x03
TAG_INTERFACE = 0x04

# Widens the radius in eval() so contours that should touch a raster
# line never just miss it.
EVAL_RADIUS_FLOOR = 1e-9


class Arc(Block):
    TYPE = BlockType.ARC
    XML_TAG = "arc"
    DEFAULT_COMMENT = "Arc"
    CAPABILITIES = frozenset({
        "make", "move", "spin", "flip", "scale", "clone",
        "aabb", "ends", "eval", "length",
    })

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.p: Vec2 = (0.0, 0.0)
        self.radius = self.units(0.5)
        self.start_angle = 180.0
        self.sweep_angle = -90.0
        self.native_mode = 0

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def native_center(self) -> Vec2:
        return gmath.sub(self.p, gmath.mul(gmath.direction(self.start_angle), self.radius))

    def center(self, mode: EndsMode = EndsMode.GET) -> Vec2:
        cp = self.native_center()
        if mode == EndsMode.GET_WITH_OFFSET:
            return self.offset.place(cp)
        return cp

    def _side_factor(self) -> float:
        return self.offset.side * (-1.0 if self.sweep_angle < 0.0 else 1.0)

    def with_offset(self) -> tuple[Vec2, Vec2, Vec2, float, float]:
        """Placed arc with its radius grown or shrunk by tool and profile offsets.

        Returns
        -------
        tuple
            ``(p0, center, p1, radius, start_angle)``.  The radius never
            goes negative.
        """
        off = self.offset
        cp = off.place(self.native_center())
        start = gmath.snap_to_360(gmath.wrap_to_360(self.start_angle + off.rotation))
        radius = max(0.0, self.radius + self._side_factor() * (off.tool + off.eval))
        p0 = gmath.add(cp, gmath.mul(gmath.direction(start), radius))
        p1 = gmath.add(cp, gmath.mul(gmath.direction(start + self.sweep_angle), radius))
        return p0, cp, p1, radius, start

    def end_point(self) -> Vec2:
        cp = self.native_center()
        return gmath.add(
            cp, gmath.mul(gmath.direction(self.start_angle + self.sweep_angle), self.radius)
        )

    def midpoint(self) -> Vec2:
        cp = self.native_center()
        return gmath.add(
            cp, gmath.mul(gmath.direction(self.start_angle + self.sweep_angle / 2.0), self.radius)
        )

    def ends(self, mode: EndsMode = EndsMode.GET) -> tuple[Vec2, Vec2]:
        if mode == EndsMode.GET:
            return self.p, self.end_point()
        if mode == EndsMode.GET_WITH_OFFSET:
            p0, _, p1, _, _ = self.with_offset()
            return p0, p1
        if mode == EndsMode.GET_NORMAL:
            angle = self.start_angle + self.offset.rotation
            flip = self._side_factor()
            return (
                gmath.mul(gmath.direction(angle), flip),
                gmath.mul(gmath.direction(angle + self.sweep_angle), flip),
            )
        if mode == EndsMode.GET_TANGENT:
            if self.sweep_angle < 0.0:
                enter = gmath.wrap_to_360(self.start_angle - 90.0)
            else:
                enter = gmath.wrap_to_360(self.start_angle + 90.0)
            leave = gmath.wrap_to_360(enter + self.sweep_angle)
            return gmath.direction(enter), gmath.direction(leave)
        raise ValueError(f"unknown ends mode {mode!r}")

    def eval(self, y: float) -> list[float]:
        """X values where the placed arc crosses height *y*.

        A tangency yields a single value, and only when one of the arc's
        endpoints sits on it; otherwise the arc merely grazes the line.
        """
        p0, cp, p1, radius, start = self.with_offset()
        if radius < PRECISION:
            return []
        radius += EVAL_RADIUS_FLOOR
        if radius < math.fabs(cp[1] - y):
            return []

        ratio = max(-1.0, min(1.0, (y - cp[1]) / radius))
        angle1 = math.degrees(math.asin(ratio))
        angle2 = 180.0 - angle1
        angle1 = gmath.wrap_to_360(angle1)

        if math.fabs(angle1 - angle2) < ANGULAR_PRECISION:
            angle = (angle1 + angle2) / 2.0
            if math.fabs(p0[0] - cp[0]) > PRECISION and math.fabs(p1[0] - cp[0]) > PRECISION:
                return []
            if gmath.angle_within_arc(start, self.sweep_angle, angle):
                return [cp[0] + radius * math.cos(math.radians(angle))]
            return []

        xs = []
        for angle in (angle1, angle2):
            if gmath.angle_within_arc(start, self.sweep_angle, angle):
                xs.append(cp[0] + radius * math.cos(math.radians(angle)))
        return xs

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        p0, cp, p1, radius, start = self.with_offset()
        x0, x1 = min(p0[0], p1[0]), max(p0[0], p1[0])
        y0, y1 = min(p0[1], p1[1]), max(p0[1], p1[1])
        if gmath.angle_within_arc(start, self.sweep_angle, 0.0):
            x1 = cp[0] + radius
        if gmath.angle_within_arc(start, self.sweep_angle, 90.0):
            y1 = cp[1] + radius
        if gmath.angle_within_arc(start, self.sweep_angle, 180.0):
            x0 = cp[0] - radius
        if gmath.angle_within_arc(start, self.sweep_angle, 270.0):
            y0 = cp[1] - radius
        return (x0, y0), (x1, y1)

    def length(self) -> float:
        return math.fabs(self.radius * 2.0 * math.pi * self.sweep_angle / 360.0)

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        text = f"ARC: {self.comment}"
        p0, cp, p1, radius, _ = self.with_offset()
        if radius < PRECISION:
            return
        if (
            gmath.is_equal(p0[0], p1[0])
            and gmath.is_equal(p0[1], p1[1])
            and not gmath.is_equal(math.fabs(self.sweep_angle), 360.0)
        ):
            return

        cw = self.sweep_angle < 0.0
        i = cp[0] - p0[0]
        j = cp[1] - p0[1]
        z = self.offset.z
        w.line_2d(p0[0], p0[1], "")
        if math.fabs(z[0] - z[1]) < PRECISION:
            w.arc_2d(cw, p1[0], p1[1], i, j, text)
        else:
            w.arc_3d(cw, p1[0], p1[1], z[1], i, j, text)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def move(self, delta: Sequence[float]) -> None:
        self.p = gmath.add(self.p, delta)

    def spin(self, datum: Sequence[float], angle: float) -> None:
        self.p = gmath.spin_about(self.p, datum, angle)
        self.start_angle = gmath.wrap_to_360(self.start_angle + angle)

    def flip(self, datum: Sequence[float], angle: float) -> None:
        if gmath.is_equal(angle, 0.0):
            self.p = gmath.flip_about(self.p, datum, 0.0)
            self.start_angle = gmath.wrap_to_360(360.0 - self.start_angle)
            self.sweep_angle = -self.sweep_angle
        if gmath.is_equal(angle, 90.0):
            self.p = gmath.flip_about(self.p, datum, 90.0)
            self.start_angle = gmath.wrap_to_360(180.0 - self.start_angle)
            self.sweep_angle = -self.sweep_angle

    def scale(self, factor: float) -> None:
        self.p = gmath.mul(self.p, factor)
        self.radius *= factor

    def flip_direction(self) -> None:
        """Reverse travel: start from the old end point, sweep back."""
        self.p = self.end_point()
        self.start_angle = gmath.snap_to_360(
            gmath.wrap_to_360(self.start_angle + self.sweep_angle)
        )
        self.sweep_angle = -self.sweep_angle

    def _copy_into(self, new: "Arc") -> None:
        new.p = self.p
        new.radius = self.radius
        new.start_angle = self.start_angle
        new.sweep_angle = self.sweep_angle
        new.native_mode = self.native_mode

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_f64s(TAG_START_POINT, self.p)
        writer.tag_f64(TAG_RADIUS, self.radius)
        writer.tag_f64(TAG_START_ANGLE, self.start_angle)
        writer.tag_f64(TAG_SWEEP_ANGLE, self.sweep_angle)
        writer.tag_u8(TAG_INTERFACE, self.native_mode)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_START_POINT:
            self.p = reader.read_f64s(tag, dsize, 2)
        elif tag == TAG_RADIUS:
            self.radius = reader.read_f64(tag, dsize)
        elif tag == TAG_START_ANGLE:
            self.start_angle = reader.read_f64(tag, dsize)
        elif tag == TAG_SWEEP_ANGLE:
            self.sweep_angle = reader.read_f64(tag, dsize)
        elif tag == TAG_INTERFACE:
            self.native_mode = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("start-point", self.p)
        writer.attr_flt("radius", self.radius)
        writer.attr_flt("start-angle", self.start_angle)
        writer.attr_flt("sweep-angle", self.sweep_angle)
        writer.attr_int("interface", self.native_mode)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "start-point":
            xy = scan_floats(value, 2)
            if xy is not None:
                self.p = xy
        elif name == "radius":
            radius = scan_float(value)
            if radius is not None:
                self.radius = radius
        elif name == "start-angle":
            angle = scan_float(value)
            if angle is not None:
                self.start_angle = gmath.wrap_to_360(angle)
        elif name == "sweep-angle":
            sweep = scan_float(value)
            if sweep is not None:
                self.sweep_angle = gmath.snap_to_720(sweep)
        elif name == "interface":
            mode = scan_int(value)
            if mode is not None:
                self.native_mode = mode & 0xFF
