"""Sketch: a 2D contour of lines and arcs milled down an extrusion profile.

``make`` never edits the sketch's own children.  It works on snapshots:
the children are merged into contiguous chains once, then for every depth
pass each chain is re-snapshotted with the pass's tool and profile
offsets baked in.  Lines the offsets made cross are trimmed back to the
crossing, and the gaps opened between the other neighbouring pieces are
closed with transition arcs before the chain is emitted.  With
``pocket`` set, a closed chain's inside is cleared by a scanline
:class:`~gcam.pocket.Pocket` before its contour pass.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from gcam import contour, gmath
from gcam.blocks.arc import Arc
from gcam.blocks.base import AABB, NULL_AABB, Block, aabb_union
from gcam.blocks.extrusion import Extrusion
from gcam.blocks.line import Line
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_floats, scan_int
from gcam.constants import BlockType, CutSide, EndsMode
from gcam.emitter import GCodeWriter
from gcam.gmath import PRECISION, TOLERANCE, Vec2
from gcam.offset import Offset
from gcam.pattern import pattern
from gcam.pocket import Pocket

logger = logging.getLogger(__name__)

TAG_EXTRUSION = 0x00
TAG_NUMBER = 0x01
TAG_TAPER_OFFSET = 0x04
TAG_POCKET = 0x05
TAG_ZERO_PASS = 0x06
TAG_HELICAL = 0x07


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _heading(dx: float, dy: float) -> float:
    return math.degrees(math.atan2(dy, dx))


def inside(chain: Sequence[Block]) -> float:
    """Side of the chain its interior lies on: -1 right, +1 left.

    Adds up the signed heading changes of a tangent travelling along the
    chain (closing from the last piece back to the first); a closed loop
    sums to about +360 when it turns left overall.
    """
    swept = 0.0
    first = prior = 0.0
    for i, block in enumerate(chain):
        if block.TYPE == BlockType.LINE:
            heading = _heading(block.p1[0] - block.p0[0], block.p1[1] - block.p0[1])
            if i == 0:
                first = heading
            else:
                swept += gmath.wrap_signed(heading - prior)
            prior = heading
        elif block.TYPE == BlockType.ARC:
            sweep = block.sweep_angle
            if sweep < 0.0:
                enter = gmath.wrap_signed(block.start_angle - 90.0)
            else:
                enter = gmath.wrap_signed(block.start_angle + 90.0)
            leave = gmath.wrap_signed(enter + sweep)
            if i == 0:
                first = enter
                swept += sweep
            else:
                swept += gmath.wrap_signed(enter - prior) + sweep
            prior = leave
    if len(chain) > 1:
        swept += gmath.wrap_signed(first - prior)
    return -1.0 if swept < 0.0 else 1.0


def _transition(current: Block, following: Block, baked: Offset) -> Block:
    """Arc (or, failing that, a line) bridging *current*'s end to *following*'s start."""
    _, p0 = current.ends(EndsMode.GET)
    p1, _ = following.ends(EndsMode.GET)
    _, n0 = current.ends(EndsMode.GET_NORMAL)
    n1, _ = following.ends(EndsMode.GET_NORMAL)
    parent = current.parent
    bridge: Block | None = None

    a = n0[1] * n1[0] - n0[0] * n1[1]
    if math.fabs(a) > PRECISION:
        # the centre is where the two end normals cross
        b = (p0[0] - p1[0]) * n0[1] - (p0[1] - p1[1]) * n0[0]
        f = b / a
        centre = (p1[0] + f * n1[0], p1[1] + f * n1[1])
        d0 = gmath.distance(p0, centre)
        d1 = gmath.distance(p1, centre)
        if math.fabs(d1 - d0) < PRECISION:
            a0 = gmath.xy_to_angle(centre, p0)
            a1 = gmath.xy_to_angle(centre, p1)
            bridge = Arc(current.project, parent)
            bridge.p = p0
            bridge.radius = d0
            bridge.start_angle = a0
            bridge.sweep_angle = gmath.wrap_signed(a1 - a0)
    else:
        chord = gmath.unit(gmath.sub(p1, p0))
        if math.fabs(math.fabs(gmath.dot(chord, n1)) - 1.0) < PRECISION:
            centre = gmath.mul(gmath.add(p0, p1), 0.5)
            bridge = Arc(current.project, parent)
            bridge.p = p0
            bridge.radius = gmath.distance(p0, p1) / 2.0
            bridge.start_angle = gmath.xy_to_angle(centre, p0)
            bridge.sweep_angle = 180.0
            enter, _ = bridge.ends(EndsMode.GET_TANGENT)
            _, leave = current.ends(EndsMode.GET_TANGENT)
            if gmath.dot(leave, enter) < 0.0:
                bridge.sweep_angle = -180.0

    if bridge is None:
        bridge = Line(current.project, parent)
        bridge.set_ends(p0, p1)
    bridge.comment = "transition"
    bridge.offset_override = baked
    return bridge


def trim_intersections(chain: list[Block], closed: bool) -> int:
    """Cut neighbouring baked lines that cross each other back to the crossing.

    Offsetting a corner inwards makes its two lines overrun each other;
    trimming them there leaves nothing for :func:`insert_transitions` to
    bridge.  Returns the number of corners trimmed.
    """
    count = len(chain)
    pairs = count if closed and count > 2 else count - 1
    trimmed = 0
    for i in range(max(0, pairs)):
        current = chain[i]
        following = chain[(i + 1) % count]
        if current.TYPE != BlockType.LINE or following.TYPE != BlockType.LINE:
            continue
        if gmath.distance(current.p1, following.p0) < TOLERANCE:
            continue
        point = gmath.segment_intersection(current.p0, current.p1, following.p0, following.p1)
        if point is None:
            continue
        current.set_ends(current.p0, point)
        following.set_ends(point, following.p1)
        trimmed += 1
    return trimmed


def insert_transitions(chain: list[Block], closed: bool, baked: Offset) -> int:
    """Close every gap between consecutive pieces of a baked chain in place.

    When *closed*, the last piece is also bridged to the first one.
    Returns the number of pieces inserted.
    """
    inserted = 0
    i = 0
    while i < len(chain):
        if i + 1 < len(chain):
            following = chain[i + 1]
        elif closed:
            following = chain[0]
        else:
            break
        current = chain[i]
        _, p0 = current.ends(EndsMode.GET)
        p1, _ = following.ends(EndsMode.GET)
        if gmath.distance(p0, p1) < TOLERANCE:
            i += 1
            continue
        chain.insert(i + 1, _transition(current, following, baked))
        inserted += 1
        i += 2
    return inserted


# ---------------------------------------------------------------------------
# Sketch
# ---------------------------------------------------------------------------


class Sketch(Block):
    """Contour of Line and Arc children cut along an extrusion profile.

    Attributes
    ----------
    taper_offset : Vec2
        Origin shift reached at the bottom of the profile, interpolated
        linearly with depth.
    pocket : int
        Clear the inside of closed contours ahead of each inside-cut
        pass.  Tapered profiles clear automatically.
    zero_pass : int
        Start with a pass at the top of the profile.
    helical : int
        Ramp each pass down along closed, untapered chains.
    """

    TYPE = BlockType.SKETCH
    XML_TAG = "sketch"
    DEFAULT_COMMENT = "Sketch"
    CAPABILITIES = frozenset({"make", "move", "spin", "flip", "scale", "clone", "aabb"})
    OWNED_SIDE = 0.0
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.taper_offset: Vec2 = (0.0, 0.0)
        self.pocket = 0
        self.zero_pass = 0
        self.helical = 0
        self.attach_extruder(Extrusion(project, self))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_closed(self) -> bool:
        """True when the children can be ordered into closed loops only."""
        working = contour.snapshot(self.children)
        contour.remove_null_sections(working)
        return contour.merge_list_fragments(working)

    def is_joined(self) -> bool:
        """True when the children, in list order, form closed loops only."""
        return all(contour.is_closed(chain) for chain in contour.split_chains(self.children))

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _make(self, w: GCodeWriter) -> None:
        if not self.children or self.suppressed:
            return
        tool = self._tool_or_status()
        if tool is None:
            return

        extruder = self.extruder
        w.section(f"SKETCH: {self.comment}")

        tapered = extruder.taper_exists()
        z0, z1 = extruder.depth_range()
        sorted_blocks = contour.snapshot(self.children)
        contour.remove_null_sections(sorted_blocks)
        contour.merge_list_fragments(sorted_blocks)

        safe_z = self.project.ztraverse
        for chain in contour.split_chains(sorted_blocks):
            closed = contour.is_closed(chain)
            helical = closed and bool(self.helical) and not tapered
            self._prepare_side(chain, closed, tool.diameter * 0.5)
            w.retract(safe_z)
            self._mill_chain(w, chain, closed, helical, z0, z1, tool)

        w.retract(safe_z)
        offset = self.owned_offset
        offset.side = 0.0
        offset.tool = 0.0
        offset.eval = 0.0

    def _prepare_side(self, chain: list[Block], closed: bool, tool_radius: float) -> None:
        offset = self.owned_offset
        offset.tool = tool_radius
        offset.side = inside(chain) if closed else 0.0
        cut_side = self.extruder.cut_side
        if cut_side == CutSide.INSIDE:
            offset.side = -offset.side
        elif cut_side == CutSide.ALONG:
            offset.side = 0.0
            offset.tool = 0.0

    def _first_depth(self, z0: float, z1: float) -> float:
        if self.zero_pass or self.helical:
            return z0
        if z0 - z1 > self.extruder.resolution:
            return z0 - self.extruder.resolution
        return z1

    def _bake(
        self, chain: list[Block], closed: bool, z: float, z0: float, z1: float,
    ) -> tuple[list[Block], Offset, float]:
        """Snapshot *chain* with the offsets of depth *z* applied.

        Returns the trimmed and bridged pieces, the identity offset they
        now share, and the profile offset used.
        """
        offset = self.owned_offset
        offset.inherit(self.offset)
        if math.fabs(z0 - z1) > PRECISION:
            ratio = (z0 - z) / (z0 - z1)
            offset.origin = gmath.add(offset.origin, gmath.mul(self.taper_offset, ratio))
        profile = self.extruder.evaluate_offset(z) or 0.0
        offset.eval = profile

        pieces = contour.snapshot(chain)
        baked = contour.convert_to_no_offset(pieces)
        trim_intersections(pieces, closed)
        insert_transitions(pieces, closed, baked)
        return pieces, baked, profile

    def _clear_pocket(
        self,
        w: GCodeWriter,
        chain: list[Block],
        pieces: list[Block],
        z: float,
        z0: float,
        z1: float,
        touch_z: float,
        profile: float,
        tool,
    ) -> None:
        """Clear material left by the contour pass of depth *z*.

        Inside cuts pocket the whole contour.  Outside cuts along a
        widening profile clear the ring between this depth's contour and
        the bottom one, then cut the bottom contour at this depth.
        """
        cut_side = self.extruder.cut_side
        if cut_side == CutSide.INSIDE:
            Pocket(self.project, tool).prep(pieces).make(w, z, touch_z)
            return
        if cut_side != CutSide.OUTSIDE:
            return

        outer, outer_baked, widest = self._bake(chain, True, z1, z0, z1)
        spread = math.fabs(widest - profile)
        if spread <= PRECISION:
            return
        if spread > tool.diameter:
            ring = Pocket(self.project, tool).prep(outer)
            ring.subtract(Pocket(self.project, tool).prep(pieces))
            ring.make(w, z, touch_z)

        # cut in the same direction as the primary contour
        contour.flip_direction(outer)
        e0, _ = outer[0].ends(EndsMode.GET_WITH_OFFSET)
        w.section("Secondary Contour Milling Phase")
        w.move_to(e0[0], e0[1], z, self.project.ztraverse, touch_z, tool, "start of contour")
        outer_baked.z = (z, z)
        for piece in outer:
            w.append(piece.make())

    def _mill_chain(
        self,
        w: GCodeWriter,
        chain: list[Block],
        closed: bool,
        helical: bool,
        z0: float,
        z1: float,
        tool,
    ) -> None:
        extruder = self.extruder
        resolution = extruder.resolution
        safe_z = self.project.ztraverse
        touch_z = self.project.material_origin[2]
        pocketed = closed and (bool(self.pocket) or extruder.taper_exists())
        z = self._first_depth(z0, z1)

        while z >= z1:
            w.section(f"Pass at depth: {w.number(z)}")

            pieces, baked, profile = self._bake(chain, closed, z, z0, z1)
            if pocketed:
                self._clear_pocket(w, chain, pieces, z, z0, z1, touch_z, profile, tool)

            e0, _ = pieces[0].ends(EndsMode.GET_WITH_OFFSET)
            w.section("Primary Contour Milling Phase")
            w.move_to(e0[0], e0[1], z, safe_z, touch_z, tool, "start of contour")

            total = contour.add_up_path_length(pieces)
            travelled = 0.0
            for piece in pieces:
                if helical and z - z1 > PRECISION and total > 0.0:
                    drop = min(resolution, z - z1)
                    top = z - drop * travelled / total
                    travelled += piece.length()
                    baked.z = (top, z - drop * travelled / total)
                else:
                    baked.z = (z, z)
                w.append(piece.make())

            touch_z = z
            if z - z1 > resolution:
                z -= resolution
            elif z - z1 > PRECISION:
                z = z1
            else:
                break

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        box = NULL_AABB
        for child in self.children:
            if child.supports("aabb"):
                box = aabb_union(box, child.aabb(mode))
        return box

    def scale(self, factor: float) -> None:
        self.taper_offset = gmath.mul(self.taper_offset, factor)
        self.extruder.scale(factor)
        super().scale(factor)

    def pattern(
        self,
        count: int,
        delta: Sequence[float],
        datum: Sequence[float],
        angle: float,
    ) -> list[Block]:
        return pattern(self, count, delta, datum, angle)

    def _copy_into(self, new: "Sketch") -> None:
        new.taper_offset = self.taper_offset
        new.pocket = self.pocket
        new.zero_pass = self.zero_pass
        new.helical = self.helical
        self._clone_children_into(new)

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        self._save_extruder(writer, TAG_EXTRUSION)
        self._save_children(writer, TAG_NUMBER)
        writer.tag_f64s(TAG_TAPER_OFFSET, self.taper_offset)
        writer.tag_u8(TAG_POCKET, self.pocket)
        writer.tag_u8(TAG_ZERO_PASS, self.zero_pass)
        writer.tag_u8(TAG_HELICAL, self.helical)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_EXTRUSION:
            self._load_extruder(reader)
        elif tag == TAG_NUMBER:
            self._load_children(reader, tag, dsize)
        elif tag == TAG_TAPER_OFFSET:
            self.taper_offset = reader.read_f64s(tag, dsize, 2)
        elif tag == TAG_POCKET:
            self.pocket = reader.read_u8(tag, dsize)
        elif tag == TAG_ZERO_PASS:
            self.zero_pass = reader.read_u8(tag, dsize)
        elif tag == TAG_HELICAL:
            self.helical = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("taper-offset", self.taper_offset)
        writer.attr_int("pocket", self.pocket)
        writer.attr_int("zero-pass", self.zero_pass)
        writer.attr_int("helical", self.helical)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "taper-offset":
            xy = scan_floats(value, 2)
            if xy is not None:
                self.taper_offset = xy
        elif name in ("pocket", "zero-pass", "helical"):
            flag = scan_int(value)
            if flag is not None:
                setattr(self, name.replace("-", "_"), flag & 0xFF)
