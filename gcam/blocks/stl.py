"""Stl: a triangle mesh machined as stacked horizontal slice contours.

The mesh is positioned with its highest vertex on the material surface.
Slice ``i`` (1-based) cuts the mesh ``i * depth / slices`` below that
vertex, ``depth`` being the project's material thickness, and the
resulting segments are traced at the same depth below the material
origin.
"""

from __future__ import annotations

import logging

import numpy as np

from gcam.blocks.base import Block
from gcam.codec.stream import (
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    scan_float_stream,
    scan_int,
)
from gcam.constants import BlockType
from gcam.emitter import GCodeWriter
from gcam.errors import CodecError
from gcam.gmath import PRECISION

logger = logging.getLogger(__name__)

TAG_SLICES = 0x00
TAG_TRI_NUM = 0x01
TAG_TRI_LIST = 0x02

_TRI_DTYPE = np.dtype("<f8")
_EDGES = ((0, 1), (1, 2), (2, 0))


def slice_mesh(triangles: np.ndarray, z: float) -> np.ndarray:
    """Segments where the plane at height *z* crosses *triangles*.

    Parameters
    ----------
    triangles : numpy.ndarray
        ``(n, 3, 3)`` vertex coordinates.
    z : float
        Plane height in mesh coordinates.

    Returns
    -------
    numpy.ndarray
        ``(m, 2, 2)`` array of ``(x, y)`` segment end points.  A vertex
        lying on the plane counts as below it, so every crossed triangle
        yields exactly two edge intersections.
    """
    if triangles.size == 0:
        return np.zeros((0, 2, 2), dtype=np.float64)
    above = triangles[:, :, 2] > z
    hits = []
    masks = []
    for a, b in _EDGES:
        pa = triangles[:, a, :]
        pb = triangles[:, b, :]
        crossing = above[:, a] != above[:, b]
        dz = pb[:, 2] - pa[:, 2]
        t = np.divide(z - pa[:, 2], dz, out=np.zeros_like(dz), where=crossing)
        hits.append(pa[:, :2] + t[:, None] * (pb[:, :2] - pa[:, :2]))
        masks.append(crossing)
    hits = np.stack(hits, axis=1)
    masks = np.stack(masks, axis=1)
    cut = masks.sum(axis=1) == 2
    return hits[cut][masks[cut]].reshape(-1, 2, 2)


class Stl(Block):
    """Triangle mesh cut in ``slices`` constant-depth layers.

    Attributes
    ----------
    triangles : numpy.ndarray
        ``(n, 3, 3)`` float64 vertices in local coordinates.
    slices : int
        Number of layers between the material surface and its bottom.
    """

    TYPE = BlockType.STL
    XML_TAG = "stl"
    DEFAULT_COMMENT = "STL"
    CAPABILITIES = frozenset({"make", "scale", "clone"})
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.slices = 10
        self.triangles = np.zeros((0, 3, 3), dtype=np.float64)

    @property
    def tri_num(self) -> int:
        return int(self.triangles.shape[0])

    def set_triangles(self, triangles) -> None:
        """Replace the mesh; *triangles* must reshape to ``(n, 3, 3)``."""
        self.triangles = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)

    def layers(self) -> list[tuple[float, np.ndarray]]:
        """``(machine depth, segments)`` per slice, top to bottom."""
        if self.tri_num == 0 or self.slices <= 0:
            return []
        top = float(self.triangles[:, :, 2].max())
        step = self.project.material_size[2] / self.slices
        layers = []
        for i in range(1, self.slices + 1):
            drop = i * step
            layers.append((-drop, slice_mesh(self.triangles, top - drop)))
        return layers

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        tool = self._tool_or_status()
        if tool is None:
            return
        if self.tri_num == 0:
            logger.warning("stl %r has no triangles; skipped", self.comment)
            return

        offset = self.offset
        safe_z = self.project.ztraverse
        touch_z = self.project.material_origin[2]
        w.section(f"STL: {self.comment}")
        w.retract(safe_z)
        for z, segments in self.layers():
            w.section(f"Slice at depth: {w.number(z)}")
            for (x0, y0), (x1, y1) in segments:
                a = offset.place((float(x0), float(y0)))
                b = offset.place((float(x1), float(y1)))
                w.move_to(a[0], a[1], z, safe_z, touch_z, tool, "slice segment")
                if abs(b[0] - a[0]) > PRECISION or abs(b[1] - a[1]) > PRECISION:
                    w.line_2d(b[0], b[1], "")
            touch_z = z
        w.retract(safe_z)

    def scale(self, factor: float) -> None:
        self.triangles = self.triangles * factor

    def _copy_into(self, new: "Stl") -> None:
        new.slices = self.slices
        new.triangles = self.triangles.copy()

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_u8(TAG_SLICES, self.slices)
        writer.tag_u32(TAG_TRI_NUM, self.tri_num)
        writer.tag_raw(TAG_TRI_LIST, self.triangles.astype(_TRI_DTYPE).tobytes())

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_SLICES:
            self.slices = reader.read_u8(tag, dsize)
        elif tag == TAG_TRI_NUM:
            count = reader.read_u32(tag, dsize)
            self.triangles = np.zeros((count, 3, 3), dtype=np.float64)
        elif tag == TAG_TRI_LIST:
            expected = self.triangles.size * _TRI_DTYPE.itemsize
            if dsize != expected:
                raise CodecError(f"stl triangle list is {dsize} bytes, expected {expected}")
            raw = np.frombuffer(reader.read_bytes(dsize), dtype=_TRI_DTYPE)
            self.triangles = raw.astype(np.float64).reshape(-1, 3, 3)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_int("slices", self.slices)
        writer.attr_int("tri-num", self.tri_num)

    def _xml_body(self, writer: XmlWriter, depth: int) -> None:
        for triangle in self.triangles:
            writer.indent(depth)
            writer.write("".join(f"{float(v):f} " for v in triangle.reshape(-1)))
            writer.write("\n")

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "slices":
            slices = scan_int(value)
            if slices is not None:
                self.slices = slices & 0xFF
        elif name == "tri-num":
            count = scan_int(value)
            if count is not None and count >= 0:
                self.triangles = np.zeros((count, 3, 3), dtype=np.float64)

    def xml_text(self, text: str) -> None:
        values = scan_float_stream(text.strip())[: self.triangles.size]
        self.triangles.reshape(-1)[: len(values)] = values
