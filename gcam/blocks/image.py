"""Image: a depth map machined as a serpentine raster of 3D moves."""

from __future__ import annotations

import logging

import numpy as np

from gcam.blocks.base import Block
from gcam.codec.stream import (
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    scan_float_stream,
    scan_floats,
    scan_ints,
)
from gcam.constants import BlockType
from gcam.emitter import GCodeWriter
from gcam.errors import CodecError

logger = logging.getLogger(__name__)

TAG_RESOLUTION = 0x00
TAG_SIZE = 0x01
TAG_DMAP = 0x02

_DMAP_DTYPE = np.dtype("<f8")


class Image(Block):
    """Height field cut from the top of the material.

    Attributes
    ----------
    resolution : tuple of int
        ``(columns, rows)`` of the depth map.
    size : tuple of float
        ``(width, height, depth)``; ``depth`` is normally negative.
    dmap : numpy.ndarray
        ``rows x columns`` float64 grid of fractions of ``depth``.
    """

    TYPE = BlockType.IMAGE
    XML_TAG = "image"
    DEFAULT_COMMENT = "Image"
    CAPABILITIES = frozenset({"make", "scale", "clone"})
    XML_CONTAINER = True

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.resolution: tuple[int, int] = (0, 0)
        self.size: tuple[float, float, float] = (
            self.units(1.0),
            self.units(1.0),
            -project.material_size[2],
        )
        self.dmap = np.zeros((0, 0), dtype=np.float64)

    def resize(self, resolution: tuple[int, int]) -> None:
        """Set the resolution and reset the depth map to zeros."""
        cols, rows = (int(v) for v in resolution)
        self.resolution = (cols, rows)
        self.dmap = np.zeros((max(rows, 0), max(cols, 0)), dtype=np.float64)

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def raster(self) -> list[tuple[float, float, float]]:
        """Local ``(x, y, z)`` of every pixel centre in cutting order."""
        cols, rows = self.resolution
        sx, sy, sz = self.size
        points = []
        for y in range(rows):
            ypos = (y + 0.5) * sy / rows
            xs = range(cols) if y % 2 == 0 else range(cols - 1, -1, -1)
            for x in xs:
                points.append(((x + 0.5) * sx / cols, ypos, sz * float(self.dmap[y, x])))
        return points

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        tool = self._tool_or_status()
        if tool is None:
            return
        cols, rows = self.resolution
        if cols <= 0 or rows <= 0:
            logger.warning("image %r has an empty depth map; skipped", self.comment)
            return

        offset = self.offset
        w.section(f"IMAGE: {self.comment}")
        x0, y0 = offset.place((0.0, 0.0))
        w.retract(self.project.ztraverse)
        w.move_2d(x0, y0, "")
        w.plummet(0.0)
        for x, y, z in self.raster():
            px, py = offset.place((x, y))
            w.line_3d(px, py, z, "")

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def scale(self, factor: float) -> None:
        self.size = tuple(v * factor for v in self.size)

    def _copy_into(self, new: "Image") -> None:
        new.resolution = self.resolution
        new.size = self.size
        new.dmap = self.dmap.copy()

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_i32s(TAG_RESOLUTION, self.resolution)
        writer.tag_f64s(TAG_SIZE, self.size)
        writer.tag_raw(TAG_DMAP, self.dmap.astype(_DMAP_DTYPE).tobytes())

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_RESOLUTION:
            self.resize(reader.read_i32s(tag, dsize, 2))
        elif tag == TAG_SIZE:
            self.size = reader.read_f64s(tag, dsize, 3)
        elif tag == TAG_DMAP:
            if dsize != self.dmap.size * _DMAP_DTYPE.itemsize:
                raise CodecError(
                    f"image depth map is {dsize} bytes, expected "
                    f"{self.dmap.size * _DMAP_DTYPE.itemsize}"
                )
            raw = np.frombuffer(reader.read_bytes(dsize), dtype=_DMAP_DTYPE)
            self.dmap = raw.astype(np.float64).reshape(self.dmap.shape)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_ints("resolution", self.resolution)
        writer.attr_flts("size", self.size)

    def _xml_body(self, writer: XmlWriter, depth: int) -> None:
        for row in self.dmap:
            writer.indent(depth)
            writer.write("".join(f"{float(v):f} " for v in row))
            writer.write("\n")

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "resolution":
            res = scan_ints(value, 2)
            if res is not None:
                self.resize(res)
        elif name == "size":
            size = scan_floats(value, 3)
            if size is not None:
                self.size = size

    def xml_text(self, text: str) -> None:
        """Fill the depth map row by row; surplus values are ignored."""
        values = scan_float_stream(text.strip())[: self.dmap.size]
        self.dmap.reshape(-1)[: len(values)] = values
