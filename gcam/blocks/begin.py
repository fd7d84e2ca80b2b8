"""Program preamble: identification comments, coordinate system and units."""

from __future__ import annotations

import time

from gcam.blocks.base import Block
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_int
from gcam.constants import GCAM_VERSION, BlockType, Driver, Units
from gcam.emitter import GCodeWriter

TAG_COORDINATE_SYSTEM = 0x00


class Begin(Block):
    """First block of every program.

    ``coordinate_system`` 0 runs in machine coordinates; 1 through 6
    select the work offsets ``G54`` through ``G59``.
    """

    TYPE = BlockType.BEGIN
    XML_TAG = "begin"
    DEFAULT_COMMENT = "Initialize Mill"
    CAPABILITIES = frozenset({"make"})

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.coordinate_system = 0

    def _make(self, w: GCodeWriter) -> None:
        project = self.project
        if project.driver == Driver.HAAS:
            w.append("%\n")
            w.append(f"O{project.project_number:05d}\n")

        fmt = w.number
        w.comment(f"Project: {project.name}")
        w.comment(f"Created: {time.asctime()} with GCAM v{GCAM_VERSION}")
        sx, sy, sz = project.material_size
        w.comment(f"Material Size: X={fmt(sx)} Y={fmt(sy)} Z={fmt(sz)}")
        ox, oy, oz = project.material_origin
        w.comment(f"Origin Offset: X={fmt(ox)} Y={fmt(oy)} Z={fmt(oz)}")
        w.comment(f"Notes: {project.notes}")

        w.section(f"BEGIN: {self.comment}")

        if self.coordinate_system == 0:
            w.comment("Machine coordinates")
        else:
            w.command(
                f"G{53 + self.coordinate_system}",
                f"workspace {self.coordinate_system}",
            )

        if project.units == Units.INCH:
            w.command("G20", "units are inches")
        else:
            w.command("G21", "units are millimeters")
        w.command("G90", "absolute positioning")

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_u8(TAG_COORDINATE_SYSTEM, self.coordinate_system)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_COORDINATE_SYSTEM:
            self.coordinate_system = reader.read_u8(tag, dsize)
            return True
        return False

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_int("coordinate-system", self.coordinate_system)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "coordinate-system":
            number = scan_int(value)
            if number is not None:
                self.coordinate_system = number & 0xFF
