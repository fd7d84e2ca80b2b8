"""Program epilogue: park or home the machine and end the program."""

from __future__ import annotations

from gcam.blocks.base import Block
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, scan_floats, scan_int
from gcam.constants import BlockType, Driver, MachineOption
from gcam.emitter import GCodeWriter

TAG_RETRACT_POSITION = 0x00
TAG_HOME_ALL_AXES = 0x01


class End(Block):
    TYPE = BlockType.END
    XML_TAG = "end"
    DEFAULT_COMMENT = "Shutdown Mill"
    CAPABILITIES = frozenset({"make", "scale"})

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        ox, oy, oz = project.material_origin
        self.retract_position: tuple[float, float, float] = (ox, oy, oz + self.units(1.0))
        self.home_all_axes = 1 if project.machine_options & MachineOption.HOME_SWITCHES else 0

    def _make(self, w: GCodeWriter) -> None:
        project = self.project
        w.section(f"END: {self.comment}")

        if project.machine_options & MachineOption.HOME_SWITCHES:
            w.go_home(project.ztraverse)
        else:
            x, y, z = self.retract_position
            w.pull_up(z)
            w.move_2d(x, y, "move to parking position")

        w.command("M30", "program end and reset")
        if project.driver == Driver.HAAS:
            w.append("%\n")

    def scale(self, factor: float) -> None:
        self.retract_position = tuple(v * factor for v in self.retract_position)

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_f64s(TAG_RETRACT_POSITION, self.retract_position)
        writer.tag_u8(TAG_HOME_ALL_AXES, self.home_all_axes)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_RETRACT_POSITION:
            self.retract_position = reader.read_f64s(tag, dsize, 3)
        elif tag == TAG_HOME_ALL_AXES:
            self.home_all_axes = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flts("retract-position", self.retract_position)
        writer.attr_int("home-all-axes", self.home_all_axes)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "retract-position":
            xyz = scan_floats(value, 3)
            if xyz is not None:
                self.retract_position = xyz
        elif name == "home-all-axes":
            flag = scan_int(value)
            if flag is not None:
                self.home_all_axes = flag & 0xFF
