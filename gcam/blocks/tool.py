"""Tool change block.

A Tool applies to every block that follows it in the same list and to
everything nested below those blocks; see :func:`gcam.blocks.base.find_tool`.
Feed and plunge defaults are derived from the project material by
:meth:`Tool.calc`.
"""

from __future__ import annotations

from gcam.blocks.base import Block
from gcam.codec.stream import (
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    clip_text,
    scan_float,
    scan_floats,
    scan_int,
)
from gcam.constants import LABEL_MAX, BlockType, MachineOption, Material, Units
from gcam.emitter import GCodeWriter

TAG_DIAMETER = 0x00
TAG_LENGTH = 0x01
TAG_PROMPT = 0x02
TAG_LABEL = 0x03
TAG_FEED = 0x04
TAG_CHANGE_POSITION = 0x05
TAG_NUMBER = 0x06
TAG_PLUNGE_RATIO = 0x07
TAG_SPINDLE_RPM = 0x08
TAG_COOLANT = 0x09

INCH2MM = 25.4

# material -> (feed in inches per minute, plunge ratio)
FEED_TABLE: dict[Material, tuple[float, float]] = {
    Material.ALUMINUM: (3.0, 0.2),
    Material.FOAM: (15.0, 1.0),
    Material.PLASTIC: (7.0, 1.0),
    Material.STEEL: (0.1, 0.1),
    Material.WOOD: (8.0, 0.5),
}


class Tool(Block):
    """End mill selection, spindle and coolant state.

    Attributes
    ----------
    diameter, length : float
        Cutter geometry; half the diameter is the radius compensation
        applied by contour blocks.
    prompt : int
        Non-zero moves to ``change_position`` and issues ``M06``.
    label : str
        Free-text name, persisted in a fixed 32-byte field.
    feed, plunge_ratio : float
        Cutting feed and the fraction of it used for plunges.
    number : int
        Tool slot used by ``M06 T%02d``.
    spindle_rpm : int
    coolant : int
        Non-zero turns flood coolant on when the machine has it.
    """

    TYPE = BlockType.TOOL
    XML_TAG = "tool"
    DEFAULT_COMMENT = "Tool Change"
    CAPABILITIES = frozenset({"make", "scale", "clone"})

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.label = ""
        self.diameter = 0.0
        self.length = 0.0
        self.prompt = 0
        self.feed = 0.0
        self.change_position: tuple[float, float, float] = (0.0, 0.0, self.units(1.0))
        self.number = 1
        self.plunge_ratio = 0.2
        self.spindle_rpm = project.tool_spindle_rpm
        self.coolant = 1 if project.machine_options & MachineOption.COOLANT else 0
        self.calc()

    @property
    def radius(self) -> float:
        return self.diameter * 0.5

    def calc(self) -> None:
        """Reset feed and plunge ratio to the material's defaults."""
        entry = FEED_TABLE.get(self.project.material_type)
        if entry is not None:
            self.feed, self.plunge_ratio = entry
        if self.project.tool_plunge_ratio is not None:
            self.plunge_ratio = self.project.tool_plunge_ratio
        if self.project.units == Units.MM:
            self.feed *= INCH2MM

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        options = self.project.machine_options

        w.section(f"TOOL CHANGE: {self.comment}")
        w.comment(f"Selected Tool: {self.label}")
        w.comment(f"Tool Diameter: {self.diameter:f}")

        if self.prompt:
            w.pull_up(self.change_position[2])
            w.move_2d(
                self.change_position[0],
                self.change_position[1],
                "move to tool change position",
            )

        if options & MachineOption.SPINDLE_CONTROL:
            w.command("M05", "spindle off")

        if self.prompt or options & MachineOption.AUTO_TOOL_CHANGE:
            w.command(f"M06 T{self.number:02d}", self.label)

        if options & MachineOption.SPINDLE_CONTROL:
            w.speed(self.spindle_rpm, "set spindle speed")
            w.command("M03", "spindle on")

        if options & MachineOption.COOLANT:
            if self.coolant:
                w.command("M08", "coolant on")
            else:
                w.command("M09", "coolant off")

        w.feed(self.feed, "set feed rate")

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def scale(self, factor: float) -> None:
        self.diameter *= factor
        self.length *= factor
        self.feed *= factor
        self.change_position = tuple(v * factor for v in self.change_position)

    def _copy_into(self, new: "Tool") -> None:
        new.label = self.label
        new.diameter = self.diameter
        new.length = self.length
        new.prompt = self.prompt
        new.feed = self.feed
        new.change_position = self.change_position
        new.number = self.number
        new.plunge_ratio = self.plunge_ratio
        new.spindle_rpm = self.spindle_rpm
        new.coolant = self.coolant

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_f64(TAG_DIAMETER, self.diameter)
        writer.tag_f64(TAG_LENGTH, self.length)
        writer.tag_u8(TAG_PROMPT, self.prompt)
        writer.tag_fixed_str(TAG_LABEL, self.label, LABEL_MAX)
        writer.tag_f64(TAG_FEED, self.feed)
        writer.tag_f64s(TAG_CHANGE_POSITION, self.change_position)
        writer.tag_u8(TAG_NUMBER, self.number)
        writer.tag_f64(TAG_PLUNGE_RATIO, self.plunge_ratio)
        writer.tag_u32(TAG_SPINDLE_RPM, self.spindle_rpm)
        writer.tag_u8(TAG_COOLANT, self.coolant)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_DIAMETER:
            self.diameter = reader.read_f64(tag, dsize)
        elif tag == TAG_LENGTH:
            self.length = reader.read_f64(tag, dsize)
        elif tag == TAG_PROMPT:
            self.prompt = reader.read_u8(tag, dsize)
        elif tag == TAG_LABEL:
            self.label = clip_text(reader.read_str(dsize), LABEL_MAX)
        elif tag == TAG_FEED:
            self.feed = reader.read_f64(tag, dsize)
        elif tag == TAG_CHANGE_POSITION:
            self.change_position = reader.read_f64s(tag, dsize, 3)
        elif tag == TAG_NUMBER:
            self.number = reader.read_u8(tag, dsize)
        elif tag == TAG_PLUNGE_RATIO:
            self.plunge_ratio = reader.read_f64(tag, dsize)
        elif tag == TAG_SPINDLE_RPM:
            self.spindle_rpm = reader.read_u32(tag, dsize)
        elif tag == TAG_COOLANT:
            self.coolant = reader.read_u8(tag, dsize)
        else:
            return False
        return True

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_flt("diameter", self.diameter)
        writer.attr_flt("length", self.length)
        writer.attr_int("prompt", self.prompt)
        writer.attr_str("label", self.label)
        writer.attr_flt("feed", self.feed)
        writer.attr_flts("change-position", self.change_position)
        writer.attr_int("number", self.number)
        writer.attr_flt("plunge-ratio", self.plunge_ratio)
        writer.attr_int("spindle-rpm", self.spindle_rpm)
        writer.attr_int("coolant", self.coolant)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "label":
            self.label = clip_text(value, LABEL_MAX)
        elif name in ("diameter", "length", "feed", "plunge-ratio"):
            number = scan_float(value)
            if number is not None:
                setattr(self, name.replace("-", "_"), number)
        elif name in ("prompt", "number", "coolant"):
            number = scan_int(value)
            if number is not None:
                setattr(self, name, number & 0xFF)
        elif name == "spindle-rpm":
            rpm = scan_int(value)
            if rpm is not None:
                self.spindle_rpm = rpm & 0xFFFFFFFF
        elif name == "change-position":
            xyz = scan_floats(value, 3)
            if xyz is not None:
                self.change_position = xyz


__all__ = ["FEED_TABLE", "INCH2MM", "Tool"]
