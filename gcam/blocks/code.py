"""Code: hand-written G-code copied verbatim into the program."""

from __future__ import annotations

from gcam.blocks.base import Block
from gcam.codec.stream import BinaryReader, BinaryWriter, XmlWriter, clip_text
from gcam.constants import CODE_MAX, BlockType
from gcam.emitter import GCodeWriter

TAG_TEXT = 0x00


class Code(Block):
    """Raw G-code emitted between the surrounding blocks.

    Attributes
    ----------
    text : str
        Lines passed through unchanged, at most ``CODE_MAX - 1`` bytes.
        An empty block writes a placeholder comment.

    Nothing is known about where the machine is after the text runs, so
    the next move is always written in full.
    """

    TYPE = BlockType.CODE
    XML_TAG = "code"
    DEFAULT_COMMENT = "Code"
    CAPABILITIES = frozenset({"make", "clone"})

    def __init__(self, project, parent=None) -> None:
        super().__init__(project, parent)
        self.text = ""

    def set_text(self, text: str) -> None:
        self.text = clip_text(text, CODE_MAX)

    def _make(self, w: GCodeWriter) -> None:
        if self.suppressed:
            return
        w.section(f"CODE: {self.comment}")
        if not self.text:
            w.comment("Insert Custom G-Code Here")
            return
        w.append(self.text if self.text.endswith("\n") else self.text + "\n")
        w.pos.reset()

    def _copy_into(self, new: "Code") -> None:
        new.text = self.text

    # ------------------------------------------------------------------
    # Codecs
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        writer.tag_str(TAG_TEXT, self.text, CODE_MAX)

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        if tag == TAG_TEXT:
            self.set_text(reader.read_str(dsize))
            return True
        return False

    def _xml_attrs(self, writer: XmlWriter) -> None:
        writer.attr_str("text", self.text)

    def _parse_attr(self, name: str, value: str) -> None:
        if name == "text":
            self.set_text(value)
