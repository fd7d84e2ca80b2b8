"""Block interface and tree operations.

A program is a tree of :class:`Block` objects.  Each concrete block type
declares the operations it implements in ``CAPABILITIES``; calling any
other operation raises :class:`~gcam.errors.UnsupportedOperation`, and
containers only propagate a transform to children whose
:meth:`Block.supports` says so.

Ownership:
    ``children`` and ``extruder`` are owned.  ``parent`` and ``project``
    are plain back-references.  Children are compared by identity, never
    by value, so two geometrically equal lines are still distinct nodes.

Offsets:
    Blocks that own an :class:`~gcam.offset.Offset` create it in
    ``__init__`` (``OWNED_SIDE`` is not None).  Every other block resolves
    ``offset`` at use time through its ancestors, ending at the project's
    zero offset.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterable, Mapping, Sequence

from gcam.codec.stream import (
    XML_BASE_INDENT,
    BinaryReader,
    BinaryWriter,
    XmlWriter,
    clip_text,
    scan_hex,
)
from gcam.constants import (
    COMMENT_MAX,
    TAG_COMMENT,
    TAG_FLAGS,
    TYPE_NAMES,
    BlockFlags,
    BlockType,
    EndsMode,
    equiv_units,
    is_valid_child,
)
from gcam.emitter import GCodeWriter
from gcam.errors import BlockError, CodecError, UnsupportedOperation
from gcam.gmath import Vec2
from gcam.offset import Offset

if TYPE_CHECKING:
    from gcam.blocks.tool import Tool
    from gcam.project import Project

logger = logging.getLogger(__name__)

AABB = tuple[Vec2, Vec2]

# min > max on both axes: "no valid content"
NULL_AABB: AABB = ((1.0, 1.0), (0.0, 0.0))

_REGISTRY: dict[BlockType, type["Block"]] = {}
_XML_TAGS: dict[str, type["Block"]] = {}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def aabb_is_valid(box: AABB) -> bool:
    """Return False for the inverted "no content" sentinel."""
    (x0, y0), (x1, y1) = box
    return x0 <= x1 and y0 <= y1


def aabb_union(box: AABB, other: AABB) -> AABB:
    """Grow *box* to include *other*; invalid operands are ignored."""
    if not aabb_is_valid(other):
        return box
    if not aabb_is_valid(box):
        return other
    (ax0, ay0), (ax1, ay1) = box
    (bx0, by0), (bx1, by1) = other
    return ((min(ax0, bx0), min(ay0, by0)), (max(ax1, bx1), max(ay1, by1)))


def index_of(blocks: Sequence["Block"], block: "Block") -> int:
    """Identity-based index of *block* in *blocks*, or -1."""
    for i, candidate in enumerate(blocks):
        if candidate is block:
            return i
    return -1


def create_block(
    block_type: BlockType | int,
    project: "Project",
    parent: "Block | None" = None,
) -> "Block":
    """Instantiate a registered block type with its defaults.

    Raises
    ------
    BlockError
        If *block_type* has no implementation.
    """
    try:
        cls = _REGISTRY[BlockType(block_type)]
    except (KeyError, ValueError):
        raise BlockError(f"no block implementation for type {block_type!r}") from None
    return cls(project, parent)


def block_class_for_tag(tag: str) -> type["Block"] | None:
    """Block class persisted under the XML element name *tag*."""
    return _XML_TAGS.get(tag)


def find_tool(block: "Block") -> "Tool | None":
    """Nearest Tool at or before *block*, then at or before each ancestor.

    The search walks back along previous siblings in the list holding the
    block, then repeats from the parent.
    """
    node: Block | None = block
    while node is not None:
        siblings = node.siblings()
        i = index_of(siblings, node)
        if i < 0 and node.TYPE == BlockType.TOOL:
            return node  # type: ignore[return-value]
        for candidate in reversed(siblings[: i + 1]):
            if candidate.TYPE == BlockType.TOOL:
                return candidate  # type: ignore[return-value]
        node = node.parent
    return None


# ---------------------------------------------------------------------------
# Block
# ---------------------------------------------------------------------------


class Block:
    """Base class for every node of the program tree.

    Parameters
    ----------
    project : Project
        Owning project; supplies units, material and emitter settings.
    parent : Block or None
        Back-reference to the parent, ``None`` at top level.  The block
        is *not* inserted into the parent's list; use :meth:`append`.
    """

    TYPE: ClassVar[BlockType]
    XML_TAG: ClassVar[str | None] = None
    DEFAULT_COMMENT: ClassVar[str] = ""
    DEFAULT_FLAGS: ClassVar[int] = int(BlockFlags.NONE)
    CAPABILITIES: ClassVar[frozenset[str]] = frozenset()
    OWNED_SIDE: ClassVar[float | None] = None
    XML_CONTAINER: ClassVar[bool] = False

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "TYPE" in cls.__dict__:
            _REGISTRY[cls.TYPE] = cls
            if cls.XML_TAG:
                _XML_TAGS[cls.XML_TAG] = cls

    def __init__(self, project: "Project", parent: "Block | None" = None) -> None:
        self.project = project
        self.parent = parent
        self.children: list[Block] = []
        self.extruder: Block | None = None
        self.comment = self.DEFAULT_COMMENT
        self.flags = int(self.DEFAULT_FLAGS)
        self.status = "OK"
        self.code = ""
        self.owned_offset: Offset | None = None
        self.offset_override: Offset | None = None
        if self.OWNED_SIDE is not None:
            self.owned_offset = Offset(side=self.OWNED_SIDE)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.comment!r} children={len(self.children)}>"

    # ------------------------------------------------------------------
    # Identity and capabilities
    # ------------------------------------------------------------------

    @property
    def type_name(self) -> str:
        return TYPE_NAMES[self.TYPE]

    @classmethod
    def supports(cls, operation: str) -> bool:
        """Return True when *operation* is in this block type's capability set."""
        return operation in cls.CAPABILITIES

    def _require(self, operation: str) -> None:
        if operation not in self.CAPABILITIES:
            raise UnsupportedOperation(
                f"{type(self).__name__} does not support {operation}()"
            )

    @property
    def suppressed(self) -> bool:
        return bool(self.flags & BlockFlags.SUPPRESS)

    def units(self, value: float) -> float:
        """Scale an inch-denominated default to the project's units."""
        return equiv_units(self.project.units, value)

    # ------------------------------------------------------------------
    # Offsets
    # ------------------------------------------------------------------

    @property
    def offref(self) -> Offset:
        """Record handed down to children: own, else inherited."""
        if self.owned_offset is not None:
            return self.owned_offset
        if self.parent is not None:
            return self.parent.offref
        return self.project.zero_offset

    @property
    def offset(self) -> Offset:
        """Record this block's own geometry is placed with."""
        if self.offset_override is not None:
            return self.offset_override
        if self.parent is not None:
            return self.parent.offref
        return self.project.zero_offset

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    def siblings(self) -> list["Block"]:
        """The list holding this block (the project's list at top level)."""
        if self.parent is not None:
            return self.parent.children
        return self.project.blocks

    def level(self) -> int:
        """Nesting level: 0 at top level."""
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def _adopt(self, child: "Block") -> None:
        if not is_valid_child(self.TYPE, child.TYPE):
            raise BlockError(
                f"{child.type_name} is not a valid child of {self.type_name}"
            )
        child.parent = self

    def append(self, child: "Block") -> "Block":
        """Append *child* as the list tail and return it."""
        self._adopt(child)
        self.children.append(child)
        return child

    def insert(self, index: int, child: "Block") -> "Block":
        self._adopt(child)
        self.children.insert(index, child)
        return child

    def insert_after(self, anchor: "Block", child: "Block") -> "Block":
        """Insert *child* right after *anchor* in this block's list."""
        i = index_of(self.children, anchor)
        if i < 0:
            raise BlockError(f"{anchor!r} is not a child of {self!r}")
        return self.insert(i + 1, child)

    def remove(self, child: "Block") -> None:
        i = index_of(self.children, child)
        if i < 0:
            raise BlockError(f"{child!r} is not a child of {self!r}")
        del self.children[i]
        child.parent = None

    def attach_extruder(self, extruder: "Block") -> "Block":
        """Replace the extruder child."""
        if extruder.TYPE != BlockType.EXTRUSION:
            raise BlockError(f"{extruder.type_name} cannot be used as an extruder")
        self._adopt(extruder)
        self.extruder = extruder
        return extruder

    def walk(self) -> Iterable["Block"]:
        """Pre-order traversal of this block, its extruder and children."""
        yield self
        if self.extruder is not None:
            yield from self.extruder.walk()
        for child in self.children:
            yield from child.walk()

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def make(self) -> str:
        """Regenerate and return this block's G-code.

        The text is also cached on ``code``.  A missing tool is not an
        error: the block produces no code and records why in ``status``.
        A call outside any other generation run starts from an unknown
        tool position, so repeating it returns the same text.
        """
        self._require("make")
        self.status = "OK"
        with self.project.generating():
            writer = GCodeWriter(self.project)
            self._make(writer)
        self.code = writer.getvalue()
        logger.debug("make %s %r: %d chars", self.type_name, self.comment, len(self.code))
        return self.code

    def _make(self, w: GCodeWriter) -> None:
        pass

    def _tool_or_status(self) -> "Tool | None":
        tool = find_tool(self)
        if tool is None:
            self.status = "No tool found"
            logger.warning("%s %r has no preceding tool; skipped", self.type_name, self.comment)
        return tool

    # ------------------------------------------------------------------
    # Geometry (per-capability)
    # ------------------------------------------------------------------

    def move(self, delta: Sequence[float]) -> None:
        self._require("move")
        self._propagate("move", lambda child: child.move(delta))

    def spin(self, datum: Sequence[float], angle: float) -> None:
        self._require("spin")
        self._propagate("spin", lambda child: child.spin(datum, angle))

    def flip(self, datum: Sequence[float], angle: float) -> None:
        self._require("flip")
        self._propagate("flip", lambda child: child.flip(datum, angle))

    def scale(self, factor: float) -> None:
        self._require("scale")
        self._propagate("scale", lambda child: child.scale(factor))

    def _propagate(self, operation: str, call: Callable[["Block"], None]) -> None:
        for child in self.children:
            if child.supports(operation):
                call(child)

    def aabb(self, mode: EndsMode = EndsMode.GET) -> AABB:
        self._require("aabb")
        return NULL_AABB

    def ends(self, mode: EndsMode = EndsMode.GET) -> tuple[Vec2, Vec2]:
        self._require("ends")
        raise UnsupportedOperation(f"{type(self).__name__}.ends not implemented")

    def eval(self, y: float) -> list[float]:
        self._require("eval")
        return []

    def length(self) -> float:
        self._require("length")
        return 0.0

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone(self, parent: "Block | None" = None) -> "Block":
        """Deep, independent copy whose back-reference is *parent*.

        The copy is not inserted anywhere.  Owned offsets are copied by
        value; an override record is shared, as snapshots rely on it.
        """
        self._require("clone")
        new = type(self)(self.project, parent)
        new.comment = self.comment
        new.flags = self.flags
        new.offset_override = self.offset_override
        if self.owned_offset is not None:
            new.owned_offset = self.owned_offset.copy()
        self._copy_into(new)
        return new

    def _copy_into(self, new: "Block") -> None:
        pass

    def _clone_children_into(self, new: "Block") -> None:
        new.children = [child.clone(new) for child in self.children]
        if self.extruder is not None:
            new.extruder = self.extruder.clone(new)

    # ------------------------------------------------------------------
    # Binary codec
    # ------------------------------------------------------------------

    def save_binary(self, writer: BinaryWriter) -> None:
        """Write this block's own field records (comment/flags excluded)."""
        pass

    def load_binary(self, reader: BinaryReader) -> None:
        """Read ``u32 size`` and the field records that follow it."""
        size = reader.u32()
        for tag, dsize in reader.records(size):
            if tag == TAG_COMMENT:
                self.comment = clip_text(reader.read_str(dsize), COMMENT_MAX)
            elif tag == TAG_FLAGS:
                self.flags = reader.read_u8(tag, dsize)
            elif not self._load_tag(reader, tag, dsize):
                logger.debug("%s: skipping unknown tag 0x%02X (%d bytes)", self.type_name, tag, dsize)
                reader.skip(dsize)
        self._loaded()

    def _load_tag(self, reader: BinaryReader, tag: int, dsize: int) -> bool:
        """Consume one field record; return False to have it skipped."""
        return False

    def _loaded(self) -> None:
        """Hook run after a binary load or XML parse."""
        pass

    def _save_children(self, writer: BinaryWriter, tag: int) -> None:
        """``NUMBER`` record (the child count) followed by each child record."""
        writer.tag_u32(tag, len(self.children))
        for child in self.children:
            writer.block_record(child)

    def _load_children(self, reader: BinaryReader, tag: int, dsize: int) -> None:
        count = reader.read_u32(tag, dsize)
        for _ in range(count):
            child_type = reader.u8()
            try:
                kind = BlockType(child_type)
            except ValueError:
                kind = None
            if kind is None or kind not in _REGISTRY or not is_valid_child(self.TYPE, kind):
                skip = reader.u32()
                logger.warning(
                    "%s: skipping child record of type %d (%d bytes)",
                    self.type_name, child_type, skip,
                )
                reader.skip(skip)
                continue
            child = create_block(kind, self.project, self)
            child.load_binary(reader)
            self.children.append(child)

    def _save_extruder(self, writer: BinaryWriter, tag: int) -> None:
        """Extruder record: ``tag, size, COMMENT``, then its fields (no flags)."""
        if self.extruder is None:
            return
        writer.u8(tag)
        marker = writer.placeholder()
        writer.tag_str(TAG_COMMENT, self.extruder.comment, COMMENT_MAX)
        self.extruder.save_binary(writer)
        writer.patch(marker)

    def _load_extruder(self, reader: BinaryReader) -> None:
        if self.extruder is None:
            raise CodecError(f"{self.type_name} has no extruder to load into")
        # the extruder reads its own size word
        reader.seek(reader.pos - 4)
        self.extruder.load_binary(reader)

    # ------------------------------------------------------------------
    # XML codec
    # ------------------------------------------------------------------

    def save_xml(self, writer: XmlWriter) -> None:
        """Write this block as an element indented by its depth."""
        if self.XML_TAG is None:
            logger.warning("%s has no XML representation; skipped", self.type_name)
            return
        depth = XML_BASE_INDENT + self.level()
        writer.head(self.XML_TAG, depth)
        writer.attr_str("comment", self.comment)
        writer.attr_hex("flags", self.flags)
        self._xml_attrs(writer)
        if not self.XML_CONTAINER:
            writer.leaf_tail()
            return
        writer.open_tail()
        self._xml_body(writer, depth + 1)
        writer.end_tag(self.XML_TAG, depth)

    def _xml_attrs(self, writer: XmlWriter) -> None:
        pass

    def _xml_body(self, writer: XmlWriter, depth: int) -> None:
        # children write their own comment/flags
        if self.extruder is not None:
            self.extruder.save_xml(writer)
        for child in self.children:
            child.save_xml(writer)

    def parse(self, attrs: Mapping[str, str]) -> None:
        """Restore fields from XML attributes; unscannable values are ignored."""
        for name, value in attrs.items():
            if name == "comment":
                self.comment = clip_text(value, COMMENT_MAX)
            elif name == "flags":
                flags = scan_hex(value)
                if flags is not None:
                    self.flags = flags & 0xFF
            else:
                self._parse_attr(name, value)
        self._loaded()

    def _parse_attr(self, name: str, value: str) -> None:
        pass

    def xml_text(self, text: str) -> None:
        """Character data inside this block's element (Image only)."""
        pass


__all__ = [
    "AABB",
    "NULL_AABB",
    "Block",
    "aabb_is_valid",
    "aabb_union",
    "block_class_for_tag",
    "create_block",
    "find_tool",
    "index_of",
]
