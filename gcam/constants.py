"""Enumerations and fixed identifiers shared across the engine.

Numeric values are part of the persisted binary format and of the XML
attribute encoding, so they must never be renumbered.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag


class BlockType(IntEnum):
    BEGIN = 0
    END = 1
    TEMPLATE = 2
    TOOL = 3
    CODE = 4
    EXTRUSION = 5
    SKETCH = 6
    LINE = 7
    ARC = 8
    BEZIER = 9
    IMAGE = 10
    BOLT_HOLES = 11
    DRILL_HOLES = 12
    POINT = 13
    STL = 14


class BlockFlags(IntFlag):
    NONE = 0x00
    LOCK = 0x01
    SUPPRESS = 0x02


class Units(IntEnum):
    INCH = 0
    MM = 1


class Material(IntEnum):
    ALUMINUM = 0
    FOAM = 1
    PLASTIC = 2
    STEEL = 3
    WOOD = 4


class Driver(IntEnum):
    LINUXCNC = 0
    TURBOCNC = 1
    HAAS = 2


class MachineOption(IntFlag):
    NONE = 0x00
    SPINDLE_CONTROL = 0x01
    AUTO_TOOL_CHANGE = 0x02
    HOME_SWITCHES = 0x04
    COOLANT = 0x08


class DrillingMotion(IntEnum):
    CANNED = 0
    SIMPLE = 1


class FileFormat(IntEnum):
    TBD = 0
    BIN = 1
    XML = 2


class EndsMode(IntEnum):
    """What ``Block.ends`` / ``Block.aabb`` report."""

    GET = 0
    GET_WITH_OFFSET = 2
    GET_NORMAL = 3
    GET_TANGENT = 4


class CutSide(IntEnum):
    INSIDE = 0
    OUTSIDE = 1
    ALONG = 2


class BoltHolesType(IntEnum):
    RADIAL = 0
    MATRIX = 1


# Common binary tags, counted down from 0xFF so they never collide with
# block-specific tags that count up from 0x00.
TAG_FLAGS = 0xFE
TAG_COMMENT = 0xFF

COMMENT_MAX = 64
NAME_MAX = 32
NOTES_MAX = 512
LABEL_MAX = 32
CODE_MAX = 4096

TYPE_NAMES: dict[BlockType, str] = {
    BlockType.BEGIN: "BEGIN",
    BlockType.END: "END",
    BlockType.TEMPLATE: "TEMPLATE",
    BlockType.TOOL: "TOOL",
    BlockType.CODE: "CODE",
    BlockType.EXTRUSION: "EXTRUSION",
    BlockType.SKETCH: "SKETCH",
    BlockType.LINE: "LINE",
    BlockType.ARC: "ARC",
    BlockType.BEZIER: "BEZIER",
    BlockType.IMAGE: "IMAGE",
    BlockType.BOLT_HOLES: "BOLT HOLES",
    BlockType.DRILL_HOLES: "DRILL HOLES",
    BlockType.POINT: "POINT",
    BlockType.STL: "STL",
}

VALID_AT_TOP_LEVEL: frozenset[BlockType] = frozenset({
    BlockType.BEGIN,
    BlockType.END,
    BlockType.TEMPLATE,
    BlockType.TOOL,
    BlockType.CODE,
    BlockType.SKETCH,
    BlockType.IMAGE,
    BlockType.BOLT_HOLES,
    BlockType.DRILL_HOLES,
    BlockType.STL,
})

# parent type -> child types it may hold in its list or as its extruder
VALID_CHILDREN: dict[BlockType, frozenset[BlockType]] = {
    BlockType.TEMPLATE: frozenset({
        BlockType.TEMPLATE,
        BlockType.TOOL,
        BlockType.CODE,
        BlockType.SKETCH,
        BlockType.IMAGE,
        BlockType.BOLT_HOLES,
        BlockType.DRILL_HOLES,
        BlockType.STL,
    }),
    BlockType.SKETCH: frozenset({BlockType.EXTRUSION, BlockType.LINE, BlockType.ARC}),
    BlockType.EXTRUSION: frozenset({BlockType.LINE, BlockType.ARC}),
    BlockType.BOLT_HOLES: frozenset({BlockType.EXTRUSION, BlockType.ARC}),
    BlockType.DRILL_HOLES: frozenset({BlockType.POINT}),
}


def is_valid_child(parent: BlockType | None, child: BlockType) -> bool:
    """Return True when *child* may live under *parent* (``None`` = top level)."""
    if parent is None:
        return child in VALID_AT_TOP_LEVEL
    return child in VALID_CHILDREN.get(parent, frozenset())


def equiv_units(units: int, value: float) -> float:
    """Scale an inch-denominated default for a project in *units*.

    Millimetre projects get ``value * 25`` rather than ``* 25.4`` so the
    defaults stay round numbers.
    """
    return value * 25.0 if units == Units.MM else value

# written into generated programs and XML banners
GCAM_VERSION = "0.1.0"
