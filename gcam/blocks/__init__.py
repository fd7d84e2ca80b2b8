"""Block types of the program tree.

Importing this package registers every concrete block with
:func:`gcam.blocks.base.create_block` and the XML tag lookup.
"""

from gcam.blocks.base import (
    AABB,
    NULL_AABB,
    Block,
    aabb_is_valid,
    aabb_union,
    block_class_for_tag,
    create_block,
    find_tool,
)
from gcam.blocks.point import Point
from gcam.blocks.line import Line
from gcam.blocks.arc import Arc
from gcam.blocks.tool import Tool
from gcam.blocks.code import Code
from gcam.blocks.extrusion import Extrusion
from gcam.blocks.drill_holes import DrillHoles
from gcam.blocks.bolt_holes import BoltHoles
from gcam.blocks.sketch import Sketch
from gcam.blocks.template import Template
from gcam.blocks.image import Image
from gcam.blocks.stl import Stl
from gcam.blocks.begin import Begin
from gcam.blocks.end import End

__all__ = [
    "AABB",
    "NULL_AABB",
    "Arc",
    "Begin",
    "Block",
    "BoltHoles",
    "Code",
    "DrillHoles",
    "End",
    "Extrusion",
    "Image",
    "Line",
    "Point",
    "Sketch",
    "Stl",
    "Template",
    "Tool",
    "aabb_is_valid",
    "aabb_union",
    "block_class_for_tag",
    "create_block",
    "find_tool",
]
