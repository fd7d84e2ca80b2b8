"""XML project file (``.gcamx``).

Document layout::

    <?xml version="1.0" encoding="UTF-8"?>
    <!-- banner -->
    <gcam-project version="20100727">
    	<gcode name="..." units="..." ...>
    		<begin ... />
    		...
    		<end ... />
    	</gcode>
    </gcam-project>

Blocks are written by :meth:`gcam.blocks.base.Block.save_xml`; this
module owns the document frame, the project attributes and the rebuild
of the tree from parsed elements.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING

from gcam.blocks.base import Block, block_class_for_tag
from gcam.blocks.extrusion import Extrusion
from gcam.codec.binary import FILE_VERSION
from gcam.codec.stream import (
    XmlWriter,
    clip_text,
    scan_float,
    scan_floats,
    scan_hex,
    scan_int,
)
from gcam.constants import GCAM_VERSION, NAME_MAX, NOTES_MAX, BlockType, is_valid_child
from gcam.errors import CodecError

if TYPE_CHECKING:
    from gcam.project import Project

logger = logging.getLogger(__name__)

TAG_PROJECT = "gcam-project"
TAG_GCODE = "gcode"
TAG_BEGIN = "begin"
TAG_END = "end"
TAG_EXTRUSION = "extrusion"

_BANNER_RULE = "============================="


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


def save_project_xml(project: "Project") -> str:
    """Serialize *project* and its block tree as an XML document."""
    writer = XmlWriter()
    writer.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    writer.write("<!-- ===== GCAM project file ===== -->\n")
    writer.write(f"<!-- created by version {GCAM_VERSION} -->\n")
    writer.write(f"<!-- {_BANNER_RULE} -->\n")

    writer.head(TAG_PROJECT, 0)
    writer.attr_hex("version", FILE_VERSION)
    writer.open_tail()

    writer.head(TAG_GCODE, 1)
    writer.attr_str("name", project.name)
    writer.attr_int("units", project.units)
    writer.attr_int("material-type", project.material_type)
    writer.attr_flts("material-size", project.material_size)
    writer.attr_flts("material-origin", project.material_origin)
    writer.attr_flt("z-traverse", project.ztraverse)
    writer.attr_str("notes", project.notes)
    writer.attr_str("machine-name", project.machine_name)
    writer.attr_hex("machine-options", project.machine_options)
    writer.open_tail()

    for block in project.blocks:
        block.save_xml(writer)

    writer.end_tag(TAG_GCODE, 1)
    writer.end_tag(TAG_PROJECT, 0)
    return writer.getvalue()


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _parse_gcode_attrs(project: "Project", attrs: dict[str, str]) -> None:
    for name, value in attrs.items():
        if name == "name":
            project.name = clip_text(value, NAME_MAX)
        elif name == "notes":
            project.notes = clip_text(value, NOTES_MAX)
        elif name == "machine-name":
            project.machine_name = clip_text(value, NAME_MAX)
        elif name in ("units", "material-type"):
            number = scan_int(value)
            if number is not None:
                setattr(project, name.replace("-", "_"), number & 0xFF)
        elif name in ("material-size", "material-origin"):
            xyz = scan_floats(value, 3)
            if xyz is not None:
                setattr(project, name.replace("-", "_"), xyz)
        elif name == "z-traverse":
            z = scan_float(value)
            if z is not None:
                project.ztraverse = z
        elif name == "machine-options":
            options = scan_hex(value)
            if options is not None:
                project.machine_options = options & 0xFF


def _build(element: ET.Element, project: "Project", parent: Block | None) -> Block | None:
    """Create the block for *element* under *parent* and recurse into it."""
    parent_type = parent.TYPE if parent is not None else None
    if element.tag == TAG_EXTRUSION:
        if parent is None or not is_valid_child(parent_type, BlockType.EXTRUSION):
            logger.warning("extrusion element outside a sketch or bolt holes; skipped")
            return None
        block: Block = Extrusion(project, parent)
        block.parse(dict(element.attrib))
        parent.attach_extruder(block)
    else:
        cls = block_class_for_tag(element.tag)
        if cls is None:
            logger.warning("unknown element <%s>; skipped", element.tag)
            return None
        if not is_valid_child(parent_type, cls.TYPE):
            logger.warning(
                "<%s> is not valid under %s; skipped",
                element.tag, parent.type_name if parent is not None else "the program",
            )
            return None
        block = cls(project, parent)
        block.parse(dict(element.attrib))
        if element.text and element.text.strip():
            block.xml_text(element.text)
        if parent is not None:
            parent.append(block)
        else:
            project.blocks.append(block)

    for child in element:
        _build(child, project, block)
    return block


def load_project_xml(data: bytes | str, project: "Project") -> None:
    """Populate *project* from an XML document.

    Elements before ``<begin>`` are ignored and a second ``<begin>``
    restarts the program.  On any error the block list is left empty.

    Raises
    ------
    CodecError
        Malformed XML, or a missing project, gcode, begin or end element.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    project.blocks = []
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise CodecError(f"XML parse error: {exc}") from exc

    if root.tag != TAG_PROJECT:
        raise CodecError(f"no '{TAG_PROJECT}' element found")
    gcode = root.find(TAG_GCODE)
    if gcode is None:
        raise CodecError(f"no acceptable '{TAG_GCODE}' element found")
    _parse_gcode_attrs(project, dict(gcode.attrib))

    has_begin = False
    has_end = False
    for element in gcode:
        if element.tag == TAG_BEGIN:
            if has_begin:
                logger.warning("second <begin> element restarts the program")
            project.blocks = []
            has_begin = True
            has_end = False
        elif not has_begin:
            logger.warning("<%s> before <begin>; skipped", element.tag)
            continue
        block = _build(element, project, None)
        if block is not None and element.tag == TAG_END:
            has_end = True

    if not has_begin:
        project.blocks = []
        raise CodecError(f"no acceptable '{TAG_BEGIN}' element found")
    if not has_end:
        project.blocks = []
        raise CodecError(f"no acceptable '{TAG_END}' element found")
    logger.debug("xml load: %d top-level blocks", len(project.blocks))


__all__ = ["load_project_xml", "save_project_xml"]
