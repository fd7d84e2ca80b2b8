"""Binary project file (``.gcam``).

Layout::

    u32 magic 0x4743414d  u32 file size  u32 version
    0xFF u32 size  { NAME UNITS MATERIAL_TYPE MATERIAL_SIZE MATERIAL_ORIGIN
                     ZTRAVERSE NOTES }
    0xFE u32 size  { MACHINE_NAME MACHINE_OPTIONS }
    block records, one per top-level block

The file size word is back-patched once every record is written.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gcam.blocks.base import create_block
from gcam.codec.stream import BinaryReader, BinaryWriter, clip_text, encode_cstring
from gcam.constants import NAME_MAX, NOTES_MAX, BlockType, is_valid_child
from gcam.errors import CodecError

if TYPE_CHECKING:
    from gcam.project import Project

logger = logging.getLogger(__name__)

FILE_MAGIC = 0x4743414D
FILE_VERSION = 0x20100727

RECORD_PROJECT = 0xFF
RECORD_MACHINE = 0xFE

TAG_NAME = 0x01
TAG_UNITS = 0x02
TAG_MATERIAL_TYPE = 0x03
TAG_MATERIAL_SIZE = 0x04
TAG_ZTRAVERSE = 0x05
TAG_NOTES = 0x06
TAG_MATERIAL_ORIGIN = 0x07

TAG_MACHINE_NAME = 0x01
TAG_MACHINE_OPTIONS = 0x02

_HEADER_SIZE = 12


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


def save_project(project: "Project") -> bytes:
    """Serialize *project* and its block tree to the binary format."""
    writer = BinaryWriter()
    writer.u32(FILE_MAGIC)
    fsize_at = writer.placeholder()
    writer.u32(FILE_VERSION)

    writer.u8(RECORD_PROJECT)
    marker = writer.placeholder()
    writer.tag_str(TAG_NAME, project.name, NAME_MAX)
    writer.tag_u8(TAG_UNITS, project.units)
    writer.tag_u8(TAG_MATERIAL_TYPE, project.material_type)
    writer.tag_f64s(TAG_MATERIAL_SIZE, project.material_size)
    writer.tag_f64s(TAG_MATERIAL_ORIGIN, project.material_origin)
    writer.tag_f64(TAG_ZTRAVERSE, project.ztraverse)
    notes = encode_cstring(project.notes, NOTES_MAX)
    writer.u8(TAG_NOTES)
    writer.u32(2 + len(notes))
    writer.u16(len(notes))
    writer.raw(notes)
    writer.patch(marker)

    writer.u8(RECORD_MACHINE)
    marker = writer.placeholder()
    writer.tag_str(TAG_MACHINE_NAME, project.machine_name, NAME_MAX)
    writer.tag_u8(TAG_MACHINE_OPTIONS, project.machine_options)
    writer.patch(marker)

    for block in project.blocks:
        writer.block_record(block)

    # unlike record sizes, the file size counts the header too
    data = bytearray(writer.getvalue())
    data[fsize_at:fsize_at + 4] = len(data).to_bytes(4, "little")
    logger.debug("binary save: %d blocks, %d bytes", len(project.blocks), len(data))
    return bytes(data)


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _load_project_record(reader: BinaryReader, project: "Project") -> None:
    size = reader.u32()
    for tag, dsize in reader.records(size):
        if tag == TAG_NAME:
            project.name = clip_text(reader.read_str(dsize), NAME_MAX)
        elif tag == TAG_UNITS:
            project.units = reader.read_u8(tag, dsize)
        elif tag == TAG_MATERIAL_TYPE:
            project.material_type = reader.read_u8(tag, dsize)
        elif tag == TAG_MATERIAL_SIZE:
            project.material_size = reader.read_f64s(tag, dsize, 3)
        elif tag == TAG_MATERIAL_ORIGIN:
            project.material_origin = reader.read_f64s(tag, dsize, 3)
        elif tag == TAG_ZTRAVERSE:
            project.ztraverse = reader.read_f64(tag, dsize)
        elif tag == TAG_NOTES:
            nlen = reader.u16()
            if dsize != 2 + nlen:
                raise CodecError(f"notes record declares {dsize} bytes, holds {2 + nlen}")
            project.notes = clip_text(reader.read_str(nlen), NOTES_MAX)
        else:
            logger.debug("project record: skipping tag 0x%02X (%d bytes)", tag, dsize)
            reader.skip(dsize)


def _load_machine_record(reader: BinaryReader, project: "Project") -> None:
    size = reader.u32()
    for tag, dsize in reader.records(size):
        if tag == TAG_MACHINE_NAME:
            project.machine_name = clip_text(reader.read_str(dsize), NAME_MAX)
        elif tag == TAG_MACHINE_OPTIONS:
            project.machine_options = reader.read_u8(tag, dsize)
        else:
            logger.debug("machine record: skipping tag 0x%02X (%d bytes)", tag, dsize)
            reader.skip(dsize)


def load_project(data: bytes, project: "Project") -> None:
    """Populate *project* from a binary image.

    The project's block list is replaced.  On any error it is left empty
    and the :class:`CodecError` propagates.

    Raises
    ------
    CodecError
        Bad magic, a size word that disagrees with the data, or any
        truncated or inconsistent record.
    """
    project.blocks = []
    reader = BinaryReader(data)
    if len(reader) < _HEADER_SIZE:
        raise CodecError(f"file is {len(reader)} bytes, shorter than the header")
    magic = reader.u32()
    if magic != FILE_MAGIC:
        raise CodecError(f"bad magic 0x{magic:08X}, not a GCAM project")
    fsize = reader.u32()
    version = reader.u32()
    if fsize != len(reader):
        raise CodecError(f"header declares {fsize} bytes, file holds {len(reader)}")
    if version != FILE_VERSION:
        logger.warning("file version 0x%08X differs from 0x%08X", version, FILE_VERSION)

    try:
        while reader.pos < fsize:
            record = reader.u8()
            if record == RECORD_PROJECT:
                _load_project_record(reader, project)
                continue
            if record == RECORD_MACHINE:
                _load_machine_record(reader, project)
                continue
            try:
                kind = BlockType(record)
            except ValueError:
                kind = None
            if kind is None or not is_valid_child(None, kind):
                skip = reader.u32()
                logger.warning("skipping top-level record of type %d (%d bytes)", record, skip)
                reader.skip(skip)
                continue
            block = create_block(kind, project)
            block.load_binary(reader)
            project.blocks.append(block)
    except CodecError:
        project.blocks = []
        raise
    logger.debug("binary load: %d top-level blocks", len(project.blocks))


__all__ = ["FILE_MAGIC", "FILE_VERSION", "load_project", "save_project"]
