"""Program object: process-wide settings plus the top-level block list.

A :class:`Project` is what blocks call ``project``.  It carries the
material, units and controller settings every ``make`` reads, the shared
:class:`~gcam.emitter.ToolPosition`, and the identity offset that
top-level blocks resolve to.  It also owns file I/O: binary and XML
project files and G-code export.

Usage::

    project = Project.from_config()
    project.new_program()
    project.save("part.gcam")
    Project.load("part.gcam").export("part.ngc")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from gcam.blocks import Begin, Block, End
from gcam.blocks.base import index_of
from gcam.codec import binary as binary_codec
from gcam.codec import xml as xml_codec
from gcam.codec.stream import clip_text
from gcam.configs import ProjectConfig, load_config
from gcam.constants import (
    NAME_MAX,
    NOTES_MAX,
    Driver,
    DrillingMotion,
    FileFormat,
    MachineOption,
    Material,
    Units,
    is_valid_child,
)
from gcam.emitter import ToolPosition
from gcam.errors import BlockError, CodecError
from gcam.offset import zero_offset
from gcam.utils.fs import atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)

XML_SUFFIX = ".gcamx"

# HAAS controllers take four decimal places whatever the config says
HAAS_DECIMALS = 4


def detect_format(path: str | Path) -> FileFormat:
    """``.gcamx`` files are XML; everything else is binary."""
    return FileFormat.XML if Path(path).suffix.lower() == XML_SUFFIX else FileFormat.BIN


class Project:
    """Settings and block tree of one CNC program.

    Parameters
    ----------
    config : ProjectConfig, optional
        Seeds the settings; the built-in defaults are used when omitted.

    Attributes
    ----------
    blocks : list of Block
        Top-level blocks in program order.
    tool_pos : ToolPosition
        Last emitted tool position.  It is reset when the outermost
        ``make`` (or :meth:`make_all`) starts, and shared by nested ones.
    zero_offset : Offset
        Identity placement of top-level blocks.
    crlf : bool
        Export with CRLF line endings.
    """

    def __init__(self, config: Optional[ProjectConfig] = None) -> None:
        self.name = ""
        self.notes = ""
        self.units: int = Units.MM
        self.material_type: int = Material.STEEL
        self.material_size: tuple[float, float, float] = (1.0, 1.0, 1.0)
        self.material_origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.ztraverse = 0.0
        self.drilling_motion: int = DrillingMotion.CANNED
        self.driver: int = Driver.LINUXCNC
        self.machine_name = ""
        self.machine_options: int = MachineOption.NONE
        self.decimals = 5
        self.project_number = 0
        self.format: FileFormat = FileFormat.TBD
        self.crlf = False
        self.tool_spindle_rpm = 2000
        self.tool_plunge_ratio: Optional[float] = None

        self.blocks: list[Block] = []
        self.tool_pos = ToolPosition()
        self._generating = 0
        self.zero_offset = zero_offset()
        if config is not None:
            self.apply_config(config)

    def __repr__(self) -> str:
        return f"<Project {self.name!r} blocks={len(self.blocks)}>"

    @classmethod
    def from_config(cls, cfg: Optional[ProjectConfig] = None) -> "Project":
        """New project seeded from *cfg*, or from the packaged defaults."""
        return cls(cfg if cfg is not None else load_config())

    def apply_config(self, cfg: ProjectConfig) -> None:
        self.name = clip_text(cfg.name, NAME_MAX)
        self.notes = clip_text(cfg.notes, NOTES_MAX)
        self.units = cfg.units
        self.material_type = cfg.material.type
        self.material_size = tuple(cfg.material.size)
        self.material_origin = tuple(cfg.material.origin)
        self.ztraverse = cfg.ztraverse
        self.drilling_motion = cfg.machine.drilling_motion
        self.driver = cfg.machine.driver
        self.machine_name = clip_text(cfg.machine.name, NAME_MAX)
        self.machine_options = cfg.machine.options
        self.decimals = cfg.machine.decimals
        self.project_number = cfg.project_number
        self.crlf = cfg.output.crlf
        self.tool_spindle_rpm = cfg.tool.spindle_rpm
        self.tool_plunge_ratio = cfg.tool.plunge_ratio

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def new_program(self) -> None:
        """Replace the tree with the minimal Begin / End program."""
        self.blocks = [Begin(self), End(self)]

    def _check(self, block: Block) -> None:
        if not is_valid_child(None, block.TYPE):
            raise BlockError(f"{block.type_name} cannot be placed at top level")
        block.parent = None

    def append(self, block: Block) -> Block:
        """Append *block* to the top-level list and return it."""
        self._check(block)
        self.blocks.append(block)
        return block

    def insert_after(self, anchor: Block, block: Block) -> Block:
        i = index_of(self.blocks, anchor)
        if i < 0:
            raise BlockError(f"{anchor!r} is not a top-level block")
        self._check(block)
        self.blocks.insert(i + 1, block)
        return block

    def insert_before_end(self, block: Block) -> Block:
        """Insert *block* just before the trailing End, or append it."""
        if self.blocks and isinstance(self.blocks[-1], End):
            self._check(block)
            self.blocks.insert(len(self.blocks) - 1, block)
            return block
        return self.append(block)

    def remove(self, block: Block) -> None:
        i = index_of(self.blocks, block)
        if i < 0:
            raise BlockError(f"{block!r} is not a top-level block")
        del self.blocks[i]

    def walk(self) -> Iterator[Block]:
        """Pre-order traversal of every block in the program."""
        for block in self.blocks:
            yield from block.walk()

    def summary(self) -> list[str]:
        """One indented line per block: type, comment and status."""
        lines = []
        for block in self.walk():
            flag = " [suppressed]" if block.suppressed else ""
            status = "" if block.status == "OK" else f" ({block.status})"
            lines.append(f"{'  ' * block.level()}{block.type_name}: {block.comment}{flag}{status}")
        return lines

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    @contextmanager
    def generating(self) -> Iterator[None]:
        """Scope one code generation run.

        The outermost scope starts from an unknown tool position; nested
        scopes (containers making their children, or :meth:`make_all`
        making each block) keep tracking the same position.
        """
        if self._generating == 0:
            self.tool_pos.reset()
        self._generating += 1
        try:
            yield
        finally:
            self._generating -= 1

    def make_all(self) -> str:
        """Regenerate every top-level block and return the whole program."""
        if self.driver == Driver.HAAS:
            self.decimals = HAAS_DECIMALS
        with self.generating():
            code = "".join(block.make() for block in self.blocks)
        missing = [b for b in self.walk() if b.status != "OK"]
        if missing:
            logger.warning("%d block(s) produced no code: %s", len(missing),
                           ", ".join(f"{b.type_name} {b.comment!r}" for b in missing))
        logger.debug("make_all: %d blocks, %d lines", len(self.blocks), code.count("\n"))
        return code

    def export(self, path: str | Path) -> str:
        """Write the program's G-code to *path* and return the text written."""
        code = self.make_all()
        if self.crlf:
            code = code.replace("\n", "\r\n")
        atomic_write_text(path, code)
        logger.info("Exported G-code to %s (%d lines)", path, code.count("\n"))
        return code

    # ------------------------------------------------------------------
    # Project files
    # ------------------------------------------------------------------

    def dumps(self, fmt: FileFormat = FileFormat.BIN) -> bytes:
        """Serialize to the binary or XML file image."""
        if fmt == FileFormat.XML:
            return xml_codec.save_project_xml(self).encode("utf-8")
        if fmt == FileFormat.BIN:
            return binary_codec.save_project(self)
        raise CodecError(f"cannot save in format {fmt!r}")

    def loads(self, data: bytes, fmt: FileFormat = FileFormat.BIN) -> None:
        """Replace settings and tree from a file image.

        Raises
        ------
        CodecError
            Malformed data; the block list is left empty.
        """
        if fmt == FileFormat.XML:
            xml_codec.load_project_xml(data, self)
        elif fmt == FileFormat.BIN:
            binary_codec.load_project(data, self)
        else:
            raise CodecError(f"cannot load format {fmt!r}")
        self.format = fmt

    def save(self, path: str | Path, fmt: Optional[FileFormat] = None) -> None:
        """Write the project file; the format follows the extension by default."""
        fmt = detect_format(path) if fmt is None else fmt
        atomic_write_bytes(path, self.dumps(fmt))
        self.format = fmt
        logger.info("Saved %s project to %s", fmt.name, path)

    @classmethod
    def load(
        cls,
        path: str | Path,
        config: Optional[ProjectConfig] = None,
        fmt: Optional[FileFormat] = None,
    ) -> "Project":
        """Read a project file.

        Settings the file does not persist (driver, drilling motion,
        decimals, output options) come from *config*.

        Raises
        ------
        FileNotFoundError
            If *path* does not exist.
        CodecError
            If the file is malformed.
        """
        path = Path(path)
        fmt = detect_format(path) if fmt is None else fmt
        project = cls(config)
        project.loads(path.read_bytes(), fmt)
        logger.info("Loaded %s project %r from %s (%d blocks)",
                    fmt.name, project.name, path, len(project.blocks))
        return project


__all__ = ["HAAS_DECIMALS", "XML_SUFFIX", "Project", "detect_format"]
