"""Atomic file writes and YAML helpers.

Provides:
    - Atomic writes: tmp file -> fsync -> rename, so a crash never leaves
      a half-written project or G-code file behind
    - YAML load/save through PyYAML's safe loader and dumper
    - Directory creation with exist_ok semantics

Usage:
    from gcam.utils import fs
    fs.atomic_write_bytes("part.gcam", data)
    cfg = fs.load_yaml("project.yaml")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Union

import yaml

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Create directory *p* (and its parents) if needed and return it."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: PathLike, data: bytes, tmp_suffix: str = ".tmp") -> None:
    """Write bytes to *path* atomically (tmp -> fsync -> rename).

    Parameters
    ----------
    path : str or Path
        Target file; its directory is created when missing.
    data : bytes
        Full file contents.
    tmp_suffix : str
        Suffix of the temporary sibling file.

    Raises
    ------
    OSError
        The write or the rename failed; the temporary file is removed
        and the target is left untouched.
    """
    path = Path(path)
    ensure_dir(path.parent)
    tmp_path = path.with_name(path.name + tmp_suffix)
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    """Text variant of :func:`atomic_write_bytes`; no newline translation."""
    atomic_write_bytes(path, text.encode(encoding))


def load_yaml(path: PathLike) -> Any:
    """Load a YAML file with ``yaml.safe_load``.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    yaml.YAMLError
        If the file is not valid YAML.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def atomic_yaml_dump(obj: Any, path: PathLike) -> None:
    """Save *obj* as YAML atomically, keeping key order."""
    text = yaml.safe_dump(obj, default_flow_style=False, sort_keys=False, allow_unicode=True)
    atomic_write_text(path, text)


__all__ = ["atomic_write_bytes", "atomic_write_text", "atomic_yaml_dump", "ensure_dir", "load_yaml"]
