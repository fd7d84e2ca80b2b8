"""Configuration loader for project defaults.

Loads ``project.yaml``, validates it against
:class:`~gcam.configs.schema.ProjectFileV1` and returns typed, frozen
dataclasses.  Everything a new :class:`~gcam.project.Project` starts
with (units, material, controller dialect, output options, tool
defaults) comes from here.

Usage::

    from gcam.configs import load_config
    cfg = load_config()                        # packaged defaults
    cfg = load_config("/shop/router.yaml")     # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from gcam.configs.schema import ProjectFileV1
from gcam.constants import NAME_MAX, NOTES_MAX, Driver, DrillingMotion, MachineOption, Material, Units
from gcam.utils.fs import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "project.yaml"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaterialConfig:
    """Stock type and extent."""

    type: Material = Material.STEEL
    size: tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        if len(self.size) != 3 or len(self.origin) != 3:
            raise ValueError("material size and origin must have three components")
        if any(d <= 0 for d in self.size):
            raise ValueError(f"material size must be positive, got {self.size}")


@dataclass(frozen=True)
class MachineConfig:
    """Controller dialect and capability bits."""

    name: str = ""
    driver: Driver = Driver.LINUXCNC
    drilling_motion: DrillingMotion = DrillingMotion.CANNED
    decimals: int = 5
    options: int = int(MachineOption.NONE)

    def __post_init__(self) -> None:
        if not 0 <= self.decimals <= 9:
            raise ValueError(f"decimals must be in [0, 9], got {self.decimals}")
        if not 0 <= self.options <= 0xFF:
            raise ValueError(f"machine options must fit in a byte, got {self.options:#x}")


@dataclass(frozen=True)
class OutputConfig:
    crlf: bool = False


@dataclass(frozen=True)
class ToolDefaultsConfig:
    """Defaults applied to new Tool blocks."""

    spindle_rpm: int = 2000
    plunge_ratio: Optional[float] = None

    def __post_init__(self) -> None:
        if self.spindle_rpm <= 0:
            raise ValueError(f"spindle_rpm must be positive, got {self.spindle_rpm}")
        if self.plunge_ratio is not None and not 0.0 < self.plunge_ratio <= 1.0:
            raise ValueError(f"plunge_ratio must be in (0, 1], got {self.plunge_ratio}")


@dataclass(frozen=True)
class ProjectConfig:
    """Top-level configuration.

    Attributes
    ----------
    name, notes : str
        Seed identification of new projects.
    units : Units
    ztraverse : float
        Safe travel height above the material origin.
    project_number : int
        HAAS ``O`` program number.
    """

    name: str = ""
    notes: str = ""
    units: Units = Units.MM
    ztraverse: float = 0.0
    project_number: int = 0
    material: MaterialConfig = field(default_factory=MaterialConfig)
    machine: MachineConfig = field(default_factory=MachineConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    tool: ToolDefaultsConfig = field(default_factory=ToolDefaultsConfig)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_OPTION_BITS = {
    "spindle_control": MachineOption.SPINDLE_CONTROL,
    "auto_tool_change": MachineOption.AUTO_TOOL_CHANGE,
    "home_switches": MachineOption.HOME_SWITCHES,
    "coolant": MachineOption.COOLANT,
}


def _format_validation_error(exc: ValidationError) -> str:
    """First offending key as a dotted path, with pydantic's message."""
    first = exc.errors()[0]
    key = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{key}: {first['msg']}"


def _build_config(doc: ProjectFileV1) -> ProjectConfig:
    options = 0
    for name, bit in _OPTION_BITS.items():
        if getattr(doc.machine.options, name):
            options |= int(bit)

    return ProjectConfig(
        name=doc.project.name,
        notes=doc.project.notes,
        units=Units[doc.project.units.upper()],
        ztraverse=float(doc.project.ztraverse),
        project_number=int(doc.project.project_number),
        material=MaterialConfig(
            type=Material[doc.material.type.upper()],
            size=tuple(float(v) for v in doc.material.size),
            origin=tuple(float(v) for v in doc.material.origin),
        ),
        machine=MachineConfig(
            name=doc.machine.name,
            driver=Driver[doc.machine.driver.upper()],
            drilling_motion=DrillingMotion[doc.machine.drilling_motion.upper()],
            decimals=int(doc.machine.decimals),
            options=options,
        ),
        output=OutputConfig(crlf=bool(doc.output.crlf)),
        tool=ToolDefaultsConfig(
            spindle_rpm=int(doc.tool.spindle_rpm),
            plunge_ratio=doc.tool.plunge_ratio,
        ),
    )


def _validate_config(cfg: ProjectConfig) -> None:
    """Validate cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid combination.
    """
    for key, text, limit in (
        ("project.name", cfg.name, NAME_MAX),
        ("project.notes", cfg.notes, NOTES_MAX),
        ("machine.name", cfg.machine.name, NAME_MAX),
    ):
        if len(text.encode("utf-8")) >= limit:
            raise ConfigError(f"{key}: at most {limit - 1} bytes, got {len(text.encode('utf-8'))}")

    if cfg.machine.driver == Driver.HAAS and cfg.machine.decimals != 4:
        logger.warning(
            "machine.decimals=%d is ignored for HAAS controllers (always 4)",
            cfg.machine.decimals,
        )

    if cfg.project_number and cfg.machine.driver != Driver.HAAS:
        logger.warning("project.project_number is only written for HAAS controllers")

    if cfg.ztraverse < 0:
        raise ConfigError(f"project.ztraverse must not be below the material origin, got {cfg.ztraverse}")


def load_config(path: str | Path | None = None) -> ProjectConfig:
    """Load and validate project defaults from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to a ``project.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    ProjectConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field fails validation; the message names the key.
    FileNotFoundError
        If *path* does not exist.
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)
    data: Any = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping, got {type(data).__name__}")

    try:
        doc = ProjectFileV1.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {_format_validation_error(e)}") from e

    try:
        cfg = _build_config(doc)
    except ValueError as e:
        raise ConfigError(f"{path}: {e}") from e
    _validate_config(cfg)
    return cfg


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "MachineConfig",
    "MaterialConfig",
    "OutputConfig",
    "ProjectConfig",
    "ToolDefaultsConfig",
    "load_config",
]
