"""Pydantic schema of ``project.yaml``.

The models only check shape, types and ranges of the raw YAML; the
loader turns a validated document into the frozen dataclasses the rest
of the package uses.
"""

from __future__ import annotations

from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectSection(BaseModel):
    """Identification of new projects."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field("", description="Project name (31 bytes max)")
    notes: str = Field("", description="Free-text notes (511 bytes max)")
    units: Literal["mm", "inch"] = Field("mm", description="Length unit of the program")
    ztraverse: float = Field(0.0, description="Safe travel height above the material origin")
    project_number: int = Field(0, ge=0, le=99999, description="HAAS program number")


class MaterialSection(BaseModel):
    """Stock the program is cut from."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["aluminum", "foam", "plastic", "steel", "wood"] = "steel"
    size: Tuple[float, float, float] = Field((1.0, 1.0, 1.0), description="X, Y, Z extent")
    origin: Tuple[float, float, float] = Field((0.0, 0.0, 0.0), description="Stock corner")

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: Tuple[float, float, float]) -> Tuple[float, float, float]:
        if any(d <= 0 for d in v):
            raise ValueError(f"material size must be positive on every axis, got {list(v)}")
        return v


class MachineOptionsSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    spindle_control: bool = False
    auto_tool_change: bool = False
    home_switches: bool = False
    coolant: bool = False


class MachineSection(BaseModel):
    """Controller dialect and machine capabilities."""

    model_config = ConfigDict(extra="forbid")

    name: str = ""
    driver: Literal["linuxcnc", "turbocnc", "haas"] = "linuxcnc"
    drilling_motion: Literal["canned", "simple"] = "canned"
    decimals: int = Field(5, ge=0, le=9, description="Coordinate decimal places")
    options: MachineOptionsSection = Field(default_factory=MachineOptionsSection)


class OutputSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    crlf: bool = Field(False, description="Write exported G-code with CRLF line endings")


class ToolSection(BaseModel):
    """Defaults of newly created Tool blocks."""

    model_config = ConfigDict(extra="forbid")

    spindle_rpm: int = Field(2000, gt=0)
    plunge_ratio: Optional[float] = Field(
        None, gt=0, le=1, description="Overrides the material's plunge ratio when set"
    )


class ProjectFileV1(BaseModel):
    """Top-level ``project.yaml`` document."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_version: str = Field("project.v1", alias="schema")
    project: ProjectSection = Field(default_factory=ProjectSection)
    material: MaterialSection = Field(default_factory=MaterialSection)
    machine: MachineSection = Field(default_factory=MachineSection)
    output: OutputSection = Field(default_factory=OutputSection)
    tool: ToolSection = Field(default_factory=ToolSection)

    @field_validator("schema_version")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "project.v1":
            raise ValueError(f"Expected schema 'project.v1', got '{v}'")
        return v


__all__ = [
    "MachineOptionsSection",
    "MachineSection",
    "MaterialSection",
    "OutputSection",
    "ProjectFileV1",
    "ProjectSection",
    "ToolSection",
]
