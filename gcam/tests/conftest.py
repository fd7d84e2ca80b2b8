"""Shared fixtures for the gcam test suite."""

from __future__ import annotations

from typing import Callable

import pytest

from gcam.blocks import Line, Sketch, Tool
from gcam.project import Project


@pytest.fixture()
def project() -> Project:
    """Millimetre steel project with the built-in defaults and no blocks."""
    return Project()


@pytest.fixture()
def tool(project: Project) -> Tool:
    """A 2 mm end mill appended at top level."""
    t = Tool(project)
    t.diameter = 2.0
    project.append(t)
    return t


@pytest.fixture()
def add_square(project: Project) -> Callable[..., list[Line]]:
    """Factory appending a counter-clockwise square to a sketch."""

    def _add(sketch: Sketch, size: float = 10.0) -> list[Line]:
        corners = [(0.0, 0.0), (size, 0.0), (size, size), (0.0, size)]
        lines = []
        for i, start in enumerate(corners):
            line = Line(project, sketch)
            line.set_ends(start, corners[(i + 1) % 4])
            sketch.append(line)
            lines.append(line)
        return lines

    return _add
