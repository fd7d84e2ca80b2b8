"""Offset / transform record inherited down the block tree.

A block either owns an :class:`Offset` (Sketch, Extrusion, DrillHoles,
BoltHoles, Template) or resolves to the nearest ancestor's owned record,
falling back to the project's zero offset.  Resolution happens at use
time through ``Block.offset`` so re-parenting or cloning never leaves a
stale alias behind.
"""

from __future__ import annotations

from dataclasses import dataclass

from gcam import gmath
from gcam.gmath import Vec2


@dataclass(slots=True)
class Offset:
    """Placement and tool-compensation state applied to local geometry.

    Attributes
    ----------
    side : float
        +1 / -1 selects which side of a contour the tool runs on; 0 cuts
        along the contour.
    tool : float
        Tool radius compensation.
    eval : float
        Extra lateral offset from the extrusion profile at the current depth.
    rotation : float
        Rotation in degrees applied before translation.
    origin : Vec2
        Translation applied after rotation.
    z : Vec2
        ``(z_start, z_end)`` used by helical passes.
    """

    side: float = 0.0
    tool: float = 0.0
    eval: float = 0.0
    rotation: float = 0.0
    origin: Vec2 = (0.0, 0.0)
    z: Vec2 = (0.0, 0.0)

    def place(self, pt: Vec2) -> Vec2:
        """Map a local point to absolute coordinates."""
        return gmath.transform(pt, self.rotation, self.origin)

    def copy(self) -> "Offset":
        return Offset(
            side=self.side,
            tool=self.tool,
            eval=self.eval,
            rotation=self.rotation,
            origin=self.origin,
            z=self.z,
        )

    def inherit(self, parent: "Offset") -> None:
        """Take origin and rotation from *parent*."""
        self.origin = parent.origin
        self.rotation = parent.rotation


def zero_offset() -> Offset:
    """A fresh identity record."""
    return Offset()


__all__ = ["Offset", "zero_offset"]
