"""G-code emission surface.

Every block's ``make`` writes through a :class:`GCodeWriter`, which owns
a ``StringIO`` buffer and shares the project's :class:`ToolPosition` so
redundant moves are suppressed across block boundaries.

Number formatting:
    Coordinates use ``decimals`` places (5 by default, 4 for HAAS
    controllers); feeds always use three places::

        G01 X1.00000 Y2.00000 (comment)
        F12.700 (set feed rate)

Z helpers:
    ``descend``, ``plummet``, ``retract`` and ``go_home`` take depths
    relative to the material origin; ``pull_up`` takes an absolute z.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import StringIO
from typing import TYPE_CHECKING, Protocol

from gcam.constants import Driver
from gcam.errors import GCodeError
from gcam.gmath import FLT_MAX, is_equal

if TYPE_CHECKING:
    from gcam.blocks.tool import Tool

logger = logging.getLogger(__name__)

CANNED_CYCLES = frozenset({"G81", "G83"})
PECK_CYCLES = frozenset({"G83"})


def _check_cycle(code: str, allowed: frozenset[str]) -> None:
    if code not in allowed:
        raise GCodeError(f"unsupported canned cycle {code!r}; expected one of {sorted(allowed)}")


class EmitterSettings(Protocol):
    """What the writer needs to know about the project."""

    driver: int
    decimals: int
    material_origin: tuple[float, float, float]
    tool_pos: "ToolPosition"


@dataclass(slots=True)
class ToolPosition:
    """Last commanded tool position; ``FLT_MAX`` marks an unknown axis."""

    x: float = FLT_MAX
    y: float = FLT_MAX
    z: float = FLT_MAX

    def reset(self) -> None:
        self.x = FLT_MAX
        self.y = FLT_MAX
        self.z = FLT_MAX


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class GCodeWriter:
    """Accumulate G-code text for one block.

    Parameters
    ----------
    settings : EmitterSettings
        Usually the owning :class:`~gcam.project.Project`.
    """

    def __init__(self, settings: EmitterSettings) -> None:
        self._settings = settings
        self._buf = StringIO()
        decimals = int(settings.decimals)
        if not 0 <= decimals <= 9:
            raise GCodeError(f"decimals must be in [0, 9], got {decimals}")
        self._decimals = decimals

    # ------------------------------------------------------------------
    # Buffer
    # ------------------------------------------------------------------

    @property
    def pos(self) -> ToolPosition:
        return self._settings.tool_pos

    def getvalue(self) -> str:
        return self._buf.getvalue()

    def append(self, text: str) -> None:
        """Append raw text (already formatted)."""
        self._buf.write(text)

    def number(self, value: float) -> str:
        """Format a coordinate with the project's decimal places."""
        return f"{value:.{self._decimals}f}"

    _z = number

    def _origin_z(self) -> float:
        return self._settings.material_origin[2]

    # ------------------------------------------------------------------
    # Comments and plain commands
    # ------------------------------------------------------------------

    def newline(self) -> None:
        self._buf.write("\n")

    def comment(self, text: str) -> None:
        """Write a comment line in the controller's dialect."""
        if not text:
            self._buf.write("\n")
        elif self._settings.driver == Driver.TURBOCNC:
            self._buf.write(f"; {text}\n")
        else:
            self._buf.write(f"({text})\n")

    def section(self, text: str) -> None:
        """Blank line, comment, blank line."""
        self.newline()
        self.comment(text)
        self.newline()

    def _padding(self, text: str) -> None:
        if text:
            self._buf.write(" ")

    def command(self, code: str, text: str = "") -> None:
        self._buf.write(f"{code} ")
        self.comment(text)

    def feed(self, feed: float, text: str = "") -> None:
        if feed < 0.0:
            raise GCodeError(f"feed rate must not be negative, got {feed}")
        self._buf.write(f"F{feed:.3f}")
        self._padding(text)
        self.comment(text)

    def speed(self, rpm: int, text: str = "") -> None:
        if rpm < 0:
            raise GCodeError(f"spindle speed must not be negative, got {rpm}")
        self._buf.write(f"S{int(rpm)}")
        self._padding(text)
        self.comment(text)

    # ------------------------------------------------------------------
    # Z motion
    # ------------------------------------------------------------------

    def descend(self, depth: float, tool: "Tool") -> None:
        """Feed down to *depth* at the plunge rate, then restore the feed."""
        z = self._origin_z() + depth
        if is_equal(self.pos.z, z):
            return
        plunge = tool.feed * tool.plunge_ratio
        self._buf.write(f"G01 Z{self._z(z)} F{plunge:.3f} ")
        self.comment("slow plunge")
        self._buf.write(f"F{tool.feed:.3f} ")
        self.comment("restore feed rate")
        self.pos.z = z

    def plummet(self, depth: float) -> None:
        """Rapid down to *depth* (above the material)."""
        z = self._origin_z() + depth
        if is_equal(self.pos.z, z):
            return
        self._buf.write(f"G00 Z{self._z(z)} ")
        self.comment("fast plunge")
        self.pos.z = z

    def retract(self, depth: float) -> None:
        """Rapid up to *depth* relative to the material origin."""
        z = self._origin_z() + depth
        if is_equal(self.pos.z, z):
            return
        self._buf.write(f"G00 Z{self._z(z)} ")
        self.comment("retract")
        self.pos.z = z

    def pull_up(self, z: float) -> None:
        """Rapid up to absolute *z*."""
        if is_equal(self.pos.z, z):
            return
        self._buf.write(f"G00 Z{self._z(z)} ")
        self.comment("retract")
        self.pos.z = z

    # ------------------------------------------------------------------
    # XY motion
    # ------------------------------------------------------------------

    def xy_pair(self, x: float, y: float, text: str = "") -> None:
        """Bare ``X Y`` pair, used inside canned cycles."""
        self._buf.write(f"X{self._z(x)} Y{self._z(y)}")
        self._padding(text)
        self.comment(text)
        self.pos.x = x
        self.pos.y = y

    def _planar(self, code: str, x: float, y: float, text: str) -> None:
        pos = self.pos
        same_x = is_equal(pos.x, x)
        same_y = is_equal(pos.y, y)
        if same_x and same_y:
            return
        self._buf.write(code)
        if not same_x:
            self._buf.write(f" X{self._z(x)}")
        if not same_y:
            self._buf.write(f" Y{self._z(y)}")
        self._padding(text)
        self.comment(text)
        pos.x = x
        pos.y = y

    def move_2d(self, x: float, y: float, text: str = "") -> None:
        self._planar("G00", x, y, text)

    def line_2d(self, x: float, y: float, text: str = "") -> None:
        self._planar("G01", x, y, text)

    def line_3d(self, x: float, y: float, z: float, text: str = "") -> None:
        pos = self.pos
        same_x = is_equal(pos.x, x)
        same_y = is_equal(pos.y, y)
        same_z = is_equal(pos.z, z)
        if same_x and same_y and same_z:
            return
        self._buf.write("G01")
        if not same_x:
            self._buf.write(f" X{self._z(x)}")
        if not same_y:
            self._buf.write(f" Y{self._z(y)}")
        if not same_z:
            self._buf.write(f" Z{self._z(z)}")
        self._padding(text)
        self.comment(text)
        pos.x = x
        pos.y = y
        pos.z = z

    def arc_2d(self, cw: bool, x: float, y: float, i: float, j: float, text: str = "") -> None:
        code = "G02" if cw else "G03"
        self._buf.write(
            f"{code} X{self._z(x)} Y{self._z(y)} I{self._z(i)} J{self._z(j)} "
        )
        self.comment(text)
        self.pos.x = x
        self.pos.y = y

    def arc_3d(
        self, cw: bool, x: float, y: float, z: float, i: float, j: float, text: str = "",
    ) -> None:
        code = "G02" if cw else "G03"
        self._buf.write(
            f"{code} X{self._z(x)} Y{self._z(y)} Z{self._z(z)} "
            f"I{self._z(i)} J{self._z(j)} "
        )
        self.comment(text)
        self.pos.x = x
        self.pos.y = y
        self.pos.z = z

    # ------------------------------------------------------------------
    # Canned cycles and compound moves
    # ------------------------------------------------------------------

    def drill(self, code: str, z: float, feed: float, r: float) -> None:
        """Open a canned drilling cycle (``G81`` / ``G83``)."""
        _check_cycle(code, CANNED_CYCLES)
        self._buf.write(f"{code} Z{self._z(z)} F{feed:.3f} R{self._z(r)} ")
        self.pos.z = FLT_MAX

    def q_drill(self, code: str, z: float, feed: float, r: float, q: float) -> None:
        """Open a peck drilling cycle with increment *q*."""
        _check_cycle(code, PECK_CYCLES)
        if q <= 0.0:
            raise GCodeError(f"peck increment must be positive, got {q}")
        self._buf.write(
            f"{code} Z{self._z(z)} F{feed:.3f} R{self._z(r)} Q{self._z(q)} "
        )
        self.pos.z = FLT_MAX

    def go_home(self, depth: float) -> None:
        self._buf.write(f"G28 Z{self._z(self._origin_z() + depth)} ")
        self.comment("return to home")
        self.pos.reset()

    def move_to(
        self,
        x: float,
        y: float,
        z: float,
        travel_z: float,
        touch_z: float,
        tool: "Tool",
        target: str,
    ) -> None:
        """Travel to ``(x, y)`` at *travel_z*, then plunge to *z*.

        A rapid drop to *touch_z* precedes the feed plunge whenever the
        material surface is above the target depth.
        """
        if not is_equal(self.pos.x, x) or not is_equal(self.pos.y, y):
            self.retract(travel_z)
            self.move_2d(x, y, f"move to {target}")

        if not is_equal(self.pos.z, self._origin_z() + z):
            if touch_z >= z:
                self.plummet(touch_z)
            self.descend(z, tool)
