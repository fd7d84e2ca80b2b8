"""Scanline pocket clearing.

A pocket is a raster of horizontal cutting segments covering the inside
of a closed contour that has already been baked to a zero offset (tool
and profile offsets applied).  Rows are spaced half a tool diameter
apart across the material's y extent; on every row the contour pieces
report where they cross it (``eval``), the crossings are sorted, and
consecutive pairs bound the stretches lying inside the contour.

Milling order (traditional strategy)::

    even rows  left to right   x0 = left + pad   ->  x1 = right - pad
    odd rows   right to left   x0 = right - pad  ->  x1 = left + pad

Each segment is entered through ``move_to`` (retract, rapid, plunge), so
the cutter never drags across material between segments.  Segments the
tool cannot fit in after padding are skipped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from gcam.gmath import PRECISION

if TYPE_CHECKING:
    from gcam.blocks.base import Block
    from gcam.blocks.tool import Tool
    from gcam.emitter import GCodeWriter

logger = logging.getLogger(__name__)

# Each segment stops this fraction of the tool diameter short of the
# contour at both ends.
PADDING_FRACTION = 0.1


@dataclass
class PocketRow:
    y: float
    segments: list[tuple[float, float]] = field(default_factory=list)


def crossings(blocks: Sequence["Block"], y: float) -> list[float]:
    """Sorted X values where *blocks* cross height *y*, duplicates merged."""
    xs = sorted(x for block in blocks for x in block.eval(y))
    merged: list[float] = []
    for x in xs:
        if merged and math.fabs(x - merged[-1]) < PRECISION:
            continue
        merged.append(x)
    return merged


class Pocket:
    """Raster of segments clearing the inside of one baked contour.

    Parameters
    ----------
    project : Project
        Supplies the material extent and the travel height.
    tool : Tool
        Sets the row pitch and the segment padding.
    """

    def __init__(self, project, tool: "Tool") -> None:
        self.project = project
        self.tool = tool
        self.rows: list[PocketRow] = []

    @property
    def segment_count(self) -> int:
        return sum(len(row.segments) for row in self.rows)

    def prep(self, blocks: Sequence["Block"]) -> "Pocket":
        """Build one row per scanline from the baked contour *blocks*."""
        self.rows = []
        pitch = self.tool.diameter * 0.5
        if pitch < PRECISION:
            logger.warning("pocket skipped: tool diameter %.5f", self.tool.diameter)
            return self
        y_min = -self.project.material_origin[1]
        count = int(math.floor(self.project.material_size[1] / pitch + PRECISION)) + 1

        for i in range(count):
            y = y_min + i * pitch
            xs = crossings(blocks, y)
            row = PocketRow(y)
            for j in range(0, len(xs) - 1, 2):
                row.segments.append((xs[j], xs[j + 1]))
            self.rows.append(row)
        logger.debug("pocket: %d rows, %d segments", len(self.rows), self.segment_count)
        return self

    def subtract(self, other: "Pocket") -> None:
        """Remove from each row every stretch *other* covers on the same row.

        Both pockets must have been prepared for the same project and
        tool so their rows line up.
        """
        for row, cut in zip(self.rows, other.rows):
            kept: list[tuple[float, float]] = []
            for x0, x1 in row.segments:
                pieces = [(x0, x1)]
                for c0, c1 in cut.segments:
                    remaining = []
                    for a, b in pieces:
                        if c1 <= a + PRECISION or c0 >= b - PRECISION:
                            remaining.append((a, b))
                            continue
                        if c0 > a + PRECISION:
                            remaining.append((a, c0))
                        if c1 < b - PRECISION:
                            remaining.append((c1, b))
                    pieces = remaining
                kept.extend(pieces)
            row.segments = kept

    def make(self, w: "GCodeWriter", z: float, touch_z: float) -> None:
        """Emit the raster at depth *z*; nothing when there are no segments."""
        if not self.segment_count:
            return
        tool = self.tool
        travel_z = self.project.ztraverse
        padding = tool.diameter * PADDING_FRACTION

        w.section("Preliminary Pocket Milling Phase, Strategy: Traditional")
        for index, row in enumerate(self.rows):
            if index % 2:
                runs = [(x1 - padding, x0 + padding) for x0, x1 in reversed(row.segments)]
            else:
                runs = [(x0 + padding, x1 - padding) for x0, x1 in row.segments]
            for start, stop in runs:
                if math.fabs(stop - start) < tool.diameter:
                    continue
                w.move_to(start, row.y, z, travel_z, touch_z, tool, "next segment")
                w.line_2d(stop, row.y)
        w.retract(travel_z)


__all__ = ["PADDING_FRACTION", "Pocket", "PocketRow", "crossings"]
