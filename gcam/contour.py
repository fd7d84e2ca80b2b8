"""Working copies of line/arc chains for contour generation.

Sketch and BoltHoles never edit their own children while making code.
They take a *snapshot* (clones that keep resolving their offset through
the original parent), reorder and flip it into contiguous fragments,
then bake the offset into plain coordinates with
:func:`convert_to_no_offset` before filling the gaps between pieces.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from gcam import gmath
from gcam.constants import BlockType, EndsMode
from gcam.gmath import PRECISION, TOLERANCE
from gcam.offset import Offset

if TYPE_CHECKING:
    from gcam.blocks.base import Block

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def snapshot(blocks: Sequence["Block"]) -> list["Block"]:
    """Clones of *blocks* that still resolve offsets through their parents.

    The clones are not inserted into any list, so the originals' parent
    is untouched while the copies are reordered, flipped and rewritten.
    """
    return [block.clone(block.parent) for block in blocks]


def remove_null_sections(blocks: list["Block"]) -> int:
    """Drop zero-length lines and zero-radius arcs in place; return the count."""
    before = len(blocks)
    blocks[:] = [b for b in blocks if not is_null_section(b)]
    return before - len(blocks)


def is_null_section(block: "Block") -> bool:
    if block.TYPE == BlockType.LINE:
        return gmath.manhattan(block.p0, block.p1) < PRECISION
    if block.TYPE == BlockType.ARC:
        return block.radius < PRECISION
    return False


def flip_direction(blocks: list["Block"]) -> None:
    """Reverse a chain in place: reversed order, each element reversed."""
    for block in blocks:
        block.flip_direction()
    blocks.reverse()


# ---------------------------------------------------------------------------
# Fragment merging
# ---------------------------------------------------------------------------


def _start(block: "Block") -> tuple[float, float]:
    return block.ends(EndsMode.GET)[0]


def _end(block: "Block") -> tuple[float, float]:
    return block.ends(EndsMode.GET)[1]


def merge_list_fragments(blocks: list["Block"]) -> bool:
    """Reorder and flip *blocks* into the longest contiguous fragments.

    Pieces are slid next to the fragment edge they connect to, flipping
    them when they connect the wrong way round.  When the whole chain
    closes, the original first piece stays first; when more than half of
    the pieces had to be flipped, the whole chain is reversed back so the
    majority keeps its original direction.

    Returns
    -------
    bool
        True when every fragment is closed.
    """
    if not blocks:
        return True
    if len(blocks) == 1:
        return gmath.distance(*blocks[0].ends(EndsMode.GET)) < TOLERANCE

    head = blocks[0]
    closed = True
    flips = 0
    breaks = 0
    first = 0  # index of the current fragment's first piece
    last = 0   # index of the current fragment's last piece

    while last < len(blocks) - 1:
        pe = _start(blocks[first])
        ne = _end(blocks[last])
        placed = False
        for j in range(last + 1, len(blocks)):
            candidate = blocks[j]
            e0, e1 = candidate.ends(EndsMode.GET)
            if gmath.distance(e0, ne) < TOLERANCE or gmath.distance(e1, ne) < TOLERANCE:
                if gmath.distance(e0, ne) >= TOLERANCE:
                    candidate.flip_direction()
                    flips += 1
                del blocks[j]
                last += 1
                blocks.insert(last, candidate)
                placed = True
                break
            if gmath.distance(e1, pe) < TOLERANCE or gmath.distance(e0, pe) < TOLERANCE:
                if gmath.distance(e1, pe) >= TOLERANCE:
                    candidate.flip_direction()
                    flips += 1
                del blocks[j]
                blocks.insert(first, candidate)
                last += 1
                placed = True
                break
        if not placed:
            breaks += 1
            if gmath.distance(ne, pe) > TOLERANCE:
                closed = False
            last += 1
            first = last

    if gmath.distance(_end(blocks[last]), _start(blocks[first])) > TOLERANCE:
        closed = False

    # keep the original head when the whole chain is one loop
    if gmath.distance(_end(blocks[-1]), _start(blocks[0])) < TOLERANCE:
        i = _index(blocks, head)
        blocks[:] = blocks[i:] + blocks[:i]

    if flips > len(blocks) // 2:
        keep_head = breaks == 0 and closed
        head = blocks[0]
        flip_direction(blocks)
        if keep_head:
            i = _index(blocks, head)
            blocks[:] = blocks[i:] + blocks[:i]

    logger.debug(
        "merged %d pieces: %d flipped, %d break(s), closed=%s",
        len(blocks), flips, breaks, closed,
    )
    return closed


def _index(blocks: Sequence["Block"], block: "Block") -> int:
    for i, candidate in enumerate(blocks):
        if candidate is block:
            return i
    return 0


def split_chains(blocks: Sequence["Block"]) -> list[list["Block"]]:
    """Cut a merged list where consecutive pieces do not touch."""
    chains: list[list[Block]] = []
    current: list[Block] = []
    for block in blocks:
        if current and gmath.manhattan(_end(current[-1]), _start(block)) > TOLERANCE:
            chains.append(current)
            current = []
        current.append(block)
    if current:
        chains.append(current)
    return chains


def is_closed(chain: Sequence["Block"]) -> bool:
    if not chain:
        return False
    return gmath.manhattan(_start(chain[0]), _end(chain[-1])) < TOLERANCE


# ---------------------------------------------------------------------------
# Offset baking
# ---------------------------------------------------------------------------


def convert_to_no_offset(blocks: Sequence["Block"]) -> Offset | None:
    """Apply each piece's resolved offset to its coordinates.

    Every piece is re-pointed at one shared identity record that keeps
    only the side of the first piece's offset.  The record is returned so
    callers can drive its ``z`` range while emitting.
    """
    if not blocks:
        return None
    baked = Offset(side=blocks[0].offset.side)
    for block in blocks:
        if block.TYPE == BlockType.LINE:
            p0, p1, _ = block.with_offset()
            block.set_ends(p0, p1)
        elif block.TYPE == BlockType.ARC:
            p0, _, _, radius, start = block.with_offset()
            block.p = p0
            block.radius = radius
            block.start_angle = start
        block.offset_override = baked
    return baked


def add_up_path_length(blocks: Sequence["Block"]) -> float:
    return sum(block.length() for block in blocks)


__all__ = [
    "add_up_path_length",
    "convert_to_no_offset",
    "flip_direction",
    "is_closed",
    "is_null_section",
    "merge_list_fragments",
    "remove_null_sections",
    "snapshot",
    "split_chains",
]
