"""Repeat a block's children with cumulative rotation and translation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from gcam import gmath

if TYPE_CHECKING:
    from gcam.blocks.base import Block

logger = logging.getLogger(__name__)


def pattern(
    block: "Block",
    count: int,
    delta: Sequence[float],
    datum: Sequence[float],
    angle: float,
) -> list["Block"]:
    """Append ``count - 1`` transformed copies of *block*'s children.

    Copy ``i`` (1-based) of every original child is spun about *datum*
    by ``i * angle`` and then moved by ``i * delta``.  Copies are only
    ever made from the children present before the call, and each
    repetition keeps their relative order.

    Returns
    -------
    list of Block
        The newly appended children, empty when ``count <= 1``.
    """
    originals = list(block.children)
    created: list[Block] = []
    if count <= 1 or not originals:
        return created

    for i in range(1, count):
        step = gmath.mul(delta, float(i))
        turn = float(i) * angle
        for child in originals:
            copy = child.clone(block)
            if copy.supports("spin"):
                copy.spin(datum, turn)
            if copy.supports("move"):
                copy.move(step)
            block.append(copy)
            created.append(copy)

    logger.debug(
        "pattern %s %r: %d copies of %d children",
        block.type_name, block.comment, count - 1, len(originals),
    )
    return created


__all__ = ["pattern"]
