"""Greedy nearest-neighbour visiting order with duplicate collapse.

Used by DrillHoles to shorten rapid travel between holes.  The result is
a greedy approximation of the shortest tour, O(n^2) in the number of
items, and never fails: every surviving item is visited exactly once.

Duplicate collapse:
    When the cursor reaches an item, every later item within
    ``PRECISION`` of it is dropped from the order.  Items for which
    ``skip`` is true (suppressed holes) are neither visited, compared nor
    dropped; they keep their slot relative to the items around them.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

import numpy as np

from gcam.gmath import PRECISION, Vec2

logger = logging.getLogger(__name__)

T = TypeVar("T")


def path_length(points: Sequence[Vec2]) -> float:
    """Total length of the polyline through *points*."""
    if len(points) < 2:
        return 0.0
    arr = np.asarray(points, dtype=np.float64)
    return float(np.hypot(*np.diff(arr, axis=0).T).sum())


def nearest_neighbour_order(
    items: Sequence[T],
    position: Callable[[T], Vec2],
    skip: Callable[[T], bool] | None = None,
) -> list[T]:
    """Reorder *items* greedily by distance, dropping near-duplicates.

    Parameters
    ----------
    items : sequence
        Working items, left unmodified; a new list is returned.
    position : callable
        Maps an item to its absolute ``(x, y)``.
    skip : callable, optional
        Items for which this returns True are passed over.

    Returns
    -------
    list
        The visiting order.  Ties are broken by list order, so the result
        is deterministic.

    Examples
    --------
    >>> pts = [(0.0, 0.0), (10.0, 0.0), (1.0, 0.0)]
    >>> nearest_neighbour_order(pts, lambda p: p)
    [(0.0, 0.0), (1.0, 0.0), (10.0, 0.0)]
    """
    if skip is None:
        skip = _never
    order = list(items)
    dropped = 0

    cursor = 0
    while cursor < len(order) - 1:
        current = order[cursor]
        if skip(current):
            cursor += 1
            continue

        later = [j for j in range(cursor + 1, len(order)) if not skip(order[j])]
        if later:
            here = np.asarray(position(current), dtype=np.float64)
            there = np.asarray([position(order[j]) for j in later], dtype=np.float64)
            dist = np.hypot(there[:, 0] - here[0], there[:, 1] - here[1])

            duplicate = dist < PRECISION
            if duplicate.any():
                gone = {later[k] for k in np.flatnonzero(duplicate)}
                dropped += len(gone)
                survivors = [j for j in later if j not in gone]
                dist = dist[~duplicate]
            else:
                gone = set()
                survivors = later

            best = order[survivors[int(np.argmin(dist))]] if survivors else None
            if gone:
                order = [item for j, item in enumerate(order) if j not in gone]
            if best is not None:
                _move_after(order, cursor, best)
        cursor += 1

    if dropped:
        logger.debug("optimizer: collapsed %d duplicate position(s)", dropped)
    return order


def _never(_item: object) -> bool:
    return False


def _move_after(order: list, cursor: int, item: object) -> None:
    """Splice *item* (found by identity) to sit right after ``order[cursor]``."""
    for j in range(cursor + 1, len(order)):
        if order[j] is item:
            if j != cursor + 1:
                del order[j]
                order.insert(cursor + 1, item)
            return


__all__ = ["nearest_neighbour_order", "path_length"]
