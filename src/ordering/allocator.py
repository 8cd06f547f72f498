"""
Fractional ordering of siblings.

Every List (within a board) and every Card (within a list) carries a float `position`. Reading the siblings sorted by
position ascending gives the order the users see. Inserting or moving an item only ever writes that one item's position:
the new value is taken from the gap between its future neighbours.

    positions:   65536        131072        196608
    insert at 1:        98304
    insert at 0: 32768

Repeatedly splitting the same gap halves it every time, so floats eventually run out of resolution. As soon as a gap is
narrower than 2 * min_delta the allocator refuses to split it (ResolutionExhausted) and the caller has to rebalance the
collection (B, 2B, 3B, ...) before retrying. Pure computation, no I/O.
"""

from bisect import bisect_left
from typing import Optional, Sequence

from src.core.exceptions import InvalidTarget, ResolutionExhausted

BASE_POSITION = 65536.0
MIN_DELTA = 0.01


class PositionAllocator:
    """Derive new positions from the positions of the (sorted) siblings."""

    def __init__(
        self, base_position: float = BASE_POSITION, min_delta: float = MIN_DELTA
    ) -> None:
        self.base = base_position
        self.min_delta = min_delta

    def position_between(self, before: Optional[float], after: Optional[float]) -> float:
        """
        Position strictly between two neighbours (None = no neighbour on that side).
        ---
        * nothing on either side: the first item of a collection gets B
        * only `after`: insert at the head, halve towards zero but never below min_delta
        * only `before`: append at the tail, B further
        * both: midpoint. Refused when the gap is below 2 * min_delta, so that both halves stay >= min_delta.
        """
        if before is None and after is None:
            return self.base

        if before is None:
            candidate = max(after / 2, self.min_delta)
            if after - candidate < self.min_delta:
                raise ResolutionExhausted(f"No room left in front of {after!r}.")
            return candidate

        if after is None:
            return before + self.base

        if after - before < 2 * self.min_delta:
            raise ResolutionExhausted(
                f"Gap between {before!r} and {after!r} is below {2 * self.min_delta}."
            )
        return (before + after) / 2

    def position_at_index(self, positions: Sequence[float], target_index: int) -> float:
        """
        Position that lands an item at `target_index` of `positions` (sorted ascending).

        The moving item itself must already be left out of `positions`.
        """
        return self.position_between(*self.neighbours(positions, target_index))

    @staticmethod
    def neighbours(
        positions: Sequence[float], target_index: int
    ) -> tuple[Optional[float], Optional[float]]:
        """Positions just before and just after `target_index` (None past either end)."""
        if target_index <= 0:
            return None, (positions[0] if positions else None)
        if target_index >= len(positions):
            return (positions[-1] if positions else None), None
        return positions[target_index - 1], positions[target_index]

    def rebalance(self, positions: Sequence[float]) -> list[float]:
        """Evenly spaced positions B, 2B, 3B, ... for the siblings, in their current order."""
        return [self.base * (rank + 1) for rank in range(len(positions))]

    def tiebreak(
        self, before: Optional[float], after: Optional[float], seed: float
    ) -> float:
        """
        Last resort when retries keep colliding: a point somewhere in the middle half of the gap,
        picked by `seed` in [0, 1) (derived from a clock by the caller) instead of the exact midpoint every writer computes.
        """
        fraction = 0.25 + seed / 2
        if before is None and after is None:
            return self.base * (0.5 + fraction)
        if before is None:
            return after * fraction
        if after is None:
            return before + self.base * (0.5 + fraction)
        return before + (after - before) * fraction

    def spread(
        self, before: Optional[float], after: Optional[float], count: int
    ) -> list[float]:
        """`count` ascending positions strictly between two neighbours, evenly spaced."""
        if count <= 0:
            return []
        if after is None:
            start = 0.0 if before is None else before
            return [start + self.base * (step + 1) for step in range(count)]

        lower = 0.0 if before is None else before
        step = (after - lower) / (count + 1)
        if step < self.min_delta:
            raise ResolutionExhausted(
                f"Cannot fit {count} items between {before!r} and {after!r}."
            )
        return [lower + step * (rank + 1) for rank in range(count)]

    def reorder(
        self, positions: Sequence[float], permutation: Sequence[int]
    ) -> list[float]:
        """
        Positions for a full re-ordering of the siblings, touching as few items as possible.

        `positions` are the current sorted positions, `permutation[j]` is the current index of the item that should end up
        at index j. The items along one longest increasing run of the permutation already are in the right relative order:
        they keep their positions. The others are spread over the gaps between them.
        """
        if sorted(permutation) != list(range(len(positions))):
            raise InvalidTarget("Target ordering must contain every sibling exactly once.")

        keep = longest_increasing_run(permutation)
        result: list[Optional[float]] = [
            positions[current] if target in keep else None
            for target, current in enumerate(permutation)
        ]

        index = 0
        while index < len(result):
            if result[index] is not None:
                index += 1
                continue
            start = index
            while index < len(result) and result[index] is None:
                index += 1
            before = result[start - 1] if start > 0 else None
            after = result[index] if index < len(result) else None
            for offset, position in enumerate(self.spread(before, after, index - start)):
                result[start + offset] = position
        return result


def longest_increasing_run(sequence: Sequence[int]) -> set[int]:
    """Indices of `sequence` forming one longest strictly increasing subsequence (patience sorting)."""
    tail_values: list[int] = []
    tail_indices: list[int] = []
    parents: list[Optional[int]] = [None] * len(sequence)

    for index, value in enumerate(sequence):
        length = bisect_left(tail_values, value)
        parents[index] = tail_indices[length - 1] if length > 0 else None
        if length == len(tail_values):
            tail_values.append(value)
            tail_indices.append(index)
        else:
            tail_values[length] = value
            tail_indices[length] = index

    run: set[int] = set()
    cursor = tail_indices[-1] if tail_indices else None
    while cursor is not None:
        run.add(cursor)
        cursor = parents[cursor]
    return run
