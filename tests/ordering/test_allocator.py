"""Unit tests for src/ordering/allocator.py"""

import pytest

from src.core.exceptions import InvalidTarget, ResolutionExhausted
from src.ordering.allocator import (
    BASE_POSITION,
    MIN_DELTA,
    PositionAllocator,
    longest_increasing_run,
)


@pytest.fixture
def allocator() -> PositionAllocator:
    return PositionAllocator()


# -- position_between --
def test_first_item_gets_base(allocator: PositionAllocator) -> None:
    assert allocator.position_between(None, None) == BASE_POSITION


def test_head_insert_halves(allocator: PositionAllocator) -> None:
    assert allocator.position_between(None, 100.0) == 50.0


def test_head_insert_never_drops_below_min_delta(allocator: PositionAllocator) -> None:
    """Halving 0.02 lands exactly on the floor and still leaves min_delta in front of the old head."""
    assert allocator.position_between(None, 0.03) == pytest.approx(0.015)
    assert allocator.position_between(None, 0.02) == MIN_DELTA


def test_head_insert_exhausted_close_to_zero(allocator: PositionAllocator) -> None:
    with pytest.raises(ResolutionExhausted):
        allocator.position_between(None, 0.015)


def test_tail_insert_adds_base(allocator: PositionAllocator) -> None:
    assert allocator.position_between(300.0, None) == 300.0 + BASE_POSITION


def test_midpoint(allocator: PositionAllocator) -> None:
    assert allocator.position_between(100.0, 200.0) == 150.0


@pytest.mark.parametrize(
    "before, after",
    [
        (100.0, 100.001),  # way below 2 * min_delta
        (100.0, 100.0 + 2 * MIN_DELTA - 1e-9),  # just below
        (100.0, 100.0),  # identical neighbours
    ],
)
def test_midpoint_exhausted(
    allocator: PositionAllocator, before: float, after: float
) -> None:
    with pytest.raises(ResolutionExhausted):
        allocator.position_between(before, after)


def test_midpoint_at_exactly_twice_min_delta() -> None:
    allocator = PositionAllocator(min_delta=0.25)
    assert allocator.position_between(1.0, 1.5) == 1.25


def test_repeated_narrow_inserts_eventually_exhaust(allocator: PositionAllocator) -> None:
    """Keep inserting right after the first item: the gap halves until the allocator asks for a rebalance."""
    before, after = BASE_POSITION, 2 * BASE_POSITION
    with pytest.raises(ResolutionExhausted):
        for _ in range(100):
            after = allocator.position_between(before, after)


# -- position_at_index --
@pytest.mark.parametrize(
    "target_index, expected",
    [
        (0, 50.0),
        (-3, 50.0),  # anything <= 0 is the head
        (1, 150.0),
        (2, 250.0),
        (3, 300.0 + BASE_POSITION),
        (42, 300.0 + BASE_POSITION),  # past the end is the tail
    ],
)
def test_position_at_index(
    allocator: PositionAllocator, target_index: int, expected: float
) -> None:
    assert allocator.position_at_index([100.0, 200.0, 300.0], target_index) == expected


def test_position_at_index_empty_collection(allocator: PositionAllocator) -> None:
    assert allocator.position_at_index([], 0) == BASE_POSITION
    assert allocator.position_at_index([], 5) == BASE_POSITION


def test_custom_constants() -> None:
    allocator = PositionAllocator(base_position=1000.0, min_delta=1.0)
    assert allocator.position_at_index([], 0) == 1000.0
    assert allocator.position_at_index([1000.0], 1) == 2000.0
    with pytest.raises(ResolutionExhausted):
        allocator.position_between(10.0, 11.5)


# -- rebalance --
def test_rebalance_spreads_evenly(allocator: PositionAllocator) -> None:
    assert allocator.rebalance([100.0, 100.001, 100.0011]) == [
        BASE_POSITION,
        2 * BASE_POSITION,
        3 * BASE_POSITION,
    ]
    assert allocator.rebalance([]) == []


# -- tiebreak --
@pytest.mark.parametrize("seed", [0.0, 0.5, 0.999])
def test_tiebreak_stays_inside_the_gap(allocator: PositionAllocator, seed: float) -> None:
    assert 100.0 < allocator.tiebreak(100.0, 200.0, seed) < 200.0
    assert 0 < allocator.tiebreak(None, 100.0, seed) < 100.0
    assert allocator.tiebreak(100.0, None, seed) > 100.0
    assert allocator.tiebreak(None, None, seed) > 0


def test_tiebreak_differs_from_midpoint(allocator: PositionAllocator) -> None:
    assert allocator.tiebreak(100.0, 200.0, 0.9) != allocator.position_between(100.0, 200.0)


# -- spread / reorder --
def test_spread_between_neighbours(allocator: PositionAllocator) -> None:
    assert allocator.spread(100.0, 200.0, 3) == [125.0, 150.0, 175.0]
    assert allocator.spread(None, 300.0, 2) == [100.0, 200.0]
    assert allocator.spread(100.0, None, 2) == [100.0 + BASE_POSITION, 100.0 + 2 * BASE_POSITION]
    assert allocator.spread(None, None, 0) == []


def test_spread_exhausted(allocator: PositionAllocator) -> None:
    with pytest.raises(ResolutionExhausted):
        allocator.spread(100.0, 100.03, 3)


@pytest.mark.parametrize(
    "sequence, expected_length",
    [
        ([], 0),
        ([0, 1, 2, 3], 4),
        ([3, 2, 1, 0], 1),
        ([2, 0, 1], 2),
        ([1, 0, 3, 2, 4], 3),
    ],
)
def test_longest_increasing_run(sequence: list[int], expected_length: int) -> None:
    run = longest_increasing_run(sequence)
    assert len(run) == expected_length
    values = [sequence[index] for index in sorted(run)]
    assert values == sorted(values)


def test_reorder_identity_keeps_everything(allocator: PositionAllocator) -> None:
    positions = [100.0, 200.0, 300.0]
    assert allocator.reorder(positions, [0, 1, 2]) == positions


def test_reorder_moves_only_the_moved_item(allocator: PositionAllocator) -> None:
    """Last item to the front: the other two keep their positions."""
    result = allocator.reorder([100.0, 200.0, 300.0], [2, 0, 1])
    assert result == [50.0, 100.0, 200.0]


def test_reorder_reverse(allocator: PositionAllocator) -> None:
    result = allocator.reorder([100.0, 200.0, 300.0], [2, 1, 0])
    assert result == sorted(result)
    assert len(set(result)) == 3
    # exactly one of them could stay where it was
    assert sum(new == old for new, old in zip(result, [300.0, 200.0, 100.0])) == 1


def test_reorder_exhausted(allocator: PositionAllocator) -> None:
    with pytest.raises(ResolutionExhausted):
        allocator.reorder([100.0, 100.001, 100.002], [0, 2, 1])


def test_reorder_rejects_non_permutation(allocator: PositionAllocator) -> None:
    with pytest.raises(InvalidTarget):
        allocator.reorder([100.0, 200.0], [0, 0])
