"""Implementation of OrderedCollectionStore using SQLAlchemy"""

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Self, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.config import Settings
from src.core.exceptions import (
    InvalidTarget,
    NotFound,
    OrderingExhausted,
    PositionConflict,
    ResolutionExhausted,
)
from src.core.models import OrderedItemModel, Placement, ReorderResult
from src.core.shared_types import ItemKind
from src.db.schema import DBBoard, DBCard, DBList
from src.ordering.allocator import PositionAllocator

logger = logging.getLogger(__name__)

OrderedRow = DBList | DBCard
T = TypeVar("T")

TABLES: dict[ItemKind, type[OrderedRow]] = {
    ItemKind.LIST: DBList,
    ItemKind.CARD: DBCard,
}

# Positions are always > 0, so anything <= PARKING_START is free for the first pass of a multi-row rewrite.
PARKING_START = -1.0


class SQLOrderedCollectionStore:
    """
    Data stored using SQL / methods implemented using SQLAlchemy.
    ---
    The (parent, position) unique constraints are the last line of defence against two concurrent writers picking the
    same position: the loser's IntegrityError becomes a PositionConflict, the transaction is rolled back and the
    operation is retried against freshly read siblings.
    """

    def __init__(
        self,
        db_session: Session,
        allocator: Optional[PositionAllocator] = None,
        max_retries: int = 10,
        retry_jitter: float = 0.005,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.db = db_session
        self.allocator = allocator or PositionAllocator()
        self.max_retries = max_retries
        self.retry_jitter = retry_jitter
        self.clock = clock

    @classmethod
    def from_settings(
        cls, db_session: Session, settings: Settings
    ) -> Self:
        return cls(
            db_session,
            allocator=PositionAllocator(settings.base_position, settings.min_delta),
            max_retries=settings.max_position_retries,
            retry_jitter=settings.retry_jitter_seconds,
        )

    # --- boards ---
    def create_board(self, title: str) -> UUID:
        """Store a new (empty) board and return its ID."""
        new_id = uuid4()
        with self._transaction():
            self.db.add(DBBoard(id=new_id, title=title))
        return new_id

    def board_exists(self, board_id: UUID) -> bool:
        return self.db.get(DBBoard, board_id) is not None

    def board_of_parent(self, kind: ItemKind, parent_id: UUID) -> Optional[UUID]:
        """Board that owns the collection `parent_id` (a board for lists, a list for cards). None if it does not exist."""
        if kind is ItemKind.LIST:
            return parent_id if self.board_exists(parent_id) else None
        return self.db.scalar(select(DBList.board_id).where(DBList.id == parent_id))

    # --- reads ---
    def get_item(self, kind: ItemKind, item_id: UUID) -> Optional[OrderedItemModel]:
        """Get item by ID, if record exists."""
        row = self.db.get(TABLES[kind], item_id)
        if row:
            return self._to_model(kind, row)
        return None

    def list_items(
        self, kind: ItemKind, parent_id: UUID, exclude_id: Optional[UUID] = None
    ) -> list[OrderedItemModel]:
        """Siblings sorted by position (ties by id), optionally leaving one of them out."""
        return [
            self._to_model(kind, row)
            for row in self._fetch_siblings(kind, parent_id, exclude_id)
        ]

    # --- single item placement ---
    def insert(
        self, kind: ItemKind, parent_id: UUID, title: str, at_index: Optional[int] = None
    ) -> Placement:
        """Store a new item at `at_index` (default: at the end)."""
        return self._with_retries(
            f"insert {kind} into {parent_id}",
            lambda: self._insert_once(kind, parent_id, title, at_index, tiebreak=False),
            fallback=lambda: self._insert_once(
                kind, parent_id, title, at_index, tiebreak=True
            ),
        )

    def move_within_parent(
        self,
        kind: ItemKind,
        item_id: UUID,
        new_index: int,
        expected_parent_id: Optional[UUID] = None,
    ) -> Placement:
        """
        Reposition an item among its current siblings. Only that item's row is written (barring a rebalance).

        With `expected_parent_id` the move is refused (InvalidTarget) if, at write time, the item no longer is in that
        parent.
        """
        return self._with_retries(
            f"move {kind} {item_id}",
            lambda: self._move_once(
                kind, item_id, None, new_index, expected_parent_id, tiebreak=False
            ),
            fallback=lambda: self._move_once(
                kind, item_id, None, new_index, expected_parent_id, tiebreak=True
            ),
        )

    def transfer_to_parent(
        self,
        kind: ItemKind,
        item_id: UUID,
        new_parent_id: UUID,
        new_index: int,
        expected_parent_id: Optional[UUID] = None,
    ) -> Placement:
        """Change parent and position together, in one write."""
        return self._with_retries(
            f"transfer {kind} {item_id} to {new_parent_id}",
            lambda: self._move_once(
                kind, item_id, new_parent_id, new_index, expected_parent_id, tiebreak=False
            ),
            fallback=lambda: self._move_once(
                kind, item_id, new_parent_id, new_index, expected_parent_id, tiebreak=True
            ),
        )

    # --- whole collection ---
    def rebalance_all(self, kind: ItemKind, parent_id: UUID) -> list[OrderedItemModel]:
        """Rewrite every sibling to B, 2B, 3B, ... keeping their order."""
        return self._with_retries(
            f"rebalance {kind}s of {parent_id}",
            lambda: self._rebalance_once(kind, parent_id),
        )

    def reorder_batch(
        self, kind: ItemKind, parent_id: UUID, ordered_ids: Sequence[UUID]
    ) -> ReorderResult:
        """
        Apply a complete target order for all siblings.

        Items that already are in the right relative order keep their positions, the others are repositioned in
        between. Falls back to B, 2B, 3B, ... in target order when a gap is too narrow.
        """
        return self._with_retries(
            f"reorder {kind}s of {parent_id}",
            lambda: self._reorder_once(kind, parent_id, list(ordered_ids)),
        )

    # --- other updates ---
    def rename(self, kind: ItemKind, item_id: UUID, title: str) -> Optional[OrderedItemModel]:
        """Change the title only."""
        with self._transaction():
            row = self.db.get(TABLES[kind], item_id)
            if not row:
                return None
            row.title = title
            self.db.flush()
            renamed = self._to_model(kind, row)
        return renamed

    def delete(self, kind: ItemKind, item_id: UUID) -> Optional[OrderedItemModel]:
        """Remove an item's record (a list takes its cards along). Siblings are not renumbered: gaps are fine."""
        with self._transaction():
            row = self.db.get(TABLES[kind], item_id)
            if not row:
                return None
            deleted = self._to_model(kind, row)
            if kind is ItemKind.LIST:
                self.db.execute(delete(DBCard).where(DBCard.list_id == item_id))
            self.db.delete(row)
        return deleted

    # --- Internal helpers ---
    def _insert_once(
        self,
        kind: ItemKind,
        parent_id: UUID,
        title: str,
        at_index: Optional[int],
        tiebreak: bool,
    ) -> Placement:
        table = TABLES[kind]
        with self._transaction():
            if self.board_of_parent(kind, parent_id) is None:
                raise NotFound(f"No {self._parent_name(kind)} with {parent_id=}.")

            siblings = self._fetch_siblings(kind, parent_id)
            index = len(siblings) if at_index is None else at_index
            position, rebalanced = self._allocate(siblings, index, tiebreak)
            if rebalanced is not None:
                self._rewrite_positions(siblings, rebalanced)

            row = table(
                id=uuid4(),
                title=title,
                position=position,
                **{table.parent_key: parent_id},
            )
            self.db.add(row)
            self.db.flush()
            placement = Placement(
                item=self._to_model(kind, row),
                rebalanced=self._models_if(kind, siblings, rebalanced),
            )
        return placement

    def _move_once(
        self,
        kind: ItemKind,
        item_id: UUID,
        new_parent_id: Optional[UUID],
        new_index: int,
        expected_parent_id: Optional[UUID],
        tiebreak: bool,
    ) -> Placement:
        table = TABLES[kind]
        with self._transaction():
            # never trust the identity map here: another session may have moved the row since it was loaded
            row = self.db.get(table, item_id, populate_existing=True)
            if not row:
                raise NotFound(f"No {kind} with {item_id=}.")

            current_parent = getattr(row, table.parent_key)
            if expected_parent_id is not None and current_parent != expected_parent_id:
                raise InvalidTarget(
                    f"{kind.capitalize()} {item_id} is not in {self._parent_name(kind)} {expected_parent_id} (anymore)."
                )
            previous = self._to_model(kind, row)
            parent_id = current_parent if new_parent_id is None else new_parent_id
            if parent_id != current_parent and self.board_of_parent(kind, parent_id) is None:
                raise NotFound(f"No {self._parent_name(kind)} with {parent_id=}.")

            siblings = self._fetch_siblings(kind, parent_id, exclude_id=item_id)
            if parent_id == current_parent and self._already_at(row, siblings, new_index):
                return Placement(item=previous, previous=previous)

            position, rebalanced = self._allocate(siblings, new_index, tiebreak)
            setattr(row, table.parent_key, parent_id)
            if rebalanced is not None:
                # the moving row is parked together with its new siblings
                self._rewrite_positions(siblings + [row], rebalanced + [position])
            row.position = position
            self.db.flush()
            placement = Placement(
                item=self._to_model(kind, row),
                rebalanced=self._models_if(kind, siblings, rebalanced),
                previous=previous,
            )
        return placement

    def _rebalance_once(self, kind: ItemKind, parent_id: UUID) -> list[OrderedItemModel]:
        with self._transaction():
            if self.board_of_parent(kind, parent_id) is None:
                raise NotFound(f"No {self._parent_name(kind)} with {parent_id=}.")
            siblings = self._fetch_siblings(kind, parent_id)
            targets = self.allocator.rebalance([row.position for row in siblings])
            self._rewrite_positions(siblings, targets)
            rebalanced = [self._to_model(kind, row) for row in siblings]
        logger.info("Rebalanced %d %ss under %s", len(rebalanced), kind, parent_id)
        return rebalanced

    def _reorder_once(
        self, kind: ItemKind, parent_id: UUID, ordered_ids: list[UUID]
    ) -> ReorderResult:
        with self._transaction():
            if self.board_of_parent(kind, parent_id) is None:
                raise NotFound(f"No {self._parent_name(kind)} with {parent_id=}.")

            siblings = self._fetch_siblings(kind, parent_id)
            current_index = {row.id: index for index, row in enumerate(siblings)}
            if len(ordered_ids) != len(siblings) or set(ordered_ids) != set(current_index):
                raise InvalidTarget(
                    f"Target ordering must list each of the {len(siblings)} {kind}s under {parent_id} exactly once."
                )

            before = [self._to_model(kind, row) for row in siblings]
            positions = [row.position for row in siblings]
            permutation = [current_index[item_id] for item_id in ordered_ids]
            try:
                targets = self.allocator.reorder(positions, permutation)
            except ResolutionExhausted:
                logger.info(
                    "Gap exhausted while reordering %ss under %s, laying out from scratch",
                    kind,
                    parent_id,
                )
                targets = self.allocator.rebalance(positions)

            in_target_order = [siblings[index] for index in permutation]
            changed = [
                (row, target)
                for row, target in zip(in_target_order, targets)
                if row.position != target
            ]
            self._rewrite_positions(
                [row for row, _ in changed], [target for _, target in changed]
            )
            after = [self._to_model(kind, row) for row in in_target_order]
        return ReorderResult(before=before, after=after)

    def _allocate(
        self, siblings: list[OrderedRow], index: int, tiebreak: bool
    ) -> tuple[float, Optional[list[float]]]:
        """New position at `index`, plus the rebalanced sibling positions if a rebalance was needed first (else None)."""
        positions = [row.position for row in siblings]
        if not tiebreak:
            try:
                return self.allocator.position_at_index(positions, index), None
            except ResolutionExhausted:
                spaced = self._rebalanced_for(positions, index)
                return self.allocator.position_at_index(spaced, index), spaced

        # the fallback point must still leave the same resolution margin as a regular insert
        rebalanced: Optional[list[float]] = None
        try:
            self.allocator.position_between(*self.allocator.neighbours(positions, index))
        except ResolutionExhausted:
            rebalanced = self._rebalanced_for(positions, index)
            positions = rebalanced
        seed = (self.clock() % 1_000_003) / 1_000_003
        before, after = self.allocator.neighbours(positions, index)
        return self.allocator.tiebreak(before, after, seed), rebalanced

    def _rebalanced_for(self, positions: list[float], index: int) -> list[float]:
        logger.info("Rebalancing %d siblings before placing at index %d", len(positions), index)
        return self.allocator.rebalance(positions)

    def _rewrite_positions(self, rows: list[OrderedRow], targets: list[float]) -> None:
        """
        Two-phase bulk write: park every row on a distinct negative position first, then assign the targets.

        Needed because the unique (parent, position) constraint is checked per statement: writing the targets directly
        could hit another row's *current* position halfway through the batch.
        """
        if not rows:
            return
        for rank, row in enumerate(rows):
            row.position = PARKING_START - rank
        self.db.flush()
        for row, target in zip(rows, targets):
            row.position = target
        self.db.flush()

    def _already_at(self, row: OrderedRow, others: list[OrderedRow], new_index: int) -> bool:
        """Would moving `row` to `new_index` leave the order as it is?"""
        current = sum(
            1 for other in others if (other.position, other.id) < (row.position, row.id)
        )
        return current == max(0, min(new_index, len(others)))

    def _with_retries(
        self,
        description: str,
        operation: Callable[[], T],
        fallback: Optional[Callable[[], T]] = None,
    ) -> T:
        """Run `operation`, re-running it on PositionConflict with growing random jitter."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation()
            except PositionConflict:
                logger.info(
                    "Position conflict on %s (attempt %d/%d)",
                    description,
                    attempt,
                    self.max_retries,
                )
                if self.retry_jitter > 0:
                    time.sleep(random.uniform(0, self.retry_jitter * attempt))

        if fallback is not None:
            logger.warning("Falling back to a clock-derived position for %s", description)
            try:
                return fallback()
            except PositionConflict as exc:
                logger.error("Ordering exhausted on %s", description)
                raise OrderingExhausted(
                    f"Could not {description}: no free position after {self.max_retries} retries."
                ) from exc

        logger.error("Ordering exhausted on %s", description)
        raise OrderingExhausted(
            f"Could not {description}: still conflicting after {self.max_retries} retries."
        )

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit on success. Roll back on any failure, turning a unique constraint violation into PositionConflict."""
        try:
            yield
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise PositionConflict(str(exc.orig)) from exc
        except Exception:
            self.db.rollback()
            raise

    def _fetch_siblings(
        self, kind: ItemKind, parent_id: UUID, exclude_id: Optional[UUID] = None
    ) -> list[OrderedRow]:
        table = TABLES[kind]
        query = (
            select(table)
            .where(getattr(table, table.parent_key) == parent_id)
            .order_by(table.position, table.id)
        )
        if exclude_id is not None:
            query = query.where(table.id != exclude_id)
        return list(self.db.scalars(query))

    def _models_if(
        self, kind: ItemKind, rows: list[OrderedRow], rebalanced: Optional[list[float]]
    ) -> list[OrderedItemModel]:
        if rebalanced is None:
            return []
        return [self._to_model(kind, row) for row in rows]

    @staticmethod
    def _parent_name(kind: ItemKind) -> str:
        return "board" if kind is ItemKind.LIST else "list"

    @staticmethod
    def _to_model(kind: ItemKind, row: OrderedRow) -> OrderedItemModel:
        """Convert SQLAlchemy model to data transfer model."""
        return OrderedItemModel(
            id=row.id,
            kind=kind,
            parent_id=getattr(row, row.parent_key),
            title=row.title,
            position=row.position,
        )
