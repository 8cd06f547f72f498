"""Protocol for the ordered collections (lists within a board, cards within a list)."""

from typing import Optional, Protocol, Sequence
from uuid import UUID

from src.core.models import OrderedItemModel, Placement, ReorderResult
from src.core.shared_types import ItemKind


class OrderedCollectionStore(Protocol):
    """Persistence layer orchestration. Every mutation is atomic and leaves no two siblings on the same position."""

    def create_board(self, title: str) -> UUID:
        """Store a new (empty) board and return its ID."""
        ...

    def board_exists(self, board_id: UUID) -> bool: ...

    def board_of_parent(self, kind: ItemKind, parent_id: UUID) -> Optional[UUID]:
        """Board that owns the collection `parent_id` (a board for lists, a list for cards). None if it does not exist."""
        ...

    def get_item(self, kind: ItemKind, item_id: UUID) -> Optional[OrderedItemModel]:
        """Get item by ID, if record exists."""
        ...

    def list_items(
        self, kind: ItemKind, parent_id: UUID, exclude_id: Optional[UUID] = None
    ) -> list[OrderedItemModel]:
        """Siblings sorted by position (ties by id), optionally leaving one of them out."""
        ...

    def insert(
        self, kind: ItemKind, parent_id: UUID, title: str, at_index: Optional[int] = None
    ) -> Placement:
        """Store a new item at `at_index` (default: at the end)."""
        ...

    def move_within_parent(
        self,
        kind: ItemKind,
        item_id: UUID,
        new_index: int,
        expected_parent_id: Optional[UUID] = None,
    ) -> Placement:
        """Reposition an item among its current siblings, refused if it is no longer in `expected_parent_id`."""
        ...

    def transfer_to_parent(
        self,
        kind: ItemKind,
        item_id: UUID,
        new_parent_id: UUID,
        new_index: int,
        expected_parent_id: Optional[UUID] = None,
    ) -> Placement:
        """Change parent and position together, in one write."""
        ...

    def rebalance_all(self, kind: ItemKind, parent_id: UUID) -> list[OrderedItemModel]:
        """Rewrite every sibling to B, 2B, 3B, ..."""
        ...

    def reorder_batch(
        self, kind: ItemKind, parent_id: UUID, ordered_ids: Sequence[UUID]
    ) -> ReorderResult:
        """Apply a complete target order for all siblings."""
        ...

    def rename(self, kind: ItemKind, item_id: UUID, title: str) -> Optional[OrderedItemModel]:
        """Change the title only."""
        ...

    def delete(self, kind: ItemKind, item_id: UUID) -> Optional[OrderedItemModel]:
        """Remove an item's record. Siblings are not renumbered."""
        ...
