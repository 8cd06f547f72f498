"""
Boundary layer data model(s).

These objects are passed between the services, the store and the real-time layer.
Both the API layer (higher) and the db / realtime layers (lower) use them, which decouples the SQLAlchemy rows and the
pydantic request/response models from the information that actually crosses the boundaries.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from src.core.shared_types import EventKind, ItemKind

# Type alias to make the payloads easier to read
Payload = dict[str, Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UserModel:
    """Display-safe user record, as resolved by the identity collaborator."""

    id: UUID
    display_name: str


@dataclass(frozen=True)
class OrderedItemModel:
    """A List (parent = board) or a Card (parent = list)."""

    id: UUID
    kind: ItemKind
    parent_id: UUID
    title: str
    position: float


@dataclass
class Placement:
    """Outcome of an insert / move: the placed item, plus every sibling rewritten by a rebalance on the way (usually none).

    `previous` is the item as it was read inside the same transaction, before the write (None for an insert).
    """

    item: OrderedItemModel
    rebalanced: list[OrderedItemModel] = field(default_factory=list)
    previous: Optional[OrderedItemModel] = None


@dataclass
class ReorderResult:
    """Sibling order before and after a batch reorder, both sorted by position."""

    before: list[OrderedItemModel]
    after: list[OrderedItemModel]

    def changed(self) -> list[OrderedItemModel]:
        """Items (in their new order) whose stored position actually changed."""
        previous = {item.id: item.position for item in self.before}
        return [item for item in self.after if previous.get(item.id) != item.position]


@dataclass(frozen=True)
class DomainEvent:
    """Describes one committed change. Routed by board_id, never persisted by the core."""

    kind: EventKind
    board_id: UUID
    payload: Payload
    actor: UserModel
    timestamp: datetime = field(default_factory=utc_now)
