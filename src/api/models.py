"""Requests, Responses and real-time message models"""

from datetime import datetime
from typing import Any, Optional, Self
from uuid import UUID

from pydantic import BaseModel, field_validator

from src.core.exceptions import InvalidTarget
from src.core.models import DomainEvent, OrderedItemModel, UserModel, utc_now
from src.core.shared_types import EventKind, ItemKind


def _non_negative_index(value: Optional[int]) -> Optional[int]:
    if value is not None and value < 0:
        raise InvalidTarget(f"Target index must be zero or positive, got {value}.")
    return value


# --- REQUEST MODELS ---
class MoveCardRequest(BaseModel):
    card_id: UUID
    source_list_id: UUID
    target_list_id: UUID
    target_index: int

    @field_validator("target_index")
    @classmethod
    def validate_index(cls, value: int) -> int:
        return _non_negative_index(value)


class MoveListRequest(BaseModel):
    list_id: UUID
    target_index: int

    @field_validator("target_index")
    @classmethod
    def validate_index(cls, value: int) -> int:
        return _non_negative_index(value)


class BulkReorderRequest(BaseModel):
    kind: ItemKind
    parent_id: UUID
    ordered_ids: list[UUID]

    @field_validator("ordered_ids")
    @classmethod
    def validate_unique(cls, value: list[UUID]) -> list[UUID]:
        if len(set(value)) != len(value):
            raise InvalidTarget("Target ordering lists the same item more than once.")
        return value


class RebalanceRequest(BaseModel):
    kind: ItemKind
    parent_id: UUID


class CreateItemRequest(BaseModel):
    kind: ItemKind
    parent_id: UUID
    title: str
    at_index: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise InvalidTarget("Title cannot be empty.")
        return value

    @field_validator("at_index")
    @classmethod
    def validate_index(cls, value: Optional[int]) -> Optional[int]:
        return _non_negative_index(value)


class RenameItemRequest(BaseModel):
    kind: ItemKind
    item_id: UUID
    title: str

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise InvalidTarget("Title cannot be empty.")
        return value


class DeleteItemRequest(BaseModel):
    kind: ItemKind
    item_id: UUID


# --- RESPONSE MODELS ---
class ItemResponse(BaseModel):
    id: UUID
    kind: ItemKind
    parent_id: UUID
    title: str
    position: float

    @classmethod
    def from_model(cls, item: OrderedItemModel) -> Self:
        return cls(
            id=item.id,
            kind=item.kind,
            parent_id=item.parent_id,
            title=item.title,
            position=item.position,
        )


class MoveResponse(BaseModel):
    item: ItemResponse
    moved: bool


class ReorderResponse(BaseModel):
    parent_id: UUID
    items: list[ItemResponse]
    moved_ids: list[UUID]


class UserResponse(BaseModel):
    id: UUID
    display_name: str

    @classmethod
    def from_model(cls, user: UserModel) -> Self:
        return cls(id=user.id, display_name=user.display_name)


class PresenceResponse(BaseModel):
    board_id: UUID
    users: list[UserResponse]


# --- REAL-TIME MESSAGES (what a transport actually sends) ---
class EventMessage(BaseModel):
    kind: EventKind
    board_id: UUID
    payload: dict[str, Any]
    actor: UserResponse
    timestamp: datetime

    @classmethod
    def from_event(cls, event: DomainEvent) -> Self:
        return cls(
            kind=event.kind,
            board_id=event.board_id,
            payload=event.payload,
            actor=UserResponse.from_model(event.actor),
            timestamp=event.timestamp,
        )


class PresenceMessage(BaseModel):
    board_id: UUID
    users: list[UserResponse]
    timestamp: datetime

    @classmethod
    def for_room(cls, board_id: UUID, users: list[UserModel]) -> Self:
        return cls(
            board_id=board_id,
            users=[UserResponse.from_model(user) for user in users],
            timestamp=utc_now(),
        )


class DragMessage(BaseModel):
    kind: ItemKind
    item_id: UUID
    board_id: UUID
    dragged_by: UserResponse
    timestamp: datetime
