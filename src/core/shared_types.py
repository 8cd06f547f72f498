"""
Type definitions used across layers
"""

from enum import StrEnum


class ItemKind(StrEnum):
    """The two ordered collections: lists within a board, cards within a list."""

    LIST = "list"
    CARD = "card"


class EventKind(StrEnum):
    ITEM_MOVED = "item-moved"
    ITEM_CREATED = "item-created"
    ITEM_UPDATED = "item-updated"
    ITEM_DELETED = "item-deleted"
    ITEMS_REBALANCED = "items-rebalanced"


class SessionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    IN_ROOM = "in room"


# --- names of the messages that never go through the orchestrator (no DomainEvent behind them)
PRESENCE_MESSAGE = "presence-updated"
BOARD_JOINED_MESSAGE = "board-joined"
DRAG_START_MESSAGE = "drag-start"
DRAG_END_MESSAGE = "drag-end"
