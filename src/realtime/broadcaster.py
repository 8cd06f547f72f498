"""
Fan-out of committed changes to everybody looking at the same board.

The broadcaster only relays what it is given: it never re-reads or re-derives board state. Delivery is best effort and
at most once. A session that misses a message (disconnect, failing socket) has to re-fetch the board.
Within one process, messages for one board reach each session in publish order.
"""

import logging
import threading
from contextlib import AbstractContextManager
from typing import Any, Iterable, Optional
from uuid import UUID

from src.api.models import EventMessage, PresenceMessage
from src.core.exceptions import TransportUnavailable
from src.core.models import DomainEvent
from src.core.shared_types import BOARD_JOINED_MESSAGE, PRESENCE_MESSAGE, EventKind
from src.realtime.presence import PresenceRegistry
from src.realtime.transport import Transport

logger = logging.getLogger(__name__)


class Broadcaster:
    """Publishes DomainEvents (and presence / ephemeral messages) to the sessions of a board room."""

    def __init__(
        self,
        registry: PresenceRegistry,
        transport: Transport,
        suppress_echo: Iterable[EventKind] = (EventKind.ITEM_MOVED,),
    ) -> None:
        self.registry = registry
        self.transport = transport
        # kinds the originating client already applied optimistically
        self.suppress_echo = frozenset(suppress_echo)
        self._room_locks: dict[UUID, AbstractContextManager] = {}
        self._locks_guard = threading.Lock()
        registry.subscribe(self.broadcast_presence)

    def publish(self, event: DomainEvent, origin_session_id: Optional[str] = None) -> int:
        """Send the event to the board's room. Returns the number of sessions it reached."""
        message = EventMessage.from_event(event).model_dump(mode="json")
        skip = origin_session_id if event.kind in self.suppress_echo else None
        delivered = self._fan_out(event.board_id, event.kind.value, message, skip)
        logger.debug(
            "Published %s on board %s to %d sessions", event.kind, event.board_id, delivered
        )
        return delivered

    def broadcast_presence(self, board_id: UUID) -> int:
        """Send the room's current user list to everybody in it."""
        message = PresenceMessage.for_room(
            board_id, self.registry.users_in_room(board_id)
        ).model_dump(mode="json")
        delivered = self._fan_out(board_id, PRESENCE_MESSAGE, message)
        self._forget_room_if_empty(board_id)
        return delivered

    def greet(self, session_id: str, board_id: UUID) -> bool:
        """Tell a freshly joined session who else is in the room."""
        message = PresenceMessage.for_room(
            board_id, self.registry.users_in_room(board_id)
        ).model_dump(mode="json")
        with self._room_lock(board_id):
            return self._send(session_id, BOARD_JOINED_MESSAGE, message)

    def relay(
        self,
        board_id: UUID,
        event_name: str,
        payload: dict[str, Any],
        origin_session_id: Optional[str] = None,
    ) -> int:
        """Pass an ephemeral message (drag indicators, ...) to the rest of the room."""
        return self._fan_out(board_id, event_name, payload, origin_session_id)

    # --- Internal helpers ---
    def _fan_out(
        self,
        board_id: UUID,
        event_name: str,
        message: dict[str, Any],
        skip: Optional[str] = None,
    ) -> int:
        if not self.registry.sessions_in_room(board_id):
            return 0
        delivered = 0
        with self._room_lock(board_id):
            for session_id in self.registry.sessions_in_room(board_id):
                if session_id == skip:
                    continue
                if self._send(session_id, event_name, message):
                    delivered += 1
        return delivered

    def _send(self, session_id: str, event_name: str, message: dict[str, Any]) -> bool:
        try:
            self.transport.send(session_id, event_name, message)
        except TransportUnavailable as exc:
            logger.warning("Dropped %s for session %s: %s", event_name, session_id, exc)
            return False
        except Exception:
            logger.exception("Failed to send %s to session %s", event_name, session_id)
            return False
        return True

    def _room_lock(self, board_id: UUID) -> AbstractContextManager:
        with self._locks_guard:
            return self._room_locks.setdefault(board_id, threading.RLock())

    def _forget_room_if_empty(self, board_id: UUID) -> None:
        """Rooms come and go with their sessions, so do their locks."""
        with self._locks_guard:
            if not self.registry.sessions_in_room(board_id):
                self._room_locks.pop(board_id, None)
