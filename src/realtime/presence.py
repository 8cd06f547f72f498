"""
Which connected session is looking at which board.

Per session:  Disconnected -> Connected -> InRoom(board)
              InRoom(A) -> InRoom(B) is an implicit leave + join, and every state goes back to Disconnected on close.

Only authoritative for this process' live connections: nothing is persisted, a restart starts from scratch.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from src.core.exceptions import Forbidden, UnknownSession
from src.core.models import UserModel
from src.core.shared_types import SessionState

logger = logging.getLogger(__name__)

PresenceListener = Callable[[UUID], None]


@dataclass
class SessionEntry:
    user: UserModel
    board_id: Optional[UUID] = None


class PresenceRegistry:
    """
    Owns the two maps (session -> room, room -> sessions) and keeps them mutually consistent.

    Listeners are called with a board ID whenever that room's membership changed, after the lock is released.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, SessionEntry] = {}
        # board_id -> {session_id: user}, in join order
        self._rooms: dict[UUID, dict[str, UserModel]] = {}
        self._listeners: list[PresenceListener] = []

    def subscribe(self, listener: PresenceListener) -> None:
        self._listeners.append(listener)

    # --- transitions ---
    def connect(self, session_id: str, user: UserModel) -> None:
        """Disconnected -> Connected. Reconnecting an already known session drops it from its room first."""
        with self._lock:
            replaced, left_board = self._drop(session_id)
            self._sessions[session_id] = SessionEntry(user=user)

        if replaced:
            logger.info("Session %s reconnected, previous connection dropped", session_id)
        logger.info("Session %s connected for user %s", session_id, user.id)
        if left_board is not None:
            self._notify(left_board)

    def join(self, session_id: str, user_id: UUID, board_id: UUID) -> None:
        """
        Put the session in the board's room, leaving any other room first.

        Read access of `user_id` to `board_id` must have been checked by the caller.
        """
        with self._lock:
            entry = self._entry(session_id)
            if entry.user.id != user_id:
                raise Forbidden(f"Session {session_id} does not belong to user {user_id}.")
            previous = entry.board_id
            if previous == board_id:
                return
            if previous is not None:
                self._remove_from_room(session_id, previous)
            entry.board_id = board_id
            self._rooms.setdefault(board_id, {})[session_id] = entry.user

        if previous is not None:
            logger.info("Session %s left board %s", session_id, previous)
            self._notify(previous)
        logger.info("Session %s joined board %s", session_id, board_id)
        self._notify(board_id)

    def leave(self, session_id: str, board_id: UUID) -> None:
        """InRoom(board) -> Connected. No-op if the session is not in that room."""
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None or entry.board_id != board_id:
                return
            self._remove_from_room(session_id, board_id)
            entry.board_id = None

        logger.info("Session %s left board %s", session_id, board_id)
        self._notify(board_id)

    def disconnect(self, session_id: str) -> None:
        """Any state -> Disconnected."""
        with self._lock:
            known, board_id = self._drop(session_id)
        if not known:
            return

        logger.info("Session %s disconnected", session_id)
        if board_id is not None:
            self._notify(board_id)

    def shutdown(self) -> None:
        """Forget every session and room (no notifications)."""
        with self._lock:
            self._sessions.clear()
            self._rooms.clear()

    # --- queries ---
    def state(self, session_id: str) -> SessionState:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return SessionState.DISCONNECTED
            return SessionState.CONNECTED if entry.board_id is None else SessionState.IN_ROOM

    def user_of(self, session_id: str) -> UserModel:
        with self._lock:
            return self._entry(session_id).user

    def room_of(self, session_id: str) -> Optional[UUID]:
        with self._lock:
            entry = self._sessions.get(session_id)
            return entry.board_id if entry else None

    def sessions_in_room(self, board_id: UUID) -> list[str]:
        with self._lock:
            return list(self._rooms.get(board_id, {}))

    def users_in_room(self, board_id: UUID) -> list[UserModel]:
        """Distinct users in the room, in the order they (first) joined."""
        with self._lock:
            users: dict[UUID, UserModel] = {}
            for user in self._rooms.get(board_id, {}).values():
                users.setdefault(user.id, user)
            return list(users.values())

    def is_user_in_room(self, user_id: UUID, board_id: UUID) -> bool:
        return any(user.id == user_id for user in self.users_in_room(board_id))

    # --- Internal helpers ---
    def _entry(self, session_id: str) -> SessionEntry:
        entry = self._sessions.get(session_id)
        if entry is None:
            raise UnknownSession(f"Session {session_id!r} is not connected.")
        return entry

    def _remove_from_room(self, session_id: str, board_id: UUID) -> None:
        members = self._rooms.get(board_id)
        if members is None:
            return
        members.pop(session_id, None)
        if not members:
            del self._rooms[board_id]

    def _drop(self, session_id: str) -> tuple[bool, Optional[UUID]]:
        """Forget the session (caller holds the lock). Returns whether it was known, and the room it was in."""
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False, None
        if entry.board_id is not None:
            self._remove_from_room(session_id, entry.board_id)
        return True, entry.board_id

    def _notify(self, board_id: UUID) -> None:
        for listener in self._listeners:
            try:
                listener(board_id)
            except Exception:
                # membership has already changed by now
                logger.exception("Presence listener failed for board %s", board_id)
