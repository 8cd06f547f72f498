"""Session lifecycle, board rooms and presence: what a socket handler calls on connect / join / leave / close."""

import logging
from uuid import UUID

from src.api.models import DragMessage, PresenceResponse, UserResponse
from src.core.exceptions import Forbidden
from src.core.models import utc_now
from src.core.shared_types import DRAG_END_MESSAGE, DRAG_START_MESSAGE, ItemKind
from src.realtime.broadcaster import Broadcaster
from src.realtime.presence import PresenceRegistry
from src.services.collaborators import Authorization, IdentityResolver

logger = logging.getLogger(__name__)


class CollaborationService:
    """Orchestration of the real-time side of a board."""

    def __init__(
        self,
        registry: PresenceRegistry,
        broadcaster: Broadcaster,
        identity: IdentityResolver,
        authorization: Authorization,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.identity = identity
        self.authorization = authorization

    def connect(self, session_id: str) -> UserResponse:
        """A transport connection was opened and authenticated."""
        user = self.identity.resolve(session_id)
        if user is None:
            raise Forbidden(f"Session {session_id!r} is not authenticated.")
        self.registry.connect(session_id, user)
        return UserResponse.from_model(user)

    def join_board(self, session_id: str, board_id: UUID) -> PresenceResponse:
        """Enter the board's room (leaving the previous one). The joining session gets the current user list."""
        user = self.registry.user_of(session_id)
        if not self.authorization.can_view_board(user.id, board_id):
            raise Forbidden(f"User {user.id} is not a member of board {board_id}.")

        self.registry.join(session_id, user.id, board_id)
        self.broadcaster.greet(session_id, board_id)
        return self.get_presence(board_id)

    def leave_board(self, session_id: str, board_id: UUID) -> None:
        self.registry.leave(session_id, board_id)

    def disconnect(self, session_id: str) -> None:
        """Transport closed."""
        self.registry.disconnect(session_id)

    def get_presence(self, board_id: UUID) -> PresenceResponse:
        return PresenceResponse(
            board_id=board_id,
            users=[
                UserResponse.from_model(user)
                for user in self.registry.users_in_room(board_id)
            ],
        )

    def is_user_in_board(self, user_id: UUID, board_id: UUID) -> bool:
        return self.registry.is_user_in_room(user_id, board_id)

    # --- drag indicators (ephemeral, nothing is stored) ---
    def drag_started(
        self, session_id: str, board_id: UUID, kind: ItemKind, item_id: UUID
    ) -> int:
        return self._relay_drag(session_id, board_id, kind, item_id, DRAG_START_MESSAGE)

    def drag_ended(
        self, session_id: str, board_id: UUID, kind: ItemKind, item_id: UUID
    ) -> int:
        return self._relay_drag(session_id, board_id, kind, item_id, DRAG_END_MESSAGE)

    def _relay_drag(
        self,
        session_id: str,
        board_id: UUID,
        kind: ItemKind,
        item_id: UUID,
        event_name: str,
    ) -> int:
        """Only relayed while the sender is actually in that board's room."""
        if self.registry.room_of(session_id) != board_id:
            logger.debug("Ignoring %s from session %s outside board %s", event_name, session_id, board_id)
            return 0
        message = DragMessage(
            kind=kind,
            item_id=item_id,
            board_id=board_id,
            dragged_by=UserResponse.from_model(self.registry.user_of(session_id)),
            timestamp=utc_now(),
        )
        return self.broadcaster.relay(
            board_id, event_name, message.model_dump(mode="json"), session_id
        )
