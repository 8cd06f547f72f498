"""
External collaborators the core relies on, described only by what the core needs from them.
(authentication, board membership and the activity feed live elsewhere)
"""

from typing import Optional, Protocol
from uuid import UUID

from src.core.models import DomainEvent, UserModel


class Authorization(Protocol):
    def can_edit_parent(self, user_id: UUID, parent_id: UUID) -> bool:
        """May the user change the collection `parent_id` (a board for lists, a list for cards)?"""
        ...

    def can_view_board(self, user_id: UUID, board_id: UUID) -> bool:
        """May the user see the board (and therefore join its room)?"""
        ...


class IdentityResolver(Protocol):
    def resolve(self, session_id: str) -> Optional[UserModel]:
        """User behind a transport-level session, None if the session is not authenticated."""
        ...


class ActivityLog(Protocol):
    def record(self, event: DomainEvent) -> None:
        """Keep a copy of the event for the activity feed. Failures are logged and ignored by the caller."""
        ...
