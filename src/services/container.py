"""Wire the components together once per process (registry and broadcaster are process-wide, the store is per session)."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from src.core.config import Settings, get_settings
from src.core.log_setup import configure_logging
from src.core.shared_types import EventKind
from src.db.database import init_db
from src.db.sql_repository import SQLOrderedCollectionStore
from src.realtime.broadcaster import Broadcaster
from src.realtime.presence import PresenceRegistry
from src.realtime.transport import Transport
from src.services.collaboration_service import CollaborationService
from src.services.collaborators import ActivityLog, Authorization, IdentityResolver
from src.services.move_service import MoveOrchestrator


def startup(settings: Optional[Settings] = None) -> None:
    """Process start: logging first, then make sure the tables exist."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    init_db()


@dataclass
class RealtimeHub:
    registry: PresenceRegistry
    broadcaster: Broadcaster
    collaboration: CollaborationService

    def shutdown(self) -> None:
        self.registry.shutdown()


def build_realtime(
    transport: Transport,
    identity: IdentityResolver,
    authorization: Authorization,
    settings: Optional[Settings] = None,
) -> RealtimeHub:
    settings = settings or get_settings()
    registry = PresenceRegistry()
    broadcaster = Broadcaster(
        registry,
        transport,
        suppress_echo=[EventKind(kind) for kind in settings.echo_suppressed_events],
    )
    collaboration = CollaborationService(registry, broadcaster, identity, authorization)
    return RealtimeHub(registry, broadcaster, collaboration)


def build_orchestrator(
    db_session: Session,
    hub: RealtimeHub,
    authorization: Authorization,
    activity_log: Optional[ActivityLog] = None,
    settings: Optional[Settings] = None,
) -> MoveOrchestrator:
    """One per request / unit of work, bound to that request's database session."""
    store = SQLOrderedCollectionStore.from_settings(db_session, settings or get_settings())
    return MoveOrchestrator(store, hub.broadcaster, authorization, activity_log)
