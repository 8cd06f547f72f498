"""Unit tests for src/services/container.py"""

from typing import Any, Optional
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from src.core.config import Settings
from src.core.models import UserModel
from src.services import container
from src.services.container import build_orchestrator, build_realtime

ALICE = UserModel(id=uuid4(), display_name="Alice")


class MockTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def send(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        self.sent.append((session_id, event_name, payload))


class MockIdentity:
    def resolve(self, session_id: str) -> Optional[UserModel]:
        return ALICE


class MockAuthorization:
    def can_edit_parent(self, user_id: UUID, parent_id: UUID) -> bool:
        return True

    def can_view_board(self, user_id: UUID, board_id: UUID) -> bool:
        return True


def test_build_realtime_uses_settings() -> None:
    settings = Settings(echo_suppressed_events=frozenset({"item-moved", "item-created"}))
    hub = build_realtime(MockTransport(), MockIdentity(), MockAuthorization(), settings)

    assert {kind.value for kind in hub.broadcaster.suppress_echo} == {"item-moved", "item-created"}
    assert hub.collaboration.registry is hub.registry
    assert hub.broadcaster.registry is hub.registry


def test_hub_shutdown_forgets_sessions() -> None:
    hub = build_realtime(MockTransport(), MockIdentity(), MockAuthorization(), Settings())
    board = uuid4()
    hub.collaboration.connect("s1")
    hub.collaboration.join_board("s1", board)

    hub.shutdown()

    assert not hub.collaboration.is_user_in_board(ALICE.id, board)


def test_build_orchestrator_shares_the_broadcaster(db_session: Session) -> None:
    settings = Settings(base_position=1024.0, max_position_retries=2)
    hub = build_realtime(MockTransport(), MockIdentity(), MockAuthorization(), settings)

    orchestrator = build_orchestrator(db_session, hub, MockAuthorization(), settings=settings)

    assert orchestrator.broadcaster is hub.broadcaster
    assert orchestrator.store.allocator.base == 1024.0
    assert orchestrator.store.max_retries == 2


def test_startup(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(container, "configure_logging", lambda level: calls.append(f"logging {level}"))
    monkeypatch.setattr(container, "init_db", lambda: calls.append("tables"))

    container.startup(Settings(log_level="DEBUG"))

    assert calls == ["logging DEBUG", "tables"]
