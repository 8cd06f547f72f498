"""Outbound real-time transport (sockets, SSE, ...). Only the capability the broadcaster needs."""

from typing import Any, Protocol


class Transport(Protocol):
    def send(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        """Deliver one message to one session. Raise TransportUnavailable if that session cannot be reached."""
        ...
