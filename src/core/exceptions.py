"""
Error taxonomy shared by every layer.

Validators raise these directly (they are not ValueErrors), so pydantic lets them through untouched.
"""


class BoardError(Exception):
    """Top-level error for anything going wrong on a board."""


# --- user-actionable ---
class NotFound(BoardError):
    """Item, parent collection or board does not exist."""


class UnknownSession(NotFound):
    """Session was never connected, or has already disconnected."""


class InvalidTarget(BoardError):
    """Cross-board transfer, stale source collection or malformed index / ordering."""


class Forbidden(BoardError):
    """Actor lacks the permission for the requested operation."""


# --- ordering ---
class OrderingError(BoardError):
    """Base for position bookkeeping problems."""


class ResolutionExhausted(OrderingError):
    """Gap between two neighbours is too narrow to split. Rebalance, then try again."""


class PositionConflict(OrderingError):
    """A concurrent writer already took the computed position. Retried inside the store."""


class OrderingExhausted(OrderingError):
    """No conflict-free position after all retries. Retryable by the caller."""


# --- real-time ---
class TransportUnavailable(BoardError):
    """A send to one session failed. Logged and dropped by the broadcaster."""
