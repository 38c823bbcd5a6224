"""Error taxonomy for the round engine.

Every error carries an ErrorKind so callers (HTTP handlers, admin CLI) can
render a typed ``{"ok": false, "error": kind}`` envelope without string
matching on messages.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    CONFLICT = "conflict"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    BETTING_CLOSED = "betting_closed"
    NO_ACTIVE_ROUND = "no_active_round"
    INVALID_STAKE = "invalid_stake"
    INVALID_BET = "invalid_bet"
    STATE = "state_error"
    AUTHORIZATION = "authorization_error"
    STORE = "store_error"


class GameError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.STATE

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class ConflictError(GameError):
    """An open round already exists (single-open-round invariant)."""

    kind = ErrorKind.CONFLICT


class InsufficientBalance(GameError):
    kind = ErrorKind.INSUFFICIENT_BALANCE


class BettingClosed(GameError):
    kind = ErrorKind.BETTING_CLOSED


class NoActiveRound(GameError):
    kind = ErrorKind.NO_ACTIVE_ROUND


class InvalidStake(GameError):
    kind = ErrorKind.INVALID_STAKE


class InvalidBet(GameError):
    """Unknown color or number outside 0-9."""

    kind = ErrorKind.INVALID_BET


class StateError(GameError):
    """Admin operation attempted on a round in an ineligible state."""

    kind = ErrorKind.STATE


class AuthorizationError(GameError):
    kind = ErrorKind.AUTHORIZATION


class StoreError(GameError):
    """Transient persistence failure (locked database, I/O error)."""

    kind = ErrorKind.STORE


def to_error_payload(exc: GameError) -> dict:
    """Render an engine error as a transport-neutral envelope."""
    return {"ok": False, "error": exc.kind.value, "message": exc.message}
