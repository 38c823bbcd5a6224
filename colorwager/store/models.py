"""Data models for the SQLite round store.

Dataclasses and enums only, no DB access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum


class RoundStatus(StrEnum):
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"


OPEN_STATUSES = (RoundStatus.ACTIVE, RoundStatus.LOCKED)


class Control(StrEnum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class Color(StrEnum):
    RED = "red"
    GREEN = "green"
    PURPLE_RED = "purple-red"


class BetKind(StrEnum):
    COLOR = "color"
    NUMBER = "number"


class Outcome(StrEnum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class AccountRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class LedgerKind(StrEnum):
    DEPOSIT = "deposit"
    BET = "bet"
    WIN = "win"


@dataclass(frozen=True)
class GameMode:
    key: str
    name: str
    duration_sec: int


GAME_MODES: dict[str, GameMode] = {
    "blitz": GameMode("blitz", "Blitz", 30),
    "quick": GameMode("quick", "Quick", 60),
    "classic": GameMode("classic", "Classic", 180),
    "extended": GameMode("extended", "Extended", 300),
}


def get_game_mode(key: str) -> GameMode:
    """Look up a game mode; unknown keys raise KeyError."""
    return GAME_MODES[key]


@dataclass(frozen=True)
class RoundResult:
    color: Color
    number: int


@dataclass
class Round:
    id: str
    sequence_number: int
    mode: str
    window_start: datetime
    window_end: datetime
    status: RoundStatus
    control: Control
    result: RoundResult | None = None
    admin_result: RoundResult | None = None
    admin_result_locked: bool = False
    admin_note: str | None = None
    completed_at: datetime | None = None
    created_at: str = ""

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def duration_sec(self) -> float:
        return (self.window_end - self.window_start).total_seconds()

    def remaining_seconds(self, now: datetime) -> int:
        """Whole seconds left in the betting window, never negative."""
        return max(0, int((self.window_end - now).total_seconds()))


@dataclass
class Bet:
    id: str
    round_id: str
    bettor_id: str
    kind: BetKind
    value: str
    stake: Decimal
    payout: Decimal = Decimal("0")
    outcome: Outcome = Outcome.PENDING
    created_at: str = ""
    settled_at: str | None = None


@dataclass
class Account:
    id: str
    role: AccountRole
    balance: Decimal
    initial_balance: Decimal
    created_at: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN


@dataclass
class LedgerEntry:
    id: int
    account_id: str
    kind: LedgerKind
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reference: str
    created_at: str


@dataclass
class AdminLogEntry:
    id: int
    admin_id: str
    action: str
    round_id: str | None
    details: dict
    created_at: str
