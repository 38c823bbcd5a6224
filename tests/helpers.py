"""Shared test helpers. Import in test files: from tests.helpers import make_account."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from colorwager.store.db import create_account, create_round
from colorwager.store.models import (
    Account,
    AccountRole,
    Bet,
    BetKind,
    Color,
    Round,
    get_game_mode,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_account(
    db_path: Path,
    account_id: str = "bettor1",
    balance: str = "100.00",
    role: AccountRole = AccountRole.USER,
) -> Account:
    return create_account(
        account_id, role=role, initial_balance=Decimal(balance), db_path=db_path
    )


def make_admin(db_path: Path, admin_id: str = "admin1") -> Account:
    return make_account(db_path, admin_id, "0.00", role=AccountRole.ADMIN)


def open_round(db_path: Path, mode: str = "quick") -> Round:
    """A fresh active round with its full betting window ahead."""
    return create_round(mode, db_path=db_path)


def expired_round(db_path: Path, mode: str = "blitz", overdue_sec: int = 5) -> Round:
    """An active round whose window ended overdue_sec ago."""
    duration = get_game_mode(mode).duration_sec
    start = utcnow() - timedelta(seconds=duration + overdue_sec)
    return create_round(mode, now=start, db_path=db_path)


def make_bet(**overrides) -> Bet:
    """In-memory Bet for calculator tests."""
    defaults = {
        "id": "bet1",
        "round_id": "round1",
        "bettor_id": "bettor1",
        "kind": BetKind.COLOR,
        "value": Color.RED.value,
        "stake": Decimal("100"),
    }
    defaults.update(overrides)
    return Bet(**defaults)


class FixedDraw(random.Random):
    """Random source that always draws the given color and number."""

    def __init__(self, color: Color, number: int) -> None:
        super().__init__(0)
        self._color = color
        self._number = number

    def choice(self, seq):
        return self._color

    def randrange(self, *args, **kwargs):
        return self._number
