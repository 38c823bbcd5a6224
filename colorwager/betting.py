"""Bettor-facing operations: place a bet, read a round's live state.

Betting window policy: bets are accepted while the round is active, under
automatic control, and more than ``betting_close_margin_sec`` seconds remain
before window_end. The same margin drives the timer's active -> locked
transition, so the UI flag and the store check never disagree.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path

from colorwager.config import settings
from colorwager.errors import InvalidBet, InvalidStake, NoActiveRound
from colorwager.notifications.events import RoundState
from colorwager.store.db import get_round
from colorwager.store.db import place_bet as _store_place_bet
from colorwager.store.models import Bet, BetKind, Color, Control, Round, RoundStatus


def close_margin_sec() -> int:
    """Seconds before window_end at which betting closes (all modes)."""
    return settings.betting_close_margin_sec


def is_accepting_bets(round_: Round, now: datetime) -> bool:
    remaining = (round_.window_end - now).total_seconds()
    return (
        round_.status == RoundStatus.ACTIVE
        and round_.control == Control.AUTOMATIC
        and remaining > close_margin_sec()
    )


def round_state(round_: Round, now: datetime) -> RoundState:
    return RoundState(
        round_id=round_.id,
        sequence_number=round_.sequence_number,
        status=round_.status,
        remaining_seconds=round_.remaining_seconds(now),
        accepting_bets=is_accepting_bets(round_, now),
    )


def get_round_state(
    round_id: str,
    now: datetime | None = None,
    db_path: Path | str | None = None,
) -> RoundState:
    """Live state of a round, always derived from the stored window_end."""
    round_ = get_round(round_id, db_path=db_path)
    if round_ is None:
        raise NoActiveRound(f"Unknown round {round_id}")
    return round_state(round_, now or datetime.now(timezone.utc))


# 配当 (最大 9x) を含めて SQLite INTEGER (signed 64-bit, cents) に収まる上限
MAX_STAKE = Decimal((2**63 - 1) // 10) / 100


def _normalize_stake(stake) -> Decimal:
    try:
        amount = Decimal(str(stake))
    except (InvalidOperation, ValueError) as e:
        raise InvalidStake(f"Stake {stake!r} is not a number") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidStake("Stake must be positive")
    if amount > MAX_STAKE:
        raise InvalidStake(f"Stake exceeds the maximum of {MAX_STAKE}")
    if amount != amount.quantize(Decimal("0.01")):
        raise InvalidStake("Stake supports at most two decimal places")
    return amount


def _normalize_value(kind: BetKind, value) -> str:
    if kind == BetKind.COLOR:
        try:
            return Color(str(value)).value
        except ValueError as e:
            raise InvalidBet(f"Unknown color {value!r}") from e
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidBet(f"Number bet value {value!r} is not a number") from e
    if not number.is_finite() or number != number.to_integral_value():
        raise InvalidBet(f"Number bet value {value!r} is not a whole number")
    if not 0 <= number <= 9:
        raise InvalidBet("Number must be between 0 and 9")
    return str(int(number))


def place_bet(
    round_id: str,
    bettor_id: str,
    kind: BetKind | str,
    value,
    stake,
    now: datetime | None = None,
    db_path: Path | str | None = None,
) -> Bet:
    """Validate and place a bet; debit and insert happen atomically.

    Raises InvalidStake, InvalidBet, NoActiveRound, BettingClosed or
    InsufficientBalance.
    """
    try:
        bet_kind = BetKind(kind)
    except ValueError as e:
        raise InvalidBet(f"Unknown bet kind {kind!r}") from e
    amount = _normalize_stake(stake)
    normalized = _normalize_value(bet_kind, value)
    return _store_place_bet(
        round_id=round_id,
        bettor_id=bettor_id,
        kind=bet_kind,
        value=normalized,
        stake=amount,
        close_margin_sec=close_margin_sec(),
        now=now,
        db_path=db_path,
    )
