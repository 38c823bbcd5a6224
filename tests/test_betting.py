"""Tests for the bettor-facing API (placement validation, live round state)."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from colorwager.betting import MAX_STAKE, get_round_state, is_accepting_bets, place_bet
from colorwager.errors import (
    BettingClosed,
    InsufficientBalance,
    InvalidBet,
    InvalidStake,
    NoActiveRound,
    to_error_payload,
)
from colorwager.store.db import get_account, lock_round, set_round_control
from colorwager.store.models import BetKind, Control, RoundStatus
from tests.helpers import make_account, open_round


class TestPlaceBet:
    def test_color_bet(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        bet = place_bet(r.id, "bettor1", "color", "green", "50", db_path=db_path)
        assert bet.kind == BetKind.COLOR
        assert bet.value == "green"
        assert bet.stake == Decimal("50.00")
        assert get_account("bettor1", db_path=db_path).balance == Decimal("50.00")

    def test_number_bet_normalized(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        bet = place_bet(r.id, "bettor1", BetKind.NUMBER, 4, Decimal("20"), db_path=db_path)
        assert bet.value == "4"

    @pytest.mark.parametrize("stake", ["0", "-5", "abc", "1.005", "NaN", "Infinity"])
    def test_invalid_stake(self, db_path, stake):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(InvalidStake):
            place_bet(r.id, "bettor1", "color", "red", stake, db_path=db_path)

    @pytest.mark.parametrize(
        "kind,value",
        [("color", "blue"), ("number", 10), ("number", -1), ("number", "seven"), ("parity", "odd")],
    )
    def test_invalid_bet(self, db_path, kind, value):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(InvalidBet):
            place_bet(r.id, "bettor1", kind, value, "1", db_path=db_path)

    @pytest.mark.parametrize("value", [3.7, "3.5", "1e-1", True, None])
    def test_number_bet_rejects_non_integers(self, db_path, value):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(InvalidBet):
            place_bet(r.id, "bettor1", "number", value, "1", db_path=db_path)
        assert get_account("bettor1", db_path=db_path).balance == Decimal("100.00")

    def test_number_bet_accepts_integral_float(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        bet = place_bet(r.id, "bettor1", "number", 7.0, "1", db_path=db_path)
        assert bet.value == "7"

    @pytest.mark.parametrize(
        "stake", ["100000000000000000000", "1e40", MAX_STAKE + Decimal("0.01")]
    )
    def test_oversized_stake(self, db_path, stake):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(InvalidStake):
            place_bet(r.id, "bettor1", "color", "red", stake, db_path=db_path)
        assert get_account("bettor1", db_path=db_path).balance == Decimal("100.00")

    def test_max_stake_reports_insufficient_balance(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(InsufficientBalance):
            place_bet(r.id, "bettor1", "color", "red", MAX_STAKE, db_path=db_path)

    def test_insufficient_balance(self, db_path):
        make_account(db_path, balance="10.00")
        r = open_round(db_path)
        with pytest.raises(InsufficientBalance) as exc_info:
            place_bet(r.id, "bettor1", "color", "red", "10.01", db_path=db_path)
        payload = to_error_payload(exc_info.value)
        assert payload["ok"] is False
        assert payload["error"] == "insufficient_balance"

    def test_no_active_round(self, db_path):
        make_account(db_path)
        with pytest.raises(NoActiveRound):
            place_bet("missing", "bettor1", "color", "red", "1", db_path=db_path)

    def test_betting_closed_near_end(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        with pytest.raises(BettingClosed):
            place_bet(
                r.id, "bettor1", "color", "red", "1",
                now=r.window_end - timedelta(seconds=3), db_path=db_path,
            )


class TestRoundState:
    def test_active_round_accepts(self, db_path):
        r = open_round(db_path)
        state = get_round_state(r.id, now=r.window_start, db_path=db_path)
        assert state.sequence_number == 10001
        assert state.status == RoundStatus.ACTIVE
        assert state.remaining_seconds == 60
        assert state.accepting_bets is True

    def test_margin_closes_betting(self, db_path):
        r = open_round(db_path)
        now = r.window_end - timedelta(seconds=5)
        state = get_round_state(r.id, now=now, db_path=db_path)
        assert state.remaining_seconds == 5
        assert state.accepting_bets is False

    def test_remaining_never_negative(self, db_path):
        r = open_round(db_path)
        state = get_round_state(r.id, now=r.window_end + timedelta(seconds=30), db_path=db_path)
        assert state.remaining_seconds == 0

    def test_manual_control_closes_betting(self, db_path):
        r = open_round(db_path)
        set_round_control(r.id, Control.MANUAL, db_path=db_path)
        state = get_round_state(r.id, now=r.window_start, db_path=db_path)
        assert state.accepting_bets is False

    def test_locked_round(self, db_path):
        r = open_round(db_path)
        lock_round(r.id, db_path=db_path)
        state = get_round_state(r.id, now=r.window_start, db_path=db_path)
        assert state.status == RoundStatus.LOCKED
        assert not state.accepting_bets

    def test_unknown_round(self, db_path):
        with pytest.raises(NoActiveRound):
            get_round_state("missing", db_path=db_path)

    def test_is_accepting_bets_matches_store_rule(self, db_path):
        r = open_round(db_path)
        assert is_accepting_bets(r, r.window_end - timedelta(seconds=6))
        assert not is_accepting_bets(r, r.window_end - timedelta(seconds=5))
