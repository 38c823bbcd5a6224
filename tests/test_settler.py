"""Tests for the round settlement pass."""

from __future__ import annotations

from decimal import Decimal

import pytest

from colorwager.betting import place_bet
from colorwager.notifications.events import BetSettled
from colorwager.settlement.settler import settle_round
from colorwager.store.db import claim_completion, get_round, lock_round, record_settlement
from colorwager.store.models import Color, Control, Outcome, RoundResult
from tests.helpers import make_account, open_round


def _complete(db_path, round_id, result):
    lock_round(round_id, db_path=db_path)
    claim_completion(round_id, result, control=Control.AUTOMATIC, db_path=db_path)
    return get_round(round_id, db_path=db_path)


class TestSettleRound:
    def test_summary(self, db_path, bus, recorded_events):
        make_account(db_path, "alice", "100.00")
        make_account(db_path, "bob", "100.00")
        r = open_round(db_path)
        place_bet(r.id, "alice", "color", "purple-red", "100", db_path=db_path)
        place_bet(r.id, "bob", "number", 0, "10", db_path=db_path)
        done = _complete(db_path, r.id, RoundResult(Color.PURPLE_RED, 0))

        summary = settle_round(done, db_path=db_path, bus=bus)
        assert summary.wins == 1
        assert summary.losses == 1
        assert summary.total_stake == Decimal("110.00")
        assert summary.total_payout == Decimal("90.00")
        assert "*Round #10001 settled*" in summary.format_summary()
        assert [e.outcome for e in recorded_events if isinstance(e, BetSettled)] == [
            Outcome.WON,
            Outcome.LOST,
        ]

    def test_rerun_skips_settled_bets(self, db_path):
        make_account(db_path)
        r = open_round(db_path)
        bet = place_bet(r.id, "bettor1", "color", "red", "10", db_path=db_path)
        done = _complete(db_path, r.id, RoundResult(Color.RED, 1))
        record_settlement(bet.id, Outcome.WON, Decimal("9.50"), db_path=db_path)

        summary = settle_round(done, db_path=db_path)
        assert summary.settled == []
        assert summary.skipped == 1
        assert summary.format_summary() == "Round #10001: no bets settled."

    def test_requires_result(self, db_path):
        r = open_round(db_path)
        with pytest.raises(ValueError):
            settle_round(r, db_path=db_path)
