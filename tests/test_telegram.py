"""Tests for Telegram notification module."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import httpx

from colorwager.notifications.telegram import (
    format_round_summary,
    send_error_alert,
    send_health_alert,
    send_message,
)
from colorwager.settlement.settler import SettleResult, SettleSummary
from colorwager.store.models import (
    Color,
    Control,
    Outcome,
    Round,
    RoundResult,
    RoundStatus,
)


class OkResponse:
    def raise_for_status(self):
        pass


def _configure(monkeypatch):
    monkeypatch.setattr("colorwager.notifications.telegram.settings.telegram_bot_token", "fake-token")
    monkeypatch.setattr("colorwager.notifications.telegram.settings.telegram_chat_id", "12345")


class TestSendMessage:
    def test_not_configured(self):
        assert send_message("test") is False

    def test_success(self, monkeypatch):
        _configure(monkeypatch)
        calls: list[tuple] = []

        def mock_post(url, *, json, timeout=10):
            calls.append((url, json))
            return OkResponse()

        monkeypatch.setattr("colorwager.notifications.telegram.httpx.post", mock_post)
        assert send_message("hello") is True
        url, payload = calls[0]
        assert "botfake-token" in url
        assert payload == {"chat_id": "12345", "text": "hello", "parse_mode": "Markdown"}

    def test_network_failure(self, monkeypatch):
        _configure(monkeypatch)

        def raise_error(url, *, json, timeout=10):
            raise httpx.ConnectError("network error")

        monkeypatch.setattr("colorwager.notifications.telegram.httpx.post", raise_error)
        assert send_message("hello") is False

    def test_timeout(self, monkeypatch):
        _configure(monkeypatch)

        def raise_timeout(url, *, json, timeout=10):
            raise httpx.ReadTimeout("slow")

        monkeypatch.setattr("colorwager.notifications.telegram.httpx.post", raise_timeout)
        assert send_message("hello") is False

    def test_markdown_400_falls_back_to_plain_text(self, monkeypatch):
        """HTTP 400 (Markdown parse error) → retry without parse_mode → success."""
        _configure(monkeypatch)
        call_log: list[dict] = []

        def mock_post(url, *, json, timeout=10):
            call_log.append(json)
            if "parse_mode" in json:
                resp = httpx.Response(400, request=httpx.Request("POST", url))
                raise httpx.HTTPStatusError("Bad Request", request=resp.request, response=resp)
            return OkResponse()

        monkeypatch.setattr("colorwager.notifications.telegram.httpx.post", mock_post)

        assert send_message("round_id with _underscore_") is True
        assert len(call_log) == 2
        assert "parse_mode" in call_log[0]
        assert "parse_mode" not in call_log[1]

    def test_non_400_error_no_fallback(self, monkeypatch):
        """HTTP 500 → no fallback, just fail."""
        _configure(monkeypatch)
        call_log: list[dict] = []

        def mock_post(url, *, json, timeout=10):
            call_log.append(json)
            resp = httpx.Response(500, request=httpx.Request("POST", url))
            raise httpx.HTTPStatusError("Server Error", request=resp.request, response=resp)

        monkeypatch.setattr("colorwager.notifications.telegram.httpx.post", mock_post)
        assert send_message("hello") is False
        assert len(call_log) == 1


class TestAlerts:
    def test_error_alert_text(self, monkeypatch):
        sent: list[str] = []
        monkeypatch.setattr(
            "colorwager.notifications.telegram.send_message", lambda text: sent.append(text) or True
        )
        assert send_error_alert("RoundCompletion", "Round #10001 failed") is True
        assert sent == ["*Error: RoundCompletion*\nRound #10001 failed"]

    def test_health_alert_lists_messages(self, monkeypatch):
        sent: list[str] = []
        monkeypatch.setattr(
            "colorwager.notifications.telegram.send_message", lambda text: sent.append(text) or True
        )
        send_health_alert(["No open round", "Low disk space"])
        assert "- No open round" in sent[0]
        assert "- Low disk space" in sent[0]


class TestFormatRoundSummary:
    def _round(self) -> Round:
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        return Round(
            id="r1",
            sequence_number=10001,
            mode="quick",
            window_start=now,
            window_end=now,
            status=RoundStatus.COMPLETED,
            control=Control.AUTOMATIC,
            result=RoundResult(Color.GREEN, 4),
        )

    def test_with_bets(self):
        summary = SettleSummary(round_id="r1", sequence_number=10001)
        summary.settled.append(
            SettleResult("b1", "alice", "color", "green", Decimal("50"), Outcome.WON, Decimal("47.50"))
        )
        summary.settled.append(
            SettleResult("b2", "bob", "number", "3", Decimal("20"), Outcome.LOST, Decimal("0"))
        )
        text = format_round_summary(self._round(), summary)
        assert "*Round #10001 completed* (quick)" in text
        assert "Result: green 4" in text
        assert "W/L: 1/1" in text
        assert "Stake: 70.00 | Payout: 47.50" in text
        assert text.count("*") % 2 == 0

    def test_no_bets(self):
        summary = SettleSummary(round_id="r1", sequence_number=10001)
        assert "No bets" in format_round_summary(self._round(), summary)
