"""Shared fixtures for colorwager tests.

Helper functions (make_account, expired_round, etc.) are in tests/helpers.py.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from colorwager.notifications.events import EventBus


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Temporary database path, one isolated SQLite file per test."""
    return tmp_path / "test.db"


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch):
    """No backoff sleeps and no real Telegram traffic in tests."""
    monkeypatch.setattr("colorwager.config.settings.store_retry_base_delay_sec", 0.0)
    monkeypatch.setattr("colorwager.config.settings.telegram_bot_token", "")
    monkeypatch.setattr("colorwager.config.settings.telegram_chat_id", "")
    monkeypatch.setattr("colorwager.config.settings.db_path", "")


@pytest.fixture()
def bus() -> EventBus:
    """Isolated event bus (the module-level one is shared across tests)."""
    return EventBus()


@pytest.fixture()
def recorded_events(bus: EventBus) -> list:
    events: list = []
    bus.subscribe(events.append)
    return events
