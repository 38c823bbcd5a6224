"""Tests for DB path resolution."""

from __future__ import annotations

from pathlib import Path

from colorwager.store.db_path import resolve_db_path
from colorwager.store.schema import DEFAULT_DB_PATH


def test_resolve_db_path_prefers_explicit(monkeypatch):
    monkeypatch.setattr("colorwager.store.db_path.settings.db_path", "data/other.db")
    out = resolve_db_path("/tmp/custom.db")
    assert out == "/tmp/custom.db"


def test_resolve_db_path_uses_settings(monkeypatch):
    monkeypatch.setattr("colorwager.store.db_path.settings.db_path", "data/game_a.db")
    out = resolve_db_path()
    assert out.endswith("data/game_a.db")
    assert Path(out).is_absolute()


def test_resolve_db_path_default():
    assert resolve_db_path() == str(DEFAULT_DB_PATH)
