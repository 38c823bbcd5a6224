"""Tests for store retry with backoff."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from colorwager.errors import ConflictError, StoreError
from colorwager.store.retry import call_with_retry


class TestCallWithRetry:
    def test_returns_first_success(self):
        func = MagicMock(return_value=42)
        assert call_with_retry(func, 1, key="v") == 42
        func.assert_called_once_with(1, key="v")

    def test_retries_store_error(self, monkeypatch):
        monkeypatch.setattr("colorwager.config.settings.store_retry_attempts", 3)
        func = MagicMock(side_effect=[StoreError("locked"), StoreError("locked"), "ok"])
        assert call_with_retry(func) == "ok"
        assert func.call_count == 3

    def test_gives_up_after_attempts(self, monkeypatch):
        monkeypatch.setattr("colorwager.config.settings.store_retry_attempts", 2)
        func = MagicMock(side_effect=StoreError("disk I/O error"))
        with pytest.raises(StoreError):
            call_with_retry(func)
        assert func.call_count == 2

    def test_other_errors_not_retried(self):
        func = MagicMock(side_effect=ConflictError("open round exists"))
        with pytest.raises(ConflictError):
            call_with_retry(func)
        assert func.call_count == 1

    def test_exponential_backoff(self, monkeypatch):
        monkeypatch.setattr("colorwager.config.settings.store_retry_attempts", 4)
        monkeypatch.setattr("colorwager.config.settings.store_retry_base_delay_sec", 0.5)
        func = MagicMock(side_effect=StoreError("locked"))
        with patch("colorwager.store.retry.time.sleep") as sleep:
            with pytest.raises(StoreError):
                call_with_retry(func)
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 2.0]
