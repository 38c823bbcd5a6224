"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging


def _record(msg: str, *args, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="colorwager.test",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestJSONFormatter:
    def test_json_output(self):
        from colorwager.logging_config import JSONFormatter

        record = _record("Round #%d completed", 10001)
        record.tick_id = "abc123"
        record.round_id = "r-1"

        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "colorwager.test"
        assert data["msg"] == "Round #10001 completed"
        assert data["tick_id"] == "abc123"
        assert data["round_id"] == "r-1"
        assert "ts" in data
        assert "exc" not in data

    def test_json_without_extras(self):
        from colorwager.logging_config import JSONFormatter

        data = json.loads(JSONFormatter().format(_record("no ids", level=logging.WARNING)))
        assert data["tick_id"] == ""
        assert data["round_id"] == ""
        assert data["level"] == "WARNING"

    def test_exception_included(self):
        from colorwager.logging_config import JSONFormatter

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys

            record = _record("failed")
            record.exc_info = sys.exc_info()
        data = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in data["exc"]


class TestSetupLogging:
    def test_setup_returns_tick_id(self, tmp_path):
        from colorwager.logging_config import setup_logging

        tick_id = setup_logging(log_dir=tmp_path)
        assert len(tick_id) == 12
        assert tick_id.isalnum()

        # Reset logging
        logging.getLogger().handlers.clear()

    def test_creates_log_dir_and_file(self, tmp_path):
        from colorwager.logging_config import setup_logging

        log_dir = tmp_path / "nested" / "logs"
        setup_logging(log_dir=log_dir)
        assert log_dir.exists()
        assert (log_dir / "game.log").exists()

        # Reset logging
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()

    def test_structured_file_handler(self, tmp_path):
        from colorwager.logging_config import JSONFormatter, setup_logging

        setup_logging(structured=True, log_dir=tmp_path)
        handlers = logging.getLogger().handlers
        assert any(isinstance(h.formatter, JSONFormatter) for h in handlers)

        for handler in handlers:
            handler.close()
        logging.getLogger().handlers.clear()


class TestRunContextFilter:
    def test_stamps_tick_id_and_default_round_id(self):
        from colorwager.logging_config import RunContextFilter

        record = _record("tick")
        assert RunContextFilter("run42").filter(record) is True
        assert record.tick_id == "run42"
        assert record.round_id == ""

    def test_keeps_explicit_round_id(self):
        from colorwager.logging_config import RunContextFilter

        record = _record("tick")
        record.round_id = "r-9"
        RunContextFilter("run42").filter(record)
        assert record.round_id == "r-9"

    def test_engine_records_carry_tick_id(self, tmp_path):
        from colorwager.logging_config import setup_logging

        tick_id = setup_logging(structured=True, log_dir=tmp_path)
        logging.getLogger("colorwager.scheduler.timer").info(
            "Round #%d locked", 10001, extra={"round_id": "r-1"}
        )
        handlers = list(logging.getLogger().handlers)
        for handler in handlers:
            handler.flush()
            handler.close()
        logging.getLogger().handlers.clear()

        lines = (tmp_path / "game.log").read_text(encoding="utf-8").splitlines()
        data = json.loads(lines[-1])
        assert data["tick_id"] == tick_id
        assert data["round_id"] == "r-1"
        assert data["msg"] == "Round #10001 locked"
