"""Logging setup for the game server.

Every record leaving a handler carries two ids:

- ``tick_id``: one per server process run, stamped by ``RunContextFilter``
- ``round_id``: passed per call via ``extra=`` by the scheduler and timer;
  empty when the record is not about a single round

The console gets a human-readable line, the rotating file gets either the same
line or one JSON object per record (``structured=True`` / STRUCTURED_LOGGING).
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import uuid
from pathlib import Path

from colorwager.config import settings

LOG_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"
LOG_FILE = "game.log"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(tick_id)s] %(message)s"


class RunContextFilter(logging.Filter):
    """Stamp tick_id on every record; default round_id to empty."""

    def __init__(self, tick_id: str) -> None:
        super().__init__()
        self.tick_id = tick_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "tick_id", ""):
            record.tick_id = self.tick_id
        if not hasattr(record, "round_id"):
            record.round_id = ""
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with tick_id / round_id and any traceback."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "tick_id": getattr(record, "tick_id", ""),
            "round_id": getattr(record, "round_id", ""),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _file_handler(log_path: Path, structured: bool) -> logging.Handler:
    # 日次ローテーション、30 日保持
    handler = logging.handlers.TimedRotatingFileHandler(
        log_path / LOG_FILE,
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter() if structured else logging.Formatter(TEXT_FORMAT))
    return handler


def setup_logging(
    structured: bool = False,
    log_dir: Path | str | None = None,
) -> str:
    """Install console + file handlers on the root logger.

    Returns the tick_id stamped on every record of this run.
    """
    tick_id = uuid.uuid4().hex[:12]
    log_path = Path(log_dir) if log_dir else LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    # 既存ハンドラをクリア (重複防止)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(TEXT_FORMAT))
    handlers = [console, _file_handler(log_path, structured or settings.structured_logging)]

    context = RunContextFilter(tick_id)
    for handler in handlers:
        handler.addFilter(context)
        root.addHandler(handler)
    return tick_id
