"""Health checks for the game engine.

| Check       | Content                                        |
|-------------|------------------------------------------------|
| Local       | DB connection + disk space                     |
| Stuck round | automatic open round past its window + grace   |
| Integrity   | PRAGMA integrity_check                         |
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from colorwager.config import settings
from colorwager.errors import StoreError
from colorwager.store.db import get_open_round
from colorwager.store.db_path import resolve_db_path
from colorwager.store.models import Control

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Aggregated health check result."""

    ok: bool = True
    checks: dict[str, bool] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)

    def update(self, other: "HealthStatus") -> None:
        self.checks.update(other.checks)
        self.messages.extend(other.messages)
        if not other.ok:
            self.ok = False


def check_local_health(
    db_path: Path | str | None = None,
    min_disk_mb: int | None = None,
) -> HealthStatus:
    """Check DB connection and disk space."""
    status = HealthStatus()
    path = Path(resolve_db_path(db_path))
    min_mb = settings.min_disk_mb if min_disk_mb is None else min_disk_mb

    # DB 接続
    try:
        conn = sqlite3.connect(str(path), timeout=5)
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
        status.checks["db_connection"] = True
    except sqlite3.Error as e:
        status.ok = False
        status.checks["db_connection"] = False
        status.messages.append(f"DB connection failed: {e}")

    # ディスク空き容量
    try:
        usage = shutil.disk_usage(path.parent)
        free_mb = usage.free / (1024 * 1024)
        status.checks["disk_space"] = free_mb >= min_mb
        if free_mb < min_mb:
            status.ok = False
            status.messages.append(f"Low disk space: {free_mb:.0f}MB (min: {min_mb}MB)")
    except OSError as e:
        status.checks["disk_space"] = False
        status.messages.append(f"Disk check failed: {e}")

    return status


def check_stuck_round(
    db_path: Path | str | None = None,
    now: datetime | None = None,
    grace_sec: int | None = None,
) -> HealthStatus:
    """Flag an automatic open round whose window ended more than grace_sec ago.

    Manual rounds legitimately wait for the admin past their window and are
    not reported.
    """
    status = HealthStatus()
    now = now or datetime.now(timezone.utc)
    grace = settings.stuck_round_grace_sec if grace_sec is None else grace_sec

    try:
        round_ = get_open_round(db_path=db_path)
    except StoreError as e:
        status.ok = False
        status.checks["round_progress"] = False
        status.messages.append(f"Open round lookup failed: {e}")
        return status

    if round_ is None:
        status.ok = False
        status.checks["round_progress"] = False
        status.messages.append("No open round")
        return status

    overdue = (now - round_.window_end).total_seconds()
    stuck = round_.control == Control.AUTOMATIC and overdue > grace
    status.checks["round_progress"] = not stuck
    if stuck:
        status.ok = False
        status.messages.append(
            f"Round #{round_.sequence_number} is {overdue:.0f}s past its window "
            f"(status={round_.status.value})"
        )
    return status


def check_integrity(db_path: Path | str | None = None) -> HealthStatus:
    """Run PRAGMA integrity_check."""
    status = HealthStatus()
    path = str(resolve_db_path(db_path))

    try:
        conn = sqlite3.connect(path, timeout=30)
        try:
            result = conn.execute("PRAGMA integrity_check").fetchone()
        finally:
            conn.close()
        ok = result is not None and result[0] == "ok"
        status.checks["db_integrity"] = ok
        if not ok:
            status.ok = False
            status.messages.append(f"DB integrity check failed: {result}")
    except sqlite3.Error as e:
        status.ok = False
        status.checks["db_integrity"] = False
        status.messages.append(f"DB integrity check error: {e}")

    return status


def check_health(
    db_path: Path | str | None = None,
    integrity: bool = False,
    now: datetime | None = None,
) -> HealthStatus:
    """Local + stuck-round checks, plus the integrity check when requested."""
    status = check_local_health(db_path)
    status.update(check_stuck_round(db_path, now=now))
    if integrity:
        status.update(check_integrity(db_path))

    if not status.ok:
        logger.warning("Health check issues: %s", "; ".join(status.messages))
    return status
