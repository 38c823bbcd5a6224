#!/usr/bin/env python3
"""Health check: DB, disk, stuck rounds (and optional integrity check).

Sends a Telegram alert when any check fails. Intended for cron / launchd.

Usage:
    python scripts/health_check.py
    python scripts/health_check.py --integrity --no-alert
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger(__name__)


def main() -> None:
    from colorwager.health import check_health
    from colorwager.notifications.telegram import send_health_alert

    parser = argparse.ArgumentParser(description="Game engine health check")
    parser.add_argument("--db", type=str, default=None, help="SQLite DB path")
    parser.add_argument("--integrity", action="store_true", help="Run PRAGMA integrity_check")
    parser.add_argument("--no-alert", action="store_true", help="Skip Telegram alert")
    args = parser.parse_args()

    status = check_health(args.db, integrity=args.integrity)
    for name, ok in sorted(status.checks.items()):
        print(f"{name:<16} {'OK' if ok else 'FAIL'}")

    if status.ok:
        log.info("All checks passed")
        return

    for msg in status.messages:
        print(f"  - {msg}")
    if not args.no_alert:
        send_health_alert(status.messages)
    sys.exit(1)


if __name__ == "__main__":
    main()
