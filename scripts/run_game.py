#!/usr/bin/env python3
"""Run the color prediction game: recovery, then round timers forever.

Usage:
    # Default mode from settings / last configured mode
    python scripts/run_game.py

    # Start with a specific game mode
    python scripts/run_game.py --mode blitz

    # Explicit DB + JSON file logs
    python scripts/run_game.py --db data/game.db --structured
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

log = logging.getLogger(__name__)


def main() -> None:
    from colorwager.logging_config import setup_logging
    from colorwager.notifications.events import RoundCompleted, event_bus
    from colorwager.scheduler.round_scheduler import set_current_game_mode
    from colorwager.scheduler.timer import TimerCoordinator
    from colorwager.store.db_path import resolve_db_path
    from colorwager.store.models import GAME_MODES

    parser = argparse.ArgumentParser(description="Color prediction game server")
    parser.add_argument(
        "--mode",
        choices=sorted(GAME_MODES),
        default=None,
        help="Game mode for new rounds (default: last configured mode)",
    )
    parser.add_argument("--db", type=str, default=None, help="SQLite DB path")
    parser.add_argument(
        "--structured",
        action="store_true",
        help="JSON file logs (also STRUCTURED_LOGGING=true)",
    )
    args = parser.parse_args()

    tick_id = setup_logging(structured=args.structured)
    db_path = resolve_db_path(args.db)
    log.info("=== Game server start (tick_id=%s) ===", tick_id)
    log.info("DB path: %s", db_path)

    if args.mode:
        set_current_game_mode(args.mode, db_path=db_path)
        log.info("Game mode set to %s", args.mode)

    def _log_completed(event) -> None:
        if isinstance(event, RoundCompleted):
            log.info(
                "Round #%d result: %s %d (%d bet(s) settled)",
                event.sequence_number,
                event.result.color.value,
                event.result.number,
                event.settled_count,
                extra={"round_id": event.round_id},
            )

    event_bus.subscribe(_log_completed)
    coordinator = TimerCoordinator(db_path=db_path, bus=event_bus)

    async def _serve() -> None:
        try:
            await coordinator.run_forever()
        finally:
            await coordinator.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
