#!/usr/bin/env python3
"""Admin override CLI.

Usage:
    # Show the open round and its control flags
    python scripts/admin_control.py --admin admin1 status

    # Take the open round under manual control
    python scripts/admin_control.py --admin admin1 control manual

    # Stage result 7 (red) and lock it
    python scripts/admin_control.py --admin admin1 stage 7 --lock --note "promo round"

    # Complete the manual round now with its staged result
    python scripts/admin_control.py --admin admin1 complete --notify

    # Game mode for the next round
    python scripts/admin_control.py --admin admin1 mode classic

    # Recent admin actions
    python scripts/admin_control.py --admin admin1 logs
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger(__name__)


def main() -> None:
    from colorwager.admin import override
    from colorwager.errors import GameError, to_error_payload
    from colorwager.store.db import get_admin_logs, get_open_round, get_round
    from colorwager.store.db_path import resolve_db_path
    from colorwager.store.models import GAME_MODES

    parser = argparse.ArgumentParser(description="Admin override for the open round")
    parser.add_argument("--admin", required=True, help="Admin account id")
    parser.add_argument("--db", type=str, default=None, help="SQLite DB path")
    parser.add_argument(
        "--round-id",
        type=str,
        default=None,
        help="Target round (default: the open round)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show control flags of the round")

    p_control = sub.add_parser("control", help="Switch automatic/manual control")
    p_control.add_argument("control", choices=["automatic", "manual"])

    p_stage = sub.add_parser("stage", help="Stage the admin result (0-9)")
    p_stage.add_argument("number", type=int, choices=range(10))
    p_stage.add_argument("--lock", action="store_true", help="Make the staged result final")
    p_stage.add_argument("--note", type=str, default=None)

    p_complete = sub.add_parser("complete", help="Force-complete a manual round")
    p_complete.add_argument("--notify", action="store_true", help="Send Telegram summary")

    p_mode = sub.add_parser("mode", help="Game mode for the next round")
    p_mode.add_argument("mode", choices=sorted(GAME_MODES))

    p_logs = sub.add_parser("logs", help="Recent admin actions")
    p_logs.add_argument("--limit", type=int, default=20)

    args = parser.parse_args()
    db_path = resolve_db_path(args.db)

    if args.command == "logs":
        for entry in get_admin_logs(args.limit, db_path=db_path):
            print(f"{entry.created_at}  {entry.admin_id:<12} {entry.action:<15} "
                  f"{entry.round_id or '-':<32} {entry.details}")
        return

    round_id = args.round_id
    if round_id is None and args.command != "mode":
        open_round = get_open_round(db_path=db_path)
        if open_round is None:
            print("No open round")
            sys.exit(1)
        round_id = open_round.id
        print(f"Round #{open_round.sequence_number} ({open_round.status.value}, "
              f"{open_round.control.value})")

    try:
        if args.command == "status":
            print(override.get_control_status(round_id, db_path=db_path))
        elif args.command == "control":
            result = override.set_control(args.admin, round_id, args.control, db_path=db_path)
            print(f"Control set: {result.details}")
        elif args.command == "stage":
            result = override.stage_result(
                args.admin, round_id, args.number, lock=args.lock, note=args.note,
                db_path=db_path,
            )
            print(f"Staged: {result.details}")
        elif args.command == "complete":
            result = override.force_complete(args.admin, round_id, db_path=db_path)
            completion = result.completion
            print(f"Completion: {completion.status.value} {result.details}")
            if completion.summary is not None:
                print(completion.summary.format_summary())
            if args.notify and completion.summary is not None:
                from colorwager.notifications.telegram import format_round_summary, send_message

                send_message(format_round_summary(get_round(round_id, db_path=db_path),
                                                  completion.summary))
        elif args.command == "mode":
            result = override.set_game_mode(args.admin, args.mode, db_path=db_path)
            print(f"Game mode: {result.details['mode']}")
    except GameError as e:
        log.error("Admin action failed: %s", e)
        print(to_error_payload(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
