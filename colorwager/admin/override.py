"""Admin override: take a round under manual control and decide its result.

Every operation checks that the caller is an admin account, refuses rounds
that are not in an eligible state and writes one admin_logs row on success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from colorwager.errors import AuthorizationError, StateError
from colorwager.notifications.events import EventBus
from colorwager.scheduler.round_scheduler import (
    CompletionResult,
    CompletionTrigger,
    complete_round,
    set_current_game_mode,
)
from colorwager.settlement.calculator import color_for_number
from colorwager.store.db import (
    get_account,
    get_round,
    log_admin_action,
    set_round_control,
    stage_admin_result,
)
from colorwager.store.models import GAME_MODES, Control, Round, RoundResult

logger = logging.getLogger(__name__)


@dataclass
class AdminActionResult:
    """What an admin operation changed."""

    action: str
    round_id: str | None = None
    details: dict = field(default_factory=dict)
    completion: CompletionResult | None = None


def _require_admin(admin_id: str, action: str, db_path: Path | str | None) -> None:
    account = get_account(admin_id, db_path=db_path)
    if account is None or not account.is_admin:
        logger.warning("Unauthorized admin action %s by %s", action, admin_id)
        raise AuthorizationError(f"{admin_id} is not an admin")


def _require_open_round(round_id: str, db_path: Path | str | None) -> Round:
    round_ = get_round(round_id, db_path=db_path)
    if round_ is None:
        raise StateError(f"Unknown round {round_id}")
    if not round_.is_open:
        raise StateError(f"Round #{round_.sequence_number} is already completed")
    return round_


def _record(
    admin_id: str,
    action: str,
    round_id: str | None,
    details: dict,
    db_path: Path | str | None,
) -> AdminActionResult:
    log_admin_action(admin_id, action, round_id=round_id, details=details, db_path=db_path)
    logger.info(
        "Admin %s: %s %s",
        admin_id,
        action,
        details,
        extra={"round_id": round_id} if round_id else {},
    )
    return AdminActionResult(action=action, round_id=round_id, details=details)


def set_control(
    admin_id: str,
    round_id: str,
    control: Control | str,
    db_path: Path | str | None = None,
) -> AdminActionResult:
    """Switch a round between automatic and manual control.

    Manual stops bet acceptance immediately. Automatic discards an unlocked
    staged result and is refused once the staged result is locked.
    """
    _require_admin(admin_id, "set_control", db_path)
    target = Control(control)
    round_ = _require_open_round(round_id, db_path)
    if target == Control.AUTOMATIC and round_.admin_result_locked:
        raise StateError(
            f"Round #{round_.sequence_number} has a locked admin result, "
            "cannot return to automatic"
        )
    if not set_round_control(round_id, target, db_path=db_path):
        raise StateError(f"Round #{round_.sequence_number} can no longer change control")
    return _record(
        admin_id,
        "set_control",
        round_id,
        {"control": target.value, "previous": round_.control.value},
        db_path,
    )


def stage_result(
    admin_id: str,
    round_id: str,
    number: int,
    lock: bool = False,
    note: str | None = None,
    db_path: Path | str | None = None,
) -> AdminActionResult:
    """Stage the admin result for a manual round; color follows the number."""
    _require_admin(admin_id, "stage_result", db_path)
    try:
        color = color_for_number(int(number))
    except (TypeError, ValueError) as e:
        raise StateError(f"Invalid result number {number!r}") from e
    round_ = _require_open_round(round_id, db_path)
    if round_.control != Control.MANUAL:
        raise StateError(f"Round #{round_.sequence_number} is not under manual control")
    if round_.admin_result_locked:
        raise StateError(f"Round #{round_.sequence_number} admin result is locked")

    result = RoundResult(color=color, number=int(number))
    if not stage_admin_result(round_id, result, lock=lock, note=note, db_path=db_path):
        raise StateError(f"Round #{round_.sequence_number} cannot be staged")
    return _record(
        admin_id,
        "stage_result",
        round_id,
        {"number": result.number, "color": result.color.value, "locked": lock, "note": note},
        db_path,
    )


def force_complete(
    admin_id: str,
    round_id: str,
    db_path: Path | str | None = None,
    bus: EventBus | None = None,
) -> AdminActionResult:
    """Complete a manual round now with its staged result."""
    _require_admin(admin_id, "force_complete", db_path)
    completion = complete_round(round_id, CompletionTrigger.ADMIN, db_path=db_path, bus=bus)
    details = {"status": completion.status.value}
    if completion.result is not None:
        details.update(color=completion.result.color.value, number=completion.result.number)
    outcome = _record(admin_id, "force_complete", round_id, details, db_path)
    outcome.completion = completion
    return outcome


def set_game_mode(
    admin_id: str,
    mode: str,
    db_path: Path | str | None = None,
) -> AdminActionResult:
    """Game mode used for the next round that gets created."""
    _require_admin(admin_id, "set_game_mode", db_path)
    if mode not in GAME_MODES:
        raise StateError(f"Unknown game mode {mode!r}")
    set_current_game_mode(mode, db_path=db_path)
    return _record(admin_id, "set_game_mode", None, {"mode": mode}, db_path)


def get_control_status(round_id: str, db_path: Path | str | None = None) -> dict:
    """Manual/staged/locked flags of a round."""
    round_ = get_round(round_id, db_path=db_path)
    if round_ is None:
        raise StateError(f"Unknown round {round_id}")
    return {
        "is_manual": round_.control == Control.MANUAL,
        "result_staged": round_.admin_result is not None,
        "result_locked": round_.admin_result_locked,
    }
