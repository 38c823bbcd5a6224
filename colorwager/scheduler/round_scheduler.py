"""Round lifecycle state machine: active -> locked -> completed -> next round.

complete_round() is the single completion routine shared by the timer path
and the admin force-complete path. It is claim-then-act: the caller that wins
the conditional locked -> completed UPDATE settles; every other caller gets a
benign ALREADY_COMPLETED. Correctness does not depend on the triggers being
mutually exclusive, only on that UPDATE.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from colorwager.betting import close_margin_sec
from colorwager.config import settings
from colorwager.errors import ConflictError, StateError
from colorwager.notifications.events import EventBus, RoundCompleted, RoundOpened
from colorwager.settlement.settler import SettleSummary, settle_round
from colorwager.store.db import (
    claim_completion,
    create_round,
    get_open_round,
    get_round,
    get_rounds_with_pending_bets,
    kv_get,
    kv_set,
    lock_round,
)
from colorwager.store.models import (
    GAME_MODES,
    Color,
    Control,
    Round,
    RoundResult,
    RoundStatus,
)
from colorwager.store.retry import call_with_retry

logger = logging.getLogger(__name__)

GAME_MODE_KEY = "game:mode"
_COLORS = (Color.RED, Color.GREEN, Color.PURPLE_RED)


class CompletionTrigger(StrEnum):
    TIMER = "timer"
    ADMIN = "admin"


class CompletionStatus(StrEnum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    SKIPPED_MANUAL = "skipped_manual"


@dataclass
class CompletionResult:
    """Outcome of one complete_round() call."""

    round_id: str
    status: CompletionStatus
    result: RoundResult | None = None
    summary: SettleSummary | None = None
    next_round: Round | None = None


# ---------------------------------------------------------------------------
# Game mode
# ---------------------------------------------------------------------------


def current_game_mode(db_path: Path | str | None = None) -> str:
    """Last configured game mode (kv), falling back to settings."""
    mode = call_with_retry(kv_get, GAME_MODE_KEY, db_path=db_path)
    if mode in GAME_MODES:
        return mode
    return settings.default_game_mode


def set_current_game_mode(mode: str, db_path: Path | str | None = None) -> None:
    if mode not in GAME_MODES:
        raise ValueError(f"Unknown game mode {mode!r} (expected one of {sorted(GAME_MODES)})")
    call_with_retry(kv_set, GAME_MODE_KEY, mode, db_path=db_path)


# ---------------------------------------------------------------------------
# Opening / locking
# ---------------------------------------------------------------------------


def ensure_open_round(
    mode: str | None = None,
    db_path: Path | str | None = None,
    bus: EventBus | None = None,
) -> Round:
    """Return the open round, creating one if none exists.

    A ConflictError from create_round means another writer opened a round
    first; that round is re-fetched and returned.
    """
    for _ in range(3):
        existing = call_with_retry(get_open_round, db_path=db_path)
        if existing is not None:
            return existing
        try:
            created = call_with_retry(
                create_round, mode or current_game_mode(db_path), db_path=db_path
            )
        except ConflictError:
            logger.debug("Round creation lost to a concurrent writer, re-fetching")
            continue
        if bus is not None:
            bus.publish(
                RoundOpened(
                    round_id=created.id,
                    sequence_number=created.sequence_number,
                    mode=created.mode,
                )
            )
        return created
    # 3 回連続で競合 → 直近の open round を返す
    existing = call_with_retry(get_open_round, db_path=db_path)
    if existing is None:
        raise StateError("Could not open a round after repeated conflicts")
    return existing


def lock_if_due(
    round_: Round,
    now: datetime,
    db_path: Path | str | None = None,
) -> bool:
    """active -> locked once the betting window has closed. True if locked now."""
    if round_.status != RoundStatus.ACTIVE:
        return False
    if (round_.window_end - now).total_seconds() > close_margin_sec():
        return False
    locked = call_with_retry(lock_round, round_.id, db_path=db_path)
    if locked:
        logger.info(
            "Round #%d locked (betting closed)",
            round_.sequence_number,
            extra={"round_id": round_.id},
        )
    return locked


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


def draw_result(rng: random.Random | None = None) -> RoundResult:
    """Automatic result: color and number drawn independently and uniformly.

    This deliberately does not use the number -> color display mapping that
    admin-staged results use.
    """
    r = rng or random
    return RoundResult(color=r.choice(_COLORS), number=r.randrange(10))


def _finish(
    round_: Round,
    db_path: Path | str | None,
    bus: EventBus | None,
) -> tuple[SettleSummary, Round]:
    """Settle every bet of a completed round, then open the next round."""
    summary = call_with_retry(settle_round, round_, db_path=db_path, bus=bus)
    next_round = ensure_open_round(db_path=db_path, bus=bus)
    return summary, next_round


def complete_round(
    round_id: str,
    trigger: CompletionTrigger,
    db_path: Path | str | None = None,
    rng: random.Random | None = None,
    bus: EventBus | None = None,
) -> CompletionResult:
    """Complete a round exactly once, settle its bets and open the next round.

    - timer trigger on a manual round: SKIPPED_MANUAL, never drawn over
    - admin trigger: requires manual control and a staged result
    - round already completed (race loser, stale tick): ALREADY_COMPLETED;
      any settlement or next-round creation left unfinished by a crashed
      winner is finished idempotently
    StoreError is retried with backoff and then propagated, never read as
    "someone else completed it".
    """
    round_ = call_with_retry(get_round, round_id, db_path=db_path)
    if round_ is None:
        raise StateError(f"Unknown round {round_id}")

    if round_.status == RoundStatus.COMPLETED:
        return _already_completed(round_, db_path, bus)

    if round_.control == Control.MANUAL:
        if trigger == CompletionTrigger.TIMER:
            logger.debug(
                "Round #%d under manual control, timer completion skipped",
                round_.sequence_number,
            )
            return CompletionResult(round_id=round_id, status=CompletionStatus.SKIPPED_MANUAL)
        if round_.admin_result is None:
            raise StateError(f"Round #{round_.sequence_number} has no staged admin result")
    elif trigger == CompletionTrigger.ADMIN:
        raise StateError(f"Round #{round_.sequence_number} is not under manual control")

    # active のまま期限切れ / admin 即時完了 → まず lock (既に locked なら no-op)
    call_with_retry(lock_round, round_id, db_path=db_path)

    drawn = draw_result(rng) if round_.control == Control.AUTOMATIC else None
    claimed = call_with_retry(
        claim_completion, round_id, drawn, control=round_.control, db_path=db_path
    )
    if not claimed:
        current = call_with_retry(get_round, round_id, db_path=db_path)
        if current is not None and current.status == RoundStatus.COMPLETED:
            return _already_completed(current, db_path, bus)
        if trigger == CompletionTrigger.TIMER:
            # claim 前に manual へ切り替えられた
            return CompletionResult(round_id=round_id, status=CompletionStatus.SKIPPED_MANUAL)
        raise StateError(f"Round #{round_.sequence_number} changed during completion")

    completed = call_with_retry(get_round, round_id, db_path=db_path)
    logger.info(
        "Round #%d completed via %s: %s %d",
        completed.sequence_number,
        trigger.value,
        completed.result.color.value,
        completed.result.number,
        extra={"round_id": round_id},
    )

    summary, next_round = _finish(completed, db_path, bus)
    if bus is not None:
        bus.publish(
            RoundCompleted(
                round_id=completed.id,
                sequence_number=completed.sequence_number,
                result=completed.result,
                settled_count=len(summary.settled),
            )
        )
    return CompletionResult(
        round_id=round_id,
        status=CompletionStatus.COMPLETED,
        result=completed.result,
        summary=summary,
        next_round=next_round,
    )


def _already_completed(
    round_: Round,
    db_path: Path | str | None,
    bus: EventBus | None,
) -> CompletionResult:
    logger.debug(
        "Round #%d already completed, nothing to claim",
        round_.sequence_number,
        extra={"round_id": round_.id},
    )
    summary, next_round = _finish(round_, db_path, bus)
    return CompletionResult(
        round_id=round_.id,
        status=CompletionStatus.ALREADY_COMPLETED,
        result=round_.result,
        summary=summary,
        next_round=next_round,
    )


# ---------------------------------------------------------------------------
# Crash recovery
# ---------------------------------------------------------------------------


def recover_unsettled_rounds(
    db_path: Path | str | None = None,
    bus: EventBus | None = None,
) -> int:
    """Finish rounds whose claim succeeded but whose settlement was interrupted.

    Returns the number of bets settled during recovery. Always leaves an open
    round behind.
    """
    recovered = 0
    for round_ in call_with_retry(get_rounds_with_pending_bets, db_path=db_path):
        summary = call_with_retry(settle_round, round_, db_path=db_path, bus=bus)
        recovered += len(summary.settled)
        logger.info(
            "Recovered round #%d: settled %d pending bet(s)",
            round_.sequence_number,
            len(summary.settled),
            extra={"round_id": round_.id},
        )
    ensure_open_round(db_path=db_path, bus=bus)
    return recovered
