"""Per-round countdown timers.

One asyncio task per round, kept in an arena keyed by round id. Each tick
re-reads the round from the store (window_end there is the only source of
truth for remaining time), publishes a RoundState event, locks the round
once betting closes and hands the round to complete_round() when the window
has elapsed. Blocking store calls run in worker threads via asyncio.to_thread.

Starting a timer for a round cancels every other timer, so at most one
countdown is ever live. A timer that completes its round chains onto the
freshly opened one. A timer that crashes is alerted on and restarted for the
same round one tick later.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from colorwager.betting import round_state
from colorwager.config import settings
from colorwager.errors import StoreError
from colorwager.notifications.events import EventBus, event_bus
from colorwager.scheduler.round_scheduler import (
    CompletionStatus,
    CompletionTrigger,
    complete_round,
    ensure_open_round,
    lock_if_due,
    recover_unsettled_rounds,
)
from colorwager.store.db import get_round
from colorwager.store.models import Control, RoundStatus
from colorwager.store.retry import call_with_retry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_alert(error_type: str, message: str) -> None:
    from colorwager.notifications.telegram import send_error_alert

    send_error_alert(error_type, message)


class TimerCoordinator:
    """Owns the countdown task of the open round."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        bus: EventBus | None = None,
        now_fn: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
        on_alert: Callable[[str, str], None] | None = None,
        tick_interval: float | None = None,
        manual_poll_interval: float | None = None,
    ) -> None:
        self._db_path = db_path
        self._bus = bus or event_bus
        self._now = now_fn or _utcnow
        self._rng = rng
        self._on_alert = on_alert or _default_alert
        self._tick = tick_interval if tick_interval is not None else settings.tick_interval_sec
        self._manual_poll = (
            manual_poll_interval
            if manual_poll_interval is not None
            else settings.manual_poll_interval_sec
        )
        self._tasks: dict[str, asyncio.Task] = {}
        self._chain_tasks: set[asyncio.Task] = set()
        self._stopping = False
        self._crashes = 0
        self._stopped = asyncio.Event()

    @property
    def active_round_ids(self) -> list[str]:
        return [rid for rid, task in self._tasks.items() if not task.done()]

    async def start(self, round_id: str) -> asyncio.Task:
        """Start (or return) the timer for a round, cancelling all others."""
        stale = [t for rid, t in self._tasks.items() if rid != round_id and not t.done()]
        for task in stale:
            task.cancel()
        if stale:
            await asyncio.gather(*stale, return_exceptions=True)

        existing = self._tasks.get(round_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(self._run(round_id), name=f"round-timer-{round_id}")
        self._tasks[round_id] = task
        task.add_done_callback(functools.partial(self._on_done, round_id))
        return task

    async def stop(self) -> None:
        """Cancel every timer and pending chain."""
        self._stopping = True
        pending = [t for t in (*self._tasks.values(), *self._chain_tasks) if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._chain_tasks.clear()
        self._stopped.set()

    async def run_forever(self) -> None:
        """Recover interrupted settlements, open a round and keep timers chained."""
        recovered = await asyncio.to_thread(
            recover_unsettled_rounds, db_path=self._db_path, bus=self._bus
        )
        if recovered:
            logger.info("Startup recovery settled %d bet(s)", recovered)
        round_ = await asyncio.to_thread(ensure_open_round, db_path=self._db_path, bus=self._bus)
        await self.start(round_.id)
        await self._stopped.wait()

    def _on_done(self, round_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(round_id) is task:
            del self._tasks[round_id]
        if task.cancelled() or self._stopping:
            return
        exc = task.exception()
        if exc is not None:
            self._crashes += 1
            logger.error(
                "Timer for round %s crashed (%d in a row): %s",
                round_id,
                self._crashes,
                exc,
                exc_info=exc,
                extra={"round_id": round_id},
            )
            self._spawn(self._restart(round_id, exc))
            return
        self._crashes = 0
        next_id = task.result()
        if next_id:
            self._spawn(self.start(next_id))

    def _spawn(self, coro) -> None:
        chain = asyncio.get_running_loop().create_task(coro)
        self._chain_tasks.add(chain)
        chain.add_done_callback(self._chain_tasks.discard)

    async def _restart(self, round_id: str, exc: BaseException) -> None:
        """Re-time a round whose task crashed, after one tick."""
        if self._crashes == 1:
            await self._alert("TimerCrash", f"Timer for round {round_id} crashed: {exc}")
        await asyncio.sleep(self._tick)
        if self._stopping or self.active_round_ids:
            return
        # 完了済みでも同じラウンドから再開 (未精算分は complete_round が拾う)
        await self.start(round_id)

    async def _alert(self, error_type: str, message: str) -> None:
        try:
            await asyncio.to_thread(self._on_alert, error_type, message)
        except Exception:
            logger.exception("Alert delivery failed")

    async def _run(self, round_id: str) -> str | None:
        """Tick until the round is completed and settled. Returns the next round's id."""
        failures = 0
        while True:
            try:
                round_ = await asyncio.to_thread(
                    call_with_retry, get_round, round_id, db_path=self._db_path
                )
            except StoreError as e:
                logger.warning("Round reload failed: %s", e, extra={"round_id": round_id})
                await asyncio.sleep(self._tick)
                continue

            if round_ is None:
                logger.warning("Timer stopped: round %s not found", round_id)
                return None

            if round_.status != RoundStatus.COMPLETED:
                now = self._now()
                self._bus.publish(round_state(round_, now))

                remaining = (round_.window_end - now).total_seconds()
                if round_.status == RoundStatus.ACTIVE:
                    try:
                        await asyncio.to_thread(lock_if_due, round_, now, self._db_path)
                    except StoreError as e:
                        logger.warning("Lock failed: %s", e, extra={"round_id": round_id})

                if remaining > 0:
                    await asyncio.sleep(min(self._tick, remaining))
                    continue

                if round_.control == Control.MANUAL:
                    # 手動ラウンドは期限切れでも自動完了しない
                    await asyncio.sleep(self._manual_poll)
                    continue

            # 期限切れ、または別経路で完了済み (残った未精算 bet を精算してから次ラウンド)
            try:
                result = await asyncio.to_thread(
                    complete_round,
                    round_id,
                    CompletionTrigger.TIMER,
                    db_path=self._db_path,
                    rng=self._rng,
                    bus=self._bus,
                )
            except StoreError as e:
                failures += 1
                logger.error(
                    "Completion of round #%d failed (%d in a row): %s",
                    round_.sequence_number,
                    failures,
                    e,
                    extra={"round_id": round_id},
                )
                if failures == settings.completion_alert_after:
                    await self._alert(
                        "RoundCompletion",
                        f"Round #{round_.sequence_number} failed to complete "
                        f"{failures} times: {e}",
                    )
                await asyncio.sleep(self._tick)
                continue

            if result.status == CompletionStatus.SKIPPED_MANUAL:
                await asyncio.sleep(self._manual_poll)
                continue
            return result.next_round.id if result.next_round else None
