"""In-process realtime channel for round and bet changes.

Observers (websocket fan-out, UI polling cache) subscribe to get notified
without polling the store. Delivery is best-effort: a failing subscriber is
logged and skipped, never allowed to break settlement or the timer loop.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from colorwager.store.models import Outcome, RoundResult, RoundStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundState:
    """Observable per-tick state of a round."""

    round_id: str
    sequence_number: int
    status: RoundStatus
    remaining_seconds: int
    accepting_bets: bool


@dataclass(frozen=True)
class RoundOpened:
    round_id: str
    sequence_number: int
    mode: str


@dataclass(frozen=True)
class RoundCompleted:
    round_id: str
    sequence_number: int
    result: RoundResult
    settled_count: int


@dataclass(frozen=True)
class BetSettled:
    bet_id: str
    round_id: str
    bettor_id: str
    outcome: Outcome
    payout: Decimal


Event = RoundState | RoundOpened | RoundCompleted | BetSettled
Subscriber = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s", type(event).__name__)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


event_bus = EventBus()
