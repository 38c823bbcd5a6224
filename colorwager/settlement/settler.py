"""Settlement pass: apply the calculator to every bet of a completed round.

Bets may be processed in any order. record_settlement is idempotent, so a
pass interrupted by a store failure can simply be re-run; already settled
bets are counted as skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from colorwager.notifications.events import BetSettled, EventBus
from colorwager.settlement.calculator import settle
from colorwager.store.db import list_bets_for_round, record_settlement
from colorwager.store.models import Outcome, Round

log = logging.getLogger(__name__)


@dataclass
class SettleResult:
    """Result of settling a single bet."""

    bet_id: str
    bettor_id: str
    kind: str
    value: str
    stake: Decimal
    outcome: Outcome
    payout: Decimal


@dataclass
class SettleSummary:
    """Summary of one round's settlement pass."""

    round_id: str
    sequence_number: int
    settled: list[SettleResult] = field(default_factory=list)
    skipped: int = 0

    @property
    def wins(self) -> int:
        return sum(1 for r in self.settled if r.outcome == Outcome.WON)

    @property
    def losses(self) -> int:
        return sum(1 for r in self.settled if r.outcome == Outcome.LOST)

    @property
    def total_stake(self) -> Decimal:
        return sum((r.stake for r in self.settled), Decimal("0"))

    @property
    def total_payout(self) -> Decimal:
        return sum((r.payout for r in self.settled), Decimal("0"))

    def format_summary(self) -> str:
        if not self.settled:
            return f"Round #{self.sequence_number}: no bets settled."
        lines = [
            f"*Round #{self.sequence_number} settled*",
            f"Bets: {len(self.settled)} | Skipped: {self.skipped}",
            f"W/L: {self.wins}/{self.losses} | Stake: {self.total_stake:.2f} "
            f"| Payout: {self.total_payout:.2f}",
        ]
        return "\n".join(lines)


def settle_round(
    round_: Round,
    db_path: Path | str | None = None,
    bus: EventBus | None = None,
) -> SettleSummary:
    """Settle every pending bet of a completed round.

    Store failures propagate: the caller retries the whole pass rather than
    moving on with bets left pending.
    """
    if round_.result is None:
        raise ValueError(f"Round #{round_.sequence_number} has no result to settle against")

    summary = SettleSummary(round_id=round_.id, sequence_number=round_.sequence_number)
    for bet in list_bets_for_round(round_.id, db_path=db_path):
        if bet.outcome != Outcome.PENDING:
            summary.skipped += 1
            continue

        outcome, payout = settle(bet, round_.result)
        applied = record_settlement(
            bet.id,
            outcome,
            payout,
            reference=f"round:{round_.sequence_number}:{bet.value}",
            db_path=db_path,
        )
        if not applied:
            # 並行した settlement pass が先に書いた
            summary.skipped += 1
            continue

        summary.settled.append(
            SettleResult(
                bet_id=bet.id,
                bettor_id=bet.bettor_id,
                kind=bet.kind.value,
                value=bet.value,
                stake=bet.stake,
                outcome=outcome,
                payout=payout,
            )
        )
        if bus is not None:
            bus.publish(
                BetSettled(
                    bet_id=bet.id,
                    round_id=round_.id,
                    bettor_id=bet.bettor_id,
                    outcome=outcome,
                    payout=payout,
                )
            )

    log.info(
        "Round #%d settled: %d bets (W/L %d/%d, payout %.2f), %d skipped",
        round_.sequence_number,
        len(summary.settled),
        summary.wins,
        summary.losses,
        summary.total_payout,
        summary.skipped,
        extra={"round_id": round_.id},
    )
    return summary
