"""SQLite round store: rounds, bets, accounts, ledger and admin log.

Every public function opens its own connection (short transactions, safe
across threads and processes). Multi-statement writes run inside
``BEGIN IMMEDIATE`` so the write lock is taken before any read that the write
depends on. Transient SQLite failures surface as StoreError.
"""

from __future__ import annotations

import functools
import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from colorwager.config import settings
from colorwager.errors import (
    BettingClosed,
    ConflictError,
    InsufficientBalance,
    InvalidBet,
    NoActiveRound,
    StoreError,
)
from colorwager.store.db_path import resolve_db_path
from colorwager.store.models import (
    Account,
    AccountRole,
    AdminLogEntry,
    Bet,
    BetKind,
    Color,
    Control,
    LedgerEntry,
    LedgerKind,
    Outcome,
    Round,
    RoundResult,
    RoundStatus,
    get_game_mode,
)
from colorwager.store.schema import _connect

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


def _open(db_path: Path | str | None) -> sqlite3.Connection:
    return _connect(resolve_db_path(db_path))


def _store_op(func):
    """Translate transient sqlite3 failures into StoreError."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.OperationalError as e:
            raise StoreError(f"{func.__name__}: {e}") from e

    return wrapper


def _row_to_result(color: str | None, number: int | None) -> RoundResult | None:
    if number is None:
        return None
    return RoundResult(color=Color(color), number=int(number))


def _row_to_round(row: sqlite3.Row) -> Round:
    return Round(
        id=row["id"],
        sequence_number=row["sequence_number"],
        mode=row["mode"],
        window_start=datetime.fromisoformat(row["window_start"]),
        window_end=datetime.fromisoformat(row["window_end"]),
        status=RoundStatus(row["status"]),
        control=Control(row["control"]),
        result=_row_to_result(row["result_color"], row["result_number"]),
        admin_result=_row_to_result(row["admin_result_color"], row["admin_result_number"]),
        admin_result_locked=bool(row["admin_result_locked"]),
        admin_note=row["admin_note"],
        completed_at=_parse_dt(row["completed_at"]),
        created_at=row["created_at"],
    )


def _row_to_bet(row: sqlite3.Row) -> Bet:
    return Bet(
        id=row["id"],
        round_id=row["round_id"],
        bettor_id=row["bettor_id"],
        kind=BetKind(row["kind"]),
        value=row["value"],
        stake=_from_cents(row["stake_cents"]),
        payout=_from_cents(row["payout_cents"]),
        outcome=Outcome(row["outcome"]),
        created_at=row["created_at"],
        settled_at=row["settled_at"],
    )


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        role=AccountRole(row["role"]),
        balance=_from_cents(row["balance_cents"]),
        initial_balance=_from_cents(row["initial_balance_cents"]),
        created_at=row["created_at"],
    )


def _write_ledger(
    conn: sqlite3.Connection,
    *,
    account_id: str,
    kind: LedgerKind,
    amount_cents: int,
    balance_before_cents: int,
    reference: str,
    now: str,
) -> None:
    conn.execute(
        """INSERT INTO ledger
           (account_id, kind, amount_cents, balance_before_cents,
            balance_after_cents, reference, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            account_id,
            kind.value,
            amount_cents,
            balance_before_cents,
            balance_before_cents + amount_cents,
            reference,
            now,
        ),
    )


def _credit(
    conn: sqlite3.Connection,
    account_id: str,
    amount_cents: int,
    kind: LedgerKind,
    reference: str,
    now: str,
) -> None:
    """Credit an account inside the caller's transaction, with ledger row."""
    row = conn.execute(
        "SELECT balance_cents FROM accounts WHERE id = ?", (account_id,)
    ).fetchone()
    if row is None:
        raise InvalidBet(f"Unknown account {account_id}")
    before = row["balance_cents"]
    conn.execute(
        "UPDATE accounts SET balance_cents = balance_cents + ?, updated_at = ? WHERE id = ?",
        (amount_cents, now, account_id),
    )
    _write_ledger(
        conn,
        account_id=account_id,
        kind=kind,
        amount_cents=amount_cents,
        balance_before_cents=before,
        reference=reference,
        now=now,
    )


# ---------------------------------------------------------------------------
# Rounds
# ---------------------------------------------------------------------------


@_store_op
def get_open_round(db_path: Path | str | None = None) -> Round | None:
    """Return the single round with status active/locked, or None."""
    conn = _open(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM rounds WHERE status IN ('active', 'locked') "
            "ORDER BY sequence_number DESC LIMIT 1"
        ).fetchone()
        return _row_to_round(row) if row else None
    finally:
        conn.close()


@_store_op
def get_round(round_id: str, db_path: Path | str | None = None) -> Round | None:
    conn = _open(db_path)
    try:
        row = conn.execute("SELECT * FROM rounds WHERE id = ?", (round_id,)).fetchone()
        return _row_to_round(row) if row else None
    finally:
        conn.close()


@_store_op
def create_round(
    mode: str,
    *,
    now: datetime | None = None,
    db_path: Path | str | None = None,
) -> Round:
    """Allocate the next round (sequence = previous max + 1).

    Raises ConflictError if an open round already exists. The UNIQUE
    open_slot column backs this check across processes.
    """
    game_mode = get_game_mode(mode)
    start = now or _now()
    end = start + timedelta(seconds=game_mode.duration_sec)
    stamp = _iso(_now())
    round_id = uuid.uuid4().hex

    conn = _open(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        existing = conn.execute(
            "SELECT id, sequence_number FROM rounds WHERE status IN ('active', 'locked')"
        ).fetchone()
        if existing is not None:
            conn.rollback()
            raise ConflictError(
                f"Round #{existing['sequence_number']} is still open"
            )
        max_seq = conn.execute("SELECT MAX(sequence_number) FROM rounds").fetchone()[0]
        seq = (max_seq + 1) if max_seq is not None else settings.first_sequence_number
        try:
            conn.execute(
                """INSERT INTO rounds
                   (id, sequence_number, mode, window_start, window_end,
                    status, control, open_slot, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, 'active', 'automatic', 1, ?, ?)""",
                (round_id, seq, game_mode.key, _iso(start), _iso(end), stamp, stamp),
            )
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ConflictError(f"Open round slot already taken: {e}") from e
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "Round #%d created (%s, window %s -> %s)",
        seq,
        game_mode.key,
        _iso(start),
        _iso(end),
        extra={"round_id": round_id},
    )
    return Round(
        id=round_id,
        sequence_number=seq,
        mode=game_mode.key,
        window_start=datetime.fromisoformat(_iso(start)),
        window_end=datetime.fromisoformat(_iso(end)),
        status=RoundStatus.ACTIVE,
        control=Control.AUTOMATIC,
        created_at=stamp,
    )


@_store_op
def update_round_status(
    round_id: str,
    status: RoundStatus,
    result: RoundResult | None = None,
    db_path: Path | str | None = None,
) -> bool:
    """Forward-only status transition. Returns True if the row changed.

    active -> locked, or active/locked -> completed (result required).
    """
    now = _iso(_now())
    conn = _open(db_path)
    try:
        if status == RoundStatus.LOCKED:
            cur = conn.execute(
                "UPDATE rounds SET status = 'locked', updated_at = ? "
                "WHERE id = ? AND status = 'active'",
                (now, round_id),
            )
        elif status == RoundStatus.COMPLETED:
            if result is None:
                raise ValueError("Completing a round requires a result")
            cur = conn.execute(
                """UPDATE rounds
                   SET status = 'completed', open_slot = NULL,
                       result_color = ?, result_number = ?,
                       completed_at = ?, updated_at = ?
                   WHERE id = ? AND status IN ('active', 'locked')""",
                (result.color.value, result.number, now, now, round_id),
            )
        else:
            raise ValueError(f"Cannot transition a round back to {status}")
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def lock_round(round_id: str, db_path: Path | str | None = None) -> bool:
    """Conditional active -> locked. False if the round was not active."""
    return update_round_status(round_id, RoundStatus.LOCKED, db_path=db_path)


@_store_op
def claim_completion(
    round_id: str,
    result: RoundResult | None = None,
    *,
    control: Control,
    db_path: Path | str | None = None,
) -> bool:
    """Atomically transition locked -> completed.

    Automatic control stores the drawn ``result``. Manual control copies the
    staged admin result inside the same UPDATE, so a re-stage racing with the
    claim can never be half-applied. Succeeds only if the round is still
    locked and still under the expected control; exactly one concurrent
    caller gets rowcount 1, everyone else gets False.
    """
    now = _iso(_now())
    if control == Control.MANUAL:
        sql = """UPDATE rounds
                 SET status = 'completed', open_slot = NULL,
                     result_color = admin_result_color,
                     result_number = admin_result_number,
                     completed_at = ?, updated_at = ?
                 WHERE id = ? AND status = 'locked' AND control = 'manual'
                   AND admin_result_number IS NOT NULL"""
        params: tuple = (now, now, round_id)
    else:
        if result is None:
            raise ValueError("Automatic completion requires a drawn result")
        sql = """UPDATE rounds
                 SET status = 'completed', open_slot = NULL,
                     result_color = ?, result_number = ?,
                     completed_at = ?, updated_at = ?
                 WHERE id = ? AND status = 'locked' AND control = 'automatic'"""
        params = (result.color.value, result.number, now, now, round_id)
    conn = _open(db_path)
    try:
        cur = conn.execute(sql, params)
        conn.commit()
        return cur.rowcount == 1
    finally:
        conn.close()


@_store_op
def set_round_control(
    round_id: str,
    control: Control,
    db_path: Path | str | None = None,
) -> bool:
    """Switch an open round between automatic and manual control.

    Switching back to automatic discards an unlocked staged result; a locked
    staged result blocks the switch (returns False).
    """
    now = _iso(_now())
    conn = _open(db_path)
    try:
        if control == Control.AUTOMATIC:
            cur = conn.execute(
                """UPDATE rounds
                   SET control = 'automatic', admin_result_color = NULL,
                       admin_result_number = NULL, admin_note = NULL, updated_at = ?
                   WHERE id = ? AND status IN ('active', 'locked')
                     AND admin_result_locked = 0""",
                (now, round_id),
            )
        else:
            cur = conn.execute(
                "UPDATE rounds SET control = 'manual', updated_at = ? "
                "WHERE id = ? AND status IN ('active', 'locked')",
                (now, round_id),
            )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


@_store_op
def stage_admin_result(
    round_id: str,
    result: RoundResult,
    *,
    lock: bool = False,
    note: str | None = None,
    db_path: Path | str | None = None,
) -> bool:
    """Stage an admin result on a manual, open round whose result isn't locked."""
    now = _iso(_now())
    conn = _open(db_path)
    try:
        cur = conn.execute(
            """UPDATE rounds
               SET admin_result_color = ?, admin_result_number = ?,
                   admin_result_locked = ?, admin_note = ?, updated_at = ?
               WHERE id = ? AND status IN ('active', 'locked')
                 AND control = 'manual' AND admin_result_locked = 0""",
            (result.color.value, result.number, int(lock), note, now, round_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


@_store_op
def get_recent_rounds(
    limit: int = 10,
    status: RoundStatus | None = None,
    db_path: Path | str | None = None,
) -> list[Round]:
    """Most recent rounds first (game history)."""
    conn = _open(db_path)
    try:
        if status is None:
            rows = conn.execute(
                "SELECT * FROM rounds ORDER BY sequence_number DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM rounds WHERE status = ? ORDER BY sequence_number DESC LIMIT ?",
                (status.value, limit),
            ).fetchall()
        return [_row_to_round(r) for r in rows]
    finally:
        conn.close()


def get_latest_completed_round(db_path: Path | str | None = None) -> Round | None:
    rounds = get_recent_rounds(1, RoundStatus.COMPLETED, db_path=db_path)
    return rounds[0] if rounds else None


@_store_op
def get_rounds_with_pending_bets(db_path: Path | str | None = None) -> list[Round]:
    """Completed rounds that still carry unsettled bets (interrupted settlement)."""
    conn = _open(db_path)
    try:
        rows = conn.execute(
            """SELECT DISTINCT r.* FROM rounds r
               JOIN bets b ON b.round_id = r.id
               WHERE r.status = 'completed' AND b.outcome = 'pending'
               ORDER BY r.sequence_number ASC"""
        ).fetchall()
        return [_row_to_round(r) for r in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------


@_store_op
def place_bet(
    *,
    round_id: str,
    bettor_id: str,
    kind: BetKind,
    value: str,
    stake: Decimal,
    close_margin_sec: int,
    now: datetime | None = None,
    db_path: Path | str | None = None,
) -> Bet:
    """Debit the stake and insert a pending bet in one transaction.

    The round row is re-read under the write lock so a concurrent lock,
    manual switch or completion cannot slip between check and insert.
    """
    now_dt = now or _now()
    stamp = _iso(_now())
    stake_cents = _to_cents(stake)
    bet_id = uuid.uuid4().hex

    conn = _open(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute(
            "SELECT sequence_number, status, control, window_end FROM rounds WHERE id = ?",
            (round_id,),
        ).fetchone()
        if row is None or row["status"] == RoundStatus.COMPLETED:
            conn.rollback()
            raise NoActiveRound(f"Round {round_id} is not open")
        window_end = datetime.fromisoformat(row["window_end"])
        remaining = (window_end - now_dt).total_seconds()
        if (
            row["status"] != RoundStatus.ACTIVE
            or row["control"] != Control.AUTOMATIC
            or remaining <= close_margin_sec
        ):
            conn.rollback()
            raise BettingClosed(f"Betting is closed for round #{row['sequence_number']}")

        acct = conn.execute(
            "SELECT balance_cents FROM accounts WHERE id = ?", (bettor_id,)
        ).fetchone()
        if acct is None:
            conn.rollback()
            raise InvalidBet(f"Unknown bettor {bettor_id}")
        before = acct["balance_cents"]
        cur = conn.execute(
            "UPDATE accounts SET balance_cents = balance_cents - ?, updated_at = ? "
            "WHERE id = ? AND balance_cents >= ?",
            (stake_cents, stamp, bettor_id, stake_cents),
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise InsufficientBalance(
                f"Balance {_from_cents(before)} is below stake {_from_cents(stake_cents)}"
            )
        _write_ledger(
            conn,
            account_id=bettor_id,
            kind=LedgerKind.BET,
            amount_cents=-stake_cents,
            balance_before_cents=before,
            reference=f"bet:{bet_id}",
            now=stamp,
        )
        conn.execute(
            """INSERT INTO bets
               (id, round_id, bettor_id, kind, value, stake_cents, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (bet_id, round_id, bettor_id, kind.value, value, stake_cents, stamp),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    return Bet(
        id=bet_id,
        round_id=round_id,
        bettor_id=bettor_id,
        kind=kind,
        value=value,
        stake=_from_cents(stake_cents),
        created_at=stamp,
    )


@_store_op
def get_bet(bet_id: str, db_path: Path | str | None = None) -> Bet | None:
    conn = _open(db_path)
    try:
        row = conn.execute("SELECT * FROM bets WHERE id = ?", (bet_id,)).fetchone()
        return _row_to_bet(row) if row else None
    finally:
        conn.close()


@_store_op
def list_bets_for_round(round_id: str, db_path: Path | str | None = None) -> list[Bet]:
    """All bets for a round, any outcome, oldest first."""
    conn = _open(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM bets WHERE round_id = ? ORDER BY created_at ASC, id ASC",
            (round_id,),
        ).fetchall()
        return [_row_to_bet(r) for r in rows]
    finally:
        conn.close()


@_store_op
def get_bets_for_bettor(
    bettor_id: str,
    limit: int = 50,
    db_path: Path | str | None = None,
) -> list[Bet]:
    """Bet history for one bettor, newest first."""
    conn = _open(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM bets WHERE bettor_id = ? ORDER BY created_at DESC LIMIT ?",
            (bettor_id, limit),
        ).fetchall()
        return [_row_to_bet(r) for r in rows]
    finally:
        conn.close()


@_store_op
def record_settlement(
    bet_id: str,
    outcome: Outcome,
    payout: Decimal,
    reference: str = "",
    db_path: Path | str | None = None,
) -> bool:
    """Write a bet's outcome, crediting stake + payout when won.

    Idempotent: only a pending bet is updated. Returns False (no write) when
    the bet was already settled.
    """
    if outcome == Outcome.PENDING:
        raise ValueError("Settlement outcome must be won or lost")
    payout_cents = _to_cents(payout)
    if outcome == Outcome.LOST and payout_cents != 0:
        raise ValueError("A lost bet cannot carry a payout")

    now = _iso(_now())
    conn = _open(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cur = conn.execute(
            """UPDATE bets SET outcome = ?, payout_cents = ?, settled_at = ?
               WHERE id = ? AND outcome = 'pending'""",
            (outcome.value, payout_cents, now, bet_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return False
        if outcome == Outcome.WON:
            bet = conn.execute(
                "SELECT bettor_id, stake_cents FROM bets WHERE id = ?", (bet_id,)
            ).fetchone()
            _credit(
                conn,
                bet["bettor_id"],
                bet["stake_cents"] + payout_cents,
                LedgerKind.WIN,
                reference or f"bet:{bet_id}",
                now,
            )
        conn.commit()
        return True
    except (sqlite3.Error, InvalidBet):
        conn.rollback()
        raise
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Accounts & ledger
# ---------------------------------------------------------------------------


@_store_op
def create_account(
    account_id: str,
    *,
    role: AccountRole = AccountRole.USER,
    initial_balance: Decimal = Decimal("0"),
    db_path: Path | str | None = None,
) -> Account:
    now = _iso(_now())
    cents = _to_cents(initial_balance)
    conn = _open(db_path)
    try:
        conn.execute(
            """INSERT INTO accounts
               (id, role, balance_cents, initial_balance_cents, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (account_id, role.value, cents, cents, now, now),
        )
        conn.commit()
    finally:
        conn.close()
    return Account(
        id=account_id,
        role=role,
        balance=_from_cents(cents),
        initial_balance=_from_cents(cents),
        created_at=now,
    )


@_store_op
def get_account(account_id: str, db_path: Path | str | None = None) -> Account | None:
    conn = _open(db_path)
    try:
        row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return _row_to_account(row) if row else None
    finally:
        conn.close()


@_store_op
def credit_deposit(
    account_id: str,
    amount: Decimal,
    reference: str = "",
    db_path: Path | str | None = None,
) -> Account:
    """Credit an approved deposit (hook for the deposit review workflow)."""
    cents = _to_cents(amount)
    if cents <= 0:
        raise ValueError("Deposit amount must be positive")
    now = _iso(_now())
    conn = _open(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        _credit(conn, account_id, cents, LedgerKind.DEPOSIT, reference, now)
        row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        conn.commit()
        return _row_to_account(row)
    except (sqlite3.Error, InvalidBet):
        conn.rollback()
        raise
    finally:
        conn.close()


@_store_op
def get_ledger(account_id: str, db_path: Path | str | None = None) -> list[LedgerEntry]:
    """Ledger rows for an account, oldest first."""
    conn = _open(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM ledger WHERE account_id = ? ORDER BY id ASC", (account_id,)
        ).fetchall()
        return [
            LedgerEntry(
                id=r["id"],
                account_id=r["account_id"],
                kind=LedgerKind(r["kind"]),
                amount=_from_cents(r["amount_cents"]),
                balance_before=_from_cents(r["balance_before_cents"]),
                balance_after=_from_cents(r["balance_after_cents"]),
                reference=r["reference"],
                created_at=r["created_at"],
            )
            for r in rows
        ]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Admin log & KV
# ---------------------------------------------------------------------------


@_store_op
def log_admin_action(
    admin_id: str,
    action: str,
    round_id: str | None = None,
    details: dict | None = None,
    db_path: Path | str | None = None,
) -> int:
    """Append an admin audit row. Returns its row id."""
    now = _iso(_now())
    conn = _open(db_path)
    try:
        cur = conn.execute(
            """INSERT INTO admin_logs (admin_id, action, round_id, details_json, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (admin_id, action, round_id, json.dumps(details or {}), now),
        )
        conn.commit()
        return cur.lastrowid  # type: ignore[return-value]
    finally:
        conn.close()


@_store_op
def get_admin_logs(limit: int = 50, db_path: Path | str | None = None) -> list[AdminLogEntry]:
    conn = _open(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM admin_logs ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [
            AdminLogEntry(
                id=r["id"],
                admin_id=r["admin_id"],
                action=r["action"],
                round_id=r["round_id"],
                details=json.loads(r["details_json"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]
    finally:
        conn.close()


@_store_op
def kv_set(k: str, v: str, db_path: Path | str | None = None) -> None:
    conn = _open(db_path)
    try:
        conn.execute(
            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
            (k, v),
        )
        conn.commit()
    finally:
        conn.close()


@_store_op
def kv_get(k: str, db_path: Path | str | None = None) -> str | None:
    conn = _open(db_path)
    try:
        row = conn.execute("SELECT v FROM kv WHERE k = ?", (k,)).fetchone()
        return row[0] if row else None
    finally:
        conn.close()
