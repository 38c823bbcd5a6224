"""Database schema DDL and migration helpers.

Schema definitions and column migrations only. Money columns are integer
cents; timestamps are ISO-8601 UTC strings.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "data" / "colorwager.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    id                    TEXT PRIMARY KEY,
    role                  TEXT NOT NULL DEFAULT 'user',
    balance_cents         INTEGER NOT NULL DEFAULT 0 CHECK (balance_cents >= 0),
    initial_balance_cents INTEGER NOT NULL DEFAULT 0,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS rounds (
    id                   TEXT PRIMARY KEY,
    sequence_number      INTEGER NOT NULL UNIQUE,
    mode                 TEXT NOT NULL,
    window_start         TEXT NOT NULL,
    window_end           TEXT NOT NULL,
    status               TEXT NOT NULL DEFAULT 'active'
                         CHECK (status IN ('active', 'locked', 'completed')),
    control              TEXT NOT NULL DEFAULT 'automatic'
                         CHECK (control IN ('automatic', 'manual')),
    open_slot            INTEGER DEFAULT 1 UNIQUE,
    result_color         TEXT,
    result_number        INTEGER,
    admin_result_color   TEXT,
    admin_result_number  INTEGER,
    admin_result_locked  INTEGER NOT NULL DEFAULT 0,
    completed_at         TEXT,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    CHECK (window_end > window_start),
    CHECK ((status = 'completed') = (open_slot IS NULL)),
    CHECK ((status = 'completed') = (result_number IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS bets (
    id            TEXT PRIMARY KEY,
    round_id      TEXT NOT NULL REFERENCES rounds(id),
    bettor_id     TEXT NOT NULL REFERENCES accounts(id),
    kind          TEXT NOT NULL CHECK (kind IN ('color', 'number')),
    value         TEXT NOT NULL,
    stake_cents   INTEGER NOT NULL CHECK (stake_cents > 0),
    payout_cents  INTEGER NOT NULL DEFAULT 0,
    outcome       TEXT NOT NULL DEFAULT 'pending'
                  CHECK (outcome IN ('pending', 'won', 'lost')),
    created_at    TEXT NOT NULL,
    settled_at    TEXT
);

CREATE TABLE IF NOT EXISTS ledger (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id            TEXT NOT NULL REFERENCES accounts(id),
    kind                  TEXT NOT NULL,
    amount_cents          INTEGER NOT NULL,
    balance_before_cents  INTEGER NOT NULL,
    balance_after_cents   INTEGER NOT NULL,
    reference             TEXT NOT NULL DEFAULT '',
    created_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS kv (
    k TEXT PRIMARY KEY,
    v TEXT
);
"""

ADMIN_LOGS_SQL = """
CREATE TABLE IF NOT EXISTS admin_logs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    admin_id      TEXT NOT NULL,
    action        TEXT NOT NULL,
    round_id      TEXT,
    details_json  TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL
);
"""

# admin メモ用カラム (既存 DB との後方互換性のため ALTER TABLE で追加)
_ADMIN_NOTE_COLUMNS = [
    ("admin_note", "TEXT"),
]


def _ensure_admin_note_columns(conn: sqlite3.Connection) -> None:
    """Add admin note column to rounds table if it doesn't exist."""
    existing = {row[1] for row in conn.execute("PRAGMA table_info(rounds)").fetchall()}
    for col_name, col_def in _ADMIN_NOTE_COLUMNS:
        if col_name not in existing:
            conn.execute(f"ALTER TABLE rounds ADD COLUMN {col_name} {col_def}")
    conn.commit()


def _ensure_indexes(conn: sqlite3.Connection) -> None:
    """Create performance indexes if they don't exist."""
    indexes = [
        "CREATE INDEX IF NOT EXISTS idx_rounds_status ON rounds(status)",
        "CREATE INDEX IF NOT EXISTS idx_bets_round ON bets(round_id)",
        "CREATE INDEX IF NOT EXISTS idx_bets_bettor ON bets(bettor_id, created_at)",
        "CREATE INDEX IF NOT EXISTS idx_bets_outcome ON bets(outcome)",
        "CREATE INDEX IF NOT EXISTS idx_ledger_account ON ledger(account_id)",
        "CREATE INDEX IF NOT EXISTS idx_admin_logs_created_at ON admin_logs(created_at)",
    ]
    for sql in indexes:
        conn.execute(sql)
    conn.commit()


def _connect(db_path: Path | str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open (or create) the SQLite database and ensure schema exists."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.executescript(ADMIN_LOGS_SQL)
    _ensure_admin_note_columns(conn)
    _ensure_indexes(conn)
    return conn
