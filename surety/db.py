from __future__ import annotations

import json
import logging
import pathlib
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence

from .models import Event

PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
SCHEMA_FILE = str(PACKAGE_DIR / "schema.sql")
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def migrate(db_path: str, schema_path: str = SCHEMA_FILE) -> None:
    """Run pending migrations on the database."""
    logger.info("Running migrations for %s", db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER NOT NULL)"
        )
        cur = conn.execute("SELECT version FROM schema_version")
        row = cur.fetchone()
        current = row[0] if row else 0
        if current < SCHEMA_VERSION:
            logger.info("Applying schema version %s", SCHEMA_VERSION)
            with open(schema_path, "r", encoding="utf-8") as fh:
                conn.executescript(fh.read())
            if row:
                conn.execute(
                    "UPDATE schema_version SET version=?", (SCHEMA_VERSION,)
                )
            else:
                conn.execute(
                    "INSERT INTO schema_version(version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
            conn.commit()


class Transaction:
    """Handle for one (possibly nested) ledger transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.events: List[Event] = []

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        return self.conn.execute(sql, params).fetchone()

    def emit(self, name: str, actor: str, /, **args: Any) -> Event:
        """Append an event; it disappears again if the transaction rolls back."""
        created_at = datetime.now(timezone.utc).isoformat()
        cur = self.conn.execute(
            "INSERT INTO events(name, actor, args, created_at) VALUES (?,?,?,?)",
            (name, actor, json.dumps(args), created_at),
        )
        event = Event(
            seq=int(cur.lastrowid),
            name=name,
            actor=actor,
            args=args,
            created_at=created_at,
        )
        self.events.append(event)
        return event


class Ledger:
    """SQLite-backed ledger with serialized, all-or-nothing transactions.

    Every transaction is a SAVEPOINT on a single autocommit connection, so a
    call made from inside another transaction (for example a payout effect
    that calls back into the coordinator) rolls back on its own without
    taking the outer transaction with it.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(
            db_path, isolation_level=None, check_same_thread=False
        )
        self._lock = threading.RLock()
        self._stack: List[Transaction] = []

    @classmethod
    def open(cls, db_path: str) -> "Ledger":
        """Migrate *db_path* and return a ledger bound to it."""
        migrate(db_path)
        return cls(db_path)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            parent = self._stack[-1] if self._stack else None
            savepoint = f"tx{len(self._stack)}"
            tx = Transaction(self.conn)
            self.conn.execute(f"SAVEPOINT {savepoint}")
            self._stack.append(tx)
            try:
                yield tx
            except BaseException:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            else:
                self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                if parent is not None:
                    parent.events.extend(tx.events)
            finally:
                self._stack.pop()

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def head(self) -> int:
        """Return the sequence number of the latest event (0 when empty)."""
        row = self.fetchone("SELECT MAX(seq) FROM events")
        return int(row[0]) if row and row[0] is not None else 0

    def events_since(self, offset: int = 0, name: Optional[str] = None) -> List[Event]:
        """Return events with ``seq > offset`` in log order."""
        sql = "SELECT seq, name, actor, args, created_at FROM events WHERE seq > ?"
        params: List[Any] = [offset]
        if name:
            sql += " AND name = ?"
            params.append(name)
        sql += " ORDER BY seq"
        return [
            Event(seq=seq, name=ev_name, actor=actor, args=json.loads(args), created_at=ts)
            for seq, ev_name, actor, args, ts in self.fetchall(sql, params)
        ]

    def close(self) -> None:
        self.conn.close()


def get_var(tx: Transaction, name: str, default: int = 0) -> int:
    row = tx.fetchone("SELECT value FROM ledger_vars WHERE name=?", (name,))
    return int(row[0]) if row else default


def set_var(tx: Transaction, name: str, value: int) -> None:
    tx.execute(
        """
        INSERT INTO ledger_vars(name, value) VALUES (?,?)
        ON CONFLICT(name) DO UPDATE SET value=excluded.value
        """,
        (name, value),
    )


def next_nonce(tx: Transaction, name: str = "nonce") -> int:
    """Return the current value of counter *name* and advance it."""
    value = get_var(tx, name)
    set_var(tx, name, value + 1)
    return value


__all__ = [
    "migrate",
    "Ledger",
    "Transaction",
    "get_var",
    "set_var",
    "next_nonce",
]
