# src/annuity/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ContextManager, Dict, Iterator, List, Optional

from annuity.ledger.constants import MAX_UINT256
from annuity.ledger.token import TokenError, require_amount, require_account_id

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Do not coerce unknown types (no default=str): non-JSON values leaking into
    persisted state must fail fast.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the annuity node.

    Design goals:
      - single durable DB file for ledger snapshot, event log and token ledger
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time, so write_tx() retries
    BEGIN IMMEDIATE with bounded backoff.

    While a write transaction is open, nested write_tx() and connection()
    calls on the same thread join it: they see its uncommitted rows and the
    outermost block decides COMMIT or ROLLBACK.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)
        self._local = threading.local()

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous: FULL in prod, NORMAL otherwise.

        Override with ANNUITY_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("ANNUITY_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("ANNUITY_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("ANNUITY_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("ANNUITY_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("ANNUITY_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  account TEXT NOT NULL,
                  event TEXT NOT NULL,
                  ts INTEGER NOT NULL,
                  event_json TEXT NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_account ON events(account);")

            # Token amounts can exceed 64 bits; stored as decimal TEXT.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS token_balances (
                  account TEXT PRIMARY KEY,
                  balance TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS token_allowances (
                  owner TEXT NOT NULL,
                  spender TEXT NOT NULL,
                  amount TEXT NOT NULL,
                  PRIMARY KEY (owner, spender)
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    def _open_tx(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "con", None)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        open_con = self._open_tx()
        if open_con is not None:
            yield open_con
            return
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        open_con = self._open_tx()
        if open_con is not None:
            yield open_con
            return

        deadline_ms = max(250, _env_int("ANNUITY_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("ANNUITY_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("ANNUITY_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            self._local.con = con
            try:
                yield con
                con.execute("COMMIT;")
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise
            finally:
                self._local.con = None


class SqliteLedgerStore:
    """Ledger snapshot store; the authoritative snapshot is a single row."""

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    def write(self, st: Json, *, events: Optional[List[Json]] = None) -> None:
        """Overwrite the snapshot and append `events` in one transaction."""
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        payload = _canon_json(st)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, state_json, updated_ts_ms)
                VALUES(1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (payload, _now_ms()),
            )
            for ev in events or []:
                con.execute(
                    "INSERT INTO events(account, event, ts, event_json) VALUES(?, ?, ?, ?);",
                    (str(ev.get("account") or ""), str(ev.get("event") or ""), int(ev.get("ts") or 0), _canon_json(ev)),
                )

    def read_events(self, *, account: Optional[str] = None, limit: int = 100) -> List[Json]:
        lim = max(1, min(int(limit), 1000))
        with self._db.connection() as con:
            if account:
                rows = con.execute(
                    "SELECT seq, event_json FROM events WHERE account=? ORDER BY seq DESC LIMIT ?;",
                    (str(account), lim),
                ).fetchall()
            else:
                rows = con.execute("SELECT seq, event_json FROM events ORDER BY seq DESC LIMIT ?;", (lim,)).fetchall()
        out: List[Json] = []
        for r in reversed(rows):
            ev = json.loads(str(r["event_json"]))
            ev["seq"] = int(r["seq"])
            out.append(ev)
        return out


class SqliteTokenLedger:
    """Token ledger persisted in the node DB.

    Same contract as InMemoryTokenLedger: validate first, then mutate inside
    one write transaction; only `owner` may mint.
    """

    def __init__(self, *, db: SqliteDB, owner: str) -> None:
        self._db = db
        self._db.init_schema()
        self.owner = require_account_id(owner, "owner")

    @staticmethod
    def _get_balance(con: sqlite3.Connection, account_id: str) -> int:
        row = con.execute("SELECT balance FROM token_balances WHERE account=?;", (account_id,)).fetchone()
        return int(str(row["balance"])) if row is not None else 0

    @staticmethod
    def _set_balance(con: sqlite3.Connection, account_id: str, amount: int) -> None:
        con.execute(
            """
            INSERT INTO token_balances(account, balance) VALUES(?, ?)
            ON CONFLICT(account) DO UPDATE SET balance=excluded.balance;
            """,
            (account_id, str(int(amount))),
        )

    @staticmethod
    def _get_total(con: sqlite3.Connection) -> int:
        row = con.execute("SELECT value FROM meta WHERE key='token_total_supply';").fetchone()
        return int(str(row["value"])) if row is not None else 0

    def transaction(self) -> ContextManager[sqlite3.Connection]:
        return self._db.write_tx()

    def total_supply(self) -> int:
        with self._db.connection() as con:
            return self._get_total(con)

    def balance_of(self, account_id: str) -> int:
        with self._db.connection() as con:
            return self._get_balance(con, str(account_id))

    def allowance(self, owner: str, spender: str) -> int:
        with self._db.connection() as con:
            row = con.execute(
                "SELECT amount FROM token_allowances WHERE owner=? AND spender=?;",
                (str(owner), str(spender)),
            ).fetchone()
            return int(str(row["amount"])) if row is not None else 0

    def transfer(self, src: str, dst: str, amount: int) -> None:
        src = require_account_id(src, "src")
        dst = require_account_id(dst, "dst")
        amt = require_amount(amount)
        with self._db.write_tx() as con:
            have = self._get_balance(con, src)
            if have < amt:
                raise TokenError("insufficient_funds", "transfer_exceeds_balance", {"account": src, "have": have, "need": amt})
            self._set_balance(con, src, have - amt)
            self._set_balance(con, dst, self._get_balance(con, dst) + amt)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        owner = require_account_id(owner, "owner")
        spender = require_account_id(spender, "spender")
        amt = require_amount(amount)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO token_allowances(owner, spender, amount) VALUES(?, ?, ?)
                ON CONFLICT(owner, spender) DO UPDATE SET amount=excluded.amount;
                """,
                (owner, spender, str(amt)),
            )

    def mint(self, caller: str, to: str, amount: int) -> None:
        if str(caller) != self.owner:
            raise TokenError("forbidden", "mint_owner_only", {"caller": str(caller), "owner": self.owner})
        to = require_account_id(to, "to")
        amt = require_amount(amount)
        with self._db.write_tx() as con:
            total = self._get_total(con)
            if total + amt > MAX_UINT256:
                raise TokenError("overflow", "total_supply_overflow")
            con.execute(
                """
                INSERT INTO meta(key, value) VALUES('token_total_supply', ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value;
                """,
                (str(total + amt),),
            )
            self._set_balance(con, to, self._get_balance(con, to) + amt)
