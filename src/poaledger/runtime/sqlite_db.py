# src/poaledger/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Unknown types are not coerced: a non-JSON value in a snapshot is a bug and
    must fail here rather than round-trip as a string.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite file holding the chain snapshot and the committed event log.

    Connections are never shared: every read opens its own, every write runs
    inside write_tx(), which retries BEGIN IMMEDIATE on writer-lock contention.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value: FULL in prod, NORMAL otherwise.

        Override with POA_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("POA_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("POA_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()
        connect_timeout_s = float(_env_int("POA_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are explicit
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("POA_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS chain_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  chain_id TEXT NOT NULL,
                  chain_time INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY,
                  address TEXT NOT NULL,
                  kind TEXT NOT NULL,
                  event_json TEXT NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_address ON events(address);")
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_kind ON events(kind);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
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
        """Write transaction with bounded, jittered retry on lock contention."""
        deadline_ts = _now_ms() + max(250, _env_int("POA_SQLITE_WRITE_DEADLINE_MS", 30_000))
        base_sleep = max(0.001, float(_env_int("POA_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("POA_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

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

            try:
                yield con
                con.execute("COMMIT;")
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteChainStore:
    """Chain persistence: one snapshot row plus an append-only event table.

    save() is called by the chain after every committed call, so the snapshot
    and the events it produced land in the same transaction.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM chain_state WHERE id=1;").fetchone() is not None

    def load_snapshot(self) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM chain_state WHERE id=1;").fetchone()
        if row is None:
            return None
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("chain_state is not a JSON object")
        return st

    def load_events(self, *, after_seq: int = -1, limit: Optional[int] = None) -> List[Json]:
        q = "SELECT event_json FROM events WHERE seq > ? ORDER BY seq ASC"
        args: List[Any] = [int(after_seq)]
        if limit is not None:
            q += " LIMIT ?"
            args.append(int(limit))
        with self._db.connection() as con:
            rows = con.execute(q + ";", args).fetchall()
        return [json.loads(str(r["event_json"])) for r in rows]

    def save(self, snapshot: Json, events: Iterable[Json] = ()) -> None:
        if not isinstance(snapshot, dict):
            raise ValueError("chain snapshot must be a dict")
        payload = _canon_json(snapshot)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO chain_state(id, chain_id, chain_time, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  chain_id=excluded.chain_id,
                  chain_time=excluded.chain_time,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (str(snapshot.get("chain_id", "")), int(snapshot.get("now", 0)), payload, _now_ms()),
            )
            for ev in events:
                con.execute(
                    "INSERT INTO events(seq, address, kind, event_json) VALUES(?, ?, ?, ?);",
                    (int(ev["seq"]), str(ev.get("address", "")), str(ev.get("kind", "")), _canon_json(ev)),
                )


__all__ = ["SqliteDB", "SqliteChainStore"]
