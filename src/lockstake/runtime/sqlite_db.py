# src/lockstake/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted snapshots.

    Unknown types must fail here rather than be silently stringified.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the staking pool.

    Design goals:
      - single durable DB file for the pool snapshot + event journal
      - cross-thread safe by never sharing connections
      - bounded retry when another writer holds the lock
    """

    SCHEMA_VERSION = 2

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with LOCKSTAKE_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("LOCKSTAKE_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("LOCKSTAKE_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("LOCKSTAKE_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("LOCKSTAKE_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("LOCKSTAKE_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS pool_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  pool_id TEXT NOT NULL,
                  last_sync_tick INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  kind TEXT NOT NULL,
                  account TEXT NOT NULL,
                  event_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                  account TEXT PRIMARY KEY,
                  totals_json TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS deposits (
                  account TEXT NOT NULL REFERENCES accounts(account),
                  deposit_id INTEGER NOT NULL,
                  dep_json TEXT NOT NULL,
                  PRIMARY KEY (account, deposit_id)
                );
                """
            )

            # Amounts are uint256 and can exceed SQLite INTEGER, so they are stored as decimal text.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS balances (
                  scope TEXT NOT NULL,
                  holder TEXT NOT NULL,
                  token TEXT NOT NULL,
                  amount TEXT NOT NULL,
                  PRIMARY KEY (scope, holder, token)
                );
                """
            )

            con.execute("CREATE INDEX IF NOT EXISTS idx_events_account ON events(account);")

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
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ms = max(250, _env_int("LOCKSTAKE_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("LOCKSTAKE_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("LOCKSTAKE_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

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
            except Exception:
                con.execute("ROLLBACK;")
                raise


BalanceRow = Tuple[str, str, str, int]  # (scope, holder, token, amount)
DepositRow = Tuple[str, int, Json]  # (account, deposit_id, deposit)


class SqlitePoolStore:
    """Pool store persisted in SQLite, one row per entity.

    - read(): rebuild the snapshot dict from the rows
    - write(snapshot, events): replace everything (genesis, imports)
    - write_changes(...): upsert only the rows one operation touched

    The pool-wide fields, asset symbol and clock live in the single
    pool_state row; accounts, deposits and balances have their own tables, so
    the cost of a commit does not grow with the number of deposits.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM pool_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT pool_id, state_json FROM pool_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite pool_state is missing")
            header = json.loads(str(row["state_json"]))
            if not isinstance(header, dict):
                raise ValueError("pool_state is not a JSON object")

            accounts: Dict[str, Json] = {}
            for r in con.execute("SELECT account, totals_json FROM accounts ORDER BY account;"):
                totals = json.loads(str(r["totals_json"]))
                totals["deposits"] = []
                accounts[str(r["account"])] = totals
            for r in con.execute("SELECT account, deposit_id, dep_json FROM deposits ORDER BY account, deposit_id;"):
                aid = str(r["account"])
                deps = accounts[aid]["deposits"]
                if int(r["deposit_id"]) != len(deps):
                    raise ValueError(f"deposit arena for {aid!r} has a gap at index {len(deps)}")
                deps.append(json.loads(str(r["dep_json"])))

            custody: Dict[str, int] = {}
            wallets: Dict[str, Dict[str, int]] = {}
            for r in con.execute("SELECT scope, holder, token, amount FROM balances ORDER BY scope, holder, token;"):
                amt = int(str(r["amount"]))
                if str(r["scope"]) == "custody":
                    custody[str(r["token"])] = amt
                else:
                    wallets.setdefault(str(r["holder"]), {})[str(r["token"])] = amt

        pool = dict(header.get("pool") or {})
        pool["accounts"] = accounts
        return {
            "pool_id": str(row["pool_id"]),
            "pool": pool,
            "custodian": {"asset_symbol": str(header.get("asset_symbol") or ""), "custody": custody, "wallets": wallets},
            "clock": header.get("clock") or {},
        }

    def write(self, snapshot: Json, events: Optional[Sequence[Json]] = None) -> None:
        if not isinstance(snapshot, dict):
            raise ValueError("pool write expects dict")
        pool = dict(snapshot.get("pool") or {})
        accounts = pool.pop("accounts", None) or {}
        custodian = snapshot.get("custodian") or {}
        header = {
            "pool": pool,
            "asset_symbol": str(custodian.get("asset_symbol") or ""),
            "clock": snapshot.get("clock") or {},
        }
        totals = {aid: {k: v for k, v in a.items() if k != "deposits"} for aid, a in accounts.items()}
        deposits = [(aid, i, d) for aid, a in accounts.items() for i, d in enumerate(a.get("deposits") or [])]
        balances: List[BalanceRow] = [("custody", "", tok, amt) for tok, amt in (custodian.get("custody") or {}).items()]
        for holder, w in (custodian.get("wallets") or {}).items():
            balances.extend(("wallet", holder, tok, amt) for tok, amt in w.items())

        with self._db.write_tx() as con:
            con.execute("DELETE FROM deposits;")
            con.execute("DELETE FROM accounts;")
            con.execute("DELETE FROM balances;")
            self._put_rows(
                con,
                pool_id=str(snapshot.get("pool_id") or "").strip(),
                header=header,
                accounts=totals,
                deposits=deposits,
                balances=balances,
                events=events,
            )

    def write_changes(
        self,
        *,
        pool_id: str,
        header: Json,
        accounts: Mapping[str, Json],
        deposits: Sequence[DepositRow],
        balances: Sequence[BalanceRow],
        events: Optional[Sequence[Json]] = None,
    ) -> None:
        """Upsert the header plus the given rows in one write transaction."""
        with self._db.write_tx() as con:
            self._put_rows(
                con,
                pool_id=str(pool_id),
                header=header,
                accounts=accounts,
                deposits=deposits,
                balances=balances,
                events=events,
            )

    @staticmethod
    def _put_rows(
        con: sqlite3.Connection,
        *,
        pool_id: str,
        header: Json,
        accounts: Mapping[str, Json],
        deposits: Sequence[DepositRow],
        balances: Sequence[BalanceRow],
        events: Optional[Sequence[Json]],
    ) -> None:
        now = _now_ms()
        last_tick = int((header.get("pool") or {}).get("last_sync_tick", 0))
        con.execute(
            """
            INSERT INTO pool_state(id, pool_id, last_sync_tick, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              pool_id=excluded.pool_id,
              last_sync_tick=excluded.last_sync_tick,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (pool_id, last_tick, _canon_json(header), now),
        )
        con.executemany(
            """
            INSERT INTO accounts(account, totals_json) VALUES(?, ?)
            ON CONFLICT(account) DO UPDATE SET totals_json=excluded.totals_json;
            """,
            [(str(aid), _canon_json(t)) for aid, t in accounts.items()],
        )
        con.executemany(
            """
            INSERT INTO deposits(account, deposit_id, dep_json) VALUES(?, ?, ?)
            ON CONFLICT(account, deposit_id) DO UPDATE SET dep_json=excluded.dep_json;
            """,
            [(str(aid), int(i), _canon_json(d)) for aid, i, d in deposits],
        )
        con.executemany(
            """
            INSERT INTO balances(scope, holder, token, amount) VALUES(?, ?, ?, ?)
            ON CONFLICT(scope, holder, token) DO UPDATE SET amount=excluded.amount;
            """,
            [(str(s), str(h), str(t), str(int(a))) for s, h, t, a in balances],
        )
        for ev in events or []:
            con.execute(
                "INSERT INTO events(kind, account, event_json, created_ts_ms) VALUES(?,?,?,?);",
                (str(ev.get("kind", "")), str(ev.get("account", "")), _canon_json(ev), now),
            )

    def read_events(self, *, account: Optional[str] = None, limit: int = 100) -> List[Json]:
        n = max(1, int(limit))
        with self._db.connection() as con:
            if account:
                rows = con.execute(
                    "SELECT event_json FROM events WHERE account=? ORDER BY seq DESC LIMIT ?;", (str(account), n)
                ).fetchall()
            else:
                rows = con.execute("SELECT event_json FROM events ORDER BY seq DESC LIMIT ?;", (n,)).fetchall()
        return [json.loads(str(r["event_json"])) for r in reversed(rows)]
