from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from lockstake.ledger.tiers import LockTierTable
from lockstake.ledger.types import PoolState
from lockstake.runtime import admin
from lockstake.runtime.clock import ManualClock, SystemClock
from lockstake.runtime.custodian import InMemoryCustodian
from lockstake.runtime.engine import ClaimReceipt, StakingEngine, UnstakeReceipt
from lockstake.runtime.errors import Forbidden
from lockstake.runtime.event_log import EventLogger
from lockstake.runtime.events import StakingEvent
from lockstake.runtime.journal import PoolTxn
from lockstake.runtime.sqlite_db import SqliteDB, SqlitePoolStore
from lockstake.runtime.staking_config import StakingConfig

Json = Dict[str, Any]
T = TypeVar("T")

log = EventLogger("executor")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class StakingExecutor:
    """Staking engine bound to a SQLite store.

    Every operation runs inside one engine transaction that also covers the
    write of the rows it touched. If persisting fails the transaction unwinds
    the in-memory pool, custodian and clock, so memory never runs ahead of
    disk.
    """

    def __init__(
        self,
        *,
        db_path: str,
        pool_id: str,
        owner: str,
        asset_symbol: str,
        mode: str = "prod",
        clock_kind: str = "system",
        tick_interval_ms: int = 12_000,
        reward_rate_per_tick: int = 0,
        emergency_sync: bool = True,
        tiers: Optional[LockTierTable] = None,
    ) -> None:
        self.pool_id = str(pool_id)
        self.mode = str(mode or "prod").strip().lower()
        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._db = SqliteDB(path=self.db_path)
        self._store = SqlitePoolStore(db=self._db)
        self._pending_events: List[StakingEvent] = []

        if self._store.exists():
            snap = self._store.read()
            st_pool_id = str(snap.get("pool_id") or "").strip()
            if st_pool_id and st_pool_id != self.pool_id:
                raise ExecutorError(
                    f"pool_id mismatch: db={st_pool_id!r} executor={self.pool_id!r}. Refuse to start."
                )
            pool = PoolState.from_dict(snap.get("pool"))
            custodian = InMemoryCustodian.from_dict(snap.get("custodian"))
            if custodian.asset_symbol != str(asset_symbol):
                raise ExecutorError(
                    f"asset mismatch: db={custodian.asset_symbol!r} executor={asset_symbol!r}. Refuse to start."
                )
            clock_snap = snap.get("clock") if isinstance(snap.get("clock"), dict) else {}
            fresh = False
        else:
            pool = PoolState(reward_rate_per_tick=int(reward_rate_per_tick))
            custodian = InMemoryCustodian(asset_symbol=str(asset_symbol))
            clock_snap = {"genesis_ms": _now_ms()}
            fresh = True

        # Fail-closed if the stored totals do not match the stored deposits.
        errs = pool.consistency_errors()
        if errs:
            raise ExecutorError("pool snapshot inconsistent: " + "; ".join(errs))

        self.clock_kind = str(clock_kind or "system").strip().lower()
        self.genesis_ms = int(clock_snap.get("genesis_ms") or _now_ms())
        if self.clock_kind == "manual":
            self.clock: Any = ManualClock(
                tick=int(clock_snap.get("tick") or 0), timestamp=int(clock_snap.get("timestamp") or 0)
            )
        else:
            self.clock = SystemClock(tick_interval_ms=int(tick_interval_ms), genesis_ms=self.genesis_ms)

        self.custodian = custodian
        self.engine = StakingEngine(
            custodian=custodian,
            clock=self.clock,
            tiers=tiers,
            pool=pool,
            owner=str(owner),
            emergency_sync=bool(emergency_sync),
            event_sink=self._pending_events.append,
        )

        if fresh:
            self._store.write(self.snapshot())
        log.info("executor_started", pool_id=self.pool_id, fresh=fresh, clock=self.clock_kind)

    # ----------------------------
    # Snapshot + persistence
    # ----------------------------

    def _clock_json(self) -> Json:
        clock: Json = {"genesis_ms": self.genesis_ms}
        if isinstance(self.clock, ManualClock):
            clock.update(self.clock.snapshot())
        return clock

    def snapshot(self) -> Json:
        with self.engine.lock:
            return {
                "pool_id": self.pool_id,
                "pool": self.engine.pool.to_dict(),
                "custodian": self.custodian.to_dict(),
                "clock": self._clock_json(),
            }

    def _persist(self, txn: PoolTxn) -> None:
        pool = self.engine.pool
        accounts = {aid: pool.accounts[aid].totals_dict() for aid in sorted(txn.dirty_accounts)}
        deposits = [(aid, i, pool.accounts[aid].deposits[i].to_dict()) for aid, i in sorted(txn.dirty_deposits)]
        self._store.write_changes(
            pool_id=self.pool_id,
            header={
                "pool": pool.header_dict(),
                "asset_symbol": self.custodian.asset_symbol,
                "clock": self._clock_json(),
            },
            accounts=accounts,
            deposits=deposits,
            balances=self.custodian.changed_balances(),
            events=[e.to_json() for e in self._pending_events],
        )

    def _run(self, op: str, fn: Callable[[], T]) -> T:
        with self.engine.lock:
            self._pending_events.clear()
            self.custodian.clear_changes()
            try:
                with self.engine.transaction() as txn:
                    result = fn()
                    try:
                        self._persist(txn)
                    except Exception as e:
                        log.warning("persist_failed", op=op, error=type(e).__name__)
                        raise
            finally:
                self._pending_events.clear()
                self.custodian.clear_changes()
            return result

    def read_state(self) -> Json:
        return self.snapshot()

    def read_events(self, *, account: Optional[str] = None, limit: int = 100) -> List[Json]:
        return self._store.read_events(account=account, limit=limit)

    # ----------------------------
    # Staking operations
    # ----------------------------

    def stake(self, account: str, amount: int, lock_mode: int) -> int:
        return self._run("stake", lambda: self.engine.stake(account, amount, lock_mode))

    def unstake(self, account: str, deposit_id: int, with_rewards: bool = True) -> UnstakeReceipt:
        return self._run("unstake", lambda: self.engine.unstake(account, deposit_id, with_rewards))

    def claim_rewards(self, account: str, deposit_id: int) -> ClaimReceipt:
        return self._run("claim", lambda: self.engine.claim_rewards(account, deposit_id))

    def emergency_withdraw(self, account: str, deposit_id: int) -> UnstakeReceipt:
        return self._run("emergency_withdraw", lambda: self.engine.emergency_withdraw(account, deposit_id))

    def sync(self) -> Json:
        out = self._run("sync", self.engine.sync)
        return {"tick": out.tick, "elapsed": out.elapsed, "emitted": out.emitted, "kind": out.kind}

    # ----------------------------
    # Administrative operations
    # ----------------------------

    def set_reward_rate(self, caller: str, rate: int) -> Json:
        return self._run("set_reward_rate", lambda: admin.set_reward_rate(self.engine, caller, rate))

    def fund_rewards(self, funder: str, amount: int) -> Json:
        return self._run("fund_rewards", lambda: admin.fund_rewards(self.engine, funder, amount))

    def recover_foreign_token(self, caller: str, token: str, to: str, amount: int) -> Json:
        return self._run(
            "recover_foreign_token",
            lambda: admin.recover_foreign_token(self.engine, caller, token, to, amount),
        )

    # ----------------------------
    # Dev-only helpers
    # ----------------------------

    def _require_non_prod(self, op: str) -> None:
        if self.mode == "prod":
            raise Forbidden("forbidden", "dev_only", {"op": op})

    def mint(self, holder: str, amount: int, *, token: Optional[str] = None) -> Json:
        self._require_non_prod("mint")

        def _mint() -> Json:
            with self.engine.transaction() as txn:
                self.custodian.mint(holder, amount, token=token)
                txn.on_rollback(lambda: self.custodian.burn(holder, amount, token=token))
            return {"holder": holder, "amount": int(amount), "token": token or self.custodian.asset_symbol}

        return self._run("mint", _mint)

    def _set_clock(self, clock: Any) -> None:
        self.clock = clock
        self.engine.clock = clock

    def advance_clock(self, *, ticks: int = 0, seconds: int = 0) -> Json:
        self._require_non_prod("advance_clock")
        if not isinstance(self.clock, ManualClock):
            raise Forbidden("forbidden", "clock_not_manual", {"clock": self.clock_kind})

        def _advance() -> Json:
            with self.engine.transaction() as txn:
                before = self.clock.snapshot()
                self.clock.advance(ticks=ticks, seconds=seconds)
                # ManualClock refuses to go backwards, so undo swaps in a fresh one.
                txn.on_rollback(lambda: self._set_clock(ManualClock(**before)))
            return self.clock.snapshot()

        return self._run("advance_clock", _advance)

    # ----------------------------
    # Orchestration hooks
    # ----------------------------

    @classmethod
    def from_config(cls, cfg: StakingConfig) -> "StakingExecutor":
        return cls(
            db_path=cfg.db_path,
            pool_id=cfg.pool_id,
            owner=cfg.owner,
            asset_symbol=cfg.asset_symbol,
            mode=cfg.mode,
            clock_kind=cfg.clock,
            tick_interval_ms=cfg.tick_interval_ms,
            reward_rate_per_tick=cfg.reward_rate_per_tick,
            emergency_sync=cfg.emergency_sync,
        )
