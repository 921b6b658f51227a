from __future__ import annotations

"""Staking engine.

Deterministic state transitions for:
- stake (open a weighted, time-locked deposit)
- unstake (close a deposit after unlock, optionally with rewards)
- claim_rewards (settle a deposit's reward without touching principal)
- emergency_withdraw (principal only, never blocked by reward funding)

Every mutating call runs inside a PoolTxn: fields are changed in place after
their old values are journaled, so a raised StakingError unwinds the few
touched fields instead of copying the pool. Within a call the order is
always: sync accumulator, then ledger, then custodian.
"""

import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

from lockstake.ledger.accumulator import SyncOutcome, entitlement, projected_accumulator, sync
from lockstake.ledger.constants import FIXED_POINT_SCALE
from lockstake.ledger.fixed_point import checked_add, checked_sub, saturating_sub, scaled_share
from lockstake.ledger.tiers import LockTierTable, default_tier_table
from lockstake.ledger.types import Deposit, PoolState
from lockstake.runtime import metrics
from lockstake.runtime.clock import ClockSource
from lockstake.runtime.custodian import AssetCustodian
from lockstake.runtime.errors import (
    DivisionByZero,
    EmptyDeposit,
    InsufficientFunding,
    InvalidInput,
    StakingError,
    StillLocked,
)
from lockstake.runtime.event_log import EventLogger
from lockstake.runtime.events import CLAIMED, STAKED, UNSTAKED, StakingEvent
from lockstake.runtime.journal import PoolTxn

Json = Dict[str, Any]

log = EventLogger("engine")

_ACCOUNT_TOTALS = ("total_principal", "total_weight", "total_rewards_claimed", "total_rewards_forfeited")
_DEPOSIT_FIELDS = ("principal", "weight", "unlock_time", "reward_debt")


@dataclass(frozen=True)
class UnstakeReceipt:
    account: str
    deposit_id: int
    principal: int
    reward: int
    paid: int
    with_rewards: bool
    forfeited: int = 0

    def to_json(self) -> Json:
        return {
            "account": self.account,
            "deposit_id": self.deposit_id,
            "principal": self.principal,
            "reward": self.reward,
            "forfeited": self.forfeited,
            "paid": self.paid,
            "with_rewards": self.with_rewards,
        }


@dataclass(frozen=True)
class ClaimReceipt:
    account: str
    deposit_id: int
    reward: int
    paid: int

    def to_json(self) -> Json:
        return {"account": self.account, "deposit_id": self.deposit_id, "reward": self.reward, "paid": self.paid}


def _require_account_id(account: Any) -> str:
    a = account.strip() if isinstance(account, str) else ""
    if not a:
        raise InvalidInput("invalid_input", "missing_account", {"account": account})
    return a


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput("invalid_input", "amount_not_int", {"amount": amount})
    if amount <= 0:
        raise InvalidInput("invalid_input", "amount_must_be_positive", {"amount": amount})
    return int(amount)


class StakingEngine:
    """Orchestrates the accumulator, the deposit ledger and the custodian."""

    def __init__(
        self,
        *,
        custodian: AssetCustodian,
        clock: ClockSource,
        tiers: Optional[LockTierTable] = None,
        pool: Optional[PoolState] = None,
        owner: str = "",
        emergency_sync: bool = True,
        max_events: int = 10_000,
        event_sink: Optional[Callable[[StakingEvent], None]] = None,
    ) -> None:
        self.custodian = custodian
        self.clock = clock
        self.tiers = tiers if tiers is not None else default_tier_table()
        self.pool = pool if pool is not None else PoolState()
        self.owner = str(owner or "")
        self.emergency_sync = bool(emergency_sync)
        self.events: Deque[StakingEvent] = deque(maxlen=max(1, int(max_events)))
        self.event_sink = event_sink
        self.lock = threading.RLock()
        self._txn: Optional[PoolTxn] = None

    # ----------------------------
    # Transaction plumbing
    # ----------------------------

    @contextmanager
    def transaction(self) -> Iterator[PoolTxn]:
        """Yield the journal for the current call; unwind it if the body raises.

        A nested call joins the outermost transaction, so an executor can wrap
        an engine operation together with its persistence step.
        """
        with self.lock:
            if self._txn is not None:
                yield self._txn
                return
            txn = PoolTxn(self.pool)
            self._txn = txn
            try:
                yield txn
            except BaseException:
                txn.rollback()
                raise
            finally:
                self._txn = None
            self.publish_gauges()

    @contextmanager
    def _operation(self, op: str) -> Iterator[PoolTxn]:
        try:
            with self.transaction() as txn:
                yield txn
        except StakingError as e:
            metrics.inc(metrics.REFUSALS, op=op, code=e.code)
            raise
        metrics.inc(metrics.OPERATIONS, op=op)

    def publish_gauges(self) -> None:
        with self.lock:
            p = self.pool
            metrics.publish_pool(
                locked_principal=p.total_locked_principal,
                locked_weight=p.total_locked_weight,
                unclaimed_reward=p.unclaimed_reward,
                last_sync_tick=p.last_sync_tick,
            )
            metrics.set_gauge(metrics.CUSTODY_BALANCE, int(self.custodian.balance()))

    def _emit(self, txn: PoolTxn, kind: str, account: str, amount: int, deposit_id: int) -> None:
        ev = StakingEvent(
            kind=kind,
            account=account,
            amount=int(amount),
            deposit_id=int(deposit_id),
            tick=int(self.clock.current_tick()),
            timestamp=int(self.clock.current_timestamp()),
        )
        self.events.append(ev)
        txn.on_rollback(self.events.pop)
        if self.event_sink is not None:
            self.event_sink(ev)
        log.info(kind.lower(), **ev.to_json())

    def _take_in(self, txn: PoolTxn, sender: str, amount: int) -> None:
        self.custodian.transfer_in(sender, amount)
        txn.on_rollback(lambda: self.custodian.transfer_out(sender, amount))

    def _pay_out(self, txn: PoolTxn, recipient: str, amount: int, *, deposit_id: int) -> int:
        if amount <= 0:
            return 0
        paid = int(self.custodian.transfer_out(recipient, amount))
        if paid > 0:
            txn.on_rollback(lambda: self.custodian.transfer_in(recipient, paid))
        if paid < amount:
            metrics.inc(metrics.PAYOUT_CLAMPED)
            log.warning("payout_clamped", account=recipient, deposit_id=deposit_id, requested=amount, paid=paid)
        return paid

    def sync_in(self, txn: PoolTxn) -> SyncOutcome:
        """Advance the journaled pool to the current tick; InsufficientFunding leaves it unchanged."""
        pool = txn.pool
        tick = int(self.clock.current_tick())
        txn.save(pool, "last_sync_tick", "accumulator", "unclaimed_reward")
        try:
            out = sync(pool, tick=tick, custody_balance=int(self.custodian.balance()))
        except InsufficientFunding as e:
            metrics.inc(metrics.SYNCS, outcome="refused")
            log.warning("sync_refused", tick=tick, details=e.details)
            raise
        metrics.inc(metrics.SYNCS, outcome=out.kind)
        if out.kind == "accrued":
            log.info("sync", tick=out.tick, elapsed=out.elapsed, emitted=out.emitted, accumulator=out.accumulator)
        return out

    def _active_deposit(self, pool: PoolState, account: str, deposit_id: Any) -> Deposit:
        acct = pool.require_account(account)
        dep = acct.deposit_at(deposit_id)
        if not dep.is_active:
            raise EmptyDeposit("empty_deposit", "deposit_closed", {"account": account, "deposit_id": deposit_id})
        return dep

    # ----------------------------
    # Mutating entry points
    # ----------------------------

    def sync(self) -> SyncOutcome:
        with self._operation("sync") as txn:
            return self.sync_in(txn)

    def stake(self, account: str, amount: int, lock_mode: int) -> int:
        """Lock `amount` under `lock_mode` and return the new deposit id."""
        with self._operation("stake") as txn:
            acct_id = _require_account_id(account)
            amt = _require_amount(amount)
            unlock_time, weight = self.tiers.lock_terms(lock_mode, amt, int(self.clock.current_timestamp()))

            pool = txn.pool
            self.sync_in(txn)

            if acct_id not in pool.accounts:
                txn.on_rollback(lambda: pool.accounts.pop(acct_id, None))
            acct = pool.open_account(acct_id)
            dep = Deposit(
                principal=amt,
                weight=weight,
                unlock_time=unlock_time,
                reward_debt=scaled_share(weight, pool.accumulator),
                lock_mode=int(lock_mode),
                created_tick=int(pool.last_sync_tick),
            )
            txn.save(acct, "total_principal", "total_weight")
            txn.save(pool, "total_locked_principal", "total_locked_weight")
            acct.total_principal = checked_add(acct.total_principal, amt)
            acct.total_weight = checked_add(acct.total_weight, weight)
            pool.total_locked_principal = checked_add(pool.total_locked_principal, amt)
            pool.total_locked_weight = checked_add(pool.total_locked_weight, weight)
            deposit_id = acct.append(dep)
            txn.on_rollback(acct.deposits.pop)
            txn.touch(acct_id, deposit_id)

            self._take_in(txn, acct_id, amt)

            self._emit(txn, STAKED, acct_id, amt, deposit_id)
            return deposit_id

    def unstake(self, account: str, deposit_id: int, with_rewards: bool = True) -> UnstakeReceipt:
        with self._operation("unstake") as txn:
            acct_id = _require_account_id(account)
            return self._close_deposit(txn, acct_id, deposit_id, with_rewards=bool(with_rewards), emergency=False)

    def emergency_withdraw(self, account: str, deposit_id: int) -> UnstakeReceipt:
        """Return exactly the principal; the deposit's accrued reward is forfeited."""
        with self._operation("emergency_withdraw") as txn:
            acct_id = _require_account_id(account)
            return self._close_deposit(txn, acct_id, deposit_id, with_rewards=False, emergency=True)

    def _close_deposit(
        self,
        txn: PoolTxn,
        acct_id: str,
        deposit_id: Any,
        *,
        with_rewards: bool,
        emergency: bool,
    ) -> UnstakeReceipt:
        pool = txn.pool
        dep = self._active_deposit(pool, acct_id, deposit_id)
        now_ts = int(self.clock.current_timestamp())
        if now_ts <= int(dep.unlock_time):
            raise StillLocked(
                "still_locked",
                "lock_not_expired",
                {"account": acct_id, "deposit_id": int(deposit_id), "unlock_time": dep.unlock_time, "now": now_ts},
            )

        if with_rewards:
            self.sync_in(txn)
        elif emergency and self.emergency_sync:
            try:
                self.sync_in(txn)
            except InsufficientFunding:
                # Principal must stay withdrawable; settle against the last synced accumulator.
                log.warning("emergency_sync_skipped", account=acct_id, deposit_id=int(deposit_id))

        acct = pool.require_account(acct_id)
        idx = int(deposit_id)
        principal = int(dep.principal)
        reward = entitlement(dep, pool.accumulator)

        txn.save(acct, *_ACCOUNT_TOTALS)
        txn.save(pool, "total_locked_principal", "total_locked_weight", "unclaimed_reward")
        txn.save(dep, *_DEPOSIT_FIELDS)
        txn.touch(acct_id, idx)

        acct.total_principal = checked_sub(acct.total_principal, principal)
        acct.total_weight = checked_sub(acct.total_weight, dep.weight)
        pool.total_locked_principal = checked_sub(pool.total_locked_principal, principal)
        pool.total_locked_weight = checked_sub(pool.total_locked_weight, dep.weight)
        # The reward liability is extinguished whether it is paid or forfeited.
        pool.unclaimed_reward = saturating_sub(pool.unclaimed_reward, reward)
        if with_rewards:
            acct.total_rewards_claimed = checked_add(acct.total_rewards_claimed, reward)
        else:
            acct.total_rewards_forfeited = checked_add(acct.total_rewards_forfeited, reward)
        dep.tombstone()

        payout = principal + reward if with_rewards else principal
        paid = self._pay_out(txn, acct_id, payout, deposit_id=idx)
        if with_rewards:
            metrics.inc(metrics.REWARDS_PAID, max(0, paid - principal))
        elif reward:
            metrics.inc(metrics.REWARDS_FORFEITED, reward)

        self._emit(txn, UNSTAKED, acct_id, principal, idx)
        if with_rewards:
            self._emit(txn, CLAIMED, acct_id, reward, idx)
        return UnstakeReceipt(
            account=acct_id,
            deposit_id=idx,
            principal=principal,
            reward=reward if with_rewards else 0,
            paid=int(paid),
            with_rewards=with_rewards,
            forfeited=0 if with_rewards else reward,
        )

    def claim_rewards(self, account: str, deposit_id: int) -> ClaimReceipt:
        with self._operation("claim") as txn:
            acct_id = _require_account_id(account)
            pool = txn.pool
            dep = self._active_deposit(pool, acct_id, deposit_id)
            self.sync_in(txn)

            acct = pool.require_account(acct_id)
            idx = int(deposit_id)
            reward = entitlement(dep, pool.accumulator)

            txn.save(dep, "reward_debt")
            txn.save(pool, "unclaimed_reward")
            txn.save(acct, "total_rewards_claimed")
            txn.touch(acct_id, idx)
            dep.reward_debt = checked_add(dep.reward_debt, reward)
            pool.unclaimed_reward = saturating_sub(pool.unclaimed_reward, reward)
            acct.total_rewards_claimed = checked_add(acct.total_rewards_claimed, reward)

            paid = self._pay_out(txn, acct_id, reward, deposit_id=idx)
            metrics.inc(metrics.REWARDS_PAID, paid)

            self._emit(txn, CLAIMED, acct_id, reward, idx)
            return ClaimReceipt(account=acct_id, deposit_id=idx, reward=reward, paid=int(paid))

    # ----------------------------
    # Read-only queries
    # ----------------------------

    def pending_reward(self, account: str, deposit_id: int) -> int:
        """Reward claimable now if a sync ran at the current tick (nothing is committed)."""
        acct_id = _require_account_id(account)
        with self.lock:
            pool = self.pool
            dep = self._active_deposit(pool, acct_id, deposit_id)
            if int(pool.total_locked_weight) == 0:
                raise DivisionByZero(
                    "division_by_zero",
                    "pool_weight_zero_with_active_deposit",
                    {"account": acct_id, "deposit_id": int(deposit_id)},
                )
            acc = projected_accumulator(
                pool,
                tick=int(self.clock.current_tick()),
                custody_balance=int(self.custodian.balance()),
            )
            return entitlement(dep, acc)

    def balance_of(self, account: str) -> int:
        with self.lock:
            acct = self.pool.account(str(account))
            return int(acct.total_principal) if acct is not None else 0

    def weight_of(self, account: str) -> int:
        with self.lock:
            acct = self.pool.account(str(account))
            return int(acct.total_weight) if acct is not None else 0

    def deposit_count(self, account: str) -> int:
        with self.lock:
            acct = self.pool.account(str(account))
            return len(acct.deposits) if acct is not None else 0

    def deposit_of(self, account: str, deposit_id: int) -> Deposit:
        with self.lock:
            acct = self.pool.require_account(str(account))
            return replace(acct.deposit_at(deposit_id))

    def account_snapshot(self, account: str) -> Json:
        with self.lock:
            acct = self.pool.account(str(account))
            if acct is None:
                return {
                    "account": str(account),
                    "total_principal": 0,
                    "total_weight": 0,
                    "total_rewards_claimed": 0,
                    "total_rewards_forfeited": 0,
                    "deposit_count": 0,
                }
            return {
                "account": str(account),
                "total_principal": int(acct.total_principal),
                "total_weight": int(acct.total_weight),
                "total_rewards_claimed": int(acct.total_rewards_claimed),
                "total_rewards_forfeited": int(acct.total_rewards_forfeited),
                "deposit_count": len(acct.deposits),
            }

    def pool_snapshot(self) -> Json:
        with self.lock:
            p = self.pool
            return {
                "last_sync_tick": int(p.last_sync_tick),
                "accumulator": int(p.accumulator),
                "fixed_point_scale": FIXED_POINT_SCALE,
                "total_locked_principal": int(p.total_locked_principal),
                "total_locked_weight": int(p.total_locked_weight),
                "reward_rate_per_tick": int(p.reward_rate_per_tick),
                "unclaimed_reward": int(p.unclaimed_reward),
                "custody_balance": int(self.custodian.balance()),
                "asset_symbol": str(getattr(self.custodian, "asset_symbol", "")),
                "tick": int(self.clock.current_tick()),
                "timestamp": int(self.clock.current_timestamp()),
                "lock_tiers": self.tiers.to_json(),
            }

    def recent_events(self, limit: int = 100) -> List[Json]:
        with self.lock:
            evs = list(self.events)
        n = max(0, int(limit))
        return [e.to_json() for e in evs[-n:]] if n else []


__all__ = ["StakingEngine", "UnstakeReceipt", "ClaimReceipt"]
