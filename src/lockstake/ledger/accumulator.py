# src/lockstake/ledger/accumulator.py
from __future__ import annotations

"""Reward accumulator synchronization.

The accumulator is the cumulative reward per unit of weight, scaled by
FIXED_POINT_SCALE. A deposit's entitlement at any moment is

    weight * accumulator / SCALE - reward_debt

so no per-depositor iteration ever happens on emission.

sync() MUST complete before any change to total_locked_weight,
total_locked_principal or a deposit's reward_debt. Reward accrued over an
unsynced interval is otherwise attributed to the post-mutation weight.
"""

from dataclasses import dataclass

from lockstake.ledger.constants import FIXED_POINT_SCALE
from lockstake.ledger.fixed_point import (
    checked_add,
    checked_div,
    checked_mul,
    checked_sub,
    saturating_sub,
    scaled_share,
)
from lockstake.ledger.types import Deposit, PoolState
from lockstake.runtime.errors import InsufficientFunding


@dataclass(frozen=True)
class SyncOutcome:
    tick: int
    elapsed: int
    emitted: int
    accumulator: int
    kind: str  # "noop" | "no_weight" | "accrued"

    @property
    def advanced(self) -> bool:
        return self.kind != "noop"


def available_funding(pool: PoolState, custody_balance: int) -> int:
    """Custody holdings not already owed as principal or unclaimed reward."""
    committed = int(pool.total_locked_principal) + int(pool.unclaimed_reward)
    return saturating_sub(custody_balance, committed)


def project(pool: PoolState, *, tick: int, custody_balance: int, scale: int = FIXED_POINT_SCALE) -> SyncOutcome:
    """Compute what sync() would do at `tick` without touching `pool`.

    Raises InsufficientFunding if the emission is not backed by custody.
    """
    t = int(tick)
    last = int(pool.last_sync_tick)
    if t <= last:
        return SyncOutcome(tick=last, elapsed=0, emitted=0, accumulator=int(pool.accumulator), kind="noop")

    elapsed = t - last
    if int(pool.total_locked_weight) == 0:
        return SyncOutcome(tick=t, elapsed=elapsed, emitted=0, accumulator=int(pool.accumulator), kind="no_weight")

    emitted = checked_mul(elapsed, pool.reward_rate_per_tick)
    avail = available_funding(pool, custody_balance)
    if avail < emitted:
        raise InsufficientFunding(
            "insufficient_funding",
            "reward_emission_not_backed",
            {
                "tick": t,
                "last_sync_tick": last,
                "emitted": int(emitted),
                "available": int(avail),
                "custody_balance": int(custody_balance),
            },
        )

    delta = checked_div(checked_mul(emitted, scale), pool.total_locked_weight)
    return SyncOutcome(
        tick=t,
        elapsed=elapsed,
        emitted=int(emitted),
        accumulator=checked_add(pool.accumulator, delta),
        kind="accrued",
    )


def sync(pool: PoolState, *, tick: int, custody_balance: int, scale: int = FIXED_POINT_SCALE) -> SyncOutcome:
    """Advance the accumulator to `tick`. On InsufficientFunding nothing changes."""
    out = project(pool, tick=tick, custody_balance=custody_balance, scale=scale)
    if out.kind == "noop":
        return out
    if out.kind == "accrued":
        pool.unclaimed_reward = checked_add(pool.unclaimed_reward, out.emitted)
        pool.accumulator = out.accumulator
    pool.last_sync_tick = out.tick
    return out


def projected_accumulator(
    pool: PoolState, *, tick: int, custody_balance: int, scale: int = FIXED_POINT_SCALE
) -> int:
    """Accumulator a sync at `tick` would leave behind.

    An unbacked emission would be refused by sync(), so the projection keeps
    the last synced value in that case.
    """
    try:
        return project(pool, tick=tick, custody_balance=custody_balance, scale=scale).accumulator
    except InsufficientFunding:
        return int(pool.accumulator)


def entitlement(dep: Deposit, accumulator: int, *, scale: int = FIXED_POINT_SCALE) -> int:
    """Reward owed to `dep` against `accumulator`, net of its reward debt."""
    return checked_sub(scaled_share(dep.weight, accumulator, scale=scale), dep.reward_debt)


__all__ = [
    "SyncOutcome",
    "available_funding",
    "project",
    "sync",
    "projected_accumulator",
    "entitlement",
]
