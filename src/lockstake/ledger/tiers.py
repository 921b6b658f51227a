# src/lockstake/ledger/tiers.py
from __future__ import annotations

"""Lock tier table.

The only place lock economics are defined. A tier maps a small selector to a
lock duration (seconds) and a weight multiplier (basis points). The engine
receives a LockTierTable instance, so swapping tier economics never touches
accumulator or ledger code.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from lockstake.ledger.constants import BPS_DENOMINATOR, LOCK_TIER_SCHEDULE, SECONDS_PER_DAY
from lockstake.ledger.fixed_point import checked_add, checked_div, checked_mul
from lockstake.runtime.errors import InvalidLockMode


@dataclass(frozen=True)
class LockTier:
    mode: int
    duration_s: int
    multiplier_bps: int

    def weight_for(self, principal: int) -> int:
        return checked_div(checked_mul(principal, self.multiplier_bps), BPS_DENOMINATOR)

    def unlock_time_from(self, now_ts: int) -> int:
        return checked_add(now_ts, self.duration_s)


class LockTierTable:
    def __init__(self, tiers: Iterable[LockTier]) -> None:
        ordered = sorted(tiers, key=lambda t: int(t.mode))
        if not ordered:
            raise ValueError("lock tier table must not be empty")
        for i, t in enumerate(ordered):
            if int(t.mode) != i:
                raise ValueError(f"lock tier modes must be contiguous from 0; got {t.mode} at {i}")
            if int(t.duration_s) <= 0:
                raise ValueError(f"lock tier {t.mode} duration must be > 0")
            if int(t.multiplier_bps) < BPS_DENOMINATOR:
                raise ValueError(f"lock tier {t.mode} multiplier must be >= {BPS_DENOMINATOR} bps")
        self._tiers: Tuple[LockTier, ...] = tuple(ordered)

    def __len__(self) -> int:
        return len(self._tiers)

    @property
    def tiers(self) -> Tuple[LockTier, ...]:
        return self._tiers

    def get(self, mode: int) -> LockTier:
        if isinstance(mode, bool):
            raise InvalidLockMode("invalid_input", "invalid_lock_mode", {"lock_mode": mode})
        try:
            m = int(mode)
        except (TypeError, ValueError):
            raise InvalidLockMode("invalid_input", "invalid_lock_mode", {"lock_mode": mode}) from None
        if m < 0 or m >= len(self._tiers):
            raise InvalidLockMode("invalid_input", "invalid_lock_mode", {"lock_mode": m, "tiers": len(self._tiers)})
        return self._tiers[m]

    def lock_terms(self, mode: int, principal: int, now_ts: int) -> Tuple[int, int]:
        """Return (unlock_time, weight) for staking `principal` at `now_ts`."""
        tier = self.get(mode)
        return tier.unlock_time_from(now_ts), tier.weight_for(principal)

    def to_json(self) -> list:
        return [
            {"mode": t.mode, "duration_s": t.duration_s, "multiplier_bps": t.multiplier_bps}
            for t in self._tiers
        ]


def default_tier_table(schedule: Optional[Iterable[Tuple[int, int]]] = None) -> LockTierTable:
    sched = LOCK_TIER_SCHEDULE if schedule is None else schedule
    return LockTierTable(
        LockTier(mode=i, duration_s=int(days) * SECONDS_PER_DAY, multiplier_bps=int(bps))
        for i, (days, bps) in enumerate(sched)
    )


__all__ = ["LockTier", "LockTierTable", "default_tier_table"]
