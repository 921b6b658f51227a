"""lockstake.ledger.types

Pool object model + JSON interop.

This module defines:
  - Deposit: one locked position (tombstoned in place when closed)
  - AccountLedger: per-account totals + index-stable deposit arena
  - PoolState: the explicitly owned aggregate every engine call mutates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from lockstake.runtime.errors import InvalidInput

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        out = int(v)
    except Exception as e:
        raise ValueError(f"PoolState schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e
    if out < 0:
        raise ValueError(f"PoolState schema error: field '{field}' must be >= 0 (got {out})")
    return out


def _require_dict(v: Any, *, field: str) -> Json:
    if isinstance(v, dict):
        return v
    if v is None:
        return {}
    raise ValueError(f"PoolState schema error: field '{field}' must be dict (got {type(v).__name__})")


@dataclass
class Deposit:
    principal: int
    weight: int
    unlock_time: int
    reward_debt: int
    lock_mode: int = 0
    created_tick: int = 0

    @property
    def is_active(self) -> bool:
        return int(self.principal) > 0

    def tombstone(self) -> None:
        self.principal = 0
        self.weight = 0
        self.unlock_time = 0
        self.reward_debt = 0

    def to_dict(self) -> Json:
        return {
            "principal": int(self.principal),
            "weight": int(self.weight),
            "unlock_time": int(self.unlock_time),
            "reward_debt": int(self.reward_debt),
            "lock_mode": int(self.lock_mode),
            "created_tick": int(self.created_tick),
        }

    @classmethod
    def from_dict(cls, d: Any, *, where: str = "deposit") -> "Deposit":
        d = _require_dict(d, field=where)
        return cls(
            principal=_coerce_int(d.get("principal", 0), field=f"{where}.principal"),
            weight=_coerce_int(d.get("weight", 0), field=f"{where}.weight"),
            unlock_time=_coerce_int(d.get("unlock_time", 0), field=f"{where}.unlock_time"),
            reward_debt=_coerce_int(d.get("reward_debt", 0), field=f"{where}.reward_debt"),
            lock_mode=_coerce_int(d.get("lock_mode", 0), field=f"{where}.lock_mode"),
            created_tick=_coerce_int(d.get("created_tick", 0), field=f"{where}.created_tick"),
        )


@dataclass
class AccountLedger:
    total_principal: int = 0
    total_weight: int = 0
    total_rewards_claimed: int = 0
    total_rewards_forfeited: int = 0
    deposits: List[Deposit] = field(default_factory=list)

    def append(self, dep: Deposit) -> int:
        """Append a deposit and return its stable index."""
        self.deposits.append(dep)
        return len(self.deposits) - 1

    def deposit_at(self, deposit_id: Any) -> Deposit:
        if isinstance(deposit_id, bool):
            raise InvalidInput("invalid_input", "invalid_deposit_id", {"deposit_id": deposit_id})
        try:
            i = int(deposit_id)
        except (TypeError, ValueError):
            raise InvalidInput("invalid_input", "invalid_deposit_id", {"deposit_id": deposit_id}) from None
        if i < 0 or i >= len(self.deposits):
            raise InvalidInput(
                "invalid_input",
                "deposit_index_out_of_range",
                {"deposit_id": i, "deposit_count": len(self.deposits)},
            )
        return self.deposits[i]

    def active(self) -> Iterator[Tuple[int, Deposit]]:
        for i, dep in enumerate(self.deposits):
            if dep.is_active:
                yield i, dep

    def totals_dict(self) -> Json:
        return {
            "total_principal": int(self.total_principal),
            "total_weight": int(self.total_weight),
            "total_rewards_claimed": int(self.total_rewards_claimed),
            "total_rewards_forfeited": int(self.total_rewards_forfeited),
        }

    def to_dict(self) -> Json:
        out = self.totals_dict()
        out["deposits"] = [d.to_dict() for d in self.deposits]
        return out

    @classmethod
    def from_dict(cls, d: Any, *, where: str = "account") -> "AccountLedger":
        d = _require_dict(d, field=where)
        raw_deps = d.get("deposits") or []
        if not isinstance(raw_deps, list):
            raise ValueError(f"PoolState schema error: field '{where}.deposits' must be list")
        return cls(
            total_principal=_coerce_int(d.get("total_principal", 0), field=f"{where}.total_principal"),
            total_weight=_coerce_int(d.get("total_weight", 0), field=f"{where}.total_weight"),
            total_rewards_claimed=_coerce_int(d.get("total_rewards_claimed", 0), field=f"{where}.total_rewards_claimed"),
            total_rewards_forfeited=_coerce_int(
                d.get("total_rewards_forfeited", 0), field=f"{where}.total_rewards_forfeited"
            ),
            deposits=[Deposit.from_dict(x, where=f"{where}.deposits[{i}]") for i, x in enumerate(raw_deps)],
        )


@dataclass
class PoolState:
    """Global pool state plus every account's ledger entry."""

    last_sync_tick: int = 0
    accumulator: int = 0
    total_locked_principal: int = 0
    total_locked_weight: int = 0
    reward_rate_per_tick: int = 0
    unclaimed_reward: int = 0
    accounts: Dict[str, AccountLedger] = field(default_factory=dict)

    def account(self, account_id: str) -> Optional[AccountLedger]:
        return self.accounts.get(account_id)

    def open_account(self, account_id: str) -> AccountLedger:
        """Return the ledger for `account_id`, creating an empty one if needed."""
        acct = self.accounts.get(account_id)
        if acct is None:
            acct = AccountLedger()
            self.accounts[account_id] = acct
        return acct

    def require_account(self, account_id: str) -> AccountLedger:
        acct = self.accounts.get(account_id)
        if acct is None:
            raise InvalidInput("invalid_input", "unknown_account", {"account": account_id})
        return acct

    # ---- invariants ----

    def consistency_errors(self) -> List[str]:
        """Return human-readable invariant violations (empty when consistent)."""
        errs: List[str] = []
        sum_p = 0
        sum_w = 0
        for aid, acct in self.accounts.items():
            ap = 0
            aw = 0
            for i, dep in enumerate(acct.deposits):
                if dep.is_active:
                    ap += int(dep.principal)
                    aw += int(dep.weight)
                elif dep.weight or dep.reward_debt or dep.unlock_time:
                    errs.append(f"account {aid!r} deposit {i} is closed but not zeroed")
            if ap != acct.total_principal:
                errs.append(f"account {aid!r} total_principal={acct.total_principal} != sum={ap}")
            if aw != acct.total_weight:
                errs.append(f"account {aid!r} total_weight={acct.total_weight} != sum={aw}")
            sum_p += ap
            sum_w += aw
        if sum_p != self.total_locked_principal:
            errs.append(f"total_locked_principal={self.total_locked_principal} != sum={sum_p}")
        if sum_w != self.total_locked_weight:
            errs.append(f"total_locked_weight={self.total_locked_weight} != sum={sum_w}")
        return errs

    # ---- JSON interop ----

    def header_dict(self) -> Json:
        """Pool-wide fields only (no accounts)."""
        return {
            "last_sync_tick": int(self.last_sync_tick),
            "accumulator": int(self.accumulator),
            "total_locked_principal": int(self.total_locked_principal),
            "total_locked_weight": int(self.total_locked_weight),
            "reward_rate_per_tick": int(self.reward_rate_per_tick),
            "unclaimed_reward": int(self.unclaimed_reward),
        }

    def to_dict(self) -> Json:
        out = self.header_dict()
        out["accounts"] = {aid: a.to_dict() for aid, a in sorted(self.accounts.items())}
        return out

    @classmethod
    def from_dict(cls, d: Any) -> "PoolState":
        d = _require_dict(d, field="pool")
        accts = _require_dict(d.get("accounts"), field="accounts")
        return cls(
            last_sync_tick=_coerce_int(d.get("last_sync_tick", 0), field="last_sync_tick"),
            accumulator=_coerce_int(d.get("accumulator", 0), field="accumulator"),
            total_locked_principal=_coerce_int(d.get("total_locked_principal", 0), field="total_locked_principal"),
            total_locked_weight=_coerce_int(d.get("total_locked_weight", 0), field="total_locked_weight"),
            reward_rate_per_tick=_coerce_int(d.get("reward_rate_per_tick", 0), field="reward_rate_per_tick"),
            unclaimed_reward=_coerce_int(d.get("unclaimed_reward", 0), field="unclaimed_reward"),
            accounts={str(aid): AccountLedger.from_dict(a, where=f"accounts['{aid}']") for aid, a in accts.items()},
        )


__all__ = ["Deposit", "AccountLedger", "PoolState", "Json"]
