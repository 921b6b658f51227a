from __future__ import annotations

"""Administrative surface consumed by the engine.

- set_reward_rate: owner-only, always syncs at the old rate first
- fund_rewards: anyone may move reward funding into custody
- recover_foreign_token: owner-only, never releases the staked asset
"""

from typing import Any, Dict, Protocol

from lockstake.runtime import metrics
from lockstake.runtime.engine import StakingEngine
from lockstake.runtime.errors import Forbidden, InvalidInput
from lockstake.runtime.event_log import EventLogger

Json = Dict[str, Any]

log = EventLogger("admin")


class ForeignTokenCustodian(Protocol):
    asset_symbol: str

    def custody_balance(self, token: str) -> int: ...

    def receive(self, sender: str, amount: int, *, token: str) -> None: ...

    def release(self, recipient: str, amount: int, *, token: str) -> int: ...


def _require_owner(engine: StakingEngine, caller: str) -> None:
    owner = str(engine.owner or "").strip()
    if not owner or str(caller or "").strip() != owner:
        raise Forbidden("forbidden", "owner_only", {"caller": caller})


def set_reward_rate(engine: StakingEngine, caller: str, rate: int) -> Json:
    _require_owner(engine, caller)
    if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
        raise InvalidInput("invalid_input", "reward_rate_must_be_non_negative_int", {"rate": rate})

    with engine.transaction() as txn:
        # Accrue everything up to now at the old rate before switching.
        engine.sync_in(txn)
        old = int(txn.pool.reward_rate_per_tick)
        txn.save(txn.pool, "reward_rate_per_tick")
        txn.pool.reward_rate_per_tick = int(rate)

    metrics.inc(metrics.OPERATIONS, op="set_reward_rate")
    log.info("reward_rate_set", old=old, new=int(rate), tick=int(engine.pool.last_sync_tick))
    return {"applied": "REWARD_RATE_SET", "old": old, "new": int(rate)}


def fund_rewards(engine: StakingEngine, funder: str, amount: int) -> Json:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInput("invalid_input", "amount_must_be_positive", {"amount": amount})
    who = str(funder or "").strip()

    # Under the engine lock so no sync observes a half-applied transfer.
    with engine.transaction() as txn:
        engine.custodian.transfer_in(who, amount)
        txn.on_rollback(lambda: engine.custodian.transfer_out(who, amount))

    metrics.inc(metrics.OPERATIONS, op="fund_rewards")
    metrics.inc(metrics.REWARDS_FUNDED, amount)
    log.info("rewards_funded", funder=who, amount=int(amount))
    return {"applied": "REWARDS_FUND", "funder": who, "amount": int(amount)}


def recover_foreign_token(engine: StakingEngine, caller: str, token: str, to: str, amount: int) -> Json:
    _require_owner(engine, caller)
    custodian: ForeignTokenCustodian = engine.custodian  # type: ignore[assignment]

    tok = str(token or "").strip()
    if not tok:
        raise InvalidInput("invalid_input", "missing_token", {})
    if tok == str(custodian.asset_symbol):
        raise Forbidden("forbidden", "cannot_recover_staked_asset", {"token": tok})
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInput("invalid_input", "amount_must_be_positive", {"amount": amount})
    recipient = str(to or "").strip()
    if not recipient:
        raise InvalidInput("invalid_input", "missing_recipient", {})

    held = int(custodian.custody_balance(tok))
    if held < amount:
        raise InvalidInput("invalid_input", "foreign_balance_too_low", {"token": tok, "held": held, "amount": amount})

    with engine.transaction() as txn:
        paid = custodian.release(recipient, amount, token=tok)
        if paid > 0:
            txn.on_rollback(lambda: custodian.receive(recipient, paid, token=tok))

    metrics.inc(metrics.OPERATIONS, op="recover_foreign_token")
    log.info("foreign_token_recovered", token=tok, to=recipient, amount=int(paid))
    return {"applied": "FOREIGN_TOKEN_RECOVER", "token": tok, "to": recipient, "amount": int(paid)}


__all__ = ["set_reward_rate", "fund_rewards", "recover_foreign_token"]
