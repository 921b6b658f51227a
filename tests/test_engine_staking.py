from __future__ import annotations

import pytest

from lockstake.ledger.constants import SECONDS_PER_DAY
from lockstake.ledger.types import PoolState
from lockstake.runtime.admin import fund_rewards
from lockstake.runtime.clock import ManualClock
from lockstake.runtime.custodian import InMemoryCustodian
from lockstake.runtime.engine import StakingEngine
from lockstake.runtime.errors import (
    EmptyDeposit,
    InsufficientBalance,
    InsufficientFunding,
    InvalidInput,
    InvalidLockMode,
    StillLocked,
)
from lockstake.runtime.events import CLAIMED, STAKED, UNSTAKED

T0 = 1_000
WEEK = 7 * SECONDS_PER_DAY


def _mk_engine(*, rate: int = 10, funding: int = 1_000_000, wallet: int = 10_000):
    clock = ManualClock(tick=0, timestamp=T0)
    cust = InMemoryCustodian(asset_symbol="STK")
    eng = StakingEngine(
        custodian=cust,
        clock=clock,
        pool=PoolState(reward_rate_per_tick=rate),
        owner="OWNER",
    )
    if funding:
        cust.mint("OWNER", funding)
        fund_rewards(eng, "OWNER", funding)
    for who in ("alice", "bob"):
        cust.mint(who, wallet)
    return eng, cust, clock


def test_stake_records_weighted_deposit_and_pulls_principal() -> None:
    eng, cust, _ = _mk_engine()
    dep_id = eng.stake("alice", 1000, 1)

    assert dep_id == 0
    dep = eng.deposit_of("alice", 0)
    assert dep.principal == 1000
    assert dep.weight == 1100
    assert dep.unlock_time == T0 + 30 * SECONDS_PER_DAY
    assert dep.reward_debt == 0
    assert eng.balance_of("alice") == 1000
    assert eng.weight_of("alice") == 1100
    assert eng.pool.total_locked_weight == 1100
    assert cust.wallet_balance("alice") == 9_000
    assert [e.kind for e in eng.events] == [STAKED]


def test_single_staker_accrues_rate_times_ticks() -> None:
    eng, _, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10)
    assert eng.pending_reward("alice", 0) == 100


def test_late_staker_earns_only_from_entry() -> None:
    eng, _, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10)
    eng.stake("bob", 100, 0)
    clock.advance(ticks=10)

    assert eng.pending_reward("alice", 0) == 150
    assert eng.pending_reward("bob", 0) == 50


def test_weight_multiplier_shares_reward_proportionally() -> None:
    eng, _, clock = _mk_engine(rate=30)
    eng.stake("alice", 100, 0)  # weight 100
    eng.stake("bob", 100, 3)  # weight 200
    clock.advance(ticks=10)
    assert eng.pending_reward("alice", 0) == 100
    assert eng.pending_reward("bob", 0) == 200


def test_claim_pays_and_second_claim_is_zero() -> None:
    eng, cust, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10)

    r1 = eng.claim_rewards("alice", 0)
    assert (r1.reward, r1.paid) == (100, 100)
    assert cust.wallet_balance("alice") == 10_000
    assert eng.pool.unclaimed_reward == 0
    assert eng.account_snapshot("alice")["total_rewards_claimed"] == 100

    r2 = eng.claim_rewards("alice", 0)
    assert r2.reward == 0
    assert eng.pending_reward("alice", 0) == 0
    # Claiming never touches principal.
    assert eng.balance_of("alice") == 100
    assert [e.kind for e in eng.events][-2:] == [CLAIMED, CLAIMED]


def test_unstake_is_refused_until_strictly_after_unlock() -> None:
    eng, cust, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10, seconds=WEEK)
    before = eng.pool.to_dict()

    with pytest.raises(StillLocked) as ei:
        eng.unstake("alice", 0)
    assert ei.value.code == "still_locked"
    assert eng.pool.to_dict() == before

    clock.advance(seconds=1)
    receipt = eng.unstake("alice", 0)
    assert receipt.principal == 100
    assert receipt.reward == 100
    assert receipt.paid == 200
    assert cust.wallet_balance("alice") == 10_100
    assert eng.balance_of("alice") == 0
    assert eng.pool.total_locked_weight == 0
    assert not eng.deposit_of("alice", 0).is_active
    assert [e.kind for e in eng.events][-2:] == [UNSTAKED, CLAIMED]


def test_unstake_without_rewards_forfeits() -> None:
    eng, cust, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10, seconds=WEEK + 1)
    # unstake(with_rewards=False) settles against the last synced accumulator.
    eng.sync()
    assert eng.pool.unclaimed_reward == 100

    receipt = eng.unstake("alice", 0, with_rewards=False)
    assert receipt.paid == 100
    assert receipt.reward == 0
    assert receipt.forfeited == 100
    assert cust.wallet_balance("alice") == 10_000
    snap = eng.account_snapshot("alice")
    assert snap["total_rewards_claimed"] == 0
    assert snap["total_rewards_forfeited"] == 100
    # Forfeited reward is no longer owed to anyone.
    assert eng.pool.unclaimed_reward == 0


def test_unstake_without_rewards_does_not_sync() -> None:
    eng, cust, clock = _mk_engine(rate=10)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10, seconds=WEEK + 1)

    receipt = eng.unstake("alice", 0, with_rewards=False)
    assert receipt.paid == 100
    assert receipt.forfeited == 0
    assert eng.pool.last_sync_tick == 0
    assert eng.pool.unclaimed_reward == 0
    assert cust.wallet_balance("alice") == 10_000


def test_closed_deposit_cannot_be_reused() -> None:
    eng, _, clock = _mk_engine()
    eng.stake("alice", 100, 0)
    clock.advance(seconds=WEEK + 1)
    eng.unstake("alice", 0)

    with pytest.raises(EmptyDeposit):
        eng.unstake("alice", 0)
    with pytest.raises(EmptyDeposit):
        eng.claim_rewards("alice", 0)
    with pytest.raises(EmptyDeposit):
        eng.emergency_withdraw("alice", 0)

    # Ids stay stable after a close.
    assert eng.stake("alice", 50, 0) == 1
    assert eng.deposit_count("alice") == 2


def test_input_validation() -> None:
    eng, _, _ = _mk_engine()
    with pytest.raises(InvalidInput):
        eng.stake("alice", 0, 0)
    with pytest.raises(InvalidInput):
        eng.stake("", 10, 0)
    with pytest.raises(InvalidLockMode):
        eng.stake("alice", 10, 4)
    with pytest.raises(InvalidInput):
        eng.unstake("alice", 0)
    assert eng.pool.accounts == {}


def test_failed_transfer_in_leaves_no_partial_write() -> None:
    eng, cust, _ = _mk_engine(wallet=50)
    before = eng.pool.to_dict()
    with pytest.raises(InsufficientBalance):
        eng.stake("alice", 100, 0)
    assert eng.pool.to_dict() == before
    assert cust.wallet_balance("alice") == 50
    assert len(eng.events) == 0


def test_unbacked_sync_blocks_stake_and_claim() -> None:
    eng, cust, clock = _mk_engine(rate=10, funding=0)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10)
    before = eng.pool.to_dict()

    with pytest.raises(InsufficientFunding):
        eng.stake("bob", 100, 0)
    with pytest.raises(InsufficientFunding):
        eng.claim_rewards("alice", 0)
    assert eng.pool.to_dict() == before
    assert cust.wallet_balance("bob") == 10_000

    # The projection does not raise; it reports what is actually backed.
    assert eng.pending_reward("alice", 0) == 0


def test_weight_totals_stay_consistent_across_a_sequence() -> None:
    eng, _, clock = _mk_engine(rate=7)
    for mode in range(4):
        eng.stake("alice", 100 + mode, mode)
        eng.stake("bob", 300, mode)
        clock.advance(ticks=3)
    clock.advance(seconds=200 * SECONDS_PER_DAY)
    eng.unstake("alice", 1)
    eng.emergency_withdraw("bob", 2)
    eng.claim_rewards("bob", 3)
    eng.unstake("alice", 3, with_rewards=False)

    pool = eng.pool
    assert pool.consistency_errors() == []
    assert pool.total_locked_weight == eng.weight_of("alice") + eng.weight_of("bob")
    assert pool.total_locked_principal == eng.balance_of("alice") + eng.balance_of("bob")


def test_custody_always_covers_principal_plus_unclaimed() -> None:
    eng, cust, clock = _mk_engine(rate=13, funding=500)
    eng.stake("alice", 100, 0)
    eng.stake("bob", 250, 2)
    for _ in range(5):
        clock.advance(ticks=3)
        eng.sync()
        assert cust.balance() >= eng.pool.total_locked_principal + eng.pool.unclaimed_reward
    eng.claim_rewards("bob", 0)
    assert cust.balance() >= eng.pool.total_locked_principal + eng.pool.unclaimed_reward


def test_short_custody_clamps_payout() -> None:
    eng, cust, clock = _mk_engine(rate=10, funding=100)
    eng.stake("alice", 100, 0)
    clock.advance(ticks=10)
    eng.sync()
    # Simulate custody leaking funds outside the engine.
    cust.release("elsewhere", 150, token="STK")

    receipt = eng.claim_rewards("alice", 0)
    assert receipt.reward == 100
    assert receipt.paid == 50
    assert cust.balance() == 0


def test_recent_events_and_snapshots() -> None:
    eng, _, clock = _mk_engine()
    eng.stake("alice", 100, 0)
    clock.advance(ticks=2)
    eng.claim_rewards("alice", 0)

    evs = eng.recent_events(limit=1)
    assert len(evs) == 1
    assert evs[0]["kind"] == CLAIMED
    assert evs[0]["tick"] == 2

    snap = eng.pool_snapshot()
    assert snap["asset_symbol"] == "STK"
    assert snap["total_locked_principal"] == 100
    assert len(snap["lock_tiers"]) == 4
    assert eng.account_snapshot("nobody")["deposit_count"] == 0


def test_operations_mutate_the_live_pool_in_place() -> None:
    eng, _, clock = _mk_engine(rate=10)
    pool = eng.pool
    eng.stake("alice", 100, 0)
    first = eng.pool.accounts["alice"].deposits[0]

    clock.advance(ticks=5)
    eng.stake("alice", 200, 0)
    eng.claim_rewards("alice", 0)

    assert eng.pool is pool
    assert eng.pool.accounts["alice"].deposits[0] is first
    assert first.reward_debt == 50


def test_failed_stake_unwinds_sync_and_keeps_existing_rows() -> None:
    eng, cust, clock = _mk_engine(rate=10, wallet=150)
    eng.stake("alice", 100, 0)
    first = eng.pool.accounts["alice"].deposits[0]
    clock.advance(ticks=4)
    before = eng.pool.to_dict()

    # The sync runs first and is then undone along with the half-built deposit.
    with pytest.raises(InsufficientBalance):
        eng.stake("alice", 100, 0)

    assert eng.pool.to_dict() == before
    assert eng.pool.last_sync_tick == 0
    assert eng.pool.accounts["alice"].deposits == [first]
    assert cust.wallet_balance("alice") == 50
    assert [e.kind for e in eng.events] == [STAKED]
