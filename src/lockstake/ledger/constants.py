# src/lockstake/ledger/constants.py
from __future__ import annotations

"""Staking ledger constants.

Anchors:
- Reward accumulator is fixed-point, scaled by 1e12
- Integer arithmetic is bounded like an unsigned 256-bit word
- Four lock tiers: 7 / 30 / 90 / 180 days
- Tier multipliers are basis points (10_000 == x1.00)
"""

# Accumulator precision (reward per unit weight is stored * 1e12)
FIXED_POINT_SCALE: int = 10**12

# Checked arithmetic bound
UINT256_MAX: int = 2**256 - 1

# Multiplier denominator
BPS_DENOMINATOR: int = 10_000

# Durations
SECONDS_PER_DAY: int = 24 * 60 * 60

# Lock tiers: (days, multiplier_bps)
LOCK_TIER_SCHEDULE = (
    (7, 10_000),
    (30, 11_000),
    (90, 14_000),
    (180, 20_000),
)

# Default staked asset symbol held by the custodian
DEFAULT_ASSET_SYMBOL: str = "STK"

# Canonical owner account for administrative calls
DEFAULT_OWNER_ACCOUNT_ID: str = "OWNER"
