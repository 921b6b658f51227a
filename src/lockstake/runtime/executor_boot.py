# src/lockstake/runtime/executor_boot.py

from __future__ import annotations

import dataclasses
import os
from typing import Optional

from lockstake.runtime.executor import StakingExecutor
from lockstake.runtime.staking_config import StakingConfig, load_staking_config, validate_staking_config


def boot_config_from_env() -> StakingConfig:
    """Config file (LOCKSTAKE_CONFIG_PATH) first, then per-field env overrides."""
    cfg = load_staking_config()
    overrides = {}
    for field, env in (
        ("pool_id", "LOCKSTAKE_POOL_ID"),
        ("mode", "LOCKSTAKE_MODE"),
        ("db_path", "LOCKSTAKE_DB_PATH"),
        ("owner", "LOCKSTAKE_OWNER"),
        ("asset_symbol", "LOCKSTAKE_ASSET_SYMBOL"),
        ("clock", "LOCKSTAKE_CLOCK"),
    ):
        v = (os.environ.get(env) or "").strip()
        if v:
            overrides[field] = v.lower() if field in {"mode", "clock"} else v

    raw_interval = (os.environ.get("LOCKSTAKE_TICK_INTERVAL_MS") or "").strip()
    if raw_interval:
        overrides["tick_interval_ms"] = int(raw_interval)

    if not overrides:
        return cfg
    out = dataclasses.replace(cfg, **overrides)
    validate_staking_config(out)
    return out


def build_executor(cfg: Optional[StakingConfig] = None) -> StakingExecutor:
    """
    Build a StakingExecutor from an explicit config or, if omitted, from the
    environment. `lockstake.api.app` calls this with no args in production.
    """
    return StakingExecutor.from_config(cfg or boot_config_from_env())
