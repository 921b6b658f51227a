from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from lockstake.ledger.constants import DEFAULT_ASSET_SYMBOL, DEFAULT_OWNER_ACCOUNT_ID

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class StakingConfig:
    pool_id: str
    mode: str  # "dev" | "testnet" | "prod"

    owner: str
    asset_symbol: str

    # Single SQLite DB file path for pool persistence.
    db_path: str

    reward_rate_per_tick: int
    tick_interval_ms: int
    clock: str  # "system" | "manual"

    # Emergency withdrawals try a best-effort sync before settling.
    emergency_sync: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_CLOCKS = {"system", "manual"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_staking_config(cfg: StakingConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.pool_id, str) or not cfg.pool_id.strip():
        raise ValueError("pool_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise ValueError("owner must be a non-empty string")

    if not isinstance(cfg.asset_symbol, str) or not cfg.asset_symbol.strip():
        raise ValueError("asset_symbol must be a non-empty string")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.reward_rate_per_tick) < 0:
        raise ValueError(f"reward_rate_per_tick must be >= 0; got: {cfg.reward_rate_per_tick}")

    if int(cfg.tick_interval_ms) < 250:
        raise ValueError(f"tick_interval_ms must be >= 250; got: {cfg.tick_interval_ms}")

    clock = str(cfg.clock or "").strip().lower()
    if clock not in _ALLOWED_CLOCKS:
        raise ValueError(f"clock must be one of {_ALLOWED_CLOCKS}; got: {cfg.clock!r}")
    if clock == "manual" and mode == "prod":
        raise ValueError("clock='manual' is not allowed in prod mode")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")


def default_staking_config() -> StakingConfig:
    return StakingConfig(
        pool_id="lockstake-dev",
        # Production-safe defaults: no manual clock unless explicitly configured.
        mode="prod",
        owner=DEFAULT_OWNER_ACCOUNT_ID,
        asset_symbol=DEFAULT_ASSET_SYMBOL,
        db_path="./data/lockstake.db",
        reward_rate_per_tick=0,
        tick_interval_ms=12_000,
        clock="system",
        emergency_sync=True,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _load_raw(p: Path) -> Any:
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def read_staking_config_file(path: str) -> StakingConfig:
    p = Path(path)
    raw = _load_raw(p)
    if not isinstance(raw, dict):
        raise ValueError("staking config must be a mapping/object")

    d = default_staking_config()

    cfg = StakingConfig(
        pool_id=_as_str(raw.get("pool_id"), d.pool_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        owner=_as_str(raw.get("owner"), d.owner),
        asset_symbol=_as_str(raw.get("asset_symbol"), d.asset_symbol),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        reward_rate_per_tick=_as_int(raw.get("reward_rate_per_tick"), d.reward_rate_per_tick),
        tick_interval_ms=_as_int(raw.get("tick_interval_ms"), d.tick_interval_ms),
        clock=_as_str(raw.get("clock"), d.clock).strip().lower(),
        emergency_sync=_as_bool(raw.get("emergency_sync"), d.emergency_sync),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_staking_config(cfg)
    return cfg


def load_staking_config(*, config_path: Optional[str] = None) -> StakingConfig:
    p = config_path or os.environ.get("LOCKSTAKE_CONFIG_PATH")
    if p:
        return read_staking_config_file(p)

    cfg = default_staking_config()
    validate_staking_config(cfg)
    return cfg


def apply_staking_config_to_env(cfg: StakingConfig) -> None:
    validate_staking_config(cfg)
    os.environ["LOCKSTAKE_POOL_ID"] = cfg.pool_id

    # Routes read mode to decide whether dev-only endpoints are mounted.
    os.environ["LOCKSTAKE_MODE"] = (cfg.mode or "prod").strip().lower()

    os.environ["LOCKSTAKE_DB_PATH"] = cfg.db_path
    os.environ["LOCKSTAKE_ASSET_SYMBOL"] = cfg.asset_symbol
    os.environ["LOCKSTAKE_TICK_INTERVAL_MS"] = str(int(cfg.tick_interval_ms))
    os.environ["LOCKSTAKE_LOG_LEVEL"] = cfg.log_level
