from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from lockstake.runtime.staking_config import (
    apply_staking_config_to_env,
    default_staking_config,
    load_staking_config,
    read_staking_config_file,
    validate_staking_config,
)


def test_defaults_are_production_safe(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOCKSTAKE_CONFIG_PATH", raising=False)
    cfg = load_staking_config()
    assert cfg == default_staking_config()
    assert cfg.mode == "prod"
    assert cfg.clock == "system"
    assert cfg.emergency_sync is True


def test_read_json_config(tmp_path: Path) -> None:
    p = tmp_path / "pool.json"
    p.write_text(
        json.dumps({"pool_id": "p1", "mode": "DEV", "clock": "manual", "reward_rate_per_tick": 7, "emergency_sync": "no"}),
        encoding="utf-8",
    )
    cfg = read_staking_config_file(str(p))
    assert cfg.pool_id == "p1"
    assert cfg.mode == "dev"
    assert cfg.clock == "manual"
    assert cfg.reward_rate_per_tick == 7
    assert cfg.emergency_sync is False
    # Unset keys fall back to defaults.
    assert cfg.asset_symbol == default_staking_config().asset_symbol


def test_read_yaml_config_via_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "pool.yaml"
    p.write_text(
        "pool_id: yaml-pool\nmode: testnet\nasset_symbol: LOCK\ntick_interval_ms: 1000\nlog_level: debug\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("LOCKSTAKE_CONFIG_PATH", str(p))
    cfg = load_staking_config()
    assert cfg.pool_id == "yaml-pool"
    assert cfg.mode == "testnet"
    assert cfg.asset_symbol == "LOCK"
    assert cfg.tick_interval_ms == 1000
    assert cfg.log_level == "DEBUG"


def test_manual_clock_is_rejected_in_prod(tmp_path: Path) -> None:
    p = tmp_path / "pool.json"
    p.write_text(json.dumps({"mode": "prod", "clock": "manual"}), encoding="utf-8")
    with pytest.raises(ValueError, match="manual"):
        read_staking_config_file(str(p))


@pytest.mark.parametrize(
    "raw",
    [
        {"mode": "staging"},
        {"clock": "sundial"},
        {"tick_interval_ms": 10},
        {"api_port": 70000},
        {"reward_rate_per_tick": -5},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_fail_fast(tmp_path: Path, raw: dict) -> None:
    p = tmp_path / "pool.json"
    p.write_text(json.dumps(raw), encoding="utf-8")
    with pytest.raises(ValueError):
        read_staking_config_file(str(p))


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    p = tmp_path / "pool.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_staking_config_file(str(p))


def test_apply_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in ("LOCKSTAKE_POOL_ID", "LOCKSTAKE_MODE", "LOCKSTAKE_DB_PATH", "LOCKSTAKE_ASSET_SYMBOL",
              "LOCKSTAKE_TICK_INTERVAL_MS", "LOCKSTAKE_LOG_LEVEL"):
        monkeypatch.setenv(k, "placeholder")
    cfg = default_staking_config()
    validate_staking_config(cfg)
    apply_staking_config_to_env(cfg)
    assert os.environ["LOCKSTAKE_POOL_ID"] == cfg.pool_id
    assert os.environ["LOCKSTAKE_MODE"] == "prod"
    assert os.environ["LOCKSTAKE_TICK_INTERVAL_MS"] == str(cfg.tick_interval_ms)
