from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lockstake.ledger.constants import SECONDS_PER_DAY
from lockstake.runtime import metrics
from lockstake.runtime.executor import StakingExecutor

ADMIN = {"x-admin-token": "s3cret"}


def _mk_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, mode: str = "dev") -> TestClient:
    from lockstake.api import app as api_app

    monkeypatch.setenv("LOCKSTAKE_MODE", mode)
    monkeypatch.setenv("LOCKSTAKE_ADMIN_TOKEN", "s3cret")
    monkeypatch.delenv("LOCKSTAKE_DEV_ROUTES", raising=False)

    ex = StakingExecutor(
        db_path=str(tmp_path / "api.db"),
        pool_id="api-pool",
        owner="OWNER",
        asset_symbol="STK",
        mode=mode,
        clock_kind="manual",
    )
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)
    return TestClient(api_app.create_app(boot_runtime=True))


def _ok(r) -> dict:
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    return body


def test_health_and_readiness(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        assert _ok(c.get("/healthz"))
        assert _ok(c.get("/readyz"))
        assert _ok(c.get("/v1/health"))["pool_id"] == "api-pool"


def test_readyz_without_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from lockstake.api.app import create_app

    monkeypatch.setenv("LOCKSTAKE_MODE", "dev")
    with TestClient(create_app(boot_runtime=False)) as c:
        assert c.get("/readyz").status_code == 503
        r = c.get("/v1/pool")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_stake_accrue_claim_unstake_flow(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        _ok(c.post("/v1/dev/mint", json={"holder": "OWNER", "amount": 10_000}))
        _ok(c.post("/v1/dev/mint", json={"holder": "alice", "amount": 1_000}))
        _ok(c.post("/v1/fund", json={"funder": "OWNER", "amount": 10_000}))
        rate = _ok(c.post("/v1/admin/reward-rate", json={"caller": "OWNER", "rate": 10}, headers=ADMIN))
        assert rate["result"]["new"] == 10

        staked = _ok(c.post("/v1/stake", json={"account": "alice", "amount": 100, "lock_mode": 0}))
        assert staked["deposit_id"] == 0

        _ok(c.post("/v1/dev/clock", json={"ticks": 10}))
        pending = _ok(c.get("/v1/accounts/alice/deposits/0/pending"))
        assert pending["pending_reward"] == 100

        r = c.post("/v1/unstake", json={"account": "alice", "deposit_id": 0})
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "still_locked"

        claim = _ok(c.post("/v1/claim", json={"account": "alice", "deposit_id": 0}))
        assert claim["receipt"]["paid"] == 100

        _ok(c.post("/v1/dev/clock", json={"seconds": 7 * SECONDS_PER_DAY + 1}))
        out = _ok(c.post("/v1/unstake", json={"account": "alice", "deposit_id": 0}))
        assert out["receipt"]["principal"] == 100

        acct = _ok(c.get("/v1/accounts/alice"))
        assert acct["state"]["total_principal"] == 0
        assert acct["state"]["total_rewards_claimed"] == 100

        deps = _ok(c.get("/v1/accounts/alice/deposits"))["deposits"]
        assert len(deps) == 1
        assert deps[0]["active"] is False

        pool = _ok(c.get("/v1/pool"))["pool"]
        assert pool["total_locked_principal"] == 0
        assert pool["reward_rate_per_tick"] == 10

        kinds = [e["kind"] for e in _ok(c.get("/v1/events", params={"account": "alice"}))["events"]]
        assert kinds == ["Staked", "Claimed", "Unstaked", "Claimed"]


def test_emergency_withdraw_route(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        _ok(c.post("/v1/dev/mint", json={"holder": "alice", "amount": 100}))
        _ok(c.post("/v1/stake", json={"account": "alice", "amount": 100, "lock_mode": 0}))
        _ok(c.post("/v1/dev/clock", json={"seconds": 7 * SECONDS_PER_DAY + 1}))
        out = _ok(c.post("/v1/emergency-withdraw", json={"account": "alice", "deposit_id": 0}))
        assert out["receipt"]["paid"] == 100

        r = c.post("/v1/claim", json={"account": "alice", "deposit_id": 0})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "empty_deposit"


def test_input_errors_map_to_400(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        r = c.post("/v1/stake", json={"account": "alice", "amount": 0, "lock_mode": 0})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "invalid_input"

        r = c.post("/v1/stake", json={"account": "alice", "amount": 10, "lock_mode": 9})
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "invalid_lock_mode"

        r = c.get("/v1/accounts/nobody/deposits/0")
        assert r.status_code == 400


def test_unfunded_rewards_map_to_409(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        _ok(c.post("/v1/dev/mint", json={"holder": "alice", "amount": 100}))
        _ok(c.post("/v1/admin/reward-rate", json={"caller": "OWNER", "rate": 10}, headers=ADMIN))
        _ok(c.post("/v1/stake", json={"account": "alice", "amount": 100, "lock_mode": 0}))
        _ok(c.post("/v1/dev/clock", json={"ticks": 5}))
        r = c.post("/v1/claim", json={"account": "alice", "deposit_id": 0})
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "insufficient_funding"


def test_admin_routes_need_token_and_owner(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        r = c.post("/v1/admin/reward-rate", json={"caller": "OWNER", "rate": 1})
        assert r.status_code == 403

        r = c.post("/v1/admin/reward-rate", json={"caller": "OWNER", "rate": 1}, headers={"x-admin-token": "nope"})
        assert r.status_code == 403

        r = c.post("/v1/admin/reward-rate", json={"caller": "alice", "rate": 1}, headers=ADMIN)
        assert r.status_code == 403
        assert r.json()["error"]["message"] == "owner_only"

        r = c.post("/v1/admin/recover", json={"caller": "OWNER", "token": "STK", "to": "x", "amount": 1}, headers=ADMIN)
        assert r.status_code == 403
        assert r.json()["error"]["message"] == "cannot_recover_staked_asset"


def test_dev_routes_absent_in_prod(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch, mode="prod") as c:
        assert c.post("/v1/dev/clock", json={"ticks": 1}).status_code == 404
        assert c.post("/v1/dev/mint", json={"holder": "a", "amount": 1}).status_code == 404


def test_metrics_route(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        monkeypatch.delenv("LOCKSTAKE_METRICS_ENABLED", raising=False)
        assert c.get("/v1/metrics").status_code == 404

        monkeypatch.setenv("LOCKSTAKE_METRICS_ENABLED", "1")
        _ok(c.post("/v1/dev/mint", json={"holder": "alice", "amount": 10}))
        _ok(c.post("/v1/stake", json={"account": "alice", "amount": 10, "lock_mode": 0}))
        r = c.get("/v1/metrics")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/plain; version=0.0.4")
        assert 'lockstake_operations_total{op="stake"} 1' in r.text
        assert "lockstake_locked_principal_units 10" in r.text
        assert "lockstake_custody_balance_units 10" in r.text
        assert 'lockstake_http_requests_total{route="/v1/stake",status="2xx"} 1' in r.text

        # Pool gauges are read from the live pool at scrape time.
        metrics.reset()
        assert "lockstake_locked_principal_units 10" in c.get("/v1/metrics").text


def test_fund_is_public_and_needs_no_admin_token(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    with _mk_client(tmp_path, monkeypatch) as c:
        _ok(c.post("/v1/dev/mint", json={"holder": "bob", "amount": 500}))
        out = _ok(c.post("/v1/fund", json={"funder": "bob", "amount": 300}))
        assert out["result"] == {"applied": "REWARDS_FUND", "funder": "bob", "amount": 300}
        assert _ok(c.get("/v1/pool"))["pool"]["custody_balance"] == 300

        r = c.post("/v1/fund", json={"funder": "bob", "amount": 1_000})
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "insufficient_wallet_balance"
        assert c.post("/v1/admin/fund", json={"funder": "bob", "amount": 1}, headers=ADMIN).status_code == 404
