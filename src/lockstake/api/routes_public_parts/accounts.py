from __future__ import annotations

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _engine

router = APIRouter()


@router.get("/accounts/{account}")
def v1_account_get(account: str, request: Request):
    eng = _engine(request)
    return {"ok": True, "account": account, "state": eng.account_snapshot(account)}


@router.get("/accounts/{account}/deposits")
def v1_account_deposits(account: str, request: Request):
    """All deposits of an account, closed ones included (ids stay stable)."""
    eng = _engine(request)
    out = []
    for i in range(eng.deposit_count(account)):
        d = eng.deposit_of(account, i).to_dict()
        d["deposit_id"] = i
        d["active"] = int(d.get("principal", 0)) > 0
        out.append(d)
    return {"ok": True, "account": account, "deposits": out}


@router.get("/accounts/{account}/deposits/{deposit_id}")
def v1_account_deposit(account: str, deposit_id: int, request: Request):
    eng = _engine(request)
    d = eng.deposit_of(account, deposit_id).to_dict()
    d["deposit_id"] = int(deposit_id)
    d["active"] = int(d.get("principal", 0)) > 0
    return {"ok": True, "account": account, "deposit": d}


@router.get("/accounts/{account}/deposits/{deposit_id}/pending")
def v1_account_deposit_pending(account: str, deposit_id: int, request: Request):
    eng = _engine(request)
    return {
        "ok": True,
        "account": account,
        "deposit_id": int(deposit_id),
        "pending_reward": eng.pending_reward(account, deposit_id),
    }
