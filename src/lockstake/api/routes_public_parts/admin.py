from __future__ import annotations

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _executor, _require_admin
from lockstake.api.schemas import RecoverRequest, RewardRateRequest

router = APIRouter()


@router.post("/admin/reward-rate")
def v1_admin_reward_rate(body: RewardRateRequest, request: Request):
    _require_admin(request)
    return {"ok": True, "result": _executor(request).set_reward_rate(body.caller, body.rate)}


@router.post("/admin/recover")
def v1_admin_recover(body: RecoverRequest, request: Request):
    _require_admin(request)
    ex = _executor(request)
    return {"ok": True, "result": ex.recover_foreign_token(body.caller, body.token, body.to, body.amount)}
