from __future__ import annotations

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _executor
from lockstake.api.schemas import ClaimRequest, EmergencyWithdrawRequest, FundRequest, StakeRequest, UnstakeRequest

router = APIRouter()


@router.post("/stake")
def v1_stake(body: StakeRequest, request: Request):
    ex = _executor(request)
    deposit_id = ex.stake(body.account, body.amount, body.lock_mode)
    return {"ok": True, "account": body.account, "deposit_id": int(deposit_id)}


@router.post("/unstake")
def v1_unstake(body: UnstakeRequest, request: Request):
    ex = _executor(request)
    receipt = ex.unstake(body.account, body.deposit_id, body.with_rewards)
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/claim")
def v1_claim(body: ClaimRequest, request: Request):
    ex = _executor(request)
    receipt = ex.claim_rewards(body.account, body.deposit_id)
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/emergency-withdraw")
def v1_emergency_withdraw(body: EmergencyWithdrawRequest, request: Request):
    ex = _executor(request)
    receipt = ex.emergency_withdraw(body.account, body.deposit_id)
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/fund")
def v1_fund(body: FundRequest, request: Request):
    # Any holder may top up the reward pot from their own wallet.
    return {"ok": True, "result": _executor(request).fund_rewards(body.funder, body.amount)}
