from __future__ import annotations

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _executor
from lockstake.api.schemas import ClockAdvanceRequest, MintRequest

# Mounted only outside prod (see lockstake.api.config.dev_routes_enabled).
router = APIRouter()


@router.post("/dev/clock")
def v1_dev_clock(body: ClockAdvanceRequest, request: Request):
    clock = _executor(request).advance_clock(ticks=body.ticks, seconds=body.seconds)
    return {"ok": True, "clock": clock}


@router.post("/dev/mint")
def v1_dev_mint(body: MintRequest, request: Request):
    return {"ok": True, "result": _executor(request).mint(body.holder, body.amount, token=body.token)}
