from __future__ import annotations

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _engine, _executor

router = APIRouter()


@router.get("/pool")
def v1_pool(request: Request):
    return {"ok": True, "pool": _engine(request).pool_snapshot()}


@router.get("/events")
def v1_events(request: Request, account: str | None = None, limit: int = 100):
    """Journaled Staked/Unstaked/Claimed events, oldest first."""
    ex = _executor(request)
    return {"ok": True, "events": ex.read_events(account=account, limit=max(1, min(int(limit), 1000)))}
