from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def v1_health(request: Request):
    ex = getattr(request.app.state, "executor", None)
    return {"ok": True, "ts_ms": _now_ms(), "pool_id": getattr(ex, "pool_id", None)}


@router.get("/healthz")
def healthz():
    """Liveness: the process is serving requests."""
    return {"ok": True}


@router.get("/readyz")
def readyz(request: Request):
    """Readiness: an executor is attached and its pool snapshot is consistent."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return JSONResponse(status_code=503, content={"ok": False, "reason": "executor_not_attached"})
    eng = getattr(ex, "engine", None)
    errs = eng.pool.consistency_errors() if eng is not None else ["engine_missing"]
    if errs:
        return JSONResponse(status_code=503, content={"ok": False, "reason": "pool_inconsistent", "errors": errs})
    return {"ok": True}
