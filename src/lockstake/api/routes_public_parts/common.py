from __future__ import annotations

import hmac
from typing import Any, Dict

from fastapi import Request

from lockstake.api.errors import ApiError

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _engine(request: Request):
    ex = _executor(request)
    eng = getattr(ex, "engine", None)
    if eng is None:
        raise ApiError.internal("not_ready", "engine not available", {})
    return eng


def _require_admin(request: Request) -> None:
    """Admin routes need x-admin-token to match LOCKSTAKE_ADMIN_TOKEN.

    With no token configured every admin call is refused.
    """
    cfg = getattr(request.app.state, "cfg", None)
    want = getattr(cfg, "admin_token", None) if cfg is not None else None
    if not want:
        raise ApiError.forbidden("admin_disabled", "no admin token configured", {})
    got = request.headers.get("x-admin-token") or ""
    if not hmac.compare_digest(got.encode("utf-8"), str(want).encode("utf-8")):
        raise ApiError.forbidden("forbidden", "bad admin token", {})
