# src/lockstake/api/structured_logging.py
from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from lockstake.runtime import metrics
from lockstake.runtime.event_log import EventLogger


def _truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


_HANDLER_MARK = "_lockstake_jsonl"


def configure_structured_logging(level: str | None = None) -> logging.Logger:
    """Attach one stdout handler to the `lockstake` logger namespace.

    Every component logs through EventLogger, whose messages are already
    complete JSON objects, so the handler prints the bare message. Level comes
    from `level`, else LOCKSTAKE_LOG_LEVEL (default INFO). Repeat calls only
    adjust the level.
    """
    name = (level or os.environ.get("LOCKSTAKE_LOG_LEVEL") or "INFO").strip().upper()
    lvl = logging.getLevelName(name)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    ns = logging.getLogger("lockstake")
    ns.setLevel(lvl)
    if not any(getattr(h, _HANDLER_MARK, False) for h in ns.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        setattr(handler, _HANDLER_MARK, True)
        ns.addHandler(handler)
    return ns


def _route_label(request: Request) -> str:
    # Templated path ("/v1/accounts/{account}") keeps the label set bounded.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return str(path) if path else "unmatched"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs one `http_request` event per call and counts it by route and status class.

    LOCKSTAKE_LOG_REQUESTS=0 disables the log line; the counter is always kept.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._log_enabled = _truthy(os.environ.get("LOCKSTAKE_LOG_REQUESTS") or "1")
        self._log = EventLogger("http")

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            route = _route_label(request)
            metrics.inc(metrics.HTTP_REQUESTS, route=route, status=f"{status // 100}xx")
            if self._log_enabled:
                self._log.info(
                    "http_request",
                    request_id=request_id,
                    method=request.method,
                    route=route,
                    status=status,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error=err,
                )
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
