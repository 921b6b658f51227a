from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lockstake.api.config import dev_routes_enabled, load_api_config
from lockstake.api.errors import install_error_handlers
from lockstake.api.routes_public import dev_router_v1, public_router
from lockstake.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from lockstake.runtime.event_log import EventLogger
from lockstake.runtime.executor_boot import build_executor as _build_executor

log = EventLogger("api")


def build_executor():
    """Build a StakingExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `lockstake.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    mode = os.environ.get("LOCKSTAKE_MODE", "prod").strip().lower()
    configure_structured_logging()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ex = getattr(app.state, "executor", None)
        log.info("api_started", mode=mode, pool_id=getattr(ex, "pool_id", None))
        yield
        log.info("api_stopped", mode=mode)

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(
            title="Lockstake Pool API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="Lockstake Pool API", lifespan=_lifespan)

    app.state.cfg = load_api_config()

    if boot_runtime:
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_middleware(RequestLogMiddleware)
    install_error_handlers(app)

    app.include_router(public_router)
    if dev_routes_enabled(mode):
        app.include_router(dev_router_v1)

    return app
