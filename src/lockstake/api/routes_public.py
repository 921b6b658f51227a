# src/lockstake/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from lockstake.api.routes_public_parts.accounts import router as accounts_router
from lockstake.api.routes_public_parts.admin import router as admin_router
from lockstake.api.routes_public_parts.dev import router as dev_router
from lockstake.api.routes_public_parts.health import router as health_router
from lockstake.api.routes_public_parts.metrics import router as metrics_router
from lockstake.api.routes_public_parts.pool import router as pool_router
from lockstake.api.routes_public_parts.staking import router as staking_router

public_router = APIRouter()

# Liveness checks are unversioned for orchestrators.
public_router.include_router(health_router, prefix="", tags=["health"])

# Versioned API surface (production)
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(pool_router, prefix="/v1", tags=["pool"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(staking_router, prefix="/v1", tags=["staking"])
public_router.include_router(admin_router, prefix="/v1", tags=["admin"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])

dev_router_v1 = APIRouter()
dev_router_v1.include_router(dev_router, prefix="/v1", tags=["dev"])
