import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    admin_token: str | None


def load_api_config() -> ApiConfig:
    mode = os.getenv("LOCKSTAKE_MODE", "prod").strip().lower()
    token = (os.getenv("LOCKSTAKE_ADMIN_TOKEN") or "").strip() or None
    return ApiConfig(mode=mode, admin_token=token)


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def dev_routes_enabled(mode: str) -> bool:
    """
    Dev routes (faucet, manual clock) are never mounted in prod.
    LOCKSTAKE_DEV_ROUTES=0 disables them in dev/testnet too.
    """
    if mode == "prod":
        return False
    env = os.getenv("LOCKSTAKE_DEV_ROUTES")
    if env is not None:
        return _is_truthy(env)
    return True
