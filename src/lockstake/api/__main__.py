# src/lockstake/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from lockstake.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so LOCKSTAKE_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from lockstake.api.app import create_app
    from lockstake.runtime.staking_config import apply_staking_config_to_env, load_staking_config

    cfg = load_staking_config()
    if os.getenv("LOCKSTAKE_CONFIG_PATH"):
        apply_staking_config_to_env(cfg)

    host = os.getenv("LOCKSTAKE_API_HOST", cfg.api_host)
    port = int(os.getenv("LOCKSTAKE_API_PORT", str(cfg.api_port)))

    uvicorn.run(create_app(), host=host, port=port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
