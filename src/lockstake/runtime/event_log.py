from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict

Json = Dict[str, Any]


class EventLogger:
    """Component-scoped JSONL event logger.

    One log record per event, the message being a compact JSON object with
    `ts_ms`, `component`, `event` and the caller's fields. Amounts are plain
    ints (they can exceed 64 bits, JSON handles that). Anything else that is
    not JSON-native is rendered with str().
    """

    def __init__(self, component: str) -> None:
        self.component = str(component)
        self.logger = logging.getLogger(f"lockstake.{self.component}")

    def _emit(self, level: int, event: str, fields: Json) -> None:
        if not self.logger.isEnabledFor(level):
            return
        payload: Json = {"ts_ms": int(time.time() * 1000), "component": self.component, "event": str(event)}
        payload.update(fields)
        self.logger.log(level, json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str))

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)
