from __future__ import annotations

"""Clock sources.

Two independent monotonic clocks feed the engine:
  - tick: discrete counter driving reward emission
  - timestamp: unix seconds driving lock expiry

The engine only reads them. ManualClock is advanced by tests and by the dev
HTTP endpoint; SystemClock derives both from wall time.
"""

import threading
import time
from typing import Dict, Optional, Protocol


def _now_ms() -> int:
    return int(time.time() * 1000)


class ClockSource(Protocol):
    def current_tick(self) -> int: ...

    def current_timestamp(self) -> int: ...


class ManualClock:
    def __init__(self, *, tick: int = 0, timestamp: int = 0) -> None:
        if int(tick) < 0 or int(timestamp) < 0:
            raise ValueError("clock values must be >= 0")
        self._lock = threading.Lock()
        self._tick = int(tick)
        self._ts = int(timestamp)

    def current_tick(self) -> int:
        with self._lock:
            return self._tick

    def current_timestamp(self) -> int:
        with self._lock:
            return self._ts

    def advance(self, *, ticks: int = 0, seconds: int = 0) -> None:
        if int(ticks) < 0 or int(seconds) < 0:
            raise ValueError("clocks only move forward")
        with self._lock:
            self._tick += int(ticks)
            self._ts += int(seconds)

    def set(self, *, tick: Optional[int] = None, timestamp: Optional[int] = None) -> None:
        with self._lock:
            if tick is not None:
                if int(tick) < self._tick:
                    raise ValueError(f"tick must not go backwards ({tick} < {self._tick})")
                self._tick = int(tick)
            if timestamp is not None:
                if int(timestamp) < self._ts:
                    raise ValueError(f"timestamp must not go backwards ({timestamp} < {self._ts})")
                self._ts = int(timestamp)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {"tick": self._tick, "timestamp": self._ts}


class SystemClock:
    """Wall-time clock: one tick per `tick_interval_ms` since `genesis_ms`."""

    def __init__(self, *, tick_interval_ms: int, genesis_ms: Optional[int] = None) -> None:
        if int(tick_interval_ms) <= 0:
            raise ValueError("tick_interval_ms must be > 0")
        self.tick_interval_ms = int(tick_interval_ms)
        self.genesis_ms = int(genesis_ms) if genesis_ms is not None else _now_ms()

    def current_tick(self) -> int:
        elapsed = _now_ms() - self.genesis_ms
        return max(0, elapsed // self.tick_interval_ms)

    def current_timestamp(self) -> int:
        return int(time.time())

    def snapshot(self) -> Dict[str, int]:
        return {"tick": self.current_tick(), "timestamp": self.current_timestamp()}


__all__ = ["ClockSource", "ManualClock", "SystemClock"]
