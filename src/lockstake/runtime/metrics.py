from __future__ import annotations

"""Staking pool metrics.

Every series the pool exports is declared once below as a MetricSpec, and
callers pass the MetricSpec rather than a name. Samples are keyed by
(spec, sorted label items). Amount series are in base units of the staked
asset.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kind: str  # "counter" | "gauge"
    help: str
    labels: Tuple[str, ...] = ()


# ---- counters ----
OPERATIONS = MetricSpec(
    "operations_total", "counter", "Pool operations applied.", ("op",)
)
REFUSALS = MetricSpec(
    "refusals_total", "counter", "Operations aborted by a staking error.", ("op", "code")
)
SYNCS = MetricSpec(
    "syncs_total", "counter", "Accumulator sync attempts by outcome.", ("outcome",)
)
REWARDS_PAID = MetricSpec(
    "rewards_paid_units_total", "counter", "Reward released to stakers."
)
REWARDS_FORFEITED = MetricSpec(
    "rewards_forfeited_units_total", "counter", "Reward forfeited by unstake without rewards or emergency exit."
)
REWARDS_FUNDED = MetricSpec(
    "rewards_funded_units_total", "counter", "Reward funding moved into custody."
)
PAYOUT_CLAMPED = MetricSpec(
    "payout_clamped_total", "counter", "Payouts cut short by custody balance."
)
HTTP_REQUESTS = MetricSpec(
    "http_requests_total", "counter", "HTTP requests by route and status class.", ("route", "status")
)

# ---- gauges ----
LOCKED_PRINCIPAL = MetricSpec("locked_principal_units", "gauge", "Principal currently locked.")
LOCKED_WEIGHT = MetricSpec("locked_weight", "gauge", "Sum of active deposit weights.")
UNCLAIMED_REWARD = MetricSpec("unclaimed_reward_units", "gauge", "Reward emitted but not yet paid or forfeited.")
CUSTODY_BALANCE = MetricSpec("custody_balance_units", "gauge", "Staked asset held by the custodian.")
LAST_SYNC_TICK = MetricSpec("last_sync_tick", "gauge", "Tick of the last accumulator sync.")

ALL_METRICS: Tuple[MetricSpec, ...] = (
    OPERATIONS,
    REFUSALS,
    SYNCS,
    REWARDS_PAID,
    REWARDS_FORFEITED,
    REWARDS_FUNDED,
    PAYOUT_CLAMPED,
    HTTP_REQUESTS,
    LOCKED_PRINCIPAL,
    LOCKED_WEIGHT,
    UNCLAIMED_REWARD,
    CUSTODY_BALANCE,
    LAST_SYNC_TICK,
)

_lock = threading.Lock()
_values: Dict[MetricSpec, Dict[LabelKey, int]] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("LOCKSTAKE_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _label_key(spec: MetricSpec, labels: Dict[str, object]) -> LabelKey:
    if set(labels) != set(spec.labels):
        raise ValueError(f"metric {spec.name} expects labels {spec.labels}, got {tuple(sorted(labels))}")
    return tuple((k, str(labels[k])) for k in spec.labels)


def inc(spec: MetricSpec, value: int = 1, **labels: object) -> None:
    if spec.kind != "counter":
        raise ValueError(f"metric {spec.name} is not a counter")
    if int(value) < 0:
        raise ValueError("counters only go up")
    key = _label_key(spec, labels)
    with _lock:
        series = _values.setdefault(spec, {})
        series[key] = series.get(key, 0) + int(value)


def set_gauge(spec: MetricSpec, value: int, **labels: object) -> None:
    if spec.kind != "gauge":
        raise ValueError(f"metric {spec.name} is not a gauge")
    key = _label_key(spec, labels)
    with _lock:
        _values.setdefault(spec, {})[key] = int(value)


def value(spec: MetricSpec, **labels: object) -> int:
    key = _label_key(spec, labels)
    with _lock:
        return int(_values.get(spec, {}).get(key, 0))


def publish_pool(*, locked_principal: int, locked_weight: int, unclaimed_reward: int, last_sync_tick: int) -> None:
    set_gauge(LOCKED_PRINCIPAL, locked_principal)
    set_gauge(LOCKED_WEIGHT, locked_weight)
    set_gauge(UNCLAIMED_REWARD, unclaimed_reward)
    set_gauge(LAST_SYNC_TICK, last_sync_tick)


def reset() -> None:
    with _lock:
        _values.clear()


def _render_labels(key: LabelKey) -> str:
    if not key:
        return ""
    inner = ",".join('{}="{}"'.format(k, v.replace("\\", "\\\\").replace('"', '\\"')) for k, v in key)
    return "{" + inner + "}"


def format_prometheus(prefix: str = "lockstake_", specs: Iterable[MetricSpec] = ALL_METRICS) -> str:
    """Prometheus text exposition (v0.0.4) with HELP/TYPE headers."""
    with _lock:
        copied = {s: dict(v) for s, v in _values.items()}
    lines: List[str] = [
        f"# HELP {prefix}uptime_ms Milliseconds since the process loaded metrics.",
        f"# TYPE {prefix}uptime_ms gauge",
        f"{prefix}uptime_ms {int(time.time() * 1000) - _started_ms}",
    ]
    for spec in specs:
        series = copied.get(spec)
        if not series:
            continue
        full = prefix + spec.name
        lines.append(f"# HELP {full} {spec.help}")
        lines.append(f"# TYPE {full} {spec.kind}")
        for key in sorted(series):
            lines.append(f"{full}{_render_labels(key)} {series[key]}")
    return "\n".join(lines) + "\n"
