from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

Json = Dict[str, Any]

STAKED = "Staked"
UNSTAKED = "Unstaked"
CLAIMED = "Claimed"


@dataclass(frozen=True)
class StakingEvent:
    """Audit/indexing record; never consulted for correctness."""

    kind: str
    account: str
    amount: int
    deposit_id: int
    tick: int
    timestamp: int

    def to_json(self) -> Json:
        return {
            "kind": self.kind,
            "account": self.account,
            "amount": int(self.amount),
            "deposit_id": int(self.deposit_id),
            "tick": int(self.tick),
            "timestamp": int(self.timestamp),
        }
