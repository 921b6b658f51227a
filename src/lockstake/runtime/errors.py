from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StakingError(Exception):
    """Canonical error type for staking engine and custodian failures.

    Every subclass aborts the triggering call with no state mutation.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class InvalidInput(StakingError):
    pass


class InvalidLockMode(InvalidInput):
    pass


class InsufficientBalance(InvalidInput):
    """Wallet cannot cover a transfer into custody."""


class StillLocked(StakingError):
    pass


class EmptyDeposit(StakingError):
    pass


class InsufficientFunding(StakingError):
    """Custody cannot back the reward a sync would emit."""


class DivisionByZero(StakingError):
    pass


class ArithmeticOverflow(StakingError):
    pass


class Forbidden(StakingError):
    pass


__all__ = [
    "StakingError",
    "InvalidInput",
    "InvalidLockMode",
    "InsufficientBalance",
    "StillLocked",
    "EmptyDeposit",
    "InsufficientFunding",
    "DivisionByZero",
    "ArithmeticOverflow",
    "Forbidden",
]
