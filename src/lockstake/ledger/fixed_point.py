# src/lockstake/ledger/fixed_point.py
from __future__ import annotations

"""Checked integer arithmetic for ledger amounts.

Python ints never wrap, so every helper here enforces the bounds a 256-bit
unsigned word would have and raises ArithmeticOverflow instead of producing
a value the ledger could not represent.
"""

from lockstake.ledger.constants import FIXED_POINT_SCALE, UINT256_MAX
from lockstake.runtime.errors import ArithmeticOverflow, DivisionByZero


def _check(v: int, op: str, a: int, b: int) -> int:
    if v < 0 or v > UINT256_MAX:
        raise ArithmeticOverflow("overflow", f"{op}_out_of_range", {"a": int(a), "b": int(b)})
    return v


def checked_add(a: int, b: int) -> int:
    return _check(int(a) + int(b), "add", a, b)


def checked_sub(a: int, b: int) -> int:
    return _check(int(a) - int(b), "sub", a, b)


def checked_mul(a: int, b: int) -> int:
    return _check(int(a) * int(b), "mul", a, b)


def checked_div(a: int, b: int) -> int:
    if int(b) == 0:
        raise DivisionByZero("division_by_zero", "divisor_is_zero", {"a": int(a)})
    return _check(int(a) // int(b), "div", a, b)


def saturating_sub(a: int, b: int) -> int:
    """a - b, floored at zero."""
    v = int(a) - int(b)
    return v if v > 0 else 0


def scaled_share(weight: int, accumulator: int, *, scale: int = FIXED_POINT_SCALE) -> int:
    """weight * accumulator / scale (floor)."""
    return checked_div(checked_mul(weight, accumulator), scale)
