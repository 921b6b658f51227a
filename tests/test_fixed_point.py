from __future__ import annotations

import pytest

from lockstake.ledger.constants import FIXED_POINT_SCALE, UINT256_MAX
from lockstake.ledger.fixed_point import (
    checked_add,
    checked_div,
    checked_mul,
    checked_sub,
    saturating_sub,
    scaled_share,
)
from lockstake.runtime.errors import ArithmeticOverflow, DivisionByZero


def test_checked_ops_in_range() -> None:
    assert checked_add(2, 3) == 5
    assert checked_sub(5, 3) == 2
    assert checked_mul(4, 5) == 20
    assert checked_div(7, 2) == 3


def test_checked_ops_signal_overflow() -> None:
    with pytest.raises(ArithmeticOverflow):
        checked_add(UINT256_MAX, 1)
    with pytest.raises(ArithmeticOverflow):
        checked_sub(1, 2)
    with pytest.raises(ArithmeticOverflow):
        checked_mul(UINT256_MAX, 2)


def test_division_by_zero_is_an_error() -> None:
    with pytest.raises(DivisionByZero) as ei:
        checked_div(1, 0)
    assert ei.value.code == "division_by_zero"


def test_saturating_sub_floors_at_zero() -> None:
    assert saturating_sub(3, 5) == 0
    assert saturating_sub(5, 3) == 2


def test_scaled_share_truncates() -> None:
    # 1.5 reward units per weight, weight 3 -> 4.5 truncated to 4
    assert scaled_share(3, FIXED_POINT_SCALE * 3 // 2) == 4
