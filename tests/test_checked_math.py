from __future__ import annotations

import pytest

from stakereward.ledger.checked import checked_add, checked_div, checked_mul, checked_sub
from stakereward.ledger.constants import U64_MAX
from stakereward.runtime.errors import ClaimError


def test_checked_ops_stay_in_u64() -> None:
    assert checked_add(U64_MAX - 1, 1) == U64_MAX
    assert checked_sub(5, 5) == 0
    assert checked_mul(2**32, 2**31) == 2**63
    assert checked_div(7, 2) == 3


@pytest.mark.parametrize(
    "fn,args,reason",
    [
        (checked_add, (U64_MAX, 1), "add_out_of_range"),
        (checked_sub, (0, 1), "sub_out_of_range"),
        (checked_mul, (U64_MAX, 2), "mul_out_of_range"),
    ],
)
def test_checked_ops_refuse_to_wrap(fn, args, reason: str) -> None:
    with pytest.raises(ClaimError) as e:
        fn(*args)
    assert e.value.code == "arithmetic_overflow"
    assert e.value.reason == reason


def test_checked_div_names_the_zero_divisor() -> None:
    with pytest.raises(ClaimError) as e:
        checked_div(10, 0, name="reward_duration_seconds")
    assert e.value.code == "division_by_zero"
    assert e.value.reason == "reward_duration_seconds_is_zero"
    assert str(e.value).startswith("division_by_zero:reward_duration_seconds_is_zero")
