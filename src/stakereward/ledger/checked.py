# src/stakereward/ledger/checked.py
from __future__ import annotations

"""Checked unsigned 64-bit arithmetic.

Every helper raises ClaimError instead of wrapping or going negative, so a
claim that would leave the u64 range aborts before anything is committed.
"""

from stakereward.ledger.constants import U64_MAX
from stakereward.runtime.errors import ARITHMETIC_OVERFLOW, DIVISION_BY_ZERO, ClaimError


def _u64(v: int, *, op: str) -> int:
    if v < 0 or v > U64_MAX:
        raise ClaimError(ARITHMETIC_OVERFLOW, f"{op}_out_of_range", {"value": int(v)})
    return v


def checked_add(a: int, b: int) -> int:
    return _u64(int(a) + int(b), op="add")


def checked_sub(a: int, b: int) -> int:
    return _u64(int(a) - int(b), op="sub")


def checked_mul(a: int, b: int) -> int:
    return _u64(int(a) * int(b), op="mul")


def checked_div(a: int, b: int, *, name: str = "divisor") -> int:
    """Floor division; `name` identifies the zero divisor in the error."""
    if int(b) == 0:
        raise ClaimError(DIVISION_BY_ZERO, f"{name}_is_zero", {"dividend": int(a)})
    return _u64(int(a) // int(b), op="div")
