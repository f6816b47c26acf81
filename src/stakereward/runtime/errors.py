from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]

ARITHMETIC_OVERFLOW = "arithmetic_overflow"
DIVISION_BY_ZERO = "division_by_zero"
INVALID_DISTRIBUTOR_KIND = "invalid_distributor_kind"
PAYOUT_FAILURE = "payout_failure"


@dataclass
class ClaimError(Exception):
    """Canonical error type for claim failures.

    Any ClaimError aborts the claim before commit; no record is mutated.
    """

    code: str
    reason: str
    details: Json = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class PayoutError(ClaimError):
    """Raised by token custody when a mint or transfer is refused."""

    code: str = PAYOUT_FAILURE
    reason: str = "payout_refused"
    details: Json = field(default_factory=dict)

    @classmethod
    def refused(cls, reason: str, **details: Any) -> "PayoutError":
        return cls(PAYOUT_FAILURE, reason, dict(details))
