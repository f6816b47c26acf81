# src/stakereward/runtime/claim.py
from __future__ import annotations

"""
Claim operation: the single state transition of the reward ledger.

claim() takes immutable records and returns a ClaimOutcome carrying the
replacement records. It never mutates its inputs, so a raised ClaimError
leaves the caller's records exactly as they were. The only side effect is the
payout call, which happens after every committed value has been computed and
range-checked.

Account/identity checks (pool, asset, destination ownership) are the
caller's job; see runtime.admission.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from stakereward.ledger.checked import checked_add
from stakereward.ledger.types import RewardDistributor, RewardEntry, StakeRecord
from stakereward.runtime import metrics
from stakereward.runtime.accrual import compute_accrual, noop_reason
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.event_log import log_event
from stakereward.runtime.payout import PayoutContext, mechanism_for

Json = Dict[str, Any]

log = logging.getLogger("stakereward.claim")


@dataclass(frozen=True, slots=True)
class ClaimOutcome:
    entry: RewardEntry
    distributor: RewardDistributor
    amount: int = 0
    seconds: int = 0
    noop: bool = False
    noop_reason: Optional[str] = None
    supply_clamped: bool = False
    balance_clamped: bool = False

    def to_dict(self) -> Json:
        return {
            "amount": int(self.amount),
            "seconds": int(self.seconds),
            "noop": bool(self.noop),
            "noop_reason": self.noop_reason,
            "supply_clamped": bool(self.supply_clamped),
            "balance_clamped": bool(self.balance_clamped),
        }


def claim(
    entry: RewardEntry,
    distributor: RewardDistributor,
    stake_record: StakeRecord,
    payout_context: PayoutContext,
) -> ClaimOutcome:
    """Convert the entry's unclaimed stake time into a payout.

    Returns a zero-effect outcome (noop=True) when nothing has accrued or the
    supply cap is exhausted. Nothing is counted or logged here; callers report
    through report_committed / report_failed once their write has landed.

    Raises:
        ClaimError: arithmetic_overflow, division_by_zero,
            invalid_distributor_kind, or payout_failure (PayoutError)
    """
    total = int(stake_record.total_stake_seconds)

    reason = noop_reason(entry, distributor, total)
    if reason is not None:
        return ClaimOutcome(entry=entry, distributor=distributor, noop=True, noop_reason=reason)

    accrual = compute_accrual(entry, distributor, total)
    mechanism = mechanism_for(distributor.kind)
    accrual = mechanism.clamp(accrual, entry, distributor, payout_context)

    rewards_issued = checked_add(distributor.rewards_issued, accrual.amount)
    amount_received = checked_add(entry.reward_amount_received, accrual.amount)
    seconds_received = checked_add(entry.reward_seconds_received, accrual.seconds)

    mechanism.pay(accrual.amount, distributor, payout_context)

    return ClaimOutcome(
        entry=replace(entry, reward_amount_received=amount_received, reward_seconds_received=seconds_received),
        distributor=replace(distributor, rewards_issued=rewards_issued),
        amount=accrual.amount,
        seconds=accrual.seconds,
        supply_clamped=accrual.supply_clamped,
        balance_clamped=accrual.balance_clamped,
    )


def report_committed(outcome: ClaimOutcome) -> None:
    """Count and log a claim whose replacement records are durable."""
    entry_id = outcome.entry.entry_id
    distributor_id = outcome.distributor.distributor_id
    if outcome.noop:
        metrics.record_claim_noop(outcome.noop_reason or "")
        log_event(log, "claim_noop", entry_id=entry_id, distributor_id=distributor_id, reason=outcome.noop_reason)
        return

    metrics.record_claim_paid(
        outcome.amount,
        outcome.seconds,
        supply_clamped=outcome.supply_clamped,
        balance_clamped=outcome.balance_clamped,
    )
    log_event(
        log,
        "claim_paid",
        entry_id=entry_id,
        distributor_id=distributor_id,
        kind=int(outcome.distributor.kind),
        amount=int(outcome.amount),
        seconds=int(outcome.seconds),
        supply_clamped=outcome.supply_clamped,
        balance_clamped=outcome.balance_clamped,
    )


def report_failed(entry_id: str, err: ClaimError) -> None:
    metrics.record_claim_failed(err.code)
    log_event(log, "claim_failed", level=logging.WARNING, entry_id=entry_id, code=err.code, reason=err.reason)


def outcome_to_json(outcome: ClaimOutcome) -> Json:
    return {
        "outcome": outcome.to_dict(),
        "entry": outcome.entry.to_dict(),
        "distributor": outcome.distributor.to_dict(),
    }
