# src/stakereward/runtime/accrual.py
from __future__ import annotations

"""
Reward accrual arithmetic.

Pure functions over the record types; nothing here touches custody or
storage. All steps are integer, floor-dividing and checked, in this order:

  unclaimed = total_stake_seconds - reward_seconds_received
  periods   = unclaimed // reward_duration_seconds
  amount    = periods * reward_amount * multiplier
  seconds   = unclaimed

When the amount is clamped (supply cap or treasury balance), seconds are
recomputed from the clamped amount:

  seconds = ((amount // reward_amount) * reward_duration_seconds) // multiplier

so time beyond what the paid amount covers is consumed without reward.
"""

from dataclasses import dataclass, replace
from typing import Optional

from stakereward.ledger.checked import checked_add, checked_div, checked_mul, checked_sub
from stakereward.ledger.types import RewardDistributor, RewardEntry

NOOP_NO_NEW_STAKE_TIME = "no_new_stake_time"
NOOP_MAX_SUPPLY_REACHED = "max_supply_reached"


@dataclass(frozen=True, slots=True)
class Accrual:
    amount: int
    seconds: int
    unclaimed_seconds: int
    supply_clamped: bool = False
    balance_clamped: bool = False


def noop_reason(entry: RewardEntry, distributor: RewardDistributor, total_stake_seconds: int) -> Optional[str]:
    """Return why a claim has nothing to do, or None when it should proceed."""
    if int(entry.reward_seconds_received) > int(total_stake_seconds):
        return NOOP_NO_NEW_STAKE_TIME
    if distributor.capped and int(distributor.rewards_issued) >= int(distributor.max_supply):
        return NOOP_MAX_SUPPLY_REACHED
    return None


def seconds_for_amount(amount: int, distributor: RewardDistributor, entry: RewardEntry) -> int:
    periods = checked_div(amount, distributor.reward_amount, name="reward_amount")
    scaled = checked_mul(periods, distributor.reward_duration_seconds)
    return checked_div(scaled, entry.multiplier, name="multiplier")


def compute_accrual(entry: RewardEntry, distributor: RewardDistributor, total_stake_seconds: int) -> Accrual:
    """Owed amount and creditable seconds, after the supply cap clamp.

    Callers must check noop_reason() first; this assumes the claim proceeds.
    """
    unclaimed = checked_sub(total_stake_seconds, entry.reward_seconds_received)
    periods = checked_div(unclaimed, distributor.reward_duration_seconds, name="reward_duration_seconds")
    amount = checked_mul(checked_mul(periods, distributor.reward_amount), entry.multiplier)
    accrual = Accrual(amount=amount, seconds=unclaimed, unclaimed_seconds=unclaimed)

    if distributor.capped and checked_add(distributor.rewards_issued, amount) >= int(distributor.max_supply):
        capped_amount = checked_sub(distributor.max_supply, distributor.rewards_issued)
        accrual = replace(
            accrual,
            amount=capped_amount,
            seconds=seconds_for_amount(capped_amount, distributor, entry),
            supply_clamped=True,
        )
    return accrual


def clamp_to_balance(
    accrual: Accrual,
    available_balance: int,
    entry: RewardEntry,
    distributor: RewardDistributor,
) -> Accrual:
    """Reduce a payout to what a pre-funded account can cover."""
    if int(accrual.amount) <= int(available_balance):
        return accrual
    amount = int(available_balance)
    return replace(
        accrual,
        amount=amount,
        seconds=seconds_for_amount(amount, distributor, entry),
        balance_clamped=True,
    )
