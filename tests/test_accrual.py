from __future__ import annotations

import pytest

from stakereward.ledger.constants import U64_MAX
from stakereward.ledger.types import RewardDistributor, RewardEntry
from stakereward.runtime.accrual import (
    NOOP_MAX_SUPPLY_REACHED,
    NOOP_NO_NEW_STAKE_TIME,
    clamp_to_balance,
    compute_accrual,
    noop_reason,
)
from stakereward.runtime.errors import ClaimError


def _dist(**kw) -> RewardDistributor:
    base = dict(
        distributor_id="rd:test",
        stake_pool_id="pool-1",
        reward_token_id="RWD",
        reward_amount=100,
        reward_duration_seconds=10,
        kind=0,
        signing_authority="ab" * 32,
        max_supply=None,
        rewards_issued=0,
    )
    base.update(kw)
    return RewardDistributor(**base)


def _entry(**kw) -> RewardEntry:
    base = dict(entry_id="re:test", distributor_id="rd:test", staked_asset_id="nft-1", multiplier=2)
    base.update(kw)
    return RewardEntry(**base)


def test_uncapped_accrual_credits_all_unclaimed_seconds() -> None:
    acc = compute_accrual(_entry(), _dist(), 25)
    assert acc.amount == 400
    assert acc.seconds == 25
    assert acc.unclaimed_seconds == 25
    assert not acc.supply_clamped


def test_supply_cap_clamps_amount_and_recomputes_seconds() -> None:
    acc = compute_accrual(_entry(), _dist(max_supply=300), 25)
    assert acc.amount == 300
    # (300 // 100) * 10 // 2
    assert acc.seconds == 15
    assert acc.supply_clamped


def test_supply_cap_clamp_fires_on_exact_hit() -> None:
    # 100 issued + 400 owed == 500 cap
    acc = compute_accrual(_entry(), _dist(max_supply=500, rewards_issued=100), 25)
    assert acc.amount == 400
    assert acc.seconds == 20
    assert acc.supply_clamped


def test_balance_clamp_can_pay_without_advancing_seconds() -> None:
    acc = clamp_to_balance(compute_accrual(_entry(), _dist(), 25), 50, _entry(), _dist())
    assert acc.amount == 50
    assert acc.seconds == 0
    assert acc.balance_clamped


def test_balance_clamp_leaves_covered_accrual_alone() -> None:
    acc0 = compute_accrual(_entry(), _dist(), 25)
    assert clamp_to_balance(acc0, 400, _entry(), _dist()) == acc0


def test_zero_multiplier_credits_time_with_zero_payout() -> None:
    acc = compute_accrual(_entry(multiplier=0), _dist(), 100)
    assert acc.amount == 0
    assert acc.seconds == 100


def test_partial_period_pays_nothing_but_consumes_time() -> None:
    acc = compute_accrual(_entry(multiplier=1), _dist(), 9)
    assert acc.amount == 0
    assert acc.seconds == 9


def test_noop_reasons() -> None:
    assert noop_reason(_entry(reward_seconds_received=30), _dist(), 25) == NOOP_NO_NEW_STAKE_TIME
    assert noop_reason(_entry(), _dist(max_supply=10, rewards_issued=10), 25) == NOOP_MAX_SUPPLY_REACHED
    # equal totals still proceed (with nothing owed)
    assert noop_reason(_entry(reward_seconds_received=25), _dist(), 25) is None


def test_zero_duration_is_division_by_zero() -> None:
    with pytest.raises(ClaimError) as e:
        compute_accrual(_entry(), _dist(reward_duration_seconds=0), 25)
    assert e.value.code == "division_by_zero"
    assert e.value.reason == "reward_duration_seconds_is_zero"


def test_amount_overflow_is_refused() -> None:
    with pytest.raises(ClaimError) as e:
        compute_accrual(_entry(multiplier=2), _dist(reward_amount=U64_MAX), 10)
    assert e.value.code == "arithmetic_overflow"


def test_zero_max_supply_is_a_cap_not_uncapped() -> None:
    dist = _dist(max_supply=0)
    assert dist.capped
    assert noop_reason(_entry(), dist, 25) == NOOP_MAX_SUPPLY_REACHED
    assert not _dist().capped
    assert noop_reason(_entry(), _dist(), 25) is None
