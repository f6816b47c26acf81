from __future__ import annotations

import threading

import pytest

from stakereward.crypto.authority import derive_signing_authority
from stakereward.ledger.ids import find_reward_distributor_id
from stakereward.ledger.types import DistributorKind
from stakereward.runtime import metrics
from stakereward.runtime.custody import InMemoryTokenLedger
from stakereward.runtime.engine import RewardEngine
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.stake_ledger import InMemoryStakeLedger


def _engine(*, kind: int = int(DistributorKind.ISSUER), max_supply=None, treasury: int = 0):
    auth = derive_signing_authority("pool-1", "test-secret")
    custody = InMemoryTokenLedger()
    custody.create_token("RWD", mint_authority=auth.authority_id)
    custody.create_account("alice-rwd", token_id="RWD", owner="alice")
    custody.create_account("treasury", token_id="RWD", owner=auth.authority_id)
    if treasury:
        custody.deposit("treasury", treasury)

    stakes = InMemoryStakeLedger()
    stakes.record_stake_seconds("stake-1", stake_pool_id="pool-1", staked_asset_id="nft-1", total_stake_seconds=25)

    eng = RewardEngine(custody=custody, stakes=stakes)
    dist = eng.init_reward_distributor(
        stake_pool_id="pool-1",
        reward_token_id="RWD",
        reward_amount=100,
        reward_duration_seconds=10,
        kind=kind,
        authority=auth,
        max_supply=max_supply,
    )
    entry = eng.init_reward_entry(distributor_id=dist.distributor_id, staked_asset_id="nft-1", multiplier=2)
    return eng, custody, stakes, entry


def test_engine_claim_commits_replacement_records() -> None:
    eng, custody, _stakes, entry = _engine()

    out = eng.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd", claimant="alice")

    assert out.amount == 400
    assert eng.get_entry(entry.entry_id).reward_seconds_received == 25
    assert eng.get_distributor(entry.distributor_id).rewards_issued == 400
    assert custody.balance_of("alice-rwd") == 400


def test_engine_refuses_duplicate_init() -> None:
    eng, _custody, _stakes, entry = _engine()
    with pytest.raises(ClaimError) as e:
        eng.init_reward_entry(distributor_id=entry.distributor_id, staked_asset_id="nft-1")
    assert e.value.code == "conflict"

    with pytest.raises(ClaimError) as e2:
        eng.init_reward_distributor(
            stake_pool_id="pool-1",
            reward_token_id="RWD",
            reward_amount=1,
            reward_duration_seconds=1,
            kind=0,
            authority=derive_signing_authority("pool-1", "x"),
        )
    assert e2.value.reason == "distributor_exists"


def test_engine_entry_requires_existing_distributor() -> None:
    eng, _custody, _stakes, _entry = _engine()
    with pytest.raises(ClaimError) as e:
        eng.init_reward_entry(distributor_id=find_reward_distributor_id("pool-9"), staked_asset_id="nft-1")
    assert e.value.code == "not_found"


def test_engine_failed_claim_keeps_committed_records() -> None:
    eng, custody, _stakes, entry = _engine(kind=int(DistributorKind.CUSTODIAN), treasury=1000)

    with pytest.raises(ClaimError):
        eng.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd")

    assert eng.get_entry(entry.entry_id) == entry
    assert custody.balance_of("treasury") == 1000


def test_concurrent_claims_on_one_entry_pay_once() -> None:
    eng, custody, _stakes, entry = _engine(kind=int(DistributorKind.CUSTODIAN), treasury=1000)

    errors: list[Exception] = []

    def _worker() -> None:
        try:
            for _ in range(20):
                eng.claim(
                    entry_id=entry.entry_id,
                    stake_entry_id="stake-1",
                    destination="alice-rwd",
                    treasury_account="treasury",
                )
        except Exception as e:  # pragma: no cover - surfaced below
            errors.append(e)

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)

    assert errors == []
    assert custody.balance_of("alice-rwd") == 400
    assert custody.balance_of("treasury") == 600
    assert eng.get_distributor(entry.distributor_id).rewards_issued == 400


def test_stake_totals_never_decrease() -> None:
    stakes = InMemoryStakeLedger()
    stakes.record_stake_seconds("s", stake_pool_id="p", staked_asset_id="a", total_stake_seconds=10)
    with pytest.raises(ClaimError) as e:
        stakes.record_stake_seconds("s", stake_pool_id="p", staked_asset_id="a", total_stake_seconds=9)
    assert e.value.reason == "stake_seconds_decreased"
    assert stakes.get_total_stake_seconds("p", "a") == 10

    with pytest.raises(ClaimError) as e2:
        stakes.record_stake_seconds("s", stake_pool_id="p2", staked_asset_id="a", total_stake_seconds=11)
    assert e2.value.reason == "stake_entry_relinked"


def test_engine_counts_claims_once_they_are_committed() -> None:
    eng, _custody, _stakes, entry = _engine(max_supply=400)

    eng.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd")
    eng.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd")

    totals = metrics.snapshot()["totals"]
    assert totals["claims_total"] == 2
    assert totals["claims_paid_total"] == 1
    assert totals["rewards_paid_total"] == 400
    assert totals["seconds_credited_total"] == 25
    assert totals["claims_noop_total"] == 1
    assert metrics.snapshot()["noop_reasons"] == {"max_supply_reached": 1}


def test_engine_counts_refused_claims_by_code() -> None:
    eng, _custody, _stakes, entry = _engine(kind=int(DistributorKind.CUSTODIAN), treasury=1000)

    with pytest.raises(ClaimError):
        eng.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd")

    snap = metrics.snapshot()
    assert snap["totals"]["claims_failed_total"] == 1
    assert snap["totals"]["rewards_paid_total"] == 0
    assert list(snap["failure_codes"].values()) == [1]


def test_same_asset_in_two_pools_keeps_separate_totals() -> None:
    stakes = InMemoryStakeLedger()
    stakes.record_stake_seconds("s1", stake_pool_id="p1", staked_asset_id="a", total_stake_seconds=10)
    stakes.record_stake_seconds("s2", stake_pool_id="p2", staked_asset_id="a", total_stake_seconds=40)

    assert stakes.get_total_stake_seconds("p1", "a") == 10
    assert stakes.get_total_stake_seconds("p2", "a") == 40

    with pytest.raises(ClaimError) as e:
        stakes.record_stake_seconds("s3", stake_pool_id="p1", staked_asset_id="a", total_stake_seconds=50)
    assert e.value.reason == "stake_asset_already_linked"

    with pytest.raises(ClaimError) as e2:
        stakes.get_total_stake_seconds("p3", "a")
    assert e2.value.code == "not_found"
