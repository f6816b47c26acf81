from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from stakereward.ledger.types import DistributorKind
from stakereward.runtime import metrics
from stakereward.runtime.errors import ClaimError, PayoutError
from stakereward.runtime.sqlite_db import SqliteDB, SqliteRewardStore


def _store(tmp_path: Path) -> SqliteRewardStore:
    return SqliteRewardStore(db=SqliteDB(path=str(tmp_path / "rewards.db")), authority_secret="test-secret")


def _setup(store: SqliteRewardStore, *, kind: int, treasury: int = 0, treasury_owner=None, max_supply=None):
    auth = store.authority_for("pool-1")
    store.create_token("RWD", mint_authority=auth.authority_id)
    store.create_account("alice-rwd", token_id="RWD", owner="alice")
    store.create_account("treasury", token_id="RWD", owner=treasury_owner or auth.authority_id)
    if treasury:
        store.deposit("treasury", treasury)
    dist = store.init_reward_distributor(
        stake_pool_id="pool-1",
        reward_token_id="RWD",
        reward_amount=100,
        reward_duration_seconds=10,
        kind=kind,
        max_supply=max_supply,
    )
    entry = store.init_reward_entry(distributor_id=dist.distributor_id, staked_asset_id="nft-1", multiplier=2)
    store.record_stake_seconds("stake-1", stake_pool_id="pool-1", staked_asset_id="nft-1", total_stake_seconds=25)
    return dist, entry


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKEREWARD_MODE", "prod")
    monkeypatch.delenv("STAKEREWARD_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("STAKEREWARD_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("STAKEREWARD_SQLITE_CACHE_SIZE_KIB", "4096")

    db = SqliteDB(path=str(tmp_path / "rewards.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "cache_size")) == -4096


def test_issuer_claim_persists_records_and_balances(tmp_path: Path) -> None:
    store = _store(tmp_path)
    dist, entry = _setup(store, kind=int(DistributorKind.ISSUER))

    out = store.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd", claimant="alice")
    assert out.amount == 400

    # a fresh store over the same file sees the committed state
    again = _store(tmp_path)
    assert again.get_entry(entry.entry_id).reward_seconds_received == 25
    assert again.get_entry(entry.entry_id).reward_amount_received == 400
    assert again.get_distributor(dist.distributor_id).rewards_issued == 400
    assert again.balance_of("alice-rwd") == 400
    assert again.supply_of("RWD") == 400


def test_custodian_claim_clamps_to_treasury(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _dist, entry = _setup(store, kind=int(DistributorKind.CUSTODIAN), treasury=50)

    out = store.claim(
        entry_id=entry.entry_id,
        stake_entry_id="stake-1",
        destination="alice-rwd",
        treasury_account="treasury",
    )
    assert out.amount == 50
    assert out.seconds == 0
    assert store.balance_of("treasury") == 0
    assert store.balance_of("alice-rwd") == 50
    assert store.get_entry(entry.entry_id).reward_seconds_received == 0


def test_refused_payout_leaves_store_untouched(tmp_path: Path) -> None:
    store = _store(tmp_path)
    dist, entry = _setup(store, kind=int(DistributorKind.CUSTODIAN), treasury=1000, treasury_owner="mallory")

    with pytest.raises(PayoutError) as e:
        store.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd", treasury_account="treasury")
    assert e.value.reason == "authority_mismatch"

    assert store.get_entry(entry.entry_id) == entry
    assert store.get_distributor(dist.distributor_id) == dist
    assert store.balance_of("treasury") == 1000
    assert store.balance_of("alice-rwd") == 0


def test_failure_after_payout_rolls_the_payout_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    _dist, entry = _setup(store, kind=int(DistributorKind.ISSUER))

    def _boom(con, e):
        raise RuntimeError("disk full")

    monkeypatch.setattr(SqliteRewardStore, "_write_entry", staticmethod(_boom))

    with pytest.raises(RuntimeError):
        store.claim(entry_id=entry.entry_id, stake_entry_id="stake-1", destination="alice-rwd")

    assert store.balance_of("alice-rwd") == 0
    assert store.supply_of("RWD") == 0
    assert store.get_distributor(entry.distributor_id).rewards_issued == 0

    totals = metrics.snapshot()["totals"]
    assert totals["claims_total"] == 0
    assert totals["rewards_paid_total"] == 0
    assert totals["seconds_credited_total"] == 0


def test_claim_checks_requested_distributor(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _dist, entry = _setup(store, kind=int(DistributorKind.ISSUER))

    with pytest.raises(ClaimError) as e:
        store.claim(
            entry_id=entry.entry_id,
            distributor_id="rd:someone-else",
            stake_entry_id="stake-1",
            destination="alice-rwd",
        )
    assert e.value.code == "invalid_stake_entry"


def test_missing_records_are_not_found(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ClaimError) as e:
        store.get_entry("re:missing")
    assert e.value.code == "not_found"
    with pytest.raises(ClaimError) as e2:
        store.claim(entry_id="re:missing", stake_entry_id="stake-1", destination="alice-rwd")
    assert e2.value.code == "not_found"


def test_setup_refuses_duplicates_and_decreasing_stake(tmp_path: Path) -> None:
    store = _store(tmp_path)
    dist, _entry = _setup(store, kind=int(DistributorKind.ISSUER))

    with pytest.raises(ClaimError) as e:
        store.init_reward_distributor(
            stake_pool_id="pool-1", reward_token_id="RWD", reward_amount=1, reward_duration_seconds=1, kind=0
        )
    assert e.value.code == "conflict"

    with pytest.raises(ClaimError) as e2:
        store.init_reward_entry(distributor_id=dist.distributor_id, staked_asset_id="nft-1")
    assert e2.value.code == "conflict"

    with pytest.raises(ClaimError) as e3:
        store.record_stake_seconds("stake-1", stake_pool_id="pool-1", staked_asset_id="nft-1", total_stake_seconds=3)
    assert e3.value.reason == "stake_seconds_decreased"
    assert store.get_total_stake_seconds("pool-1", "nft-1") == 25


def test_stake_totals_are_keyed_by_pool_and_asset(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.record_stake_seconds("a-1", stake_pool_id="pool-1", staked_asset_id="nft-1", total_stake_seconds=10)
    store.record_stake_seconds("a-2", stake_pool_id="pool-2", staked_asset_id="nft-1", total_stake_seconds=70)

    assert store.get_total_stake_seconds("pool-1", "nft-1") == 10
    assert store.get_total_stake_seconds("pool-2", "nft-1") == 70

    with pytest.raises(ClaimError) as e:
        store.record_stake_seconds("a-3", stake_pool_id="pool-2", staked_asset_id="nft-1", total_stake_seconds=80)
    assert e.value.reason == "stake_asset_already_linked"
    assert e.value.details["stake_entry_id"] == "a-2"

    with pytest.raises(ClaimError) as e2:
        store.get_total_stake_seconds("pool-3", "nft-1")
    assert e2.value.reason == "stake_asset_not_found"


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        _store(tmp_path)


def test_store_requires_authority_secret(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SqliteRewardStore(db=SqliteDB(path=str(tmp_path / "x.db")), authority_secret="")
