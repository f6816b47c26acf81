# src/stakereward/runtime/engine.py
from __future__ import annotations

"""In-process reward engine.

Holds distributors and entries in memory and serializes claims with a
per-record lock table: a claim holds the locks of its distributor, its entry
and (for custodian payouts) the treasury account for the whole
compute → pay → commit sequence. Locks are taken in sorted key order so two
claims sharing records cannot deadlock.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from stakereward.crypto.authority import SigningAuthority
from stakereward.ledger.ids import find_reward_distributor_id, find_reward_entry_id
from stakereward.ledger.types import RewardDistributor, RewardEntry
from stakereward.runtime.admission import validate_claim_accounts
from stakereward.runtime.claim import ClaimOutcome, claim, report_committed, report_failed
from stakereward.runtime.custody import InMemoryTokenLedger
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.event_log import log_event
from stakereward.runtime.payout import PayoutContext
from stakereward.runtime.stake_ledger import InMemoryStakeLedger

log = logging.getLogger("stakereward.engine")


class RecordLocks:
    """Lazily created exclusive lock per record key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lk = self._locks.get(key)
            if lk is None:
                lk = threading.Lock()
                self._locks[key] = lk
            return lk

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        ordered = sorted({k for k in keys if k})
        held: List[threading.Lock] = []
        try:
            for k in ordered:
                lk = self._lock_for(k)
                lk.acquire()
                held.append(lk)
            yield
        finally:
            for lk in reversed(held):
                lk.release()


class RewardEngine:
    def __init__(self, *, custody: InMemoryTokenLedger, stakes: InMemoryStakeLedger) -> None:
        self.custody = custody
        self.stakes = stakes
        self.locks = RecordLocks()
        self._distributors: Dict[str, RewardDistributor] = {}
        self._entries: Dict[str, RewardEntry] = {}
        self._authorities: Dict[str, SigningAuthority] = {}

    # ---- setup ----

    def init_reward_distributor(
        self,
        *,
        stake_pool_id: str,
        reward_token_id: str,
        reward_amount: int,
        reward_duration_seconds: int,
        kind: int,
        authority: SigningAuthority,
        max_supply: Optional[int] = None,
    ) -> RewardDistributor:
        distributor_id = find_reward_distributor_id(stake_pool_id)
        dist = RewardDistributor(
            distributor_id=distributor_id,
            stake_pool_id=str(stake_pool_id),
            reward_token_id=str(reward_token_id),
            reward_amount=int(reward_amount),
            reward_duration_seconds=int(reward_duration_seconds),
            kind=int(kind),
            signing_authority=authority.authority_id,
            max_supply=None if max_supply is None else int(max_supply),
            rewards_issued=0,
        )
        with self.locks.hold(_dist_key(distributor_id)):
            if distributor_id in self._distributors:
                raise ClaimError("conflict", "distributor_exists", {"stake_pool_id": stake_pool_id})
            self._distributors[distributor_id] = dist
            self._authorities[distributor_id] = authority
        log_event(log, "distributor_init", distributor_id=distributor_id, stake_pool_id=stake_pool_id, kind=int(kind))
        return dist

    def init_reward_entry(self, *, distributor_id: str, staked_asset_id: str, multiplier: int = 1) -> RewardEntry:
        self.get_distributor(distributor_id)
        entry_id = find_reward_entry_id(distributor_id, staked_asset_id)
        entry = RewardEntry(
            entry_id=entry_id,
            distributor_id=distributor_id,
            staked_asset_id=str(staked_asset_id),
            multiplier=int(multiplier),
        )
        with self.locks.hold(_entry_key(entry_id)):
            if entry_id in self._entries:
                raise ClaimError("conflict", "entry_exists", {"entry_id": entry_id})
            self._entries[entry_id] = entry
        return entry

    # ---- reads ----

    def get_distributor(self, distributor_id: str) -> RewardDistributor:
        d = self._distributors.get(distributor_id)
        if d is None:
            raise ClaimError("not_found", "distributor_not_found", {"distributor_id": distributor_id})
        return d

    def get_entry(self, entry_id: str) -> RewardEntry:
        e = self._entries.get(entry_id)
        if e is None:
            raise ClaimError("not_found", "entry_not_found", {"entry_id": entry_id})
        return e

    # ---- claim ----

    def claim(
        self,
        *,
        entry_id: str,
        stake_entry_id: str,
        destination: str,
        treasury_account: Optional[str] = None,
        claimant: Optional[str] = None,
    ) -> ClaimOutcome:
        entry0 = self.get_entry(entry_id)
        dist_id = entry0.distributor_id
        keys = [_dist_key(dist_id), _entry_key(entry_id)]
        if treasury_account:
            keys.append(_account_key(treasury_account))

        try:
            with self.locks.hold(*keys):
                entry = self.get_entry(entry_id)
                distributor = self.get_distributor(dist_id)
                stake = self.stakes.get_stake_record(stake_entry_id)
                ctx = PayoutContext(
                    custody=self.custody,
                    authority=self._authorities[dist_id],
                    destination=destination,
                    treasury_account=treasury_account,
                )
                validate_claim_accounts(entry, distributor, stake, ctx, claimant=claimant)

                outcome = claim(entry, distributor, stake, ctx)

                self._distributors[dist_id] = outcome.distributor
                self._entries[entry_id] = outcome.entry
        except ClaimError as e:
            report_failed(entry_id, e)
            raise

        report_committed(outcome)
        return outcome


def _dist_key(distributor_id: str) -> str:
    return f"distributor:{distributor_id}"


def _entry_key(entry_id: str) -> str:
    return f"entry:{entry_id}"


def _account_key(account_id: str) -> str:
    return f"account:{account_id}"


__all__ = ["RecordLocks", "RewardEngine"]
