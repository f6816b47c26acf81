# src/stakereward/runtime/stake_ledger.py
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Tuple

from stakereward.ledger.types import StakeRecord
from stakereward.runtime.errors import ClaimError


class StakeTimeProvider(ABC):
    """Read-only view of the external staking subsystem.

    A staked asset has at most one stake entry per pool, so the
    (stake_pool_id, staked_asset_id) pair names a stake total. The same asset
    id may be staked in several pools.
    """

    @abstractmethod
    def get_total_stake_seconds(self, stake_pool_id: str, staked_asset_id: str) -> int:
        pass

    @abstractmethod
    def get_stake_record(self, stake_entry_id: str) -> StakeRecord:
        pass


def stake_asset_not_found(stake_pool_id: str, staked_asset_id: str) -> ClaimError:
    return ClaimError(
        "not_found",
        "stake_asset_not_found",
        {"stake_pool_id": stake_pool_id, "staked_asset_id": staked_asset_id},
    )


def stake_asset_linked(stake_pool_id: str, staked_asset_id: str, stake_entry_id: str) -> ClaimError:
    return ClaimError(
        "conflict",
        "stake_asset_already_linked",
        {"stake_pool_id": stake_pool_id, "staked_asset_id": staked_asset_id, "stake_entry_id": stake_entry_id},
    )


class InMemoryStakeLedger(StakeTimeProvider):
    """Stake ledger fed by the staking subsystem; totals never decrease."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, StakeRecord] = {}
        self._by_asset: Dict[Tuple[str, str], str] = {}

    def record_stake_seconds(
        self,
        stake_entry_id: str,
        *,
        stake_pool_id: str,
        staked_asset_id: str,
        total_stake_seconds: int,
    ) -> StakeRecord:
        total = int(total_stake_seconds)
        pair = (stake_pool_id, staked_asset_id)
        with self._lock:
            cur = self._records.get(stake_entry_id)
            if cur is not None:
                if cur.stake_pool_id != stake_pool_id or cur.staked_asset_id != staked_asset_id:
                    raise ClaimError("conflict", "stake_entry_relinked", {"stake_entry_id": stake_entry_id})
                if total < cur.total_stake_seconds:
                    raise ClaimError(
                        "invalid_payload",
                        "stake_seconds_decreased",
                        {"stake_entry_id": stake_entry_id, "have": cur.total_stake_seconds, "got": total},
                    )
            elif pair in self._by_asset:
                raise stake_asset_linked(stake_pool_id, staked_asset_id, self._by_asset[pair])
            rec = StakeRecord(
                stake_entry_id=stake_entry_id,
                stake_pool_id=stake_pool_id,
                staked_asset_id=staked_asset_id,
                total_stake_seconds=total,
            )
            self._records[stake_entry_id] = rec
            self._by_asset[pair] = stake_entry_id
            return rec

    def get_stake_record(self, stake_entry_id: str) -> StakeRecord:
        with self._lock:
            rec = self._records.get(stake_entry_id)
        if rec is None:
            raise ClaimError("not_found", "stake_entry_not_found", {"stake_entry_id": stake_entry_id})
        return rec

    def get_total_stake_seconds(self, stake_pool_id: str, staked_asset_id: str) -> int:
        with self._lock:
            stake_entry_id = self._by_asset.get((stake_pool_id, staked_asset_id))
            if stake_entry_id is None:
                raise stake_asset_not_found(stake_pool_id, staked_asset_id)
            return int(self._records[stake_entry_id].total_stake_seconds)
