"""stakereward.ledger.types

Persisted record model for the reward ledger.

This module defines:
  - RewardDistributor: per-pool emission config + lifetime issued counter
  - RewardEntry: per-participant, per-staked-asset claim record
  - StakeRecord: read-only view of the external stake ledger
  - DistributorKind: payout mechanism selector

Records are immutable; a claim produces replacement records which the caller
commits as a unit. to_dict()/from_dict() preserve every field so any storage
backend can round-trip them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from stakereward.ledger.constants import DEFAULT_MULTIPLIER

Json = Dict[str, Any]


class DistributorKind(IntEnum):
    ISSUER = 0
    CUSTODIAN = 1


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"record schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


def _coerce_opt_int(v: Any, *, field: str) -> Optional[int]:
    if v is None:
        return None
    return _coerce_int(v, field=field)


def _coerce_str(v: Any, *, field: str) -> str:
    s = str(v).strip() if v is not None else ""
    if not s:
        raise ValueError(f"record schema error: field '{field}' must be a non-empty string")
    return s


@dataclass(frozen=True, slots=True)
class RewardDistributor:
    distributor_id: str
    stake_pool_id: str
    reward_token_id: str
    reward_amount: int
    reward_duration_seconds: int
    # Stored as a raw int so unknown kinds survive a round-trip and fail at claim time.
    kind: int
    signing_authority: str
    max_supply: Optional[int] = None
    rewards_issued: int = 0

    @property
    def capped(self) -> bool:
        return self.max_supply is not None

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "RewardDistributor":
        return cls(
            distributor_id=_coerce_str(d.get("distributor_id"), field="distributor_id"),
            stake_pool_id=_coerce_str(d.get("stake_pool_id"), field="stake_pool_id"),
            reward_token_id=_coerce_str(d.get("reward_token_id"), field="reward_token_id"),
            reward_amount=_coerce_int(d.get("reward_amount"), field="reward_amount"),
            reward_duration_seconds=_coerce_int(d.get("reward_duration_seconds"), field="reward_duration_seconds"),
            kind=_coerce_int(d.get("kind"), field="kind"),
            signing_authority=_coerce_str(d.get("signing_authority"), field="signing_authority"),
            max_supply=_coerce_opt_int(d.get("max_supply"), field="max_supply"),
            rewards_issued=_coerce_int(d.get("rewards_issued", 0), field="rewards_issued"),
        )


@dataclass(frozen=True, slots=True)
class RewardEntry:
    entry_id: str
    distributor_id: str
    staked_asset_id: str
    multiplier: int = DEFAULT_MULTIPLIER
    reward_seconds_received: int = 0
    reward_amount_received: int = 0

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "RewardEntry":
        return cls(
            entry_id=_coerce_str(d.get("entry_id"), field="entry_id"),
            distributor_id=_coerce_str(d.get("distributor_id"), field="distributor_id"),
            staked_asset_id=_coerce_str(d.get("staked_asset_id"), field="staked_asset_id"),
            multiplier=_coerce_int(d.get("multiplier", DEFAULT_MULTIPLIER), field="multiplier"),
            reward_seconds_received=_coerce_int(d.get("reward_seconds_received", 0), field="reward_seconds_received"),
            reward_amount_received=_coerce_int(d.get("reward_amount_received", 0), field="reward_amount_received"),
        )


@dataclass(frozen=True, slots=True)
class StakeRecord:
    """Read-only snapshot of one stake ledger entry."""

    stake_entry_id: str
    stake_pool_id: str
    staked_asset_id: str
    total_stake_seconds: int

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "StakeRecord":
        return cls(
            stake_entry_id=_coerce_str(d.get("stake_entry_id"), field="stake_entry_id"),
            stake_pool_id=_coerce_str(d.get("stake_pool_id"), field="stake_pool_id"),
            staked_asset_id=_coerce_str(d.get("staked_asset_id"), field="staked_asset_id"),
            total_stake_seconds=_coerce_int(d.get("total_stake_seconds", 0), field="total_stake_seconds"),
        )


__all__ = ["DistributorKind", "RewardDistributor", "RewardEntry", "StakeRecord"]
