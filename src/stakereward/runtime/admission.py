# src/stakereward/runtime/admission.py
from __future__ import annotations

"""Boundary checks run before a claim.

claim() assumes the records it is handed belong together. These checks
establish that: the distributor serves the stake record's pool, the entry
tracks the stake record's asset, and the payout lands in a reward-token
account owned by the claimant. Failures are ClaimErrors raised before any
record or balance is touched.
"""

from typing import Optional

from stakereward.ledger.types import RewardDistributor, RewardEntry, StakeRecord
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.payout import PayoutContext


def validate_claim_accounts(
    entry: RewardEntry,
    distributor: RewardDistributor,
    stake_record: StakeRecord,
    ctx: PayoutContext,
    *,
    claimant: Optional[str] = None,
) -> None:
    if distributor.stake_pool_id != stake_record.stake_pool_id:
        raise ClaimError(
            "invalid_stake_pool",
            "distributor_pool_mismatch",
            {"distributor_pool": distributor.stake_pool_id, "stake_pool": stake_record.stake_pool_id},
        )

    if entry.distributor_id != distributor.distributor_id:
        raise ClaimError(
            "invalid_stake_entry",
            "entry_distributor_mismatch",
            {"entry_id": entry.entry_id, "distributor_id": distributor.distributor_id},
        )

    if stake_record.staked_asset_id != entry.staked_asset_id:
        raise ClaimError(
            "invalid_stake_entry",
            "staked_asset_mismatch",
            {"entry_asset": entry.staked_asset_id, "stake_asset": stake_record.staked_asset_id},
        )

    dest_token = ctx.custody.token_of(ctx.destination)
    if dest_token is None:
        raise ClaimError("invalid_destination", "destination_not_found", {"destination": ctx.destination})
    if dest_token != distributor.reward_token_id:
        raise ClaimError(
            "invalid_reward_token",
            "destination_token_mismatch",
            {"destination_token": dest_token, "reward_token": distributor.reward_token_id},
        )

    if claimant is not None and ctx.custody.owner_of(ctx.destination) != claimant:
        raise ClaimError("invalid_destination", "destination_not_owned_by_claimant", {"destination": ctx.destination})

    if ctx.treasury_account:
        treasury_token = ctx.custody.token_of(ctx.treasury_account)
        if treasury_token is not None and treasury_token != distributor.reward_token_id:
            raise ClaimError(
                "invalid_reward_token",
                "treasury_token_mismatch",
                {"treasury_token": treasury_token, "reward_token": distributor.reward_token_id},
            )
