from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; record shapes are owned by
stakereward.ledger.types.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ClaimRequest(BaseModel):
    reward_entry_id: str = Field(..., min_length=1, description="Reward entry id (re:...)")
    reward_distributor_id: str = Field(..., min_length=1, description="Reward distributor id (rd:...)")
    stake_entry_id: str = Field(..., min_length=1, description="Stake entry in the external stake ledger")
    destination_account: str = Field(..., min_length=1, description="Reward-token account receiving the payout")

    # Required for custodian distributors; ignored by issuers.
    treasury_account: Optional[str] = Field(default=None, description="Treasury token account (custodian)")

    # When set, the destination must be owned by this participant.
    claimant: Optional[str] = Field(default=None, description="Claiming participant")

    model_config = {"extra": "forbid"}
