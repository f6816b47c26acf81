from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakereward.api.routes_public_parts.common import _store
from stakereward.api.schemas import ClaimRequest
from stakereward.api.structured_logging import note_claim
from stakereward.runtime.claim import outcome_to_json

router = APIRouter()


@router.post("/claims")
def post_claim(body: ClaimRequest, request: Request) -> Dict[str, Any]:
    """Claim accrued rewards for one entry.

    Validation, accrual, payout and record updates run in one SQLite write
    transaction; a refusal at any step leaves nothing changed.
    """
    note_claim(
        request,
        entry_id=body.reward_entry_id,
        distributor_id=body.reward_distributor_id,
        stake_entry_id=body.stake_entry_id,
        destination=body.destination_account,
    )
    outcome = _store(request).claim(
        entry_id=body.reward_entry_id,
        distributor_id=body.reward_distributor_id,
        stake_entry_id=body.stake_entry_id,
        destination=body.destination_account,
        treasury_account=body.treasury_account,
        claimant=body.claimant,
    )
    note_claim(
        request,
        distributor_id=outcome.distributor.distributor_id,
        amount=int(outcome.amount),
        seconds=int(outcome.seconds),
        noop_reason=outcome.noop_reason,
    )
    out: Dict[str, Any] = {"ok": True}
    out.update(outcome_to_json(outcome))
    return out
