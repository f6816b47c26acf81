from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakereward.api.routes_public_parts.common import _store

router = APIRouter()


@router.get("/distributors/{distributor_id}")
def get_distributor(distributor_id: str, request: Request) -> Dict[str, Any]:
    d = _store(request).get_distributor(distributor_id)
    return {"ok": True, "distributor": d.to_dict()}
