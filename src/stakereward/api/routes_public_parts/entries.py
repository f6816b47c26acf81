from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakereward.api.routes_public_parts.common import _store

router = APIRouter()


@router.get("/entries/{entry_id}")
def get_entry(entry_id: str, request: Request) -> Dict[str, Any]:
    e = _store(request).get_entry(entry_id)
    return {"ok": True, "entry": e.to_dict()}
