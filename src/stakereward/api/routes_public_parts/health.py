from __future__ import annotations

import os
import time

from fastapi import APIRouter, Request

from stakereward import __version__

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    # health must never crash
    return {
        "ok": True,
        "service": "stakereward",
        "version": __version__,
        "ts_ms": _now_ms(),
        "node_id": os.environ.get("STAKEREWARD_NODE_ID") or None,
        "mode": (os.environ.get("STAKEREWARD_MODE") or "prod").strip().lower(),
    }


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    """Readiness check: ok only once a store is attached and its DB opens."""
    store = getattr(request.app.state, "store", None)
    ready = False
    if store is not None:
        try:
            with store.db.connection() as con:
                con.execute("SELECT 1;").fetchone()
            ready = True
        except Exception:
            ready = False
    return {"ok": ready, "service": "stakereward", "ts_ms": _now_ms(), "store_attached": store is not None}
