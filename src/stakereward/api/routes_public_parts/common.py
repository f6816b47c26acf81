from __future__ import annotations

from fastapi import Request

from stakereward.api.errors import ApiError
from stakereward.runtime.sqlite_db import SqliteRewardStore


def _store(request: Request) -> SqliteRewardStore:
    st = getattr(request.app.state, "store", None)
    if st is None:
        raise ApiError.internal("not_ready", "store not attached to app.state", {})
    return st
