# src/stakereward/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from stakereward.runtime.event_log import log_event

Json = Dict[str, Any]

# Claim fields a request may carry into its access log line.
CLAIM_LOG_FIELDS = (
    "entry_id",
    "distributor_id",
    "stake_entry_id",
    "destination",
    "amount",
    "seconds",
    "noop_reason",
    "error_code",
)


def configure_structured_logging() -> None:
    """Send stakereward.* JSON lines to stdout.

    Level comes from STAKEREWARD_LOG_LEVEL (default INFO). uvicorn's access
    log is quieted because RequestLogMiddleware already writes one line per
    request. Safe to call more than once.
    """
    level_name = (os.environ.get("STAKEREWARD_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    app_log = logging.getLogger("stakereward")
    app_log.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if getattr(app_log, "_stakereward_configured", False):  # type: ignore[attr-defined]
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    app_log.addHandler(handler)
    setattr(app_log, "_stakereward_configured", True)  # type: ignore[attr-defined]


def note_claim(request: Request, **fields: Any) -> None:
    """Attach claim fields to the current request's access log line."""
    cur = getattr(request.state, "claim_log", None)
    if cur is None:
        cur = {}
        request.state.claim_log = cur
    for k, v in fields.items():
        if k in CLAIM_LOG_FIELDS and v is not None:
            cur[k] = v


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One JSON line per request; claim requests log as `claim_request`.

    STAKEREWARD_LOG_REQUESTS=0 turns it off (default on). Requests that went
    through note_claim() carry the claim's entry, payout and error fields.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("STAKEREWARD_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("stakereward.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            claim_fields: Json = dict(getattr(request.state, "claim_log", None) or {})
            log_event(
                self._logger,
                "claim_request" if claim_fields else "http_request",
                level=logging.WARNING if status >= 500 else logging.INFO,
                request_id=request_id,
                method=request.method,
                path=str(request.url.path or ""),
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=err,
                **claim_fields,
            )
