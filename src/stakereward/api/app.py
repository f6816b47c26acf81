# src/stakereward/api/app.py
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stakereward.api.errors import ApiError
from stakereward.api.routes_public import public_router
from stakereward.api.structured_logging import RequestLogMiddleware, configure_structured_logging, note_claim
from stakereward.runtime.engine_config import apply_engine_config_to_env, load_engine_config
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.event_log import log_event
from stakereward.runtime.sqlite_db import SqliteRewardStore
from stakereward.runtime.store_boot import build_store as _build_store

log = logging.getLogger("stakereward.api")


def build_store() -> SqliteRewardStore:
    """Build the reward store for API runtime.

    This wrapper exists so tests can monkeypatch `stakereward.api.app.build_store`
    without reaching into runtime modules.
    """
    return _build_store()


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(ClaimError)
    async def _claim_error(request: Request, exc: ClaimError) -> JSONResponse:
        api_exc = ApiError.from_claim_error(exc)
        note_claim(request, error_code=exc.code)
        log_event(log, "api_claim_error", level=logging.WARNING, path=str(request.url.path), error=str(exc))
        return JSONResponse(status_code=api_exc.status_code, content=api_exc.to_body())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load engine config (STAKEREWARD_CONFIG_PATH) and
        attach app.state.store via build_store()
      - False: keep lightweight for unit tests; app.state.store is None
    """
    if boot_runtime:
        cfg_path = os.environ.get("STAKEREWARD_CONFIG_PATH")
        if cfg_path:
            apply_engine_config_to_env(load_engine_config(config_path=cfg_path))

    configure_structured_logging()
    mode = os.environ.get("STAKEREWARD_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Stake Reward Distributor API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Stake Reward Distributor API")

    app.state.store = build_store() if boot_runtime else None

    app.add_middleware(RequestLogMiddleware)
    _install_error_handlers(app)

    app.include_router(public_router)

    return app
