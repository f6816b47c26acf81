# src/stakereward/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from stakereward.api.routes_public_parts.claims import router as claims_router
from stakereward.api.routes_public_parts.distributors import router as distributors_router
from stakereward.api.routes_public_parts.entries import router as entries_router
from stakereward.api.routes_public_parts.health import router as health_router
from stakereward.api.routes_public_parts.metrics import router as metrics_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(distributors_router, prefix="/v1", tags=["distributors"])
public_router.include_router(entries_router, prefix="/v1", tags=["entries"])
public_router.include_router(claims_router, prefix="/v1", tags=["claims"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
