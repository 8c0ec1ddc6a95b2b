# src/poaledger/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from poaledger.api.routes_public_parts.calls import router as calls_router
from poaledger.api.routes_public_parts.events import router as events_router
from poaledger.api.routes_public_parts.health import router as health_router
from poaledger.api.routes_public_parts.status import router as status_router
from poaledger.api.routes_public_parts.tokens import router as tokens_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(status_router, prefix="/v1", tags=["status"])
public_router.include_router(tokens_router, prefix="/v1", tags=["tokens"])
public_router.include_router(calls_router, prefix="/v1", tags=["calls"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])
