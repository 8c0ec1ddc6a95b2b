from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    # must never raise; a missing chain is reported, not thrown
    ch = getattr(request.app.state, "chain", None)
    return {
        "ok": True,
        "service": "poa-ledger",
        "version": "v1",
        "ts_ms": int(time.time() * 1000),
        "chain_id": getattr(ch, "chain_id", None),
        "chain_ready": ch is not None,
    }
