from __future__ import annotations

from collections import Counter
from typing import Any, Dict

from fastapi import APIRouter, Request

from poaledger.api.errors import ApiError
from poaledger.api.routes_public_parts.common import _chain
from poaledger.api.schemas import AdvanceTimeRequest
from poaledger.runtime.ecosystem import ecosystem_from_chain

router = APIRouter()

Json = Dict[str, Any]


@router.get("/status")
def status(request: Request) -> Json:
    """
    Chain status summary. Mounted under /v1:
      GET /v1/status
    """
    ch = _chain(request)
    with request.app.state.chain_lock:
        eco = ecosystem_from_chain(ch)
        codes = Counter(str(c.get("code")) for c in ch.contracts.values())
        return {
            "ok": True,
            "chain_id": ch.chain_id,
            "mode": getattr(request.app.state, "mode", "dev"),
            "now": int(ch.now),
            "contracts": dict(sorted(codes.items())),
            "events": len(ch.events),
            "ecosystem": eco.to_json() if eco is not None else None,
        }


@router.post("/dev/advance")
def dev_advance(request: Request, body: AdvanceTimeRequest) -> Json:
    """Move the chain clock forward. Disabled in prod."""
    if getattr(request.app.state, "mode", "dev") == "prod":
        raise ApiError.forbidden("dev_only", "clock control is disabled in prod", {})
    ch = _chain(request)
    with request.app.state.chain_lock:
        now = ch.advance(body.seconds)
        ch.persist()
    return {"ok": True, "now": now}
