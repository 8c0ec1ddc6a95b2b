from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from poaledger.api.routes_public_parts.common import _chain, _int_param

router = APIRouter()

Json = Dict[str, Any]

_MAX_LIMIT = 500


@router.get("/events")
def events(
    request: Request,
    address: Optional[str] = None,
    kind: Optional[str] = None,
    after: Optional[str] = None,
    limit: Optional[str] = None,
) -> Json:
    """Committed event log, oldest first. Page with `after=<last seq>`."""
    ch = _chain(request)
    after_seq = _int_param(after, -1)
    lim = max(1, min(_MAX_LIMIT, _int_param(limit, 100)))

    with request.app.state.chain_lock:
        rows = [e for e in ch.events_for(address, kind=kind) if int(e.get("seq", -1)) > after_seq]
    page = rows[:lim]
    return {
        "ok": True,
        "events": page,
        "next_after": int(page[-1]["seq"]) if len(rows) > lim else None,
    }
