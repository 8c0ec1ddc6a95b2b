from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import Request

from poaledger.api.errors import ApiError
from poaledger.runtime.chain import Chain

Json = Dict[str, Any]


def _chain(request: Request) -> Chain:
    ch = getattr(request.app.state, "chain", None)
    if ch is None:
        raise ApiError.internal("not_ready", "chain not attached to app.state", {})
    return ch


def _sync_clock(ch: Chain) -> int:
    """Bring the chain clock up to wall time. It never moves backwards."""
    wall = int(time.time())
    if wall > ch.now:
        ch.set_time(wall)
    return ch.now


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        return int(s) if s else int(default)
    except ValueError:
        return int(default)


def _require_contract(ch: Chain, address: str, *codes: str) -> str:
    c = ch.contracts.get(address)
    if not isinstance(c, dict):
        raise ApiError.not_found("not_found", "no contract at address", {"address": address})
    code = str(c.get("code") or "")
    if codes and code not in codes:
        raise ApiError.bad_request("wrong_contract", f"address is a {code}", {"address": address, "code": code})
    return code
