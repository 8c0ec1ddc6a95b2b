from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from poaledger.api.routes_public_parts.common import _chain, _require_contract, _sync_clock
from poaledger.api.schemas import CallRequest

router = APIRouter()

Json = Dict[str, Any]


def _submit(request: Request, address: str, body: CallRequest, *codes: str) -> Json:
    """Run one call and return its receipt. Rejections are receipts too (ok=false)."""
    ch = _chain(request)
    with request.app.state.chain_lock:
        _require_contract(ch, address, *codes)
        _sync_clock(ch)
        receipt = ch.submit(address, body.model_dump())
        receipt["now"] = int(ch.now)
    return receipt


@router.post("/tokens/{address}/calls")
def token_call(request: Request, address: str, body: CallRequest) -> Json:
    return _submit(request, address, body, "PoaProxy")


@router.post("/contracts/{address}/calls")
def contract_call(request: Request, address: str, body: CallRequest) -> Json:
    return _submit(request, address, body)
