from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from poaledger.api.errors import ApiError
from poaledger.api.routes_public_parts.common import _chain, _require_contract
from poaledger.runtime.chain import Chain
from poaledger.runtime.errors import ApplyError

router = APIRouter()

Json = Dict[str, Any]


def _view(ch: Chain, address: str, name: str, /, **args: Any) -> Any:
    try:
        return ch.view(address, name, **args)
    except ApplyError as e:
        raise ApiError.from_apply_error(e) from e


@router.get("/tokens/{address}")
def token_summary(request: Request, address: str) -> Json:
    ch = _chain(request)
    with request.app.state.chain_lock:
        _require_contract(ch, address, "PoaProxy")
        summary = _view(ch, address, "summary")
    return {"ok": True, "token": summary}


@router.get("/tokens/{address}/holders/{holder}")
def token_holder(request: Request, address: str, holder: str) -> Json:
    ch = _chain(request)
    # One lock for every field so the row is a single consistent read.
    with request.app.state.chain_lock:
        _require_contract(ch, address, "PoaProxy")
        return {
            "ok": True,
            "token": address,
            "holder": holder,
            "balance": _view(ch, address, "balance_of", holder=holder),
            "current_payout": _view(ch, address, "current_payout", holder=holder),
            "unclaimed_payout": _view(ch, address, "unclaimed_payout", holder=holder),
            "investment_amount_in_wei": _view(ch, address, "investment_amount_per_user_in_wei", holder=holder),
            "fiat_investment_in_cents": _view(ch, address, "fiat_investment_in_cents", holder=holder),
        }
