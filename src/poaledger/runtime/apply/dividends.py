# src/poaledger/runtime/apply/dividends.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from poaledger.ledger import balances, dividends
from poaledger.ledger.stages import PAYOUT_STAGES, RECLAIM_STAGES, require_stage
from poaledger.runtime.apply.token_gates import Token, as_int, as_str, require_role
from poaledger.runtime.errors import NothingToClaim

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def _apply_payout(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "issuer", "custodian")
    require_stage(token, *PAYOUT_STAGES, action=ctx.method)

    out = dividends.distribute(token, ctx.value, fee_rate_permille=as_int(token.get("fee_rate_permille")))
    ctx.emit(
        "Payout",
        parties={"payer": ctx.sender},
        amounts={k: out[k] for k in ("amount", "fee", "distributable", "dust")},
    )
    if out["fee"]:
        ctx.call_contract(as_str(token.get("fee_manager")), "PAY_FEE", value=out["fee"])
    return {"applied": "PAYOUT", **out}


def _apply_claim(token: Token, ctx: "CallContext") -> Json:
    require_stage(token, *PAYOUT_STAGES, action=ctx.method)

    owed = dividends.take_claim(token, ctx.sender)
    ctx.emit("Claim", parties={"holder": ctx.sender}, amounts={"amount": owed})
    ctx.send(ctx.sender, owed)
    return {"applied": "CLAIM", "amount": owed}


def _burn_unsold_once(token: Token, ctx: "CallContext") -> int:
    """First reclaim after failure retires the supply nobody bought. Runs once."""
    if bool(token.get("unsold_burned")):
        return 0
    token["unsold_burned"] = True
    unsold = balances.balance_of(token, ctx.address)
    if unsold:
        balances.burn(token, ctx.address, unsold, settle=dividends.settle_payout)
    ctx.emit("UnsoldSupplyBurned", amounts={"burned": unsold, "total_supply": as_int(token.get("total_supply"))})
    return unsold


def _apply_reclaim(token: Token, ctx: "CallContext") -> Json:
    """Return a failed sale's wei to an eth investor, pro-rata of what was raised.

    Tokens bought with fiat carry no wei claim here; they stay on the books
    for the custodian to settle off chain.
    """
    require_stage(token, *RECLAIM_STAGES, action=ctx.method)
    burned = _burn_unsold_once(token, ctx)

    holder = ctx.sender
    held = balances.balance_of(token, holder)
    fiat_tokens = token["fiat_tokens"]
    eth_tokens = held - min(as_int(fiat_tokens.get(holder)), held)
    if eth_tokens <= 0:
        raise NothingToClaim("nothing_to_reclaim", {"holder": holder})

    eth_supply = as_int(token.get("eth_token_supply"))
    raised = as_int(token.get("funded_amount_in_wei"))
    payout = eth_tokens * raised // eth_supply

    balances.burn(token, holder, eth_tokens, settle=dividends.settle_payout)
    token["eth_token_supply"] = eth_supply - eth_tokens
    token["funded_amount_in_wei"] = raised - payout
    token["investment_amount_per_user_in_wei"][holder] = 0

    ctx.emit("Reclaim", parties={"holder": holder}, amounts={"tokens": eth_tokens, "amount": payout})
    ctx.send(holder, payout)
    return {"applied": "RECLAIM", "amount": payout, "tokens_burned": eth_tokens, "unsold_burned": burned}


def apply_dividends(token: Token, ctx: "CallContext") -> Optional[Json]:
    m = ctx.method
    if m == "PAYOUT":
        return _apply_payout(token, ctx)
    if m == "CLAIM":
        return _apply_claim(token, ctx)
    if m == "RECLAIM":
        return _apply_reclaim(token, ctx)
    return None


__all__ = ["apply_dividends"]
