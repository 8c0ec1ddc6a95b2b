# src/poaledger/runtime/apply/token_ledger.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from poaledger.ledger import balances
from poaledger.ledger.dividends import settle_payout
from poaledger.ledger.stages import Stage, require_stage
from poaledger.runtime.apply.token_gates import (
    Token,
    payload_str,
    payload_uint,
    require_not_paused,
    require_whitelisted,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def _transfer_guards(token: Token, ctx: "CallContext", to: str) -> None:
    require_not_paused(token, ctx)
    require_stage(token, Stage.Active, action=ctx.method)
    if bool(token.get("whitelist_transfers")):
        require_whitelisted(token, ctx, to)


def _apply_transfer(token: Token, ctx: "CallContext") -> Json:
    to = payload_str(ctx, "to")
    amount = payload_uint(ctx, "amount")
    _transfer_guards(token, ctx, to)

    balances.transfer(token, ctx.sender, to, amount, settle=settle_payout)
    ctx.emit("Transfer", parties={"from": ctx.sender, "to": to}, amounts={"amount": amount})
    return {"applied": "TRANSFER", "from": ctx.sender, "to": to, "amount": amount}


def _apply_approve(token: Token, ctx: "CallContext") -> Json:
    require_not_paused(token, ctx)
    spender = payload_str(ctx, "spender")
    amount = payload_uint(ctx, "amount")

    balances.approve(token, ctx.sender, spender, amount)
    ctx.emit("Approval", parties={"owner": ctx.sender, "spender": spender}, amounts={"amount": amount})
    return {"applied": "APPROVE", "owner": ctx.sender, "spender": spender, "amount": amount}


def _apply_transfer_from(token: Token, ctx: "CallContext") -> Json:
    frm = payload_str(ctx, "from")
    to = payload_str(ctx, "to")
    amount = payload_uint(ctx, "amount")
    _transfer_guards(token, ctx, to)

    balances.transfer_from(token, ctx.sender, frm, to, amount, settle=settle_payout)
    ctx.emit("Transfer", parties={"from": frm, "to": to, "spender": ctx.sender}, amounts={"amount": amount})
    return {"applied": "TRANSFER_FROM", "from": frm, "to": to, "amount": amount}


def apply_token_ledger(token: Token, ctx: "CallContext") -> Optional[Json]:
    m = ctx.method
    if m == "TRANSFER":
        return _apply_transfer(token, ctx)
    if m == "APPROVE":
        return _apply_approve(token, ctx)
    if m == "TRANSFER_FROM":
        return _apply_transfer_from(token, ctx)
    return None


__all__ = ["apply_token_ledger"]
