# src/poaledger/runtime/company_account.py
from __future__ import annotations

"""Company account: holds the company's BBK and what it earns.

Owner only. It pulls the company share approved at the end of the BBK sale,
locks and unlocks BBK in the fee share, claims fees there, and pays out
ether and ACT at any time. BBK itself can only leave the account once the
release time has passed.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from poaledger.ledger.constants import REG_BBK, REG_FEE_MANAGER
from poaledger.runtime.errors import (
    AuthorizationViolation,
    InsufficientBalance,
    InvalidArgument,
    NothingToClaim,
    StageGuardViolation,
    UnknownMethod,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _amount(ctx: "CallContext") -> int:
    v = ctx.payload.get("amount")
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise InvalidArgument("bad_amount", {"amount": v})
    return int(v)


def _recipient(ctx: "CallContext") -> str:
    to = _as_str(ctx.payload.get("to"))
    if not to:
        raise InvalidArgument("missing_to", {})
    return to


def _apply_pull_funds(st: Json, ctx: "CallContext") -> Json:
    bbk = ctx.resolve(REG_BBK)
    amount = _as_int(ctx.view(bbk, "allowance_of", owner=bbk, spender=ctx.address))
    if amount <= 0:
        raise NothingToClaim("no_company_funds", {"bbk": bbk})

    ctx.call_contract(bbk, "TRANSFER_FROM", payload={"from": bbk, "to": ctx.address, "amount": amount})
    ctx.emit("CompanyFundsPulled", amounts={"amount": amount})
    return {"applied": "PULL_FUNDS", "amount": amount}


def _apply_lock_bbk(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    bbk = ctx.resolve(REG_BBK)
    fee_share = ctx.resolve(REG_FEE_MANAGER)
    ctx.call_contract(bbk, "APPROVE", payload={"spender": fee_share, "amount": amount})
    ctx.call_contract(fee_share, "LOCK", payload={"amount": amount})
    return {"applied": "LOCK_BBK", "amount": amount}


def _apply_unlock_bbk(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    ctx.call_contract(ctx.resolve(REG_FEE_MANAGER), "UNLOCK", payload={"amount": amount})
    return {"applied": "UNLOCK_BBK", "amount": amount}


def _apply_claim_fee(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    out = ctx.call_contract(ctx.resolve(REG_FEE_MANAGER), "CLAIM_FEE", payload={"amount": amount})
    return {"applied": "CLAIM_FEE", "act_burned": amount, "wei": _as_int(out.get("wei"))}


def _apply_withdraw_eth_funds(st: Json, ctx: "CallContext") -> Json:
    to = _recipient(ctx)
    amount = _amount(ctx)
    have = ctx.chain.balance_of(ctx.address)
    if amount > have:
        raise InsufficientBalance("insufficient_eth", {"balance": have, "amount": amount})

    ctx.emit("EthWithdrawn", parties={"to": to}, amounts={"amount": amount})
    ctx.send(to, amount)
    return {"applied": "WITHDRAW_ETH_FUNDS", "to": to, "amount": amount}


def _apply_withdraw_act_funds(st: Json, ctx: "CallContext") -> Json:
    to = _recipient(ctx)
    amount = _amount(ctx)
    ctx.call_contract(ctx.resolve(REG_FEE_MANAGER), "TRANSFER", payload={"to": to, "amount": amount})
    return {"applied": "WITHDRAW_ACT_FUNDS", "to": to, "amount": amount}


def _apply_withdraw_bbk_funds(st: Json, ctx: "CallContext") -> Json:
    to = _recipient(ctx)
    amount = _amount(ctx)
    release = _as_int(st.get("release_time_of_company_bbks"))
    if ctx.now < release:
        raise StageGuardViolation("company_bbk_still_locked", {"now": ctx.now, "release_time": release})

    ctx.call_contract(ctx.resolve(REG_BBK), "TRANSFER", payload={"to": to, "amount": amount})
    return {"applied": "WITHDRAW_BBK_FUNDS", "to": to, "amount": amount}


class CompanyAccount:
    name = "CompanyAccount"

    @staticmethod
    def init_storage(owner: str, *, release_time: int) -> Json:
        return {"owner": owner, "release_time_of_company_bbks": int(release_time)}

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        m = ctx.method
        if ctx.value:
            raise InvalidArgument("non_payable", {"method": m, "value": ctx.value})
        if ctx.sender != storage.get("owner"):
            raise AuthorizationViolation("owner_required", {"method": m, "sender": ctx.sender})

        out: Optional[Json] = None
        if m == "PULL_FUNDS":
            out = _apply_pull_funds(storage, ctx)
        elif m == "LOCK_BBK":
            out = _apply_lock_bbk(storage, ctx)
        elif m == "UNLOCK_BBK":
            out = _apply_unlock_bbk(storage, ctx)
        elif m == "CLAIM_FEE":
            out = _apply_claim_fee(storage, ctx)
        elif m == "WITHDRAW_ETH_FUNDS":
            out = _apply_withdraw_eth_funds(storage, ctx)
        elif m == "WITHDRAW_ACT_FUNDS":
            out = _apply_withdraw_act_funds(storage, ctx)
        elif m == "WITHDRAW_BBK_FUNDS":
            out = _apply_withdraw_bbk_funds(storage, ctx)

        if out is None:
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": m})
        return out

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "owner":
            return storage.get("owner", "")
        if name == "release_time_of_company_bbks":
            return _as_int(storage.get("release_time_of_company_bbks"))
        if name == "eth_balance":
            return ctx.chain.balance_of(ctx.address)
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


__all__ = ["CompanyAccount"]
