# src/poaledger/runtime/bbk_token.py
from __future__ import annotations

"""Governance token ("BBK") with its distribution sale.

The token is created paused with the whole initial supply split between the
contract itself and a bonus address. During the sale the owner distributes
contributor tokens out of the contract balance, keeping the company share
back. Finalizing burns what was not distributed, so contributors end up with
their share of the smaller supply, and approves the company share to the
company account. Transfers and approvals need the token unpaused.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from poaledger.ledger import balances
from poaledger.ledger.constants import DECIMALS
from poaledger.runtime.errors import (
    AuthorizationViolation,
    InsufficientBalance,
    InvalidArgument,
    StageGuardViolation,
    UnknownMethod,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]

BONUS_SHARE = 14
COMPANY_SHARE = 35
CONTRIBUTOR_SHARE = 51


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _amount(ctx: "CallContext", *, allow_zero: bool = False) -> int:
    v = ctx.payload.get("amount")
    if isinstance(v, bool) or not isinstance(v, int) or v < 0 or (v == 0 and not allow_zero):
        raise InvalidArgument("bad_amount", {"amount": v})
    return int(v)


def _address(ctx: "CallContext", key: str) -> str:
    s = _as_str(ctx.payload.get(key))
    if not s:
        raise InvalidArgument(f"missing_{key}", {})
    return s


def _require_owner(st: Json, ctx: "CallContext") -> None:
    if ctx.sender != st.get("owner"):
        raise AuthorizationViolation("owner_required", {"method": ctx.method, "sender": ctx.sender})


def _require_sale_active(st: Json, ctx: "CallContext") -> None:
    if not st.get("token_sale_active"):
        raise StageGuardViolation("token_sale_not_active", {"method": ctx.method})


def _require_not_paused(st: Json, ctx: "CallContext") -> None:
    if st.get("paused"):
        raise StageGuardViolation("token_paused", {"method": ctx.method})


def _recipient(st: Json, ctx: "CallContext") -> str:
    to = _address(ctx, "to")
    if to in (st.get("owner"), ctx.address):
        raise InvalidArgument("bad_recipient", {"to": to})
    return to


# ---------------------------------------------------------------------------
# Sale
# ---------------------------------------------------------------------------


def _apply_distribute_tokens(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    _require_sale_active(st, ctx)
    to = _recipient(st, ctx)
    amount = _amount(ctx)

    distributable = balances.balance_of(st, ctx.address) - _as_int(st.get("company_tokens"))
    if amount > distributable:
        raise InsufficientBalance("exceeds_distributable_tokens", {"distributable": distributable, "amount": amount})

    balances.transfer(st, ctx.address, to, amount)
    ctx.emit("Transfer", parties={"from": ctx.address, "to": to}, amounts={"amount": amount})
    return {"applied": "DISTRIBUTE_TOKENS", "to": to, "amount": amount}


def _apply_distribute_bonus_tokens(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    to = _recipient(st, ctx)
    amount = _amount(ctx)
    bonus = str(st.get("bonus_address") or "")

    balances.transfer(st, bonus, to, amount)
    ctx.emit("Transfer", parties={"from": bonus, "to": to}, amounts={"amount": amount})
    return {"applied": "DISTRIBUTE_BONUS_TOKENS", "to": to, "amount": amount}


def _apply_change_company_account(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    account = _address(ctx, "address")
    if account == ctx.address or account not in ctx.chain.contracts:
        raise InvalidArgument("company_account_must_be_a_contract", {"address": account})

    st["company_account"] = account
    ctx.emit("CompanyAccountChanged", parties={"account": account})
    return {"applied": "CHANGE_COMPANY_ACCOUNT", "company_account": account}


def _apply_finalize_token_sale(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    _require_sale_active(st, ctx)
    account = str(st.get("company_account") or "")
    if not account:
        raise InvalidArgument("company_account_not_set", {})

    initial = _as_int(st.get("initial_supply"))
    bonus = _as_int(st.get("bonus_tokens"))
    company = _as_int(st.get("company_tokens"))
    distributed = initial - bonus - balances.balance_of(st, ctx.address)
    new_total = distributed + bonus + company
    burned = _as_int(st.get("total_supply")) - new_total

    # The contract keeps exactly the company share, spendable by the account.
    balances.burn(st, ctx.address, burned)
    balances.approve(st, ctx.address, account, company)
    st["total_supply"] = new_total
    st["token_sale_active"] = False

    ctx.emit("Burn", parties={"holder": ctx.address}, amounts={"amount": burned})
    ctx.emit("TokenSaleFinalized", parties={"company_account": account}, amounts={"total_supply": new_total})
    return {"applied": "FINALIZE_TOKEN_SALE", "total_supply": new_total, "burned": burned}


def _apply_set_paused(st: Json, ctx: "CallContext", paused: bool) -> Json:
    _require_owner(st, ctx)
    if bool(st.get("paused")) == paused:
        raise StageGuardViolation("already_paused" if paused else "not_paused", {})
    st["paused"] = paused
    ctx.emit("Pause" if paused else "Unpause")
    return {"applied": ctx.method, "paused": paused}


# ---------------------------------------------------------------------------
# Token surface
# ---------------------------------------------------------------------------


def _apply_transfer(st: Json, ctx: "CallContext") -> Json:
    _require_not_paused(st, ctx)
    to = _address(ctx, "to")
    amount = _amount(ctx)
    balances.transfer(st, ctx.sender, to, amount)
    ctx.emit("Transfer", parties={"from": ctx.sender, "to": to}, amounts={"amount": amount})
    return {"applied": "TRANSFER", "to": to, "amount": amount}


def _apply_transfer_from(st: Json, ctx: "CallContext") -> Json:
    _require_not_paused(st, ctx)
    frm = _address(ctx, "from")
    to = _address(ctx, "to")
    amount = _amount(ctx)
    balances.transfer_from(st, ctx.sender, frm, to, amount)
    ctx.emit("Transfer", parties={"from": frm, "to": to, "spender": ctx.sender}, amounts={"amount": amount})
    return {"applied": "TRANSFER_FROM", "from": frm, "to": to, "amount": amount}


def _apply_approval(st: Json, ctx: "CallContext") -> Json:
    _require_not_paused(st, ctx)
    spender = _address(ctx, "spender")
    amount = _amount(ctx, allow_zero=True)
    current = balances.allowance_of(st, ctx.sender, spender)

    if ctx.method == "INCREASE_APPROVAL":
        allowed = current + amount
    elif ctx.method == "DECREASE_APPROVAL":
        allowed = max(0, current - amount)
    else:
        allowed = amount

    balances.approve(st, ctx.sender, spender, allowed)
    ctx.emit("Approval", parties={"owner": ctx.sender, "spender": spender}, amounts={"amount": allowed})
    return {"applied": ctx.method, "spender": spender, "allowance": allowed}


class BbkToken:
    name = "BbkToken"

    @staticmethod
    def init_storage(owner: str, *, address: str, bonus_address: str, initial_supply: int) -> Json:
        """Storage for a token that will live at `address`, sale open and paused."""
        if int(initial_supply) <= 0:
            raise ValueError("initial_supply must be > 0")
        if not bonus_address or bonus_address == address:
            raise ValueError("bonus_address must be a separate account")
        supply = int(initial_supply)
        bonus = supply * BONUS_SHARE // 100
        return {
            "owner": owner,
            "name": "BrickblockToken",
            "symbol": "BBK",
            "decimals": DECIMALS,
            "initial_supply": supply,
            "total_supply": supply,
            "bonus_tokens": bonus,
            "company_tokens": supply * COMPANY_SHARE // 100,
            "bonus_address": bonus_address,
            "company_account": "",
            "balances": {address: supply - bonus, bonus_address: bonus},
            "allowed": {},
            "paused": True,
            "token_sale_active": True,
        }

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        m = ctx.method
        if ctx.value:
            raise InvalidArgument("non_payable", {"method": m, "value": ctx.value})

        out: Optional[Json] = None
        if m == "DISTRIBUTE_TOKENS":
            out = _apply_distribute_tokens(storage, ctx)
        elif m == "DISTRIBUTE_BONUS_TOKENS":
            out = _apply_distribute_bonus_tokens(storage, ctx)
        elif m == "CHANGE_COMPANY_ACCOUNT":
            out = _apply_change_company_account(storage, ctx)
        elif m == "FINALIZE_TOKEN_SALE":
            out = _apply_finalize_token_sale(storage, ctx)
        elif m == "PAUSE":
            out = _apply_set_paused(storage, ctx, True)
        elif m == "UNPAUSE":
            out = _apply_set_paused(storage, ctx, False)
        elif m == "TRANSFER":
            out = _apply_transfer(storage, ctx)
        elif m == "TRANSFER_FROM":
            out = _apply_transfer_from(storage, ctx)
        elif m in ("APPROVE", "INCREASE_APPROVAL", "DECREASE_APPROVAL"):
            out = _apply_approval(storage, ctx)

        if out is None:
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": m})
        return out

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "balance_of":
            return balances.balance_of(storage, _as_str(args.get("holder")))
        if name == "allowance_of":
            return balances.allowance_of(storage, _as_str(args.get("owner")), _as_str(args.get("spender")))
        if name in (
            "owner",
            "name",
            "symbol",
            "decimals",
            "initial_supply",
            "total_supply",
            "bonus_tokens",
            "company_tokens",
            "bonus_address",
            "company_account",
        ):
            return storage.get(name)
        if name in ("paused", "token_sale_active"):
            return bool(storage.get(name))
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


__all__ = ["BONUS_SHARE", "BbkToken", "COMPANY_SHARE", "CONTRIBUTOR_SHARE"]
