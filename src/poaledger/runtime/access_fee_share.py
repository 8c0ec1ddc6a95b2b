# src/poaledger/runtime/access_fee_share.py
from __future__ import annotations

"""Fee share: protocol fees flow to holders who lock the governance token.

Governance tokens ("BBK") live in their own token contract. LOCK pulls BBK
from the sender (who must have approved this contract) into a locked balance
that earns access tokens ("ACT") through the same accumulator the asset token
uses for dividends: every fee paid mints `value * act_rate` ACT spread over
the total locked amount. UNLOCK sends the BBK back. Burning ACT through
CLAIM_FEE pays out `amount // act_rate` wei.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from poaledger.ledger import accumulator, balances
from poaledger.ledger.accumulator import AccumulatorKeys
from poaledger.ledger.constants import ACT_RATE
from poaledger.runtime.errors import (
    AuthorizationViolation,
    InsufficientBalance,
    InvalidArgument,
    UnknownMethod,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]

LOCK_KEYS = AccumulatorKeys(
    units="locked_balances",
    total_per_unit="total_act_per_locked",
    checkpoints="claimed_act_per_locked",
    unclaimed="act_balances",
)


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _amount(ctx: "CallContext", key: str = "amount") -> int:
    v = ctx.payload.get(key)
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise InvalidArgument(f"bad_{key}", {key: v})
    return int(v)


def _address(ctx: "CallContext", key: str) -> str:
    s = _as_str(ctx.payload.get(key))
    if not s:
        raise InvalidArgument(f"missing_{key}", {})
    return s


def _settle(book: Any, holder: str) -> int:
    return accumulator.settle(book, holder, LOCK_KEYS)


def _apply_lock(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    bbk = _as_str(st.get("bbk"))
    have = _as_int(ctx.view(bbk, "balance_of", holder=ctx.sender))
    if amount > have:
        raise InsufficientBalance("insufficient_bbk", {"balance": have, "amount": amount})

    _settle(st, ctx.sender)
    ctx.call_contract(bbk, "TRANSFER_FROM", payload={"from": ctx.sender, "to": ctx.address, "amount": amount})
    locked = st["locked_balances"]
    locked[ctx.sender] = _as_int(locked.get(ctx.sender)) + amount
    st["total_locked"] = _as_int(st.get("total_locked")) + amount

    ctx.emit("LockBBK", parties={"holder": ctx.sender}, amounts={"amount": amount})
    return {"applied": "LOCK", "locked": locked[ctx.sender]}


def _apply_unlock(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    locked = st["locked_balances"]
    have = _as_int(locked.get(ctx.sender))
    if amount > have:
        raise InsufficientBalance("insufficient_locked_bbk", {"locked": have, "amount": amount})

    _settle(st, ctx.sender)
    locked[ctx.sender] = have - amount
    st["total_locked"] = _as_int(st.get("total_locked")) - amount
    ctx.call_contract(_as_str(st.get("bbk")), "TRANSFER", payload={"to": ctx.sender, "amount": amount})

    ctx.emit("UnlockBBK", parties={"holder": ctx.sender}, amounts={"amount": amount})
    return {"applied": "UNLOCK", "locked": locked[ctx.sender]}


def _apply_pay_fee(st: Json, ctx: "CallContext") -> Json:
    if ctx.value <= 0:
        raise InvalidArgument("missing_value", {})

    minted = ctx.value * _as_int(st.get("act_rate"), ACT_RATE)
    total_locked = _as_int(st.get("total_locked"))
    if total_locked <= 0:
        # Nobody to share with: the owner's bucket takes it.
        owner = _as_str(st.get("owner"))
        acts = st["act_balances"]
        acts[owner] = _as_int(acts.get(owner)) + minted
        inc = 0
    else:
        inc = accumulator.add_to_accumulator(st, minted, LOCK_KEYS, units=total_locked)

    ctx.emit("FeePaid", parties={"payer": ctx.sender}, amounts={"value": ctx.value, "act_minted": minted})
    return {"applied": "PAY_FEE", "act_minted": minted, "increment": inc}


def _apply_claim_fee(st: Json, ctx: "CallContext") -> Json:
    amount = _amount(ctx)
    rate = _as_int(st.get("act_rate"), ACT_RATE)
    payout = amount // rate
    if payout <= 0:
        raise InvalidArgument("claim_below_one_wei", {"amount": amount, "act_rate": rate})

    _settle(st, ctx.sender)
    acts = st["act_balances"]
    have = _as_int(acts.get(ctx.sender))
    if amount > have:
        raise InsufficientBalance("insufficient_act", {"balance": have, "amount": amount})
    acts[ctx.sender] = have - amount

    ctx.emit("FeeClaimed", parties={"holder": ctx.sender}, amounts={"act_burned": amount, "wei": payout})
    ctx.send(ctx.sender, payout)
    return {"applied": "CLAIM_FEE", "act_burned": amount, "wei": payout}


def _apply_act_transfer(st: Json, ctx: "CallContext") -> Json:
    to = _address(ctx, "to")
    amount = _amount(ctx)
    balances.transfer(st, ctx.sender, to, amount, settle=_settle, key="act_balances")
    ctx.emit("Transfer", parties={"from": ctx.sender, "to": to}, amounts={"amount": amount})
    return {"applied": "TRANSFER", "to": to, "amount": amount}


def _apply_act_approve(st: Json, ctx: "CallContext") -> Json:
    spender = _address(ctx, "spender")
    v = ctx.payload.get("amount")
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise InvalidArgument("bad_amount", {"amount": v})
    balances.approve(st, ctx.sender, spender, v, key="act_allowed")
    ctx.emit("Approval", parties={"owner": ctx.sender, "spender": spender}, amounts={"amount": v})
    return {"applied": "APPROVE", "spender": spender, "amount": v}


def _apply_act_transfer_from(st: Json, ctx: "CallContext") -> Json:
    frm = _address(ctx, "from")
    to = _address(ctx, "to")
    amount = _amount(ctx)
    balances.transfer_from(
        st, ctx.sender, frm, to, amount, settle=_settle, key="act_balances", allowed_key="act_allowed"
    )
    ctx.emit("Transfer", parties={"from": frm, "to": to, "spender": ctx.sender}, amounts={"amount": amount})
    return {"applied": "TRANSFER_FROM", "from": frm, "to": to, "amount": amount}


class AccessFeeShare:
    name = "AccessFeeShare"

    @staticmethod
    def init_storage(owner: str, *, bbk: str, act_rate: int = ACT_RATE) -> Json:
        if int(act_rate) <= 0:
            raise ValueError("act_rate must be > 0")
        return {
            "owner": owner,
            "act_rate": int(act_rate),
            "bbk": bbk,
            "locked_balances": {},
            "total_locked": 0,
            "total_act_per_locked": 0,
            "claimed_act_per_locked": {},
            "act_balances": {},
            "act_allowed": {},
        }

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        m = ctx.method
        if ctx.value and m != "PAY_FEE":
            raise InvalidArgument("non_payable", {"method": m, "value": ctx.value})

        out: Optional[Json] = None
        if m == "LOCK":
            out = _apply_lock(storage, ctx)
        elif m == "UNLOCK":
            out = _apply_unlock(storage, ctx)
        elif m == "PAY_FEE":
            out = _apply_pay_fee(storage, ctx)
        elif m == "CLAIM_FEE":
            out = _apply_claim_fee(storage, ctx)
        elif m == "TRANSFER":
            out = _apply_act_transfer(storage, ctx)
        elif m == "APPROVE":
            out = _apply_act_approve(storage, ctx)
        elif m == "TRANSFER_FROM":
            out = _apply_act_transfer_from(storage, ctx)
        elif m == "SET_ACT_RATE":
            if ctx.sender != storage.get("owner"):
                raise AuthorizationViolation("owner_required", {"sender": ctx.sender})
            storage["act_rate"] = _amount(ctx, "act_rate")
            out = {"applied": "SET_ACT_RATE", "act_rate": storage["act_rate"]}

        if out is None:
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": m})
        return out

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        who = _as_str(args.get("holder"))
        if name == "locked_balance_of":
            return _as_int(storage["locked_balances"].get(who))
        if name == "total_locked":
            return _as_int(storage.get("total_locked"))
        if name == "bbk":
            return storage.get("bbk", "")
        if name == "act_balance_of":
            return accumulator.pending(storage, who, LOCK_KEYS)
        if name == "act_allowance_of":
            return balances.allowance_of(storage, _as_str(args.get("owner")), _as_str(args.get("spender")), key="act_allowed")
        if name == "act_rate":
            return _as_int(storage.get("act_rate"), ACT_RATE)
        if name == "owner":
            return storage.get("owner", "")
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


__all__ = ["AccessFeeShare", "LOCK_KEYS"]
