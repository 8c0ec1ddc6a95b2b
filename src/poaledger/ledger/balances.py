# src/poaledger/ledger/balances.py
from __future__ import annotations

from typing import Any, Callable, Dict, MutableMapping, Optional

from poaledger.runtime.errors import InsufficientAllowance, InsufficientBalance, InvalidArgument

Json = Dict[str, Any]
Book = MutableMapping[str, Any]

# Called with (book, holder) before a holder's balance changes.
SettleFn = Callable[[Book, str], Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _map(book: Book, key: str) -> Json:
    m = book.get(key)
    if not isinstance(m, dict):
        m = {}
        book[key] = m
    return m


def _amount(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidArgument("bad_amount", {"amount": v})
    if v < 0:
        raise InvalidArgument("negative_amount", {"amount": v})
    return int(v)


def _settle_both(book: Book, settle: Optional[SettleFn], a: str, b: str) -> None:
    if settle is None:
        return
    settle(book, a)
    if b != a:
        settle(book, b)


def balance_of(book: Book, who: str, *, key: str = "balances") -> int:
    return _as_int(_map(book, key).get(who))


def allowance_of(book: Book, owner: str, spender: str, *, key: str = "allowed") -> int:
    per_owner = _map(book, key).get(owner)
    if not isinstance(per_owner, dict):
        return 0
    return _as_int(per_owner.get(spender))


def transfer(
    book: Book,
    frm: str,
    to: str,
    amount: int,
    *,
    settle: Optional[SettleFn] = None,
    key: str = "balances",
) -> int:
    """Move `amount` from `frm` to `to`.

    Both holders are settled before either balance is touched, in this same
    call, so accrued payouts stay with whoever held the units when they accrued.
    """
    amt = _amount(amount)
    if not to:
        raise InvalidArgument("missing_to", {})

    _settle_both(book, settle, frm, to)

    # Settlement may credit the same map when units and payouts share a key.
    balances = _map(book, key)
    have = _as_int(balances.get(frm))
    if amt > have:
        raise InsufficientBalance("insufficient_balance", {"holder": frm, "balance": have, "amount": amt})

    balances[frm] = have - amt
    balances[to] = _as_int(balances.get(to)) + amt
    return amt


def approve(book: Book, owner: str, spender: str, amount: int, *, key: str = "allowed") -> int:
    amt = _amount(amount)
    if not spender:
        raise InvalidArgument("missing_spender", {})
    allowed = _map(book, key)
    per_owner = allowed.get(owner)
    if not isinstance(per_owner, dict):
        per_owner = {}
        allowed[owner] = per_owner
    per_owner[spender] = amt
    return amt


def transfer_from(
    book: Book,
    spender: str,
    frm: str,
    to: str,
    amount: int,
    *,
    settle: Optional[SettleFn] = None,
    key: str = "balances",
    allowed_key: str = "allowed",
) -> int:
    amt = _amount(amount)
    current = allowance_of(book, frm, spender, key=allowed_key)
    if amt > current:
        raise InsufficientAllowance(
            "insufficient_allowance",
            {"owner": frm, "spender": spender, "allowance": current, "amount": amt},
        )
    transfer(book, frm, to, amt, settle=settle, key=key)
    _map(book, allowed_key)[frm][spender] = current - amt
    return amt


def burn(
    book: Book,
    holder: str,
    amount: int,
    *,
    settle: Optional[SettleFn] = None,
    key: str = "balances",
    supply_key: str = "total_supply",
) -> int:
    """Destroy units held by `holder` and shrink the supply to match."""
    amt = _amount(amount)
    if settle is not None:
        settle(book, holder)
    balances = _map(book, key)
    have = _as_int(balances.get(holder))
    if amt > have:
        raise InsufficientBalance("insufficient_balance", {"holder": holder, "balance": have, "amount": amt})
    balances[holder] = have - amt
    book[supply_key] = _as_int(book.get(supply_key)) - amt
    return amt


__all__ = ["allowance_of", "approve", "balance_of", "burn", "transfer", "transfer_from"]
