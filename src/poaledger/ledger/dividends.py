# src/poaledger/ledger/dividends.py
from __future__ import annotations

from typing import Any, Dict, MutableMapping

from poaledger.ledger import accumulator
from poaledger.ledger.accumulator import DIVIDEND_KEYS
from poaledger.ledger.constants import FEE_RATE_PERMILLE
from poaledger.ledger.fees import calculate_fee
from poaledger.runtime.errors import InvalidArgument, NothingToClaim

Json = Dict[str, Any]
Book = MutableMapping[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def settle_payout(book: Book, holder: str) -> int:
    """Settlement hook handed to the balance ledger on every transfer/burn."""
    return accumulator.settle(book, holder, DIVIDEND_KEYS)


def current_payout(book: Book, holder: str, *, include_unclaimed: bool = True) -> int:
    return accumulator.pending(book, holder, DIVIDEND_KEYS, include_unclaimed=include_unclaimed)


def distribute(book: Book, amount: int, *, fee_rate_permille: int = FEE_RATE_PERMILLE) -> Json:
    """Inject a payout of `amount` into the per-token accumulator.

    The fee comes off the top; the rest is spread over the total supply with
    a floored increment. Whatever the floor drops stays with the contract.
    """
    amt = _as_int(amount)
    fee = calculate_fee(amt, fee_rate_permille)
    if amt <= fee:
        raise InvalidArgument("payout_not_above_fee", {"amount": amt, "fee": fee})

    supply = _as_int(book.get("total_supply"))
    if supply <= 0:
        raise InvalidArgument("no_supply", {"total_supply": supply})

    distributable = amt - fee
    inc = accumulator.add_to_accumulator(book, distributable, DIVIDEND_KEYS, units=supply)
    dust = distributable - accumulator.distributed_by(inc, supply)
    return {"amount": amt, "fee": fee, "distributable": distributable, "increment": inc, "dust": dust}


def take_claim(book: Book, holder: str) -> int:
    """Settle `holder`, zero their bucket and return what they are owed."""
    settle_payout(book, holder)
    unclaimed = book.get("unclaimed_payouts")
    if not isinstance(unclaimed, dict):
        unclaimed = {}
        book["unclaimed_payouts"] = unclaimed
    owed = _as_int(unclaimed.get(holder))
    if owed <= 0:
        raise NothingToClaim("nothing_to_claim", {"holder": holder})
    unclaimed[holder] = 0
    return owed


def credit_unclaimed(book: Book, holder: str, amount: int) -> int:
    """Credit value straight into a holder's bucket (activation proceeds)."""
    unclaimed = book.get("unclaimed_payouts")
    if not isinstance(unclaimed, dict):
        unclaimed = {}
        book["unclaimed_payouts"] = unclaimed
    unclaimed[holder] = _as_int(unclaimed.get(holder)) + int(amount)
    return int(amount)


__all__ = ["credit_unclaimed", "current_payout", "distribute", "settle_payout", "take_claim"]
