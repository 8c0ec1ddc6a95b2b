# src/poaledger/ledger/accumulator.py
from __future__ import annotations

"""Cumulative payout-per-unit accounting.

A single monotonically non-decreasing accumulator (scaled by SCALE) records
how much each unit has earned since the start of time. Each holder keeps a
checkpoint of the accumulator value they were last settled at, plus a bucket
of settled-but-unwithdrawn value. Nothing ever iterates over holders.

Both the asset token (units = token balance) and the fee share
(units = locked governance tokens) use this module with their own keys.
"""

from dataclasses import dataclass
from typing import Any, Dict, MutableMapping

from poaledger.ledger.constants import SCALE

Json = Dict[str, Any]


@dataclass(frozen=True)
class AccumulatorKeys:
    units: str
    total_per_unit: str
    checkpoints: str
    unclaimed: str


DIVIDEND_KEYS = AccumulatorKeys(
    units="balances",
    total_per_unit="total_per_token_payout",
    checkpoints="claimed_per_token_payouts",
    unclaimed="unclaimed_payouts",
)


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _map(book: MutableMapping[str, Any], key: str) -> Json:
    m = book.get(key)
    if not isinstance(m, dict):
        m = {}
        book[key] = m
    return m


def increment_for(amount: int, units: int) -> int:
    """Accumulator increment that spreads `amount` over `units` (floored)."""
    if int(units) <= 0:
        raise ValueError("cannot distribute over zero units")
    if int(amount) < 0:
        raise ValueError("amount must be >= 0")
    return int(amount) * SCALE // int(units)


def distributed_by(increment: int, units: int) -> int:
    """Upper bound of what an increment hands out over `units` in total."""
    return int(increment) * int(units) // SCALE


def accrued(units: int, total_per_unit: int, checkpoint: int) -> int:
    return int(units) * (int(total_per_unit) - int(checkpoint)) // SCALE


def pending(book: MutableMapping[str, Any], holder: str, keys: AccumulatorKeys, *, include_unclaimed: bool = True) -> int:
    """Value owed to `holder` right now. Pure."""
    units = _as_int(_map(book, keys.units).get(holder))
    total = _as_int(book.get(keys.total_per_unit))
    checkpoint = _as_int(_map(book, keys.checkpoints).get(holder))
    out = accrued(units, total, checkpoint)
    if include_unclaimed:
        out += _as_int(_map(book, keys.unclaimed).get(holder))
    return out


def settle(book: MutableMapping[str, Any], holder: str, keys: AccumulatorKeys) -> int:
    """Move the holder's accrued share into their unclaimed bucket.

    Must run before the holder's unit count changes. Returns the amount moved.
    """
    units = _as_int(_map(book, keys.units).get(holder))
    total = _as_int(book.get(keys.total_per_unit))
    checkpoints = _map(book, keys.checkpoints)
    moved = accrued(units, total, _as_int(checkpoints.get(holder)))
    if moved:
        unclaimed = _map(book, keys.unclaimed)
        unclaimed[holder] = _as_int(unclaimed.get(holder)) + moved
    checkpoints[holder] = total
    return moved


def add_to_accumulator(book: MutableMapping[str, Any], amount: int, keys: AccumulatorKeys, *, units: int) -> int:
    inc = increment_for(amount, units)
    book[keys.total_per_unit] = _as_int(book.get(keys.total_per_unit)) + inc
    return inc


__all__ = [
    "AccumulatorKeys",
    "DIVIDEND_KEYS",
    "accrued",
    "add_to_accumulator",
    "distributed_by",
    "increment_for",
    "pending",
    "settle",
]
