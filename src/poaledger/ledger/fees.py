# src/poaledger/ledger/fees.py
from __future__ import annotations

from typing import Any, Dict, Tuple

from poaledger.ledger.constants import (
    ACTIVATION_FEE_TOLERANCE_PERMILLE,
    FEE_RATE_PERMILLE,
    PERMILLE,
    WEI_PER_ETHER,
)
from poaledger.runtime.errors import FeeOutOfTolerance, RateNotReady

Json = Dict[str, Any]


def calculate_fee(amount: int, fee_rate_permille: int = FEE_RATE_PERMILLE) -> int:
    """floor(amount * rate / 1000)."""
    return int(amount) * int(fee_rate_permille) // PERMILLE


def _rate(rate: int) -> int:
    r = int(rate or 0)
    if r <= 0:
        raise RateNotReady("rate_not_ready", {"rate": rate})
    return r


def fiat_cents_to_wei(cents: int, rate: int) -> int:
    """Convert fiat cents to wei at `rate` cents per ether (floored)."""
    return int(cents) * WEI_PER_ETHER // _rate(rate)


def wei_to_fiat_cents(wei: int, rate: int) -> int:
    return int(wei) * _rate(rate) // WEI_PER_ETHER


def calculate_total_fee(funding_goal_in_cents: int, rate: int, fee_rate_permille: int = FEE_RATE_PERMILLE) -> int:
    """Activation fee in wei: the fee on the funding goal, priced at the live rate."""
    return fiat_cents_to_wei(calculate_fee(funding_goal_in_cents, fee_rate_permille), rate)


def fee_band(expected: int, tolerance_permille: int = ACTIVATION_FEE_TOLERANCE_PERMILLE) -> Tuple[int, int]:
    tol = int(tolerance_permille)
    if tol < 0 or tol >= PERMILLE:
        raise ValueError(f"tolerance_permille must be 0..{PERMILLE - 1}; got: {tolerance_permille}")
    lo = int(expected) * (PERMILLE - tol) // PERMILLE
    hi = int(expected) * (PERMILLE + tol) // PERMILLE
    return lo, hi


def check_fee_within_band(paid: int, expected: int, tolerance_permille: int = ACTIVATION_FEE_TOLERANCE_PERMILLE) -> Json:
    lo, hi = fee_band(expected, tolerance_permille)
    if not (lo <= int(paid) <= hi):
        raise FeeOutOfTolerance(
            "activation_fee_out_of_band",
            {"paid": int(paid), "expected": int(expected), "min": lo, "max": hi},
        )
    return {"paid": int(paid), "expected": int(expected), "min": lo, "max": hi}


__all__ = [
    "calculate_fee",
    "calculate_total_fee",
    "check_fee_within_band",
    "fee_band",
    "fiat_cents_to_wei",
    "wei_to_fiat_cents",
]
