# tests/test_fees.py
from __future__ import annotations

import pytest

from poaledger.ledger.fees import (
    calculate_fee,
    calculate_total_fee,
    check_fee_within_band,
    fee_band,
    fiat_cents_to_wei,
    wei_to_fiat_cents,
)
from poaledger.runtime.errors import FeeOutOfTolerance, RateNotReady

ETH = 10**18


def test_fee_is_five_permille_floored() -> None:
    assert calculate_fee(1000) == 5
    assert calculate_fee(1999) == 9
    assert calculate_fee(199) == 0
    assert calculate_fee(1000, 10) == 10


def test_goal_in_wei_at_fifty_dollars_per_ether() -> None:
    assert fiat_cents_to_wei(500_000, 5000) == 100 * ETH
    assert wei_to_fiat_cents(100 * ETH, 5000) == 500_000


def test_activation_fee_in_wei() -> None:
    # 0.5% of 5,000.00 USD is 25.00 USD, i.e. half an ether at 50.00.
    assert calculate_total_fee(500_000, 5000) == ETH // 2


def test_zero_rate_is_not_ready() -> None:
    with pytest.raises(RateNotReady) as e:
        fiat_cents_to_wei(100, 0)
    assert e.value.retryable is True


def test_band_accepts_within_half_percent() -> None:
    expected = ETH // 2
    lo, hi = fee_band(expected)
    assert (lo, hi) == (expected * 995 // 1000, expected * 1005 // 1000)

    assert check_fee_within_band(expected, expected)["paid"] == expected
    check_fee_within_band(expected * 1004 // 1000, expected)
    check_fee_within_band(expected * 996 // 1000, expected)


@pytest.mark.parametrize("permille", [1006, 994])
def test_band_rejects_point_six_percent(permille: int) -> None:
    expected = ETH // 2
    with pytest.raises(FeeOutOfTolerance) as e:
        check_fee_within_band(expected * permille // 1000, expected)
    assert e.value.reason == "activation_fee_out_of_band"
    assert e.value.details["expected"] == expected


def test_band_tolerance_is_configurable() -> None:
    expected = ETH // 2
    check_fee_within_band(expected * 1006 // 1000, expected, 10)
    with pytest.raises(ValueError):
        fee_band(expected, 1000)
