# tests/test_funding_eth.py
from __future__ import annotations

import pytest

from poaledger.runtime.errors import ApplyError, AuthorizationViolation, InvalidArgument, StageGuardViolation
from poaledger.testing.scenarios import (
    ALICE,
    BOB,
    GOAL_IN_WEI,
    ISSUER,
    OWNER,
    STRANGER,
    TOTAL_SUPPLY,
    add_token,
    call,
    open_eth_sale,
)

ETH = 10**18


def test_overpaying_final_purchase_refunds_the_excess(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    before = chain.balance_of(ALICE)

    out = call(chain, token, "BUY_WITH_ETH", ALICE, value=GOAL_IN_WEI * 11 // 10)

    assert GOAL_IN_WEI == 100 * ETH
    assert out["tokens"] == TOTAL_SUPPLY
    assert out["accepted"] == GOAL_IN_WEI
    assert out["refund"] == 10 * ETH
    assert out["stage"] == "FundingSuccessful"

    assert chain.balance_of(ALICE) == before - GOAL_IN_WEI
    assert chain.balance_of(token) == GOAL_IN_WEI
    assert chain.view(token, "balance_of", holder=ALICE) == TOTAL_SUPPLY
    assert chain.view(token, "investment_amount_per_user_in_wei", holder=ALICE) == GOAL_IN_WEI
    assert chain.view(token, "stage") == "FundingSuccessful"

    ev = chain.events_for(token, kind="BuyEthEvent")[-1]
    assert ev["amounts"] == {"value": GOAL_IN_WEI, "tokens": TOTAL_SUPPLY, "refund": 10 * ETH}


def test_partial_purchases_are_priced_at_the_live_rate(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)

    out = call(chain, token, "BUY_WITH_ETH", ALICE, value=30 * ETH)
    assert out["tokens"] == 30 * ETH
    assert out["refund"] == 0

    # Ether doubles in dollar terms: the remaining supply now costs half as much.
    call(chain, eco.exchange_rates, "SET_RATE", OWNER, currency="USD", rate=10_000)
    assert chain.view(token, "funding_goal_in_wei") == 50 * ETH

    out = call(chain, token, "BUY_WITH_ETH", BOB, value=40 * ETH)
    assert out["tokens"] == TOTAL_SUPPLY - 30 * ETH
    assert out["accepted"] == 35 * ETH
    assert out["refund"] == 5 * ETH
    assert chain.view(token, "funded_amount_in_wei") == 65 * ETH


def test_buyer_must_be_whitelisted(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    before = chain.balance_of(STRANGER)

    with pytest.raises(AuthorizationViolation) as e:
        call(chain, token, "BUY_WITH_ETH", STRANGER, value=ETH)
    assert e.value.reason == "not_whitelisted"
    assert chain.balance_of(STRANGER) == before
    assert chain.view(token, "balance_of", holder=STRANGER) == 0


def test_buy_outside_eth_funding_is_a_stage_guard(chain, eco) -> None:
    token = add_token(chain, eco)
    with pytest.raises(StageGuardViolation) as e:
        call(chain, token, "BUY_WITH_ETH", ALICE, value=ETH)
    assert e.value.details["stage"] == "Preview"


def test_sale_cannot_open_before_start_time(chain, eco) -> None:
    token = add_token(chain, eco)
    call(chain, token, "START_PRE_FUNDING", ISSUER)
    with pytest.raises(StageGuardViolation) as e:
        call(chain, token, "START_ETH_SALE", STRANGER)
    assert e.value.reason == "funding_not_started"


def test_dust_purchase_is_refused(chain, eco) -> None:
    # One whole unit for a 100 ether goal: under 100 wei buys nothing.
    token = add_token(chain, eco, total_supply=10**18)
    open_eth_sale(chain, token)
    with pytest.raises(InvalidArgument) as e:
        call(chain, token, "BUY_WITH_ETH", ALICE, value=99)
    assert e.value.reason == "purchase_too_small"


def test_non_payable_methods_reject_value(chain, eco) -> None:
    token = add_token(chain, eco)
    with pytest.raises(InvalidArgument) as e:
        call(chain, token, "START_PRE_FUNDING", ISSUER, value=1)
    assert e.value.reason == "non_payable"


def test_check_funding_successful_after_rate_rise(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    call(chain, token, "BUY_WITH_ETH", ALICE, value=50 * ETH)

    out = call(chain, token, "CHECK_FUNDING_SUCCESSFUL", STRANGER)
    assert out["funding_successful"] is False
    assert chain.view(token, "stage") == "EthFunding"

    call(chain, eco.exchange_rates, "SET_RATE", OWNER, currency="USD", rate=10_000)
    out = call(chain, token, "CHECK_FUNDING_SUCCESSFUL", STRANGER)
    assert out["funding_successful"] is True
    assert out["burned"] == TOTAL_SUPPLY - 50 * ETH
    assert chain.view(token, "total_supply") == 50 * ETH
    assert chain.view(token, "stage") == "FundingSuccessful"


def test_buy_after_rate_alone_meets_goal_refunds_everything(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    call(chain, token, "BUY_WITH_ETH", ALICE, value=50 * ETH)

    # 50 ether at 100.00 USD is already the whole 500,000.00 USD goal.
    call(chain, eco.exchange_rates, "SET_RATE", OWNER, currency="USD", rate=10_000)
    before = chain.balance_of(BOB)
    out = call(chain, token, "BUY_WITH_ETH", BOB, value=25 * ETH)

    assert out["tokens"] == 0
    assert out["accepted"] == 0
    assert out["refund"] == 25 * ETH
    assert out["burned"] == TOTAL_SUPPLY - 50 * ETH
    assert out["stage"] == "FundingSuccessful"
    assert chain.balance_of(BOB) == before
    assert chain.view(token, "balance_of", holder=BOB) == 0
    assert chain.view(token, "total_supply") == 50 * ETH
    assert chain.view(token, "funded_amount_in_wei") == 50 * ETH
    assert chain.view(token, "stage") == "FundingSuccessful"


def test_missing_rate_blocks_setup(chain, eco) -> None:
    with pytest.raises(ApplyError) as e:
        add_token(chain, eco, fiat_currency="EUR")
    assert e.value.code == "rate_not_ready"
    assert chain.view(eco.poa_manager, "token_list") == []
