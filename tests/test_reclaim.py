# tests/test_reclaim.py
from __future__ import annotations

import pytest

from poaledger.ledger.constants import DAY_SECONDS
from poaledger.runtime.errors import NothingToClaim, StageGuardViolation
from poaledger.testing.scenarios import (
    ALICE,
    BOB,
    CAROL,
    CUSTODIAN,
    TOTAL_SUPPLY,
    active_token,
    add_token,
    call,
    open_eth_sale,
    open_fiat_sale,
)

ETH = 10**18


def test_reclaim_after_timeout_is_pro_rata_and_burns_unsold_once(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    call(chain, token, "BUY_WITH_ETH", ALICE, value=30 * ETH)
    call(chain, token, "BUY_WITH_ETH", BOB, value=20 * ETH)
    chain.advance(7 * DAY_SECONDS)

    alice_before = chain.balance_of(ALICE)
    out = call(chain, token, "RECLAIM", ALICE)
    assert out == {"applied": "RECLAIM", "amount": 30 * ETH, "tokens_burned": 30 * ETH, "unsold_burned": TOTAL_SUPPLY - 50 * ETH}
    assert chain.balance_of(ALICE) == alice_before + 30 * ETH
    assert chain.view(token, "total_supply") == 20 * ETH

    with pytest.raises(NothingToClaim):
        call(chain, token, "RECLAIM", ALICE)

    out = call(chain, token, "RECLAIM", BOB)
    assert out["amount"] == 20 * ETH
    assert out["unsold_burned"] == 0
    assert chain.view(token, "total_supply") == 0
    assert chain.balance_of(token) == 0
    assert len(chain.events_for(token, kind="UnsoldSupplyBurned")) == 1


def test_reclaim_after_cancel_ignores_fiat_holdings(chain, eco) -> None:
    token = add_token(chain, eco)
    open_fiat_sale(chain, token)
    call(chain, token, "BUY_FIAT", CUSTODIAN, investor=CAROL, amount_in_cents=100_000)
    call(chain, token, "CANCEL_FUNDING", CUSTODIAN)

    with pytest.raises(NothingToClaim) as e:
        call(chain, token, "RECLAIM", CAROL)
    assert e.value.reason == "nothing_to_reclaim"
    assert chain.view(token, "balance_of", holder=CAROL) == 20 * ETH


def test_reclaim_is_refused_once_active(chain, eco) -> None:
    token = active_token(chain, eco)
    with pytest.raises(StageGuardViolation):
        call(chain, token, "RECLAIM", ALICE)
