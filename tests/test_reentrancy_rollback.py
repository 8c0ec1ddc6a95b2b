# tests/test_reentrancy_rollback.py
from __future__ import annotations

import pytest

from poaledger.runtime.errors import ApplyError, NothingToClaim
from poaledger.testing.scenarios import (
    ALICE,
    BOB,
    GOAL_IN_WEI,
    ISSUER,
    TOTAL_SUPPLY,
    active_token,
    add_token,
    call,
    open_eth_sale,
)

ETH = 10**18


def test_reentrant_claim_finds_bucket_already_empty(chain, eco) -> None:
    token = active_token(chain, eco)
    call(chain, token, "PAYOUT", ISSUER, value=1000)

    attempts = []

    def _hook(ch, frm, amount) -> None:
        try:
            ch.reenter(token, {"method": "CLAIM", "sender": ALICE})
        except NothingToClaim as e:
            attempts.append(e.reason)

    chain.receive_hooks[ALICE] = _hook
    before = chain.balance_of(ALICE)
    out = call(chain, token, "CLAIM", ALICE)

    assert out["amount"] == 540
    assert attempts == ["nothing_to_claim"]
    assert chain.balance_of(ALICE) == before + 540
    assert chain.view(token, "current_payout", holder=ALICE) == 0


def test_failing_recipient_rolls_back_whole_purchase(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    call(chain, token, "BUY_WITH_ETH", BOB, value=GOAL_IN_WEI // 2)

    def _refuse(ch, frm, amount) -> None:
        raise RuntimeError("recipient refuses ether")

    chain.receive_hooks[ALICE] = _refuse
    alice_before = chain.balance_of(ALICE)
    token_before = chain.balance_of(token)
    events_before = len(chain.events)

    # Overpays, so the purchase ends with a refund to ALICE.
    with pytest.raises(ApplyError) as e:
        call(chain, token, "BUY_WITH_ETH", ALICE, value=GOAL_IN_WEI)
    assert e.value.code == "domain_error"

    assert chain.balance_of(ALICE) == alice_before
    assert chain.balance_of(token) == token_before
    assert chain.view(token, "balance_of", holder=ALICE) == 0
    assert chain.view(token, "balance_of", holder=token) == TOTAL_SUPPLY // 2
    assert chain.view(token, "stage") == "EthFunding"
    assert len(chain.events) == events_before


def test_submit_turns_rejections_into_receipts(chain, eco) -> None:
    token = add_token(chain, eco)

    r = chain.submit(token, {"method": "BUY_WITH_ETH", "sender": ALICE, "value": ETH})
    assert r["ok"] is False
    assert r["code"] == "stage_guard"
    assert r["retryable"] is True

    r = chain.submit(token, {"method": "UPDATE_NAME", "sender": ALICE, "payload": {"name": "x"}})
    assert r["ok"] is False
    assert r["code"] == "forbidden"
    assert r["retryable"] is False

    r = chain.submit(token, {"method": "UPDATE_NAME", "sender": ISSUER, "payload": {"name": "Solar Farm Two"}})
    assert r == {"ok": True, "result": {"applied": "UPDATE_NAME", "name": "Solar Farm Two"}}


def test_execute_is_not_reentrant_from_hooks(chain, eco) -> None:
    token = active_token(chain, eco)
    call(chain, token, "PAYOUT", ISSUER, value=1000)

    def _hook(ch, frm, amount) -> None:
        ch.execute(token, {"method": "CLAIM", "sender": BOB})

    chain.receive_hooks[ALICE] = _hook
    with pytest.raises(ApplyError) as e:
        call(chain, token, "CLAIM", ALICE)
    assert e.value.code == "domain_error"
    assert chain.view(token, "current_payout", holder=ALICE) == 540


def test_view_and_call_arguments_named_like_their_parameters(chain, eco) -> None:
    from poaledger.ledger.constants import REG_FEE_MANAGER

    assert chain.view(eco.registry, "resolve", name=REG_FEE_MANAGER) == eco.fee_manager

    token = active_token(chain, eco)
    call(chain, token, "TRANSFER", ALICE, to=BOB, amount=1)
    assert chain.view(token, "balance_of", holder=BOB) >= 1
