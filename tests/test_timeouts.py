# tests/test_timeouts.py
from __future__ import annotations

import pytest

from poaledger.ledger.constants import DAY_SECONDS
from poaledger.runtime.errors import StageGuardViolation
from poaledger.testing.scenarios import ALICE, CUSTODIAN, STRANGER, add_token, call, funded_token, open_eth_sale

ETH = 10**18


def test_timeout_is_lazy_and_rolled_back_with_a_failed_call(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    call(chain, token, "BUY_WITH_ETH", ALICE, value=30 * ETH)

    chain.advance(7 * DAY_SECONDS)

    summary = chain.view(token, "summary")
    assert summary["stage"] == "TimedOut"
    assert summary["stored_stage"] == 3

    with pytest.raises(StageGuardViolation):
        call(chain, token, "BUY_WITH_ETH", ALICE, value=ETH)
    assert chain.view(token, "summary")["stored_stage"] == 3


def test_timeout_can_be_persisted_by_anyone_after_the_deadline(chain, eco) -> None:
    token = add_token(chain, eco)
    open_eth_sale(chain, token)

    with pytest.raises(StageGuardViolation) as e:
        call(chain, token, "SET_STAGE_TO_TIMED_OUT", STRANGER)
    assert e.value.reason == "deadline_not_reached"

    chain.advance(7 * DAY_SECONDS)
    out = call(chain, token, "SET_STAGE_TO_TIMED_OUT", STRANGER)
    assert out["stage"] == "TimedOut"
    assert chain.view(token, "summary")["stored_stage"] == 6

    ev = chain.events_for(token, kind="StageEvent")[-1]
    assert ev["data"] == {"from_stage": "EthFunding", "to_stage": "TimedOut", "cause": "deadline_elapsed"}


def test_unactivated_token_times_out_after_activation_period(chain, eco) -> None:
    token = funded_token(chain, eco)
    chain.advance(37 * DAY_SECONDS)

    assert chain.view(token, "stage") == "TimedOut"
    with pytest.raises(StageGuardViolation):
        call(chain, token, "ACTIVATE", CUSTODIAN)
