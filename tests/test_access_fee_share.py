# tests/test_access_fee_share.py
from __future__ import annotations

import pytest

from poaledger.runtime.errors import (
    AuthorizationViolation,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidArgument,
    StageGuardViolation,
)
from poaledger.testing.scenarios import ALICE, BOB, CAROL, OWNER, STRANGER, call, finish_bbk_sale, lock_bbk


@pytest.fixture
def fee_share(chain, eco):
    finish_bbk_sale(chain, eco, {ALICE: 600, BOB: 400})
    lock_bbk(chain, eco, ALICE, 600)
    lock_bbk(chain, eco, BOB, 400)
    return eco.fee_manager


def test_fees_split_by_locked_share(chain, fee_share) -> None:
    out = call(chain, fee_share, "PAY_FEE", STRANGER, value=10)
    assert out["act_minted"] == 10_000

    assert chain.view(fee_share, "total_locked") == 1000
    assert chain.view(fee_share, "act_balance_of", holder=ALICE) == 6000
    assert chain.view(fee_share, "act_balance_of", holder=BOB) == 4000


def test_unlocked_holder_stops_earning(chain, eco, fee_share) -> None:
    call(chain, fee_share, "PAY_FEE", STRANGER, value=10)
    call(chain, fee_share, "UNLOCK", BOB, amount=400)
    assert chain.view(eco.bbk, "balance_of", holder=BOB) == 400
    assert chain.view(eco.bbk, "balance_of", holder=fee_share) == 600

    call(chain, fee_share, "PAY_FEE", STRANGER, value=10)
    # 10_000 ACT over 600 locked units floors to 9_999 for the sole locker.
    alice = chain.view(fee_share, "act_balance_of", holder=ALICE)
    assert alice == 15_999
    assert 16_000 - alice < 600
    assert chain.view(fee_share, "act_balance_of", holder=BOB) == 4000


def test_claim_fee_burns_act_for_wei(chain, fee_share) -> None:
    call(chain, fee_share, "PAY_FEE", STRANGER, value=10)

    before = chain.balance_of(ALICE)
    out = call(chain, fee_share, "CLAIM_FEE", ALICE, amount=6000)
    assert out == {"applied": "CLAIM_FEE", "act_burned": 6000, "wei": 6}
    assert chain.balance_of(ALICE) == before + 6
    assert chain.view(fee_share, "act_balance_of", holder=ALICE) == 0

    with pytest.raises(InvalidArgument) as e:
        call(chain, fee_share, "CLAIM_FEE", BOB, amount=999)
    assert e.value.reason == "claim_below_one_wei"
    with pytest.raises(InsufficientBalance):
        call(chain, fee_share, "CLAIM_FEE", BOB, amount=5000)


def test_act_moves_like_a_token(chain, fee_share) -> None:
    call(chain, fee_share, "PAY_FEE", STRANGER, value=10)

    call(chain, fee_share, "TRANSFER", ALICE, to=CAROL, amount=1000)
    assert chain.view(fee_share, "act_balance_of", holder=ALICE) == 5000
    assert chain.view(fee_share, "act_balance_of", holder=CAROL) == 1000

    call(chain, fee_share, "APPROVE", BOB, spender=CAROL, amount=1500)
    call(chain, fee_share, "TRANSFER_FROM", CAROL, **{"from": BOB, "to": CAROL, "amount": 1500})
    assert chain.view(fee_share, "act_balance_of", holder=CAROL) == 2500
    assert chain.view(fee_share, "act_allowance_of", owner=BOB, spender=CAROL) == 0


def test_owner_takes_fees_when_nothing_is_locked(chain, eco) -> None:
    call(chain, eco.fee_manager, "PAY_FEE", STRANGER, value=3)
    assert chain.view(eco.fee_manager, "act_balance_of", holder=OWNER) == 3000


def test_lock_limits_and_payability(chain, fee_share) -> None:
    with pytest.raises(InsufficientBalance):
        call(chain, fee_share, "LOCK", ALICE, amount=1)
    with pytest.raises(InvalidArgument) as e:
        call(chain, fee_share, "LOCK", ALICE, value=1, amount=1)
    assert e.value.reason == "non_payable"
    with pytest.raises(InvalidArgument):
        call(chain, fee_share, "PAY_FEE", STRANGER, value=0)


def test_act_rate_is_owner_only(chain, eco) -> None:
    with pytest.raises(AuthorizationViolation):
        call(chain, eco.fee_manager, "SET_ACT_RATE", ALICE, act_rate=10)
    call(chain, eco.fee_manager, "SET_ACT_RATE", OWNER, act_rate=10)
    assert chain.view(eco.fee_manager, "act_rate") == 10


def test_lock_pulls_bbk_through_an_allowance(chain, eco) -> None:
    finish_bbk_sale(chain, eco, {ALICE: 500})

    with pytest.raises(InsufficientAllowance):
        call(chain, eco.fee_manager, "LOCK", ALICE, amount=100)
    assert chain.view(eco.fee_manager, "total_locked") == 0
    assert chain.view(eco.bbk, "balance_of", holder=ALICE) == 500

    lock_bbk(chain, eco, ALICE, 100)
    assert chain.view(eco.bbk, "balance_of", holder=ALICE) == 400
    assert chain.view(eco.bbk, "balance_of", holder=eco.fee_manager) == 100
    assert chain.view(eco.fee_manager, "locked_balance_of", holder=ALICE) == 100


def test_paused_bbk_blocks_locking(chain, eco) -> None:
    finish_bbk_sale(chain, eco, {ALICE: 500})
    call(chain, eco.bbk, "APPROVE", ALICE, spender=eco.fee_manager, amount=100)
    call(chain, eco.bbk, "PAUSE", OWNER)

    with pytest.raises(StageGuardViolation) as e:
        call(chain, eco.fee_manager, "LOCK", ALICE, amount=100)
    assert e.value.reason == "token_paused"
    assert chain.view(eco.fee_manager, "locked_balance_of", holder=ALICE) == 0


def test_freshly_accrued_act_is_spendable_by_transfer_from(chain, fee_share) -> None:
    call(chain, fee_share, "PAY_FEE", STRANGER, value=10)
    call(chain, fee_share, "APPROVE", ALICE, spender=CAROL, amount=6000)

    call(chain, fee_share, "TRANSFER_FROM", CAROL, **{"from": ALICE, "to": CAROL, "amount": 6000})
    assert chain.view(fee_share, "act_balance_of", holder=ALICE) == 0
    assert chain.view(fee_share, "act_balance_of", holder=CAROL) == 6000
