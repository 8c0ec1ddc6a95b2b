# tests/test_bbk_token.py
from __future__ import annotations

import pytest

from poaledger.runtime.bbk_token import BONUS_SHARE, COMPANY_SHARE, BbkToken
from poaledger.runtime.ecosystem import DEFAULT_BBK_SUPPLY
from poaledger.runtime.errors import (
    AuthorizationViolation,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidArgument,
    StageGuardViolation,
)
from poaledger.testing.scenarios import ALICE, BOB, BONUS, CAROL, OWNER, call, finish_bbk_sale

BONUS_TOKENS = DEFAULT_BBK_SUPPLY * BONUS_SHARE // 100
COMPANY_TOKENS = DEFAULT_BBK_SUPPLY * COMPANY_SHARE // 100
DISTRIBUTABLE = DEFAULT_BBK_SUPPLY - BONUS_TOKENS - COMPANY_TOKENS


def test_sale_opens_paused_with_bonus_split_out(chain, eco) -> None:
    bbk = eco.bbk
    assert chain.view(bbk, "paused") is True
    assert chain.view(bbk, "token_sale_active") is True
    assert chain.view(bbk, "symbol") == "BBK"
    assert chain.view(bbk, "decimals") == 18
    assert chain.view(bbk, "balance_of", holder=BONUS) == BONUS_TOKENS
    assert chain.view(bbk, "balance_of", holder=bbk) == DEFAULT_BBK_SUPPLY - BONUS_TOKENS
    assert chain.view(bbk, "company_account") == eco.company_account


def test_distribution_keeps_the_company_share_back(chain, eco) -> None:
    with pytest.raises(AuthorizationViolation):
        call(chain, eco.bbk, "DISTRIBUTE_TOKENS", ALICE, to=ALICE, amount=10)
    with pytest.raises(InvalidArgument) as e:
        call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=OWNER, amount=10)
    assert e.value.reason == "bad_recipient"

    call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=ALICE, amount=DISTRIBUTABLE)
    assert chain.view(eco.bbk, "balance_of", holder=ALICE) == DISTRIBUTABLE

    with pytest.raises(InsufficientBalance) as e:
        call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=BOB, amount=1)
    assert e.value.reason == "exceeds_distributable_tokens"
    assert chain.view(eco.bbk, "balance_of", holder=eco.bbk) == COMPANY_TOKENS


def test_bonus_tokens_come_from_the_bonus_address(chain, eco) -> None:
    with pytest.raises(AuthorizationViolation):
        call(chain, eco.bbk, "DISTRIBUTE_BONUS_TOKENS", BONUS, to=CAROL, amount=1)

    call(chain, eco.bbk, "DISTRIBUTE_BONUS_TOKENS", OWNER, to=CAROL, amount=BONUS_TOKENS)
    assert chain.view(eco.bbk, "balance_of", holder=CAROL) == BONUS_TOKENS
    assert chain.view(eco.bbk, "balance_of", holder=BONUS) == 0

    with pytest.raises(InsufficientBalance):
        call(chain, eco.bbk, "DISTRIBUTE_BONUS_TOKENS", OWNER, to=CAROL, amount=1)


def test_finalize_burns_undistributed_and_approves_company_share(chain, eco) -> None:
    sold = 2 * 10**24
    call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=ALICE, amount=sold // 2)
    call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=BOB, amount=sold // 2)

    out = call(chain, eco.bbk, "FINALIZE_TOKEN_SALE", OWNER)
    total = sold + BONUS_TOKENS + COMPANY_TOKENS
    assert out["total_supply"] == total
    assert out["burned"] == DEFAULT_BBK_SUPPLY - total
    assert chain.view(eco.bbk, "total_supply") == total
    assert chain.view(eco.bbk, "balance_of", holder=eco.bbk) == COMPANY_TOKENS
    assert chain.view(eco.bbk, "allowance_of", owner=eco.bbk, spender=eco.company_account) == COMPANY_TOKENS
    assert chain.view(eco.bbk, "token_sale_active") is False
    assert chain.view(eco.bbk, "paused") is True

    with pytest.raises(StageGuardViolation) as e:
        call(chain, eco.bbk, "FINALIZE_TOKEN_SALE", OWNER)
    assert e.value.reason == "token_sale_not_active"
    with pytest.raises(StageGuardViolation):
        call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=CAROL, amount=1)


def test_finalize_needs_a_company_account_contract(chain, eco) -> None:
    addr = chain.new_address("bbk")
    chain.deploy(
        BbkToken.name,
        BbkToken.init_storage(OWNER, address=addr, bonus_address=BONUS, initial_supply=1000),
        address=addr,
    )
    with pytest.raises(InvalidArgument) as e:
        call(chain, addr, "FINALIZE_TOKEN_SALE", OWNER)
    assert e.value.reason == "company_account_not_set"

    for bad in (ALICE, addr):
        with pytest.raises(InvalidArgument):
            call(chain, addr, "CHANGE_COMPANY_ACCOUNT", OWNER, address=bad)
    with pytest.raises(AuthorizationViolation):
        call(chain, addr, "CHANGE_COMPANY_ACCOUNT", ALICE, address=eco.company_account)


def test_pause_is_owner_only(chain, eco) -> None:
    with pytest.raises(AuthorizationViolation):
        call(chain, eco.bbk, "UNPAUSE", ALICE)
    call(chain, eco.bbk, "UNPAUSE", OWNER)
    with pytest.raises(StageGuardViolation):
        call(chain, eco.bbk, "UNPAUSE", OWNER)

    with pytest.raises(AuthorizationViolation):
        call(chain, eco.bbk, "PAUSE", ALICE)
    call(chain, eco.bbk, "PAUSE", OWNER)
    assert chain.view(eco.bbk, "paused") is True


def test_paused_token_refuses_transfers_and_approvals(chain, eco) -> None:
    finish_bbk_sale(chain, eco, {ALICE: 1000})
    call(chain, eco.bbk, "PAUSE", OWNER)

    for method, payload in (
        ("TRANSFER", {"to": BOB, "amount": 1}),
        ("APPROVE", {"spender": BOB, "amount": 1}),
        ("INCREASE_APPROVAL", {"spender": BOB, "amount": 1}),
        ("DECREASE_APPROVAL", {"spender": BOB, "amount": 1}),
        ("TRANSFER_FROM", {"from": ALICE, "to": BOB, "amount": 1}),
    ):
        with pytest.raises(StageGuardViolation) as e:
            call(chain, eco.bbk, method, ALICE, **payload)
        assert e.value.reason == "token_paused"
    assert chain.view(eco.bbk, "balance_of", holder=ALICE) == 1000


def test_unpaused_token_moves_and_approves(chain, eco) -> None:
    finish_bbk_sale(chain, eco, {ALICE: 1000})

    call(chain, eco.bbk, "TRANSFER", ALICE, to=BOB, amount=100)
    assert chain.view(eco.bbk, "balance_of", holder=BOB) == 100

    call(chain, eco.bbk, "APPROVE", ALICE, spender=CAROL, amount=50)
    call(chain, eco.bbk, "INCREASE_APPROVAL", ALICE, spender=CAROL, amount=25)
    assert chain.view(eco.bbk, "allowance_of", owner=ALICE, spender=CAROL) == 75
    out = call(chain, eco.bbk, "DECREASE_APPROVAL", ALICE, spender=CAROL, amount=500)
    assert out["allowance"] == 0

    call(chain, eco.bbk, "APPROVE", ALICE, spender=CAROL, amount=300)
    call(chain, eco.bbk, "TRANSFER_FROM", CAROL, **{"from": ALICE, "to": CAROL, "amount": 300})
    assert chain.view(eco.bbk, "balance_of", holder=ALICE) == 600
    assert chain.view(eco.bbk, "balance_of", holder=CAROL) == 300
    with pytest.raises(InsufficientAllowance):
        call(chain, eco.bbk, "TRANSFER_FROM", CAROL, **{"from": ALICE, "to": CAROL, "amount": 1})
