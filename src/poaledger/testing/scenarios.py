# src/poaledger/testing/scenarios.py
from __future__ import annotations

"""Deterministic chain fixtures shared by tests and local demos.

Numbers follow one reference deal: a 500,000.00 USD goal at 50.00 USD per
ether (5000 cents) is 100 ether, and the token has 100 whole units, so one
wei buys one base unit.
"""

from typing import Any, Dict, Mapping, Optional

from poaledger.ledger.constants import DAY_SECONDS, WEI_PER_ETHER
from poaledger.runtime.chain import Chain
from poaledger.runtime.ecosystem import Ecosystem, bootstrap_ecosystem

Json = Dict[str, Any]

T0 = 1_700_000_000

OWNER = "0x" + "0a" * 20
ISSUER = "0x" + "1b" * 20
CUSTODIAN = "0x" + "2c" * 20
ALICE = "0x" + "3d" * 20
BOB = "0x" + "4e" * 20
CAROL = "0x" + "5f" * 20
STRANGER = "0x" + "66" * 20
BONUS = "0x" + "77" * 20

USD_RATE = 5000  # cents per ether
GOAL_IN_CENTS = 500_000
TOTAL_SUPPLY = 100 * 10**18
GOAL_IN_WEI = GOAL_IN_CENTS * WEI_PER_ETHER // USD_RATE

# A CIDv0 address for custody paperwork.
CUSTODY_DOC = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


def new_chain(*, now: int = T0, params: Optional[Mapping[str, Any]] = None) -> Chain:
    return Chain(chain_id="poa-test", now=now, params=params)


def call(chain: Chain, to: str, method: str, sender: str, /, *, value: int = 0, **payload: Any) -> Json:
    return chain.execute(to, {"method": method, "sender": sender, "value": value, "payload": payload})


def stand_up(chain: Chain, *, rate: int = USD_RATE, whitelist: tuple = (ALICE, BOB, CAROL)) -> Ecosystem:
    """Ecosystem with a listed issuer, whitelisted buyers and funded wallets."""
    eco = bootstrap_ecosystem(chain, owner=OWNER, rates={"USD": rate}, bonus_address=BONUS)
    call(chain, eco.poa_manager, "ADD_ISSUER", OWNER, issuer=ISSUER)
    for who in whitelist:
        call(chain, eco.whitelist, "ADD_ADDRESS", OWNER, address=who)
    for who in (ISSUER, CUSTODIAN, ALICE, BOB, CAROL, STRANGER):
        chain.fund(who, 1_000 * WEI_PER_ETHER)
    return eco


def finish_bbk_sale(chain: Chain, eco: Ecosystem, holdings: Mapping[str, int]) -> None:
    """Distribute BBK to contributors, close the sale and unpause the token."""
    for who, amount in holdings.items():
        call(chain, eco.bbk, "DISTRIBUTE_TOKENS", OWNER, to=who, amount=amount)
    call(chain, eco.bbk, "FINALIZE_TOKEN_SALE", OWNER)
    call(chain, eco.bbk, "UNPAUSE", OWNER)


def lock_bbk(chain: Chain, eco: Ecosystem, who: str, amount: int) -> None:
    call(chain, eco.bbk, "APPROVE", who, spender=eco.fee_manager, amount=amount)
    call(chain, eco.fee_manager, "LOCK", who, amount=amount)


def token_terms(chain: Chain, **overrides: Any) -> Json:
    terms: Json = {
        "name": "Solar Farm One",
        "symbol": "SF1",
        "fiat_currency": "USD",
        "custodian": CUSTODIAN,
        "total_supply": TOTAL_SUPPLY,
        "funding_goal_in_cents": GOAL_IN_CENTS,
        "start_time_for_funding_period": chain.now + 60,
        "duration_for_funding_period": 7 * DAY_SECONDS,
        "duration_for_activation_period": 30 * DAY_SECONDS,
    }
    terms.update(overrides)
    return terms


def add_token(chain: Chain, eco: Ecosystem, **overrides: Any) -> str:
    out = call(chain, eco.poa_manager, "ADD_TOKEN", ISSUER, **token_terms(chain, **overrides))
    return str(out["token"])


def open_eth_sale(chain: Chain, token: str) -> None:
    call(chain, token, "START_PRE_FUNDING", ISSUER)
    chain.set_time(int(chain.view(token, "summary")["start_time_for_funding_period"]))
    call(chain, token, "START_ETH_SALE", STRANGER)


def open_fiat_sale(chain: Chain, token: str) -> None:
    call(chain, token, "START_PRE_FUNDING", ISSUER)
    chain.set_time(int(chain.view(token, "summary")["start_time_for_funding_period"]))
    call(chain, token, "START_FIAT_SALE", STRANGER)


def funded_token(chain: Chain, eco: Ecosystem, *, split: Optional[Mapping[str, int]] = None) -> str:
    """Token in FundingSuccessful, bought with ether in the given wei split."""
    token = add_token(chain, eco)
    open_eth_sale(chain, token)
    for buyer, wei in (split or {ALICE: GOAL_IN_WEI * 6 // 10, BOB: GOAL_IN_WEI * 4 // 10}).items():
        call(chain, token, "BUY_WITH_ETH", buyer, value=wei)
    return token


def activate(chain: Chain, token: str) -> None:
    fee = int(chain.view(token, "calculate_total_fee"))
    call(chain, token, "PAY_ACTIVATION_FEE", ISSUER, value=fee)
    call(chain, token, "UPDATE_PROOF_OF_CUSTODY", CUSTODIAN, ipfs_hash=CUSTODY_DOC)
    call(chain, token, "ACTIVATE", CUSTODIAN)


def active_token(chain: Chain, eco: Ecosystem, *, split: Optional[Mapping[str, int]] = None) -> str:
    token = funded_token(chain, eco, split=split)
    activate(chain, token)
    return token


__all__ = [
    "ALICE",
    "BOB",
    "BONUS",
    "CAROL",
    "CUSTODIAN",
    "CUSTODY_DOC",
    "GOAL_IN_CENTS",
    "GOAL_IN_WEI",
    "ISSUER",
    "OWNER",
    "STRANGER",
    "T0",
    "TOTAL_SUPPLY",
    "USD_RATE",
    "activate",
    "active_token",
    "add_token",
    "call",
    "finish_bbk_sale",
    "funded_token",
    "lock_bbk",
    "new_chain",
    "open_eth_sale",
    "open_fiat_sale",
    "stand_up",
    "token_terms",
]
