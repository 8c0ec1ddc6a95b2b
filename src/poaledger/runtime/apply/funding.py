# src/poaledger/runtime/apply/funding.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from poaledger.ledger import balances
from poaledger.ledger.constants import (
    ACTIVATION_FEE_TOLERANCE_PERMILLE,
    DECIMALS,
    FEE_RATE_PERMILLE,
    MIN_DURATION_FOR_ACTIVATION_PERIOD,
    MIN_DURATION_FOR_FUNDING_PERIOD,
    MIN_FUNDING_GOAL_IN_CENTS,
    MIN_TOTAL_SUPPLY,
    REG_EXCHANGE_RATES,
    REG_FEE_MANAGER,
    REG_WHITELIST,
)
from poaledger.ledger.dividends import settle_payout
from poaledger.ledger.fees import wei_to_fiat_cents
from poaledger.ledger.stages import Stage, require_stage, stage_of
from poaledger.runtime.apply.token_gates import (
    Token,
    as_int,
    as_str,
    enter_stage,
    funding_goal_in_wei,
    live_rate,
    payload_str,
    payload_uint,
    require_role,
    require_whitelisted,
)
from poaledger.runtime.errors import GoalExceeded, InvalidArgument, StageGuardViolation

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def _map(token: Token, key: str) -> Json:
    return token[key]


def _credit_from_contract(token: Token, ctx: "CallContext", investor: str, tokens: int) -> None:
    balances.transfer(token, ctx.address, investor, tokens, settle=settle_payout)


def _return_to_contract(token: Token, ctx: "CallContext", investor: str, tokens: int) -> None:
    balances.transfer(token, investor, ctx.address, tokens, settle=settle_payout)


def _unsold(token: Token, ctx: "CallContext") -> int:
    return balances.balance_of(token, ctx.address)


def _require_start_reached(token: Token, ctx: "CallContext") -> None:
    start = as_int(token.get("start_time_for_funding_period"))
    if ctx.now < start:
        raise StageGuardViolation("funding_not_started", {"now": ctx.now, "start": start})


def _mark_successful(token: Token, ctx: "CallContext") -> None:
    enter_stage(token, ctx, Stage.FundingSuccessful)


def _raised_in_cents(token: Token, ctx: "CallContext") -> int:
    """Fiat plus ether raised so far, the ether priced at the live rate."""
    return as_int(token.get("funded_amount_in_cents")) + wei_to_fiat_cents(
        as_int(token.get("funded_amount_in_wei")), live_rate(token, ctx)
    )


def _succeed_if_goal_met(token: Token, ctx: "CallContext") -> Optional[int]:
    """Burn unsold supply and enter FundingSuccessful once the goal is met.

    Returns the number of units burned, or None while the goal is still open.
    """
    if _raised_in_cents(token, ctx) < as_int(token.get("funding_goal_in_cents")):
        return None
    unsold = _unsold(token, ctx)
    if unsold:
        balances.burn(token, ctx.address, unsold, settle=settle_payout)
    _mark_successful(token, ctx)
    return unsold


# ---------------------------------------------------------------------------
# Setup and Preview
# ---------------------------------------------------------------------------


def _validate_start(ctx: "CallContext", start: int) -> int:
    if start < ctx.now:
        raise InvalidArgument("start_time_in_past", {"start": start, "now": ctx.now})
    return start


def _apply_setup(token: Token, ctx: "CallContext") -> Json:
    if as_str(token.get("owner")):
        raise InvalidArgument("already_initialized", {})

    name = payload_str(ctx, "name")
    symbol = payload_str(ctx, "symbol")
    fiat_currency = payload_str(ctx, "fiat_currency").upper()
    issuer = payload_str(ctx, "issuer")
    custodian = payload_str(ctx, "custodian")
    total_supply = payload_uint(ctx, "total_supply", minimum=MIN_TOTAL_SUPPLY)
    goal = payload_uint(ctx, "funding_goal_in_cents", minimum=MIN_FUNDING_GOAL_IN_CENTS)
    start = _validate_start(ctx, payload_uint(ctx, "start_time_for_funding_period"))
    dur_funding = payload_uint(ctx, "duration_for_funding_period", minimum=MIN_DURATION_FOR_FUNDING_PERIOD)
    dur_activation = payload_uint(ctx, "duration_for_activation_period", minimum=MIN_DURATION_FOR_ACTIVATION_PERIOD)

    token["owner"] = ctx.sender
    token["name"] = name
    token["symbol"] = symbol
    token["fiat_currency"] = fiat_currency
    token["issuer"] = issuer
    token["custodian"] = custodian
    token["decimals"] = DECIMALS
    token["total_supply"] = total_supply
    token["funding_goal_in_cents"] = goal
    token["start_time_for_funding_period"] = start
    token["duration_for_funding_period"] = dur_funding
    token["duration_for_activation_period"] = dur_activation
    token["fee_rate_permille"] = as_int(ctx.param("fee_rate_permille"), FEE_RATE_PERMILLE)
    token["activation_fee_tolerance_permille"] = as_int(
        ctx.param("activation_fee_tolerance_permille"), ACTIVATION_FEE_TOLERANCE_PERMILLE
    )

    # Collaborators are wired once, here; the registry is not consulted on the hot path.
    token["fee_manager"] = ctx.resolve(REG_FEE_MANAGER)
    token["whitelist"] = ctx.resolve(REG_WHITELIST)
    token["exchange_rates"] = ctx.resolve(REG_EXCHANGE_RATES)

    # Refuse to start life against an oracle that cannot price the goal.
    live_rate(token, ctx)

    token["stage"] = int(Stage.Preview)
    token["paused"] = True
    _map(token, "balances")[ctx.address] = total_supply

    ctx.emit(
        "TokenSetup",
        parties={"owner": ctx.sender, "issuer": issuer, "custodian": custodian},
        amounts={"total_supply": total_supply, "funding_goal_in_cents": goal},
        name=name,
        symbol=symbol,
        fiat_currency=fiat_currency,
    )
    return {"applied": "SETUP", "token": ctx.address}


def _set_total_supply(token: Token, ctx: "CallContext", value: int) -> None:
    # Nothing has been sold in Preview, so the contract holds the whole supply.
    token["total_supply"] = value
    _map(token, "balances")[ctx.address] = value


def _set_fiat_currency(token: Token, ctx: "CallContext", value: str) -> None:
    token["fiat_currency"] = value.upper()
    live_rate(token, ctx)


_PREVIEW_UPDATES: Dict[str, Tuple[str, Callable[["CallContext"], Any]]] = {
    "UPDATE_NAME": ("name", lambda ctx: payload_str(ctx, "name")),
    "UPDATE_SYMBOL": ("symbol", lambda ctx: payload_str(ctx, "symbol")),
    "UPDATE_ISSUER_ADDRESS": ("issuer", lambda ctx: payload_str(ctx, "issuer")),
    "UPDATE_FIAT_CURRENCY": ("fiat_currency", lambda ctx: payload_str(ctx, "fiat_currency")),
    "UPDATE_FUNDING_GOAL_IN_CENTS": (
        "funding_goal_in_cents",
        lambda ctx: payload_uint(ctx, "funding_goal_in_cents", minimum=MIN_FUNDING_GOAL_IN_CENTS),
    ),
    "UPDATE_START_TIME_FOR_FUNDING_PERIOD": (
        "start_time_for_funding_period",
        lambda ctx: _validate_start(ctx, payload_uint(ctx, "start_time_for_funding_period")),
    ),
    "UPDATE_DURATION_FOR_FUNDING_PERIOD": (
        "duration_for_funding_period",
        lambda ctx: payload_uint(ctx, "duration_for_funding_period", minimum=MIN_DURATION_FOR_FUNDING_PERIOD),
    ),
    "UPDATE_DURATION_FOR_ACTIVATION_PERIOD": (
        "duration_for_activation_period",
        lambda ctx: payload_uint(ctx, "duration_for_activation_period", minimum=MIN_DURATION_FOR_ACTIVATION_PERIOD),
    ),
    "UPDATE_TOTAL_SUPPLY": ("total_supply", lambda ctx: payload_uint(ctx, "total_supply", minimum=MIN_TOTAL_SUPPLY)),
}


def _apply_preview_update(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "issuer")
    require_stage(token, Stage.Preview, action=ctx.method)

    field, parse = _PREVIEW_UPDATES[ctx.method]
    value = parse(ctx)
    if field == "total_supply":
        _set_total_supply(token, ctx, value)
    elif field == "fiat_currency":
        _set_fiat_currency(token, ctx, value)
    else:
        token[field] = value

    ctx.emit("TermsUpdated", parties={"issuer": ctx.sender}, field=field, value=token[field])
    return {"applied": ctx.method, field: token[field]}


def _apply_start_pre_funding(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "issuer")
    require_stage(token, Stage.Preview, action=ctx.method)
    enter_stage(token, ctx, Stage.PreFunding)
    return {"applied": "START_PRE_FUNDING", "stage": Stage.PreFunding.name}


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def _apply_start_fiat_sale(token: Token, ctx: "CallContext") -> Json:
    require_stage(token, Stage.PreFunding, action=ctx.method)
    _require_start_reached(token, ctx)
    enter_stage(token, ctx, Stage.FiatFunding)
    return {"applied": "START_FIAT_SALE", "stage": Stage.FiatFunding.name}


def _apply_start_eth_sale(token: Token, ctx: "CallContext") -> Json:
    require_stage(token, Stage.PreFunding, Stage.FiatFunding, action=ctx.method)
    _require_start_reached(token, ctx)
    enter_stage(token, ctx, Stage.EthFunding)
    return {"applied": "START_ETH_SALE", "stage": Stage.EthFunding.name}


def _apply_buy_fiat(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "custodian")
    require_stage(token, Stage.FiatFunding, action=ctx.method)

    investor = payload_str(ctx, "investor")
    cents = payload_uint(ctx, "amount_in_cents", minimum=1)

    goal = as_int(token.get("funding_goal_in_cents"))
    funded = as_int(token.get("funded_amount_in_cents"))
    if funded + cents > goal:
        raise GoalExceeded("fiat_purchase_exceeds_goal", {"amount_in_cents": cents, "remaining_in_cents": goal - funded})

    completes = funded + cents == goal
    tokens = _unsold(token, ctx) if completes else cents * as_int(token.get("total_supply")) // goal
    if tokens <= 0:
        raise InvalidArgument("purchase_too_small", {"amount_in_cents": cents})

    _credit_from_contract(token, ctx, investor, tokens)
    fiat_in = _map(token, "fiat_investment_in_cents")
    fiat_in[investor] = as_int(fiat_in.get(investor)) + cents
    fiat_tokens = _map(token, "fiat_tokens")
    fiat_tokens[investor] = as_int(fiat_tokens.get(investor)) + tokens
    token["funded_amount_in_cents"] = funded + cents

    ctx.emit("BuyFiatEvent", parties={"investor": investor}, amounts={"amount_in_cents": cents, "tokens": tokens})
    if completes:
        _mark_successful(token, ctx)
    return {"applied": "BUY_FIAT", "investor": investor, "tokens": tokens, "stage": stage_of(token).name}


def _apply_remove_fiat(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "custodian")
    require_stage(token, Stage.FiatFunding, action=ctx.method)

    investor = payload_str(ctx, "investor")
    cents = payload_uint(ctx, "amount_in_cents", minimum=1)

    fiat_in = _map(token, "fiat_investment_in_cents")
    fiat_tokens = _map(token, "fiat_tokens")
    invested = as_int(fiat_in.get(investor))
    held = as_int(fiat_tokens.get(investor))
    if cents > invested:
        raise InvalidArgument("remove_exceeds_investment", {"amount_in_cents": cents, "invested_in_cents": invested})

    tokens = held if cents == invested else held * cents // invested
    _return_to_contract(token, ctx, investor, tokens)
    fiat_in[investor] = invested - cents
    fiat_tokens[investor] = held - tokens
    token["funded_amount_in_cents"] = as_int(token.get("funded_amount_in_cents")) - cents

    ctx.emit("RemoveFiatEvent", parties={"investor": investor}, amounts={"amount_in_cents": cents, "tokens": tokens})
    return {"applied": "REMOVE_FIAT", "investor": investor, "tokens": tokens}


def _apply_buy_with_eth(token: Token, ctx: "CallContext") -> Json:
    require_stage(token, Stage.EthFunding, action=ctx.method)
    require_whitelisted(token, ctx, ctx.sender)
    if ctx.value <= 0:
        raise InvalidArgument("missing_value", {})

    # A rate rise alone can meet the goal; the buyer then gets everything back.
    burned = _succeed_if_goal_met(token, ctx)
    if burned is not None:
        ctx.send(ctx.sender, ctx.value)
        return {
            "applied": "BUY_WITH_ETH",
            "tokens": 0,
            "accepted": 0,
            "refund": ctx.value,
            "burned": burned,
            "stage": stage_of(token).name,
        }

    supply = as_int(token.get("total_supply"))
    goal_wei = funding_goal_in_wei(token, ctx)
    remaining = _unsold(token, ctx)
    tokens = ctx.value * supply // goal_wei

    if tokens >= remaining:
        # Final purchase: accept exactly what the remaining supply costs at the
        # live rate (rounded up) and hand back the rest in this same call.
        accepted = (remaining * goal_wei + supply - 1) // supply
        tokens = remaining
    elif tokens <= 0:
        raise InvalidArgument("purchase_too_small", {"value": ctx.value, "goal_in_wei": goal_wei})
    else:
        accepted = ctx.value
    refund = ctx.value - accepted

    _credit_from_contract(token, ctx, ctx.sender, tokens)
    per_user = _map(token, "investment_amount_per_user_in_wei")
    per_user[ctx.sender] = as_int(per_user.get(ctx.sender)) + accepted
    token["funded_amount_in_wei"] = as_int(token.get("funded_amount_in_wei")) + accepted
    token["eth_token_supply"] = as_int(token.get("eth_token_supply")) + tokens

    completes = tokens == remaining
    if completes:
        _mark_successful(token, ctx)
    ctx.emit(
        "BuyEthEvent",
        parties={"buyer": ctx.sender},
        amounts={"value": accepted, "tokens": tokens, "refund": refund},
    )

    if refund:
        ctx.send(ctx.sender, refund)
    return {
        "applied": "BUY_WITH_ETH",
        "tokens": tokens,
        "accepted": accepted,
        "refund": refund,
        "stage": stage_of(token).name,
    }


def _apply_check_funding_successful(token: Token, ctx: "CallContext") -> Json:
    """Re-evaluate success against the live rate.

    A rising rate can carry the wei already raised past the goal without any
    further purchase. Unsold supply is burned when that happens.
    """
    require_stage(token, Stage.EthFunding, action=ctx.method)
    raised = _raised_in_cents(token, ctx)
    burned = _succeed_if_goal_met(token, ctx)
    if burned is None:
        return {"applied": "CHECK_FUNDING_SUCCESSFUL", "funding_successful": False, "raised_in_cents": raised}
    return {
        "applied": "CHECK_FUNDING_SUCCESSFUL",
        "funding_successful": True,
        "raised_in_cents": raised,
        "burned": burned,
    }


def _apply_cancel_funding(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "issuer", "custodian")
    require_stage(token, Stage.Preview, Stage.PreFunding, Stage.FiatFunding, action=ctx.method)
    enter_stage(token, ctx, Stage.FundingCancelled)
    return {"applied": "CANCEL_FUNDING", "stage": Stage.FundingCancelled.name}


def _apply_set_stage_to_timed_out(token: Token, ctx: "CallContext") -> Json:
    # The deadline check already ran on entry; all that is left is to
    # confirm it produced (or had produced) the TimedOut stage.
    if stage_of(token) != Stage.TimedOut:
        raise StageGuardViolation("deadline_not_reached", {"stage": stage_of(token).name, "now": ctx.now})
    return {"applied": "SET_STAGE_TO_TIMED_OUT", "stage": Stage.TimedOut.name}


FUNDING_METHODS = {
    "SETUP",
    "START_PRE_FUNDING",
    "START_FIAT_SALE",
    "START_ETH_SALE",
    "BUY_FIAT",
    "REMOVE_FIAT",
    "BUY_WITH_ETH",
    "CHECK_FUNDING_SUCCESSFUL",
    "CANCEL_FUNDING",
    "SET_STAGE_TO_TIMED_OUT",
} | set(_PREVIEW_UPDATES)


def apply_funding(token: Token, ctx: "CallContext") -> Optional[Json]:
    """
    Returns:
      - dict: applied result
      - None: method not handled by the funding state machine
    """
    m = ctx.method
    if m not in FUNDING_METHODS:
        return None

    if m == "SETUP":
        return _apply_setup(token, ctx)
    if m in _PREVIEW_UPDATES:
        return _apply_preview_update(token, ctx)
    if m == "START_PRE_FUNDING":
        return _apply_start_pre_funding(token, ctx)
    if m == "START_FIAT_SALE":
        return _apply_start_fiat_sale(token, ctx)
    if m == "START_ETH_SALE":
        return _apply_start_eth_sale(token, ctx)
    if m == "BUY_FIAT":
        return _apply_buy_fiat(token, ctx)
    if m == "REMOVE_FIAT":
        return _apply_remove_fiat(token, ctx)
    if m == "BUY_WITH_ETH":
        return _apply_buy_with_eth(token, ctx)
    if m == "CHECK_FUNDING_SUCCESSFUL":
        return _apply_check_funding_successful(token, ctx)
    if m == "CANCEL_FUNDING":
        return _apply_cancel_funding(token, ctx)
    if m == "SET_STAGE_TO_TIMED_OUT":
        return _apply_set_stage_to_timed_out(token, ctx)
    return None


__all__ = ["FUNDING_METHODS", "apply_funding"]
