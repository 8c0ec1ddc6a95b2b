# src/poaledger/runtime/apply/lifecycle.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from poaledger.ledger.dividends import credit_unclaimed
from poaledger.ledger.fees import calculate_total_fee, check_fee_within_band
from poaledger.ledger.stages import Stage, require_stage
from poaledger.runtime.apply.token_gates import (
    Token,
    as_int,
    as_str,
    enter_stage,
    live_rate,
    payload_str,
    require_role,
)
from poaledger.runtime.errors import InvalidArgument, StageGuardViolation
from poaledger.util.ipfs_hash import check_ipfs_hash

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def total_fee_in_wei(token: Token, ctx: "CallContext") -> int:
    return calculate_total_fee(
        as_int(token.get("funding_goal_in_cents")),
        live_rate(token, ctx),
        as_int(token.get("fee_rate_permille")),
    )


def _apply_pay_activation_fee(token: Token, ctx: "CallContext") -> Json:
    require_stage(token, Stage.FundingSuccessful, action=ctx.method)
    if as_int(token.get("activation_fee_paid")):
        raise InvalidArgument("activation_fee_already_paid", {"paid": as_int(token.get("activation_fee_paid"))})

    expected = total_fee_in_wei(token, ctx)
    band = check_fee_within_band(ctx.value, expected, as_int(token.get("activation_fee_tolerance_permille")))

    token["activation_fee_paid"] = ctx.value
    ctx.emit("ActivationFeePaid", parties={"payer": ctx.sender}, amounts={"paid": ctx.value, "expected": expected})

    # Fee proceeds go to the fee share like any other fee.
    ctx.call_contract(as_str(token.get("fee_manager")), "PAY_FEE", value=ctx.value)
    return {"applied": "PAY_ACTIVATION_FEE", **band}


def _apply_update_proof_of_custody(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "custodian")
    require_stage(token, Stage.FundingSuccessful, Stage.Active, action=ctx.method)

    chk = check_ipfs_hash(ctx.payload.get("ipfs_hash"))
    if not chk.ok:
        raise InvalidArgument(chk.reason, {"ipfs_hash": chk.value})

    token["proof_of_custody"] = chk.value
    ctx.emit("ProofOfCustodyUpdated", parties={"custodian": ctx.sender}, ipfs_hash=chk.value)
    return {"applied": "UPDATE_PROOF_OF_CUSTODY", "ipfs_hash": chk.value}


def _apply_activate(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "custodian")
    require_stage(token, Stage.FundingSuccessful, action=ctx.method)
    if not as_str(token.get("proof_of_custody")):
        raise StageGuardViolation("proof_of_custody_missing", {})
    if not as_int(token.get("activation_fee_paid")):
        raise StageGuardViolation("activation_fee_unpaid", {})

    enter_stage(token, ctx, Stage.Active)
    token["paused"] = False

    # Raised funds become claimable by the issuer through the payout path.
    issuer = as_str(token.get("issuer"))
    raised = as_int(token.get("funded_amount_in_wei"))
    if raised:
        credit_unclaimed(token, issuer, raised)
    ctx.emit("Activated", parties={"custodian": ctx.sender, "issuer": issuer}, amounts={"raised_in_wei": raised})
    return {"applied": "ACTIVATE", "issuer_claimable": raised}


def _apply_terminate(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "owner", "custodian")
    require_stage(token, Stage.Active, action=ctx.method)
    enter_stage(token, ctx, Stage.Terminated)
    token["paused"] = True
    return {"applied": "TERMINATE", "stage": Stage.Terminated.name}


def _apply_change_custodian(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "custodian")
    new = payload_str(ctx, "custodian")
    if new == as_str(token.get("custodian")):
        raise InvalidArgument("custodian_unchanged", {"custodian": new})
    token["custodian"] = new
    ctx.emit("CustodianChanged", parties={"old": ctx.sender, "new": new})
    return {"applied": "CHANGE_CUSTODIAN_ADDRESS", "custodian": new}


def _apply_toggle_whitelist_transfers(token: Token, ctx: "CallContext") -> Json:
    require_role(token, ctx, "owner")
    token["whitelist_transfers"] = not bool(token.get("whitelist_transfers"))
    ctx.emit("WhitelistTransfersToggled", enabled=token["whitelist_transfers"])
    return {"applied": "TOGGLE_WHITELIST_TRANSFERS", "whitelist_transfers": token["whitelist_transfers"]}


def _apply_pause(token: Token, ctx: "CallContext", paused: bool) -> Json:
    require_role(token, ctx, "owner")
    require_stage(token, Stage.Active, action=ctx.method)
    if bool(token.get("paused")) == paused:
        raise InvalidArgument("already_paused" if paused else "not_paused", {})
    token["paused"] = paused
    ctx.emit("Pause" if paused else "Unpause")
    return {"applied": ctx.method, "paused": paused}


LIFECYCLE_METHODS: Set[str] = {
    "PAY_ACTIVATION_FEE",
    "UPDATE_PROOF_OF_CUSTODY",
    "ACTIVATE",
    "TERMINATE",
    "CHANGE_CUSTODIAN_ADDRESS",
    "TOGGLE_WHITELIST_TRANSFERS",
    "PAUSE",
    "UNPAUSE",
}


def apply_lifecycle(token: Token, ctx: "CallContext") -> Optional[Json]:
    m = ctx.method
    if m not in LIFECYCLE_METHODS:
        return None

    if m == "PAY_ACTIVATION_FEE":
        return _apply_pay_activation_fee(token, ctx)
    if m == "UPDATE_PROOF_OF_CUSTODY":
        return _apply_update_proof_of_custody(token, ctx)
    if m == "ACTIVATE":
        return _apply_activate(token, ctx)
    if m == "TERMINATE":
        return _apply_terminate(token, ctx)
    if m == "CHANGE_CUSTODIAN_ADDRESS":
        return _apply_change_custodian(token, ctx)
    if m == "TOGGLE_WHITELIST_TRANSFERS":
        return _apply_toggle_whitelist_transfers(token, ctx)
    if m == "PAUSE":
        return _apply_pause(token, ctx, True)
    if m == "UNPAUSE":
        return _apply_pause(token, ctx, False)
    return None


__all__ = ["LIFECYCLE_METHODS", "apply_lifecycle", "total_fee_in_wei"]
