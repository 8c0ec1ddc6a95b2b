# src/poaledger/runtime/poa_token.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Optional, Tuple

from poaledger.ledger import balances, dividends
from poaledger.ledger.fees import calculate_fee
from poaledger.ledger.layout import Layout, StorageField as F, StorageView
from poaledger.ledger.stages import activation_deadline, effective_stage, funding_deadline
from poaledger.runtime.apply.dividends import apply_dividends
from poaledger.runtime.apply.funding import apply_funding
from poaledger.runtime.apply.lifecycle import apply_lifecycle, total_fee_in_wei
from poaledger.runtime.apply.token_gates import as_int, as_str, check_timeouts, funding_goal_in_wei
from poaledger.runtime.apply.token_ledger import apply_token_ledger
from poaledger.runtime.errors import (
    ApplyError,
    AuthorizationViolation,
    InvalidArgument,
    StageGuardViolation,
    UnknownMethod,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]
ApplyFn = Callable[[StorageView, "CallContext"], Optional[Json]]


# Slot order is part of the storage contract with every deployed proxy.
# Append only.
POA_TOKEN_LAYOUT_V1: Layout = (
    F("owner", "address"),
    F("name", "str"),
    F("symbol", "str"),
    F("fiat_currency", "str"),
    F("issuer", "address"),
    F("custodian", "address"),
    F("fee_manager", "address"),
    F("whitelist", "address"),
    F("exchange_rates", "address"),
    F("decimals", "uint"),
    F("total_supply", "uint"),
    F("funding_goal_in_cents", "uint"),
    F("fee_rate_permille", "uint"),
    F("activation_fee_tolerance_permille", "uint"),
    F("start_time_for_funding_period", "uint"),
    F("duration_for_funding_period", "uint"),
    F("duration_for_activation_period", "uint"),
    F("stage", "uint"),
    F("paused", "bool"),
    F("whitelist_transfers", "bool"),
    F("proof_of_custody", "str"),
    F("activation_fee_paid", "uint"),
    F("funded_amount_in_wei", "uint"),
    F("funded_amount_in_cents", "uint"),
    F("eth_token_supply", "uint"),
    F("balances", "map_uint"),
    F("allowed", "map_map_uint"),
    F("fiat_investment_in_cents", "map_uint"),
    F("fiat_tokens", "map_uint"),
    F("investment_amount_per_user_in_wei", "map_uint"),
    F("total_per_token_payout", "uint"),
    F("claimed_per_token_payouts", "map_uint"),
    F("unclaimed_payouts", "map_uint"),
    F("unsold_burned", "bool"),
)

POA_TOKEN_LAYOUT_V2: Layout = POA_TOKEN_LAYOUT_V1 + (
    F("payout_count", "uint"),
    F("lifetime_payout_in_wei", "uint"),
)


def _summary(token: StorageView, ctx: "CallContext") -> Json:
    stage = effective_stage(token, ctx.now)
    out: Json = {
        "address": ctx.address,
        "name": token["name"],
        "symbol": token["symbol"],
        "decimals": token["decimals"],
        "fiat_currency": token["fiat_currency"],
        "owner": token["owner"],
        "issuer": token["issuer"],
        "custodian": token["custodian"],
        "stage": stage.name,
        "stored_stage": int(token["stage"]),
        "paused": token["paused"],
        "whitelist_transfers": token["whitelist_transfers"],
        "proof_of_custody": token["proof_of_custody"],
        "total_supply": token["total_supply"],
        "unsold_supply": balances.balance_of(token, ctx.address),
        "funding_goal_in_cents": token["funding_goal_in_cents"],
        "funded_amount_in_cents": token["funded_amount_in_cents"],
        "funded_amount_in_wei": token["funded_amount_in_wei"],
        "activation_fee_paid": token["activation_fee_paid"],
        "start_time_for_funding_period": token["start_time_for_funding_period"],
        "funding_deadline": funding_deadline(token),
        "activation_deadline": activation_deadline(token),
        "total_per_token_payout": token["total_per_token_payout"],
    }
    return out


_VIEWS: Dict[str, Callable[[StorageView, "CallContext", Json], Any]] = {
    "summary": lambda t, ctx, a: _summary(t, ctx),
    "stage": lambda t, ctx, a: effective_stage(t, ctx.now).name,
    "name": lambda t, ctx, a: t["name"],
    "symbol": lambda t, ctx, a: t["symbol"],
    "decimals": lambda t, ctx, a: t["decimals"],
    "owner": lambda t, ctx, a: t["owner"],
    "issuer": lambda t, ctx, a: t["issuer"],
    "custodian": lambda t, ctx, a: t["custodian"],
    "paused": lambda t, ctx, a: t["paused"],
    "whitelist_transfers": lambda t, ctx, a: t["whitelist_transfers"],
    "proof_of_custody": lambda t, ctx, a: t["proof_of_custody"],
    "total_supply": lambda t, ctx, a: t["total_supply"],
    "total_per_token_payout": lambda t, ctx, a: t["total_per_token_payout"],
    "funding_goal_in_cents": lambda t, ctx, a: t["funding_goal_in_cents"],
    "funding_goal_in_wei": lambda t, ctx, a: funding_goal_in_wei(t, ctx),
    "funded_amount_in_wei": lambda t, ctx, a: t["funded_amount_in_wei"],
    "funded_amount_in_cents": lambda t, ctx, a: t["funded_amount_in_cents"],
    "activation_fee_paid": lambda t, ctx, a: t["activation_fee_paid"],
    "calculate_fee": lambda t, ctx, a: calculate_fee(as_int(a.get("amount")), as_int(t["fee_rate_permille"])),
    "calculate_total_fee": lambda t, ctx, a: total_fee_in_wei(t, ctx),
    "balance_of": lambda t, ctx, a: balances.balance_of(t, as_str(a.get("holder"))),
    "allowance_of": lambda t, ctx, a: balances.allowance_of(t, as_str(a.get("owner")), as_str(a.get("spender"))),
    "current_payout": lambda t, ctx, a: dividends.current_payout(
        t, as_str(a.get("holder")), include_unclaimed=bool(a.get("include_unclaimed", True))
    ),
    "unclaimed_payout": lambda t, ctx, a: as_int(t["unclaimed_payouts"].get(as_str(a.get("holder")))),
    "investment_amount_per_user_in_wei": lambda t, ctx, a: as_int(
        t["investment_amount_per_user_in_wei"].get(as_str(a.get("holder")))
    ),
    "fiat_investment_in_cents": lambda t, ctx, a: as_int(t["fiat_investment_in_cents"].get(as_str(a.get("holder")))),
}


class PoaTokenMaster:
    """Proof-of-Asset token implementation, executed against proxy storage."""

    name = "PoaTokenMaster"
    LAYOUT: Layout = POA_TOKEN_LAYOUT_V1
    PAYABLE: FrozenSet[str] = frozenset({"BUY_WITH_ETH", "PAY_ACTIVATION_FEE", "PAYOUT"})
    APPLIERS: Tuple[ApplyFn, ...] = (
        apply_funding,
        apply_lifecycle,
        apply_token_ledger,
        apply_dividends,
    )
    VIEWS = _VIEWS

    # A master is code only; it is never called with its own storage.
    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        raise AuthorizationViolation("master_not_callable", {"master": ctx.address, "method": ctx.method})

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "layout":
            return [[f.name, f.kind] for f in self.LAYOUT]
        raise AuthorizationViolation("master_not_callable", {"master": ctx.address, "view": name})

    def apply_delegated(self, token: StorageView, ctx: "CallContext") -> Json:
        m = ctx.method
        if ctx.value and m not in self.PAYABLE:
            raise InvalidArgument("non_payable", {"method": m, "value": ctx.value})

        if m != "SETUP":
            if not as_str(token.get("owner")):
                raise StageGuardViolation("not_initialized", {"method": m})
            check_timeouts(token, ctx)

        for fn in self.APPLIERS:
            try:
                out = fn(token, ctx)
            except ApplyError:
                raise
            except Exception as e:
                raise ApplyError(
                    "domain_error",
                    type(e).__name__,
                    {"method": m, "domain": fn.__name__, "error": str(e)},
                ) from e
            if out is not None:
                return out

        raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": m})

    def view_delegated(self, token: StorageView, ctx: "CallContext", name: str, args: Json) -> Any:
        fn = self.VIEWS.get(name)
        if fn is None:
            raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})
        return fn(token, ctx, args)


def _apply_payout_stats(token: StorageView, ctx: "CallContext") -> Optional[Json]:
    if ctx.method != "PAYOUT":
        return None
    out = apply_dividends(token, ctx)
    token["payout_count"] = as_int(token.get("payout_count")) + 1
    token["lifetime_payout_in_wei"] = as_int(token.get("lifetime_payout_in_wei")) + ctx.value
    return out


class PoaTokenMasterV2(PoaTokenMaster):
    """Second implementation: appends payout statistics to the layout."""

    name = "PoaTokenMasterV2"
    LAYOUT = POA_TOKEN_LAYOUT_V2
    APPLIERS = (
        apply_funding,
        apply_lifecycle,
        apply_token_ledger,
        _apply_payout_stats,
        apply_dividends,
    )
    VIEWS = {
        **_VIEWS,
        "payout_stats": lambda t, ctx, a: {
            "payout_count": t["payout_count"],
            "lifetime_payout_in_wei": t["lifetime_payout_in_wei"],
        },
    }


__all__ = [
    "POA_TOKEN_LAYOUT_V1",
    "POA_TOKEN_LAYOUT_V2",
    "PoaTokenMaster",
    "PoaTokenMasterV2",
]
