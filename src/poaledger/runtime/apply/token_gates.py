# src/poaledger/runtime/apply/token_gates.py
from __future__ import annotations

"""Guards shared by every token entry point.

Every public entry point re-validates role, stage and time on each call;
nothing is cached between calls.
"""

from typing import TYPE_CHECKING, Any, Dict, MutableMapping

from poaledger.ledger.fees import fiat_cents_to_wei
from poaledger.ledger.stages import Stage, effective_stage, stage_of
from poaledger.runtime.errors import AuthorizationViolation, InvalidArgument, StageGuardViolation

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]
Token = MutableMapping[str, Any]


def as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return int(default)


def as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def payload_uint(ctx: "CallContext", key: str, *, minimum: int = 0) -> int:
    v = ctx.payload.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidArgument(f"bad_{key}", {key: v})
    if v < minimum:
        raise InvalidArgument(f"{key}_too_small", {key: v, "minimum": minimum})
    return int(v)


def payload_str(ctx: "CallContext", key: str) -> str:
    s = as_str(ctx.payload.get(key))
    if not s:
        raise InvalidArgument(f"missing_{key}", {})
    return s


def require_role(token: Token, ctx: "CallContext", *roles: str) -> str:
    """Sender must hold one of `roles` (token fields holding an address)."""
    for role in roles:
        holder = as_str(token.get(role))
        if holder and ctx.sender == holder:
            return role
    raise AuthorizationViolation(
        f"{'_or_'.join(roles)}_required",
        {"method": ctx.method, "sender": ctx.sender},
    )


def enter_stage(token: Token, ctx: "CallContext", stage: Stage, *, cause: str = "") -> None:
    before = stage_of(token)
    token["stage"] = int(stage)
    ctx.emit("StageEvent", from_stage=before.name, to_stage=stage.name, cause=cause or ctx.method)


def check_timeouts(token: Token, ctx: "CallContext") -> Stage:
    """Fast-forward the stored stage past any deadline that has elapsed."""
    eff = effective_stage(token, ctx.now)
    if eff != stage_of(token):
        enter_stage(token, ctx, eff, cause="deadline_elapsed")
    return eff


def require_not_paused(token: Token, ctx: "CallContext") -> None:
    if bool(token.get("paused")):
        raise StageGuardViolation("token_paused", {"method": ctx.method})


def is_whitelisted(token: Token, ctx: "CallContext", who: str) -> bool:
    return bool(ctx.view(as_str(token.get("whitelist")), "is_whitelisted", address=who))


def require_whitelisted(token: Token, ctx: "CallContext", who: str) -> None:
    if not is_whitelisted(token, ctx, who):
        raise AuthorizationViolation("not_whitelisted", {"address": who, "method": ctx.method})


def live_rate(token: Token, ctx: "CallContext") -> int:
    """Current fiat rate for the token's currency; raises RateNotReady."""
    return as_int(ctx.view(as_str(token.get("exchange_rates")), "current_rate", currency=as_str(token.get("fiat_currency"))))


def funding_goal_in_wei(token: Token, ctx: "CallContext") -> int:
    """Recomputed from the live rate on every use; never stored."""
    return fiat_cents_to_wei(as_int(token.get("funding_goal_in_cents")), live_rate(token, ctx))


__all__ = [
    "as_int",
    "as_str",
    "check_timeouts",
    "enter_stage",
    "funding_goal_in_wei",
    "is_whitelisted",
    "live_rate",
    "payload_str",
    "payload_uint",
    "require_not_paused",
    "require_role",
    "require_whitelisted",
]
