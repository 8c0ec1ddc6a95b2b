# src/poaledger/runtime/collaborators.py
from __future__ import annotations

"""External collaborators consumed by the token: whitelist, exchange-rate
oracle and the name -> address registry.

Each is an owner-administered map plus one query.
"""

from typing import TYPE_CHECKING, Any, Dict

from poaledger.runtime.errors import (
    AuthorizationViolation,
    ContractNotFound,
    InvalidArgument,
    RateNotReady,
    UnknownMethod,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return int(default)


def _require_owner(storage: Json, ctx: "CallContext") -> None:
    if ctx.sender != storage.get("owner"):
        raise AuthorizationViolation("owner_required", {"method": ctx.method, "sender": ctx.sender})


def _no_value(ctx: "CallContext") -> None:
    if ctx.value:
        raise InvalidArgument("non_payable", {"method": ctx.method, "value": ctx.value})


class Whitelist:
    name = "Whitelist"

    @staticmethod
    def init_storage(owner: str) -> Json:
        return {"owner": owner, "whitelisted": {}}

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        _no_value(ctx)
        _require_owner(storage, ctx)
        who = _as_str(ctx.payload.get("address"))
        if not who:
            raise InvalidArgument("missing_address", {"method": ctx.method})

        if ctx.method == "ADD_ADDRESS":
            storage["whitelisted"][who] = True
        elif ctx.method == "REMOVE_ADDRESS":
            storage["whitelisted"].pop(who, None)
        else:
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": ctx.method})

        ctx.emit("WhitelistChanged", parties={"address": who}, listed=ctx.method == "ADD_ADDRESS")
        return {"applied": ctx.method, "address": who}

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "is_whitelisted":
            return bool(storage.get("whitelisted", {}).get(_as_str(args.get("address"))))
        if name == "owner":
            return storage.get("owner", "")
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


class ExchangeRates:
    """Fiat rate oracle. Rates are integer fiat cents per whole ether."""

    name = "ExchangeRates"

    @staticmethod
    def init_storage(owner: str, rates: Dict[str, int] | None = None) -> Json:
        return {"owner": owner, "rates": {str(k).upper(): int(v) for k, v in (rates or {}).items()}}

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        _no_value(ctx)
        _require_owner(storage, ctx)
        if ctx.method != "SET_RATE":
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": ctx.method})

        currency = _as_str(ctx.payload.get("currency")).upper()
        rate = ctx.payload.get("rate")
        if not currency:
            raise InvalidArgument("missing_currency", {})
        if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
            raise InvalidArgument("bad_rate", {"rate": rate})

        storage["rates"][currency] = int(rate)
        ctx.emit("RateUpdated", amounts={"rate": rate}, currency=currency)
        return {"applied": "SET_RATE", "currency": currency, "rate": int(rate)}

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        currency = _as_str(args.get("currency")).upper()
        rate = _as_int(storage.get("rates", {}).get(currency), 0)
        if name == "current_rate":
            if rate <= 0:
                raise RateNotReady("rate_not_ready", {"currency": currency})
            return rate
        if name == "is_ready":
            return rate > 0
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


class ContractRegistry:
    name = "ContractRegistry"

    @staticmethod
    def init_storage(owner: str) -> Json:
        return {"owner": owner, "addresses": {}}

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        _no_value(ctx)
        _require_owner(storage, ctx)
        if ctx.method != "UPDATE_CONTRACT_ADDRESS":
            raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": ctx.method})

        name = _as_str(ctx.payload.get("name"))
        address = _as_str(ctx.payload.get("address"))
        if not name or not address:
            raise InvalidArgument("missing_name_or_address", {"name": name, "address": address})

        storage["addresses"][name] = address
        ctx.emit("ContractAddressUpdated", parties={"address": address}, name=name)
        return {"applied": "UPDATE_CONTRACT_ADDRESS", "name": name, "address": address}

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "resolve":
            key = _as_str(args.get("name"))
            addr = _as_str(storage.get("addresses", {}).get(key))
            if not addr:
                raise ContractNotFound("unregistered_contract", {"name": key})
            return addr
        if name == "addresses":
            return dict(storage.get("addresses", {}))
        if name == "owner":
            return storage.get("owner", "")
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


__all__ = ["ContractRegistry", "ExchangeRates", "Whitelist"]
