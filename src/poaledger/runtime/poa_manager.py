# src/poaledger/runtime/poa_manager.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from poaledger.ledger.constants import REG_POA_TOKEN_MASTER
from poaledger.runtime.errors import AuthorizationViolation, ContractNotFound, InvalidArgument, UnknownMethod
from poaledger.runtime.proxy import PoaProxy

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]

# Token settings an issuer supplies when adding a token.
_TOKEN_SETUP_KEYS = (
    "name",
    "symbol",
    "fiat_currency",
    "custodian",
    "total_supply",
    "funding_goal_in_cents",
    "start_time_for_funding_period",
    "duration_for_funding_period",
    "duration_for_activation_period",
)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _require_owner(st: Json, ctx: "CallContext") -> None:
    if ctx.sender != st.get("owner"):
        raise AuthorizationViolation("owner_required", {"method": ctx.method, "sender": ctx.sender})


def _address(ctx: "CallContext", key: str) -> str:
    s = _as_str(ctx.payload.get(key))
    if not s:
        raise InvalidArgument(f"missing_{key}", {})
    return s


def _issuer_entry(st: Json, issuer: str) -> Json:
    e = st["issuers"].get(issuer)
    if not isinstance(e, dict):
        raise ContractNotFound("issuer_not_found", {"issuer": issuer})
    return e


def _token_entry(st: Json, token: str) -> Json:
    e = st["tokens"].get(token)
    if not isinstance(e, dict):
        raise ContractNotFound("token_not_found", {"token": token})
    return e


# ---------------------------------------------------------------------------
# Issuers
# ---------------------------------------------------------------------------


def _apply_add_issuer(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    issuer = _address(ctx, "issuer")
    if issuer in st["issuers"]:
        raise InvalidArgument("issuer_exists", {"issuer": issuer})
    st["issuers"][issuer] = {"listed": True}
    ctx.emit("IssuerAdded", parties={"issuer": issuer})
    return {"applied": "ADD_ISSUER", "issuer": issuer}


def _apply_set_issuer_listed(st: Json, ctx: "CallContext", listed: bool) -> Json:
    _require_owner(st, ctx)
    issuer = _address(ctx, "issuer")
    e = _issuer_entry(st, issuer)
    if bool(e.get("listed")) == listed:
        raise InvalidArgument("issuer_already_listed" if listed else "issuer_already_delisted", {"issuer": issuer})
    e["listed"] = listed
    ctx.emit("IssuerStatusChanged", parties={"issuer": issuer}, listed=listed)
    return {"applied": ctx.method, "issuer": issuer, "listed": listed}


def _apply_remove_issuer(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    issuer = _address(ctx, "issuer")
    _issuer_entry(st, issuer)
    del st["issuers"][issuer]
    ctx.emit("IssuerRemoved", parties={"issuer": issuer})
    return {"applied": "REMOVE_ISSUER", "issuer": issuer}


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def _apply_add_token(st: Json, ctx: "CallContext") -> Json:
    e = st["issuers"].get(ctx.sender)
    if not isinstance(e, dict) or not e.get("listed"):
        raise AuthorizationViolation("listed_issuer_required", {"sender": ctx.sender})

    master = ctx.resolve(REG_POA_TOKEN_MASTER)
    token = ctx.deploy(PoaProxy.name, PoaProxy.init_storage(master, ctx.registry))

    setup: Json = {k: ctx.payload.get(k) for k in _TOKEN_SETUP_KEYS}
    setup["issuer"] = ctx.sender
    ctx.call_contract(token, "SETUP", payload=setup)

    st["tokens"][token] = {"issuer": ctx.sender, "listed": False}
    ctx.emit("TokenAdded", parties={"token": token, "issuer": ctx.sender})
    return {"applied": "ADD_TOKEN", "token": token}


def _apply_set_token_listed(st: Json, ctx: "CallContext", listed: bool) -> Json:
    _require_owner(st, ctx)
    token = _address(ctx, "token")
    e = _token_entry(st, token)
    if bool(e.get("listed")) == listed:
        raise InvalidArgument("token_already_listed" if listed else "token_already_delisted", {"token": token})
    e["listed"] = listed
    ctx.emit("TokenStatusChanged", parties={"token": token}, listed=listed)
    return {"applied": ctx.method, "token": token, "listed": listed}


def _apply_remove_token(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    token = _address(ctx, "token")
    _token_entry(st, token)
    del st["tokens"][token]
    ctx.emit("TokenRemoved", parties={"token": token})
    return {"applied": "REMOVE_TOKEN", "token": token}


# Manager-owned actions forwarded to the token with the manager as sender.
_FORWARDED = {
    "PAUSE_TOKEN": "PAUSE",
    "UNPAUSE_TOKEN": "UNPAUSE",
    "TERMINATE_TOKEN": "TERMINATE",
    "TOGGLE_TOKEN_WHITELIST_TRANSFERS": "TOGGLE_WHITELIST_TRANSFERS",
}


def _apply_forward(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    token = _address(ctx, "token")
    _token_entry(st, token)
    out = ctx.call_contract(token, _FORWARDED[ctx.method])
    return {"applied": ctx.method, "token": token, "result": out}


def _apply_upgrade_token(st: Json, ctx: "CallContext") -> Json:
    _require_owner(st, ctx)
    token = _address(ctx, "token")
    _token_entry(st, token)
    master = _address(ctx, "master")
    out = ctx.call_contract(token, "PROXY_CHANGE_MASTER", payload={"master": master})
    return {"applied": "UPGRADE_TOKEN", "token": token, "result": out}


class PoaManager:
    name = "PoaManager"

    @staticmethod
    def init_storage(owner: str) -> Json:
        return {"owner": owner, "issuers": {}, "tokens": {}}

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        m = ctx.method
        if ctx.value:
            raise InvalidArgument("non_payable", {"method": m, "value": ctx.value})

        if m == "ADD_ISSUER":
            return _apply_add_issuer(storage, ctx)
        if m == "LIST_ISSUER":
            return _apply_set_issuer_listed(storage, ctx, True)
        if m == "DELIST_ISSUER":
            return _apply_set_issuer_listed(storage, ctx, False)
        if m == "REMOVE_ISSUER":
            return _apply_remove_issuer(storage, ctx)
        if m == "ADD_TOKEN":
            return _apply_add_token(storage, ctx)
        if m == "LIST_TOKEN":
            return _apply_set_token_listed(storage, ctx, True)
        if m == "DELIST_TOKEN":
            return _apply_set_token_listed(storage, ctx, False)
        if m == "REMOVE_TOKEN":
            return _apply_remove_token(storage, ctx)
        if m in _FORWARDED:
            return _apply_forward(storage, ctx)
        if m == "UPGRADE_TOKEN":
            return _apply_upgrade_token(storage, ctx)

        raise UnknownMethod("method_not_implemented", {"contract": self.name, "method": m})

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "owner":
            return storage.get("owner", "")
        if name == "is_listed_issuer":
            e = storage["issuers"].get(_as_str(args.get("issuer")))
            return bool(isinstance(e, dict) and e.get("listed"))
        if name == "is_listed_token":
            e = storage["tokens"].get(_as_str(args.get("token")))
            return bool(isinstance(e, dict) and e.get("listed"))
        if name == "issuer_list":
            return sorted(storage["issuers"].keys())
        if name == "token_list":
            issuer: Optional[str] = _as_str(args.get("issuer")) or None
            out: List[str] = [t for t, e in storage["tokens"].items() if issuer is None or e.get("issuer") == issuer]
            return sorted(out)
        raise UnknownMethod("view_not_implemented", {"contract": self.name, "view": name})


__all__ = ["PoaManager"]
