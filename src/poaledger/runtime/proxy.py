# src/poaledger/runtime/proxy.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from poaledger.ledger.constants import REG_POA_MANAGER
from poaledger.ledger.layout import StorageView, check_append_only, encode_slots, extend_slots
from poaledger.runtime.errors import (
    AuthorizationViolation,
    ContractNotFound,
    InvalidArgument,
    StorageLayoutViolation,
)

if TYPE_CHECKING:
    from poaledger.runtime.chain import CallContext

Json = Dict[str, Any]


class PoaProxy:
    """Forwards every call to the current master, against the proxy's own slots.

    Storage shape:
      {"proxy": {"master": <address>, "registry": <address>}, "slots": [...]}

    The proxy record lives outside the positional slots so no implementation
    can collide with it.
    """

    name = "PoaProxy"

    @staticmethod
    def init_storage(master: str, registry: str) -> Json:
        return {"proxy": {"master": master, "registry": registry}, "slots": []}

    @staticmethod
    def _master_code(ctx: "CallContext", address: str) -> Any:
        code = ctx.chain.code_of(address)
        if not hasattr(code, "apply_delegated") or not hasattr(code, "LAYOUT"):
            raise ContractNotFound("not_a_token_master", {"address": address})
        return code

    def _bind(self, storage: Json, ctx: "CallContext"):
        rec = storage["proxy"]
        code = self._master_code(ctx, rec["master"])
        ctx.registry = rec["registry"]
        return code, StorageView(storage["slots"], code.LAYOUT)

    def apply(self, storage: Json, ctx: "CallContext") -> Json:
        if ctx.method == "PROXY_CHANGE_MASTER":
            return self._change_master(storage, ctx)
        code, token = self._bind(storage, ctx)
        return code.apply_delegated(token, ctx)

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any:
        if name == "proxy_master":
            return storage["proxy"]["master"]
        if name == "proxy_registry":
            return storage["proxy"]["registry"]
        code, token = self._bind(storage, ctx)
        return code.view_delegated(token, ctx, name, args)

    def _change_master(self, storage: Json, ctx: "CallContext") -> Json:
        if ctx.value:
            raise InvalidArgument("non_payable", {"method": ctx.method, "value": ctx.value})
        rec = storage["proxy"]
        ctx.registry = rec["registry"]
        if ctx.sender != ctx.resolve(REG_POA_MANAGER):
            raise AuthorizationViolation("poa_manager_required", {"sender": ctx.sender})

        new_master = str(ctx.payload.get("master") or "").strip()
        if not new_master or new_master == rec["master"]:
            raise InvalidArgument("bad_master", {"master": new_master})

        old_code = self._master_code(ctx, rec["master"])
        new_code = self._master_code(ctx, new_master)
        check_append_only(old_code.LAYOUT, new_code.LAYOUT)

        slots = storage["slots"]
        extend_slots(slots, old_code.LAYOUT)
        before = encode_slots(slots)
        added = extend_slots(slots, new_code.LAYOUT)
        if encode_slots(slots[: len(before)]) != before:
            raise StorageLayoutViolation("existing_slots_changed", {"master": new_master})

        old_master = rec["master"]
        rec["master"] = new_master
        ctx.emit("ProxyUpgraded", parties={"old_master": old_master, "new_master": new_master}, slots_added=added)
        return {"applied": "PROXY_CHANGE_MASTER", "master": new_master, "slots_added": added}


__all__ = ["PoaProxy"]
