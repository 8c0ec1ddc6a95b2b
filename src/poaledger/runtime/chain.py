# src/poaledger/runtime/chain.py
from __future__ import annotations

import copy
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from poaledger.ledger.migrations import CURRENT_SNAPSHOT_VERSION, migrate_snapshot_dict
from poaledger.runtime.call import Call
from poaledger.runtime.errors import (
    ApplyError,
    ContractNotFound,
    InsufficientFunds,
    InvalidArgument,
)
from poaledger.runtime.event_logging import log_contract_event, log_event

Json = Dict[str, Any]

log = logging.getLogger("poaledger.chain")
events_log = logging.getLogger("poaledger.events")

# Called after `amount` wei lands on `address`; lets tests model a receiving contract.
ReceiveHook = Callable[["Chain", str, int], None]


class ContractCode(Protocol):
    name: str

    def apply(self, storage: Json, ctx: "CallContext") -> Json: ...

    def view(self, storage: Json, ctx: "CallContext", name: str, args: Json) -> Any: ...


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _assign_in_place(dst: Any, src: Any) -> None:
    """Make container `dst` equal to `src` without replacing nested containers."""
    if isinstance(dst, dict) and isinstance(src, dict):
        for k in list(dst.keys()):
            if k not in src:
                del dst[k]
        for k, v in src.items():
            if k in dst and type(dst[k]) is type(v) and isinstance(v, (dict, list)):
                _assign_in_place(dst[k], v)
            else:
                dst[k] = copy.deepcopy(v)
        return
    if isinstance(dst, list) and isinstance(src, list):
        del dst[len(src):]
        for i, v in enumerate(src):
            if i < len(dst) and type(dst[i]) is type(v) and isinstance(v, (dict, list)):
                _assign_in_place(dst[i], v)
            elif i < len(dst):
                dst[i] = copy.deepcopy(v)
            else:
                dst.append(copy.deepcopy(v))
        return
    raise TypeError("containers must be both dicts or both lists")


def _default_codes() -> Dict[str, ContractCode]:
    from poaledger.runtime.contracts import CODES

    return dict(CODES)


@dataclass
class CallContext:
    """Execution context handed to contract code for one (possibly nested) call.

    `address` is the contract whose storage is being mutated; for delegated
    calls through a proxy it is the proxy, not the implementation.
    """

    chain: "Chain"
    address: str
    call: Call
    registry: str = ""
    depth: int = 0
    meta: Json = field(default_factory=dict)

    @property
    def method(self) -> str:
        return self.call.method

    @property
    def sender(self) -> str:
        return self.call.sender

    @property
    def value(self) -> int:
        return int(self.call.value)

    @property
    def payload(self) -> Json:
        return self.call.payload

    @property
    def now(self) -> int:
        return int(self.chain.now)

    def param(self, key: str, default: Any = None) -> Any:
        return self.chain.params.get(key, default)

    def send(self, to: str, amount: int) -> int:
        """Pay `amount` wei out of this contract. Bookkeeping must already be done."""
        return self.chain._send(self.address, to, int(amount))

    def call_contract(self, to: str, method: str, *, value: int = 0, payload: Optional[Json] = None) -> Json:
        c = Call(method=str(method).strip().upper(), sender=self.address, value=int(value), payload=dict(payload or {}))
        return self.chain._dispatch(to, c, depth=self.depth + 1)

    def view(self, to: str, name: str, /, **args: Any) -> Any:
        return self.chain.view(to, name, **args)

    def resolve(self, name: str) -> str:
        if not self.registry:
            raise ContractNotFound("registry_not_wired", {"name": name})
        return str(self.view(self.registry, "resolve", name=name))

    def deploy(self, code: str, storage: Optional[Json] = None) -> str:
        return self.chain.deploy(code, storage)

    def emit(self, kind: str, *, parties: Optional[Json] = None, amounts: Optional[Json] = None, **data: Any) -> None:
        self.chain._pending.append(
            {
                "address": self.address,
                "kind": str(kind),
                "parties": dict(parties or {}),
                "amounts": {k: int(v) for k, v in (amounts or {}).items()},
                "data": data,
                "ts": self.now,
            }
        )


class Chain:
    """In-process host chain: native balances, contracts, clock and event log.

    Calls are serialized. Each top-level call runs against the live state and
    is either committed in full or rolled back to the snapshot taken before it.
    """

    def __init__(
        self,
        *,
        chain_id: str = "poa-dev",
        now: Optional[int] = None,
        params: Optional[Mapping[str, Any]] = None,
        codes: Optional[Mapping[str, ContractCode]] = None,
        store: Any = None,
    ) -> None:
        self.chain_id = str(chain_id)
        self.now: int = int(time.time()) if now is None else int(now)
        self.params: Json = dict(params or {})
        self.codes: Dict[str, ContractCode] = dict(codes) if codes is not None else _default_codes()
        self.store = store

        self.balances: Dict[str, int] = {}
        self.contracts: Dict[str, Json] = {}
        self.events: List[Json] = []
        self.registry_address: str = ""
        self.nonce: int = 0

        self.receive_hooks: Dict[str, ReceiveHook] = {}
        self._pending: List[Json] = []
        self._in_call = False

    # ------------------------------------------------------------------
    # Admin / genesis surface (not calls)
    # ------------------------------------------------------------------

    def new_address(self, label: str = "") -> str:
        self.nonce += 1
        h = hashlib.sha256(f"{self.chain_id}:{self.nonce}:{label}".encode("utf-8")).hexdigest()
        return "0x" + h[:40]

    def deploy(self, code: str, storage: Optional[Json] = None, *, address: Optional[str] = None) -> str:
        if code not in self.codes:
            raise ContractNotFound("unknown_code", {"code": code})
        addr = address or self.new_address(code)
        if addr in self.contracts:
            raise InvalidArgument("address_in_use", {"address": addr})
        self.contracts[addr] = {"code": code, "storage": copy.deepcopy(storage) if storage is not None else {}}
        return addr

    def fund(self, address: str, wei: int) -> int:
        """Credit native balance out of thin air (dev faucet / test setup)."""
        if int(wei) < 0:
            raise ValueError("wei must be >= 0")
        self.balances[address] = self.balance_of(address) + int(wei)
        return self.balances[address]

    def advance(self, seconds: int) -> int:
        if int(seconds) < 0:
            raise ValueError("time only moves forward")
        self.now += int(seconds)
        return self.now

    def set_time(self, ts: int) -> int:
        if int(ts) < self.now:
            raise ValueError("time only moves forward")
        self.now = int(ts)
        return self.now

    def balance_of(self, address: str) -> int:
        return _as_int(self.balances.get(address))

    def code_of(self, address: str) -> ContractCode:
        c = self.contracts.get(address)
        if not isinstance(c, dict):
            raise ContractNotFound("no_contract_at_address", {"address": address})
        code = self.codes.get(str(c.get("code")))
        if code is None:
            raise ContractNotFound("unknown_code", {"address": address, "code": c.get("code")})
        return code

    def storage_of(self, address: str) -> Json:
        self.code_of(address)
        return self.contracts[address]["storage"]

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def execute(self, to: str, call: Any) -> Json:
        """Run one top-level call atomically; raises ApplyError on rejection."""
        if self._in_call:
            raise RuntimeError("execute() is not re-entrant; use reenter() from inside a call")

        c = Call.from_json(call)
        if not c.method:
            raise InvalidArgument("missing_method", {})

        saved = self._snapshot()
        self._in_call = True
        try:
            out = self._dispatch(to, c, depth=0)
        except ApplyError as e:
            self._restore(saved)
            log_event(log, "call_rejected", to=to, method=c.method, sender=c.sender, code=e.code, reason=e.reason)
            raise
        except Exception as e:
            self._restore(saved)
            log_event(log, "call_failed", to=to, method=c.method, sender=c.sender, error=type(e).__name__)
            raise ApplyError("domain_error", type(e).__name__, {"method": c.method, "error": str(e)}) from e
        finally:
            self._in_call = False

        committed = self._commit_pending()
        if self.store is not None:
            self.store.save(self.to_json(), committed)
        return out

    def submit(self, to: str, call: Any) -> Json:
        """Receipt-returning wrapper around execute()."""
        try:
            out = self.execute(to, call)
        except ApplyError as e:
            return {
                "ok": False,
                "code": e.code,
                "reason": e.reason,
                "details": e.details,
                "retryable": bool(getattr(e, "retryable", False)),
            }
        return {"ok": True, "result": out}

    def reenter(self, to: str, call: Any) -> Json:
        """Dispatch a call from inside an in-flight one (e.g. from a receive hook).

        A rejected re-entrant call is undone on its own, in place, so the
        outer call keeps running against the same storage objects.
        """
        if not self._in_call:
            raise RuntimeError("reenter() is only valid during a call")
        saved = self._snapshot()
        try:
            return self._dispatch(to, Call.from_json(call), depth=1)
        except ApplyError:
            self._restore_in_place(saved)
            raise

    def view(self, to: str, name: str, /, **args: Any) -> Any:
        """Read-only query. Runs against a copy so it can never write."""
        code = self.code_of(to)
        storage = copy.deepcopy(self.contracts[to]["storage"])
        ctx = CallContext(self, to, Call(method="VIEW", sender=""), registry=self.registry_address)
        return code.view(storage, ctx, str(name), dict(args))

    def _dispatch(self, to: str, call: Call, *, depth: int) -> Json:
        code = self.code_of(to)
        if call.value < 0:
            raise InvalidArgument("negative_value", {"value": call.value})
        if call.value:
            self._move(call.sender, to, call.value)
        ctx = CallContext(self, to, call, registry=self.registry_address, depth=depth)
        return code.apply(self.contracts[to]["storage"], ctx)

    def _move(self, frm: str, to: str, amount: int) -> None:
        have = self.balance_of(frm)
        if amount > have:
            raise InsufficientFunds("insufficient_funds", {"holder": frm, "balance": have, "amount": amount})
        self.balances[frm] = have - amount
        self.balances[to] = self.balance_of(to) + amount

    def _send(self, frm: str, to: str, amount: int) -> int:
        if amount < 0:
            raise InvalidArgument("negative_value", {"value": amount})
        if not to:
            raise InvalidArgument("missing_recipient", {})
        if amount == 0:
            return 0
        self._move(frm, to, amount)
        hook = self.receive_hooks.get(to)
        if hook is not None:
            hook(self, frm, amount)
        return amount

    # ------------------------------------------------------------------
    # Atomicity + events
    # ------------------------------------------------------------------

    def _snapshot(self) -> Json:
        return {
            "balances": copy.deepcopy(self.balances),
            "contracts": copy.deepcopy(self.contracts),
            "registry_address": self.registry_address,
            "nonce": self.nonce,
            "pending": len(self._pending),
        }

    def _restore(self, saved: Json) -> None:
        self.balances = saved["balances"]
        self.contracts = saved["contracts"]
        self.registry_address = saved["registry_address"]
        self.nonce = saved["nonce"]
        del self._pending[saved["pending"]:]

    def _restore_in_place(self, saved: Json) -> None:
        _assign_in_place(self.balances, saved["balances"])
        for addr in list(self.contracts.keys()):
            if addr not in saved["contracts"]:
                del self.contracts[addr]
        for addr, c in saved["contracts"].items():
            _assign_in_place(self.contracts[addr], c)
        self.registry_address = saved["registry_address"]
        self.nonce = saved["nonce"]
        del self._pending[saved["pending"]:]

    def _commit_pending(self) -> List[Json]:
        out: List[Json] = []
        for ev in self._pending:
            ev = dict(ev)
            ev["seq"] = len(self.events)
            self.events.append(ev)
            out.append(ev)
            log_contract_event(events_log, ev)
        self._pending.clear()
        return out

    def events_for(self, address: Optional[str] = None, *, kind: Optional[str] = None) -> List[Json]:
        out = self.events
        if address is not None:
            out = [e for e in out if e.get("address") == address]
        if kind is not None:
            out = [e for e in out if e.get("kind") == kind]
        return list(out)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> bool:
        """Write the current snapshot to the attached store (after admin-surface changes)."""
        if self.store is None:
            return False
        self.store.save(self.to_json(), [])
        return True

    def to_json(self) -> Json:
        return {
            "snapshot_version": CURRENT_SNAPSHOT_VERSION,
            "chain_id": self.chain_id,
            "now": int(self.now),
            "params": copy.deepcopy(self.params),
            "balances": copy.deepcopy(self.balances),
            "contracts": copy.deepcopy(self.contracts),
            "registry_address": self.registry_address,
            "nonce": int(self.nonce),
        }

    @classmethod
    def from_json(cls, raw: Any, *, store: Any = None, events: Optional[List[Json]] = None) -> "Chain":
        snap = migrate_snapshot_dict(copy.deepcopy(raw))
        ch = cls(chain_id=snap["chain_id"], now=snap["now"], params=snap["params"], store=store)
        ch.balances = {str(k): int(v) for k, v in snap["balances"].items()}
        ch.contracts = snap["contracts"]
        ch.registry_address = snap["registry_address"]
        ch.nonce = int(snap["nonce"])
        ch.events = list(events or [])
        return ch

    @classmethod
    def from_store(cls, store: Any) -> Optional["Chain"]:
        raw = store.load_snapshot()
        if raw is None:
            return None
        return cls.from_json(raw, store=store, events=store.load_events())


__all__ = ["CallContext", "Chain", "ContractCode", "ReceiveHook"]
