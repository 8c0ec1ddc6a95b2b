# src/poaledger/ledger/migrations.py
from __future__ import annotations

import hashlib
from typing import Any, Callable, Dict

from poaledger.ledger.constants import DECIMALS, REG_BBK

Json = Dict[str, Any]

# Increment this when you add a new migration step.
CURRENT_SNAPSHOT_VERSION = 2


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _as_str(v: Any) -> str:
    try:
        return str(v) if v is not None else ""
    except Exception:
        return ""


def _ensure_dict(root: Json, key: str) -> Json:
    v = root.get(key)
    if not isinstance(v, dict):
        v = {}
        root[key] = v
    return v


def _ensure_int(root: Json, key: str, default: int = 0) -> int:
    if key not in root:
        root[key] = int(default)
        return int(default)
    x = _as_int(root.get(key), default)
    root[key] = int(x)
    return int(x)


def _ensure_str(root: Json, key: str, default: str = "") -> str:
    if key not in root:
        root[key] = str(default)
        return str(default)
    s = _as_str(root.get(key))
    root[key] = s
    return s


def _migrate_v0_to_v1(snap: Json) -> Json:
    """
    v0 -> v1: introduce explicit snapshot_version and normalize roots.

    v0 characteristics:
      - no 'snapshot_version'
      - contract records may lack a storage dict
      - native balances may be stored as strings
    """
    _ensure_str(snap, "chain_id", "poa-dev")
    _ensure_int(snap, "now", 0)
    _ensure_int(snap, "nonce", 0)
    _ensure_str(snap, "registry_address", "")
    _ensure_dict(snap, "params")

    balances = _ensure_dict(snap, "balances")
    for addr in list(balances.keys()):
        balances[addr] = max(0, _as_int(balances.get(addr), 0))

    contracts = _ensure_dict(snap, "contracts")
    for addr, rec in list(contracts.items()):
        if not isinstance(rec, dict):
            del contracts[addr]
            continue
        _ensure_str(rec, "code", "")
        _ensure_dict(rec, "storage")

    snap["snapshot_version"] = 1
    return snap


def _split_bbk_address(chain_id: str, fee_share: str) -> str:
    h = hashlib.sha256(f"{chain_id}:bbk:{fee_share}".encode("utf-8")).hexdigest()
    return "0x" + h[:40]


def _migrate_v1_to_v2(snap: Json) -> Json:
    """
    v1 -> v2: BBK moves out of the fee share into its own token contract.

    v1 fee shares kept `bbk_balances` and `bbk_total_supply` inline. Each one
    gets a BbkToken holding those balances, with the locked total held by the
    fee share itself. The sale is treated as long finished: unpaused, no
    company or bonus allocation left to hand out.
    """
    contracts = _ensure_dict(snap, "contracts")
    registry = contracts.get(_as_str(snap.get("registry_address")))

    for addr, rec in list(contracts.items()):
        st = rec.get("storage")
        if rec.get("code") != "AccessFeeShare" or not isinstance(st, dict) or "bbk" in st:
            continue

        held = {str(k): _as_int(v) for k, v in (st.pop("bbk_balances", None) or {}).items() if _as_int(v) > 0}
        locked = _as_int(st.get("total_locked"))
        if locked > 0:
            held[addr] = held.get(addr, 0) + locked
        supply = _as_int(st.pop("bbk_total_supply", None), sum(held.values()))

        bbk = _split_bbk_address(_as_str(snap.get("chain_id")), addr)
        contracts[bbk] = {
            "code": "BbkToken",
            "storage": {
                "owner": _as_str(st.get("owner")),
                "name": "BrickblockToken",
                "symbol": "BBK",
                "decimals": DECIMALS,
                "initial_supply": supply,
                "total_supply": supply,
                "bonus_tokens": 0,
                "company_tokens": 0,
                "bonus_address": "",
                "company_account": "",
                "balances": held,
                "allowed": {},
                "paused": False,
                "token_sale_active": False,
            },
        }
        st["bbk"] = bbk

        if isinstance(registry, dict):
            names = _ensure_dict(_ensure_dict(registry, "storage"), "addresses")
            names.setdefault(REG_BBK, bbk)

    snap["snapshot_version"] = 2
    return snap


_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def migrate_snapshot_dict(raw: Any) -> Json:
    """
    Upgrade a raw persisted chain snapshot to CURRENT_SNAPSHOT_VERSION.

    - Best-effort: never raises for simple shape issues; it normalizes.
    - If raw isn't a dict, returns an empty vCURRENT skeleton.
    """
    snap: Json = raw if isinstance(raw, dict) else {}

    v = _as_int(snap.get("snapshot_version"), 0)
    if v > CURRENT_SNAPSHOT_VERSION:
        # Written by a newer binary; refuse to downgrade silently.
        raise ValueError(
            f"Chain snapshot version {v} is newer than this binary supports (max {CURRENT_SNAPSHOT_VERSION})."
        )

    while v < CURRENT_SNAPSHOT_VERSION:
        step = _MIGRATIONS.get(v)
        if step is None:
            raise ValueError(f"No migration path from snapshot_version={v} to {CURRENT_SNAPSHOT_VERSION}.")
        snap = step(snap)
        v = _as_int(snap.get("snapshot_version"), v + 1)

    snap["snapshot_version"] = CURRENT_SNAPSHOT_VERSION
    return snap
