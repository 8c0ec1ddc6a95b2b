# src/poaledger/runtime/event_logging.py
from __future__ import annotations

"""JSONL log records for the ledger runtime.

Every record is one line, `{"ts_ms", "event", **fields}`, keys sorted.
Committed contract events go through `log_contract_event` so the log line
carries the same seq/address/kind/parties/amounts as the chain's event log.
"""

import json
import logging
import time
from typing import Any, Dict, Mapping

Json = Dict[str, Any]

CONTRACT_EVENT = "contract_event"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _jsonable(v: Any) -> Any:
    if isinstance(v, (set, frozenset)):
        return sorted(str(x) for x in v)
    if isinstance(v, bytes):
        return v.hex()
    return repr(v)


def log_event(logger: logging.Logger, event: str, /, **fields: Any) -> None:
    """Emit a single JSONL log record at INFO.

    Values json cannot encode are rendered by `_jsonable`, so a record is
    never dropped for its payload.
    """
    if not logger.isEnabledFor(logging.INFO):
        return
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_jsonable))


def contract_event_record(ev: Mapping[str, Any]) -> Json:
    """Log fields for one committed contract event."""
    return {
        "seq": int(ev["seq"]),
        "address": str(ev.get("address") or ""),
        "kind": str(ev.get("kind") or ""),
        "parties": dict(ev.get("parties") or {}),
        "amounts": {k: int(v) for k, v in (ev.get("amounts") or {}).items()},
        "chain_ts": int(ev.get("ts") or 0),
    }


def log_contract_event(logger: logging.Logger, ev: Mapping[str, Any]) -> None:
    log_event(logger, CONTRACT_EVENT, **contract_event_record(ev))


__all__ = ["CONTRACT_EVENT", "contract_event_record", "log_contract_event", "log_event"]
