# src/poaledger/runtime/call.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]


@dataclass(frozen=True)
class Call:
    """One state-changing request against a contract.

    `value` is native wei moved from `sender` to the target before dispatch.
    """

    method: str
    sender: str
    value: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_json(j: Any) -> "Call":
        if isinstance(j, Call):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        value = j.get("value", 0)
        if isinstance(value, bool):
            value = 0
        return Call(
            method=str(j.get("method", "") or "").strip().upper(),
            sender=str(j.get("sender", "") or "").strip(),
            value=int(value or 0),
            payload=dict(j.get("payload", {}) or {}),
        )

    def to_json(self) -> Json:
        return {
            "method": self.method,
            "sender": self.sender,
            "value": int(self.value),
            "payload": dict(self.payload),
        }
