from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; contract methods do their own
payload checks and reject what they do not understand.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class CallRequest(BaseModel):
    method: str = Field(..., description="Contract method, e.g. BUY_WITH_ETH")
    sender: str = Field(..., description="Calling address")
    value: int = Field(default=0, ge=0, description="Wei attached to the call")
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @field_validator("method")
    @classmethod
    def _method_upper(cls, v: str) -> str:
        s = v.strip().upper()
        if not s:
            raise ValueError("method must be non-empty")
        return s

    @field_validator("sender")
    @classmethod
    def _sender_nonempty(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("sender must be non-empty")
        return s


class AdvanceTimeRequest(BaseModel):
    seconds: int = Field(..., ge=0, description="Seconds to move the chain clock forward")
