from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from poaledger.runtime.errors import ApplyError

# ApplyError code -> HTTP status. Anything unlisted is a 400.
_STATUS_BY_CODE = {
    "forbidden": 403,
    "not_found": 404,
    "stage_guard": 409,
    "rate_not_ready": 503,
}


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_apply_error(e: ApplyError) -> "ApiError":
        return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.code, e.reason, dict(e.details or {}))

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}
