# src/poaledger/api/structured_logging.py
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from poaledger.runtime.event_logging import log_event

Json = Dict[str, Any]

# Health checks; logged only with POA_LOG_HEALTH=1.
_QUIET_PATHS = {"/v1/health"}


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


class JsonlFormatter(logging.Formatter):
    """Pass JSONL records through; wrap anything else (uvicorn, libraries) as one."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if msg.startswith("{") and msg.endswith("}"):
            return msg
        out: Json = {
            "ts_ms": int(record.created * 1000),
            "event": "log",
            "logger": record.name,
            "level": record.levelname,
            "msg": msg,
        }
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return json.dumps(out, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Route the root logger to stdout as JSONL.

    Level comes from `level_name`, else POA_LOG_LEVEL (set from the chain
    config's log_level), else INFO. Calling again only changes the level.
    """
    name = (level_name or os.environ.get("POA_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_poa_configured", False):  # type: ignore[attr-defined]
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonlFormatter())

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_poa_configured", True)  # type: ignore[attr-defined]


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` record per request, tagged with the chain it hit.

    POA_LOG_REQUESTS=0 turns it off. POA_LOG_HEALTH=1 includes health checks.
    Each response carries the request id back in `x-request-id`.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = _flag("POA_LOG_REQUESTS", True)
        self._log_health = _flag("POA_LOG_HEALTH", False)
        self._logger = logging.getLogger("poaledger.http")

    def _chain_fields(self, request: Request) -> Json:
        ch = getattr(request.app.state, "chain", None)
        if ch is None:
            return {"chain_id": None, "chain_now": None}
        return {"chain_id": ch.chain_id, "chain_now": int(ch.now)}

    async def dispatch(self, request: Request, call_next):
        path = str(request.url.path or "")
        if not self._enabled or (path in _QUIET_PATHS and not self._log_health):
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=err,
                **self._chain_fields(request),
            )
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
