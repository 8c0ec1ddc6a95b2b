from __future__ import annotations

import os
import threading

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from poaledger.api.errors import ApiError
from poaledger.api.routes_public import public_router
from poaledger.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from poaledger.runtime.chain import Chain
from poaledger.runtime.chain_config import load_chain_config
from poaledger.runtime.ecosystem import build_chain as _build_chain


def build_chain() -> Chain:
    """Build the Chain for API runtime.

    This wrapper exists so tests can monkeypatch `poaledger.api.app.build_chain`
    without reaching into runtime modules.
    """
    return _build_chain(load_chain_config())


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config and attach app.state.chain
      - False: keep lightweight for route/middleware tests
    """
    configure_structured_logging()
    mode = os.environ.get("POA_MODE", "dev").strip().lower()

    if mode == "prod":
        app = FastAPI(title="PoA Ledger API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="PoA Ledger API")

    app.state.mode = mode
    app.state.chain = build_chain() if boot_runtime else None
    # Calls mutate one in-process chain; FastAPI runs sync routes on a threadpool.
    app.state.chain_lock = threading.Lock()

    app.add_middleware(RequestLogMiddleware)
    app.add_exception_handler(ApiError, _api_error_handler)  # type: ignore[arg-type]

    app.include_router(public_router)
    return app


# Module-level app for uvicorn.
app = create_app(boot_runtime=True)
