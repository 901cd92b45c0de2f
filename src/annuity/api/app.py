from __future__ import annotations

import os

from fastapi import FastAPI

from annuity.api.errors import ApiError, api_error_handler
from annuity.api.routes_public import public_router
from annuity.api.security import RequestSizeLimitMiddleware
from annuity.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from annuity.runtime.contract_config import apply_contract_config_to_env, load_contract_config
from annuity.runtime.executor_boot import build_executor as _build_executor


def build_executor():
    """Build an AnnuityExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `annuity.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load contract config + attach executor
      - False: no executor; tests attach one to app.state.executor
    """
    if boot_runtime:
        cfg = load_contract_config()
        apply_contract_config_to_env(cfg)
        configure_structured_logging(cfg.log_level)

    mode = os.environ.get("ANNUITY_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Annuity Ledger API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Annuity Ledger API")

    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, api_error_handler)

    # --- Middleware ---
    # Last added runs first: size limit rejects before request logging sees the body.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app
