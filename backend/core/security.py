"""
core/security.py
────────────────
Security middleware and exception handlers for WANDR.

Covers:
  • Secure headers — HSTS, X-Frame-Options, CSP via the `secure` library
  • CORS           — FastAPI CORSMiddleware
  • Domain errors  — WandrError subclasses → 409 / 422 / 503
  • Exception gate — generic 500 responses to prevent info leakage
"""

import logging
from typing import TYPE_CHECKING

import secure
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import Settings
from core.errors import ConcurrencyConflict, InputInvalid, OptimizationInfeasible, UpstreamUnavailable

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger("wandr.security")

# ── Secure Headers ──────────────────────────────────────────────────────────
_csp = secure.ContentSecurityPolicy().default_src("'self'")
_hsts = secure.StrictTransportSecurity().max_age(31536000).include_subdomains()
_xfo = secure.XFrameOptions().deny()

secure_headers = secure.Secure(
    csp=_csp,
    hsts=_hsts,
    xfo=_xfo,
)


# ═══════════════════════════════════════════════════════════════════════════
# Public setup function — called once from main.py
# ═══════════════════════════════════════════════════════════════════════════


def setup_security(app: "FastAPI", settings: Settings) -> None:
    """Wire every security layer into the FastAPI application."""

    # ── 1. CORS ─────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── 2. Secure headers (HSTS / X-Frame-Options / CSP) ────────────────
    @app.middleware("http")
    async def _set_secure_headers(request: Request, call_next):  # noqa: ANN001
        response = await call_next(request)
        await secure_headers.set_headers_async(response)
        return response

    # ── 3. Domain errors ────────────────────────────────────────────────
    @app.exception_handler(InputInvalid)
    async def _input_invalid_handler(request: Request, exc: InputInvalid):  # noqa: ARG001
        return JSONResponse(status_code=422, content={"detail": exc.errors})

    @app.exception_handler(OptimizationInfeasible)
    async def _infeasible_handler(request: Request, exc: OptimizationInfeasible):  # noqa: ARG001
        return JSONResponse(status_code=422, content={"detail": [str(exc)]})

    @app.exception_handler(ConcurrencyConflict)
    async def _conflict_handler(request: Request, exc: ConcurrencyConflict):  # noqa: ARG001
        logger.warning("Concurrency conflict on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=409,
            content={"detail": "The profile was modified concurrently. Please retry."},
        )

    @app.exception_handler(UpstreamUnavailable)
    async def _upstream_handler(request: Request, exc: UpstreamUnavailable):  # noqa: ARG001
        logger.warning("Upstream failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": f"{exc.provider} is temporarily unavailable."},
        )

    # ── 4. Global exception handler — suppress internals ────────────────
    @app.exception_handler(Exception)
    async def _global_exception_handler(request: Request, exc: Exception):  # noqa: ANN001, ARG001
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "An internal error occurred. Please try again later."},
        )
