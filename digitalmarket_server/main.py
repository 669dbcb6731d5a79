# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""DigitalMarket Server - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from digitalmarket_server import __version__
from digitalmarket_server.database import init_db
from digitalmarket_server.errors import ResetServiceError, ValidationError
from digitalmarket_server.i18n import parse_accept_language
from digitalmarket_server.routers import admin, auth

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    from digitalmarket_server.config import settings
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    from digitalmarket_server.services.email import EmailSender
    from digitalmarket_server.errors import ConfigurationError

    await init_db()
    try:
        EmailSender().ensure_configured()
    except ConfigurationError:
        logger.warning(
            "Email delivery is not configured - password reset requests will fail. "
            "Set RESEND_API_KEY, or EMAIL_BACKEND=smtp with SMTP_*, or EMAIL_BACKEND=console for development."
        )
    yield
    # shutdown


app = FastAPI(
    title="DigitalMarket Server",
    description="Accounts and password reset for the DigitalMarket storefront",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body or auth headers)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


@app.exception_handler(ResetServiceError)
async def service_error_handler(request: Request, exc: ResetServiceError) -> JSONResponse:
    """Turn service errors into localized user-facing responses."""
    lang = parse_accept_language(request.headers.get("accept-language"))
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message(lang), "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same localized shape as service validation errors."""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.errors())
    return await service_error_handler(request, ValidationError("invalid_request"))


# API v1
app.include_router(auth.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Health check / API info."""
    return {
        "name": "DigitalMarket Server",
        "version": __version__,
        "api": "/api/v1",
        "docs": "/api/docs",
    }


@app.get("/api/v1/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}
