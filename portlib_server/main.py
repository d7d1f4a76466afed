# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""PortLib Server - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portlib_server.config import settings
from portlib_server.database import init_db
from portlib_server.errors import register_error_handlers
from portlib_server.routers import auth_admin, auth_user, stats, users, warnings

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    if not settings.smtp_host:
        logger.info("SMTP_HOST not set - emails (OTPs, warnings) will be logged instead of sent")
    if not settings.twilio_account_sid:
        logger.info("TWILIO_ACCOUNT_SID not set - SMS OTPs will be logged instead of sent")
    yield


app = FastAPI(
    title="PortLib Server",
    description="Library management API: verified accounts and disciplinary workflow",
    version=VERSION,
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

register_error_handlers(app)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or missing fields are a plain 400 with a short message."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": message})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body or auth headers)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response

# API v1
app.include_router(auth_user.router, prefix="/api/v1")
app.include_router(auth_admin.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(warnings.router, prefix="/api/v1")
app.include_router(stats.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Health check / API info."""
    return {
        "name": "PortLib Server",
        "version": VERSION,
        "api": "/api/v1",
        "docs": "/api/docs",
    }


@app.get("/api/v1/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}
