# main.py — Arcadia Staff Panel API
# Features:
# - Request correlation IDs
# - Security headers
# - Panel error taxonomy rendered as {"detail", "request_id"}
# - Health check with DB verification
# - Panel command endpoint + staff REST endpoints

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text

import config
from database import init_db, close_db, async_session_maker
from exceptions import PanelError, InfrastructureError
from state import build_state
from telemetry import setup_telemetry

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("arcadia-panel")

VERSION = "2.0.0"


def _check_startup_config():
    """Validate critical configuration on startup."""
    warnings = config.startup_warnings()
    for w in warnings:
        logger.warning(w)
    if config.CDN_SCOPES:
        logger.info(f"CDN scopes configured: {', '.join(sorted(config.CDN_SCOPES))}")
    return len(warnings) == 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Arcadia staff panel v{VERSION}...")
    await init_db()
    _check_startup_config()
    yield
    logger.info("Shutting down Arcadia staff panel...")
    await close_db()


app = FastAPI(
    title="Arcadia Staff Panel",
    description="Staff panel API: OAuth2 + TOTP login, RPC bot actions and CDN asset management",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.panel = build_state()

# No-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set
setup_telemetry(app, VERSION)

# ============================================================
# CORS
# ============================================================

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173"
    ).split(",")
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

http_logger = logging.getLogger("arcadia-panel.http")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = rid

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers["X-Request-ID"] = rid
    response.headers["X-Response-Time"] = f"{elapsed:.4f}s"

    # Every panel command shares POST /, so the body size is the only cheap hint
    http_logger.info(
        f"{request.method} {request.url.path} [{request.headers.get('content-length', '0')}B] "
        f"→ {response.status_code} in {elapsed:.3f}s rid={rid[:8]}"
    )
    return response


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
    # Responses carry login tokens and MFA secrets
    "Cache-Control": "no-store",
}


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

def _error(request: Request, status_code: int, detail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": getattr(request.state, "request_id", None)},
    )


@app.exception_handler(PanelError)
async def panel_exception_handler(request: Request, exc: PanelError):
    if isinstance(exc, InfrastructureError):
        logger.error(f"{type(exc).__name__}: {exc.message}", exc_info=exc)
    if not exc.message:
        # Staff API token failures give nothing away
        return Response(status_code=exc.status_code)
    return _error(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Inputs are never echoed back: they may hold login tokens, OTP codes or chunk data
    errors = [
        {
            "type": str(err.get("type", "unknown")),
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": str(err.get("msg", "")),
        }
        for err in exc.errors()
    ]
    return _error(request, 422, errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return _error(request, 500, "Internal server error")


# ============================================================
# ROUTERS
# ============================================================

from routers import panel, staff_actions

app.include_router(panel.router)
app.include_router(staff_actions.router)


# ============================================================
# HEALTH
# ============================================================

@app.get("/health")
async def health_check(request: Request):
    """Database reachability plus the size of the in-process caches"""
    state = request.app.state.panel
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": VERSION,
        "panel_version": config.PANEL_VERSION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": db_status,
        "cdn_scopes": sorted(state.cdn_scopes),
        "pending_chunks": len(state.chunks.cache),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("ENVIRONMENT") != "production",
        workers=int(os.getenv("WORKERS", 1)),
    )
