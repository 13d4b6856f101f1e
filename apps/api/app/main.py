from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import (
    ServiceError,
    global_exception_handler,
    http_exception_handler,
    service_exception_handler,
    validation_exception_handler,
)
from app.core.logging import configure_logging
from app.core.sentry import init_sentry
from app.middleware.request_log import RequestLogMiddleware
from app.middleware.security import RequestBodySizeLimitMiddleware, SecurityHeadersMiddleware

import app.models  # noqa: F401  register all models at startup

from app.modules.batches.router import router as batches_router
from app.modules.fractionalize.router import router as fractionalize_router
from app.modules.items.router import router as items_router
from app.modules.products.router import router as products_router
from app.services.keyed_lock import KeyedLock
from app.services.ledger import SolanaLedger

configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

# ── Sentry: must be initialised BEFORE FastAPI app is created ───────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting Product Ledger API", env=settings.APP_ENV, cluster=settings.SOLANA_CLUSTER)

    # One RPC connection and signing key per process, shared by every request
    _app.state.distribution_locks = KeyedLock()
    try:
        _app.state.ledger = SolanaLedger.from_settings(settings)
    except ServiceError as exc:
        logger.warning("ledger.unavailable", error=exc.message)
        _app.state.ledger = None

    yield

    logger.info("Shutting down Product Ledger API")
    if _app.state.ledger is not None:
        await _app.state.ledger.close()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Product Ledger API",
    description="Product, batch and item tracking with Solana-backed NFT fractionalization.",
    version="1.0.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestLogMiddleware)  # type: ignore[arg-type]
# Security middleware (added last = outermost = first to see requests, last to touch responses)
app.add_middleware(
    RequestBodySizeLimitMiddleware,  # type: ignore[arg-type]
    max_bytes=settings.MAX_REQUEST_BODY_BYTES,
)
app.add_middleware(
    SecurityHeadersMiddleware,  # type: ignore[arg-type]
    is_production=_is_prod,
)

app.add_exception_handler(ServiceError, service_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, global_exception_handler)


# ── X-API-Version response header ────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Health check (root-level, not under /v1) ─────────────────────────────────


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Deep health check: probes the database and the Solana RPC node."""
    checks: dict[str, dict] = {}

    # ── Database ──────────────────────────────────────────────────────────────
    try:
        from sqlalchemy import text
        from app.core.database import async_session_factory
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as exc:
        checks["database"] = {"status": "unhealthy", "error": str(exc)}

    # ── Solana RPC ────────────────────────────────────────────────────────────
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        checks["solana"] = {"status": "unhealthy", "error": "ledger not configured"}
    else:
        try:
            connected = await ledger.is_connected()
            checks["solana"] = {
                "status": "healthy" if connected else "unhealthy",
                "cluster": ledger.cluster,
                "wallet": ledger.owner_address,
            }
        except Exception as exc:
            checks["solana"] = {"status": "unhealthy", "error": str(exc)}

    overall = (
        "healthy"
        if all(c["status"] == "healthy" for c in checks.values())
        else "degraded"
    )
    return {"status": overall, "service": "product-ledger-api", "checks": checks}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(products_router)
api_v1.include_router(batches_router)
api_v1.include_router(items_router)
api_v1.include_router(fractionalize_router)

app.include_router(api_v1)
