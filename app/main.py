import logging
import time
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.api.routes import discovery, health
from app.config import settings
from app.services.discovery.errors import DiscoveryError
from app.services.discovery.service import shutdown_discovery_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _init_sentry() -> None:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=settings.environment,
        release=f"investor-discovery@{settings.app_version}",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise error reporting on startup; release shared clients on shutdown."""
    logger.info(
        "app.startup",
        extra={"app": settings.app_name, "version": settings.app_version, "environment": settings.environment},
    )
    if settings.sentry_dsn:
        _init_sentry()
        logger.info("app.sentry_initialized")

    yield

    await shutdown_discovery_service()
    logger.info("app.shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Investor discovery and qualification pipeline",
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["*"] if settings.debug else ["localhost", "127.0.0.1"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request once it has been handed a response."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "http.request",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )
    return response


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError):
    logger.error("http.discovery_error", extra={"path": request.url.path, "code": exc.code})
    status_code = int(exc.code[:3]) if exc.code[:3].isdigit() else 500
    return JSONResponse({"error": str(exc), "code": exc.code}, status_code=status_code)


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(discovery.router, prefix="/api", tags=["discovery"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.environment,
    }
