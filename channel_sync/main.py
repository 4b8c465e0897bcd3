from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
import logging
import uuid

from . import __version__
from .config import settings
from .database import create_tables
from .utils.logging_config import setup_logging
from .services.reconciliation_scheduler import (
    start_reconciliation_scheduler,
    stop_reconciliation_scheduler,
)
from .services.reconciliation_service import get_reconciliation_service

from .routers import reconciliation, metrics, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(level=settings.log_level, json_format=settings.log_json)

    logger.info(f"Starting channel-sync {__version__} ({settings.environment})")
    create_tables()

    if settings.reconciliation_enabled:
        start_reconciliation_scheduler(service_factory=get_reconciliation_service)
    else:
        logger.warning("Reconciliation disabled (RECONCILIATION_ENABLED=false), scheduler not started")

    yield

    logger.info("Shutting down channel-sync...")
    if settings.reconciliation_enabled:
        stop_reconciliation_scheduler()


app = FastAPI(
    title="Channel Sync - Calendar Reconciliation API",
    description="PMS <-> booking channel calendar reconciliation",
    version=__version__,
    lifespan=lifespan
)


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIdMiddleware)


# Include routers
app.include_router(reconciliation.router)
app.include_router(metrics.router)
app.include_router(health.router)


@app.get("")
@app.get("/")
async def root():
    return {
        "message": "Channel Sync reconciliation API",
        "version": __version__,
        "docs": "/docs",
        "status": "running"
    }
