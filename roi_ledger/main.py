"""
FastAPI Main Application
Ledger API plus the daily payout scheduler
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roi_ledger import __version__
from roi_ledger.config import settings
from roi_ledger.core.errors import (
    ConflictError,
    ExternalServiceError,
    LedgerError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from roi_ledger.core.logging import setup_logging
from roi_ledger.infrastructure.db.database import close_db, init_db
from roi_ledger.scheduler.main import LedgerScheduler

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

scheduler: LedgerScheduler | None = None

_STATUS_BY_ERROR = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PreconditionError, 412),
    (ExternalServiceError, 502),
)


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of the database and scheduler
    """
    global scheduler

    logger.info("=" * 60)
    logger.info("🚀 Starting ROI Ledger")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = LedgerScheduler()
            scheduler.start()
            logger.info("✅ Scheduler started successfully")
        except Exception as e:
            logger.error(f"❌ Failed to start scheduler: {e}")
            scheduler = None
    else:
        logger.info("⏰ Scheduler disabled")

    yield

    logger.info("🛑 Shutting down ROI Ledger...")
    if scheduler:
        scheduler.stop()
        scheduler = None

    await close_db()
    logger.info("✅ Database connections closed")


app = FastAPI(
    title="ROI Settlement Ledger",
    description="Investment payments, return accrual, scheduled payouts and settlement",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.reason}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {
        "service": "ROI Settlement Ledger",
        "version": __version__,
        "environment": settings.APP_ENV,
        "scheduler": "running" if scheduler and scheduler.running else "disabled",
        "docs": "/docs",
    }


from roi_ledger.api.routes import admin, health, investments, payments, plans, roi, users  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(plans.router, prefix="/api/v1/plans", tags=["Plans"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(investments.router, prefix="/api/v1/investments", tags=["Investments"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(roi.router, prefix="/api/v1/roi", tags=["ROI"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("roi_ledger.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
