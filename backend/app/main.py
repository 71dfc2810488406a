"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.dependencies import get_api_key
from app.routes import accruals, creators, ledger, reports, withdrawals
from app.routes.health import get_db_info
from app.schemas.common import HealthResponse
from config import BACKEND_DIR, Settings, get_settings
from db.connection import init_database
from payouts.services._types import DbInfoDict
from payouts.services.errors import (
    AlreadyProcessedError,
    ConflictError,
    DuplicateReportError,
    InsufficientAvailableError,
    InsufficientLockedError,
    InvalidAmountError,
    InvalidWithdrawalError,
    NotFoundError,
    PayoutDispatchError,
    PayoutError,
    StillLockedError,
)

logger: logging.Logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[PayoutError], int] = {
    NotFoundError: 404,
    InvalidAmountError: 422,
    InvalidWithdrawalError: 422,
    InsufficientAvailableError: 409,
    InsufficientLockedError: 409,
    AlreadyProcessedError: 409,
    StillLockedError: 409,
    DuplicateReportError: 409,
    ConflictError: 409,
    PayoutDispatchError: 502,
}


def status_for(exc: PayoutError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = get_settings()
    logger.info("DB: %s", settings.database.db_info_for_logging())

    init_database()
    yield


def create_app() -> FastAPI:
    settings: Settings = get_settings()
    app: FastAPI = FastAPI(
        title="Creator Payout Ledger",
        version="0.1.0",
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.exception_handler(PayoutError)
    async def _on_payout_error(request: Request, exc: PayoutError) -> JSONResponse:
        status: int = status_for(exc)
        if isinstance(exc, InsufficientLockedError):
            logger.error("Ledger inconsistency on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"detail": str(exc), "type": type(exc).__name__, "code": exc.code},
        )

    @app.exception_handler(ValueError)
    async def _on_value_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "type": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def _on_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__},
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/health/db", dependencies=[Depends(get_api_key)])
    def health_db() -> DbInfoDict:
        return get_db_info()

    app.include_router(creators.router)
    app.include_router(accruals.router)
    app.include_router(reports.router)
    app.include_router(withdrawals.router)
    app.include_router(ledger.router)

    return app


app: FastAPI = create_app()


def start() -> None:
    """Entry point for payouts-api."""
    os.chdir(BACKEND_DIR)

    reload: bool = os.environ.get("PAYOUTS_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=reload,
    )
