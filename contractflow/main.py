# =====================================================
# FILE: contractflow/main.py
# FastAPI application: routers, error mapping, background jobs
# =====================================================

from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from contractflow import __version__
from contractflow.api.api_v1 import api_router
from contractflow.core.config import settings
from contractflow.core.database import check_connection, init_db
from contractflow.core.exceptions import (
    ContractFlowError,
    NotFoundError,
    RemoteTransitionError,
    StepFailure,
    ValidationError,
)
from contractflow.core.logging import configure_logging
from contractflow.services.lifecycle_service import LifecycleService
from contractflow.services.scheduler_service import setup_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    # Startup
    configure_logging()
    logger.info(f"Starting {settings.PROJECT_NAME} {__version__}...")

    if getattr(app.state, "lifecycle", None) is None:
        init_db()
        check_connection()
        app.state.lifecycle = LifecycleService()

    scheduler_task = None
    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = setup_scheduler(app.state.lifecycle)
        scheduler_task = asyncio.create_task(scheduler.start())

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")
    if scheduler is not None:
        scheduler.stop()
        scheduler_task.cancel()
    app.state.lifecycle.shutdown()


def _error(status_code: int, exc: ContractFlowError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


def create_app(lifecycle: LifecycleService = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Contract lifecycle and renewal workflow service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.lifecycle = lifecycle

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(RemoteTransitionError)
    async def transition_error_handler(request: Request, exc: RemoteTransitionError):
        logger.warning(f" Rejected by store: {exc.message}")
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(StepFailure)
    async def step_failure_handler(request: Request, exc: StepFailure):
        logger.warning(f" Partially applied on {request.url.path}: {exc}")
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(ContractFlowError)
    async def lifecycle_error_handler(request: Request, exc: ContractFlowError):
        logger.error(f" Lifecycle error on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": __version__}

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return app


app = create_app()
