"""
Vigil Web API

FastAPI app exposing the research job scheduler. There is no internal
timer: an external scheduler (cron, a cloud scheduler, ...) is expected
to POST /api/research/jobs/run on whatever cadence it wants.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vigil import __version__
from vigil.core.config import VigilConfig
from vigil.core.errors import (
    JobAlreadyRunningError,
    NotFoundError,
    ValidationError,
    VigilError,
)
from vigil.core.factory import build_agent, shutdown
from vigil.scheduler.agent import ResearchAutonomyAgent

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    agent: Optional[ResearchAutonomyAgent] = None,
    config: Optional[VigilConfig] = None,
) -> FastAPI:
    """
    Build the API.

    With an agent, the caller owns its lifecycle (tests, embedding).
    Without one, the agent is built from config at startup and closed
    at shutdown.
    """
    config = config or VigilConfig.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.agent is None
        if owned:
            app.state.agent = await build_agent(config)
        yield
        if owned:
            await shutdown(app.state.agent)
            app.state.agent = None

    app = FastAPI(
        title="Vigil API",
        description="Scheduler for recurring research jobs",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.agent = agent
    app.state.config = config

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        return _error(status.HTTP_400_BAD_REQUEST, f"{location}: {message}" if location else message)

    @app.exception_handler(VigilError)
    async def handle_vigil_error(request: Request, exc: VigilError):
        if isinstance(exc, ValidationError):
            return _error(status.HTTP_400_BAD_REQUEST, exc.message)
        if isinstance(exc, NotFoundError):
            return _error(status.HTTP_404_NOT_FOUND, exc.message)
        if isinstance(exc, JobAlreadyRunningError):
            return _error(status.HTTP_409_CONFLICT, exc.message)
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    @app.middleware("http")
    async def catch_unexpected(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"{request.method} {request.url.path} failed")
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or "Internal server error")

    from vigil.api.routers import jobs  # noqa: E402

    app.include_router(jobs.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app
