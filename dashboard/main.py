"""
Fleet Telemetry API.

============================================================
PURPOSE
============================================================
Builds the FastAPI application around a ServiceContainer.

    create_app(container)              -> routes + CORS + errors
    create_app(container, [simulator]) -> also runs background
                                          tasks for the app lifetime

The scheduler (when configured) and any background tasks are
started in the lifespan and stopped before the container is
closed.

============================================================
ERROR MAPPING
============================================================
InvalidInputError / request validation -> 400
NotFoundError                          -> 404
any other error                        -> 500

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Protocol, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.exceptions import FleetException, InvalidInputError, NotFoundError
from dashboard.container import ServiceContainer
from dashboard.routers import alarms, commands, health, heartbeat, machines, monitor, notifications


logger = logging.getLogger(__name__)


class BackgroundTask(Protocol):
    """Anything the app starts on startup and stops on shutdown."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


def _error_body(error: str, details: Optional[Any] = None) -> dict:
    return {"success": False, "error": error, "details": details}


# =============================================================
# EXCEPTION HANDLERS
# =============================================================

async def _invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=400, content=_error_body(exc.message, exc.context or None))


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content=_error_body(exc.message, exc.context or None))


async def _fleet_error_handler(request: Request, exc: FleetException) -> JSONResponse:
    level = logging.WARNING if exc.is_transient else logging.ERROR
    logger.log(level, f"{request.method} {request.url.path} failed: {exc.message}", extra={"error": exc.to_dict()})
    return JSONResponse(status_code=500, content=_error_body(exc.message, exc.context or None))


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=_error_body("Invalid request", {"errors": errors}))


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=_error_body("Internal server error", {"type": type(exc).__name__}))


# =============================================================
# APPLICATION FACTORY
# =============================================================

def create_app(
    container: ServiceContainer,
    background_tasks: Optional[Sequence[BackgroundTask]] = None,
) -> FastAPI:
    """
    Create the API application.

    Args:
        container: Wired services
        background_tasks: Extra tasks started with the app (e.g. DeviceSimulator)
    """
    tasks = list(background_tasks or [])

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Fleet Telemetry API starting...")
        try:
            if container.scheduler is not None:
                await container.scheduler.start()
            for task in tasks:
                await task.start()
            yield
        finally:
            logger.info("Shutting down...")
            for task in reversed(tasks):
                await task.stop()
            if container.scheduler is not None:
                await container.scheduler.stop()
            await container.close()
            logger.info("Shutdown complete")

    app = FastAPI(
        title="Fleet Telemetry API",
        description="Heartbeat ingestion, liveness monitoring, alarms and remote commands for vending machines.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    # CORS (Allow local frontend development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(InvalidInputError, _invalid_input_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(FleetException, _fleet_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(Exception, _unhandled_handler)

    # Include Routers
    app.include_router(health.router)
    app.include_router(heartbeat.router)
    app.include_router(monitor.router)
    app.include_router(notifications.router)
    app.include_router(alarms.router)
    app.include_router(machines.router)
    app.include_router(commands.router)

    return app
