"""
FastAPI application

Entry point of the Sandbox Runner HTTP service.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from sandbox_runner import __version__
from sandbox_runner.infrastructure.config import get_settings
from sandbox_runner.infrastructure.dependencies import (
    Services,
    cleanup_dependencies,
    initialize_dependencies,
)
from sandbox_runner.infrastructure.logging import configure_logging, get_logger
from sandbox_runner.interfaces.rest.api.v1 import cache, executions, health, projects
from sandbox_runner.interfaces.rest.middleware import RequestLoggingMiddleware
from sandbox_runner.shared.errors import DomainError, InfrastructureError

logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built services; built from settings at startup when omitted
    """
    settings = services.settings if services is not None else get_settings()
    configure_logging(log_level=settings.log_level, log_format=settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Sandbox Runner", version=__version__)
        initialize_dependencies(app, services)
        yield
        logger.info("Shutting down Sandbox Runner")
        await cleanup_dependencies(app)

    app = FastAPI(
        title=settings.app_name,
        description="Runs code snippets and project commands in ephemeral containers",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
        logger.warning("Request rejected", path=request.url.path, error=exc.code)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.code, "message": exc.message, "detail": exc.details or None},
        )

    @app.exception_handler(InfrastructureError)
    async def infrastructure_exception_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
        logger.error("Infrastructure failure", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Service Unavailable", "message": exc.message, "detail": None},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "message": "An unexpected error occurred",
                "detail": None,
            },
        )


def _register_routes(app: FastAPI) -> None:
    app.include_router(health.router, prefix="/api/v1")
    app.include_router(executions.router, prefix="/api/v1")
    app.include_router(cache.router, prefix="/api/v1")
    app.include_router(projects.router, prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root() -> dict:
        return {
            "name": app.title,
            "version": __version__,
            "documentation": {"swagger": "/docs", "openapi": "/openapi.json"},
        }


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sandbox_runner.interfaces.rest.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
