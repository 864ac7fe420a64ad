"""Main FastAPI application."""

from typing import Optional
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.dependencies import ServiceContainer
from app.config import settings
from app.exceptions import FolderCopyError
from app.routes import copy
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Service container to use (built from settings if not given)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Drive Folder Copy Service",
        description="Recursively copies drive folders, inline or through a job queue with callbacks",
        version="1.0.0",
    )
    app.state.services = services

    app.include_router(copy.router)
    app.include_router(copy.root_router)

    @app.on_event("startup")
    async def startup_event():
        """Application startup event."""
        logger.info("Drive Folder Copy Service starting up...")
        if app.state.services is None:
            app.state.services = ServiceContainer()
        await app.state.services.startup()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event."""
        logger.info("Drive Folder Copy Service shutting down...")
        await app.state.services.shutdown()

    @app.exception_handler(FolderCopyError)
    async def folder_copy_exception_handler(request: Request, exc: FolderCopyError):
        """Handle rejected requests."""
        logger.warning(f"{type(exc).__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        logger.error(f"HTTP {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        logger.error(f"Validation error: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation failed"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
