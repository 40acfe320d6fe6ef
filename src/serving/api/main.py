"""
FastAPI Application Factory

Creates and configures the sales dashboard API.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from src.config import get_settings
from src.database.connection import init_database, close_database
from src.serving.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from src.serving.api.routes import health_router, sales_router

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    from src.config.logging import configure_logging
    configure_logging()

    logger.info("Starting Sales Dashboard API", environment=settings.app_env)

    try:
        await init_database()
    except Exception as e:
        # Keep serving; requests report the outage as 500 and /health as degraded
        logger.warning("Database init failed", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_database()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters get the generic error body; details stay in the log."""
    logger.warning("Rejected request parameters", path=request.url.path, errors=jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def create_api_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Sales Dashboard API",
        description="Paginated, filterable access to retail sales records",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(sales_router, prefix="/api/sales", tags=["Sales"])

    @app.get("/api/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Sales Dashboard API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
