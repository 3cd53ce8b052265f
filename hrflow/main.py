"""
HR Approval Workflow Service - Main FastAPI Application

Configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .domain.enums import StorageBackend
from .repositories.mongo_client import (
    create_indexes, close_connection, ensure_transaction_support, health_check
)
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

API_VERSION = "1.0.0"


def _uses_mongo() -> bool:
    return StorageBackend(settings.storage_backend) == StorageBackend.MONGO


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Refuses to start when transactions are enabled on a standalone
          MongoDB server (mongo backend only)
        - Creates MongoDB indexes (mongo backend only)

    Shutdown:
        - Closes database connections
    """
    logger.info(f"Starting HR workflow service ({settings.storage_backend} storage)...")

    if _uses_mongo():
        try:
            ensure_transaction_support()
        except PyMongoError as e:
            logger.error(f"Could not check MongoDB transaction support: {e}")

        try:
            create_indexes()
            logger.info("MongoDB indexes created")
        except Exception as e:
            logger.error(f"Failed to create indexes: {e}")

    yield

    logger.info("Shutting down...")
    if _uses_mongo():
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="HR Approval Workflow Service",
        description="Configurable multi-step approval workflows for HR records",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    def health():
        """Health check, including database connectivity when Mongo is used"""
        body = {
            "status": "healthy",
            "version": API_VERSION,
            "environment": settings.environment,
            "storage": settings.storage_backend,
        }
        if _uses_mongo():
            mongo_health = health_check()
            body["mongo"] = mongo_health
            if mongo_health.get("status") != "healthy":
                body["status"] = "degraded"
        return body

    @app.get("/", tags=["Health"])
    def root():
        """Root endpoint with API information."""
        return {
            "name": "HR Approval Workflow Service",
            "version": API_VERSION,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
