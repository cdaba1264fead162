"""
Catalog Import Service: main application.

FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager, suppress
import asyncio
import structlog
from datetime import datetime, timezone

from config import settings, check_connection
from services.staging_service import get_staging_store

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


async def _sweep_import_sessions(interval_seconds: int):
    """Periodically drop expired import sessions."""
    store = get_staging_store()
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.cleanup_expired()
        if removed:
            logger.info("import_sessions_swept", removed=removed, remaining=len(store))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Check database connection, start the session sweeper
    Shutdown: Stop the sweeper
    """
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    if settings.supabase_configured:
        db_status = check_connection()
        if db_status["status"] == "healthy":
            logger.info("database_connected", catalog=db_status["catalog_count"])
        else:
            logger.error("database_connection_failed", error=db_status.get("error"))
    else:
        logger.warning("database_not_configured")

    sweeper = asyncio.create_task(
        _sweep_import_sessions(settings.import_cleanup_interval_seconds)
    )

    yield

    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Catalog Import Service",
    description="Bulk CSV import of catalog listings: staging, review and commit",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Basic health status, database state and live import sessions
    """
    db_status = check_connection()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "import_sessions": len(get_staging_store()),
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Catalog Import API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "imports": "/api/imports"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.imports import router as imports_router

app.include_router(imports_router)  # Prefix already in router


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
