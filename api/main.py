"""
Guardian Shield - FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.routes import grouping, images, protocol_editor, protocols
from database.connection import check_connection, close_db
from shared.config import get_settings
from shared.fastapi_errors import register_error_handlers
from shared.llm_router import get_llm_router
from shared.logging_config import configure_logging

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Guardian Shield Protocols API",
    description="Base protocol consolidation for security equipment maintenance",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# Unified error responses (MaintenanceError, validation, HTTP, unhandled)
register_error_handlers(app)

# Protocols dashboard: classification, delete, copy, unlink/relink
app.include_router(protocols.router)

# Base protocol consolidation workflow
app.include_router(grouping.router)

# Protocol editor
app.include_router(protocol_editor.router)

# Step image upload
app.include_router(images.router, prefix="/api/admin", tags=["images"])

# Public image serving router
app.include_router(
    images.get_public_image_router(),
    prefix=settings.IMAGE_BASE_URL,
    tags=["public-images"],
)


@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"Starting {settings.PROJECT_NAME} API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Unlink mode: {settings.UNLINK_MODE}, hybrid LLM: {settings.USE_HYBRID_LLM}")


@app.on_event("shutdown")
async def shutdown_event():
    """Release pooled database connections."""
    await close_db()


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Returns:
        200 OK if PostgreSQL answers
        503 Service Unavailable if degraded
    """
    health_status = {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "postgres": "unknown",
    }
    status_code = 200

    try:
        await check_connection()
        health_status["postgres"] = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Health check: PostgreSQL unavailable: {e}")
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/health/llm")
async def llm_health_check() -> dict:
    """Reachability of the configured model providers."""
    return await get_llm_router().health_check()


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "version": "1.0.0",
        "health": "/health",
    }
