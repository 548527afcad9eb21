"""
Forum Engine Application.

FastAPI application exposing the forum content engine:
categories, topics, replies and view tracking.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger

from forum_engine.api.v1 import router as api_v1_router
from forum_engine.core.config import settings
from forum_engine.core.database import close_db, init_db
from forum_engine.core.exceptions import (
    PermissionDeniedError,
    StorageError,
    TopicLockedError,
    ValidationError,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Forum Engine...")

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down Forum Engine...")
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Forum Engine

    ## Features

    - **Categories**: Sections with latest-topic summaries
    - **Topics**: Pinned-first ranking, unique slugs, view tracking
    - **Replies**: Chronological threads with solutions
    """,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


# ==================== Error mapping ====================


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> ORJSONResponse:
    return ORJSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
async def permission_error_handler(
    request: Request, exc: PermissionDeniedError
) -> ORJSONResponse:
    return ORJSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(TopicLockedError)
async def topic_locked_handler(request: Request, exc: TopicLockedError) -> ORJSONResponse:
    return ORJSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> ORJSONResponse:
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
    return ORJSONResponse(status_code=500, content={"detail": "Database error"})


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }
