"""
Main FastAPI application for the Valorant stats tracker.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tracker.core.config import settings
from tracker.core.database import init_db
from tracker.core.exceptions import TrackerError
from tracker.core.logging import configure_logging, get_logger
from tracker.core.middleware import CorrelationIdMiddleware
from tracker.api.routes import matches, players, upstream
from tracker.services.core.henrik_api_service import HenrikApiService
from tracker.services.player_service import drain_settle_tasks

# Configure structured logging with JSON formatter
configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    init_db()
    app.state.henrik_api = HenrikApiService()
    logger.info("Application started")

    yield

    # Shutdown
    await drain_settle_tasks(timeout=settings.LAST_FETCH_DELAY + 1)
    await app.state.henrik_api.close()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Competitive player statistics aggregated from the HenrikDev Valorant API",
    lifespan=lifespan
)

# Add correlation ID middleware (must be added before CORS for proper header handling)
app.add_middleware(CorrelationIdMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    """Map domain errors to status codes with a stable error body."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.__class__.__name__}: {exc.message}",
        extra={"path": request.url.path, "status": exc.status_code, "error_code": exc.code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


# API v1
app.include_router(players.router, prefix="/api/v1")
app.include_router(matches.router, prefix="/api/v1")
app.include_router(upstream.router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tracker.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
