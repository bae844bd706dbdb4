"""Main FastAPI application for Learning Progress Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from app.core.config import settings
from app.core.logging import setup_logging, bind_request_context
from app.core.database import init_db, AsyncSessionLocal
from app.core.dependencies import get_cache, get_catalog, close_http_client
from app.core.exceptions import register_exception_handlers
from app.gamification.reconciliation import AchievementSweepScheduler
from app.routers import progress, gamification, quizzes

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    # Startup
    logger.info("Starting Learning Progress Service", version=settings.APP_VERSION)

    await init_db()

    app.state.cache = await get_cache()

    scheduler = None
    if settings.ACHIEVEMENT_SWEEP_ENABLED:
        scheduler = AchievementSweepScheduler(AsyncSessionLocal, get_catalog)
        scheduler.start()
    app.state.sweep_scheduler = scheduler

    logger.info("Progress service initialized successfully")

    yield

    # Shutdown
    logger.info("Shutting down Learning Progress Service")
    if scheduler is not None:
        await scheduler.stop()
    await close_http_client()


# Create FastAPI app
app = FastAPI(
    title="Learning Progress Service",
    description="Course progress, achievements, leaderboard and quizzes",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.middleware("http")(bind_request_context)

# Prometheus metrics
if settings.ENABLE_METRICS:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# Include routers
app.include_router(progress.router, prefix="/api/progress", tags=["progress"])
app.include_router(gamification.router, prefix="/api/gamification", tags=["gamification"])
app.include_router(quizzes.router, prefix="/api/quizzes", tags=["quizzes"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint."""
    health_status = {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "checks": {}
    }

    # Check database
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    # Check cache
    try:
        if getattr(request.app.state, "cache", None) is not None:
            await request.app.state.cache.exists("health_check")
            health_status["checks"]["cache"] = "healthy"
    except Exception as e:
        health_status["checks"]["cache"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    scheduler = getattr(request.app.state, "sweep_scheduler", None)
    health_status["checks"]["achievement_sweep"] = "running" if scheduler and scheduler.running else "disabled"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENVIRONMENT == "development",
        log_config=None  # Use structlog instead
    )
