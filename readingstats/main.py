import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from readingstats.api import router
from readingstats.core.cache import cache
from readingstats.core.config import settings
from readingstats.core.database import init_db
from readingstats.core.exceptions import ReadingStatsError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup, release the cache on shutdown."""
    await init_db()
    logger.info("%s %s started", settings.app_name, settings.version)
    yield
    await cache.close()


app = FastAPI(
    lifespan=lifespan,
    title=settings.app_name,
    description="Reading progress, streaks, achievements and leaderboards",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(ReadingStatsError)
async def reading_stats_error_handler(request: Request, exc: ReadingStatsError) -> JSONResponse:
    """Map domain errors to a JSON error body."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs",
        "health": "/api/v1/health",
    }
