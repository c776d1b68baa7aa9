import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from speedcache.api.router import api_router
from speedcache.config import settings
from speedcache.core.exceptions import StorageUnavailable

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if not settings.access_key:
        logger.warning("No ACCESS_KEY or PAGESPEED_INSIGHTS_API set; report creation is disabled")
    if not settings.DISPATCH_BACKGROUND_JOBS:
        logger.info("Background dispatch disabled; reports run on the first /report poll")

    yield

    logger.info("Shutting down...")
    from speedcache.core.database import engine
    from speedcache.core.redis import redis_client
    await redis_client.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="SpeedCache - caching proxy for PageSpeed Insights. "
    "Runs mobile and desktop analyses once per URL per freshness window "
    "and serves stored results to every later caller.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"Storage unavailable during {exc.operation or request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})


app.include_router(api_router)
