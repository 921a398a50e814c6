"""
LiveTV Application - FastAPI Backend

Live channel portal: M3U sources, programme guides and admin config merging.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from livetv.config import get_settings
from livetv.routers import admin, live
from livetv.services.channel_cache import ChannelCache
from livetv.services.config_service import ConfigService
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.store import get_store

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting LiveTV Backend...")

    store = await get_store()
    logger.info("Store initialized")

    http_client = httpx.AsyncClient(follow_redirects=True)
    channel_cache = ChannelCache(store)
    channel_cache.init()
    config_service = ConfigService(store, settings)

    app.state.store = store
    app.state.http_client = http_client
    app.state.channel_cache = channel_cache
    app.state.config_service = config_service
    app.state.refresher = LiveSourceRefresher(channel_cache, store, settings, http_client)

    config = await config_service.get_config()
    logger.info(f"Admin config ready with {len(config.live_config)} live sources")

    yield

    logger.info("Shutting down LiveTV Backend...")
    channel_cache.clear()
    await http_client.aclose()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Live TV channel portal backend",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(live.router)
app.include_router(admin.router)


@app.get("/api/health")
async def health_check(request: Request):
    """Health check endpoint."""
    cache = request.app.state.channel_cache
    return {
        "status": "healthy",
        "version": settings.app_version,
        "cached_sources": len(cache.keys()),
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "livetv.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
