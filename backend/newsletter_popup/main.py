"""
Foxx Newsletter Popup Service
Main FastAPI application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from newsletter_popup.config import settings
from newsletter_popup.database import close_db, init_db
from newsletter_popup.middleware.rate_limit import RateLimitMiddleware
from newsletter_popup.routes import public, stores

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting newsletter popup service...")
    await init_db()
    logger.info("Newsletter popup service started")

    yield

    # Shutdown
    logger.info("Shutting down newsletter popup service...")
    await close_db()
    logger.info("Newsletter popup service stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Embeddable newsletter popup with installation verification",
    version=settings.app_version,
    lifespan=lifespan,
)

# Public endpoints set their own CORS headers per store, so no CORSMiddleware
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=settings.rate_limit_per_minute,
    path_prefixes=("/api/subscribe",),
)

# Mount routes
app.include_router(stores.router, prefix="/api/stores", tags=["Stores"])
app.include_router(public.router, tags=["Public"])


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "foxx-newsletter-popup",
        "version": settings.app_version,
        "status": "running",
    }


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "foxx-newsletter-popup",
        "version": settings.app_version,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "newsletter_popup.main:app",
        host="0.0.0.0",
        port=8006,
        reload=settings.debug,
    )
