"""
PosSync - Toast POS order synchronization for the CRM
FastAPI Application Entry Point
"""
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from possync.core import settings, engine, Base
from possync.core.logging import setup_logging
from possync.api import api_router
from possync.jobs import LocalSyncTransport, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


# Lifespan for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    # Startup: Create tables if not exist
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting on port {settings.APP_PORT}")

    # Poll one tenant in-process when configured
    scheduler_started = False
    if settings.SYNC_TENANT_ID:
        try:
            start_scheduler(settings.SYNC_TENANT_ID, LocalSyncTransport())
            scheduler_started = True
        except Exception as e:
            logger.warning(f"Could not start order sync scheduler: {e}")

    yield

    # Shutdown
    if scheduler_started:
        stop_scheduler()
    logger.info(f"{settings.APP_NAME} shutting down")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Toast order sync, lead matching and sync status for the CRM",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(api_router, prefix="/api")


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.DEBUG
    )
