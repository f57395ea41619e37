"""
Competiscope API

FastAPI application serving competitor analyses:
1. Admission (analysis lock + rate limit) per request
2. Fingerprinted cache of full reports
3. Parallel provider fan-out with graceful degradation
4. Plan-filtered responses
"""

import logging
import sys
from datetime import datetime

from fastapi import FastAPI

from api.competitor import get_analysis_service, router as competitor_router
from competiscope import __version__
from competiscope.database import check_db_connection, init_db
from competiscope.utils.config import get_settings

# Configure logging to stdout
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="Competiscope",
    description="Competitive website and social analysis",
    version=__version__,
)
app.include_router(competitor_router)


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize database and start background workers."""
    logger.info("Initializing database...")
    try:
        init_db()
        if check_db_connection():
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    settings = get_settings()
    service = get_analysis_service()
    await service.rate_limiter.start_background_sweep(settings.RATE_LIMIT_SWEEP_SECONDS)
    if service.background is not None:
        await service.background.start()


@app.on_event("shutdown")
async def shutdown_event():
    service = get_analysis_service()
    await service.rate_limiter.stop_background_sweep()
    if service.background is not None:
        await service.background.stop()
    await service.orchestrator.registry.close()
    await service.rate_limiter.store.close()


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    return {"status": "ok", "service": "Competiscope"}


@app.get("/api/health")
async def health():
    """Health check including database status."""
    db_connected = False
    try:
        db_connected = check_db_connection()
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")

    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "database": "connected" if db_connected else "disconnected",
    }


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.analyze:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().ENVIRONMENT == "development",
    )
