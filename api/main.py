"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, jobs, runs
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Batch Engine Monitoring API",
    description="Read-only view of registered jobs, run history and step checkpoints",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(jobs.router)
app.include_router(runs.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Batch Engine Monitoring API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Batch Engine Monitoring API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "jobs": "/jobs",
            "runs": "/runs"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
