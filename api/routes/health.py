"""
Health check endpoint with database and job status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from models.base import BatchStatus
from models.job_run import JobRun
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    
    Returns:
    - Database connectivity status
    - Status of the latest run of every job that has run
    """
    db_connected = False
    
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")
    
    total_jobs = 0
    failed_jobs = 0
    running_jobs = 0
    
    if db_connected:
        try:
            latest = (
                select(JobRun.job_name, func.max(JobRun.id).label("latest_id"))
                .group_by(JobRun.job_name)
                .subquery()
            )
            result = await db.execute(
                select(JobRun.status).join(latest, JobRun.id == latest.c.latest_id)
            )
            statuses = result.scalars().all()
            total_jobs = len(statuses)
            failed_jobs = sum(1 for s in statuses if s == BatchStatus.FAILED)
            running_jobs = sum(1 for s in statuses if s in (BatchStatus.STARTING, BatchStatus.RUNNING))
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch job runs: {str(e)}")
    
    return HealthCheckResponse(
        status="healthy",  # replaced by the validator
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        total_jobs=total_jobs,
        failed_jobs=failed_jobs,
        running_jobs=running_jobs
    )
