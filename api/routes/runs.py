"""
Job run history with pagination and filtering
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, func, and_
from api.dependencies import get_db
from schemas.api import (
    JobRunDetail,
    JobRunSummary,
    PaginationMetadata,
    RunsResponse,
    StepRunInfo,
)
from models.base import BatchStatus
from models.job_run import JobRun
from models.step_run import StepRun
from typing import Optional
import math
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Runs"])


@router.get("/runs", response_model=RunsResponse)
async def list_runs(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=500, description="Runs per page"),
    job_name: Optional[str] = Query(None, description="Filter by job name"),
    status: Optional[BatchStatus] = Query(None, description="Filter by run status"),
    db: AsyncSession = Depends(get_db)
):
    """Job runs, most recent first"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] GET /runs - page={page}, page_size={page_size}, job_name={job_name}, status={status}")
    
    filters = []
    if job_name:
        filters.append(JobRun.job_name == job_name)
    if status:
        filters.append(JobRun.status == status)
    
    count_query = select(func.count()).select_from(JobRun)
    query = select(JobRun)
    if filters:
        count_query = count_query.where(and_(*filters))
        query = query.where(and_(*filters))
    
    total_items = (await db.execute(count_query)).scalar()
    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    
    query = query.order_by(JobRun.id.desc()).offset((page - 1) * page_size).limit(page_size)
    runs = (await db.execute(query)).scalars().all()
    
    return RunsResponse(
        items=[JobRunSummary.model_validate(run) for run in runs],
        pagination=PaginationMetadata(
            current_page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        ),
        filters_applied={k: v for k, v in {
            "job_name": job_name,
            "status": status.value if status else None,
        }.items() if v is not None}
    )


@router.get("/runs/{run_id}", response_model=JobRunDetail)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """One job run with its step runs and their checkpoints"""
    result = await db.execute(
        select(JobRun)
        .where(JobRun.run_id == run_id)
        .options(selectinload(JobRun.step_runs).selectinload(StepRun.checkpoint))
    )
    run = result.scalar_one_or_none()
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    
    summary = JobRunSummary.model_validate(run)
    return JobRunDetail(
        **summary.model_dump(),
        steps=[StepRunInfo.model_validate(step) for step in run.step_runs]
    )
