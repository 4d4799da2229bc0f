"""
Registered job catalogue
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_registry
from batch.job import JobRegistry
from schemas.api import JobInfo, JobsResponse

router = APIRouter(tags=["Jobs"])


@router.get("/jobs", response_model=JobsResponse)
async def list_jobs(registry: JobRegistry = Depends(get_registry)):
    """List registered jobs with their steps in execution order"""
    return JobsResponse(
        jobs=[JobInfo(name=job.name, steps=job.step_names) for job in registry]
    )
