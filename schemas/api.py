"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import BatchStatus

# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    total_jobs: int = 0
    failed_jobs: int = 0
    running_jobs: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    # Declared last: the validator reads the fields above
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    
    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Unhealthy without a database, degraded while any job's latest run failed"""
        if not values.get("database_connected", False):
            return "unhealthy"
        
        if values.get("failed_jobs", 0) > 0:
            return "degraded"
        return "healthy"
    
    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "total_jobs": 4,
                "failed_jobs": 0,
                "running_jobs": 1
            }
        }

# ============================================================================
# Job Schemas
# ============================================================================

class JobInfo(BaseModel):
    """A registered job and its steps in execution order"""
    name: str
    steps: List[str]


class JobsResponse(BaseModel):
    jobs: List[JobInfo]

# ============================================================================
# Run Schemas
# ============================================================================

class CheckpointInfo(BaseModel):
    """Committed resume position of a step run"""
    position: str
    read_count: int
    write_count: int
    skip_count: int
    chunk_count: int
    updated_at: datetime
    
    class Config:
        from_attributes = True


class StepRunInfo(BaseModel):
    step_name: str
    status: BatchStatus
    read_count: int
    write_count: int
    skip_count: int
    commit_count: int
    rollback_count: int
    exit_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    checkpoint: Optional[CheckpointInfo] = None
    
    class Config:
        from_attributes = True
        use_enum_values = True


class JobRunSummary(BaseModel):
    """One launch of a job"""
    run_id: str
    job_name: str
    attempt: int
    status: BatchStatus
    parameters: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    exit_message: Optional[str] = None
    
    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "run_id": "550e8400-e29b-41d4-a716-446655440000",
                "job_name": "joinStagingJob",
                "attempt": 2,
                "status": "completed",
                "parameters": {"run_token": 1705312200000, "process_date": "20240115"},
                "started_at": "2024-01-15T10:30:00Z",
                "completed_at": "2024-01-15T10:30:04Z",
                "duration_seconds": 4.2
            }
        }


class JobRunDetail(JobRunSummary):
    steps: List[StepRunInfo] = Field(default_factory=list)


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class RunsResponse(BaseModel):
    """Paginated job run history"""
    items: List[JobRunSummary]
    pagination: PaginationMetadata
    filters_applied: Dict[str, Any] = Field(default_factory=dict)
