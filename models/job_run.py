from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, BatchStatus, JSONType, SurrogateKey


class JobRun(Base):
    """
    One attempt at running a named job.
    
    Purpose:
    - Audit trail of every launch
    - Restart bookkeeping: attempts sharing a job_key are the same
      logical job instance, so a relaunch with the same identifying
      parameters resumes instead of starting over
    
    Design:
    - job_key is a SHA-256 digest of the identifying parameters
    - attempt counts launches per job_key, starting at 1
    - A run is immutable once it reaches a terminal status
    """
    __tablename__ = "job_runs"
    
    id = Column(SurrogateKey, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)
    
    # Job identification
    job_name = Column(String(100), nullable=False, index=True)
    job_key = Column(String(64), nullable=False, index=True)
    parameters = Column(JSONType, nullable=False, default=dict)
    attempt = Column(Integer, nullable=False, default=1)
    
    # Run metadata
    status = Column(Enum(BatchStatus), default=BatchStatus.STARTING, nullable=False, index=True)
    
    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    
    # Error tracking
    exit_message = Column(Text, nullable=True)
    
    # Relationships
    step_runs = relationship(
        "StepRun",
        back_populates="job_run",
        order_by="StepRun.id",
        cascade="all, delete-orphan",
    )
    
    # Indexes
    __table_args__ = (
        Index("idx_job_run_key_attempt", "job_key", "attempt", unique=True),
        Index("idx_job_run_name_started", "job_name", "started_at"),
    )
