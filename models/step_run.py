from sqlalchemy import Column, String, Enum, DateTime, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BatchStatus, SurrogateKey


class StepRun(Base):
    """
    One step's execution inside a JobRun.
    
    Counters are the committed totals: they are only advanced together
    with the checkpoint at each chunk commit, and include the totals
    carried over from the step run being resumed.
    """
    __tablename__ = "step_runs"
    
    id = Column(SurrogateKey, primary_key=True, autoincrement=True)
    job_run_id = Column(SurrogateKey, ForeignKey("job_runs.id"), nullable=False, index=True)
    step_name = Column(String(100), nullable=False)
    
    status = Column(Enum(BatchStatus), default=BatchStatus.STARTING, nullable=False)
    
    # Statistics
    read_count = Column(Integer, nullable=False, default=0)
    write_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    commit_count = Column(Integer, nullable=False, default=0)
    rollback_count = Column(Integer, nullable=False, default=0)
    
    exit_message = Column(Text, nullable=True)
    
    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    
    # Relationships
    job_run = relationship("JobRun", back_populates="step_runs")
    checkpoint = relationship(
        "StepCheckpoint",
        back_populates="step_run",
        uselist=False,
        cascade="all, delete-orphan",
    )
    
    __table_args__ = (
        Index("idx_step_run_job_step", "job_run_id", "step_name"),
    )
