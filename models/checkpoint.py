from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, SurrogateKey


class StepCheckpoint(Base):
    """
    Durable resume position of a step run.
    
    Purpose:
    - Resume a step from the last committed chunk
    - Never re-apply a committed chunk and never skip an uncommitted one
    
    Design:
    - One row per step run, rewritten inside every chunk transaction
    - position is the opaque token handed out by the record stream;
      an empty string means "from the beginning"
    - Counters are the committed totals at that position
    """
    __tablename__ = "step_checkpoints"
    
    id = Column(SurrogateKey, primary_key=True, autoincrement=True)
    step_run_id = Column(SurrogateKey, ForeignKey("step_runs.id"), nullable=False, unique=True)
    
    # Checkpoint data
    position = Column(String(255), nullable=False, default="")
    
    # Counters at this position
    read_count = Column(Integer, nullable=False, default=0)
    write_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    chunk_count = Column(Integer, nullable=False, default=0)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    step_run = relationship("StepRun", back_populates="checkpoint")
