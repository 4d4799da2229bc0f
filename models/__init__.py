"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class and the BatchStatus enum
    job_run: One row per job launch (attempt), grouped by job_key
    step_run: One row per step execution with committed counters
    checkpoint: Resume position of a step run, written with every chunk
    tables: Business tables (source, staging, target)

Importing this package registers every table on Base.metadata.

Usage:
    from models import JobRun, StepRun, StepCheckpoint, TargetTable
    from models.base import BatchStatus

Relationships:
    - JobRun → StepRun (one-to-many)
    - StepRun → StepCheckpoint (one-to-one)
"""

from models.base import Base, BatchStatus
from models.job_run import JobRun
from models.step_run import StepRun
from models.checkpoint import StepCheckpoint
from models.tables import (
    SourceTableA,
    SourceTableB,
    StagingTableA,
    StagingTableB,
    TargetTable,
)

__all__ = [
    "Base",
    "BatchStatus",
    "JobRun",
    "StepRun",
    "StepCheckpoint",
    "SourceTableA",
    "SourceTableB",
    "StagingTableA",
    "StagingTableB",
    "TargetTable",
]
