"""
Persistence of job runs, step runs and checkpoints.

The repository works on the session it is given and never opens its own.
Status transitions commit immediately; save_checkpoint() does not commit,
because it must land in the same transaction as the chunk's upsert.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CheckpointWriteError
from models.base import BatchStatus
from models.checkpoint import StepCheckpoint
from models.job_run import JobRun
from models.step_run import StepRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepCounters:
    """Committed progress of a step"""
    read_count: int = 0
    write_count: int = 0
    skip_count: int = 0
    chunk_count: int = 0
    
    def add(self, read: int = 0, written: int = 0, skipped: int = 0, chunks: int = 0) -> "StepCounters":
        return StepCounters(
            read_count=self.read_count + read,
            write_count=self.write_count + written,
            skip_count=self.skip_count + skipped,
            chunk_count=self.chunk_count + chunks,
        )
    
    @classmethod
    def from_checkpoint(cls, checkpoint: StepCheckpoint) -> "StepCounters":
        return cls(
            read_count=checkpoint.read_count,
            write_count=checkpoint.write_count,
            skip_count=checkpoint.skip_count,
            chunk_count=checkpoint.chunk_count,
        )


class JobRepository:
    """Job / step / checkpoint bookkeeping"""
    
    def __init__(self, db_session: AsyncSession):
        self.db = db_session
    
    # ------------------------------------------------------------------
    # Job runs
    # ------------------------------------------------------------------
    
    async def find_latest_run(self, job_key: str) -> Optional[JobRun]:
        """Most recent attempt of the job instance identified by job_key"""
        result = await self.db.execute(
            select(JobRun)
            .where(JobRun.job_key == job_key)
            .order_by(JobRun.attempt.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
    
    async def list_runs_by_name(self, job_name: str) -> List[JobRun]:
        """All runs of a job, newest first"""
        result = await self.db.execute(
            select(JobRun)
            .where(JobRun.job_name == job_name)
            .order_by(JobRun.id.desc())
        )
        return list(result.scalars().all())
    
    async def create_job_run(
        self,
        job_name: str,
        job_key: str,
        parameters: Dict[str, Any],
        attempt: int = 1
    ) -> JobRun:
        job_run = JobRun(
            job_name=job_name,
            job_key=job_key,
            parameters=parameters,
            attempt=attempt,
            status=BatchStatus.STARTING,
            started_at=datetime.utcnow(),
        )
        self.db.add(job_run)
        await self.db.commit()
        await self.db.refresh(job_run)
        return job_run
    
    async def mark_running(self, job_run: JobRun) -> JobRun:
        job_run.status = BatchStatus.RUNNING
        await self.db.commit()
        return job_run
    
    async def complete_job_run(
        self,
        job_run: JobRun,
        status: BatchStatus,
        exit_message: Optional[str] = None
    ) -> JobRun:
        job_run.status = status
        job_run.completed_at = datetime.utcnow()
        job_run.duration_seconds = (job_run.completed_at - job_run.started_at).total_seconds()
        job_run.exit_message = exit_message
        await self.db.commit()
        return job_run
    
    async def mark_abandoned(self, job_run: JobRun) -> JobRun:
        """An attempt left STARTING or RUNNING by a crashed process"""
        logger.warning(
            f"Job run {job_run.run_id} ({job_run.job_name}, attempt {job_run.attempt}) "
            f"was left {job_run.status.value}; marking it abandoned"
        )
        return await self.complete_job_run(
            job_run,
            BatchStatus.ABANDONED,
            exit_message="Interrupted before completion"
        )
    
    # ------------------------------------------------------------------
    # Step runs
    # ------------------------------------------------------------------
    
    async def find_latest_step_run(
        self,
        job_key: str,
        step_name: str,
        before_job_run_id: Optional[int] = None
    ) -> Optional[StepRun]:
        """Latest execution of a step across the attempts of one job instance"""
        stmt = (
            select(StepRun)
            .join(JobRun, StepRun.job_run_id == JobRun.id)
            .where(JobRun.job_key == job_key, StepRun.step_name == step_name)
        )
        if before_job_run_id is not None:
            stmt = stmt.where(StepRun.job_run_id < before_job_run_id)
        result = await self.db.execute(stmt.order_by(StepRun.id.desc()).limit(1))
        return result.scalar_one_or_none()
    
    async def create_step_run(
        self,
        job_run_id: int,
        step_name: str,
        counters: StepCounters = StepCounters()
    ) -> StepRun:
        step_run = StepRun(
            job_run_id=job_run_id,
            step_name=step_name,
            status=BatchStatus.RUNNING,
            read_count=counters.read_count,
            write_count=counters.write_count,
            skip_count=counters.skip_count,
            commit_count=0,
            rollback_count=0,
            started_at=datetime.utcnow(),
        )
        self.db.add(step_run)
        await self.db.commit()
        await self.db.refresh(step_run)
        return step_run
    
    async def complete_step_run(
        self,
        step_run: StepRun,
        status: BatchStatus,
        counters: StepCounters,
        rollback_count: int = 0,
        exit_message: Optional[str] = None
    ) -> StepRun:
        self._apply_counters(step_run, counters)
        step_run.rollback_count = rollback_count
        step_run.status = status
        step_run.exit_message = exit_message
        step_run.completed_at = datetime.utcnow()
        await self.db.commit()
        return step_run
    
    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------
    
    async def get_checkpoint(self, step_run_id: int) -> Optional[StepCheckpoint]:
        result = await self.db.execute(
            select(StepCheckpoint).where(StepCheckpoint.step_run_id == step_run_id)
        )
        return result.scalar_one_or_none()
    
    async def save_checkpoint(
        self,
        step_run: StepRun,
        position: str,
        counters: StepCounters,
        rollback_count: int = 0
    ) -> StepCheckpoint:
        """
        Stage the checkpoint and the step run's counters in the open transaction.
        
        Raises:
            CheckpointWriteError: If the rows cannot be written
        """
        try:
            checkpoint = await self.get_checkpoint(step_run.id)
            if checkpoint is None:
                checkpoint = StepCheckpoint(step_run_id=step_run.id)
                self.db.add(checkpoint)
            
            checkpoint.position = position
            checkpoint.read_count = counters.read_count
            checkpoint.write_count = counters.write_count
            checkpoint.skip_count = counters.skip_count
            checkpoint.chunk_count = counters.chunk_count
            checkpoint.updated_at = datetime.utcnow()
            
            self._apply_counters(step_run, counters)
            step_run.rollback_count = rollback_count
            
            await self.db.flush()
        except SQLAlchemyError as e:
            raise CheckpointWriteError(
                "Failed to write checkpoint",
                context={
                    "step_name": step_run.step_name,
                    "step_run_id": step_run.id,
                    "position": position
                },
                original_exception=e
            )
        
        return checkpoint
    
    @staticmethod
    def _apply_counters(step_run: StepRun, counters: StepCounters) -> None:
        step_run.read_count = counters.read_count
        step_run.write_count = counters.write_count
        step_run.skip_count = counters.skip_count
        step_run.commit_count = counters.chunk_count
