"""
Step definition and the chunk-oriented step engine.

One step run is one coroutine working on one session:

    read ─► process ─► buffer ─► (chunk full or stream exhausted) ─► commit

A commit is a single database transaction holding the chunk's upsert,
the checkpoint (position + counters) and the step run's counters. When a
retryable error hits a chunk, the transaction is rolled back and the
reader is re-opened at the last committed position, so the chunk is
re-read and re-applied from scratch. Non-retryable errors, and retryable
ones past the retry limit, fail the step; chunks committed before the
failure stay committed.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batch.context import JobExecution, RunContext
from batch.listener import ExecutionListener
from batch.processors import ItemProcessor
from batch.repository import JobRepository, StepCounters
from batch.sinks import UpsertSink
from batch.streams import START_POSITION, EndOfStream, RecordStream
from core.config import settings
from core.exceptions import (
    BatchException,
    RetryableError,
    SinkWriteError,
    StepExecutionError,
    ValidationError,
)
from models.base import BatchStatus
from models.step_run import StepRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """
    A named read → process → write pipeline.
    
    Factories are called once per step run: readers and writers receive
    the step's session, processors receive the run context.
    """
    name: str
    reader_factory: Callable[[AsyncSession], RecordStream]
    processor_factory: Callable[[RunContext], ItemProcessor]
    writer_factory: Callable[[AsyncSession], UpsertSink]
    chunk_size: int = field(default_factory=lambda: settings.BATCH_CHUNK_SIZE)
    
    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


@dataclass
class StepResult:
    """Outcome of one step within a job run"""
    step_name: str
    status: BatchStatus
    counters: StepCounters = field(default_factory=StepCounters)
    rollback_count: int = 0
    exit_message: Optional[str] = None
    skipped: bool = False
    error: Optional[BaseException] = None
    
    @property
    def succeeded(self) -> bool:
        return self.status == BatchStatus.COMPLETED


@dataclass
class _ChunkState:
    """Last committed position and counters of the running step"""
    position: str = START_POSITION
    counters: StepCounters = field(default_factory=StepCounters)
    rollbacks: int = 0


class StepEngine:
    """Run steps chunk by chunk under transactional checkpointing"""
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        listener: Optional[ExecutionListener] = None,
        retry_limit: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.listener = listener or ExecutionListener()
        self.retry_limit = settings.BATCH_CHUNK_RETRY_LIMIT if retry_limit is None else retry_limit
    
    async def execute(self, step: Step, execution: JobExecution) -> StepResult:
        """
        Run one step to completion or failure.
        
        Returns:
            StepResult; failures are reported in the result, not raised
        """
        async with self.session_factory() as session:
            repo = JobRepository(session)
            
            state = await self._resume_point(repo, step, execution)
            step_run = await repo.create_step_run(execution.job_run_id, step.name, state.counters)
            
            try:
                # Carry the resume point forward so a crash before the first
                # commit still resumes from it on the next attempt
                await repo.save_checkpoint(step_run, state.position, state.counters)
                await session.commit()
                self.listener.before_step(step_run, state.position)
                
                context = RunContext.for_step(execution, step.name, step_run.started_at)
                processor = step.processor_factory(context)
                await self._run_chunks(session, repo, step, step_run, processor, state)
            except Exception as e:
                return await self._fail(session, repo, step, step_run, state, e)
            
            await repo.complete_step_run(
                step_run,
                BatchStatus.COMPLETED,
                state.counters,
                rollback_count=state.rollbacks
            )
            
            result = StepResult(
                step_name=step.name,
                status=BatchStatus.COMPLETED,
                counters=state.counters,
                rollback_count=state.rollbacks,
            )
            self.listener.after_step(result)
            return result
    
    async def _resume_point(self, repo: JobRepository, step: Step, execution: JobExecution) -> _ChunkState:
        previous = await repo.find_latest_step_run(
            execution.job_key,
            step.name,
            before_job_run_id=execution.job_run_id
        )
        if previous is None:
            return _ChunkState()
        
        checkpoint = await repo.get_checkpoint(previous.id)
        if checkpoint is None:
            return _ChunkState()
        
        logger.info(
            f"{step.name}: resuming from checkpoint of step run {previous.id} "
            f"(position={checkpoint.position!r}, read={checkpoint.read_count})"
        )
        return _ChunkState(
            position=checkpoint.position,
            counters=StepCounters.from_checkpoint(checkpoint),
        )
    
    async def _run_chunks(
        self,
        session: AsyncSession,
        repo: JobRepository,
        step: Step,
        step_run: StepRun,
        processor: ItemProcessor,
        state: _ChunkState
    ) -> None:
        reader = step.reader_factory(session)
        await reader.open(state.position)
        
        try:
            exhausted = False
            while not exhausted:
                exhausted = await self._run_chunk_with_retry(
                    session, repo, step, step_run, processor, reader, state
                )
        finally:
            await reader.close()
    
    async def _run_chunk_with_retry(
        self,
        session: AsyncSession,
        repo: JobRepository,
        step: Step,
        step_run: StepRun,
        processor: ItemProcessor,
        reader: RecordStream,
        state: _ChunkState
    ) -> bool:
        attempt = 0
        while True:
            try:
                return await self._run_chunk(session, repo, step, step_run, processor, reader, state)
            except RetryableError as e:
                state.rollbacks += 1
                await session.rollback()
                await session.refresh(step_run)
                
                if attempt >= self.retry_limit:
                    raise
                attempt += 1
                
                logger.warning(
                    f"{step.name}: chunk rolled back ({type(e).__name__}: {e.message}); "
                    f"retry {attempt}/{self.retry_limit} from position {state.position!r}"
                )
                await reader.close()
                await reader.open(state.position)
    
    async def _run_chunk(
        self,
        session: AsyncSession,
        repo: JobRepository,
        step: Step,
        step_run: StepRun,
        processor: ItemProcessor,
        reader: RecordStream,
        state: _ChunkState
    ) -> bool:
        """
        Read, process and commit one chunk.
        
        Returns:
            True when the stream is exhausted
        """
        sink = step.writer_factory(session)
        read = skipped = 0
        exhausted = False
        
        while read < step.chunk_size:
            result = await reader.read()
            if isinstance(result, EndOfStream):
                exhausted = True
                break
            
            read += 1
            record = result.record
            
            try:
                item = processor.process(record)
            except ValidationError as e:
                if e.context.get("record_id") is None:
                    e.context["record_id"] = getattr(record, "id", None)
                raise
            
            if item is None:
                skipped += 1
            else:
                sink.add(item)
        
        if read == 0:
            return exhausted
        
        written = await sink.flush()
        position = reader.position()
        counters = state.counters.add(read=read, written=written, skipped=skipped, chunks=1)
        
        await repo.save_checkpoint(step_run, position, counters, rollback_count=state.rollbacks)
        
        try:
            await session.commit()
        except SQLAlchemyError as e:
            raise SinkWriteError(
                "Chunk transaction commit failed",
                context={"step_name": step.name, "position": position},
                original_exception=e
            )
        
        state.position = position
        state.counters = counters
        self.listener.after_chunk(step.name, counters.chunk_count, read, written, position)
        return exhausted
    
    async def _fail(
        self,
        session: AsyncSession,
        repo: JobRepository,
        step: Step,
        step_run: StepRun,
        state: _ChunkState,
        error: Exception
    ) -> StepResult:
        await session.rollback()
        await session.refresh(step_run)
        
        if not isinstance(error, BatchException):
            error = StepExecutionError(
                "Unexpected error in step",
                context={
                    "step_name": step.name,
                    "read_count": state.counters.read_count,
                    "write_count": state.counters.write_count,
                    "skip_count": state.counters.skip_count
                },
                original_exception=error
            )
        context = error.to_dict()
        exit_message = str(error)
        
        logger.error(
            f"Step {step.name} failed (read={state.counters.read_count}, "
            f"written={state.counters.write_count}, skipped={state.counters.skip_count}, "
            f"position={state.position!r}): {exit_message}",
            extra={"error_context": context}
        )
        
        await repo.complete_step_run(
            step_run,
            BatchStatus.FAILED,
            state.counters,
            rollback_count=state.rollbacks,
            exit_message=exit_message
        )
        
        result = StepResult(
            step_name=step.name,
            status=BatchStatus.FAILED,
            counters=state.counters,
            rollback_count=state.rollbacks,
            exit_message=exit_message,
            error=error,
        )
        self.listener.after_step(result)
        return result
