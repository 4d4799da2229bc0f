"""
Job definitions, registry and the orchestrator that launches them.

A job is an ordered flow of steps. A Split groups steps with no data
dependency on each other; they may run concurrently, each in its own
session. The first failed step (or failed split) stops the flow.

Relaunching with the same identifying parameters resumes the same job
instance: steps that completed in an earlier attempt are not replayed,
and the first incomplete step resumes from its last checkpoint.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from batch.context import (
    PROCESS_DATE,
    RUN_TOKEN,
    JobExecution,
    compute_job_key,
    normalize_parameters,
    normalize_process_date,
)
from batch.listener import ExecutionListener
from batch.repository import JobRepository
from batch.step import Step, StepEngine, StepResult
from core.exceptions import (
    BatchException,
    JobAlreadyCompleteError,
    JobNotFoundError,
    JobRestartError,
    StepExecutionError,
)
from models.base import BatchStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Split:
    """Steps without data dependencies between them"""
    steps: Tuple[Step, ...]
    parallel: bool = False


FlowElement = Union[Step, Split]


@dataclass(frozen=True)
class Job:
    """A named, ordered flow of steps"""
    name: str
    flow: Tuple[FlowElement, ...]
    
    def steps(self) -> Iterator[Step]:
        for element in self.flow:
            if isinstance(element, Split):
                yield from element.steps
            else:
                yield element
    
    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps()]


@dataclass
class JobResult:
    """Outcome of one launch"""
    job_name: str
    run_id: str
    status: BatchStatus
    attempt: int = 1
    step_results: List[StepResult] = field(default_factory=list)
    exit_message: Optional[str] = None
    
    @property
    def succeeded(self) -> bool:
        return self.status == BatchStatus.COMPLETED
    
    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class JobRegistry:
    """Jobs addressable by name"""
    
    def __init__(self, jobs: Optional[List[Job]] = None):
        self._jobs: Dict[str, Job] = {}
        for job in jobs or []:
            self.register(job)
    
    def register(self, job: Job) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Job {job.name!r} is already registered")
        self._jobs[job.name] = job
    
    def get(self, name: str) -> Job:
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotFoundError(
                f"No job named {name!r}",
                context={"job_name": name, "available": ", ".join(sorted(self._jobs))}
            )
    
    def names(self) -> List[str]:
        return sorted(self._jobs)
    
    def __iter__(self):
        return iter(self._jobs[name] for name in self.names())
    
    def __contains__(self, name: str) -> bool:
        return name in self._jobs


class JobLauncher:
    """
    Launch jobs and record their runs.
    
    Responsibilities:
    - Resolve the job instance (job_key) from the identifying parameters
    - Decide between a fresh run and a restart
    - Sequence the flow, skipping steps completed in earlier attempts
    - Record the job run's final status
    """
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: JobRegistry,
        listener: Optional[ExecutionListener] = None,
        step_engine: Optional[StepEngine] = None
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.listener = listener or ExecutionListener()
        self.step_engine = step_engine or StepEngine(session_factory, listener=self.listener)
    
    async def launch(
        self,
        job_name: str,
        parameters: Optional[Dict[str, Any]] = None,
        restart: bool = False
    ) -> JobResult:
        """
        Run a job, or resume its last incomplete attempt.
        
        Args:
            job_name: Registered job name
            parameters: run_token / process_date; a missing run_token makes
                this launch a new job instance
            restart: Resume the most recent incomplete run of this job.
                Without a run_token the instance is looked up by the
                other parameters given, and its run_token is reused
        
        Raises:
            JobNotFoundError: Unknown job name
            JobParameterError: Malformed parameters
            JobRestartError: restart requested with nothing to restart
            JobAlreadyCompleteError: The job instance already completed
        """
        job = self.registry.get(job_name)
        
        async with self.session_factory() as session:
            repo = JobRepository(session)
            
            if restart and (parameters or {}).get(RUN_TOKEN) is None:
                parameters = await self._restart_parameters(repo, job_name, parameters or {})
            
            params = normalize_parameters(parameters)
            job_key = compute_job_key(job_name, params)
            
            attempt = 1
            previous = await repo.find_latest_run(job_key)
            if previous is not None:
                if previous.status == BatchStatus.COMPLETED:
                    raise JobAlreadyCompleteError(
                        f"Job {job_name!r} already completed for these parameters",
                        context={"job_name": job_name, "run_id": previous.run_id, "parameters": params}
                    )
                if not previous.status.is_terminal:
                    await repo.mark_abandoned(previous)
                attempt = previous.attempt + 1
                logger.info(f"Restarting {job_name} (attempt {attempt}, previous run {previous.run_id})")
            
            job_run = await repo.create_job_run(job_name, job_key, params, attempt=attempt)
            execution = JobExecution(
                job_name=job_name,
                job_run_id=job_run.id,
                run_id=job_run.run_id,
                job_key=job_key,
                attempt=attempt,
                parameters=params,
            )
            await repo.mark_running(job_run)
            self.listener.before_job(job_run)
            
            try:
                step_results = await self._run_flow(repo, job, execution)
            except Exception as e:
                logger.exception(f"Unexpected error while running job {job_name}")
                await repo.complete_job_run(job_run, BatchStatus.FAILED, exit_message=str(e))
                self.listener.after_job(job_run)
                raise
            
            failed = [r for r in step_results if r.status == BatchStatus.FAILED]
            if failed:
                status = BatchStatus.FAILED
                exit_message = "; ".join(f"{r.step_name}: {r.exit_message}" for r in failed)
            else:
                status = BatchStatus.COMPLETED
                exit_message = None
            
            await repo.complete_job_run(job_run, status, exit_message=exit_message)
            self.listener.after_job(job_run)
            
            return JobResult(
                job_name=job_name,
                run_id=job_run.run_id,
                status=status,
                attempt=attempt,
                step_results=step_results,
                exit_message=exit_message,
            )
    
    async def _restart_parameters(
        self,
        repo: JobRepository,
        job_name: str,
        given: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Parameters of the most recent incomplete instance of job_name.
        
        A process date, when given, must match the instance's own. An
        instance counts as incomplete unless its latest attempt completed.
        """
        process_date = normalize_process_date(given.get(PROCESS_DATE))
        seen = set()
        
        for run in await repo.list_runs_by_name(job_name):
            if run.job_key in seen:
                continue
            seen.add(run.job_key)
            
            if run.status == BatchStatus.COMPLETED:
                continue
            if process_date is not None and normalize_process_date(run.parameters.get(PROCESS_DATE)) != process_date:
                continue
            return {**given, **run.parameters}
        
        raise JobRestartError(
            f"No incomplete run of {job_name!r} to restart",
            context={"job_name": job_name, "process_date": process_date}
        )
    
    def _split_result(self, step: Step, outcome: Union[StepResult, BaseException]) -> StepResult:
        """Result of one step from a concurrent split; a raised error fails the step"""
        if isinstance(outcome, StepResult):
            return outcome
        if not isinstance(outcome, Exception):
            raise outcome
        
        error = outcome
        if not isinstance(error, BatchException):
            error = StepExecutionError(
                "Unexpected error in step",
                context={"step_name": step.name},
                original_exception=outcome
            )
        logger.error(f"Step {step.name} raised in a concurrent split: {error}", exc_info=outcome)
        
        result = StepResult(
            step_name=step.name,
            status=BatchStatus.FAILED,
            exit_message=str(error),
            error=error,
        )
        self.listener.after_step(result)
        return result
    
    async def _run_flow(self, repo: JobRepository, job: Job, execution: JobExecution) -> List[StepResult]:
        results: List[StepResult] = []
        
        for element in job.flow:
            if isinstance(element, Split):
                steps, parallel = element.steps, element.parallel
            else:
                steps, parallel = (element,), False
            
            pending = []
            for step in steps:
                if await self._already_completed(repo, step, execution):
                    self.listener.step_skipped(step.name)
                    results.append(StepResult(step_name=step.name, status=BatchStatus.COMPLETED, skipped=True))
                else:
                    pending.append(step)
            
            if parallel and len(pending) > 1:
                outcomes = await asyncio.gather(
                    *(self.step_engine.execute(step, execution) for step in pending),
                    return_exceptions=True
                )
                results.extend(
                    self._split_result(step, outcome) for step, outcome in zip(pending, outcomes)
                )
            else:
                for step in pending:
                    result = await self.step_engine.execute(step, execution)
                    results.append(result)
                    if not result.succeeded:
                        break
            
            if any(not r.succeeded for r in results):
                break
        
        return results
    
    async def _already_completed(self, repo: JobRepository, step: Step, execution: JobExecution) -> bool:
        if not execution.is_restart:
            return False
        previous = await repo.find_latest_step_run(execution.job_key, step.name)
        return previous is not None and previous.status == BatchStatus.COMPLETED
