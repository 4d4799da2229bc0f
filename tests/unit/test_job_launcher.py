"""
Unit tests for the job registry and launcher (orchestration and restart)
"""

import pytest
from decimal import Decimal
from sqlalchemy import select
from batch.context import compute_job_key, normalize_parameters
from batch.job import Job, JobLauncher, JobRegistry, Split
from batch.jobs import JOB_A, JOIN_STAGING_JOB, default_registry
from batch.listener import ExecutionListener
from batch.processors import PassThroughProcessor, SourceRecordProcessor
from batch.readers import table_cursor
from batch.repository import JobRepository
from batch.sinks import staging_a_writer, target_writer
from batch.step import Step, StepEngine
from core.exceptions import (
    JobAlreadyCompleteError,
    JobNotFoundError,
    JobParameterError,
    JobRestartError,
    StepExecutionError,
    ValidationError,
)
from models import BatchStatus, JobRun, SourceTableA, StagingTableA, StepRun, TargetTable


class Switch:
    """Processor that fails while the switch is on"""
    
    def __init__(self):
        self.on = True
    
    def processor(self, context):
        switch = self
        
        class _Processor(SourceRecordProcessor):
            def process(self, item):
                if switch.on and item.id == 2:
                    raise ValidationError("switched off record", context={"field_name": "id"})
                return super().process(item)
        
        return _Processor(context)


class RaisingEngine(StepEngine):
    """Step engine that raises out of execute for one step"""
    
    def __init__(self, session_factory, step_name):
        super().__init__(session_factory)
        self.step_name = step_name
    
    async def execute(self, step, execution):
        if step.name == self.step_name:
            raise RuntimeError("step run could not be recorded")
        return await super().execute(step, execution)


class JobStatusRecorder(ExecutionListener):
    
    def __init__(self):
        self.statuses = []
    
    def before_job(self, job_run):
        self.statuses.append(job_run.status)
        super().before_job(job_run)


def two_step_job(switch, chunk_size=1):
    load = Step(
        name="loadStep",
        reader_factory=lambda session: table_cursor(session, SourceTableA),
        processor_factory=PassThroughProcessor,
        writer_factory=staging_a_writer,
        chunk_size=chunk_size,
    )
    publish = Step(
        name="publishStep",
        reader_factory=lambda session: table_cursor(session, StagingTableA),
        processor_factory=switch.processor,
        writer_factory=target_writer,
        chunk_size=chunk_size,
    )
    return Job(name="twoStepJob", flow=(load, publish))


async def job_runs(session_factory, job_name):
    async with session_factory() as session:
        result = await session.execute(
            select(JobRun).where(JobRun.job_name == job_name).order_by(JobRun.id)
        )
        return result.scalars().all()


class TestJobRegistry:
    
    def test_default_jobs(self):
        registry = default_registry()
        
        assert registry.names() == ["jobA", "jobB", "joinDirectJob", "joinStagingJob"]
        assert registry.get(JOIN_STAGING_JOB).step_names == [
            "loadStagingAStep", "loadStagingBStep", "mergeFinalStep"
        ]
    
    def test_unknown_job(self):
        with pytest.raises(JobNotFoundError) as exc_info:
            default_registry().get("jobZ")
        
        assert "jobA" in exc_info.value.context["available"]
    
    def test_duplicate_registration(self):
        registry = default_registry()
        
        with pytest.raises(ValueError):
            registry.register(registry.get(JOB_A))
    
    def test_chunk_size_is_applied(self):
        job = default_registry(chunk_size=3).get(JOB_A)
        
        assert [step.chunk_size for step in job.steps()] == [3]


class TestJobLauncher:
    
    @pytest.mark.asyncio
    async def test_runs_job_to_completion(self, session_factory, seed_demo, fetch_rows):
        await seed_demo()
        launcher = JobLauncher(session_factory, default_registry())
        
        result = await launcher.launch(JOB_A, {"run_token": 1, "process_date": "20240115"})
        
        assert result.succeeded
        assert result.exit_code == 0
        assert result.attempt == 1
        assert [r.step_name for r in result.step_results] == ["stepJobA"]
        
        rows = await fetch_rows(TargetTable)
        assert rows[1].name == "A1"
        assert rows[1].value == Decimal("100.50")
        
        runs = await job_runs(session_factory, JOB_A)
        assert runs[0].status == BatchStatus.COMPLETED
        assert runs[0].parameters == {"run_token": 1, "process_date": "20240115"}
        assert runs[0].duration_seconds is not None
    
    @pytest.mark.asyncio
    async def test_unknown_job(self, session_factory):
        with pytest.raises(JobNotFoundError):
            await JobLauncher(session_factory, default_registry()).launch("jobZ")
    
    @pytest.mark.asyncio
    async def test_invalid_process_date(self, session_factory):
        with pytest.raises(JobParameterError):
            await JobLauncher(session_factory, default_registry()).launch(JOB_A, {"process_date": "2024-01-15"})
    
    @pytest.mark.asyncio
    async def test_completed_instance_is_not_rerun(self, session_factory, seed_demo):
        await seed_demo()
        launcher = JobLauncher(session_factory, default_registry())
        await launcher.launch(JOB_A, {"run_token": 7})
        
        with pytest.raises(JobAlreadyCompleteError):
            await launcher.launch(JOB_A, {"run_token": 7})
    
    @pytest.mark.asyncio
    async def test_launches_without_token_are_distinct_instances(self, session_factory, seed_demo):
        await seed_demo()
        launcher = JobLauncher(session_factory, default_registry())
        
        first = await launcher.launch(JOB_A, {"run_token": 1})
        second = await launcher.launch(JOB_A, {"run_token": 2})
        
        assert first.succeeded and second.succeeded
        assert second.attempt == 1
    
    @pytest.mark.asyncio
    async def test_restart_skips_completed_steps(self, session_factory, seed_rows, fetch_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2"), (3, "A3", "3")])
        switch = Switch()
        launcher = JobLauncher(session_factory, JobRegistry([two_step_job(switch)]))
        
        failed = await launcher.launch("twoStepJob", {"run_token": 5})
        
        assert failed.status == BatchStatus.FAILED
        assert failed.exit_code == 1
        assert [(r.step_name, r.status) for r in failed.step_results] == [
            ("loadStep", BatchStatus.COMPLETED),
            ("publishStep", BatchStatus.FAILED),
        ]
        assert "publishStep" in failed.exit_message
        assert sorted(await fetch_rows(TargetTable)) == [1]
        
        switch.on = False
        restarted = await launcher.launch("twoStepJob", {"run_token": 5})
        
        assert restarted.succeeded
        assert restarted.attempt == 2
        assert restarted.step_results[0].skipped
        publish = restarted.step_results[1]
        assert publish.counters.read_count == 3
        assert sorted(await fetch_rows(TargetTable)) == [1, 2, 3]
        
        async with session_factory() as session:
            load_runs = (await session.execute(
                select(StepRun).where(StepRun.step_name == "loadStep")
            )).scalars().all()
        assert len(load_runs) == 1
    
    @pytest.mark.asyncio
    async def test_restart_flag_reuses_last_parameters(self, session_factory, seed_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2")])
        switch = Switch()
        launcher = JobLauncher(session_factory, JobRegistry([two_step_job(switch)]))
        await launcher.launch("twoStepJob", {"run_token": 11, "process_date": "20240115"})
        
        switch.on = False
        result = await launcher.launch("twoStepJob", restart=True)
        
        assert result.succeeded
        assert result.attempt == 2
        runs = await job_runs(session_factory, "twoStepJob")
        assert runs[1].parameters == {"run_token": 11, "process_date": "20240115"}
    
    @pytest.mark.asyncio
    async def test_restart_with_process_date_resumes_matching_run(self, session_factory, seed_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2")])
        switch = Switch()
        launcher = JobLauncher(session_factory, JobRegistry([two_step_job(switch)]))
        await launcher.launch("twoStepJob", {"run_token": 11, "process_date": "20240115"})
        await launcher.launch("twoStepJob", {"run_token": 12, "process_date": "20240116"})
        
        switch.on = False
        result = await launcher.launch("twoStepJob", {"process_date": " 20240115"}, restart=True)
        
        assert result.succeeded
        assert result.attempt == 2
        runs = await job_runs(session_factory, "twoStepJob")
        assert runs[-1].parameters == {"run_token": 11, "process_date": "20240115"}
        assert runs[-1].job_key == runs[0].job_key
    
    @pytest.mark.asyncio
    async def test_restart_with_unmatched_process_date(self, session_factory, seed_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2")])
        launcher = JobLauncher(session_factory, JobRegistry([two_step_job(Switch())]))
        await launcher.launch("twoStepJob", {"run_token": 11, "process_date": "20240115"})
        
        with pytest.raises(JobRestartError):
            await launcher.launch("twoStepJob", {"process_date": "20240201"}, restart=True)
    
    @pytest.mark.asyncio
    async def test_restart_without_incomplete_run(self, session_factory):
        launcher = JobLauncher(session_factory, default_registry())
        
        with pytest.raises(JobRestartError):
            await launcher.launch(JOB_A, restart=True)
    
    @pytest.mark.asyncio
    async def test_interrupted_run_is_abandoned_and_resumed(self, session_factory, seed_demo):
        await seed_demo()
        params = normalize_parameters({"run_token": 3})
        async with session_factory() as session:
            stale = await JobRepository(session).create_job_run(JOB_A, compute_job_key(JOB_A, params), params)
        
        assert stale.status == BatchStatus.STARTING
        result = await JobLauncher(session_factory, default_registry()).launch(JOB_A, {"run_token": 3})
        
        assert result.succeeded
        assert result.attempt == 2
        runs = await job_runs(session_factory, JOB_A)
        assert runs[0].run_id == stale.run_id
        assert runs[0].status == BatchStatus.ABANDONED
    
    @pytest.mark.asyncio
    async def test_parallel_staging_split(self, session_factory, seed_demo, fetch_rows):
        await seed_demo()
        launcher = JobLauncher(session_factory, default_registry(parallel_staging=True))
        
        result = await launcher.launch(JOIN_STAGING_JOB, {"run_token": 1, "process_date": "20240115"})
        
        assert result.succeeded
        assert {r.step_name for r in result.step_results} == {
            "loadStagingAStep", "loadStagingBStep", "mergeFinalStep"
        }
        rows = await fetch_rows(TargetTable)
        assert rows[1].value == Decimal("400.50")
        assert rows[2].value == Decimal("250.75")
    
    @pytest.mark.asyncio
    async def test_failed_split_stops_flow(self, session_factory, seed_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2")])
        switch = Switch()
        bad = Step(
            name="badStep",
            reader_factory=lambda session: table_cursor(session, SourceTableA),
            processor_factory=switch.processor,
            writer_factory=target_writer,
        )
        good = Step(
            name="goodStep",
            reader_factory=lambda session: table_cursor(session, SourceTableA),
            processor_factory=PassThroughProcessor,
            writer_factory=staging_a_writer,
        )
        never = Step(
            name="neverStep",
            reader_factory=lambda session: table_cursor(session, SourceTableA),
            processor_factory=PassThroughProcessor,
            writer_factory=staging_a_writer,
        )
        job = Job(name="splitJob", flow=(Split(steps=(bad, good)), never))
        
        result = await JobLauncher(session_factory, JobRegistry([job])).launch("splitJob", {"run_token": 1})
        
        assert result.status == BatchStatus.FAILED
        assert [r.step_name for r in result.step_results] == ["badStep"]
    
    @pytest.mark.asyncio
    async def test_raising_step_in_concurrent_split_fails_job(self, session_factory, seed_rows, fetch_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1"), (2, "A2", "2")])
        steps = [
            Step(
                name=name,
                reader_factory=lambda session: table_cursor(session, SourceTableA),
                processor_factory=PassThroughProcessor,
                writer_factory=staging_a_writer,
            )
            for name in ("badStep", "goodStep", "neverStep")
        ]
        job = Job(name="splitJob", flow=(Split(steps=tuple(steps[:2]), parallel=True), steps[2]))
        launcher = JobLauncher(
            session_factory,
            JobRegistry([job]),
            step_engine=RaisingEngine(session_factory, "badStep")
        )
        
        result = await launcher.launch("splitJob", {"run_token": 1})
        
        assert result.status == BatchStatus.FAILED
        assert [(r.step_name, r.status) for r in result.step_results] == [
            ("badStep", BatchStatus.FAILED),
            ("goodStep", BatchStatus.COMPLETED),
        ]
        assert isinstance(result.step_results[0].error, StepExecutionError)
        assert "badStep" in result.exit_message
        assert len(await fetch_rows(StagingTableA)) == 2
        
        runs = await job_runs(session_factory, "splitJob")
        assert runs[0].status == BatchStatus.FAILED
    
    @pytest.mark.asyncio
    async def test_job_run_is_running_while_steps_execute(self, session_factory, seed_demo):
        await seed_demo()
        recorder = JobStatusRecorder()
        launcher = JobLauncher(session_factory, default_registry(), listener=recorder)
        
        result = await launcher.launch(JOB_A, {"run_token": 1})
        
        assert result.succeeded
        assert recorder.statuses == [BatchStatus.RUNNING]
