"""
The jobs this service runs.

    jobA            source_table_a ─► target_table
    jobB            source_table_b ─► target_table
    joinDirectJob   source_table_a LEFT JOIN source_table_b (SQL) ─► target_table
    joinStagingJob  source_table_a ─► staging_table_a  ┐ (independent loads)
                    source_table_b ─► staging_table_b  ┘
                    staging_table_a ⋈ lookup(staging_table_b) ─► target_table
"""

from typing import Optional

from batch.job import Job, JobRegistry, Split
from batch.processors import (
    JoinedRecordProcessor,
    MergedRecordProcessor,
    PassThroughProcessor,
    SourceRecordProcessor,
)
from batch.readers import MergeJoinReader, TableLookup, joined_cursor, table_cursor
from batch.sinks import staging_a_writer, staging_b_writer, target_writer
from batch.step import Step
from core.config import settings
from models.tables import SourceTableA, SourceTableB, StagingTableA, StagingTableB

JOB_A = "jobA"
JOB_B = "jobB"
JOIN_DIRECT_JOB = "joinDirectJob"
JOIN_STAGING_JOB = "joinStagingJob"


def merged_reader(session) -> MergeJoinReader:
    """staging_table_a drives; staging_table_b is probed per record"""
    return MergeJoinReader(
        driving=table_cursor(session, StagingTableA, name="staging_a_reader"),
        lookup=TableLookup(session, StagingTableB, name="staging_b_lookup"),
        name="merged_record_reader",
    )


def build_jobs(chunk_size: Optional[int] = None, parallel_staging: Optional[bool] = None):
    chunk_size = chunk_size or settings.BATCH_CHUNK_SIZE
    if parallel_staging is None:
        parallel_staging = settings.BATCH_PARALLEL_STAGING
    
    step_job_a = Step(
        name="stepJobA",
        reader_factory=lambda session: table_cursor(session, SourceTableA),
        processor_factory=SourceRecordProcessor,
        writer_factory=target_writer,
        chunk_size=chunk_size,
    )
    step_job_b = Step(
        name="stepJobB",
        reader_factory=lambda session: table_cursor(session, SourceTableB),
        processor_factory=SourceRecordProcessor,
        writer_factory=target_writer,
        chunk_size=chunk_size,
    )
    join_direct_step = Step(
        name="joinDirectStep",
        reader_factory=joined_cursor,
        processor_factory=JoinedRecordProcessor,
        writer_factory=target_writer,
        chunk_size=chunk_size,
    )
    load_staging_a = Step(
        name="loadStagingAStep",
        reader_factory=lambda session: table_cursor(session, SourceTableA),
        processor_factory=PassThroughProcessor,
        writer_factory=staging_a_writer,
        chunk_size=chunk_size,
    )
    load_staging_b = Step(
        name="loadStagingBStep",
        reader_factory=lambda session: table_cursor(session, SourceTableB),
        processor_factory=PassThroughProcessor,
        writer_factory=staging_b_writer,
        chunk_size=chunk_size,
    )
    merge_final = Step(
        name="mergeFinalStep",
        reader_factory=merged_reader,
        processor_factory=MergedRecordProcessor,
        writer_factory=target_writer,
        chunk_size=chunk_size,
    )
    
    return [
        Job(name=JOB_A, flow=(step_job_a,)),
        Job(name=JOB_B, flow=(step_job_b,)),
        Job(name=JOIN_DIRECT_JOB, flow=(join_direct_step,)),
        Job(
            name=JOIN_STAGING_JOB,
            flow=(
                Split(steps=(load_staging_a, load_staging_b), parallel=parallel_staging),
                merge_final,
            ),
        ),
    ]


def default_registry(chunk_size: Optional[int] = None, parallel_staging: Optional[bool] = None) -> JobRegistry:
    return JobRegistry(build_jobs(chunk_size=chunk_size, parallel_staging=parallel_staging))
