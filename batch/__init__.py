"""
Chunk-oriented batch engine.

Modules:
    streams: RecordStream / LookupAccessor contracts and read results
    readers: Cursor, lookup and merge-join readers
    processors: Record transformations into target rows
    sinks: Buffered idempotent upsert writers
    repository: Job/step run and checkpoint persistence
    step: Chunk loop with commit-coupled checkpoints
    job: Job flows, registry and launcher with restart
    jobs: The registered jobs
    cli: Command-line entry point

Usage:
    from batch.jobs import default_registry
    from batch.job import JobLauncher
    
    launcher = JobLauncher(async_session_maker, default_registry())
    result = await launcher.launch("jobA", {"process_date": "20240115"})
"""

__all__ = [
    "streams",
    "readers",
    "processors",
    "sinks",
    "repository",
    "step",
    "job",
    "jobs",
    "cli",
]
