"""
Execution listener logging job and step lifecycle events
"""

import logging

logger = logging.getLogger(__name__)


class ExecutionListener:
    """
    Log job start/end and step start/end with their counters.
    
    Subclass and override to hook extra behaviour into the lifecycle;
    every hook is a no-op apart from logging.
    """
    
    def before_job(self, job_run) -> None:
        logger.info("=========================================")
        logger.info(f"Job started: {job_run.job_name}")
        logger.info(f"Run id: {job_run.run_id} (attempt {job_run.attempt})")
        logger.info(f"Parameters: {job_run.parameters}")
        logger.info("=========================================")
    
    def after_job(self, job_run) -> None:
        logger.info("=========================================")
        logger.info(f"Job finished: {job_run.job_name}")
        logger.info(f"Status: {job_run.status.value}")
        if job_run.exit_message:
            logger.info(f"Exit message: {job_run.exit_message}")
        if job_run.duration_seconds is not None:
            logger.info(f"Duration: {job_run.duration_seconds * 1000:.0f} ms")
        logger.info("=========================================")
    
    def before_step(self, step_run, resume_position: str) -> None:
        if resume_position:
            logger.info(f"--- Step started: {step_run.step_name} (resuming after {resume_position}) ---")
        else:
            logger.info(f"--- Step started: {step_run.step_name} ---")
    
    def after_chunk(self, step_name: str, chunk_number: int, read: int, written: int, position: str) -> None:
        logger.debug(
            f"{step_name}: chunk {chunk_number} committed "
            f"(read={read}, written={written}, position={position})"
        )
    
    def after_step(self, result) -> None:
        logger.info(f"--- Step finished: {result.step_name} ---")
        logger.info(f"  Items read: {result.counters.read_count}")
        logger.info(f"  Items processed: {result.counters.read_count - result.counters.skip_count}")
        logger.info(f"  Items written: {result.counters.write_count}")
        logger.info(f"  Items skipped: {result.counters.skip_count}")
        logger.info(f"  Commits: {result.counters.chunk_count}, rollbacks: {result.rollback_count}")
        logger.info(f"  Status: {result.status.value}")
    
    def step_skipped(self, step_name: str) -> None:
        logger.info(f"--- Step {step_name} already completed in a previous attempt; not replayed ---")
