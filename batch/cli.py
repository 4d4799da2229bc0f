"""
Command-line launcher for batch jobs.

Maps argparse options onto JobLauncher.launch() and turns the outcome
into a process exit code: 0 completed (or nothing to do), 1 failed,
2 usage errors.
"""

from typing import Optional, Sequence
import argparse
import asyncio
import logging

from batch.context import PROCESS_DATE, RUN_TOKEN
from batch.job import JobLauncher, JobRegistry
from batch.jobs import default_registry
from core.config import settings
from core.database import build_engine, build_session_factory
from core.exceptions import (
    JobAlreadyCompleteError,
    JobNotFoundError,
    JobParameterError,
    JobRestartError,
)
from core.logging import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="batch", description="Run a batch ETL job")
    parser.add_argument("--job", dest="job_name", default=settings.BATCH_JOB_NAME, help="Job to run")
    parser.add_argument(
        "--process-date", "--processDate",
        dest="process_date",
        default=settings.BATCH_PROCESS_DATE,
        help="As-of date in yyyyMMdd form, used as processed_at for every record"
    )
    parser.add_argument(
        "--run-token",
        dest="run_token",
        type=int,
        default=None,
        help="Run-distinguishing token; reuse one to resume that job instance (default: launch time in ms)"
    )
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Resume the most recent incomplete run of the job"
    )
    parser.add_argument("--chunk-size", type=int, default=None, help="Records per transaction")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--list", action="store_true", help="List registered jobs and exit")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def _parameters(args: argparse.Namespace) -> dict:
    params = {}
    if args.run_token is not None:
        params[RUN_TOKEN] = args.run_token
    if args.process_date:
        params[PROCESS_DATE] = args.process_date
    return params


def _print_jobs(registry: JobRegistry) -> None:
    for job in registry:
        print(f"{job.name}: {' -> '.join(job.step_names)}")


async def run(args: argparse.Namespace, registry: Optional[JobRegistry] = None) -> int:
    registry = registry or default_registry(chunk_size=args.chunk_size)
    engine = build_engine(args.database_url)
    launcher = JobLauncher(build_session_factory(engine), registry)
    
    # Only the run token may be omitted on restart; anything else given
    # narrows the job instance being resumed
    params = _parameters(args)
    
    try:
        result = await launcher.launch(args.job_name, params or None, restart=args.restart)
    except JobAlreadyCompleteError as e:
        logger.info(f"Nothing to do: {e.message}")
        return EXIT_OK
    except (JobNotFoundError, JobParameterError, JobRestartError) as e:
        logger.error(str(e))
        return EXIT_USAGE
    finally:
        await engine.dispose()
    
    for step in result.step_results:
        logger.info(
            f"{step.step_name}: {step.status.value}"
            f"{' (already completed)' if step.skipped else ''} "
            f"read={step.counters.read_count} written={step.counters.write_count} "
            f"skipped={step.counters.skip_count}"
        )
    return result.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    
    if args.list:
        _print_jobs(default_registry())
        return EXIT_OK
    
    if not args.job_name:
        logger.info("No job specified; nothing to run")
        return EXIT_OK
    
    if args.chunk_size is not None and args.chunk_size < 1:
        parser.error("--chunk-size must be positive")
    
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
