"""
Core utilities and configuration for the batch engine.

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factory construction
    exceptions: Exception hierarchy for read, transform, write and launch failures
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import build_engine, build_session_factory
    from core.exceptions import SourceReadError, JobNotFoundError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "build_engine",
    "build_session_factory",
    "setup_logging",
    # Exceptions
    "BatchException",
    "RetryableError",
    "NonRetryableError",
    "ReadError",
    "SourceReadError",
    "LookupReadError",
    "ResumeTokenError",
    "TransformationError",
    "ValidationError",
    "WriteError",
    "SinkWriteError",
    "CheckpointWriteError",
    "StepExecutionError",
    "JobLaunchError",
    "JobNotFoundError",
    "JobParameterError",
    "JobAlreadyCompleteError",
    "JobRestartError",
]
