"""
Custom exceptions for the batch engine with structured error context.

This module provides the exception hierarchy used by the chunk loop, the
readers and sinks, and the job launcher. Each exception carries context
information for logging and for the exit message stored on the run.

Exception Hierarchy:
    BatchException (base)
    ├── ReadError
    │   ├── SourceReadError
    │   ├── LookupReadError
    │   └── ResumeTokenError
    ├── TransformationError
    │   └── ValidationError
    ├── WriteError
    │   ├── SinkWriteError
    │   └── CheckpointWriteError
    ├── StepExecutionError
    ├── JobLaunchError
    │   ├── JobNotFoundError
    │   ├── JobParameterError
    │   ├── JobAlreadyCompleteError
    │   └── JobRestartError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class BatchException(Exception):
    """
    Base exception for all batch-related errors.
    
    Attributes:
        message: Human-readable error message
        context: Additional context information (step, record id, position, ...)
        original_exception: The original exception that was caught (if any)
    """
    
    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()
        
        self.context["error_timestamp"] = self.timestamp.isoformat()
        
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception
    
    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"
        
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"
        
        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"
        
        return base_msg
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(BatchException):
    """
    Mixin for errors that allow the current chunk to be re-attempted.
    
    The chunk is rolled back and re-read from the last committed
    checkpoint; the step fails once the per-chunk retry limit is spent.
    """


class NonRetryableError(BatchException):
    """
    Mixin for errors that fail the Step Run immediately.
    
    Use this for problems a second attempt cannot fix:
    - Corrupt upstream records
    - Lost checkpoint durability
    - Unusable resume positions
    """


# ============================================================================
# Read Errors
# ============================================================================

class ReadError(BatchException):
    """Base exception for failures while pulling records."""
    pass


class SourceReadError(RetryableError, ReadError):
    """
    Raised when a cursor fails to fetch its next page.
    
    Context should include:
        - source: Name of the stream
        - position: Last position handed out before the failure
    """
    pass


class LookupReadError(RetryableError, ReadError):
    """
    Raised when a point lookup fails with an I/O error.
    
    A missing row is not an error; lookups return None for that.
    
    Context should include:
        - lookup: Name of the lookup accessor
        - key: Key being probed
    """
    pass


class ResumeTokenError(NonRetryableError, ReadError):
    """Raised when a stored position token cannot be parsed."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(BatchException):
    """Base exception for processor failures."""
    pass


class ValidationError(NonRetryableError, TransformationError):
    """
    Raised when a processed record breaks a business invariant.
    
    Context should include:
        - record_id: Id of the offending record (when known)
        - field_name: Field that failed validation
        - validation_rule: The rule that was violated
    """
    pass


# ============================================================================
# Write Errors
# ============================================================================

class WriteError(BatchException):
    """Base exception for failures at chunk commit."""
    pass


class SinkWriteError(RetryableError, WriteError):
    """
    Raised when a bulk upsert or the chunk transaction commit fails.
    
    Context should include:
        - table_name: Target table
        - batch_size: Number of records in the flushed chunk
    """
    pass


class CheckpointWriteError(NonRetryableError, WriteError):
    """
    Raised when the checkpoint row cannot be written.
    
    Progress cannot be claimed without a durable checkpoint, so the
    step fails instead of retrying.
    """
    pass


# ============================================================================
# Step / Job Errors
# ============================================================================

class StepExecutionError(BatchException):
    """
    Terminal failure of a Step Run.
    
    Context should include:
        - step_name: Name of the failed step
        - read_count / write_count / skip_count: Committed counters
    """
    pass


class JobLaunchError(BatchException):
    """Base exception for errors raised before any step runs."""
    pass


class JobNotFoundError(JobLaunchError):
    """No job is registered under the requested name."""
    pass


class JobParameterError(JobLaunchError):
    """A job parameter is malformed (e.g. a process date that is not yyyyMMdd)."""
    pass


class JobAlreadyCompleteError(JobLaunchError):
    """The job instance identified by these parameters already completed."""
    pass


class JobRestartError(JobLaunchError):
    """A restart was requested but there is nothing to restart."""
    pass
