"""
Unit tests for the exception hierarchy
"""

from core.exceptions import (
    BatchException,
    CheckpointWriteError,
    JobNotFoundError,
    LookupReadError,
    NonRetryableError,
    ResumeTokenError,
    RetryableError,
    SinkWriteError,
    SourceReadError,
    ValidationError,
)


class TestRetryClassification:
    
    def test_io_errors_are_retryable(self):
        for error_cls in (SourceReadError, LookupReadError, SinkWriteError):
            assert issubclass(error_cls, RetryableError)
    
    def test_fatal_errors_are_not_retryable(self):
        for error_cls in (ValidationError, CheckpointWriteError, ResumeTokenError):
            assert issubclass(error_cls, NonRetryableError)
            assert not issubclass(error_cls, RetryableError)


class TestErrorContext:
    
    def test_str_includes_context_and_cause(self):
        cause = ConnectionError("reset by peer")
        error = SourceReadError("Failed to fetch next page", context={"source": "a"}, original_exception=cause)
        
        text = str(error)
        
        assert text.startswith("SourceReadError: Failed to fetch next page")
        assert "source=a" in text
        assert "ConnectionError: reset by peer" in text
        assert error.__cause__ is cause
    
    def test_to_dict(self):
        error = JobNotFoundError("No job named 'x'", context={"job_name": "x"})
        
        data = error.to_dict()
        
        assert data["error_type"] == "JobNotFoundError"
        assert data["context"]["job_name"] == "x"
        assert data["original_error"] is None
        assert isinstance(error, BatchException)
