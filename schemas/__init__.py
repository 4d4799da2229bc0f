"""
Pydantic schemas for data validation and serialization.

Schemas:
    records: Records read, combined and written by the batch steps
    api: Monitoring API response models

Usage:
    from schemas import SourceRecord, MergedRecord, TargetRecord
    from schemas.api import JobRunSummary, HealthCheckResponse
"""

from schemas.records import SourceRecord, JoinedRecord, MergedRecord, TargetRecord

__all__ = [
    "SourceRecord",
    "JoinedRecord",
    "MergedRecord",
    "TargetRecord",
]
