"""
Pydantic schemas for the records flowing through a step.

Ensures:
- Decimal values stay exact (no float drift in aggregation)
- Records are immutable once read
- The target record always carries an id, a name and a value
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class SourceRecord(BaseModel):
    """One row of a source or staging table"""
    id: Optional[int] = None
    name: Optional[str] = None
    value: Optional[Decimal] = None
    
    class Config:
        frozen = True


class JoinedRecord(BaseModel):
    """
    Row of the SQL LEFT OUTER JOIN between source_table_a and source_table_b.
    
    name comes from side A; value_b is None when side B has no row.
    """
    id: Optional[int] = None
    name: Optional[str] = None
    value_a: Optional[Decimal] = None
    value_b: Optional[Decimal] = None
    
    class Config:
        frozen = True


class MergedRecord(BaseModel):
    """
    One staging_table_a row paired with its staging_table_b lookup.
    
    The B-side fields are None when the lookup found nothing.
    """
    id: Optional[int] = None
    name_a: Optional[str] = None
    value_a: Optional[Decimal] = None
    name_b: Optional[str] = None
    value_b: Optional[Decimal] = None
    
    class Config:
        frozen = True

class TargetRecord(BaseModel):
    """Final row written to target_table"""
    id: int
    name: str = Field(..., max_length=255)
    value: Decimal
    processed_at: datetime
    
    class Config:
        frozen = True
