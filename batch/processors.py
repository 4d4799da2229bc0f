"""
Processors turning read records into the records a step writes.

Processors do no I/O and keep no mutable state. Everything that depends
on the run (the processing timestamp) comes from the RunContext they are
built with. process() may return None to filter a record out.
"""

from decimal import Decimal
from typing import Generic, Optional, TypeVar
import logging

from pydantic import ValidationError as PydanticValidationError

from batch.context import RunContext
from core.config import settings
from core.exceptions import ValidationError
from schemas.records import JoinedRecord, MergedRecord, SourceRecord, TargetRecord

logger = logging.getLogger(__name__)

I = TypeVar("I")
O = TypeVar("O")

ZERO = Decimal("0")


def resolve_name(name_a: Optional[str], name_b: Optional[str], fallback: Optional[str] = None) -> str:
    """Side A's name if not blank, else side B's, else the fallback literal"""
    if name_a is not None and name_a.strip():
        return name_a
    if name_b is not None and name_b.strip():
        return name_b
    return fallback if fallback is not None else settings.BATCH_FALLBACK_NAME


def aggregate_values(value_a: Optional[Decimal], value_b: Optional[Decimal]) -> Decimal:
    """Sum when both sides are present, the present one otherwise, zero when neither"""
    if value_a is not None and value_b is not None:
        return value_a + value_b
    if value_a is not None:
        return value_a
    if value_b is not None:
        return value_b
    return ZERO


class ItemProcessor(Generic[I, O]):
    """Base processor; subclasses implement process()"""
    
    def __init__(self, context: Optional[RunContext] = None):
        self.context = context
    
    def process(self, item: I) -> Optional[O]:
        raise NotImplementedError
    
    def _require_id(self, item) -> int:
        if getattr(item, "id", None) is None:
            raise ValidationError(
                f"{type(item).__name__} has no id",
                context={
                    "record_id": None,
                    "field_name": "id",
                    "validation_rule": "id must not be null",
                    "step_name": self.context.step_name if self.context else None
                }
            )
        return item.id
    
    def _target(self, record_id: int, name: str, value: Decimal) -> TargetRecord:
        try:
            return TargetRecord(
                id=record_id,
                name=name,
                value=value,
                processed_at=self.context.processed_at,
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Target record failed validation",
                context={"record_id": record_id, "errors": e.errors()},
                original_exception=e
            )


class PassThroughProcessor(ItemProcessor[SourceRecord, SourceRecord]):
    """Copy records unchanged (source table → staging table)"""
    
    def process(self, item: SourceRecord) -> SourceRecord:
        self._require_id(item)
        return item


class SourceRecordProcessor(ItemProcessor[SourceRecord, TargetRecord]):
    """Single-table load: copy id/name/value and stamp processed_at"""
    
    def process(self, item: SourceRecord) -> TargetRecord:
        record_id = self._require_id(item)
        return self._target(
            record_id,
            resolve_name(item.name, None),
            aggregate_values(item.value, None),
        )


class JoinedRecordProcessor(ItemProcessor[JoinedRecord, TargetRecord]):
    """SQL-join load: side A's name, value_a + value_b"""
    
    def process(self, item: JoinedRecord) -> TargetRecord:
        record_id = self._require_id(item)
        return self._target(
            record_id,
            resolve_name(item.name, None),
            aggregate_values(item.value_a, item.value_b),
        )


class MergedRecordProcessor(ItemProcessor[MergedRecord, TargetRecord]):
    """
    Staging merge: apply the business rules to a MergedRecord.
    
    Rules:
    1. id is required; a record without one is corrupt upstream data
    2. name: name_a if not blank, else name_b if not blank, else the fallback
    3. value: value_a + value_b, or whichever is present, or 0
    4. processed_at: from the run context
    """
    
    def process(self, item: MergedRecord) -> TargetRecord:
        record_id = self._require_id(item)
        return self._target(
            record_id,
            resolve_name(item.name_a, item.name_b),
            aggregate_values(item.value_a, item.value_b),
        )
