"""
Merge-join reader: one driving cursor enriched by a lookup per record.

Left outer join semantics anchored on the driving side: a driving record
without a match is emitted with the B-side fields set to None, never
dropped. The lookup side is stateless, so the reader's position is the
driving cursor's position and it resumes exactly like a plain cursor.
"""

import logging

from batch.streams import END_OF_STREAM, START_POSITION, EndOfStream, Item, LookupAccessor, ReadResult, RecordStream
from schemas.records import MergedRecord, SourceRecord

logger = logging.getLogger(__name__)


class MergeJoinReader(RecordStream):
    """
    Combine a driving stream of SourceRecords with a lookup on the same id.
    
    Opening opens only the driving stream; closing closes both.
    """
    
    def __init__(self, driving: RecordStream, lookup: LookupAccessor, name: str = "merged_reader"):
        self.driving = driving
        self.lookup_accessor = lookup
        self.name = name
        self.matched_count = 0
        self.unmatched_count = 0
    
    async def open(self, resume_token: str = START_POSITION) -> None:
        self.matched_count = 0
        self.unmatched_count = 0
        await self.driving.open(resume_token)
    
    async def read(self) -> ReadResult:
        result = await self.driving.read()
        if isinstance(result, EndOfStream):
            return END_OF_STREAM
        
        driving_record: SourceRecord = result.record
        match = await self.lookup_accessor.lookup(driving_record.id)
        
        if match is None:
            self.unmatched_count += 1
            merged = MergedRecord(
                id=driving_record.id,
                name_a=driving_record.name,
                value_a=driving_record.value,
            )
        else:
            self.matched_count += 1
            merged = MergedRecord(
                id=driving_record.id,
                name_a=driving_record.name,
                value_a=driving_record.value,
                name_b=match.name,
                value_b=match.value,
            )
        
        return Item(merged)
    
    def position(self) -> str:
        return self.driving.position()
    
    async def close(self) -> None:
        try:
            await self.driving.close()
        finally:
            await self.lookup_accessor.close()
        
        logger.debug(
            f"{self.name}: closed ({self.matched_count} matched, "
            f"{self.unmatched_count} without a lookup match)"
        )
