"""
Point lookup by id against one id/name/value table.
"""

from typing import Any, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batch.readers.cursor import map_source_row
from batch.streams import LookupAccessor
from core.exceptions import LookupReadError
from schemas.records import SourceRecord

logger = logging.getLogger(__name__)


class TableLookup(LookupAccessor):
    """
    Probe a table by primary key.
    
    Reuses the step's session: it only issues SELECTs, so it never takes
    a write lock that could conflict with the chunk transaction.
    """
    
    def __init__(self, session: AsyncSession, model, name: Optional[str] = None):
        self.session = session
        self.model = model
        self.name = name or f"{model.__tablename__}_lookup"
    
    async def lookup(self, key: Any) -> Optional[SourceRecord]:
        stmt = select(self.model.id, self.model.name, self.model.value).where(self.model.id == key)
        
        try:
            result = await self.session.execute(stmt)
            row = result.one_or_none()
        except SQLAlchemyError as e:
            raise LookupReadError(
                "Lookup query failed",
                context={"lookup": self.name, "key": key},
                original_exception=e
            )
        
        if row is None:
            logger.debug(f"{self.name}: no row for key {key}")
            return None
        
        return map_source_row(row)
