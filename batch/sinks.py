"""
Buffered sink writing one bulk upsert per chunk (idempotency)
"""

from typing import Dict, List, Optional, Sequence
import logging

from pydantic import BaseModel
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SinkWriteError
from models.tables import StagingTableA, StagingTableB, TargetTable

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class UpsertSink:
    """
    Buffer records and upsert them with a single INSERT ... ON CONFLICT.
    
    Ensures:
    - A matching key overwrites every non-key column
    - Flushing the same chunk twice leaves the table as flushing it once
    - Nothing is committed here; the step engine owns the transaction
    """
    
    def __init__(
        self,
        db_session: AsyncSession,
        model,
        key_columns: Sequence[str] = ("id",),
        name: Optional[str] = None
    ):
        self.db = db_session
        self.model = model
        self.key_columns = tuple(key_columns)
        self.name = name or f"{model.__tablename__}_writer"
        self._buffer: Dict[tuple, dict] = {}
    
    def add(self, record: BaseModel) -> None:
        values = record.model_dump()
        key = tuple(values[column] for column in self.key_columns)
        # Last write wins within a chunk; one statement cannot touch a row twice
        self._buffer.pop(key, None)
        self._buffer[key] = values
    
    def __len__(self) -> int:
        return len(self._buffer)
    
    def clear(self) -> None:
        self._buffer.clear()
    
    async def flush(self) -> int:
        """
        Upsert buffered records inside the caller's transaction.
        
        Returns:
            Number of records written
        """
        if not self._buffer:
            return 0
        
        rows: List[dict] = list(self._buffer.values())
        table = self.model.__table__
        
        try:
            stmt = self._insert()(table).values(rows)
            update_columns = {
                column.name: stmt.excluded[column.name]
                for column in table.columns
                if column.name not in self.key_columns
            }
            stmt = stmt.on_conflict_do_update(
                index_elements=list(self.key_columns),
                set_=update_columns
            )
            await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise SinkWriteError(
                "Bulk upsert failed",
                context={
                    "table_name": table.name,
                    "batch_size": len(rows),
                    "first_key": rows[0].get(self.key_columns[0])
                },
                original_exception=e
            )
        
        self._buffer.clear()
        logger.debug(f"{self.name}: upserted {len(rows)} rows into {table.name}")
        return len(rows)
    
    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise SinkWriteError(
                "No upsert statement for this database dialect",
                context={"dialect": dialect, "table_name": self.model.__tablename__}
            )


def target_writer(db_session: AsyncSession) -> UpsertSink:
    return UpsertSink(db_session, TargetTable, name="target_table_writer")


def staging_a_writer(db_session: AsyncSession) -> UpsertSink:
    return UpsertSink(db_session, StagingTableA, name="staging_table_a_writer")


def staging_b_writer(db_session: AsyncSession) -> UpsertSink:
    return UpsertSink(db_session, StagingTableB, name="staging_table_b_writer")
