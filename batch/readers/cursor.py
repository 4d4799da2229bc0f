"""
Keyset-paginated cursor over an ordered SELECT.

The query is re-executed page by page as
    <statement> WHERE key > :last_key ORDER BY key LIMIT :fetch_size
so neither table is ever loaded whole, and resuming from a position is a
re-seek on the key rather than skipping rows already seen.
"""

from collections import deque
from typing import Any, Callable, Deque, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from batch.streams import END_OF_STREAM, START_POSITION, Item, ReadResult, RecordStream
from core.config import settings
from core.exceptions import ResumeTokenError, SourceReadError
from models.tables import SourceTableA, SourceTableB
from schemas.records import JoinedRecord, SourceRecord

logger = logging.getLogger(__name__)


def _parse_key(token: str) -> Optional[int]:
    if token == START_POSITION:
        return None
    try:
        return int(token)
    except (TypeError, ValueError) as e:
        raise ResumeTokenError(
            "Position token is not an integer key",
            context={"position": token},
            original_exception=e
        )


class KeysetCursorReader(RecordStream):
    """
    Record stream over one SELECT, ordered by an integer key column.
    
    The key column must be unique over the result set: the position
    token is the key of the last record handed out.
    """
    
    def __init__(
        self,
        session: AsyncSession,
        statement: Select,
        key_column,
        row_mapper: Callable[[Any], Any],
        name: str,
        fetch_size: Optional[int] = None
    ):
        self.session = session
        self.statement = statement
        self.key_column = key_column
        self.row_mapper = row_mapper
        self.name = name
        self.fetch_size = fetch_size or settings.BATCH_FETCH_SIZE
        
        self._buffer: Deque[Any] = deque()
        self._last_fetched_key: Optional[int] = None
        self._position = START_POSITION
        self._exhausted = False
        self._is_open = False
    
    async def open(self, resume_token: str = START_POSITION) -> None:
        self._last_fetched_key = _parse_key(resume_token)
        self._position = resume_token
        self._buffer.clear()
        self._exhausted = False
        self._is_open = True
        
        if resume_token:
            logger.info(f"{self.name}: resuming after key {resume_token}")
    
    async def read(self) -> ReadResult:
        if not self._is_open:
            raise RuntimeError(f"{self.name} is not open")
        
        if not self._buffer and not self._exhausted:
            await self._fetch_page()
        
        if not self._buffer:
            return END_OF_STREAM
        
        key, record = self._buffer.popleft()
        self._position = str(key)
        return Item(record)
    
    def position(self) -> str:
        return self._position
    
    async def close(self) -> None:
        self._buffer.clear()
        self._is_open = False
    
    async def _fetch_page(self) -> None:
        stmt = self.statement
        if self._last_fetched_key is not None:
            stmt = stmt.where(self.key_column > self._last_fetched_key)
        stmt = stmt.order_by(self.key_column).limit(self.fetch_size)
        
        try:
            result = await self.session.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as e:
            raise SourceReadError(
                "Failed to fetch next page",
                context={
                    "source": self.name,
                    "position": self._position,
                    "fetch_size": self.fetch_size
                },
                original_exception=e
            )
        
        if len(rows) < self.fetch_size:
            self._exhausted = True
        
        for row in rows:
            record = self.row_mapper(row)
            self._buffer.append((record.id, record))
        
        if rows:
            self._last_fetched_key = self._buffer[-1][0]
        
        logger.debug(f"{self.name}: fetched {len(rows)} rows (last key {self._last_fetched_key})")


def map_source_row(row) -> SourceRecord:
    return SourceRecord(id=row.id, name=row.name, value=row.value)


def map_joined_row(row) -> JoinedRecord:
    return JoinedRecord(id=row.id, name=row.name, value_a=row.value_a, value_b=row.value_b)


def table_cursor(
    session: AsyncSession,
    model,
    name: Optional[str] = None,
    fetch_size: Optional[int] = None
) -> KeysetCursorReader:
    """Cursor over an id/name/value table, ordered by id"""
    return KeysetCursorReader(
        session=session,
        statement=select(model.id, model.name, model.value),
        key_column=model.id,
        row_mapper=map_source_row,
        name=name or f"{model.__tablename__}_reader",
        fetch_size=fetch_size,
    )


def joined_cursor(
    session: AsyncSession,
    fetch_size: Optional[int] = None
) -> KeysetCursorReader:
    """
    Cursor over source_table_a LEFT OUTER JOIN source_table_b, ordered by a.id.
    
    Every side-A row is emitted; value_b is NULL where side B has no row.
    """
    a, b = SourceTableA, SourceTableB
    statement = (
        select(
            a.id.label("id"),
            a.name.label("name"),
            a.value.label("value_a"),
            b.value.label("value_b"),
        )
        .select_from(a)
        .outerjoin(b, b.id == a.id)
    )
    return KeysetCursorReader(
        session=session,
        statement=statement,
        key_column=a.id,
        row_mapper=map_joined_row,
        name="joined_reader",
        fetch_size=fetch_size,
    )
