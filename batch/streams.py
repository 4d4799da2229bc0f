"""
Record stream contract shared by every reader a step can pull from.

A stream is opened at a position token, hands out records one at a time
and reports the position of the last record handed out. Reading returns
a tagged result, so a record whose optional fields are all None is never
confused with the end of the stream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")

# Position of a stream that has not handed out anything yet
START_POSITION = ""


@dataclass(frozen=True)
class Item(Generic[T]):
    """A record read from a stream"""
    record: T


class EndOfStream:
    """The stream has no more records"""
    
    _instance = None
    
    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance
    
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = EndOfStream()

ReadResult = Union[Item[T], EndOfStream]


class RecordStream(ABC, Generic[T]):
    """
    Forward-only, resumable cursor.
    
    Contract:
    - open(token) positions the stream just after the record the token
      was taken from; START_POSITION starts from the beginning
    - read() returns Item(record) or END_OF_STREAM; I/O failures raise
      a retryable read error
    - position() is the token of the last record handed out, valid as
      a resume point even if the underlying query is recomputed
    - close() releases what open() acquired; it is safe to call twice
    """
    
    name: str = "stream"
    
    @abstractmethod
    async def open(self, resume_token: str = START_POSITION) -> None:
        pass
    
    @abstractmethod
    async def read(self) -> ReadResult:
        pass
    
    @abstractmethod
    def position(self) -> str:
        pass
    
    @abstractmethod
    async def close(self) -> None:
        pass


class LookupAccessor(ABC, Generic[T]):
    """
    Point lookup by key against a secondary source.
    
    Stateless between calls. A missing key is returned as None, never
    raised; only I/O failures raise.
    """
    
    name: str = "lookup"
    
    @abstractmethod
    async def lookup(self, key: Any) -> Optional[T]:
        pass
    
    async def close(self) -> None:
        """Release resources owned by the accessor (none by default)"""
        return None
