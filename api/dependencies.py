"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from batch.job import JobRegistry
from batch.jobs import default_registry
from core.database import async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a read-only session per request"""
    async with async_session_maker() as session:
        yield session


def get_registry() -> JobRegistry:
    return default_registry()
