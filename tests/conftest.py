"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import build_engine, build_session_factory
from batch.context import JobExecution, compute_job_key, normalize_parameters
from batch.repository import JobRepository
from models import Base, SourceTableA, SourceTableB, TargetTable
from typing import AsyncGenerator


def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'batch_test.db'}"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a throwaway SQLite database with every table"""
    engine = build_engine(sqlite_url(tmp_path))
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def seed_rows(session_factory):
    """Insert (id, name, value) tuples into a table"""
    async def _seed(model, rows):
        async with session_factory() as session:
            session.add_all(
                model(id=row_id, name=name, value=Decimal(value) if value is not None else None)
                for row_id, name, value in rows
            )
            await session.commit()
    return _seed


@pytest.fixture
def seed_demo(seed_rows):
    """Side A has ids 1 and 2, side B only id 1"""
    async def _seed():
        await seed_rows(SourceTableA, [(1, "A1", "100.50"), (2, "A2", "250.75")])
        await seed_rows(SourceTableB, [(1, "B1", "300.00")])
    return _seed


@pytest.fixture
def fetch_rows(session_factory):
    """Read a table back as {id: row}"""
    async def _fetch(model=TargetTable):
        async with session_factory() as session:
            result = await session.execute(select(model).order_by(model.id))
            return {row.id: row for row in result.scalars().all()}
    return _fetch


@pytest.fixture
def job_execution(session_factory):
    """Persist a RUNNING job run and return its execution handle"""
    async def _create(job_name="testJob", parameters=None, attempt=1):
        params = normalize_parameters(parameters or {"run_token": 1})
        job_key = compute_job_key(job_name, params)
        async with session_factory() as session:
            repo = JobRepository(session)
            job_run = await repo.create_job_run(job_name, job_key, params, attempt=attempt)
            await repo.mark_running(job_run)
        return JobExecution(
            job_name=job_name,
            job_run_id=job_run.id,
            run_id=job_run.run_id,
            job_key=job_key,
            attempt=attempt,
            parameters=params,
        )
    return _create
