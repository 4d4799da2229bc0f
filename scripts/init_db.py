import argparse
import asyncio
import logging
import sys
import os
from decimal import Decimal

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy import delete
from core.database import build_engine, build_session_factory
from core.logging import setup_logging
from models import Base, SourceTableA, SourceTableB

logger = logging.getLogger(__name__)

# Demo rows: id 1 exists on both sides, id 2 only in table A
SEED_A = [(1, "A1", Decimal("100.50")), (2, "A2", Decimal("250.75"))]
SEED_B = [(1, "B1", Decimal("300.00"))]


async def seed(session_factory):
    async with session_factory() as session:
        await session.execute(delete(SourceTableA))
        await session.execute(delete(SourceTableB))
        session.add_all(SourceTableA(id=i, name=n, value=v) for i, n, v in SEED_A)
        session.add_all(SourceTableB(id=i, name=n, value=v) for i, n, v in SEED_B)
        await session.commit()
    logger.info(f"Seeded {len(SEED_A)} rows into source_table_a and {len(SEED_B)} into source_table_b")


async def init_database(database_url: str = None, with_seed: bool = False):
    logger.info("Connecting to database...")
    engine = build_engine(database_url)
    
    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Tables created successfully.")
        
        if with_seed:
            await seed(build_session_factory(engine))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create batch tables")
    parser.add_argument("--seed", action="store_true", help="Load demo source rows")
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args()
    
    setup_logging()
    asyncio.run(init_database(args.database_url, args.seed))
