from sqlalchemy import Column, BigInteger, String, Numeric, DateTime
from models.base import Base


class RecordColumns:
    """id / name / value shape shared by source and staging tables"""
    
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=True)
    value = Column(Numeric(18, 2), nullable=True)


class SourceTableA(RecordColumns, Base):
    """Origin rows, side A. Read-only for the engine."""
    __tablename__ = "source_table_a"


class SourceTableB(RecordColumns, Base):
    """Origin rows, side B. Read-only for the engine."""
    __tablename__ = "source_table_b"


class StagingTableA(RecordColumns, Base):
    """Pass-through copy of side A, filled by loadStagingAStep"""
    __tablename__ = "staging_table_a"


class StagingTableB(RecordColumns, Base):
    """Pass-through copy of side B, filled by loadStagingBStep"""
    __tablename__ = "staging_table_b"


class TargetTable(Base):
    """
    Final consolidated rows.
    
    Written only through upserts keyed on id: a re-run of the same
    chunk overwrites name, value and processed_at instead of adding rows.
    """
    __tablename__ = "target_table"
    
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=True)
    value = Column(Numeric(18, 2), nullable=True)
    processed_at = Column(DateTime, nullable=True)
