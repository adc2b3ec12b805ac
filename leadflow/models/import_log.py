"""
Postgres-backed import record — mirrors the Redis ImportJob for persistent storage.
"""
from sqlalchemy import Column, Text, Integer, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class ImportLog(Base):
    __tablename__ = 'import_logs'

    id = Column(Text, primary_key=True)
    status = Column(Text, nullable=False, default='queued')
    actor = Column(Text, default='import')
    total_records = Column(Integer, default=0)
    success_count = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    created_count = Column(Integer, default=0)
    updated_count = Column(Integer, default=0)
    errors = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)
