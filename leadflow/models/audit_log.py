"""
AuditLog model — append-only change log (stage transitions, merges).
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False, index=True)
    change_set = Column(JSON, default=list)    # [{field, from, to}, ...]
    actor = Column(Text, default='system')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
