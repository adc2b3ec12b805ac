"""
Notification model — one row per notification event the engine decided to fire.
"""
from sqlalchemy import Column, Integer, Boolean, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_id = Column(Text, nullable=False, index=True)   # lead id
    kind = Column(Text, nullable=False)                     # sla_breach / stage_timeout / appointment
    priority = Column(Text, default='medium')
    title = Column(Text, default='')
    message = Column(Text, default='')
    payload = Column(JSON, default=dict)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
