"""
Appointment model — scheduled sessions with a lead; source of reminder scans.
"""
import uuid

from sqlalchemy import Column, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from leadflow.database import Base


class Appointment(Base):
    __tablename__ = 'appointments'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    title = Column(Text, nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(Text, nullable=False, default='scheduled')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
