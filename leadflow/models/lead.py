"""
Lead model — identity + qualification attributes.

Phone (whatsapp) and email are soft identity keys used for deduplication;
they are indexed but deliberately not unique.
"""
import uuid

from sqlalchemy import Column, Integer, Float, Boolean, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from leadflow.database import Base


def _uuid():
    return str(uuid.uuid4())


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    whatsapp = Column(Text, default='', index=True)   # normalized +<digits>
    email = Column(Text, default='', index=True)
    origin = Column(Text, default='Other')
    segment = Column(Text, default='')
    status = Column(Text, default='Active')
    closer = Column(Text, default='')
    session_goal = Column(Text, default='')
    main_objection = Column(Text, nullable=True)
    objection_notes = Column(Text, default='')
    notes = Column(Text, default='')
    last_session_result = Column(Text, default='')
    last_session_result_notes = Column(Text, default='')

    # Profile / scoring
    has_sold_online = Column(Boolean, default=False)
    followers = Column(Integer, default=0)
    avg_revenue = Column(Float, default=0.0)
    revenue_goal = Column(Float, default=0.0)
    lead_score = Column(Integer, default=0)          # 0-110
    lead_value = Column(Integer, default=0)          # 0-110
    score_classification = Column(Text, default='Low')

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Columns the merge/import path is allowed to write.
LEAD_FIELDS = [
    c.name for c in Lead.__table__.columns
    if c.name not in ('id', 'created_at', 'updated_at')
]


class Tag(Base):
    __tablename__ = 'tags'

    id = Column(Text, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False, unique=True)
    color = Column(Text, default='#64748b')


class LeadTag(Base):
    __tablename__ = 'lead_tags'
    __table_args__ = (
        UniqueConstraint('lead_id', 'tag_id', name='uq_lead_tag'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    tag_id = Column(Text, ForeignKey('tags.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
