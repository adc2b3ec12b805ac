"""
PipelineEntry (subscription) — the mutable join of one Lead to one Pipeline.

current_stage_id and stage_entered_at change on every validated transition.
Entries are closed (status Completed/Archived), never deleted. The health tag
is a display cache; the SLA calculator is the source of truth.
"""
import uuid

from sqlalchemy import Column, Integer, Boolean, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from leadflow.database import Base


def _uuid():
    return str(uuid.uuid4())


class PipelineEntry(Base):
    __tablename__ = 'lead_pipeline_entries'

    id = Column(Text, primary_key=True, default=_uuid)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    pipeline_id = Column(Text, ForeignKey('pipelines.id'), nullable=False, index=True)
    current_stage_id = Column(Text, ForeignKey('pipeline_stages.id'), nullable=False, index=True)
    status = Column(Text, nullable=False, default='Active')   # Active/Completed/Archived
    stage_entered_at = Column(DateTime(timezone=True), nullable=False)
    health = Column(Text, default='Green')                    # Green/Yellow/Red
    stage_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    lead = relationship('Lead')
    stage = relationship('Stage')


class ChecklistState(Base):
    """Completion flag per (lead, checklist item)."""
    __tablename__ = 'checklist_states'
    __table_args__ = (
        UniqueConstraint('lead_id', 'item_id', name='uq_checklist_state_lead_item'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    item_id = Column(Text, ForeignKey('stage_checklist_items.id'), nullable=False)
    completed = Column(Boolean, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PipelineEvent(Base):
    """Movement history for one entry: created / advanced / regressed / archived."""
    __tablename__ = 'pipeline_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Text, ForeignKey('lead_pipeline_entries.id'), nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    from_stage_id = Column(Text, nullable=True)
    to_stage_id = Column(Text, nullable=True)
    actor = Column(Text, default='system')
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
