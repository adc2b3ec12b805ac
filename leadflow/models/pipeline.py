"""
Pipeline, Stage and ChecklistItem models.

A Pipeline is an ordered container of stages. Stage.order defines the
sequence; sla_days = None means the stage has no deadline (terminal stages).
"""
import uuid

from sqlalchemy import Column, Integer, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from leadflow.database import Base


def _uuid():
    return str(uuid.uuid4())


class Pipeline(Base):
    __tablename__ = 'pipelines'

    id = Column(Text, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    description = Column(Text, default='')
    active = Column(Boolean, default=True)
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    stages = relationship('Stage', back_populates='pipeline', order_by='Stage.order')


class Stage(Base):
    __tablename__ = 'pipeline_stages'

    id = Column(Text, primary_key=True, default=_uuid)
    pipeline_id = Column(Text, ForeignKey('pipelines.id'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    sla_days = Column(Integer, nullable=True)
    wip_limit = Column(Integer, nullable=True)
    is_final = Column(Boolean, default=False)

    pipeline = relationship('Pipeline', back_populates='stages')
    checklist_items = relationship('ChecklistItem', back_populates='stage', order_by='ChecklistItem.order')


class ChecklistItem(Base):
    __tablename__ = 'stage_checklist_items'

    id = Column(Text, primary_key=True, default=_uuid)
    stage_id = Column(Text, ForeignKey('pipeline_stages.id'), nullable=False, index=True)
    title = Column(Text, nullable=False)
    required = Column(Boolean, default=False)
    order = Column(Integer, default=0)

    stage = relationship('Stage', back_populates='checklist_items')
