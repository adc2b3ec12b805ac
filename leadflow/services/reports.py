"""
Read-only reports over the store: pipeline/stage health, entry timing, duplicates.

Every report recomputes from timestamps at call time; nothing here writes.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select

from leadflow.database import get_session
from leadflow.lifecycle.health import compute_pipeline_health, compute_stages_health
from leadflow.lifecycle.matching import find_duplicate_pairs
from leadflow.lifecycle.sla import entry_timing, utcnow
from leadflow.models.pipeline import Pipeline, Stage
from leadflow.services.store import EntryStore, LeadStore, stage_map

logger = logging.getLogger('services.reports')


def pipeline_health_report(now: Optional[datetime] = None) -> List[Dict]:
    """PipelineHealth for every active pipeline."""
    now = now or utcnow()
    session = get_session()
    try:
        pipelines = session.execute(
            select(Pipeline).where(Pipeline.active.is_(True)).order_by(Pipeline.name)
        ).scalars().all()
        stages = stage_map(session)
        entries = EntryStore(session)

        report = []
        for pipeline in pipelines:
            health = compute_pipeline_health(pipeline, entries.list_for_pipeline(pipeline.id), stages, now)
            report.append(health.to_dict())
        return report
    finally:
        session.close()


def stage_health_report(pipeline_id: str, now: Optional[datetime] = None) -> Optional[List[Dict]]:
    """StageHealth for each stage of one pipeline, in stage order. None if the pipeline is unknown."""
    now = now or utcnow()
    session = get_session()
    try:
        if session.get(Pipeline, pipeline_id) is None:
            return None
        stages = session.execute(
            select(Stage).where(Stage.pipeline_id == pipeline_id).order_by(Stage.order)
        ).scalars().all()
        entries = EntryStore(session).list_active(pipeline_id)
        return [h.to_dict() for h in compute_stages_health(stages, entries, now)]
    finally:
        session.close()


def entry_timing_report(entry_id: str, now: Optional[datetime] = None) -> Optional[Dict]:
    now = now or utcnow()
    session = get_session()
    try:
        entry = EntryStore(session).get(entry_id)
        if entry is None:
            return None
        stage = session.get(Stage, entry.current_stage_id)
        timing = entry_timing(entry, stage, now)
        return {
            'entry_id': entry.id,
            'stage_id': entry.current_stage_id,
            'stage_name': stage.name if stage else None,
            'sla_days': stage.sla_days if stage else None,
            **timing.to_dict(),
        }
    finally:
        session.close()


def duplicate_report() -> List[Dict]:
    session = get_session()
    try:
        leads = LeadStore(session).list_oldest_first()
        return [pair.to_dict() for pair in find_duplicate_pairs(leads)]
    finally:
        session.close()
