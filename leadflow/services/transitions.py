"""
Stage transition executor + pipeline inscription.

move_lead() is the only path that changes an entry's current stage:
load context → validate_movement() → update entry, audit row, PipelineEvent,
all in one transaction. A rejected move touches nothing.
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select

from leadflow.database import get_session
from leadflow.lifecycle.movement import (
    ALREADY_IN_STAGE, MovementValidation, build_checklist, validate_movement,
)
from leadflow.lifecycle.sla import compute_stage_timing, utcnow
from leadflow.models.lead import Lead
from leadflow.models.pipeline import Pipeline, Stage
from leadflow.models.pipeline_entry import PipelineEvent
from leadflow.services import audit
from leadflow.services.store import ChecklistStore, EntryStore, entry_to_dict

logger = logging.getLogger('services.transitions')


class TransitionError(ValueError):
    """Unknown entry, stage, lead or pipeline."""


@dataclass
class MoveResult:
    success: bool
    message: str
    blockers: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    entry_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def _load_context(session, entry_id: str, to_stage_id: str):
    entries = EntryStore(session)
    entry = entries.get(entry_id)
    if entry is None:
        raise TransitionError(f'Pipeline entry {entry_id} not found')

    from_stage = session.get(Stage, entry.current_stage_id)
    to_stage = session.get(Stage, to_stage_id)
    if from_stage is None:
        raise TransitionError(f'Stage {entry.current_stage_id} not found')
    if to_stage is None:
        raise TransitionError(f'Stage {to_stage_id} not found')

    checklist_store = ChecklistStore(session)
    checklist = build_checklist(
        checklist_store.list_items(from_stage.id),
        checklist_store.get_completion_state(entry.lead_id, from_stage.id),
    )
    occupancy = entries.count_active_in_stage(to_stage.id)
    return entry, from_stage, to_stage, checklist, occupancy


def validate_move(entry_id: str, to_stage_id: str) -> MovementValidation:
    """Dry run of move_lead(): the validation only, no mutation."""
    session = get_session()
    try:
        entry, from_stage, to_stage, checklist, occupancy = _load_context(session, entry_id, to_stage_id)
        return validate_movement(entry, from_stage, to_stage, checklist, occupancy)
    finally:
        session.close()


def move_lead(entry_id: str, to_stage_id: str, actor: str = 'system',
              now: Optional[datetime] = None) -> MoveResult:
    """
    Validate and apply one stage transition.

    Blockers and the no-op come back as an unsuccessful MoveResult; unknown
    ids raise TransitionError; storage failures propagate after rollback.
    """
    now = now or utcnow()
    session = get_session()
    try:
        entry, from_stage, to_stage, checklist, occupancy = _load_context(session, entry_id, to_stage_id)
        validation = validate_movement(entry, from_stage, to_stage, checklist, occupancy)

        if validation.cancelled:
            return MoveResult(success=False, message=ALREADY_IN_STAGE, cancelled=True, entry_id=entry.id)

        if not validation.can_move:
            logger.info("Move of entry %s to '%s' blocked: %s", entry.id, to_stage.name, validation.blockers,
                        extra={'entry_id': entry.id, 'stage_id': to_stage.id})
            return MoveResult(
                success=False,
                message=validation.message,
                blockers=validation.blockers,
                warnings=validation.warnings,
                entry_id=entry.id,
            )

        previous_entered_at = entry.stage_entered_at
        health = compute_stage_timing(now, now, to_stage).tier
        EntryStore(session).update(
            entry.id,
            current_stage_id=to_stage.id,
            stage_entered_at=now,
            health=health,
        )

        audit.append(
            'LeadPipelineEntry',
            entry.id,
            [
                {'field': 'stage', 'from': from_stage.name, 'to': to_stage.name},
                {
                    'field': 'stage_entered_at',
                    'from': previous_entered_at.isoformat() if previous_entered_at else None,
                    'to': now.isoformat(),
                },
            ],
            actor,
            session=session,
        )
        session.add(PipelineEvent(
            entry_id=entry.id,
            event_type='regressed' if to_stage.order < from_stage.order else 'advanced',
            from_stage_id=from_stage.id,
            to_stage_id=to_stage.id,
            actor=actor,
            details={'warnings': validation.warnings} if validation.warnings else None,
        ))
        session.commit()

        logger.info("Entry %s moved '%s' → '%s' by %s", entry.id, from_stage.name, to_stage.name, actor,
                    extra={'entry_id': entry.id, 'lead_id': entry.lead_id, 'stage_id': to_stage.id})
        return MoveResult(
            success=True,
            message=f'Lead moved to "{to_stage.name}"',
            warnings=validation.warnings,
            entry_id=entry.id,
        )
    except TransitionError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("Failed to move entry %s to stage %s", entry_id, to_stage_id, exc_info=True)
        raise
    finally:
        session.close()


def inscribe_lead(lead_id: str, pipeline_id: str, actor: str = 'system',
                  now: Optional[datetime] = None) -> Dict:
    """
    Subscribe a lead to a pipeline at its first stage.

    An existing Active entry for (lead, pipeline) is returned unchanged.
    The result carries 'created' to tell the two cases apart.
    """
    now = now or utcnow()
    session = get_session()
    try:
        if session.get(Lead, lead_id) is None:
            raise TransitionError(f'Lead {lead_id} not found')
        pipeline = session.get(Pipeline, pipeline_id)
        if pipeline is None:
            raise TransitionError(f'Pipeline {pipeline_id} not found')

        entries = EntryStore(session)
        existing = entries.find_active(lead_id, pipeline_id)
        if existing is not None:
            return {**entry_to_dict(existing), 'created': False}

        first_stage = session.execute(
            select(Stage).where(Stage.pipeline_id == pipeline_id).order_by(Stage.order).limit(1)
        ).scalars().first()
        if first_stage is None:
            raise TransitionError(f'Pipeline "{pipeline.name}" has no stages')

        entry = entries.create(
            lead_id,
            pipeline_id,
            first_stage.id,
            entered_at=now,
            health=compute_stage_timing(now, now, first_stage).tier,
        )
        session.add(PipelineEvent(
            entry_id=entry.id,
            event_type='created',
            to_stage_id=first_stage.id,
            actor=actor,
        ))
        session.commit()
        logger.info("Lead %s inscribed in pipeline '%s' at '%s'", lead_id, pipeline.name, first_stage.name,
                    extra={'lead_id': lead_id, 'pipeline_id': pipeline_id, 'entry_id': entry.id})
        return {**entry_to_dict(entry), 'created': True}
    except TransitionError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("Failed to inscribe lead %s in pipeline %s", lead_id, pipeline_id, exc_info=True)
        raise
    finally:
        session.close()
