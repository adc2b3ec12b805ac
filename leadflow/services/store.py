"""
SQLAlchemy-backed stores — the narrow contracts the lifecycle engine talks to.

Each store wraps a caller-owned session; the caller commits or rolls back, so
one transition or one imported record is a single unit of work.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func

from leadflow.models.lead import Lead, LeadTag, LEAD_FIELDS
from leadflow.models.pipeline import ChecklistItem, Stage
from leadflow.models.pipeline_entry import ChecklistState, PipelineEntry

logger = logging.getLogger('services.store')


class LeadStore:
    def __init__(self, session):
        self.session = session

    def get(self, lead_id: str) -> Optional[Lead]:
        return self.session.get(Lead, lead_id)

    def find(self, **criteria) -> Optional[Lead]:
        """First lead (oldest) matching every criterion exactly."""
        if not criteria:
            return None
        stmt = select(Lead).filter_by(**criteria).order_by(Lead.created_at, Lead.id).limit(1)
        return self.session.execute(stmt).scalars().first()

    def upsert(self, data: Dict, lead: Optional[Lead] = None) -> Lead:
        """
        Write data onto lead (or the lead with data['id']), creating it if absent.

        None values are skipped on create so column defaults apply.
        """
        if lead is None and data.get('id'):
            lead = self.get(data['id'])

        if lead is None:
            values = {k: v for k, v in data.items() if k in LEAD_FIELDS and v is not None}
            if data.get('id'):
                values['id'] = data['id']
            lead = Lead(**values)
            self.session.add(lead)
        else:
            for key, value in data.items():
                if key in LEAD_FIELDS:
                    setattr(lead, key, value)
        self.session.flush()
        return lead

    @staticmethod
    def snapshot(lead: Lead) -> Dict:
        return {name: getattr(lead, name) for name in LEAD_FIELDS}

    def add_tags(self, lead_id: str, tag_ids: Iterable[str]) -> int:
        """Attach tags that are not attached yet. Never removes. Returns how many were added."""
        existing = set(self.session.execute(
            select(LeadTag.tag_id).where(LeadTag.lead_id == lead_id)
        ).scalars())
        added = 0
        for tag_id in tag_ids:
            if tag_id in existing:
                continue
            self.session.add(LeadTag(lead_id=lead_id, tag_id=tag_id))
            existing.add(tag_id)
            added += 1
        self.session.flush()
        return added

    def list_oldest_first(self) -> List[Lead]:
        return list(self.session.execute(
            select(Lead).order_by(Lead.created_at, Lead.id)
        ).scalars())


class EntryStore:
    def __init__(self, session):
        self.session = session

    def get(self, entry_id: str) -> Optional[PipelineEntry]:
        return self.session.get(PipelineEntry, entry_id)

    def update(self, entry_id: str, **changes) -> PipelineEntry:
        """Apply current_stage_id / stage_entered_at / health (or any column) to one entry."""
        entry = self.get(entry_id)
        if entry is None:
            raise LookupError(f'Pipeline entry {entry_id} not found')
        for key, value in changes.items():
            setattr(entry, key, value)
        self.session.flush()
        return entry

    def list_active(self, pipeline_id: str) -> List[PipelineEntry]:
        return list(self.session.execute(
            select(PipelineEntry)
            .where(PipelineEntry.pipeline_id == pipeline_id, PipelineEntry.status == 'Active')
            .order_by(PipelineEntry.created_at, PipelineEntry.id)
        ).scalars())

    def list_for_pipeline(self, pipeline_id: str) -> List[PipelineEntry]:
        return list(self.session.execute(
            select(PipelineEntry).where(PipelineEntry.pipeline_id == pipeline_id)
        ).scalars())

    def find_active(self, lead_id: str, pipeline_id: str) -> Optional[PipelineEntry]:
        return self.session.execute(
            select(PipelineEntry).where(
                PipelineEntry.lead_id == lead_id,
                PipelineEntry.pipeline_id == pipeline_id,
                PipelineEntry.status == 'Active',
            ).limit(1)
        ).scalars().first()

    def count_active_in_stage(self, stage_id: str) -> int:
        return self.session.execute(
            select(func.count(PipelineEntry.id)).where(
                PipelineEntry.current_stage_id == stage_id,
                PipelineEntry.status == 'Active',
            )
        ).scalar_one()

    def create(self, lead_id: str, pipeline_id: str, stage_id: str, entered_at: datetime,
               health: str = 'Green') -> PipelineEntry:
        entry = PipelineEntry(
            lead_id=lead_id,
            pipeline_id=pipeline_id,
            current_stage_id=stage_id,
            status='Active',
            stage_entered_at=entered_at,
            health=health,
        )
        self.session.add(entry)
        self.session.flush()
        return entry


class ChecklistStore:
    def __init__(self, session):
        self.session = session

    def list_items(self, stage_id: str) -> List[ChecklistItem]:
        return list(self.session.execute(
            select(ChecklistItem)
            .where(ChecklistItem.stage_id == stage_id)
            .order_by(ChecklistItem.order)
        ).scalars())

    def get_completion_state(self, lead_id: str, stage_id: str) -> Dict[str, bool]:
        rows = self.session.execute(
            select(ChecklistState.item_id, ChecklistState.completed)
            .join(ChecklistItem, ChecklistItem.id == ChecklistState.item_id)
            .where(ChecklistState.lead_id == lead_id, ChecklistItem.stage_id == stage_id)
        ).all()
        return {item_id: bool(completed) for item_id, completed in rows}

    def set_completed(self, lead_id: str, item_id: str, completed: bool = True) -> ChecklistState:
        state = self.session.execute(
            select(ChecklistState).where(
                ChecklistState.lead_id == lead_id,
                ChecklistState.item_id == item_id,
            )
        ).scalars().first()
        if state is None:
            state = ChecklistState(lead_id=lead_id, item_id=item_id, completed=completed)
            self.session.add(state)
        else:
            state.completed = completed
        self.session.flush()
        return state


def stage_map(session, pipeline_id: Optional[str] = None) -> Dict[str, Stage]:
    stmt = select(Stage)
    if pipeline_id:
        stmt = stmt.where(Stage.pipeline_id == pipeline_id)
    return {stage.id: stage for stage in session.execute(stmt).scalars()}


def entry_to_dict(entry: PipelineEntry) -> Dict:
    return {
        'id': entry.id,
        'lead_id': entry.lead_id,
        'pipeline_id': entry.pipeline_id,
        'current_stage_id': entry.current_stage_id,
        'status': entry.status,
        'health': entry.health,
        'stage_entered_at': entry.stage_entered_at.isoformat() if entry.stage_entered_at else None,
    }
