"""
Stage movement validator.

A PipelineEntry's current stage is the only state variable; moves are
requested (advance, regress, jump) and every request is validated here before
the caller mutates anything. Rules run in order and accumulate hard blockers
and soft warnings:

  1. no-op          same stage → cancelled, not blocked
  2. checklist      required items of the source stage gate forward moves
  3. WIP limit      destination occupancy must stay below its wip_limit
  4. regression     lower destination order → warning
  5. final stage    leaving a final stage → warning

Two structural guards sit in front of the checklist gate: the entry must be
Active and the destination must belong to the entry's pipeline.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger('lifecycle.movement')

ALREADY_IN_STAGE = 'Lead already in this stage'


@dataclass
class ChecklistStatus:
    """One checklist item of the source stage with its completion flag."""
    id: str
    title: str
    required: bool
    completed: bool


@dataclass
class MovementValidation:
    can_move: bool
    blockers: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    message: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_checklist(items: Iterable, completion: Mapping[str, bool]) -> List[ChecklistStatus]:
    """Join ChecklistItem rows with a {item_id: completed} map."""
    return [
        ChecklistStatus(
            id=item.id,
            title=item.title,
            required=bool(item.required),
            completed=bool(completion.get(item.id, False)),
        )
        for item in items
    ]


def check_required_items(checklist: Iterable[ChecklistStatus]) -> List[str]:
    """Titles of required items that are not completed."""
    return [item.title for item in checklist if item.required and not item.completed]


def check_wip_limit(to_stage, current_entries_in_target_stage: int):
    """Return a blocker message when the destination is full, else None."""
    limit = getattr(to_stage, 'wip_limit', None)
    if not limit:
        return None
    if current_entries_in_target_stage >= limit:
        return (
            f'Stage "{to_stage.name}" reached its limit of {limit} leads '
            f'(currently {current_entries_in_target_stage})'
        )
    return None


def validate_movement(
    entry,
    from_stage,
    to_stage,
    checklist: Iterable[ChecklistStatus],
    current_entries_in_target_stage: int,
) -> MovementValidation:
    """Decide whether entry may move from from_stage to to_stage. No side effects."""
    if from_stage.id == to_stage.id:
        return MovementValidation(can_move=False, cancelled=True, message=ALREADY_IN_STAGE)

    blockers: List[str] = []
    warnings: List[str] = []

    status = getattr(entry, 'status', 'Active')
    if status != 'Active':
        blockers.append(f'Subscription is {status}; only Active entries can move')

    entry_pipeline = getattr(entry, 'pipeline_id', None)
    if entry_pipeline and getattr(to_stage, 'pipeline_id', entry_pipeline) != entry_pipeline:
        blockers.append(f'Stage "{to_stage.name}" belongs to a different pipeline')

    moving_forward = to_stage.order > from_stage.order
    checklist = list(checklist)
    if moving_forward:
        missing = check_required_items(checklist)
        if missing:
            blockers.append(f'Complete the required items: {", ".join(missing)}')
        optional_open = [i.title for i in checklist if not i.required and not i.completed]
        if optional_open:
            warnings.append(f'Optional checklist items not completed: {", ".join(optional_open)}')

    wip_blocker = check_wip_limit(to_stage, current_entries_in_target_stage)
    if wip_blocker:
        blockers.append(wip_blocker)

    if to_stage.order < from_stage.order:
        warnings.append('This move sends the lead back in the pipeline')

    if getattr(from_stage, 'is_final', False):
        warnings.append(f'Moving out of final stage "{from_stage.name}"')

    result = MovementValidation(
        can_move=not blockers,
        blockers=blockers,
        warnings=warnings,
        message='\n'.join(blockers),
    )
    if warnings:
        logger.info("Move %s → %s warnings: %s", from_stage.name, to_stage.name, warnings)
    return result
