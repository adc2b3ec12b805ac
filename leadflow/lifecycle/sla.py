"""
SLA calculator — time in stage, remaining/overdue days and the health tier.

Pure functions only: the same (entered_at, now, stage) always produces the
same StageTiming, whatever the wall-clock time of the call.

Tier rules:
  no SLA on the stage           → Green
  remaining < 0                 → Red    (overdue_days = -remaining)
  remaining <= warning threshold → Yellow (includes remaining == 0)
  otherwise                     → Green
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from leadflow.config import SLA_WARNING_THRESHOLD_DAYS

GREEN = 'Green'
YELLOW = 'Yellow'
RED = 'Red'

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class StageTiming:
    days_in_stage: int
    tier: str
    days_remaining: Optional[int] = None   # None when the stage has no SLA
    overdue_days: Optional[int] = None     # None when the stage has no SLA

    @property
    def is_overdue(self) -> bool:
        return bool(self.overdue_days and self.overdue_days > 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Floor of the day difference; timestamps in the future count as 0."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, int(seconds // SECONDS_PER_DAY))


def stage_sla_days(stage) -> Optional[int]:
    """SLA in days, or None when the stage has no deadline (0 counts as none)."""
    if stage is None:
        return None
    sla = stage.get('sla_days') if isinstance(stage, dict) else getattr(stage, 'sla_days', None)
    return sla or None


def compute_stage_timing(
    entered_at: datetime,
    now: datetime,
    stage,
    warning_threshold: int = SLA_WARNING_THRESHOLD_DAYS,
) -> StageTiming:
    """Compute days in stage, remaining/overdue days and the health tier."""
    days_in_stage = whole_days_between(entered_at, now)
    sla_days = stage_sla_days(stage)

    if sla_days is None:
        return StageTiming(days_in_stage=days_in_stage, tier=GREEN)

    remaining = sla_days - days_in_stage
    if remaining < 0:
        return StageTiming(
            days_in_stage=days_in_stage,
            tier=RED,
            days_remaining=remaining,
            overdue_days=-remaining,
        )

    tier = YELLOW if remaining == 0 or remaining <= warning_threshold else GREEN
    return StageTiming(
        days_in_stage=days_in_stage,
        tier=tier,
        days_remaining=remaining,
        overdue_days=0,
    )


def entry_timing(entry, stage, now: datetime, **kwargs) -> StageTiming:
    """compute_stage_timing() for a PipelineEntry-like object."""
    return compute_stage_timing(entry.stage_entered_at, now, stage, **kwargs)
