"""
Pipeline health aggregator.

Folds per-entry SLA timing across a pipeline into pipeline-level and
stage-level metrics. Overdue state and time-in-stage are always recomputed
from stage_entered_at through the SLA calculator, never read from the cached
health tag on the entry.
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Iterable, List, Mapping

from leadflow.config import (
    HEALTH_OVERDUE_PENALTY,
    HEALTH_STAGE_TIME_GRACE_DAYS,
    HEALTH_STAGE_TIME_PENALTY,
    HEALTH_CONVERSION_BONUS_CAP,
    HEALTH_CONVERSION_BONUS_FACTOR,
    BOTTLENECK_MIN_LEADS,
    BOTTLENECK_SLA_RATIO,
)
from leadflow.lifecycle.sla import entry_timing, stage_sla_days

logger = logging.getLogger('lifecycle.health')

HEALTH_TIERS = [
    (85, 'Excellent'),
    (70, 'Good'),
    (50, 'Warning'),
    (0, 'Critical'),
]


@dataclass
class PipelineHealth:
    pipeline_id: str
    pipeline_name: str
    health_score: int
    tier: str
    total_leads: int
    active_leads: int
    overdue_leads: int
    avg_stage_time: int
    conversion_rate: int
    sla_compliance: int
    critical_issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass
class StageHealth:
    stage_id: str
    stage_name: str
    leads_count: int
    avg_time: int
    sla_compliance: int
    bottleneck: bool
    health_color: str   # success / warning / destructive

    def to_dict(self):
        return asdict(self)


def health_tier(score: float) -> str:
    for floor, label in HEALTH_TIERS:
        if score >= floor:
            return label
    return HEALTH_TIERS[-1][1]


def score_pipeline(active: int, overdue: int, avg_stage_time: float, conversion_rate: float) -> float:
    """Health score in [0, 100]."""
    score = 100.0
    score -= (overdue / max(active, 1)) * HEALTH_OVERDUE_PENALTY
    score -= max(0.0, (avg_stage_time - HEALTH_STAGE_TIME_GRACE_DAYS) * HEALTH_STAGE_TIME_PENALTY)
    score += min(HEALTH_CONVERSION_BONUS_CAP, conversion_rate * HEALTH_CONVERSION_BONUS_FACTOR)
    return max(0.0, min(100.0, score))


def _timings(entries: Iterable, stages_by_id: Mapping[str, object], now: datetime):
    """(entry, StageTiming) for every entry whose current stage is known."""
    for entry in entries:
        stage = stages_by_id.get(entry.current_stage_id)
        yield entry, entry_timing(entry, stage, now)


def compute_pipeline_health(
    pipeline,
    entries: Iterable,
    stages_by_id: Mapping[str, object],
    now: datetime,
) -> PipelineHealth:
    """Aggregate every entry of one pipeline (any status) into a PipelineHealth."""
    entries = [e for e in entries if e.pipeline_id == pipeline.id]
    active = [e for e in entries if e.status == 'Active']
    completed = [e for e in entries if e.status == 'Completed']

    active_timings = [t for _, t in _timings(active, stages_by_id, now)]
    overdue = sum(1 for t in active_timings if t.is_overdue)

    total_leads = len(entries)
    active_leads = len(active)
    avg_stage_time = (
        sum(t.days_in_stage for t in active_timings) / active_leads if active_leads else 0.0
    )
    conversion_rate = len(completed) / total_leads * 100 if total_leads else 0.0
    sla_compliance = (active_leads - overdue) / active_leads * 100 if active_leads else 100.0

    score = score_pipeline(active_leads, overdue, avg_stage_time, conversion_rate)

    issues = []
    if overdue > active_leads * 0.2:
        issues.append(f'{overdue} overdue leads ({round(overdue / active_leads * 100)}%)')
    if avg_stage_time > 10:
        issues.append(f'Average time in stage is too high: {round(avg_stage_time)} days')
    if conversion_rate < 20:
        issues.append(f'Low conversion rate: {round(conversion_rate)}%')

    recommendations = []
    if overdue > 0:
        recommendations.append('Review overdue leads and speed up their handling')
    if avg_stage_time > 7:
        recommendations.append('Streamline stage work to reduce time in stage')
    if conversion_rate < 30:
        recommendations.append('Look for friction points in the conversion funnel')

    return PipelineHealth(
        pipeline_id=pipeline.id,
        pipeline_name=pipeline.name,
        health_score=round(score),
        tier=health_tier(score),
        total_leads=total_leads,
        active_leads=active_leads,
        overdue_leads=overdue,
        avg_stage_time=round(avg_stage_time),
        conversion_rate=round(conversion_rate),
        sla_compliance=round(sla_compliance),
        critical_issues=issues,
        recommendations=recommendations,
    )


def is_bottleneck(stage, leads_count: int, avg_time: float) -> bool:
    """High occupancy and an average dwell above 80% of the stage SLA."""
    sla = stage_sla_days(stage)
    if sla is None:
        return False
    return leads_count > BOTTLENECK_MIN_LEADS and avg_time > sla * BOTTLENECK_SLA_RATIO


def stage_health_color(sla_compliance: float, bottleneck: bool) -> str:
    if sla_compliance >= 90 and not bottleneck:
        return 'success'
    if sla_compliance >= 70:
        return 'warning'
    return 'destructive'


def compute_stage_health(stage, entries: Iterable, now: datetime) -> StageHealth:
    """Health of one stage from the Active entries currently sitting in it."""
    in_stage = [e for e in entries if e.current_stage_id == stage.id and e.status == 'Active']
    timings = [entry_timing(e, stage, now) for e in in_stage]

    leads_count = len(in_stage)
    overdue = sum(1 for t in timings if t.is_overdue)
    avg_time = sum(t.days_in_stage for t in timings) / leads_count if leads_count else 0.0
    compliance = (leads_count - overdue) / leads_count * 100 if leads_count else 100.0
    bottleneck = is_bottleneck(stage, leads_count, avg_time)

    if bottleneck:
        logger.info("Stage '%s' is a bottleneck: %d leads, avg %.1f days", stage.name, leads_count, avg_time)

    return StageHealth(
        stage_id=stage.id,
        stage_name=stage.name,
        leads_count=leads_count,
        avg_time=round(avg_time),
        sla_compliance=round(compliance),
        bottleneck=bottleneck,
        health_color=stage_health_color(compliance, bottleneck),
    )


def compute_stages_health(stages: Iterable, entries: Iterable, now: datetime) -> List[StageHealth]:
    entries = list(entries)
    return [compute_stage_health(stage, entries, now) for stage in stages]

