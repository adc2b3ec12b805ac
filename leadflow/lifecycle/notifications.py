"""
Notification trigger engine.

Periodically re-evaluates SLA and appointment conditions against the store and
fires at most one notification per (subject, condition, threshold) through an
injected delivery callable. Two scans run one after the other:

  SLA scan          sla_breach_{lead}_{stage}_{overdue_days}
                    stage_timeout_{lead}_{stage}_{days_remaining}   (0 or 1)
  appointment scan  appointment_{id}_{minutes}                      (1440/120/30)

Dedup keys and the running flag live in a NotificationState owned by the
application (app.extensions), so a restart clears them. Inside quiet hours the
scans still run and keys are still recorded, but nothing is delivered.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Callable, Dict, Optional, Set
from zoneinfo import ZoneInfo

from sqlalchemy import select

from leadflow import config
from leadflow.lifecycle.sla import as_utc, compute_stage_timing, stage_sla_days, utcnow

logger = logging.getLogger('lifecycle.notifications')

SLA_BREACH = 'sla_breach'
STAGE_TIMEOUT = 'stage_timeout'
APPOINTMENT = 'appointment'


# ── Process-wide state ───────────────────────────────────────────────────────

@dataclass
class NotificationState:
    """Dedup ledger + singleton flag. One instance per process."""
    sent_keys: Set[str] = field(default_factory=set)
    running: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)

    def has(self, key: str) -> bool:
        return key in self.sent_keys

    def mark(self, key: str):
        self.sent_keys.add(key)

    def clear(self):
        self.sent_keys.clear()


@dataclass
class NotificationSettings:
    sla_breaches: bool = True
    stage_timeouts: bool = True
    appointment_reminders: bool = True
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = '22:00'
    quiet_hours_end: str = '08:00'
    quiet_hours_tz: str = 'UTC'

    @classmethod
    def from_config(cls) -> 'NotificationSettings':
        return cls(
            sla_breaches=config.NOTIFY_SLA_BREACHES,
            stage_timeouts=config.NOTIFY_STAGE_TIMEOUTS,
            appointment_reminders=config.NOTIFY_APPOINTMENT_REMINDERS,
            quiet_hours_enabled=config.QUIET_HOURS_ENABLED,
            quiet_hours_start=config.QUIET_HOURS_START,
            quiet_hours_end=config.QUIET_HOURS_END,
            quiet_hours_tz=config.QUIET_HOURS_TZ,
        )


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(':')
    return int(hours) * 60 + int(minutes)


def is_quiet_hours(settings: NotificationSettings, current: time) -> bool:
    """Inclusive window check; start > end means the window spans midnight."""
    if not settings.quiet_hours_enabled:
        return False
    now = current.hour * 60 + current.minute
    start = _minutes(settings.quiet_hours_start)
    end = _minutes(settings.quiet_hours_end)
    if start <= end:
        return start <= now <= end
    return now >= start or now <= end


# ── Notification content ─────────────────────────────────────────────────────

def sla_breach_payload(lead_id, lead_name, stage_name, days_overdue) -> Dict:
    return {
        'title': 'SLA breached',
        'message': f'Lead "{lead_name}" is {days_overdue} day(s) overdue in stage "{stage_name}".',
        'priority': 'critical' if days_overdue > 3 else 'high',
        'lead_name': lead_name,
        'action_url': f'/pipelines?lead={lead_id}',
    }


def stage_timeout_payload(lead_id, lead_name, stage_name, days_remaining) -> Dict:
    return {
        'title': 'Stage deadline approaching',
        'message': f'Lead "{lead_name}" has {days_remaining} day(s) left in stage "{stage_name}".',
        'priority': 'high' if days_remaining <= 1 else 'medium',
        'lead_name': lead_name,
        'action_url': f'/pipelines?lead={lead_id}',
    }


def appointment_payload(lead_name, appointment_title, minutes_until) -> Dict:
    if minutes_until <= 30:
        priority = 'critical'
        when = f'{minutes_until} minutes'
    elif minutes_until <= 120:
        priority = 'high'
        when = f'{round(minutes_until / 60)} hour(s)'
    else:
        priority = 'medium'
        when = f'{round(minutes_until / 60)} hours'
    return {
        'title': 'Appointment reminder',
        'message': f'"{appointment_title}" with {lead_name} in {when}.',
        'priority': priority,
        'lead_name': lead_name,
        'action_url': '/agenda',
    }


# ── Engine ───────────────────────────────────────────────────────────────────

class NotificationEngine:
    """
    Scans the store and delivers deduplicated notifications.

    deliver(subject_id, kind, payload) is fire-and-forget; a raising delivery
    is logged and its key is still recorded.
    """

    def __init__(
        self,
        state: NotificationState,
        deliver: Callable[[str, str, Dict], object],
        settings: Optional[NotificationSettings] = None,
        session_factory: Optional[Callable] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.state = state
        self.deliver = deliver
        self.settings = settings or NotificationSettings.from_config()
        self._session_factory = session_factory
        self.clock = clock
        self._scheduler = None

    def _session(self):
        if self._session_factory is not None:
            return self._session_factory()
        from leadflow.database import get_session
        return get_session()

    def quiet(self, now: datetime) -> bool:
        local = as_utc(now).astimezone(ZoneInfo(self.settings.quiet_hours_tz))
        return is_quiet_hours(self.settings, local.time())

    def _fire(self, key: str, subject_id: str, kind: str, payload: Dict, suppressed: bool) -> bool:
        """Deliver once per key. Returns True when a delivery was attempted."""
        if self.state.has(key):
            return False
        attempted = False
        if suppressed:
            logger.debug("Quiet hours — suppressing %s", key)
        else:
            attempted = True
            try:
                self.deliver(subject_id, kind, payload)
            except Exception:
                logger.error("Delivery failed for %s", key, exc_info=True, extra={'notification_key': key})
        self.state.mark(key)
        return attempted

    # ── SLA scan ─────────────────────────────────────────────────────────

    def check_sla_breaches(self, now: Optional[datetime] = None) -> Dict[str, int]:
        from leadflow.models.lead import Lead
        from leadflow.models.pipeline import Stage
        from leadflow.models.pipeline_entry import PipelineEntry

        counts = {SLA_BREACH: 0, STAGE_TIMEOUT: 0}
        if not (self.settings.sla_breaches or self.settings.stage_timeouts):
            return counts

        now = now or self.clock()
        suppressed = self.quiet(now)

        session = self._session()
        try:
            rows = session.execute(
                select(PipelineEntry, Stage, Lead)
                .join(Stage, PipelineEntry.current_stage_id == Stage.id)
                .join(Lead, PipelineEntry.lead_id == Lead.id)
                .where(PipelineEntry.status == 'Active')
                .limit(config.SLA_SCAN_LIMIT)
            ).all()
        finally:
            session.close()

        for entry, stage, lead in rows:
            if not stage_sla_days(stage) or not entry.stage_entered_at or not lead.name:
                continue
            timing = compute_stage_timing(entry.stage_entered_at, now, stage)

            if self.settings.sla_breaches and timing.is_overdue:
                key = f'{SLA_BREACH}_{lead.id}_{stage.id}_{timing.overdue_days}'
                payload = sla_breach_payload(lead.id, lead.name, stage.name, timing.overdue_days)
                if self._fire(key, lead.id, SLA_BREACH, payload, suppressed):
                    counts[SLA_BREACH] += 1

            if self.settings.stage_timeouts and timing.days_remaining in config.STAGE_TIMEOUT_WARNING_DAYS:
                key = f'{STAGE_TIMEOUT}_{lead.id}_{stage.id}_{timing.days_remaining}'
                payload = stage_timeout_payload(lead.id, lead.name, stage.name, timing.days_remaining)
                if self._fire(key, lead.id, STAGE_TIMEOUT, payload, suppressed):
                    counts[STAGE_TIMEOUT] += 1

        return counts

    # ── Appointment scan ─────────────────────────────────────────────────

    def check_appointments(self, now: Optional[datetime] = None) -> int:
        from leadflow.models.appointment import Appointment
        from leadflow.models.lead import Lead

        if not self.settings.appointment_reminders:
            return 0

        now = as_utc(now or self.clock())
        horizon = now + timedelta(hours=config.APPOINTMENT_LOOKAHEAD_HOURS)
        suppressed = self.quiet(now)

        session = self._session()
        try:
            rows = session.execute(
                select(Appointment, Lead)
                .join(Lead, Appointment.lead_id == Lead.id)
                .where(Appointment.status == 'scheduled')
                .where(Appointment.start_at >= now)
                .where(Appointment.start_at <= horizon)
                .order_by(Appointment.start_at)
                .limit(config.APPOINTMENT_SCAN_LIMIT)
            ).all()
        finally:
            session.close()

        fired = 0
        window = config.APPOINTMENT_REMINDER_WINDOW_MINUTES
        for appointment, lead in rows:
            if not appointment.start_at or not lead.name:
                continue
            minutes_until = int((as_utc(appointment.start_at) - now).total_seconds() // 60)
            for point in config.APPOINTMENT_REMINDER_MINUTES:
                if point - window < minutes_until <= point:
                    key = f'{APPOINTMENT}_{appointment.id}_{point}'
                    payload = appointment_payload(lead.name, appointment.title, minutes_until)
                    if self._fire(key, lead.id, APPOINTMENT, payload, suppressed):
                        fired += 1
        return fired

    # ── Combined run ─────────────────────────────────────────────────────

    def run_all_checks(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run both scans; a failing scan is logged and counted as zero."""
        now = now or self.clock()
        summary = {SLA_BREACH: 0, STAGE_TIMEOUT: 0, APPOINTMENT: 0}

        # Serializes manual and scheduled runs so a key cannot fire twice.
        with self.state.lock:
            try:
                summary.update(self.check_sla_breaches(now))
            except Exception:
                logger.error("SLA scan failed", exc_info=True)
            try:
                summary[APPOINTMENT] = self.check_appointments(now)
            except Exception:
                logger.error("Appointment scan failed", exc_info=True)

        if any(summary.values()):
            logger.info("Notification scan: %s", summary)
        return summary

    # ── Scheduling ───────────────────────────────────────────────────────

    def start(self) -> bool:
        """Start the periodic scan. Only one scheduler per state; returns False if already running."""
        if self.state.running:
            logger.debug("Notification engine already running")
            return False

        from apscheduler.schedulers.background import BackgroundScheduler

        scheduler = BackgroundScheduler(timezone='UTC')
        scheduler.add_job(
            self.run_all_checks,
            'interval',
            seconds=config.NOTIFICATION_INTERVAL_SECONDS,
            id='notification_scan',
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self.run_all_checks,
            'date',
            run_date=utcnow() + timedelta(seconds=config.NOTIFICATION_INITIAL_DELAY_SECONDS),
            id='notification_initial_scan',
        )
        scheduler.start()
        self._scheduler = scheduler
        self.state.running = True
        logger.info("Notification engine started (every %ds)", config.NOTIFICATION_INTERVAL_SECONDS)
        return True

    def stop(self):
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Notification engine stopped")
        self.state.running = False
