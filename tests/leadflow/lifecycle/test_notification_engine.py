"""Tests for leadflow.lifecycle.notifications — scans, dedup ledger, quiet hours, scheduling."""
from datetime import time, timedelta

import pytest
from unittest.mock import MagicMock, patch

from leadflow.lifecycle.notifications import (
    NotificationEngine,
    NotificationSettings,
    NotificationState,
    appointment_payload,
    is_quiet_hours,
    sla_breach_payload,
    stage_timeout_payload,
)
from leadflow.models.appointment import Appointment


@pytest.fixture
def deliver():
    return MagicMock()


@pytest.fixture
def state():
    return NotificationState()


@pytest.fixture
def engine(state, deliver, db_session, now):
    return NotificationEngine(
        state=state,
        deliver=deliver,
        settings=NotificationSettings(),
        session_factory=lambda: db_session,
        clock=lambda: now,
    )


@pytest.fixture
def proposta(make_pipeline):
    """Pipeline with Contato (order 1) and Proposta (order 2, SLA 5 days)."""
    _, stages = make_pipeline(name='Vendas', stages=[
        {'id': 'Contato', 'name': 'Contato', 'sla_days': 3},
        {'id': 'Proposta', 'name': 'Proposta', 'sla_days': 5},
        {'id': 'Fechado', 'name': 'Fechado', 'sla_days': None, 'is_final': True},
    ])
    return stages


@pytest.fixture
def ana(make_lead):
    return make_lead(id='Ana', name='Ana', whatsapp='+5511987654321')


def _kinds(deliver):
    return [c.args[1] for c in deliver.call_args_list]


# ── Quiet hours ──────────────────────────────────────────────────────────────

class TestIsQuietHours:

    @pytest.fixture
    def overnight(self):
        return NotificationSettings(quiet_hours_enabled=True, quiet_hours_start='22:00', quiet_hours_end='08:00')

    def test_disabled_is_never_quiet(self):
        assert is_quiet_hours(NotificationSettings(), time(23, 0)) is False

    @pytest.mark.parametrize('current, expected', [
        (time(23, 30), True),
        (time(22, 0), True),
        (time(3, 0), True),
        (time(8, 0), True),
        (time(8, 1), False),
        (time(12, 0), False),
        (time(21, 59), False),
    ])
    def test_window_spanning_midnight(self, overnight, current, expected):
        assert is_quiet_hours(overnight, current) is expected

    def test_same_day_window(self):
        settings = NotificationSettings(quiet_hours_enabled=True, quiet_hours_start='13:00', quiet_hours_end='14:00')
        assert is_quiet_hours(settings, time(13, 30)) is True
        assert is_quiet_hours(settings, time(14, 1)) is False


# ── Payloads ─────────────────────────────────────────────────────────────────

class TestPayloads:

    def test_sla_breach_priority(self):
        assert sla_breach_payload('l', 'Ana', 'Proposta', 3)['priority'] == 'high'
        assert sla_breach_payload('l', 'Ana', 'Proposta', 4)['priority'] == 'critical'

    def test_sla_breach_content(self):
        payload = sla_breach_payload('Ana', 'Ana', 'Proposta', 2)
        assert 'Proposta' in payload['message']
        assert payload['lead_name'] == 'Ana'
        assert payload['action_url'] == '/pipelines?lead=Ana'

    def test_stage_timeout_priority(self):
        assert stage_timeout_payload('l', 'Ana', 'S', 1)['priority'] == 'high'
        assert stage_timeout_payload('l', 'Ana', 'S', 2)['priority'] == 'medium'

    @pytest.mark.parametrize('minutes, priority', [(30, 'critical'), (118, 'high'), (1439, 'medium')])
    def test_appointment_priority(self, minutes, priority):
        assert appointment_payload('Ana', 'Demo', minutes)['priority'] == priority


# ── SLA scan ─────────────────────────────────────────────────────────────────

class TestSlaScan:

    def test_breach_fires_once_per_overdue_count(self, engine, deliver, state, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=7)

        first = engine.check_sla_breaches(now)
        second = engine.check_sla_breaches(now)

        assert first['sla_breach'] == 1
        assert second['sla_breach'] == 0
        assert deliver.call_count == 1
        assert 'sla_breach_Ana_Proposta_2' in state.sent_keys

    def test_new_overdue_count_fires_again(self, engine, deliver, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=7)
        engine.check_sla_breaches(now)
        engine.check_sla_breaches(now + timedelta(days=1))
        assert deliver.call_count == 2

    def test_stage_timeout_at_one_day_left(self, engine, deliver, state, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=4)
        counts = engine.check_sla_breaches(now)
        assert counts == {'sla_breach': 0, 'stage_timeout': 1}
        assert 'stage_timeout_Ana_Proposta_1' in state.sent_keys
        subject_id, kind, payload = deliver.call_args.args
        assert (subject_id, kind) == ('Ana', 'stage_timeout')
        assert payload['priority'] == 'high'

    def test_stage_timeout_on_last_day(self, engine, state, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=5)
        engine.check_sla_breaches(now)
        assert 'stage_timeout_Ana_Proposta_0' in state.sent_keys

    def test_on_track_entry_is_silent(self, engine, deliver, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=1)
        engine.check_sla_breaches(now)
        deliver.assert_not_called()

    def test_stage_without_sla_is_skipped(self, engine, deliver, proposta, ana, make_entry, now):
        make_entry(ana, proposta[2], days_ago=90)
        engine.check_sla_breaches(now)
        deliver.assert_not_called()

    def test_inactive_entries_ignored(self, engine, deliver, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=30, status='Completed')
        engine.check_sla_breaches(now)
        deliver.assert_not_called()

    def test_breach_toggle_off(self, engine, deliver, proposta, ana, make_entry, now):
        engine.settings.sla_breaches = False
        make_entry(ana, proposta[1], days_ago=7)
        assert engine.check_sla_breaches(now) == {'sla_breach': 0, 'stage_timeout': 0}
        deliver.assert_not_called()

    def test_timeout_toggle_off_keeps_breaches(self, engine, deliver, proposta, ana, make_lead, make_entry, now):
        engine.settings.stage_timeouts = False
        bruno = make_lead(id='Bruno', name='Bruno', whatsapp='+5511900000001')
        make_entry(ana, proposta[1], days_ago=7)
        make_entry(bruno, proposta[1], days_ago=4)
        engine.check_sla_breaches(now)
        assert _kinds(deliver) == ['sla_breach']

    def test_uses_patched_get_session_by_default(self, state, deliver, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=7)
        engine = NotificationEngine(state=state, deliver=deliver, settings=NotificationSettings())
        engine.check_sla_breaches(now)
        assert deliver.call_count == 1


class TestQuietHoursSuppression:

    def test_scan_runs_but_nothing_is_delivered(self, engine, deliver, state, proposta, ana, make_entry, now):
        # now is 12:00 UTC
        engine.settings = NotificationSettings(
            quiet_hours_enabled=True, quiet_hours_start='11:00', quiet_hours_end='13:00',
        )
        make_entry(ana, proposta[1], days_ago=7)

        counts = engine.check_sla_breaches(now)

        deliver.assert_not_called()
        assert counts['sla_breach'] == 0
        assert 'sla_breach_Ana_Proposta_2' in state.sent_keys

    def test_suppressed_key_is_not_replayed(self, engine, deliver, proposta, ana, make_entry, now):
        engine.settings = NotificationSettings(
            quiet_hours_enabled=True, quiet_hours_start='11:00', quiet_hours_end='13:00',
        )
        make_entry(ana, proposta[1], days_ago=7)
        engine.check_sla_breaches(now)

        engine.check_sla_breaches(now + timedelta(hours=2))
        deliver.assert_not_called()

        engine.check_sla_breaches(now + timedelta(days=1, hours=2))
        assert deliver.call_count == 1


class TestDeliveryFailure:

    def test_failure_is_logged_and_key_recorded(self, engine, deliver, state, proposta, ana, make_entry, now):
        deliver.side_effect = RuntimeError('store down')
        make_entry(ana, proposta[1], days_ago=7)

        engine.check_sla_breaches(now)
        engine.check_sla_breaches(now)

        assert deliver.call_count == 1
        assert 'sla_breach_Ana_Proposta_2' in state.sent_keys


# ── Appointment scan ─────────────────────────────────────────────────────────

class TestAppointmentScan:

    @pytest.fixture
    def book(self, db_session, ana, now):
        def _book(minutes_ahead, status='scheduled', id=None):
            appointment = Appointment(
                id=id or f'apt-{minutes_ahead}',
                lead_id=ana.id,
                title='Discovery call',
                start_at=now + timedelta(minutes=minutes_ahead),
                status=status,
            )
            db_session.add(appointment)
            db_session.commit()
            return appointment
        return _book

    def test_thirty_minute_reminder(self, engine, deliver, state, book, now):
        book(30)
        assert engine.check_appointments(now) == 1
        assert 'appointment_apt-30_30' in state.sent_keys
        assert deliver.call_args.args[2]['priority'] == 'critical'

    def test_inside_window_below_threshold(self, engine, state, book, now):
        book(26)
        engine.check_appointments(now)
        assert 'appointment_apt-26_30' in state.sent_keys

    def test_outside_window_is_silent(self, engine, deliver, book, now):
        book(25)
        book(60)
        assert engine.check_appointments(now) == 0
        deliver.assert_not_called()

    def test_day_before_and_two_hours(self, engine, state, book, now):
        book(1440)
        book(120)
        assert engine.check_appointments(now) == 2
        assert {'appointment_apt-1440_1440', 'appointment_apt-120_120'} <= state.sent_keys

    def test_reminder_fires_once(self, engine, deliver, book, now):
        book(30)
        engine.check_appointments(now)
        engine.check_appointments(now + timedelta(minutes=1))
        assert deliver.call_count == 1

    def test_only_scheduled_appointments(self, engine, deliver, book, now):
        book(30, status='cancelled')
        engine.check_appointments(now)
        deliver.assert_not_called()

    def test_toggle_off(self, engine, deliver, book, now):
        engine.settings.appointment_reminders = False
        book(30)
        assert engine.check_appointments(now) == 0


# ── Combined run ─────────────────────────────────────────────────────────────

class TestRunAllChecks:

    def test_summary(self, engine, proposta, ana, make_entry, db_session, now):
        make_entry(ana, proposta[1], days_ago=7)
        db_session.add(Appointment(id='apt', lead_id=ana.id, title='Demo',
                                   start_at=now + timedelta(minutes=120), status='scheduled'))
        db_session.commit()

        summary = engine.run_all_checks(now)
        assert summary == {'sla_breach': 1, 'stage_timeout': 0, 'appointment': 1}

    def test_failing_scan_does_not_stop_the_other(self, state, deliver, now):
        def broken_session():
            raise RuntimeError('database unreachable')
        engine = NotificationEngine(state=state, deliver=deliver, settings=NotificationSettings(),
                                    session_factory=broken_session, clock=lambda: now)
        assert engine.run_all_checks() == {'sla_breach': 0, 'stage_timeout': 0, 'appointment': 0}

    def test_clear_resets_ledger(self, engine, deliver, state, proposta, ana, make_entry, now):
        make_entry(ana, proposta[1], days_ago=7)
        engine.run_all_checks(now)
        state.clear()
        engine.run_all_checks(now)
        assert deliver.call_count == 2


# ── Scheduling ───────────────────────────────────────────────────────────────

class TestScheduling:

    @patch('apscheduler.schedulers.background.BackgroundScheduler')
    def test_start_registers_interval_and_initial_jobs(self, mock_scheduler_cls, engine, state):
        scheduler = mock_scheduler_cls.return_value
        assert engine.start() is True
        assert state.running is True
        triggers = [c.args[1] for c in scheduler.add_job.call_args_list]
        assert triggers == ['interval', 'date']
        scheduler.start.assert_called_once()

    @patch('apscheduler.schedulers.background.BackgroundScheduler')
    def test_singleton_per_state(self, mock_scheduler_cls, state, deliver):
        first = NotificationEngine(state=state, deliver=deliver, settings=NotificationSettings())
        second = NotificationEngine(state=state, deliver=deliver, settings=NotificationSettings())
        assert first.start() is True
        assert second.start() is False
        assert mock_scheduler_cls.call_count == 1

    @patch('apscheduler.schedulers.background.BackgroundScheduler')
    def test_stop_shuts_down(self, mock_scheduler_cls, engine, state):
        engine.start()
        engine.stop()
        mock_scheduler_cls.return_value.shutdown.assert_called_once_with(wait=False)
        assert state.running is False

    def test_stop_without_start_is_harmless(self, engine, state):
        engine.stop()
        assert state.running is False
