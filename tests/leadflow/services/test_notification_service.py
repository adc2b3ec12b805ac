"""Tests for leadflow.services.notifications — persistence + Slack."""
import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy import select

from leadflow.models.notification import Notification
from leadflow.services.notifications import (
    list_notifications, notify_import_complete, notify_import_failed, post_to_slack, record_notification,
)

WEBHOOK = 'https://hooks.slack.test/T000/B000'


def _payload(priority='high'):
    return {
        'title': 'SLA breached',
        'message': 'Lead "Ana" is 2 day(s) overdue in stage "Proposta".',
        'priority': priority,
        'lead_name': 'Ana',
        'action_url': '/pipelines?lead=Ana',
    }


class TestRecordNotification:

    @patch('leadflow.services.notifications.post_to_slack')
    def test_persists_row(self, mock_slack, db_session):
        record_notification('Ana', 'sla_breach', _payload())

        row = db_session.execute(select(Notification)).scalars().one()
        assert row.subject_id == 'Ana'
        assert row.kind == 'sla_breach'
        assert row.priority == 'high'
        assert row.payload['action_url'] == '/pipelines?lead=Ana'
        mock_slack.assert_not_called()

    @patch('leadflow.services.notifications.post_to_slack')
    def test_critical_goes_to_slack(self, mock_slack):
        payload = _payload('critical')
        record_notification('Ana', 'sla_breach', payload)
        mock_slack.assert_called_once_with(payload)

    def test_database_failure_propagates(self, db_session):
        with patch.object(db_session, 'commit', side_effect=RuntimeError('db down')):
            with pytest.raises(RuntimeError):
                record_notification('Ana', 'sla_breach', _payload())


class TestListNotifications:

    def test_newest_first_and_unread_filter(self, db_session):
        db_session.add_all([
            Notification(subject_id='a', kind='sla_breach', read=True),
            Notification(subject_id='b', kind='appointment', read=False),
        ])
        db_session.commit()

        assert [n['subject_id'] for n in list_notifications()] == ['b', 'a']
        assert [n['subject_id'] for n in list_notifications(unread_only=True)] == ['b']
        assert len(list_notifications(limit=1)) == 1


# ── Slack ────────────────────────────────────────────────────────────────────

class TestSlack:

    @patch('leadflow.services.notifications.requests')
    def test_no_webhook_no_post(self, mock_requests):
        with patch('leadflow.services.notifications.SLACK_WEBHOOK_URL', None):
            assert post_to_slack(_payload('critical')) is False
        mock_requests.post.assert_not_called()

    @patch('leadflow.services.notifications.requests')
    def test_post_blocks(self, mock_requests):
        with patch('leadflow.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK):
            post_to_slack(_payload('critical'))

        url = mock_requests.post.call_args.args[0]
        blocks = mock_requests.post.call_args.kwargs['json']['blocks']
        assert url == WEBHOOK
        assert blocks[0]['text']['text'] == 'SLA breached'
        assert blocks[-1]['elements'][0]['text'] == '/pipelines?lead=Ana'

    @patch('leadflow.services.notifications.requests')
    def test_slack_error_is_swallowed(self, mock_requests):
        mock_requests.post.side_effect = ConnectionError('timeout')
        with patch('leadflow.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK):
            assert post_to_slack(_payload('critical')) is False

    @patch('leadflow.services.notifications.requests')
    def test_import_summaries(self, mock_requests):
        job = MagicMock(id='job-12345678', total=3, created=2, updated=0, errors=1, processed=3,
                        success=2, summary='3 of 3 records processed', error_log=[{'message': 'bad row'}])
        with patch('leadflow.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK):
            notify_import_complete(job)
            notify_import_failed(job)

        assert mock_requests.post.call_count == 2
        failed_blocks = mock_requests.post.call_args.kwargs['json']['blocks']
        assert 'bad row' in failed_blocks[-1]['text']['text']
