"""
Notifications — persistence of notification events + Slack webhook integration.

record_notification() is the delivery callable handed to the notification
engine. Slack failure never blocks the caller.
"""
import logging
from typing import Dict, List, Optional

import requests

from leadflow.config import SLACK_WEBHOOK_URL
from leadflow.database import get_session
from leadflow.models.notification import Notification

logger = logging.getLogger('services.notifications')

SLACK_TIMEOUT = 10
SLACK_PRIORITY = 'critical'


# ── Feed ─────────────────────────────────────────────────────────────────────

def record_notification(subject_id: str, kind: str, payload: Dict) -> Notification:
    """
    Persist one notification row; critical ones are also posted to Slack.

    A database failure propagates so the engine can log it against its dedup key.
    """
    session = get_session()
    try:
        row = Notification(
            subject_id=subject_id,
            kind=kind,
            priority=payload.get('priority', 'medium'),
            title=payload.get('title', ''),
            message=payload.get('message', ''),
            payload=payload,
        )
        session.add(row)
        session.commit()
        logger.info("Notification %s recorded for %s (%s)", kind, subject_id, row.priority,
                    extra={'lead_id': subject_id})
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if payload.get('priority') == SLACK_PRIORITY:
        post_to_slack(payload)
    return row


def _notification_to_dict(n: Notification) -> Dict:
    return {
        'id': n.id,
        'subject_id': n.subject_id,
        'kind': n.kind,
        'priority': n.priority,
        'title': n.title,
        'message': n.message,
        'payload': n.payload or {},
        'read': bool(n.read),
        'created_at': n.created_at.isoformat() if n.created_at else None,
    }


def list_notifications(limit: int = 50, unread_only: bool = False) -> List[Dict]:
    """Newest first."""
    session = get_session()
    try:
        query = session.query(Notification)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return [_notification_to_dict(n) for n in query.order_by(Notification.id.desc()).limit(limit)]
    finally:
        session.close()


# ── Slack ────────────────────────────────────────────────────────────────────

def _header(text: str) -> Dict:
    return {"type": "header", "text": {"type": "plain_text", "text": text}}


def _text(markdown: str) -> Dict:
    return {"type": "section", "text": {"type": "mrkdwn", "text": markdown}}


def _fields(pairs) -> Dict:
    return {"type": "section", "fields": [{"type": "mrkdwn", "text": f"*{k}:* {v}"} for k, v in pairs]}


def _send(blocks: List[Dict], what: str) -> bool:
    """POST blocks to the webhook. Returns False when Slack is not configured or the post failed."""
    if not SLACK_WEBHOOK_URL:
        return False
    try:
        requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=SLACK_TIMEOUT)
    except Exception:
        logger.error("Failed to post %s to Slack", what, exc_info=True)
        return False
    logger.info("Slack %s sent", what)
    return True


def post_to_slack(payload: Dict) -> bool:
    """Post a critical notification to Slack."""
    blocks = [_header(payload.get('title', 'Notification')), _text(payload.get('message', ''))]
    if payload.get('action_url'):
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": payload['action_url']}],
        })
    return _send(blocks, f"{payload.get('priority', '')} notification".strip())


def notify_import_complete(job) -> bool:
    """Import summary: record counts split into created / updated / errors."""
    blocks = [
        _header("Lead Import Completed"),
        _fields([
            ('Records', job.total),
            ('Created', job.created),
            ('Updated', job.updated),
            ('Errors', job.errors),
        ]),
    ]
    if job.summary:
        blocks.append(_text(f"_{job.summary}_"))
    return _send(blocks, f"import {job.id[:8]} summary")


def _last_error(job) -> Optional[str]:
    if not job.error_log:
        return None
    return job.error_log[-1].get('message') or None


def notify_import_failed(job) -> bool:
    blocks = [
        _header("Lead Import FAILED"),
        _fields([
            ('Processed', f'{job.processed} / {job.total}'),
            ('Saved so far', job.success),
        ]),
    ]
    last_error = _last_error(job)
    if last_error:
        blocks.append(_text(f"*Error:* ```{last_error[:500]}```"))
    return _send(blocks, f"import {job.id[:8]} failure")
