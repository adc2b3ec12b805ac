"""
Notification routes — manual scan trigger and the notification feed.
"""
import logging

from flask import Blueprint, current_app, request, jsonify

from leadflow.services.notifications import list_notifications

logger = logging.getLogger('routes.notifications')

bp = Blueprint('notifications', __name__)


@bp.route('/api/notifications/scan', methods=['POST'])
def scan_now():
    """Run both notification scans immediately; same dedup ledger as the scheduler."""
    engine = current_app.extensions.get('notification_engine')
    if engine is None:
        return jsonify({'error': 'Notification engine not configured'}), 503
    return jsonify(engine.run_all_checks())


@bp.route('/api/notifications')
def get_notifications():
    limit = request.args.get('limit', 50, type=int)
    unread_only = request.args.get('unread') in ('1', 'true')
    try:
        return jsonify(list_notifications(limit=limit, unread_only=unread_only))
    except Exception:
        logger.error("Failed to list notifications", exc_info=True)
        return jsonify({'error': 'Could not load notifications'}), 500
