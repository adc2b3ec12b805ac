"""
Dashboard routes — health check, pipeline/stage health and duplicate report.
"""
import logging

from flask import Blueprint, jsonify

from leadflow.services.reports import duplicate_report, pipeline_health_report, stage_health_report

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/pipelines/health')
def pipelines_health():
    """Health score, tier, issues and recommendations per active pipeline."""
    try:
        return jsonify(pipeline_health_report())
    except Exception:
        logger.error("Pipeline health report failed", exc_info=True)
        return jsonify({'error': 'Could not compute pipeline health'}), 500


@bp.route('/api/pipelines/<pipeline_id>/stages/health')
def stages_health(pipeline_id):
    try:
        report = stage_health_report(pipeline_id)
    except Exception:
        logger.error("Stage health report failed for %s", pipeline_id, exc_info=True)
        return jsonify({'error': 'Could not compute stage health'}), 500
    if report is None:
        return jsonify({'error': 'Pipeline not found'}), 404
    return jsonify(report)


@bp.route('/api/leads/duplicates')
def lead_duplicates():
    """Likely duplicate pairs among existing leads (read-only)."""
    try:
        return jsonify(duplicate_report())
    except Exception:
        logger.error("Duplicate scan failed", exc_info=True)
        return jsonify({'error': 'Could not scan for duplicates'}), 500
