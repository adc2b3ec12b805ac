"""
Entry routes — stage moves, dry-run validation, SLA timing and inscription.
"""
import logging

from flask import Blueprint, request, jsonify

from leadflow.services.reports import entry_timing_report
from leadflow.services.transitions import TransitionError, inscribe_lead, move_lead, validate_move

logger = logging.getLogger('routes.entries')

bp = Blueprint('entries', __name__)


def _body():
    """JSON object body, or {} for anything else."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _actor(data):
    return str(data.get('actor') or 'system').strip() or 'system'


@bp.route('/api/entries/<entry_id>/move', methods=['POST'])
def move_entry(entry_id):
    """Move an entry to another stage. 200 on success, 409 when blocked or a no-op."""
    data = _body()
    to_stage_id = data.get('to_stage_id')
    if not to_stage_id or not isinstance(to_stage_id, str):
        return jsonify({'error': 'to_stage_id is required'}), 400

    try:
        result = move_lead(entry_id, to_stage_id, actor=_actor(data))
    except TransitionError as e:
        return jsonify({'error': str(e)}), 404
    except Exception:
        return jsonify({'error': 'Could not move lead'}), 500

    return jsonify(result.to_dict()), 200 if result.success else 409


@bp.route('/api/entries/<entry_id>/validate-move', methods=['POST'])
def validate_entry_move(entry_id):
    data = _body()
    to_stage_id = data.get('to_stage_id')
    if not to_stage_id or not isinstance(to_stage_id, str):
        return jsonify({'error': 'to_stage_id is required'}), 400

    try:
        validation = validate_move(entry_id, to_stage_id)
    except TransitionError as e:
        return jsonify({'error': str(e)}), 404
    except Exception:
        logger.error("Move validation failed for entry %s", entry_id, exc_info=True)
        return jsonify({'error': 'Could not validate move'}), 500

    return jsonify(validation.to_dict())


@bp.route('/api/entries/<entry_id>/timing')
def entry_timing(entry_id):
    """Days in stage, remaining/overdue days and tier, computed now."""
    report = entry_timing_report(entry_id)
    if report is None:
        return jsonify({'error': 'Pipeline entry not found'}), 404
    return jsonify(report)


@bp.route('/api/pipelines/<pipeline_id>/inscriptions', methods=['POST'])
def inscribe(pipeline_id):
    """Subscribe a lead to a pipeline. 201 when created, 200 when already subscribed."""
    data = _body()
    lead_id = data.get('lead_id')
    if not lead_id or not isinstance(lead_id, str):
        return jsonify({'error': 'lead_id is required'}), 400

    try:
        entry = inscribe_lead(lead_id, pipeline_id, actor=_actor(data))
    except TransitionError as e:
        return jsonify({'error': str(e)}), 404
    except Exception:
        return jsonify({'error': 'Could not inscribe lead'}), 500

    return jsonify(entry), 201 if entry['created'] else 200
