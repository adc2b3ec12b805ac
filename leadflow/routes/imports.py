"""
Import routes — launch a bulk import and poll its progress.
"""
import logging

from flask import Blueprint, request, jsonify

from leadflow.models.import_job import ImportJob
from leadflow.services.importer import get_import_status, launch_import

logger = logging.getLogger('routes.imports')

bp = Blueprint('imports', __name__)


@bp.route('/api/imports', methods=['POST'])
def create_import():
    """
    Queue a bulk import.

    Body: {rows: [...], defaults: {...}, tag_ids: [...], pipeline_ids: [...], actor}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    try:
        job = launch_import(
            rows=data.get('rows'),
            defaults=data.get('defaults'),
            tag_ids=data.get('tag_ids'),
            pipeline_ids=data.get('pipeline_ids'),
            actor=str(data.get('actor') or 'import'),
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.error("Failed to launch import", exc_info=True)
        return jsonify({'error': 'Could not start import'}), 500

    return jsonify(job.to_dict()), 202


@bp.route('/api/imports')
def list_imports():
    """List recent import jobs."""
    limit = request.args.get('limit', 20, type=int)
    return jsonify([job.to_dict() for job in ImportJob.list_recent(limit=limit)])


@bp.route('/api/imports/<job_id>')
def get_import(job_id):
    status = get_import_status(job_id)
    if not status:
        return jsonify({'error': 'Import not found'}), 404
    return jsonify(status)
