"""
ImportJob — Redis-backed bulk import progress tracking.

An ImportJob represents one bulk import flowing through the coordinator in
batches. Progress is saved after every record so the UI can poll live counts.
"""
import json
import logging
import uuid
from datetime import datetime
from typing import Dict, Optional, List

from leadflow.extensions import redis_client as r

logger = logging.getLogger('models.import_job')


IMPORT_TTL = 86400 * 7  # 7 days
MAX_STORED_ERRORS = 50


class ImportJob:
    """
    Redis-backed ImportJob object.

    Keys:
        import:{id}     → JSON blob of job state
        imports:list    → sorted set of job IDs by creation time
    """

    def __init__(
        self,
        id: str = None,
        status: str = 'queued',
        total: int = 0,
        actor: str = 'import',
        tag_ids: List[str] = None,
        pipeline_ids: List[str] = None,
    ):
        self.id = id or str(uuid.uuid4())
        self.status = status
        self.actor = actor
        self.created_at = datetime.now().isoformat()
        self.updated_at = self.created_at
        self.total = total
        self.processed = 0
        self.success = 0
        self.errors = 0
        self.created = 0
        self.updated = 0
        self.tag_ids = tag_ids or []
        self.pipeline_ids = pipeline_ids or []
        self.error_log: List[Dict] = []
        self.summary = ''

    @property
    def progress(self) -> Dict:
        return {
            'total': self.total,
            'processed': self.processed,
            'success': self.success,
            'errors': self.errors,
            'created': self.created,
            'updated': self.updated,
        }

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'status': self.status,
            'actor': self.actor,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'progress': self.progress,
            'tag_ids': self.tag_ids,
            'pipeline_ids': self.pipeline_ids,
            'error_log': self.error_log[-MAX_STORED_ERRORS:],
            'summary': self.summary,
        }

    def save(self):
        """Persist job state to Redis."""
        self.updated_at = datetime.now().isoformat()
        r.setex(f'import:{self.id}', IMPORT_TTL, json.dumps(self.to_dict()))
        r.zadd('imports:list', {self.id: datetime.fromisoformat(self.created_at).timestamp()})
        return self

    def apply_progress(self, progress):
        """Copy counters from an ImportProgress and save."""
        self.total = progress.total
        self.processed = progress.processed
        self.success = progress.success
        self.errors = progress.errors
        self.created = progress.created
        self.updated = progress.updated
        self.save()

    def add_error(self, row: int, message: str):
        self.error_log.append({
            'row': row,
            'message': message,
            'timestamp': datetime.now().isoformat(),
        })
        if len(self.error_log) > MAX_STORED_ERRORS:
            self.error_log = self.error_log[-MAX_STORED_ERRORS:]

    def start(self):
        self.status = 'processing'
        self.save()

    def complete(self, summary: str = ''):
        self.status = 'completed'
        self.summary = summary
        self.save()

    def fail(self, reason: str = ''):
        self.status = 'failed'
        if reason:
            self.add_error(-1, reason)
        self.save()

    @classmethod
    def _from_dict(cls, d: Dict) -> 'ImportJob':
        job = cls.__new__(cls)
        job.id = d['id']
        job.status = d.get('status', 'queued')
        job.actor = d.get('actor', 'import')
        job.created_at = d.get('created_at', '')
        job.updated_at = d.get('updated_at', '')
        progress = d.get('progress', {})
        job.total = progress.get('total', 0)
        job.processed = progress.get('processed', 0)
        job.success = progress.get('success', 0)
        job.errors = progress.get('errors', 0)
        job.created = progress.get('created', 0)
        job.updated = progress.get('updated', 0)
        job.tag_ids = d.get('tag_ids', [])
        job.pipeline_ids = d.get('pipeline_ids', [])
        job.error_log = d.get('error_log', [])
        job.summary = d.get('summary', '')
        return job

    @classmethod
    def _from_db_log(cls, log) -> 'ImportJob':
        job = cls.__new__(cls)
        job.id = log.id
        job.status = log.status
        job.actor = log.actor or 'import'
        job.created_at = log.created_at.isoformat() if log.created_at else ''
        job.updated_at = log.finished_at.isoformat() if log.finished_at else job.created_at
        job.total = log.total_records or 0
        job.processed = (log.success_count or 0) + (log.error_count or 0)
        job.success = log.success_count or 0
        job.errors = log.error_count or 0
        job.created = log.created_count or 0
        job.updated = log.updated_count or 0
        job.tag_ids = []
        job.pipeline_ids = []
        job.error_log = log.errors or []
        job.summary = log.summary or ''
        return job

    @classmethod
    def load(cls, job_id: str) -> Optional['ImportJob']:
        """Load a job from Redis, falling back to the database."""
        data = r.get(f'import:{job_id}')
        if data:
            return cls._from_dict(json.loads(data))

        try:
            from leadflow.database import get_session
            from leadflow.models.import_log import ImportLog
            session = get_session()
            try:
                log = session.get(ImportLog, job_id)
                if log:
                    return cls._from_db_log(log)
            finally:
                session.close()
        except Exception:
            logger.warning("DB fallback lookup failed for import %s", job_id, exc_info=True)
        return None

    @classmethod
    def list_recent(cls, limit: int = 20) -> List['ImportJob']:
        """List recent jobs from Redis."""
        jobs = []
        for job_id in r.zrevrange('imports:list', 0, limit - 1):
            job = cls.load(job_id)
            if job:
                jobs.append(job)
        return jobs
