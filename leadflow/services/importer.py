"""
Bulk Import Coordinator — batches incoming rows through matcher + merger.

Launches an ImportJob and runs it on an RQ worker:
  validate → prepare → match → merge/create → tags → pipeline inscription

Records are processed in source order, one at a time, in fixed-size batches.
Each record is its own unit of work: a failing record is counted as an error
and the batch continues; completed records are never rolled back. Tag and
pipeline steps run after the lead write and only log their failures.
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from leadflow.config import IMPORT_BATCH_SIZE, IMPORT_JOB_TIMEOUT, IMPORT_REQUIRED_FIELDS
from leadflow.database import get_session
from leadflow.lifecycle.matching import find_existing_lead
from leadflow.lifecycle.merge import changed_fields, merge_lead_data, prepare_incoming
from leadflow.models.import_job import ImportJob
from leadflow.models.import_log import ImportLog
from leadflow.services import audit
from leadflow.services.notifications import notify_import_complete, notify_import_failed
from leadflow.services.store import LeadStore
from leadflow.services.transitions import inscribe_lead

logger = logging.getLogger('services.importer')


# ── Lazy RQ queue (avoids import-time Redis connection) ──────────────────────

_queue = None

def _get_queue():
    global _queue
    if _queue is None:
        import redis
        from rq import Queue
        from leadflow.config import REDIS_URL
        _queue = Queue('imports', connection=redis.from_url(REDIS_URL))
    return _queue


# ── Progress + outcomes ──────────────────────────────────────────────────────

@dataclass
class ImportProgress:
    total: int = 0
    processed: int = 0
    success: int = 0
    errors: int = 0
    created: int = 0
    updated: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class RecordOutcome:
    row: int
    status: str                   # created / updated / error
    lead_id: Optional[str] = None
    message: str = ''
    warnings: List[str] = field(default_factory=list)


def apply_defaults(row: Mapping, defaults: Optional[Mapping]) -> Dict:
    """Fill blank/missing fields of row from the defaults map."""
    record = dict(row)
    for key, value in (defaults or {}).items():
        current = record.get(key)
        if current is None or (isinstance(current, str) and not current.strip()):
            record[key] = value
    return record


def missing_required(record: Mapping) -> List[str]:
    missing = []
    for name in IMPORT_REQUIRED_FIELDS:
        value = record.get(name)
        if value is None or str(value).strip() == '':
            missing.append(name)
    return missing


class BulkImporter:
    """
    Runs one import: rows in, ImportProgress out.

    on_progress(progress) is called after every record; on_error(row, message)
    before it for every failed record.
    """

    def __init__(
        self,
        defaults: Optional[Mapping] = None,
        tag_ids: Optional[Sequence[str]] = None,
        pipeline_ids: Optional[Sequence[str]] = None,
        actor: str = 'import',
        batch_size: int = IMPORT_BATCH_SIZE,
        on_progress: Optional[Callable[[ImportProgress], None]] = None,
        on_error: Optional[Callable[[int, str], None]] = None,
    ):
        self.defaults = dict(defaults or {})
        self.tag_ids = list(tag_ids or [])
        self.pipeline_ids = list(pipeline_ids or [])
        self.actor = actor
        self.batch_size = max(1, batch_size)
        self.on_progress = on_progress
        self.on_error = on_error

    def run(self, rows: Sequence[Mapping]) -> ImportProgress:
        progress = ImportProgress(total=len(rows))

        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            for offset, row in enumerate(batch):
                outcome = self.process_record(row, start + offset + 1)
                self._tally(progress, outcome)
            logger.info("Batch %d done — %d/%d processed (%d created, %d updated, %d errors)",
                        start // self.batch_size + 1, progress.processed, progress.total,
                        progress.created, progress.updated, progress.errors)

        return progress

    def _tally(self, progress: ImportProgress, outcome: RecordOutcome):
        progress.processed += 1
        if outcome.status == 'error':
            progress.errors += 1
            if self.on_error:
                self.on_error(outcome.row, outcome.message)
        else:
            progress.success += 1
            if outcome.status == 'created':
                progress.created += 1
            else:
                progress.updated += 1
        if self.on_progress:
            self.on_progress(progress)

    def process_record(self, row: Mapping, row_number: int) -> RecordOutcome:
        record = apply_defaults(row, self.defaults)

        missing = missing_required(record)
        if missing:
            return RecordOutcome(row_number, 'error', message=f'Missing required field(s): {", ".join(missing)}')

        prepared = prepare_incoming(record)
        for warning in prepared.warnings:
            logger.info("Row %d: %s", row_number, warning)

        session = get_session()
        try:
            leads = LeadStore(session)
            match = find_existing_lead(leads, prepared.data)
            if match is not None:
                before = leads.snapshot(match.lead)
                merged = merge_lead_data(before, prepared.data)
                changes = changed_fields(before, merged)
                lead = leads.upsert(merged, lead=match.lead)
                if changes:
                    audit.append('Lead', lead.id, changes, self.actor, session=session)
                status = 'updated'
                logger.debug("Row %d matched lead %s on %s", row_number, lead.id, match.matched_on)
            else:
                lead = leads.upsert(prepared.data)
                status = 'created'
            session.commit()
            lead_id = lead.id
        except Exception as e:
            session.rollback()
            logger.error("Row %d: failed to save lead", row_number, exc_info=True)
            return RecordOutcome(row_number, 'error', message=f'Failed to save lead: {e}')
        finally:
            session.close()

        self._assign_tags(lead_id)
        self._inscribe(lead_id)
        return RecordOutcome(row_number, status, lead_id=lead_id, warnings=prepared.warnings)

    def _assign_tags(self, lead_id: str):
        if not self.tag_ids:
            return
        session = get_session()
        try:
            LeadStore(session).add_tags(lead_id, self.tag_ids)
            session.commit()
        except Exception:
            session.rollback()
            logger.warning("Tag assignment failed for lead %s", lead_id, exc_info=True)
        finally:
            session.close()

    def _inscribe(self, lead_id: str):
        for pipeline_id in self.pipeline_ids:
            try:
                inscribe_lead(lead_id, pipeline_id, actor=self.actor)
            except Exception:
                logger.warning("Pipeline inscription failed for lead %s in %s", lead_id, pipeline_id, exc_info=True)


# ── Import log persistence ───────────────────────────────────────────────────

def persist_import_log(job: ImportJob):
    """INSERT or UPDATE the import_logs row for a job. Failure is only logged."""
    session = get_session()
    try:
        log = session.get(ImportLog, job.id)
        if log is None:
            log = ImportLog(id=job.id, actor=job.actor)
            session.add(log)
        log.status = job.status
        log.total_records = job.total
        log.success_count = job.success
        log.error_count = job.errors
        log.created_count = job.created
        log.updated_count = job.updated
        log.errors = job.error_log or None
        log.summary = job.summary or None
        if job.status in ('completed', 'failed'):
            log.finished_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        logger.error("Failed to persist import log %s", job.id, exc_info=True)
    finally:
        session.close()


# ── Public API ────────────────────────────────────────────────────────────────

def launch_import(
    rows: Sequence[Mapping],
    defaults: Optional[Mapping] = None,
    tag_ids: Optional[Sequence[str]] = None,
    pipeline_ids: Optional[Sequence[str]] = None,
    actor: str = 'import',
) -> ImportJob:
    """Create an ImportJob and enqueue run_import as a background RQ job."""
    if not isinstance(rows, (list, tuple)) or not rows:
        raise ValueError('rows must be a non-empty list of records')
    if not all(isinstance(row, Mapping) for row in rows):
        raise ValueError('every row must be an object of field → value')

    job = ImportJob(
        total=len(rows),
        actor=actor,
        tag_ids=list(tag_ids or []),
        pipeline_ids=list(pipeline_ids or []),
    )
    job.save()
    persist_import_log(job)

    _get_queue().enqueue(
        run_import, job.id, list(rows), dict(defaults or {}),
        job_timeout=IMPORT_JOB_TIMEOUT,
    )
    logger.info("Import %s queued with %d records", job.id, len(rows), extra={'job_id': job.id})
    return job


def get_import_status(job_id: str) -> Optional[Dict]:
    job = ImportJob.load(job_id)
    if not job:
        return None
    return job.to_dict()


def _summarize(progress: ImportProgress) -> str:
    return (f'{progress.processed} of {progress.total} records processed: '
            f'{progress.created} created, {progress.updated} updated, {progress.errors} errors')


def run_import(job_id: str, rows: Sequence[Mapping], defaults: Optional[Mapping] = None):
    """Execute one import job (enqueued via RQ)."""
    job = ImportJob.load(job_id)
    if not job:
        logger.error("Import %s not found", job_id)
        return

    logger.info("Starting import %s (%d records)", job_id, len(rows))
    job.start()
    persist_import_log(job)

    importer = BulkImporter(
        defaults=defaults,
        tag_ids=job.tag_ids,
        pipeline_ids=job.pipeline_ids,
        actor=job.actor,
        on_progress=job.apply_progress,
        on_error=job.add_error,
    )

    try:
        progress = importer.run(rows)
    except Exception as e:
        logger.error("Import %s FAILED", job_id, exc_info=True, extra={'job_id': job_id})
        job.summary = f'Import stopped after {job.processed} of {job.total} records'
        job.fail(f'Import failed: {e}')
        persist_import_log(job)
        notify_import_failed(job)
        return

    job.complete(_summarize(progress))
    persist_import_log(job)
    notify_import_complete(job)
    logger.info("Import %s completed: %s", job_id, job.summary, extra={'job_id': job_id})
