"""
Structured logging configuration.

configure_logging() runs once from create_app(). LOG_FORMAT picks text or
single-line JSON, LOG_LEVEL the root level (INFO when unset or unknown).

Lifecycle code attaches identifiers with `extra=`:

    logger.info("Entry moved", extra={'entry_id': entry.id, 'lead_id': lead.id})

The JSON formatter lifts every CONTEXT_FIELDS attribute it finds into the
output object; the text formatter appends them as key=value pairs.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ('lead_id', 'entry_id', 'stage_id', 'pipeline_id', 'job_id', 'notification_key')

TEXT_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'
TEXT_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Pinned to WARNING regardless of LOG_LEVEL
QUIET_LOGGERS = (
    'urllib3',
    'apscheduler',
    'rq.worker',
    'sqlalchemy.engine',
)


def _context(record) -> dict:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, context ids, exception."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    def format(self, record):
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = ' '.join(f'{k}={v}' for k, v in context.items())
        first, sep, rest = line.partition('\n')
        return f'{first} [{pairs}]{sep}{rest}'


def resolve_level(name) -> int:
    level = logging.getLevelName((name or 'INFO').strip().upper())
    return level if isinstance(level, int) else logging.INFO


def build_formatter(log_format: str) -> logging.Formatter:
    if (log_format or '').strip().lower() == 'json':
        return JSONFormatter()
    return ContextTextFormatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def configure_logging(app=None):
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once; previous root handlers are replaced.
    """
    level = resolve_level(os.getenv('LOG_LEVEL', 'INFO'))

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(build_formatter(os.getenv('LOG_FORMAT', 'text')))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.handlers.clear()
        app.logger.propagate = True
