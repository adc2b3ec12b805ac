"""
Audit log — append-only record of stage transitions and merges.
"""
import logging
from typing import Dict, List

from leadflow.database import get_session
from leadflow.models.audit_log import AuditLog

logger = logging.getLogger('services.audit')


def append(entity_type: str, entity_id: str, change_set: List[Dict], actor: str = 'system', session=None):
    """
    Append one audit row.

    With a session, the row joins the caller's transaction (and its fate).
    Without one, it is written on its own and a failure is only logged.
    """
    row = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        change_set=change_set,
        actor=actor or 'system',
    )
    if session is not None:
        session.add(row)
        return row

    own = get_session()
    try:
        own.add(row)
        own.commit()
    except Exception:
        own.rollback()
        logger.error("Failed to append audit for %s %s", entity_type, entity_id, exc_info=True)
    finally:
        own.close()
    return row
