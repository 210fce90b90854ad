"""Audit service — append-only audit log writes.

Flushes but does NOT commit: the entry lands in the same transaction as the
state change it describes, so a rolled-back change leaves no audit trace.
"""

from backoffice.extensions import db
from backoffice.models.audit import AuditLog


def log_audit(user_id, action, entity_type=None, entity_id=None, metadata=None):
    """Record one audit entry. user_id is None for system-initiated actions."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_=metadata or {},
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_recent(user_id, limit=50):
    """Latest audit entries for a user, newest first."""
    return (
        AuditLog.query
        .filter_by(user_id=user_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
        .all()
    )
