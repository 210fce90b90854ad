"""Follow-up service — scheduled message suggestions tied to a source entity.

At most one open follow-up per (user_id, source_type, source_id). The
lookup in create_for_source() handles the normal path; the partial unique
index catches the concurrent one. A conflicting insert raises
IntegrityError out of flush(), so callers that may race (the reminder
sweeper) commit per item and treat IntegrityError as "already exists".

Functions flush but do NOT commit — the caller commits.
"""

import logging

from backoffice.errors import ConflictError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models.follow_up import FollowUp
from backoffice.services.audit_service import log_audit
from backoffice.services.email_service import send_email
from backoffice.utils import isoformat, parse_datetime

logger = logging.getLogger(__name__)


def find_open(user_id, source_type, source_id):
    return FollowUp.query.filter_by(
        user_id=user_id,
        source_type=source_type,
        source_id=source_id,
        status=FollowUp.STATUS_OPEN,
    ).first()


def create_for_source(user_id, client_id, source_type, source_id, due_at, message):
    """Create an open follow-up unless one already exists for the source.

    Returns:
        (FollowUp, created: bool)
    """
    existing = find_open(user_id, source_type, source_id)
    if existing:
        return existing, False

    follow_up = FollowUp(
        user_id=user_id,
        client_id=client_id,
        due_at=due_at,
        suggested_message=message,
        status=FollowUp.STATUS_OPEN,
        source_type=source_type,
        source_id=source_id,
    )
    db.session.add(follow_up)
    db.session.flush()
    return follow_up, True


def get_follow_up(user_id, follow_up_id):
    follow_up = None
    if follow_up_id:
        follow_up = FollowUp.query.filter_by(
            id=str(follow_up_id), user_id=user_id
        ).first()
    if follow_up is None:
        raise NotFoundError("Follow-up not found.")
    return follow_up


def list_follow_ups(user_id, status=FollowUp.STATUS_OPEN):
    if status not in FollowUp.STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(FollowUp.STATUSES)}",
            code="invalid_status",
        )
    return (
        FollowUp.query
        .filter_by(user_id=user_id, status=status)
        .order_by(FollowUp.due_at.asc(), FollowUp.id.asc())
        .all()
    )


def list_for_export(user_id, status=None, date_from=None, date_to=None):
    """Follow-ups for CSV export: optional status, due_at within the range."""
    if status and status not in FollowUp.STATUSES:
        raise ValidationError("Status is invalid.", code="invalid_status")

    start = _parse_bound(date_from)
    end = _parse_bound(date_to)

    query = FollowUp.query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    if start is not None:
        query = query.filter(FollowUp.due_at >= start)
    if end is not None:
        query = query.filter(FollowUp.due_at <= end)
    return query.order_by(FollowUp.due_at.asc(), FollowUp.id.asc()).all()


def _parse_bound(raw):
    if raw is None or raw == "":
        return None
    value = parse_datetime(raw)
    if value is None:
        raise ValidationError("from/to must be valid dates.", code="invalid_range")
    return value


def _set_status(user_id, follow_up_id, new_status, action):
    follow_up = get_follow_up(user_id, follow_up_id)
    if follow_up.status == new_status:
        return follow_up

    if new_status == FollowUp.STATUS_OPEN and follow_up.source_type:
        other = find_open(user_id, follow_up.source_type, follow_up.source_id)
        if other and other.id != follow_up.id:
            raise ConflictError(
                "Another open follow-up exists for the same source.",
                code="duplicate_open_follow_up",
            )

    old_status = follow_up.status
    follow_up.status = new_status
    db.session.flush()

    log_audit(user_id, action, "follow_up", follow_up.id, {
        "old_status": old_status,
        "new_status": new_status,
    })
    return follow_up


def mark_done(user_id, follow_up_id):
    return _set_status(user_id, follow_up_id, FollowUp.STATUS_DONE, "follow_up.done")


def dismiss(user_id, follow_up_id):
    return _set_status(
        user_id, follow_up_id, FollowUp.STATUS_DISMISSED, "follow_up.dismissed"
    )


def reopen(user_id, follow_up_id):
    return _set_status(user_id, follow_up_id, FollowUp.STATUS_OPEN, "follow_up.reopened")


def email_follow_up(user_id, follow_up_id, subject=None):
    """Send the suggested message to the client.

    Raises:
        ConflictError: missing_email when the client has no address.
        DeliveryError: the mail could not be sent (nothing changes).
    """
    follow_up = get_follow_up(user_id, follow_up_id)
    client = follow_up.client
    if client is None or not client.email:
        raise ConflictError("Client has no email address.", code="missing_email")

    send_email(
        to=client.email,
        subject=subject or "Following up",
        body=follow_up.suggested_message,
    )

    log_audit(user_id, "follow_up.emailed", "follow_up", follow_up.id, {
        "to": client.email,
    })
    logger.info(f"Follow-up {follow_up.id} emailed to {client.email}")
    return follow_up


def follow_up_to_dict(follow_up):
    return {
        "id": follow_up.id,
        "client_id": follow_up.client_id,
        "client_name": follow_up.client.name if follow_up.client else None,
        "due_at": isoformat(follow_up.due_at),
        "suggested_message": follow_up.suggested_message,
        "status": follow_up.status,
        "source_type": follow_up.source_type,
        "source_id": follow_up.source_id,
        "created_at": isoformat(follow_up.created_at),
    }
