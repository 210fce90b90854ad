"""Work event service — the autopilot's transactional entry point.

log_work_event() validates input, checks the client belongs to the user,
resolves the EffectiveBillingContext once, then inserts the work event and
runs the autopilot in ONE transaction. It commits on success and rolls
back everything (work event included) on any error.

Unlike the other services this one commits itself: it is the unit of work.
"""

import logging

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models.work_event import WorkEvent
from backoffice.services import autopilot_service
from backoffice.services.client_service import get_client
from backoffice.services.settings_service import effective_billing_context
from backoffice.utils import isoformat, parse_datetime, sanitize_text

logger = logging.getLogger(__name__)

TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise ValidationError("billable must be a boolean.", code="invalid_billable")


def _parse_non_negative_int(value, field, code):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.", code=code)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.", code=code)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0.", code=code)
    return number


def validate_work_event(data):
    """Normalise a work-event payload. Raises ValidationError on bad input."""
    if not data.get("client_id"):
        raise ValidationError("client_id is required.", code="invalid_client")

    event_type = data.get("type") or WorkEvent.TYPE_SESSION
    if event_type not in WorkEvent.TYPES:
        raise ValidationError("Work event type is invalid.", code="invalid_type")

    raw_start = data.get("start_at")
    if not raw_start:
        raise ValidationError("start_at is required.", code="invalid_start_at")
    start_at = parse_datetime(raw_start)
    if start_at is None:
        raise ValidationError(
            "start_at must be a valid datetime.", code="invalid_start_at"
        )

    duration = _parse_non_negative_int(
        data.get("duration_minutes", 0), "duration_minutes", "invalid_duration"
    )

    billable = True
    if "billable" in data and data["billable"] is not None:
        billable = _parse_bool(data["billable"])

    rate_cents = None
    if data.get("rate_cents") is not None:
        rate_cents = _parse_non_negative_int(data["rate_cents"], "rate_cents", "invalid_rate")

    currency = (data.get("currency") or "").strip().upper() or None
    if currency is not None and len(currency) != 3:
        raise ValidationError("currency must be a 3-letter code.", code="invalid_currency")

    return {
        "client_id": str(data["client_id"]),
        "type": event_type,
        "start_at": start_at,
        "duration_minutes": duration,
        "billable": billable,
        "notes": sanitize_text(data.get("notes")) or None,
        "source_type": sanitize_text(data.get("source_type")) or None,
        "source_id": sanitize_text(data.get("source_id")) or None,
        "rate_cents": rate_cents,
        "currency": currency,
    }


def log_work_event(user_id, data):
    """Record a work event and apply the autopilot atomically.

    Returns:
        (WorkEvent, AutopilotResult), both committed.

    Raises:
        ValidationError / NotFoundError before anything is written; any
        error during the write rolls back the whole unit and is re-raised.
    """
    fields = validate_work_event(data)
    client = get_client(user_id, fields["client_id"])
    context = effective_billing_context(
        user_id, rate_cents=fields["rate_cents"], currency=fields["currency"]
    )

    try:
        work_event = WorkEvent(
            user_id=user_id,
            client_id=client.id,
            type=fields["type"],
            start_at=fields["start_at"],
            duration_minutes=fields["duration_minutes"],
            billable=fields["billable"],
            notes=fields["notes"],
            source_type=fields["source_type"],
            source_id=fields["source_id"],
        )
        db.session.add(work_event)
        db.session.flush()

        result = autopilot_service.process(work_event, context)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Work event for user {user_id} rolled back", exc_info=True)
        raise

    return work_event, result


def list_work_events(user_id, date_from=None, date_to=None, client_id=None):
    start = _parse_bound(date_from)
    end = _parse_bound(date_to)

    query = WorkEvent.query.filter_by(user_id=user_id)
    if client_id:
        query = query.filter_by(client_id=str(client_id))
    if start is not None:
        query = query.filter(WorkEvent.start_at >= start)
    if end is not None:
        query = query.filter(WorkEvent.start_at <= end)
    return query.order_by(WorkEvent.start_at.desc(), WorkEvent.id.asc()).all()


def _parse_bound(raw):
    if raw is None or raw == "":
        return None
    value = parse_datetime(raw)
    if value is None:
        raise ValidationError("from/to must be valid dates.", code="invalid_range")
    return value


def work_event_to_dict(work_event):
    return {
        "id": work_event.id,
        "client_id": work_event.client_id,
        "type": work_event.type,
        "start_at": isoformat(work_event.start_at),
        "duration_minutes": work_event.duration_minutes,
        "billable": work_event.billable,
        "notes": work_event.notes,
        "source_type": work_event.source_type,
        "source_id": work_event.source_id,
        "created_at": isoformat(work_event.created_at),
    }
