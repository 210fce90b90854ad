"""Reporting service — invoice totals and billable time for a period.

Both aggregates are single GROUP BY queries scoped to the user. Invoice
drafts are bucketed by status, then by currency (amounts are never summed
across currencies); work events by their billable flag.

The basic summary (paid invoices and total time) is open to every plan;
the full summary and its CSV export are a pro feature, gated in the
reports blueprint.
"""

from sqlalchemy import func

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models.invoice import InvoiceDraft
from backoffice.models.work_event import WorkEvent
from backoffice.services.client_service import get_client
from backoffice.utils import parse_datetime

EXPORT_HEADER = ["group", "metric", "value", "currency"]

WORK_EVENT_METRICS = [
    "total_minutes",
    "billable_minutes",
    "non_billable_minutes",
    "total_sessions",
    "billable_sessions",
    "non_billable_sessions",
]


def parse_filters(date_from=None, date_to=None, client_id=None, user_id=None):
    """Normalise ?from=&to=&client_id= into (start, end, client_id).

    Raises:
        ValidationError: invalid_range for unparseable dates.
        NotFoundError: client_id not owned by user_id.
    """
    bounds = []
    for raw in (date_from, date_to):
        if raw is None or raw == "":
            bounds.append(None)
            continue
        value = parse_datetime(raw)
        if value is None:
            raise ValidationError("from/to must be valid dates.", code="invalid_range")
        bounds.append(value)

    if client_id:
        client_id = get_client(user_id, client_id).id
    else:
        client_id = None

    return bounds[0], bounds[1], client_id


def _scoped(query, model, column, user_id, start, end, client_id):
    query = query.filter(model.user_id == user_id)
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    if client_id is not None:
        query = query.filter(model.client_id == client_id)
    return query


def invoice_totals(user_id, start=None, end=None, client_id=None):
    """{status: {"count": n, "amounts": {currency: cents}}} for every status."""
    totals = {status: {"count": 0, "amounts": {}} for status in InvoiceDraft.STATUSES}

    query = db.session.query(
        InvoiceDraft.status,
        InvoiceDraft.currency,
        func.count(InvoiceDraft.id),
        func.coalesce(func.sum(InvoiceDraft.amount_cents), 0),
    )
    query = _scoped(
        query, InvoiceDraft, InvoiceDraft.created_at, user_id, start, end, client_id
    ).group_by(InvoiceDraft.status, InvoiceDraft.currency)

    for status, currency, count, amount in query.all():
        currency = (currency or "").upper()
        if status not in totals or not currency:
            continue
        bucket = totals[status]
        bucket["count"] += int(count)
        bucket["amounts"][currency] = bucket["amounts"].get(currency, 0) + int(amount)

    return totals


def work_event_totals(user_id, start=None, end=None, client_id=None):
    """Minutes and event counts split by the billable flag."""
    billable_minutes = non_billable_minutes = 0
    billable_sessions = non_billable_sessions = 0

    query = db.session.query(
        WorkEvent.billable,
        func.count(WorkEvent.id),
        func.coalesce(func.sum(WorkEvent.duration_minutes), 0),
    )
    query = _scoped(
        query, WorkEvent, WorkEvent.start_at, user_id, start, end, client_id
    ).group_by(WorkEvent.billable)

    for billable, count, minutes in query.all():
        if billable:
            billable_minutes += int(minutes)
            billable_sessions += int(count)
        else:
            non_billable_minutes += int(minutes)
            non_billable_sessions += int(count)

    return {
        "total_minutes": billable_minutes + non_billable_minutes,
        "billable_minutes": billable_minutes,
        "non_billable_minutes": non_billable_minutes,
        "total_sessions": billable_sessions + non_billable_sessions,
        "billable_sessions": billable_sessions,
        "non_billable_sessions": non_billable_sessions,
    }


def summary(user_id, start=None, end=None, client_id=None):
    return {
        "invoice_totals": invoice_totals(user_id, start, end, client_id),
        "work_events": work_event_totals(user_id, start, end, client_id),
    }


def basic_summary(full):
    """The subset shown without the pro plan: paid invoices and total time."""
    work_events = full["work_events"]
    return {
        "scope": "basic",
        "invoice_totals": {"paid": full["invoice_totals"][InvoiceDraft.STATUS_PAID]},
        "work_events": {
            "total_minutes": work_events["total_minutes"],
            "total_sessions": work_events["total_sessions"],
        },
    }


def export_rows(full):
    """Flatten a full summary into (group, metric, value, currency) rows."""
    rows = [
        ["work_events", metric, str(full["work_events"][metric]), ""]
        for metric in WORK_EVENT_METRICS
    ]
    for status, totals in full["invoice_totals"].items():
        rows.append(["invoice_totals", f"{status}_count", str(totals["count"]), ""])
        for currency, amount in sorted(totals["amounts"].items()):
            rows.append(["invoice_totals", f"{status}_amount_cents", str(amount), currency])
    return rows
