"""Autopilot — derive invoice, package usage and follow-up from a work event.

Three independent rules run for every newly inserted work event:

  1. Invoicing        session AND billable     -> new draft + one line
  2. Package credit   session                  -> oldest package with room, +1 used
  3. Follow-up        session AND days > 0     -> open follow-up due start_at + days

no_show and admin events derive nothing. process() runs inside the caller's
transaction (work_event_service.log_work_event) and never commits: any
exception here rolls back the work event too.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from backoffice.extensions import db
from backoffice.models.client import Client
from backoffice.models.follow_up import FollowUp
from backoffice.models.invoice import InvoiceDraft, InvoiceLine
from backoffice.models.package import Package
from backoffice.models.work_event import WorkEvent
from backoffice.services import follow_up_service, invoice_service, package_service
from backoffice.services.template_service import resolve
from backoffice.utils import CENTS, as_utc, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class AutopilotResult:
    invoice_draft: Optional[InvoiceDraft] = None
    invoice_line: Optional[InvoiceLine] = None
    package: Optional[Package] = None
    follow_up: Optional[FollowUp] = None


def format_duration(minutes):
    """45 -> "45m", 90 -> "1h 30m", 120 -> "2h", 0 -> "0m"."""
    minutes = max(int(minutes or 0), 0)
    hours, rest = divmod(minutes, 60)
    if hours and rest:
        return f"{hours}h {rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


def quantity_hours(duration_minutes):
    """Duration in hours, rounded half-up to 2 decimals (0 for no duration)."""
    if not duration_minutes or duration_minutes <= 0:
        return Decimal("0.00")
    return round_half_up(Decimal(duration_minutes) / Decimal(60), CENTS)


def format_session_date(value):
    """'Jan 15' (no zero padding)."""
    return f"{value.strftime('%b')} {value.day}"


def process(work_event, context):
    """Apply every autopilot rule to a freshly flushed work event.

    Args:
        work_event: WorkEvent already added and flushed.
        context: EffectiveBillingContext resolved once for this request.

    Returns:
        AutopilotResult with whatever was derived.
    """
    result = AutopilotResult()

    if work_event.type != WorkEvent.TYPE_SESSION:
        return result

    if work_event.billable:
        result.invoice_draft, result.invoice_line = _create_invoice(work_event, context)

    result.package = package_service.consume_first_available(
        work_event.user_id, work_event.client_id
    )

    if context.follow_up_days and context.follow_up_days > 0:
        result.follow_up = _schedule_follow_up(work_event, context.follow_up_days)

    logger.info(
        f"Autopilot for work event {work_event.id}: "
        f"invoice={result.invoice_draft.id if result.invoice_draft else None} "
        f"package={result.package.id if result.package else None} "
        f"follow_up={result.follow_up.id if result.follow_up else None}"
    )
    return result


def _create_invoice(work_event, context):
    hours = quantity_hours(work_event.duration_minutes)
    rate = int(context.rate_cents or 0)
    session_day = as_utc(work_event.start_at).date()

    invoice = InvoiceDraft(
        user_id=work_event.user_id,
        client_id=work_event.client_id,
        period_start=session_day,
        period_end=session_day,
        amount_cents=int(round_half_up(rate * hours)),
        currency=context.currency,
        status=InvoiceDraft.STATUS_DRAFT,
    )
    db.session.add(invoice)
    db.session.flush()

    line = invoice_service.add_line(
        invoice,
        description=f"Session ({format_duration(work_event.duration_minutes)})",
        quantity=hours if hours > 0 else Decimal("1.00"),
        unit_price_cents=rate,
        work_event_id=work_event.id,
    )
    return invoice, line


def _schedule_follow_up(work_event, days):
    due_at = as_utc(work_event.start_at) + timedelta(days=days)

    client = Client.query.filter_by(
        id=work_event.client_id, user_id=work_event.user_id
    ).first()
    client_name = client.name if client and client.name else "your client"
    session_date = format_session_date(due_at - timedelta(days=days))

    message = resolve(work_event.user_id, "follow_up", {
        "client_name": client_name,
        "session_date": session_date,
    })
    if not message:
        message = f"Follow up with {client_name} about the {session_date} session."

    follow_up, _created = follow_up_service.create_for_source(
        user_id=work_event.user_id,
        client_id=work_event.client_id,
        source_type=FollowUp.SOURCE_WORK_EVENT,
        source_id=work_event.id,
        due_at=due_at,
        message=message,
    )
    return follow_up
