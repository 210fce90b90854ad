"""Reminder service — payment-reminder follow-ups for stale draft invoices.

For each user, draft invoices created at least `invoice_reminder_days` ago
get one open follow-up (source invoice_draft/<id>) due immediately. An
invoice that already has an open reminder is skipped, so running the sweep
again on unchanged data creates nothing.

Every run is recorded (settings.last_reminder_run_at + an audit entry),
including runs where reminders are disabled, so the UI can tell
"reminders are off" apart from "ran and found nothing".

Called from the API (`POST /api/reminders/run`) and from the Flask CLI
(`flask run-reminders`) on a daily cron schedule. Commits per reminder.
"""

import logging
from datetime import timedelta

import click
from sqlalchemy.exc import IntegrityError

from backoffice.extensions import db
from backoffice.models.follow_up import FollowUp
from backoffice.models.invoice import InvoiceDraft
from backoffice.models.user import User
from backoffice.services import billing_service, follow_up_service
from backoffice.services.audit_service import log_audit
from backoffice.services.settings_service import (
    effective_reminder_days,
    record_reminder_run,
)
from backoffice.services.template_service import resolve
from backoffice.utils import as_utc, format_amount, utcnow

logger = logging.getLogger(__name__)


def _reminder_message(invoice):
    amount = format_amount(invoice.amount_cents, invoice.currency)
    message = resolve(invoice.user_id, "payment_reminder", {
        "invoice_id": invoice.id,
        "amount": amount,
    })
    if not message:
        message = f"Reminder: invoice #{invoice.id} for {amount} is ready when you are."
    return message


def _record_run(user_id, run_at, created, reminder_days, disabled=False):
    record_reminder_run(user_id, run_at, created)

    metadata = {"created": created, "reminder_days": reminder_days}
    if disabled:
        metadata["disabled"] = True
    log_audit(user_id, "reminders.run", "reminder_run", None, metadata)
    db.session.commit()


def run_for_user(user_id):
    """Create payment-reminder follow-ups for one user's stale drafts.

    Returns:
        int: Number of follow-ups created.
    """
    reminder_days = effective_reminder_days(user_id)
    run_at = utcnow()

    if reminder_days is None or reminder_days <= 0:
        _record_run(user_id, run_at, 0, reminder_days, disabled=True)
        logger.info(f"Reminders disabled for user {user_id}")
        return 0

    cutoff = run_at - timedelta(days=reminder_days)
    drafts = (
        InvoiceDraft.query
        .filter_by(user_id=user_id, status=InvoiceDraft.STATUS_DRAFT)
        .order_by(InvoiceDraft.created_at.asc(), InvoiceDraft.id.asc())
        .all()
    )

    created = 0
    for invoice in drafts:
        # Compared in Python: SQLite returns naive datetimes.
        if invoice.created_at is None or as_utc(invoice.created_at) > cutoff:
            continue

        try:
            _follow_up, was_created = follow_up_service.create_for_source(
                user_id=user_id,
                client_id=invoice.client_id,
                source_type=FollowUp.SOURCE_INVOICE_DRAFT,
                source_id=invoice.id,
                due_at=run_at,
                message=_reminder_message(invoice),
            )
            db.session.commit()
        except IntegrityError:
            # A concurrent sweep created the open reminder first.
            db.session.rollback()
            logger.info(f"Reminder for invoice {invoice.id} already exists, skipping")
            continue

        if was_created:
            created += 1

    _record_run(user_id, run_at, created, reminder_days)
    logger.info(f"Reminder run for user {user_id}: {created} created (days={reminder_days})")
    return created


def run_all(only_active=False):
    """Run the sweep for every active user.

    Args:
        only_active: Only users holding an active billing subscription.

    Returns:
        int: Total follow-ups created.
    """
    users = User.query.filter_by(is_active=True).order_by(User.created_at.asc()).all()
    total = 0

    for user in users:
        if only_active and not billing_service.has_active_subscription(user.id):
            click.echo(f"── {user.email}: SKIP (no active subscription)")
            continue

        try:
            created = run_for_user(user.id)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Reminder run failed for user {user.id}: {e}", exc_info=True)
            click.echo(f"── {user.email}: ✗ FAILED: {e}")
            continue

        total += created
        click.echo(f"── {user.email}: {created} reminder(s) created")

    click.echo(f"Done: {total} reminder(s) created.")
    return total
