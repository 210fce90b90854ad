"""Invoice service — draft lifecycle, lines, payment links, email/PDF.

Status transitions are enforced via InvoiceDraft.VALID_TRANSITIONS:

    draft -> sent -> paid
    draft -> paid
    draft | sent -> void

paid and void are terminal. Paying or voiding deactivates every active
payment link of the invoice. amount_cents is only ever written by
recompute_amount(), from the stored lines.

Functions flush but do NOT commit — the caller commits.
"""

import logging
from decimal import Decimal

from sqlalchemy import update

from backoffice.errors import ConflictError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models.invoice import InvoiceDraft, InvoiceLine, PaymentLink
from backoffice.services import pdf_service, stripe_service
from backoffice.services.audit_service import log_audit
from backoffice.services.email_service import send_email
from backoffice.utils import (
    CENTS,
    format_amount,
    isoformat,
    parse_datetime,
    round_half_up,
    sanitize_text,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────

def get_invoice(user_id, invoice_id):
    """Return the user's invoice draft or raise NotFoundError."""
    invoice = None
    if invoice_id:
        invoice = InvoiceDraft.query.filter_by(
            id=str(invoice_id), user_id=user_id
        ).first()
    if invoice is None:
        raise NotFoundError("Invoice draft not found.")
    return invoice


def list_invoices(user_id, status=InvoiceDraft.STATUS_DRAFT):
    if status not in InvoiceDraft.STATUSES:
        raise ValidationError("Status is invalid.", code="invalid_status")
    return (
        InvoiceDraft.query
        .filter_by(user_id=user_id, status=status)
        .order_by(InvoiceDraft.created_at.desc(), InvoiceDraft.id.asc())
        .all()
    )


def list_with_lines(user_id, date_from=None, date_to=None):
    """Invoices (any status) created within [date_from, date_to], oldest first."""
    start = _parse_range_bound(date_from)
    end = _parse_range_bound(date_to)

    query = InvoiceDraft.query.filter_by(user_id=user_id)
    if start is not None:
        query = query.filter(InvoiceDraft.created_at >= start)
    if end is not None:
        query = query.filter(InvoiceDraft.created_at <= end)
    return query.order_by(InvoiceDraft.created_at.asc(), InvoiceDraft.id.asc()).all()


def list_for_export(user_id, status=None, date_from=None, date_to=None):
    """Invoices for CSV export: optional status, created_at within the range."""
    if status and status not in InvoiceDraft.STATUSES:
        raise ValidationError("Status is invalid.", code="invalid_status")
    start = _parse_range_bound(date_from)
    end = _parse_range_bound(date_to)

    query = InvoiceDraft.query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    if start is not None:
        query = query.filter(InvoiceDraft.created_at >= start)
    if end is not None:
        query = query.filter(InvoiceDraft.created_at <= end)
    return query.order_by(InvoiceDraft.created_at.desc(), InvoiceDraft.id.asc()).all()


def _parse_range_bound(raw):
    if raw is None or raw == "":
        return None
    value = parse_datetime(raw)
    if value is None:
        raise ValidationError("from/to must be valid dates.", code="invalid_range")
    return value


# ──────────────────────────────────────────────
# Lines & amount
# ──────────────────────────────────────────────

def recompute_amount(invoice):
    """Set amount_cents to the sum of quantity x unit_price over stored lines."""
    lines = InvoiceLine.query.filter_by(invoice_draft_id=invoice.id).all()
    total = sum(
        (Decimal(str(line.quantity)) * line.unit_price_cents for line in lines),
        Decimal("0"),
    )
    invoice.amount_cents = int(round_half_up(total))
    db.session.flush()
    return invoice.amount_cents


def add_line(invoice, description, quantity, unit_price_cents, work_event_id=None):
    """Append a line and recompute the invoice amount.

    Raises:
        ConflictError: the invoice is paid or void.
    """
    if invoice.is_terminal:
        raise ConflictError(
            "Lines cannot be added to paid or void invoices.", code="invalid_status"
        )

    line = InvoiceLine(
        invoice_draft_id=invoice.id,
        work_event_id=work_event_id,
        description=description,
        quantity=round_half_up(quantity, CENTS),
        unit_price_cents=int(unit_price_cents),
    )
    db.session.add(line)
    db.session.flush()

    recompute_amount(invoice)
    return line


# ──────────────────────────────────────────────
# Status transitions
# ──────────────────────────────────────────────

def deactivate_links(invoice, keep_link_id=None):
    """Set every active link of the invoice (except keep_link_id) to inactive."""
    query = (
        PaymentLink.query
        .filter_by(invoice_draft_id=invoice.id, status=PaymentLink.STATUS_ACTIVE)
    )
    if keep_link_id:
        query = query.filter(PaymentLink.id != keep_link_id)
    count = 0
    for link in query.all():
        link.status = PaymentLink.STATUS_INACTIVE
        count += 1
    db.session.flush()
    return count


def transition(invoice, new_status, metadata=None):
    """Move an invoice to new_status, enforcing VALID_TRANSITIONS.

    Same-status calls are no-ops that return False (voiding again still
    deactivates links). Returns True when the status changed.

    Raises:
        ConflictError: invalid_transition, status left unchanged.
    """
    old_status = invoice.status

    if old_status == new_status:
        if new_status == InvoiceDraft.STATUS_VOID:
            deactivate_links(invoice)
        return False

    allowed = InvoiceDraft.VALID_TRANSITIONS.get(old_status, [])
    if new_status not in allowed:
        raise ConflictError(
            f"Cannot transition invoice from '{old_status}' to '{new_status}'.",
            code="invalid_transition",
            details={"from": old_status, "to": new_status},
        )

    invoice.status = new_status
    db.session.flush()

    if new_status in InvoiceDraft.TERMINAL_STATUSES:
        deactivate_links(invoice)

    action = {
        InvoiceDraft.STATUS_SENT: "invoice.sent",
        InvoiceDraft.STATUS_PAID: "invoice.paid",
        InvoiceDraft.STATUS_VOID: "invoice.voided",
    }[new_status]
    log_audit(invoice.user_id, action, "invoice_draft", invoice.id, {
        "old_status": old_status,
        "new_status": new_status,
        **(metadata or {}),
    })
    return True


def mark_sent(user_id, invoice_id):
    invoice = get_invoice(user_id, invoice_id)
    transition(invoice, InvoiceDraft.STATUS_SENT)
    return invoice


def mark_paid(user_id, invoice_id):
    invoice = get_invoice(user_id, invoice_id)
    transition(invoice, InvoiceDraft.STATUS_PAID)
    return invoice


def void_invoice(user_id, invoice_id):
    invoice = get_invoice(user_id, invoice_id)
    transition(invoice, InvoiceDraft.STATUS_VOID)
    return invoice


def bulk_mark_sent(user_id, ids):
    """Move the user's drafts among ids to sent. Returns the number updated.

    Ids that are foreign, missing or not in draft are skipped silently.

    Raises:
        ValidationError: invalid_ids when ids is not a non-empty list of ids.
    """
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids must be a non-empty array.", code="invalid_ids")
    clean_ids = []
    for raw in ids:
        if not isinstance(raw, (str, int)) or isinstance(raw, bool) or str(raw).strip() == "":
            raise ValidationError("ids must contain invoice ids.", code="invalid_ids")
        clean_ids.append(str(raw).strip())

    result = db.session.execute(
        update(InvoiceDraft)
        .where(InvoiceDraft.id.in_(clean_ids))
        .where(InvoiceDraft.user_id == user_id)
        .where(InvoiceDraft.status == InvoiceDraft.STATUS_DRAFT)
        .values(status=InvoiceDraft.STATUS_SENT)
        .execution_options(synchronize_session="fetch")
    )
    count = result.rowcount

    log_audit(user_id, "invoice.bulk_sent", "invoice_draft", None, {
        "requested": len(clean_ids),
        "updated": count,
    })
    return count


# ──────────────────────────────────────────────
# Email & PDF
# ──────────────────────────────────────────────

def _lines_for(invoice):
    return (
        InvoiceLine.query
        .filter_by(invoice_draft_id=invoice.id)
        .order_by(InvoiceLine.created_at.asc(), InvoiceLine.id.asc())
        .all()
    )


def render_pdf(user_id, invoice_id):
    invoice = get_invoice(user_id, invoice_id)
    return pdf_service.render_invoice_pdf(invoice, invoice.client, _lines_for(invoice))


def email_invoice(user_id, invoice_id, subject=None, message=None):
    """Email the invoice PDF to the client, then draft -> sent.

    Raises:
        ConflictError: invalid_status (paid/void) or missing_email.
        DeliveryError: the mail was not sent; nothing changed.
    """
    invoice = get_invoice(user_id, invoice_id)
    if invoice.is_terminal:
        raise ConflictError(
            "Paid or void invoices cannot be emailed.", code="invalid_status"
        )

    client = invoice.client
    if client is None:
        raise NotFoundError("Client not found.")
    if not client.email:
        raise ConflictError("Client email is required to send.", code="missing_email")

    subject = sanitize_text(subject) or f"Invoice #{invoice.id}"
    message = (message or "").strip()
    if not message:
        message = (
            f"Hi {client.name or 'there'},\n\n"
            f"Attached is invoice #{invoice.id} for "
            f"{format_amount(invoice.amount_cents, invoice.currency)}.\n\n"
            "Thanks,\nBackOffice Autopilot"
        )

    pdf = pdf_service.render_invoice_pdf(invoice, client, _lines_for(invoice))
    send_email(
        to=client.email,
        subject=subject,
        body=message,
        attachment=(f"invoice-{invoice.id}.pdf", pdf, "application/pdf"),
    )

    if invoice.status == InvoiceDraft.STATUS_DRAFT:
        transition(invoice, InvoiceDraft.STATUS_SENT)

    log_audit(user_id, "invoice.emailed", "invoice_draft", invoice.id, {
        "to": client.email,
    })
    logger.info(f"Invoice {invoice.id} emailed to {client.email}")
    return invoice


# ──────────────────────────────────────────────
# Payment links
# ──────────────────────────────────────────────

def active_link(invoice):
    return (
        PaymentLink.query
        .filter_by(invoice_draft_id=invoice.id, status=PaymentLink.STATUS_ACTIVE)
        .order_by(PaymentLink.created_at.desc())
        .first()
    )


def _check_payable(invoice):
    if invoice.is_terminal:
        raise ConflictError(
            "Payment links are unavailable for paid or void invoices.",
            code="invalid_status",
        )
    if invoice.amount_cents <= 0:
        raise ValidationError(
            "Invoice amount must be greater than 0.", code="invalid_amount"
        )


def _create_link(user_id, invoice):
    created = stripe_service.create_payment_link(invoice, f"Invoice draft #{invoice.id}")
    link = PaymentLink(
        invoice_draft_id=invoice.id,
        provider="stripe",
        provider_id=created["id"],
        url=created["url"],
        status=PaymentLink.STATUS_ACTIVE,
    )
    db.session.add(link)
    db.session.flush()

    log_audit(user_id, "payment_link.created", "payment_link", link.id, {
        "invoice_draft_id": invoice.id,
        "provider_id": link.provider_id,
    })
    return link


def create_payment_link(user_id, invoice_id):
    """Return the invoice's active link, creating one if there is none."""
    invoice = get_invoice(user_id, invoice_id)
    _check_payable(invoice)

    existing = active_link(invoice)
    if existing:
        return existing
    return _create_link(user_id, invoice)


def refresh_payment_link(user_id, invoice_id):
    """Deactivate every existing link, then create a fresh one."""
    invoice = get_invoice(user_id, invoice_id)
    _check_payable(invoice)

    deactivate_links(invoice)
    return _create_link(user_id, invoice)


# ──────────────────────────────────────────────
# Serialisation
# ──────────────────────────────────────────────

def line_to_dict(line):
    return {
        "id": line.id,
        "work_event_id": line.work_event_id,
        "description": line.description,
        "quantity": f"{Decimal(str(line.quantity)):.2f}",
        "unit_price_cents": line.unit_price_cents,
    }


def link_to_dict(link):
    return {
        "id": link.id,
        "invoice_draft_id": link.invoice_draft_id,
        "provider": link.provider,
        "provider_id": link.provider_id,
        "url": link.url,
        "status": link.status,
        "created_at": isoformat(link.created_at),
    }


def invoice_to_dict(invoice, include_lines=False):
    data = {
        "id": invoice.id,
        "client_id": invoice.client_id,
        "client_name": invoice.client.name if invoice.client else None,
        "period_start": isoformat(invoice.period_start),
        "period_end": isoformat(invoice.period_end),
        "amount_cents": invoice.amount_cents,
        "currency": invoice.currency,
        "status": invoice.status,
        "created_at": isoformat(invoice.created_at),
        "updated_at": isoformat(invoice.updated_at),
    }
    if include_lines:
        data["lines"] = [line_to_dict(line) for line in _lines_for(invoice)]
    return data
