"""Invoice drafts blueprint — /api/invoice-drafts/*

Draft listing, the bulk review list, CSV export, state transitions (send,
mark paid, void), PDF download, email delivery and Stripe payment links.
"""

import logging

from flask import Blueprint, Response, request
from flask_login import current_user, login_required

from backoffice.decorators import csv_response, json_body, success, transactional
from backoffice.services import invoice_service
from backoffice.services.invoice_service import invoice_to_dict, link_to_dict
from backoffice.utils import isoformat

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoice-drafts")

EXPORT_HEADER = [
    "id",
    "client_id",
    "client_name",
    "period_start",
    "period_end",
    "amount_cents",
    "currency",
    "status",
    "created_at",
    "updated_at",
]


# ──────────────────────────────────────────────
# Listing
# ──────────────────────────────────────────────

@invoices_bp.route("", methods=["GET"])
@login_required
def list_invoices():
    status = request.args.get("status") or "draft"
    invoices = invoice_service.list_invoices(current_user.id, status)
    return success([invoice_to_dict(i) for i in invoices])


@invoices_bp.route("/bulk", methods=["GET"])
@login_required
def bulk_list():
    """Invoices (with lines) created within ?from=&to=, for bulk review."""
    invoices = invoice_service.list_with_lines(
        current_user.id,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
    )
    return success([invoice_to_dict(i, include_lines=True) for i in invoices])


@invoices_bp.route("/bulk/mark-sent", methods=["POST"])
@login_required
@transactional
def bulk_mark_sent():
    data = json_body()
    count = invoice_service.bulk_mark_sent(current_user.id, data.get("ids"))
    return success({"updated": count})


@invoices_bp.route("/export", methods=["GET"])
@login_required
def export_invoices():
    """CSV of invoices, filtered by ?status=&from=&to= (created_at)."""
    invoices = invoice_service.list_for_export(
        current_user.id,
        status=request.args.get("status") or None,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
    )
    rows = [
        [
            i.id,
            i.client_id,
            i.client.name if i.client else "",
            isoformat(i.period_start) or "",
            isoformat(i.period_end) or "",
            i.amount_cents,
            i.currency,
            i.status,
            isoformat(i.created_at) or "",
            isoformat(i.updated_at) or "",
        ]
        for i in invoices
    ]
    return csv_response(EXPORT_HEADER, rows, "invoice-drafts.csv")


@invoices_bp.route("/<invoice_id>", methods=["GET"])
@login_required
def get_invoice(invoice_id):
    invoice = invoice_service.get_invoice(current_user.id, invoice_id)
    data = invoice_to_dict(invoice, include_lines=True)
    link = invoice_service.active_link(invoice)
    data["payment_link"] = link_to_dict(link) if link else None
    return success(data)


# ──────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────

@invoices_bp.route("/<invoice_id>/send", methods=["POST"])
@login_required
@transactional
def mark_sent(invoice_id):
    invoice = invoice_service.mark_sent(current_user.id, invoice_id)
    return success(invoice_to_dict(invoice))


@invoices_bp.route("/<invoice_id>/mark-paid", methods=["POST"])
@login_required
@transactional
def mark_paid(invoice_id):
    invoice = invoice_service.mark_paid(current_user.id, invoice_id)
    return success(invoice_to_dict(invoice))


@invoices_bp.route("/<invoice_id>/void", methods=["POST"])
@login_required
@transactional
def void_invoice(invoice_id):
    invoice = invoice_service.void_invoice(current_user.id, invoice_id)
    return success(invoice_to_dict(invoice))


# ──────────────────────────────────────────────
# PDF & email
# ──────────────────────────────────────────────

@invoices_bp.route("/<invoice_id>/pdf", methods=["GET"])
@login_required
def download_pdf(invoice_id):
    pdf = invoice_service.render_pdf(current_user.id, invoice_id)
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'inline; filename="invoice-{invoice_id}.pdf"'},
    )


@invoices_bp.route("/<invoice_id>/email", methods=["POST"])
@login_required
@transactional
def email_invoice(invoice_id):
    data = json_body(optional=True)
    invoice = invoice_service.email_invoice(
        current_user.id,
        invoice_id,
        subject=data.get("subject"),
        message=data.get("message"),
    )
    return success(invoice_to_dict(invoice))


# ──────────────────────────────────────────────
# Payment links
# ──────────────────────────────────────────────

@invoices_bp.route("/<invoice_id>/payment-link", methods=["POST"])
@login_required
@transactional
def create_payment_link(invoice_id):
    link = invoice_service.create_payment_link(current_user.id, invoice_id)
    return success(link_to_dict(link))


@invoices_bp.route("/<invoice_id>/payment-link/refresh", methods=["POST"])
@login_required
@transactional
def refresh_payment_link(invoice_id):
    link = invoice_service.refresh_payment_link(current_user.id, invoice_id)
    logger.info(f"Payment link refreshed for invoice {invoice_id}")
    return success(link_to_dict(link))
