"""PDF renderer — invoice data to PDF bytes.

The HTML comes from templates/invoice.html; WeasyPrint turns it into a
PDF. WeasyPrint needs system libraries (pango, cairo), so it is imported
on first use rather than at app start.
"""

import logging

from flask import render_template

from backoffice.errors import ExternalServiceError

logger = logging.getLogger(__name__)


def render_invoice_html(invoice, client, lines):
    return render_template("invoice.html", invoice=invoice, client=client, lines=lines)


def render_invoice_pdf(invoice, client, lines):
    """Render an invoice to PDF. Pure: no database access, no side effects.

    Raises:
        ExternalServiceError: WeasyPrint is unavailable or failed.
    """
    html = render_invoice_html(invoice, client, lines)

    try:
        from weasyprint import HTML
    except ImportError:
        raise ExternalServiceError(
            "PDF rendering is not available on this server.", code="pdf_unavailable"
        )

    try:
        return HTML(string=html).write_pdf()
    except Exception as e:
        logger.error(f"PDF rendering failed for invoice {invoice.id}: {e}", exc_info=True)
        raise ExternalServiceError("PDF rendering failed.", code="pdf_failed")
