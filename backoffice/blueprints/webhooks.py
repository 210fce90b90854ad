"""Webhooks blueprint — /webhooks/stripe

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.extensions import limiter
from backoffice.services.webhook_service import handle_stripe_webhook

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/stripe", methods=["POST"])
@limiter.limit("120 per minute")
def stripe_webhook():
    """Receive and process a Stripe webhook event.

    1. Get raw body (required for signature verification)
    2. Verify, deduplicate on (provider, event id) and dispatch
    3. 200 for processed or duplicate, 400 for bad signatures,
       500 when a handler failed so Stripe retries

    CSRF is exempted for this blueprint in create_app().
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    result = handle_stripe_webhook(payload, sig_header)
    if result.http_status >= 500:
        logger.error(f"Webhook processing failed: {result.body}")
    return jsonify(result.body), result.http_status
