"""Billing blueprint — /api/billing/*

App subscription for the coach, through Stripe Checkout or PayPal.

Routes:
- POST /api/billing/checkout         — Stripe Checkout Session, returns its URL
- GET  /api/billing/status           — latest subscription (any provider)
- POST /api/billing/paypal/checkout  — PayPal subscription, returns the approve URL
- POST /api/billing/paypal/confirm   — sync a PayPal subscription after approval
- GET  /api/billing/paypal/status    — the PayPal subscription
"""

import logging

from flask import Blueprint
from flask_login import current_user, login_required

from backoffice.decorators import json_body, success, transactional
from backoffice.models.billing import BillingSubscription
from backoffice.services import billing_service
from backoffice.services.billing_service import subscription_to_dict

logger = logging.getLogger(__name__)

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


# ──────────────────────────────────────────────
# Stripe
# ──────────────────────────────────────────────

@billing_bp.route("/checkout", methods=["POST"])
@login_required
def checkout():
    """Create a Stripe Checkout Session; the SPA redirects to its URL.

    Activation happens later through the checkout.session.completed webhook.
    """
    data = json_body(optional=True)
    session = billing_service.start_stripe_checkout(current_user, data.get("plan"))
    logger.info(f"Checkout session {session['id']} created for user {current_user.id}")
    return success(session)


@billing_bp.route("/status", methods=["GET"])
@login_required
def status():
    sub = billing_service.subscription_status(current_user.id)
    return success(subscription_to_dict(sub))


# ──────────────────────────────────────────────
# PayPal
# ──────────────────────────────────────────────

@billing_bp.route("/paypal/checkout", methods=["POST"])
@login_required
@transactional
def paypal_checkout():
    data = json_body(optional=True)
    return success(billing_service.start_paypal_checkout(current_user.id, data.get("plan")))


@billing_bp.route("/paypal/confirm", methods=["POST"])
@login_required
@transactional
def paypal_confirm():
    data = json_body()
    sub = billing_service.confirm_paypal_subscription(
        current_user.id, data.get("subscription_id"), data.get("plan")
    )
    return success(subscription_to_dict(sub))


@billing_bp.route("/paypal/status", methods=["GET"])
@login_required
def paypal_status():
    sub = billing_service.subscription_status(
        current_user.id, BillingSubscription.PROVIDER_PAYPAL
    )
    return success(subscription_to_dict(sub))
