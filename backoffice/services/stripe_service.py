"""Stripe service — all Stripe API calls.

Responsible for:
- Creating Stripe Checkout Sessions (the app subscription)
- Creating Stripe Payment Links for invoice drafts
- Verifying webhook signatures

Every call sets stripe.api_key from config first. SDK errors are turned
into ProviderError so blueprints answer 502 instead of 500.
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from backoffice.errors import NotConfiguredError, ProviderError

logger = logging.getLogger(__name__)


def _configure():
    secret_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret_key:
        raise NotConfiguredError("Stripe is not configured.")
    stripe.api_key = secret_key


def extract_period_end(sub_data):
    """Extract current_period_end from a Stripe subscription object.

    In newer Stripe API versions, current_period_end has moved from the
    subscription top level to items.data[0].current_period_end.
    This helper checks both locations.

    Returns a timezone-aware datetime or None.
    """
    ts = sub_data.get("current_period_end")

    if not ts:
        items = sub_data.get("items")
        if items and items.get("data") and len(items["data"]) > 0:
            ts = items["data"][0].get("current_period_end")

    if ts:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    return None


# ──────────────────────────────────────────────
# Checkout (app subscription)
# ──────────────────────────────────────────────

def create_checkout_session(user, plan):
    """Create a Stripe Checkout Session for the app subscription.

    client_reference_id and metadata.user_id both carry the user id so the
    checkout.session.completed webhook can find the user again.

    Returns {"id", "url"}.
    Raises NotConfiguredError / ProviderError.
    """
    _configure()
    config = current_app.config
    price_id = config.get("STRIPE_PRICE_ID")
    if not price_id:
        raise NotConfiguredError("Stripe price is not configured.")

    app_base_url = config["APP_BASE_URL"]
    success_url = config.get("STRIPE_SUCCESS_URL") or (
        f"{app_base_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = config.get("STRIPE_CANCEL_URL") or f"{app_base_url}/billing/cancel"

    try:
        session = stripe.checkout.Session.create(
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            customer_email=user.email,
            client_reference_id=str(user.id),
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "user_id": str(user.id),
                "plan": plan,
            },
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout failed for user {user.id}: {e}")
        raise ProviderError(f"Stripe checkout failed: {e}")

    return {"id": session.id, "url": session.url}


# ──────────────────────────────────────────────
# Payment links (invoice drafts)
# ──────────────────────────────────────────────

def create_payment_link(invoice, description):
    """Create a one-item Stripe Payment Link for an invoice's amount.

    The invoice id rides along in metadata (both on the link and on the
    resulting PaymentIntent) so failure / refund events can be traced back
    even when they don't carry the payment_link id.

    Returns {"id", "url"}.
    """
    _configure()
    metadata = {"invoice_draft_id": str(invoice.id)}

    try:
        link = stripe.PaymentLink.create(
            line_items=[
                {
                    "price_data": {
                        "currency": invoice.currency.lower(),
                        "product_data": {"name": description},
                        "unit_amount": invoice.amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe payment link failed for invoice {invoice.id}: {e}")
        raise ProviderError(f"Stripe payment link failed: {e}")

    return {"id": link.id, "url": link.url}


# ──────────────────────────────────────────────
# Webhooks
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
