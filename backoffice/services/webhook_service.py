"""Webhook service — idempotent reconciliation of payment-provider events.

Providers deliver at least once; this module makes the effects apply at
most once per (provider, event_id):

  1. verify the signature (nothing is recorded for a bad one)
  2. insert-if-absent into webhook_events
  3. already processed / processing  -> report duplicate, do nothing
  4. claim: conditional UPDATE received|failed -> processing
  5. resolve the EventKind once and dispatch
  6. success -> processed (same commit as the business changes)
     failure -> rollback, mark failed, answer 500 so the provider retries

Each handler is itself idempotent ("mark paid unless already paid/void",
"move the link only from the statuses it may leave") because a failed
event is re-run from the top on retry.
"""

import enum
import json
import logging

import stripe
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from backoffice.extensions import db
from backoffice.models.billing import BillingSubscription
from backoffice.models.invoice import InvoiceDraft, PaymentLink
from backoffice.models.user import User
from backoffice.models.webhook_event import WebhookEvent
from backoffice.services import billing_service, invoice_service
from backoffice.services.audit_service import log_audit
from backoffice.services.stripe_service import extract_period_end, verify_webhook_signature
from backoffice.utils import utcnow

logger = logging.getLogger(__name__)

PROVIDER_STRIPE = "stripe"

# A payment failure never overrides a settled link (paid, refunded, disputed).
FAILABLE_LINK_STATUSES = [PaymentLink.STATUS_ACTIVE, PaymentLink.STATUS_INACTIVE]


class EventKind(enum.Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    UNHANDLED = "unhandled"


STRIPE_EVENT_KINDS = {
    "checkout.session.completed": EventKind.CHECKOUT_COMPLETED,
    "payment_intent.payment_failed": EventKind.PAYMENT_FAILED,
    "payment_intent.canceled": EventKind.PAYMENT_FAILED,
    "checkout.session.async_payment_failed": EventKind.PAYMENT_FAILED,
    "charge.refunded": EventKind.REFUNDED,
    "charge.refund.updated": EventKind.REFUNDED,
    "charge.dispute.created": EventKind.DISPUTED,
    "customer.subscription.updated": EventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_DELETED,
}


def resolve_event_kind(event_type):
    return STRIPE_EVENT_KINDS.get(event_type, EventKind.UNHANDLED)


class WebhookResult:
    """What the blueprint sends back: a JSON body and an HTTP status."""

    def __init__(self, http_status, body):
        self.http_status = http_status
        self.body = body

    @classmethod
    def error(cls, http_status, code, message):
        return cls(http_status, {"error": {"code": code, "message": message, "details": {}}})

    @classmethod
    def ok(cls, status, duplicate=False):
        return cls(200, {"status": status, "duplicate": duplicate})


# ──────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────

def handle_stripe_webhook(payload, sig_header):
    """Verify, deduplicate and process one Stripe delivery.

    Args:
        payload: raw request body (str or bytes), exactly as received.
        sig_header: value of the Stripe-Signature header.

    Returns:
        WebhookResult.
    """
    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return WebhookResult.error(400, "missing_signature", "Missing signature.")

    try:
        verify_webhook_signature(payload, sig_header)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return WebhookResult.error(400, "invalid_signature", "Invalid signature.")

    try:
        event = json.loads(payload)
    except ValueError:
        return WebhookResult.error(400, "invalid_json", "Payload is not valid JSON.")

    event_id = event.get("id")
    event_type = event.get("type") or ""
    if not event_id:
        return WebhookResult.error(400, "invalid_event", "Event id is missing.")

    row = _record_event(PROVIDER_STRIPE, event_id, event_type, event)

    if row.status not in WebhookEvent.CLAIMABLE_STATUSES:
        logger.warning(f"Duplicate webhook event {event_id} ({row.status}), skipping")
        return WebhookResult.ok("duplicate", duplicate=True)

    row_id = row.id
    if not _claim(row_id):
        logger.info(f"Webhook event {event_id} claimed by another worker, skipping")
        return WebhookResult.ok("duplicate", duplicate=True)

    kind = resolve_event_kind(event_type)
    obj = (event.get("data") or {}).get("object") or {}

    try:
        _dispatch(kind, obj, event_id)
        row = db.session.get(WebhookEvent, row_id)
        row.status = WebhookEvent.STATUS_PROCESSED
        row.processed_at = utcnow()
        row.error_message = None
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error handling {event_type} ({event_id}): {e}", exc_info=True)
        _mark_failed(row_id, str(e))
        return WebhookResult.error(500, "processing_failed", "Webhook processing failed.")

    logger.info(f"Processed webhook {event_id} ({event_type} -> {kind.value})")
    return WebhookResult.ok("processed")


# ──────────────────────────────────────────────
# Idempotency record
# ──────────────────────────────────────────────

def _find_event(provider, event_id):
    return WebhookEvent.query.filter_by(provider=provider, event_id=event_id).first()


def _record_event(provider, event_id, event_type, payload):
    """Insert the event if absent. Returns the (possibly pre-existing) row."""
    existing = _find_event(provider, event_id)
    if existing:
        return existing

    row = WebhookEvent(
        provider=provider,
        event_id=event_id,
        event_type=event_type,
        payload=payload,
        status=WebhookEvent.STATUS_RECEIVED,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Another delivery of the same event recorded it first.
        db.session.rollback()
        row = _find_event(provider, event_id)
    return row


def _claim(row_id):
    """received|failed -> processing. False when someone else holds it."""
    result = db.session.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == row_id)
        .where(WebhookEvent.status.in_(WebhookEvent.CLAIMABLE_STATUSES))
        .values(status=WebhookEvent.STATUS_PROCESSING)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def _mark_failed(row_id, message):
    db.session.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == row_id)
        .values(status=WebhookEvent.STATUS_FAILED, error_message=message[:2000])
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


# ──────────────────────────────────────────────
# Dispatch
# ──────────────────────────────────────────────

def _dispatch(kind, obj, event_id):
    if kind is EventKind.CHECKOUT_COMPLETED:
        _handle_checkout_completed(obj, event_id)
    elif kind is EventKind.PAYMENT_FAILED:
        _handle_link_status(obj, PaymentLink.STATUS_FAILED, None, FAILABLE_LINK_STATUSES)
    elif kind is EventKind.REFUNDED:
        _handle_link_status(obj, PaymentLink.STATUS_REFUNDED, "invoice.refunded")
    elif kind is EventKind.DISPUTED:
        _handle_link_status(obj, PaymentLink.STATUS_DISPUTED, "invoice.disputed")
    elif kind is EventKind.SUBSCRIPTION_UPDATED:
        _handle_subscription_changed(obj, None)
    elif kind is EventKind.SUBSCRIPTION_DELETED:
        _handle_subscription_changed(obj, "canceled")
    else:
        logger.info(f"Unhandled webhook event {event_id}, recorded only")


def find_payment_link(obj):
    """Locate the PaymentLink an event object refers to, or None.

    Tries, in order: the Stripe payment_link id, metadata.payment_link_id,
    then the newest link of metadata.invoice_draft_id.
    """
    metadata = obj.get("metadata") or {}

    provider_link_id = obj.get("payment_link")
    if provider_link_id:
        link = PaymentLink.query.filter_by(
            provider=PROVIDER_STRIPE, provider_id=provider_link_id
        ).first()
        if link:
            return link

    link_id = metadata.get("payment_link_id")
    if link_id:
        link = db.session.get(PaymentLink, str(link_id))
        if link:
            return link

    invoice_id = metadata.get("invoice_draft_id")
    if invoice_id:
        return (
            PaymentLink.query
            .filter_by(invoice_draft_id=str(invoice_id))
            .order_by(PaymentLink.created_at.desc(), PaymentLink.id.desc())
            .first()
        )

    return None


def _handle_checkout_completed(obj, event_id):
    """checkout.session.completed: activate the subscription and/or pay the invoice."""
    metadata = obj.get("metadata") or {}
    user_id = obj.get("client_reference_id") or metadata.get("user_id")
    subscription_id = obj.get("subscription")
    customer_id = obj.get("customer")

    if user_id and (subscription_id or customer_id):
        _activate_subscription(str(user_id), customer_id, subscription_id, metadata)

    link = find_payment_link(obj)
    if link is None:
        if not (user_id and (subscription_id or customer_id)):
            logger.warning(f"checkout.session.completed {event_id}: no user or payment link")
        return

    _mark_invoice_paid(link, event_id)


def _activate_subscription(user_id, customer_id, subscription_id, metadata):
    if db.session.get(User, user_id) is None:
        logger.warning(f"checkout.session.completed: unknown user {user_id}")
        return

    existing = billing_service.get_subscription(user_id, BillingSubscription.PROVIDER_STRIPE)
    was_active = existing is not None and existing.status == "active"

    plan = (metadata.get("plan") or "").lower()
    if plan not in billing_service.PLANS:
        plan = (existing.plan if existing else None) or current_app.config.get("BILLING_DEFAULT_PLAN")

    sub = billing_service.upsert_subscription(
        user_id,
        BillingSubscription.PROVIDER_STRIPE,
        status="active",
        customer_id=customer_id,
        subscription_id=subscription_id,
        plan=plan,
    )

    if not was_active:
        log_audit(user_id, "subscription.activated", "billing_subscription", sub.id, {
            "provider": BillingSubscription.PROVIDER_STRIPE,
            "subscription_id": subscription_id,
            "plan": plan,
        })


def _mark_invoice_paid(link, event_id):
    invoice = db.session.get(InvoiceDraft, link.invoice_draft_id)
    if invoice is None:
        logger.warning(f"Payment link {link.id} has no invoice")
        return

    if invoice.status in InvoiceDraft.TERMINAL_STATUSES:
        logger.info(f"Invoice {invoice.id} already {invoice.status}, not marking paid")
        return

    invoice_service.transition(invoice, InvoiceDraft.STATUS_PAID, metadata={
        "payment_link_id": link.id,
        "event_id": event_id,
    })
    link.status = PaymentLink.STATUS_PAID
    db.session.flush()


def _handle_link_status(obj, status, audit_action, from_statuses=None):
    """Move the referenced link to status with a conditional UPDATE.

    from_statuses limits which current statuses may change; None means any
    status other than the target.
    """
    link = find_payment_link(obj)
    if link is None:
        logger.warning(f"No payment link found for {status} event")
        return

    old_status = link.status
    query = (
        update(PaymentLink)
        .where(PaymentLink.id == link.id)
        .where(PaymentLink.status != status)
    )
    if from_statuses is not None:
        query = query.where(PaymentLink.status.in_(from_statuses))
    result = db.session.execute(
        query.values(status=status).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        if old_status != status:
            logger.info(f"Payment link {link.id} stays {old_status}, ignoring {status} event")
        return
    db.session.refresh(link)

    if audit_action:
        invoice = db.session.get(InvoiceDraft, link.invoice_draft_id)
        log_audit(invoice.user_id if invoice else None, audit_action, "invoice_draft",
                  link.invoice_draft_id, {
                      "payment_link_id": link.id,
                      "old_status": old_status,
                  })


def _handle_subscription_changed(obj, forced_status):
    """customer.subscription.updated / .deleted: sync status and period end."""
    subscription_id = obj.get("id")
    sub = billing_service.find_by_subscription_id(
        BillingSubscription.PROVIDER_STRIPE, subscription_id
    )
    if sub is None:
        logger.warning(f"Subscription event: no local record for sub={subscription_id}")
        return

    status = forced_status or obj.get("status") or sub.status
    billing_service.upsert_subscription(
        sub.user_id,
        BillingSubscription.PROVIDER_STRIPE,
        status=status,
        current_period_end=extract_period_end(obj),
    )

    action = "subscription.deleted" if forced_status else "subscription.updated"
    log_audit(sub.user_id, action, "billing_subscription", sub.id, {
        "subscription_id": subscription_id,
        "status": status,
    })
