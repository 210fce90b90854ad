"""Billing service — subscription sync helpers and plan logic.

Responsible for:
- Resolving plan names (starter / pro)
- Upserting billing_subscriptions rows, one per (user, provider)
- Starting Stripe / PayPal checkouts and confirming PayPal subscriptions

Functions flush but do NOT commit — the caller commits.
"""

import logging

from flask import current_app

from backoffice.errors import NotConfiguredError, ValidationError
from backoffice.extensions import db
from backoffice.models.billing import BillingSubscription
from backoffice.services import paypal_service, stripe_service
from backoffice.services.audit_service import log_audit
from backoffice.utils import isoformat, parse_datetime

logger = logging.getLogger(__name__)

PLANS = ["starter", "pro"]

_UNSET = object()


def resolve_plan(requested=None, fallback=None):
    """Map a requested plan name to a known plan.

    An explicit but unknown plan is rejected; an empty one falls back to
    the stored plan, then to BILLING_DEFAULT_PLAN.

    Raises:
        ValidationError: invalid_plan.
    """
    requested = (requested or "").strip().lower()
    if requested:
        if requested in PLANS:
            return requested
        raise ValidationError("Plan is invalid.", code="invalid_plan")

    for candidate in (fallback, current_app.config.get("BILLING_DEFAULT_PLAN")):
        candidate = (candidate or "").strip().lower()
        if candidate in PLANS:
            return candidate

    raise ValidationError("Plan is invalid.", code="invalid_plan")


def get_subscription(user_id, provider):
    return BillingSubscription.query.filter_by(
        user_id=user_id, provider=provider
    ).first()


def find_by_subscription_id(provider, subscription_id):
    if not subscription_id:
        return None
    return BillingSubscription.query.filter_by(
        provider=provider, subscription_id=subscription_id
    ).first()


def upsert_subscription(user_id, provider, status, customer_id=_UNSET,
                        subscription_id=_UNSET, current_period_end=_UNSET,
                        plan=_UNSET):
    """Create or update the (user, provider) subscription row.

    Fields left unset keep their stored value, so repeated syncs from
    different sources (checkout, subscription.updated) only touch what
    they know about.
    """
    sub = get_subscription(user_id, provider)
    if sub is None:
        sub = BillingSubscription(user_id=user_id, provider=provider)
        db.session.add(sub)

    sub.status = status
    if customer_id is not _UNSET and customer_id:
        sub.customer_id = customer_id
    if subscription_id is not _UNSET and subscription_id:
        sub.subscription_id = subscription_id
    if current_period_end is not _UNSET and current_period_end:
        sub.current_period_end = current_period_end
    if plan is not _UNSET and plan:
        sub.plan = plan

    db.session.flush()
    return sub


def has_active_subscription(user_id):
    return (
        BillingSubscription.query
        .filter_by(user_id=user_id)
        .filter(BillingSubscription.status.in_(BillingSubscription.ACTIVE_STATUSES))
        .first()
    ) is not None


def current_plan(user_id):
    """The plan of the user's active subscription, else BILLING_DEFAULT_PLAN.

    Returns None when neither names a known plan.
    """
    sub = (
        BillingSubscription.query
        .filter_by(user_id=user_id)
        .filter(BillingSubscription.status.in_(BillingSubscription.ACTIVE_STATUSES))
        .order_by(BillingSubscription.updated_at.desc())
        .first()
    )
    for candidate in (sub.plan if sub else None, current_app.config.get("BILLING_DEFAULT_PLAN")):
        candidate = (candidate or "").strip().lower()
        if candidate in PLANS:
            return candidate
    return None


def has_plan(user_id, required):
    """True when the user's plan is `required` or a higher tier."""
    plan = current_plan(user_id)
    if plan is None:
        return False
    return PLANS.index(plan) >= PLANS.index(required)


def start_stripe_checkout(user, plan=None):
    existing = get_subscription(user.id, BillingSubscription.PROVIDER_STRIPE)
    plan = resolve_plan(plan, existing.plan if existing else None)
    return stripe_service.create_checkout_session(user, plan)


def start_paypal_checkout(user_id, plan=None):
    """Create a PayPal subscription and record it as pending.

    Returns {"url", "subscription_id"}.
    """
    plan = resolve_plan(plan)
    session = paypal_service.create_subscription(user_id)

    upsert_subscription(
        user_id,
        BillingSubscription.PROVIDER_PAYPAL,
        status="pending",
        subscription_id=session["id"],
        plan=plan,
    )
    log_audit(user_id, "billing.paypal_checkout_started", "billing_subscription", None, {
        "subscription_id": session["id"],
        "plan": plan,
    })
    return {"url": session["approve_url"], "subscription_id": session["id"]}


def confirm_paypal_subscription(user_id, subscription_id, plan=None):
    """Fetch the subscription from PayPal and upsert the local row.

    Safe to call any number of times: the row is keyed by (user, provider).

    Raises:
        ValidationError: missing subscription_id or bad plan.
        NotConfiguredError / ProviderError: PayPal side.
    """
    subscription_id = (subscription_id or "").strip()
    if not subscription_id:
        raise ValidationError(
            "subscription_id is required.", code="invalid_subscription"
        )
    if not paypal_service.is_configured():
        raise NotConfiguredError("PayPal is not configured.")

    existing = get_subscription(user_id, BillingSubscription.PROVIDER_PAYPAL)
    plan = resolve_plan(plan, existing.plan if existing else None)

    data = paypal_service.get_subscription(subscription_id)
    status = str(data.get("status") or "pending").lower()
    payer_id = (data.get("subscriber") or {}).get("payer_id")
    next_billing = (data.get("billing_info") or {}).get("next_billing_time")

    sub = upsert_subscription(
        user_id,
        BillingSubscription.PROVIDER_PAYPAL,
        status=status,
        customer_id=payer_id,
        subscription_id=subscription_id,
        current_period_end=parse_datetime(next_billing),
        plan=plan,
    )
    log_audit(user_id, "billing.paypal_confirmed", "billing_subscription", sub.id, {
        "subscription_id": subscription_id,
        "status": status,
    })
    logger.info(f"PayPal subscription {subscription_id} confirmed for user {user_id} ({status})")
    return sub


def subscription_status(user_id, provider=None):
    """Latest subscription for the user (optionally one provider), or None."""
    query = BillingSubscription.query.filter_by(user_id=user_id)
    if provider:
        query = query.filter_by(provider=provider)
    return query.order_by(BillingSubscription.updated_at.desc()).first()


def subscription_to_dict(sub):
    if sub is None:
        return {"status": "inactive"}
    return {
        "id": sub.id,
        "provider": sub.provider,
        "customer_id": sub.customer_id,
        "subscription_id": sub.subscription_id,
        "status": sub.status,
        "plan": sub.plan,
        "current_period_end": isoformat(sub.current_period_end),
        "is_active": sub.is_active,
        "updated_at": isoformat(sub.updated_at),
    }
