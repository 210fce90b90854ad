"""Billing subscription model.

One row per (user, provider), upserted from Stripe webhooks or the PayPal
confirm endpoint, never hard-deleted. status is synced from the provider
and is the source of truth for "does this user have an active plan".
"""

import uuid

from backoffice.extensions import db


class BillingSubscription(db.Model):
    __tablename__ = "billing_subscriptions"

    PROVIDER_STRIPE = "stripe"
    PROVIDER_PAYPAL = "paypal"
    PROVIDERS = [PROVIDER_STRIPE, PROVIDER_PAYPAL]

    # -- Common statuses (synced from the provider, lower-cased) --
    STATUSES = [
        "pending",
        "active",
        "past_due",
        "canceled",
        "trialing",
        "unpaid",
        "suspended",
        "incomplete_expired",
    ]
    ACTIVE_STATUSES = ["active", "trialing"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    provider = db.Column(db.String(20), nullable=False)  # stripe | paypal
    customer_id = db.Column(db.String(255), nullable=True)
    subscription_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="pending")
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    plan = db.Column(db.String(50), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "provider", name="uq_billing_subscriptions_user_provider"),
        db.Index("ix_billing_subscriptions_provider_sub", "provider", "subscription_id"),
    )

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def __repr__(self):
        return f"<BillingSubscription {self.provider} {self.plan} ({self.status})>"
