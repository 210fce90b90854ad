"""Webhook event model (idempotency table).

Every inbound provider event is recorded by (provider, event_id) before any
business logic runs. The unique constraint is the single idempotency anchor
for billing reconciliation; the status column is the per-event state machine:

    (absent) -> received -> processing -> processed | failed
    failed -> processing   (provider retry)

processed is terminal: a processed event is never run again.
"""

import uuid

from backoffice.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    STATUS_RECEIVED = "received"
    STATUS_PROCESSING = "processing"
    STATUS_PROCESSED = "processed"
    STATUS_FAILED = "failed"

    # -- statuses a delivery may (re)start processing from --
    CLAIMABLE_STATUSES = [STATUS_RECEIVED, STATUS_FAILED]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    provider = db.Column(db.String(20), nullable=False)  # stripe | paypal
    event_id = db.Column(db.String(255), nullable=False)  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "checkout.session.completed"
    payload = db.Column(db.JSON, default=dict)
    status = db.Column(db.String(20), nullable=False, default=STATUS_RECEIVED)
    error_message = db.Column(db.Text, nullable=True)
    received_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
        db.Index("ix_webhook_events_status", "status"),
    )

    def __repr__(self):
        return f"<WebhookEvent {self.provider}:{self.event_id} ({self.status})>"
