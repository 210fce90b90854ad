"""Invoice models.

- InvoiceDraft: an editable invoice. amount_cents is always the sum of its
  lines (recomputed by invoice_service after every line insert).
- InvoiceLine: append-only line owned by exactly one draft.
- PaymentLink: a provider-hosted payment page for a draft. At most one
  active link per draft.

Status transitions are enforced in invoice_service via VALID_TRANSITIONS.
"""

import uuid

from backoffice.extensions import db
from backoffice.utils import utcnow


class InvoiceDraft(db.Model):
    __tablename__ = "invoice_drafts"

    STATUS_DRAFT = "draft"
    STATUS_SENT = "sent"
    STATUS_PAID = "paid"
    STATUS_VOID = "void"
    STATUSES = [STATUS_DRAFT, STATUS_SENT, STATUS_PAID, STATUS_VOID]

    # -- paid and void are terminal --
    VALID_TRANSITIONS = {
        "draft": ["sent", "paid", "void"],
        "sent": ["paid", "void"],
    }
    TERMINAL_STATUSES = [STATUS_PAID, STATUS_VOID]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False
    )
    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT)
    created_at = db.Column(
        db.DateTime(timezone=True), default=utcnow, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_invoice_drafts_amount_non_negative"),
        db.Index("ix_invoice_drafts_user_status", "user_id", "status"),
    )

    # --- Relationships ---
    client = db.relationship("Client")
    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice_draft",
        order_by="InvoiceLine.created_at",
        cascade="all, delete-orphan",
    )
    payment_links = db.relationship(
        "PaymentLink", back_populates="invoice_draft", lazy="dynamic"
    )

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def __repr__(self):
        return f"<InvoiceDraft {self.amount_cents} {self.currency} ({self.status})>"


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_draft_id = db.Column(
        db.String(36),
        db.ForeignKey("invoice_drafts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_event_id = db.Column(
        db.String(36),
        db.ForeignKey("work_events.id", ondelete="SET NULL"),
        nullable=True,
    )
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    invoice_draft = db.relationship("InvoiceDraft", back_populates="lines")

    def __repr__(self):
        return f"<InvoiceLine {self.description} x{self.quantity}>"


class PaymentLink(db.Model):
    __tablename__ = "payment_links"

    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"
    STATUS_PAID = "paid"
    STATUS_FAILED = "failed"
    STATUS_REFUNDED = "refunded"
    STATUS_DISPUTED = "disputed"
    STATUSES = [
        STATUS_ACTIVE,
        STATUS_INACTIVE,
        STATUS_PAID,
        STATUS_FAILED,
        STATUS_REFUNDED,
        STATUS_DISPUTED,
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_draft_id = db.Column(
        db.String(36),
        db.ForeignKey("invoice_drafts.id"),
        nullable=False,
        index=True,
    )
    provider = db.Column(db.String(20), nullable=False)  # stripe
    provider_id = db.Column(db.String(255), nullable=False)  # e.g. "plink_1Abc..."
    url = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_payment_links_provider_id", "provider", "provider_id"),
    )

    # --- Relationships ---
    invoice_draft = db.relationship("InvoiceDraft", back_populates="payment_links")

    def __repr__(self):
        return f"<PaymentLink {self.provider_id} ({self.status})>"
