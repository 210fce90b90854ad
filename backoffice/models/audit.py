"""Audit log model.

Append-only record of every state transition (invoice paid, reminders run,
follow-up dismissed, ...). Business logic only ever writes it; the audit
endpoint lists it for the activity feed.
"""

import uuid

from backoffice.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )  # null for system-initiated entries
    action = db.Column(db.String(255), nullable=False)  # e.g. "invoice.paid"
    entity_type = db.Column(db.String(50), nullable=True)  # e.g. "invoice_draft"
    entity_id = db.Column(db.String(36), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.Index("ix_audit_logs_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action}>"
