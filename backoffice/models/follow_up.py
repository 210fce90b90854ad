"""Follow-up model.

A scheduled reminder/message suggestion tied to the entity that triggered
it (a work event, an invoice draft). At most one *open* follow-up exists
per (user_id, source_type, source_id): the partial unique index below is
the storage-level guarantee; follow_up_service treats a conflict on it as
"already exists".
"""

import uuid

from backoffice.extensions import db


class FollowUp(db.Model):
    __tablename__ = "follow_ups"

    STATUS_OPEN = "open"
    STATUS_DONE = "done"
    STATUS_DISMISSED = "dismissed"
    STATUSES = [STATUS_OPEN, STATUS_DONE, STATUS_DISMISSED]

    SOURCE_WORK_EVENT = "work_event"
    SOURCE_INVOICE_DRAFT = "invoice_draft"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False
    )
    due_at = db.Column(db.DateTime(timezone=True), nullable=False)
    suggested_message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_OPEN)
    source_type = db.Column(db.String(50), nullable=True)
    source_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_follow_ups_user_status", "user_id", "status"),
        db.Index(
            "uq_follow_ups_open_source",
            "user_id",
            "source_type",
            "source_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
    )

    # --- Relationships ---
    client = db.relationship("Client")

    def __repr__(self):
        return f"<FollowUp {self.source_type}:{self.source_id} ({self.status})>"
