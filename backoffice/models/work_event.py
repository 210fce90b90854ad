"""Work event model.

One recorded unit of a provider's time. Immutable once created — there is
no update path. Only the autopilot entry point
(work_event_service.log_work_event) inserts rows here.
"""

import uuid

from backoffice.extensions import db


class WorkEvent(db.Model):
    __tablename__ = "work_events"

    # -- Valid types --
    TYPE_SESSION = "session"
    TYPE_NO_SHOW = "no_show"
    TYPE_ADMIN = "admin"
    TYPES = [TYPE_SESSION, TYPE_NO_SHOW, TYPE_ADMIN]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False, index=True
    )
    type = db.Column(db.String(20), nullable=False)  # session | no_show | admin
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    billable = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)
    source_type = db.Column(db.String(50), nullable=True)  # e.g. calendar_event
    source_id = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.CheckConstraint(
            "duration_minutes >= 0", name="ck_work_events_duration_non_negative"
        ),
        db.Index("ix_work_events_source", "user_id", "source_type", "source_id"),
    )

    # --- Relationships ---
    client = db.relationship("Client")

    @property
    def is_session(self):
        return self.type == self.TYPE_SESSION

    def __repr__(self):
        return f"<WorkEvent {self.type} {self.duration_minutes}m>"
