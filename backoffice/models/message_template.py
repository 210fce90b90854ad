"""Message template model.

Per-user override of a notification body. Types are fixed; the hardcoded
defaults live in template_service.
"""

import uuid

from backoffice.extensions import db


class MessageTemplate(db.Model):
    __tablename__ = "message_templates"

    TYPES = ["follow_up", "payment_reminder", "no_show"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    type = db.Column(db.String(50), nullable=False)
    subject = db.Column(db.String(255), nullable=True)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "type", name="uq_message_templates_user_type"),
    )

    def __repr__(self):
        return f"<MessageTemplate {self.type}>"
