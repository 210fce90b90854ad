"""Package model — a prepaid bundle of sessions, consumed FIFO.

used_sessions never exceeds total_sessions: the check constraint backs up
the conditional increment in package_service.

created_at is stamped in Python with microseconds so FIFO order follows
insertion order even where CURRENT_TIMESTAMP only has one-second
resolution. Rows with identical timestamps fall back to id order.
"""

import uuid

from backoffice.extensions import db
from backoffice.utils import utcnow


class Package(db.Model):
    __tablename__ = "packages"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False)
    total_sessions = db.Column(db.Integer, nullable=False)
    used_sessions = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    created_at = db.Column(
        db.DateTime(timezone=True), default=utcnow, server_default=db.func.now()
    )

    __table_args__ = (
        db.CheckConstraint("total_sessions > 0", name="ck_packages_total_positive"),
        db.CheckConstraint(
            "used_sessions >= 0 AND used_sessions <= total_sessions",
            name="ck_packages_used_within_total",
        ),
        db.Index("ix_packages_user_client", "user_id", "client_id"),
    )

    @property
    def remaining_sessions(self):
        return self.total_sessions - self.used_sessions

    @property
    def is_exhausted(self):
        return self.used_sessions >= self.total_sessions

    def __repr__(self):
        return f"<Package {self.title} {self.used_sessions}/{self.total_sessions}>"
