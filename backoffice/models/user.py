"""User models.

- User: authentication credentials and profile info (Flask-Login UserMixin).
- UserSettings: per-user billing defaults that cascade into the autopilot
  (rate, currency, follow-up days) plus the reminder sweeper's last run.
"""

import uuid

from flask_login import UserMixin

from backoffice.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    settings = db.relationship(
        "UserSettings",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    clients = db.relationship("Client", back_populates="user", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
        }

    def __repr__(self):
        return f"<User {self.email}>"


class UserSettings(db.Model):
    __tablename__ = "user_settings"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False
    )
    default_rate_cents = db.Column(db.Integer, nullable=True)
    default_currency = db.Column(db.String(3), nullable=False, default="EUR")
    follow_up_days = db.Column(db.Integer, nullable=True)  # null = app default
    invoice_reminder_days = db.Column(db.Integer, nullable=True)  # null = app default
    last_reminder_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_reminder_created = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="settings")

    def __repr__(self):
        return f"<UserSettings user={self.user_id}>"
