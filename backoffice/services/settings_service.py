"""Settings service — user billing defaults and the effective context.

The autopilot never reads settings itself. The request entry point resolves
an EffectiveBillingContext once (explicit override > user setting > app
default) and passes it down.

Functions flush but do NOT commit — the caller commits.
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models.user import UserSettings
from backoffice.utils import isoformat


@dataclass(frozen=True)
class EffectiveBillingContext:
    rate_cents: int
    currency: str
    follow_up_days: Optional[int]


def get_settings(user_id):
    """Return the UserSettings row or None."""
    return UserSettings.query.filter_by(user_id=user_id).first()


def get_or_create_settings(user_id):
    settings = get_settings(user_id)
    if settings is None:
        settings = UserSettings(
            user_id=user_id,
            default_currency=current_app.config["DEFAULT_CURRENCY"],
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def effective_billing_context(user_id, rate_cents=None, currency=None):
    """Resolve the billing parameters for one request.

    rate:      explicit override > user default > 0
    currency:  explicit override > user default > DEFAULT_CURRENCY
    follow-up: user setting > DEFAULT_FOLLOW_UP_DAYS
    """
    settings = get_settings(user_id)
    config = current_app.config

    if rate_cents is None and settings is not None:
        rate_cents = settings.default_rate_cents
    if not currency and settings is not None:
        currency = settings.default_currency

    follow_up_days = None
    if settings is not None:
        follow_up_days = settings.follow_up_days
    if follow_up_days is None:
        follow_up_days = config.get("DEFAULT_FOLLOW_UP_DAYS")

    return EffectiveBillingContext(
        rate_cents=int(rate_cents or 0),
        currency=(currency or config["DEFAULT_CURRENCY"]).upper(),
        follow_up_days=follow_up_days,
    )


def effective_reminder_days(user_id):
    """User's invoice_reminder_days, else the app default. May be None."""
    settings = get_settings(user_id)
    if settings is not None and settings.invoice_reminder_days is not None:
        return settings.invoice_reminder_days
    return current_app.config.get("DEFAULT_INVOICE_REMINDER_DAYS")


def record_reminder_run(user_id, run_at, created):
    settings = get_or_create_settings(user_id)
    settings.last_reminder_run_at = run_at
    settings.last_reminder_created = created
    db.session.flush()
    return settings


def update_settings(user_id, data):
    """Validate and apply a partial settings update.

    Raises:
        ValidationError: bad currency, negative rate or negative day counts.
    """
    settings = get_or_create_settings(user_id)

    if "default_currency" in data and data["default_currency"] is not None:
        currency = str(data["default_currency"]).strip().upper()
        if len(currency) != 3:
            raise ValidationError(
                "Currency must be a 3-letter code.", code="invalid_currency"
            )
        settings.default_currency = currency

    if "default_rate_cents" in data:
        rate = data["default_rate_cents"]
        if rate is not None:
            rate = _as_int(rate, "default_rate_cents", code="invalid_rate")
            if rate < 0:
                raise ValidationError(
                    "default_rate_cents must be >= 0.", code="invalid_rate"
                )
        settings.default_rate_cents = rate

    for key in ("follow_up_days", "invoice_reminder_days"):
        if key in data:
            value = data[key]
            if value is not None:
                value = _as_int(value, key, code="invalid_days")
                if value < 0:
                    raise ValidationError(f"{key} must be >= 0.", code="invalid_days")
            setattr(settings, key, value)

    db.session.flush()
    return settings


def _as_int(value, field, code):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.", code=code)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.", code=code)


def settings_to_dict(user_id, settings):
    if settings is None:
        return {
            "user_id": user_id,
            "default_rate_cents": None,
            "default_currency": current_app.config["DEFAULT_CURRENCY"],
            "follow_up_days": None,
            "invoice_reminder_days": None,
            "last_reminder_run_at": None,
            "last_reminder_created": None,
        }
    return {
        "user_id": settings.user_id,
        "default_rate_cents": settings.default_rate_cents,
        "default_currency": settings.default_currency,
        "follow_up_days": settings.follow_up_days,
        "invoice_reminder_days": settings.invoice_reminder_days,
        "last_reminder_run_at": isoformat(settings.last_reminder_run_at),
        "last_reminder_created": settings.last_reminder_created,
    }
