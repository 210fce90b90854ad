"""Small shared helpers: UTC normalisation, money, parsing, serialisation."""

import html
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

import bleach

CENTS = Decimal("0.01")


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return a timezone-aware UTC datetime.

    SQLite hands back naive datetimes even for timezone=True columns;
    those are stored in UTC, so naive values are tagged rather than shifted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw):
    """Parse an ISO-8601 string ("Z" suffix allowed). Returns None on failure."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    text = str(raw).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def round_half_up(value, exp=Decimal("1")):
    """Commercial rounding (0.5 goes away from zero), unlike round()."""
    return Decimal(value).quantize(exp, rounding=ROUND_HALF_UP)


def format_amount(amount_cents, currency):
    """Amount as used in reminder messages and emails, e.g. EUR 90.00."""
    return f"{currency} {Decimal(int(amount_cents or 0)) / 100:.2f}"


def isoformat(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def sanitize_text(text):
    """Strip all HTML tags from user input, keeping plain-text punctuation."""
    if text is None:
        return None
    cleaned = bleach.clean(str(text), tags=[], strip=True)
    return html.unescape(cleaned).strip()
