"""Template service — notification text with per-user overrides.

resolve() is shared by the autopilot (follow_up) and the reminder sweeper
(payment_reminder). Substitution is literal {{key}} replacement: no
conditionals, and placeholders without a context entry stay verbatim.

Functions flush but do NOT commit — the caller commits.
"""

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models.message_template import MessageTemplate
from backoffice.utils import sanitize_text

DEFAULT_TEMPLATES = {
    "follow_up": {
        "subject": None,
        "body": "Follow up with {{client_name}} about your {{session_date}} session.",
    },
    "payment_reminder": {
        "subject": None,
        "body": "Reminder: invoice #{{invoice_id}} for {{amount}} is ready when you are.",
    },
    "no_show": {
        "subject": None,
        "body": "Sorry we missed each other today. Let me know if you want to reschedule.",
    },
}


def _find(user_id, template_type):
    return MessageTemplate.query.filter_by(
        user_id=user_id, type=template_type
    ).first()


def render(body, context):
    """Replace every {{key}} with its context value."""
    for key, value in (context or {}).items():
        body = body.replace("{{%s}}" % key, str(value))
    return body


def resolve(user_id, template_type, context=None):
    """Return the filled-in body for a template type.

    Uses the user's override when it has a non-empty body, otherwise the
    hardcoded default. Returns "" for an unknown type with no override.
    """
    template = _find(user_id, template_type)
    body = template.body if template and template.body else None
    if body is None:
        body = DEFAULT_TEMPLATES.get(template_type, {}).get("body") or ""

    if body == "":
        return ""

    return render(body, context)


def list_for_user(user_id):
    """All template types for a user, overrides merged over defaults."""
    overrides = {
        t.type: t for t in MessageTemplate.query.filter_by(user_id=user_id).all()
    }
    result = []
    for template_type, default in DEFAULT_TEMPLATES.items():
        override = overrides.get(template_type)
        if override:
            result.append({
                "type": template_type,
                "subject": override.subject,
                "body": override.body,
                "is_default": False,
            })
        else:
            result.append({
                "type": template_type,
                "subject": default["subject"],
                "body": default["body"],
                "is_default": True,
            })
    return result


def upsert(user_id, template_type, body, subject=None):
    """Create or replace a user's override for one template type.

    Raises:
        ValidationError: unknown type or empty body.
    """
    if template_type not in MessageTemplate.TYPES:
        raise ValidationError(
            f"Invalid template type '{template_type}'. "
            f"Must be one of: {', '.join(MessageTemplate.TYPES)}",
            code="invalid_type",
        )

    body = sanitize_text(body)
    if not body:
        raise ValidationError("Template body is required.", code="invalid_body")
    subject = sanitize_text(subject) or None

    template = _find(user_id, template_type)
    if template:
        template.body = body
        template.subject = subject
    else:
        template = MessageTemplate(
            user_id=user_id,
            type=template_type,
            subject=subject,
            body=body,
        )
        db.session.add(template)

    db.session.flush()
    return template
