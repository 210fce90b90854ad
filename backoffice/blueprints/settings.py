"""Settings blueprint — /api/settings, /api/templates/*, /api/audit-logs

Per-user preferences, message template overrides and the audit trail.
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import json_body, success, transactional
from backoffice.errors import ValidationError
from backoffice.services import audit_service, settings_service, template_service
from backoffice.utils import isoformat

settings_bp = Blueprint("settings", __name__, url_prefix="/api")


# ──────────────────────────────────────────────
# Settings
# ──────────────────────────────────────────────

@settings_bp.route("/settings", methods=["GET"])
@login_required
def get_settings():
    settings = settings_service.get_settings(current_user.id)
    return success(settings_service.settings_to_dict(current_user.id, settings))


@settings_bp.route("/settings", methods=["PUT"])
@login_required
@transactional
def update_settings():
    settings = settings_service.update_settings(current_user.id, json_body())
    return success(settings_service.settings_to_dict(current_user.id, settings))


# ──────────────────────────────────────────────
# Message templates
# ──────────────────────────────────────────────

@settings_bp.route("/templates", methods=["GET"])
@login_required
def list_templates():
    return success(template_service.list_for_user(current_user.id))


@settings_bp.route("/templates/<template_type>", methods=["PUT"])
@login_required
@transactional
def upsert_template(template_type):
    data = json_body()
    template = template_service.upsert(
        current_user.id, template_type, data.get("body"), data.get("subject")
    )
    return success({
        "type": template.type,
        "subject": template.subject,
        "body": template.body,
        "is_default": False,
    })


# ──────────────────────────────────────────────
# Audit log
# ──────────────────────────────────────────────

@settings_bp.route("/audit-logs", methods=["GET"])
@login_required
def list_audit_logs():
    try:
        limit = int(request.args.get("limit", 50))
    except ValueError:
        raise ValidationError("limit must be an integer.", code="invalid_limit")
    limit = max(1, min(limit, 200))

    entries = audit_service.list_recent(current_user.id, limit)
    return success([
        {
            "id": e.id,
            "action": e.action,
            "entity_type": e.entity_type,
            "entity_id": e.entity_id,
            "metadata": e.metadata_ or {},
            "created_at": isoformat(e.created_at),
        }
        for e in entries
    ])
