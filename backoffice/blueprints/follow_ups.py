"""Follow-ups blueprint — /api/follow-ups/*"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import csv_response, json_body, success, transactional
from backoffice.services import follow_up_service
from backoffice.services.follow_up_service import follow_up_to_dict
from backoffice.utils import isoformat

follow_ups_bp = Blueprint("follow_ups", __name__, url_prefix="/api/follow-ups")

EXPORT_HEADER = [
    "id",
    "client_id",
    "client_name",
    "due_at",
    "suggested_message",
    "status",
    "source_type",
    "source_id",
    "created_at",
    "updated_at",
]


@follow_ups_bp.route("", methods=["GET"])
@login_required
def list_follow_ups():
    status = request.args.get("status") or "open"
    follow_ups = follow_up_service.list_follow_ups(current_user.id, status)
    return success([follow_up_to_dict(f) for f in follow_ups])


@follow_ups_bp.route("/export", methods=["GET"])
@login_required
def export_follow_ups():
    """CSV of follow-ups, filtered by ?status=&from=&to= (due_at)."""
    follow_ups = follow_up_service.list_for_export(
        current_user.id,
        status=request.args.get("status") or None,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
    )
    rows = [
        [
            f.id,
            f.client_id,
            f.client.name if f.client else "",
            isoformat(f.due_at),
            f.suggested_message,
            f.status,
            f.source_type or "",
            f.source_id or "",
            isoformat(f.created_at) or "",
            isoformat(f.updated_at) or "",
        ]
        for f in follow_ups
    ]
    return csv_response(EXPORT_HEADER, rows, "follow-ups.csv")


@follow_ups_bp.route("/<follow_up_id>/done", methods=["POST"])
@login_required
@transactional
def mark_done(follow_up_id):
    follow_up = follow_up_service.mark_done(current_user.id, follow_up_id)
    return success(follow_up_to_dict(follow_up))


@follow_ups_bp.route("/<follow_up_id>/dismiss", methods=["POST"])
@login_required
@transactional
def dismiss(follow_up_id):
    follow_up = follow_up_service.dismiss(current_user.id, follow_up_id)
    return success(follow_up_to_dict(follow_up))


@follow_ups_bp.route("/<follow_up_id>/reopen", methods=["POST"])
@login_required
@transactional
def reopen(follow_up_id):
    follow_up = follow_up_service.reopen(current_user.id, follow_up_id)
    return success(follow_up_to_dict(follow_up))


@follow_ups_bp.route("/<follow_up_id>/email", methods=["POST"])
@login_required
@transactional
def email_follow_up(follow_up_id):
    data = json_body(optional=True)
    follow_up = follow_up_service.email_follow_up(
        current_user.id, follow_up_id, subject=data.get("subject")
    )
    return success(follow_up_to_dict(follow_up))
