"""Work events blueprint — /api/work-events/*

POST is the autopilot entry point: one request logs the work event and
returns everything it derived (invoice draft, package usage, follow-up).
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import csv_response, json_body, success
from backoffice.services import work_event_service
from backoffice.services.follow_up_service import follow_up_to_dict
from backoffice.services.invoice_service import invoice_to_dict, line_to_dict
from backoffice.utils import isoformat

work_events_bp = Blueprint("work_events", __name__, url_prefix="/api/work-events")

EXPORT_HEADER = [
    "id",
    "client_id",
    "client_name",
    "type",
    "start_at",
    "duration_minutes",
    "billable",
    "notes",
    "created_at",
]


def _autopilot_to_dict(result):
    package = None
    if result.package is not None:
        package = {
            "id": result.package.id,
            "remaining_sessions": result.package.remaining_sessions,
        }
    return {
        "invoice_draft": invoice_to_dict(result.invoice_draft) if result.invoice_draft else None,
        "invoice_line": line_to_dict(result.invoice_line) if result.invoice_line else None,
        "package": package,
        "follow_up": follow_up_to_dict(result.follow_up) if result.follow_up else None,
    }


@work_events_bp.route("", methods=["POST"])
@login_required
def create_work_event():
    """Log a work event and run the autopilot (commits inside the service)."""
    work_event, result = work_event_service.log_work_event(current_user.id, json_body())
    return success({
        "work_event": work_event_service.work_event_to_dict(work_event),
        "autopilot": _autopilot_to_dict(result),
    }, 201)


@work_events_bp.route("", methods=["GET"])
@login_required
def list_work_events():
    events = work_event_service.list_work_events(
        current_user.id,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
        client_id=request.args.get("client_id") or request.args.get("clientId"),
    )
    return success([work_event_service.work_event_to_dict(e) for e in events])


@work_events_bp.route("/export", methods=["GET"])
@login_required
def export_work_events():
    events = work_event_service.list_work_events(
        current_user.id,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
        client_id=request.args.get("client_id") or request.args.get("clientId"),
    )
    rows = [
        [
            e.id,
            e.client_id,
            e.client.name if e.client else "",
            e.type,
            isoformat(e.start_at),
            e.duration_minutes,
            "true" if e.billable else "false",
            e.notes or "",
            isoformat(e.created_at) or "",
        ]
        for e in events
    ]
    return csv_response(EXPORT_HEADER, rows, "work-events.csv")
