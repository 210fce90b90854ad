"""Reports blueprint — /api/reports/*

- GET /api/reports/summary  basic summary on any plan, full summary on pro
- GET /api/reports/export   full summary as CSV (pro only, 403 otherwise)

Both accept ?from=&to=&client_id=.
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import csv_response, plan_required, success
from backoffice.services import reporting_service
from backoffice.services.billing_service import has_plan

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

PRO_PLAN = "pro"


def _filters():
    return reporting_service.parse_filters(
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
        client_id=request.args.get("client_id") or request.args.get("clientId"),
        user_id=current_user.id,
    )


@reports_bp.route("/summary", methods=["GET"])
@login_required
def summary():
    start, end, client_id = _filters()
    full = reporting_service.summary(current_user.id, start, end, client_id)

    if not has_plan(current_user.id, PRO_PLAN):
        return success(reporting_service.basic_summary(full))

    full["scope"] = "full"
    return success(full)


@reports_bp.route("/export", methods=["GET"])
@plan_required(PRO_PLAN)
def export():
    start, end, client_id = _filters()
    full = reporting_service.summary(current_user.id, start, end, client_id)
    return csv_response(
        reporting_service.EXPORT_HEADER,
        reporting_service.export_rows(full),
        "report-summary.csv",
    )
