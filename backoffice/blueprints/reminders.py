"""Reminders blueprint — /api/reminders/run

Manual trigger for the payment-reminder sweep of the current user. The
same sweep runs for everyone from `flask run-reminders`.
"""

from flask import Blueprint
from flask_login import current_user, login_required

from backoffice.decorators import success
from backoffice.services.reminder_service import run_for_user
from backoffice.services.settings_service import get_settings
from backoffice.utils import isoformat

reminders_bp = Blueprint("reminders", __name__, url_prefix="/api/reminders")


@reminders_bp.route("/run", methods=["POST"])
@login_required
def run_reminders():
    created = run_for_user(current_user.id)
    settings = get_settings(current_user.id)
    return success({
        "created": created,
        "last_reminder_run_at": isoformat(settings.last_reminder_run_at) if settings else None,
    })
