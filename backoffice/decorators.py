"""
Route decorators and small helpers for the JSON API.

- transactional: commit the request's session when the view returns,
  roll it back when it raises (the error handlers render the envelope).
- plan_required: login plus a subscription plan at or above the given tier.
- json_body: parsed JSON object of the request, or InvalidJSONError.
- success: the {"data": ...} response envelope.
- csv_response: a downloadable CSV attachment.
"""

import csv
import io
from functools import wraps

from flask import Response, jsonify, request
from flask_login import current_user, login_required

from backoffice.errors import ForbiddenError, InvalidJSONError
from backoffice.extensions import db
from backoffice.services.billing_service import has_plan


def transactional(f):
    """One request = one transaction: commit on return, rollback on raise."""

    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            response = f(*args, **kwargs)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return response

    return decorated


def plan_required(plan):
    """Require login + an active subscription on `plan` (or higher)."""

    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            if not has_plan(current_user.id, plan):
                raise ForbiddenError(
                    f"The {plan} plan is required for this feature.",
                    code="plan_required",
                    details={"plan": plan},
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def json_body(optional=False):
    """Return the request's JSON object.

    An empty body is {} when optional; anything that is not a JSON object
    raises InvalidJSONError (400).
    """
    raw = request.get_data(cache=True)
    if not raw or not raw.strip():
        if optional:
            return {}
        raise InvalidJSONError("Request body must be a JSON object.")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidJSONError("Request body must be a JSON object.")
    return data


def success(data, status=200):
    return jsonify({"data": data}), status


def csv_response(header, rows, filename):
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    writer.writerows(rows)
    return Response(
        buffer.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
