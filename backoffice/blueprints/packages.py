"""Packages blueprint — /api/packages/*"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import json_body, success, transactional
from backoffice.services import package_service
from backoffice.services.package_service import package_to_dict
from backoffice.services.settings_service import effective_billing_context

packages_bp = Blueprint("packages", __name__, url_prefix="/api/packages")


@packages_bp.route("", methods=["GET"])
@login_required
def list_packages():
    packages = package_service.list_packages(
        current_user.id, client_id=request.args.get("client_id")
    )
    return success([package_to_dict(p) for p in packages])


@packages_bp.route("", methods=["POST"])
@login_required
@transactional
def create_package():
    data = json_body()
    context = effective_billing_context(current_user.id)
    package = package_service.create_package(current_user.id, data, context.currency)
    return success(package_to_dict(package), 201)


@packages_bp.route("/<package_id>", methods=["PATCH"])
@login_required
@transactional
def update_package(package_id):
    package = package_service.update_package(current_user.id, package_id, json_body())
    return success(package_to_dict(package))


@packages_bp.route("/<package_id>/use", methods=["POST"])
@login_required
@transactional
def use_session(package_id):
    """Take one session credit by hand (outside the autopilot)."""
    package = package_service.use_session(current_user.id, package_id)
    return success(package_to_dict(package))
