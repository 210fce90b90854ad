"""Clients blueprint — /api/clients/*"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from backoffice.decorators import json_body, success, transactional
from backoffice.services import client_service

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.route("", methods=["GET"])
@login_required
def list_clients():
    clients = client_service.list_clients(current_user.id, request.args.get("search"))
    return success([client_service.client_to_dict(c) for c in clients])


@clients_bp.route("", methods=["POST"])
@login_required
@transactional
def create_client():
    data = json_body()
    client = client_service.create_client(
        current_user.id,
        name=data.get("name"),
        email=data.get("email"),
        phone=data.get("phone"),
    )
    return success(client_service.client_to_dict(client), 201)


@clients_bp.route("/<client_id>", methods=["GET"])
@login_required
def get_client(client_id):
    client = client_service.get_client(current_user.id, client_id)
    return success(client_service.client_to_dict(client))


@clients_bp.route("/<client_id>", methods=["PATCH"])
@login_required
@transactional
def update_client(client_id):
    client = client_service.update_client(current_user.id, client_id, json_body())
    return success(client_service.client_to_dict(client))
