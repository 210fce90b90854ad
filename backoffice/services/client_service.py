"""Client service — CRUD for a user's clients.

Every lookup is scoped by user_id: a client owned by someone else is
reported exactly like a missing one.

Functions flush but do NOT commit — the caller commits.
"""

from backoffice.errors import NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models.client import Client
from backoffice.utils import isoformat, sanitize_text


def get_client(user_id, client_id):
    """Return the user's client or raise NotFoundError."""
    client = None
    if client_id:
        client = Client.query.filter_by(id=str(client_id), user_id=user_id).first()
    if client is None:
        raise NotFoundError("Client not found.")
    return client


def list_clients(user_id, search=None):
    query = Client.query.filter_by(user_id=user_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            db.or_(Client.name.ilike(pattern), Client.email.ilike(pattern))
        )
    return query.order_by(Client.name.asc()).all()


def _clean_email(email):
    email = sanitize_text(email)
    if not email:
        return None
    email = email.lower()
    if "@" not in email or " " in email:
        raise ValidationError("Invalid email address.", code="invalid_email")
    return email


def create_client(user_id, name, email=None, phone=None):
    """Create a client.

    Raises:
        ValidationError: missing name or malformed email.
    """
    name = sanitize_text(name)
    if not name:
        raise ValidationError("Client name is required.", code="invalid_name")

    client = Client(
        user_id=user_id,
        name=name,
        email=_clean_email(email),
        phone=sanitize_text(phone) or None,
    )
    db.session.add(client)
    db.session.flush()
    return client


def update_client(user_id, client_id, data):
    client = get_client(user_id, client_id)

    if "name" in data:
        name = sanitize_text(data["name"])
        if not name:
            raise ValidationError("Client name is required.", code="invalid_name")
        client.name = name
    if "email" in data:
        client.email = _clean_email(data["email"])
    if "phone" in data:
        client.phone = sanitize_text(data["phone"]) or None

    db.session.flush()
    return client


def client_to_dict(client):
    return {
        "id": client.id,
        "name": client.name,
        "email": client.email,
        "phone": client.phone,
        "created_at": isoformat(client.created_at),
    }
