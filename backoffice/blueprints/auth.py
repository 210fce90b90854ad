"""Auth blueprint — /api/auth/*

JSON registration, login, logout and "who am I", backed by Flask-Login
sessions. The SPA fetches a CSRF token from /api/auth/csrf and sends it
back in the X-CSRFToken header.
"""

import logging

from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from backoffice.decorators import json_body, success, transactional
from backoffice.errors import ConflictError, UnauthorizedError, ValidationError
from backoffice.extensions import db, limiter
from backoffice.models.user import User
from backoffice.services.audit_service import log_audit
from backoffice.utils import sanitize_text

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# ──────────────────────────────────────────────
# POST /api/auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
@transactional
def register():
    """Create an account and log it in."""
    data = json_body()
    email = str(data.get("email") or "").lower().strip()
    password = str(data.get("password") or "")
    full_name = sanitize_text(data.get("full_name")) or None

    if not email or "@" not in email or " " in email:
        raise ValidationError("A valid email is required.", code="invalid_email")
    if len(password) < 8:
        raise ValidationError(
            "Password must be at least 8 characters.", code="invalid_password"
        )
    if User.query.filter_by(email=email).first():
        raise ConflictError("Email is already registered.", code="email_taken")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
    )
    db.session.add(user)
    db.session.flush()

    log_audit(user.id, "user.registered", "user", user.id)
    login_user(user)
    logger.info(f"User registered: {email}")

    return success(user.to_dict(), 201)


# ──────────────────────────────────────────────
# POST /api/auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = json_body()
    email = str(data.get("email") or "").lower().strip()
    password = str(data.get("password") or "")

    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not check_password_hash(user.password_hash, password):
        logger.warning(f"Failed login attempt for {email}")
        raise UnauthorizedError(
            "Email or password is incorrect.", code="invalid_credentials"
        )
    if not user.is_active:
        raise UnauthorizedError("Account is disabled.", code="account_disabled")

    login_user(user, remember=bool(data.get("remember")))
    return success(user.to_dict())


# ──────────────────────────────────────────────
# POST /api/auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return success({"logged_out": True})


# ──────────────────────────────────────────────
# GET /api/auth/me, GET /api/auth/csrf
# ──────────────────────────────────────────────

@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return success(current_user.to_dict())


@auth_bp.route("/csrf", methods=["GET"])
def csrf_token():
    return success({"csrf_token": generate_csrf()})
