import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from backoffice.config import config_by_name
from backoffice.errors import BackOfficeError
from backoffice.extensions import db, migrate, login_manager, csrf, limiter

logger = logging.getLogger(__name__)


def _error_response(status, code, message, details=None):
    return jsonify({
        "error": {"code": code, "message": message, "details": details or {}}
    }), status


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from backoffice import models  # noqa: F401

    # --- Register blueprints ---
    from backoffice.blueprints.auth import auth_bp
    from backoffice.blueprints.clients import clients_bp
    from backoffice.blueprints.work_events import work_events_bp
    from backoffice.blueprints.invoices import invoices_bp
    from backoffice.blueprints.packages import packages_bp
    from backoffice.blueprints.follow_ups import follow_ups_bp
    from backoffice.blueprints.settings import settings_bp
    from backoffice.blueprints.reminders import reminders_bp
    from backoffice.blueprints.billing import billing_bp
    from backoffice.blueprints.reports import reports_bp
    from backoffice.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(work_events_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(packages_bp)
    app.register_blueprint(follow_ups_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(webhooks_bp)

    # Webhooks are signed by the provider, not CSRF-protected
    csrf.exempt(webhooks_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(BackOfficeError)
    def domain_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            logger.warning(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        code = (e.name or "error").lower().replace(" ", "_")
        if e.code == 400 and "CSRF" in (e.description or ""):
            code = "csrf_failed"
        return _error_response(e.code, code, e.description or e.name)

    @app.errorhandler(429)
    def rate_limited(e):
        return _error_response(429, "rate_limited", "Too many requests.")

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        return _error_response(500, "internal_error", "Something went wrong.")

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON API: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--email", default="coach@backoffice.local", help="Demo user email")
    @click.option("--password", default="coach1234", help="Demo user password")
    def seed_demo(email, password):
        """Create a demo coach with settings, one client and a 10-session package.

        Usage:
            flask seed-demo
            flask seed-demo --email me@example.com --password s3cret123
        """
        from backoffice.models.client import Client
        from backoffice.models.package import Package
        from backoffice.models.user import User, UserSettings

        # --- 1. User ---
        user = User.query.filter_by(email=email).first()
        if user:
            click.echo(f"Demo user already exists: {email}")
            return

        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Demo Coach",
        )
        db.session.add(user)
        db.session.flush()

        # --- 2. Settings ---
        db.session.add(UserSettings(
            user_id=user.id,
            default_rate_cents=6000,
            default_currency=app.config["DEFAULT_CURRENCY"],
            follow_up_days=3,
            invoice_reminder_days=7,
        ))

        # --- 3. Client + package ---
        client = Client(user_id=user.id, name="Ada Student", email="ada@example.com")
        db.session.add(client)
        db.session.flush()

        package = Package(
            user_id=user.id,
            client_id=client.id,
            title="10 sessions",
            total_sessions=10,
            used_sessions=0,
            price_cents=50000,
            currency=app.config["DEFAULT_CURRENCY"],
        )
        db.session.add(package)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  User:     {email} / {password}")
        click.echo(f"  Client:   {client.name} (id: {client.id})")
        click.echo(f"  Package:  {package.title} (id: {package.id})")
        click.echo("=" * 60)

    @app.cli.command("run-reminders")
    @click.option("--only-active", is_flag=True, help="Only users with an active subscription.")
    def run_reminders(only_active):
        """Create payment-reminder follow-ups for stale draft invoices.

        Intended for a daily cron job.

        Usage:
            flask run-reminders
            flask run-reminders --only-active
        """
        from backoffice.services.reminder_service import run_all

        total = run_all(only_active=only_active)
        click.echo(f"Reminders created: {total}")
