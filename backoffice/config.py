import os


def _int_or_none(name, default=None):
    """Read an optional integer env var. Empty string means unset."""
    raw = os.environ.get(name, "")
    if raw.strip() == "":
        return default
    return int(raw)


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_ID = os.environ.get("STRIPE_PRICE_ID")  # app subscription
    STRIPE_SUCCESS_URL = os.environ.get("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.environ.get("STRIPE_CANCEL_URL")

    # --- PayPal ---
    PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = os.environ.get("PAYPAL_CLIENT_SECRET")
    PAYPAL_PLAN_ID = os.environ.get("PAYPAL_PLAN_ID")
    PAYPAL_ENVIRONMENT = os.environ.get("PAYPAL_ENVIRONMENT", "sandbox")  # sandbox | live
    PAYPAL_SUCCESS_URL = os.environ.get("PAYPAL_SUCCESS_URL")
    PAYPAL_CANCEL_URL = os.environ.get("PAYPAL_CANCEL_URL")
    PAYPAL_BRAND_NAME = os.environ.get("PAYPAL_BRAND_NAME", "BackOffice Autopilot")

    # --- Plans (starter | pro) ---
    BILLING_DEFAULT_PLAN = os.environ.get("BILLING_DEFAULT_PLAN", "starter")

    # --- Email (SMTP) ---
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "BackOffice Autopilot")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME

    # --- Autopilot defaults (user settings override these) ---
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")
    DEFAULT_FOLLOW_UP_DAYS = _int_or_none("DEFAULT_FOLLOW_UP_DAYS", 3)
    DEFAULT_INVOICE_REMINDER_DAYS = _int_or_none("DEFAULT_INVOICE_REMINDER_DAYS", 7)

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_PRICE_ID = "price_app_test"
    STRIPE_SUCCESS_URL = "http://localhost:5000/billing/success"
    STRIPE_CANCEL_URL = "http://localhost:5000/billing/cancel"
    PAYPAL_CLIENT_ID = "paypal_client_test"
    PAYPAL_CLIENT_SECRET = "paypal_secret_test"
    PAYPAL_PLAN_ID = "P-TESTPLAN"
    PAYPAL_SUCCESS_URL = "http://localhost:5000/billing/paypal/success"
    PAYPAL_CANCEL_URL = "http://localhost:5000/billing/paypal/cancel"
    MAIL_USERNAME = "mailer@test.local"
    MAIL_PASSWORD = "mail-password"
    MAIL_FROM_ADDRESS = "mailer@test.local"
    APP_BASE_URL = "http://localhost:5000"
    DEFAULT_CURRENCY = "EUR"
    DEFAULT_FOLLOW_UP_DAYS = 3
    DEFAULT_INVOICE_REMINDER_DAYS = 7
    BILLING_DEFAULT_PLAN = "starter"
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
