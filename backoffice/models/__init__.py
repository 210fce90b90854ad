# Import every model so Alembic autogenerate sees the full metadata.

from backoffice.models.user import User, UserSettings  # noqa: F401
from backoffice.models.client import Client  # noqa: F401
from backoffice.models.work_event import WorkEvent  # noqa: F401
from backoffice.models.package import Package  # noqa: F401
from backoffice.models.invoice import InvoiceDraft, InvoiceLine, PaymentLink  # noqa: F401
from backoffice.models.follow_up import FollowUp  # noqa: F401
from backoffice.models.message_template import MessageTemplate  # noqa: F401
from backoffice.models.billing import BillingSubscription  # noqa: F401
from backoffice.models.webhook_event import WebhookEvent  # noqa: F401
from backoffice.models.audit import AuditLog  # noqa: F401
