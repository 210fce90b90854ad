"""Tests for the payment-reminder sweeper.

Covers:
- Stale drafts (created_at <= now - days) get one open follow-up, due now
- Fresh drafts, sent invoices and other users' drafts are skipped
- Re-running on unchanged data creates nothing
- Disabled reminders (days <= 0) still record the run
- payment_reminder template override
- run_all across users, optionally only active subscribers
"""

from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from backoffice.extensions import db
from backoffice.models.audit import AuditLog
from backoffice.models.billing import BillingSubscription
from backoffice.models.follow_up import FollowUp
from backoffice.models.invoice import InvoiceDraft
from backoffice.models.user import UserSettings
from backoffice.services import reminder_service, template_service
from backoffice.utils import utcnow


def _draft(user_id, client_id, age_days, status="draft", amount_cents=9000):
    invoice = InvoiceDraft(
        user_id=user_id,
        client_id=client_id,
        amount_cents=amount_cents,
        currency="EUR",
        status=status,
    )
    invoice.created_at = utcnow() - timedelta(days=age_days)
    db.session.add(invoice)
    db.session.commit()
    return invoice


class TestRunForUser:

    def test_stale_draft_gets_reminder(self, seed_data):
        invoice = _draft(seed_data["user_id"], seed_data["client_id"], age_days=8)

        created = reminder_service.run_for_user(seed_data["user_id"])

        assert created == 1
        follow_up = FollowUp.query.one()
        assert follow_up.status == "open"
        assert follow_up.source_type == "invoice_draft"
        assert follow_up.source_id == invoice.id
        assert follow_up.client_id == seed_data["client_id"]
        assert follow_up.suggested_message == (
            f"Reminder: invoice #{invoice.id} for EUR 90.00 is ready when you are."
        )

    def test_fresh_and_non_draft_invoices_skipped(self, seed_data):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=2)
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=30, status="sent")
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=30, status="paid")

        assert reminder_service.run_for_user(seed_data["user_id"]) == 0
        assert FollowUp.query.count() == 0

    def test_second_run_creates_nothing(self, seed_data):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=10)
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=9)

        assert reminder_service.run_for_user(seed_data["user_id"]) == 2
        assert reminder_service.run_for_user(seed_data["user_id"]) == 0
        assert FollowUp.query.count() == 2

    def test_dismissed_reminder_allows_a_new_one(self, seed_data):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=10)
        reminder_service.run_for_user(seed_data["user_id"])

        FollowUp.query.one().status = "dismissed"
        db.session.commit()

        assert reminder_service.run_for_user(seed_data["user_id"]) == 1
        assert FollowUp.query.filter_by(status="open").count() == 1

    def test_other_users_drafts_untouched(self, seed_data, other_user):
        _draft(other_user["user_id"], other_user["client_id"], age_days=30)

        assert reminder_service.run_for_user(seed_data["user_id"]) == 0
        assert FollowUp.query.count() == 0

    def test_run_is_recorded(self, seed_data):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=8)

        reminder_service.run_for_user(seed_data["user_id"])

        settings = UserSettings.query.filter_by(user_id=seed_data["user_id"]).one()
        assert settings.last_reminder_run_at is not None
        assert settings.last_reminder_created == 1

        entry = AuditLog.query.filter_by(action="reminders.run").one()
        assert entry.metadata_ == {"created": 1, "reminder_days": 7}

    def test_template_override(self, seed_data):
        template_service.upsert(
            seed_data["user_id"], "payment_reminder", "Pay {{amount}} for #{{invoice_id}}"
        )
        db.session.commit()
        invoice = _draft(seed_data["user_id"], seed_data["client_id"], age_days=8)

        reminder_service.run_for_user(seed_data["user_id"])

        assert FollowUp.query.one().suggested_message == f"Pay EUR 90.00 for #{invoice.id}"

    def test_concurrent_insert_is_skipped(self, seed_data):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=8)

        with patch(
            "backoffice.services.follow_up_service.create_for_source",
            side_effect=IntegrityError("INSERT", {}, Exception("unique")),
        ):
            created = reminder_service.run_for_user(seed_data["user_id"])

        assert created == 0
        # The run is still recorded after the skipped item.
        assert AuditLog.query.filter_by(action="reminders.run").count() == 1


class TestDisabledReminders:

    def test_zero_days_records_run_and_creates_nothing(self, seed_data):
        seed_data["settings"].invoice_reminder_days = 0
        db.session.commit()
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=100)

        assert reminder_service.run_for_user(seed_data["user_id"]) == 0
        assert FollowUp.query.count() == 0

        settings = UserSettings.query.filter_by(user_id=seed_data["user_id"]).one()
        assert settings.last_reminder_run_at is not None
        assert settings.last_reminder_created == 0

        entry = AuditLog.query.filter_by(action="reminders.run").one()
        assert entry.metadata_["disabled"] is True

    def test_unset_days_uses_app_default(self, seed_data, app):
        seed_data["settings"].invoice_reminder_days = None
        db.session.commit()
        days = app.config["DEFAULT_INVOICE_REMINDER_DAYS"]
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=days + 1)

        assert reminder_service.run_for_user(seed_data["user_id"]) == 1


class TestRunAll:

    def test_runs_every_active_user(self, seed_data, other_user):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=10)
        _draft(other_user["user_id"], other_user["client_id"], age_days=10)

        assert reminder_service.run_all() == 2

    def test_only_active_subscribers(self, seed_data, other_user):
        _draft(seed_data["user_id"], seed_data["client_id"], age_days=10)
        _draft(other_user["user_id"], other_user["client_id"], age_days=10)
        db.session.add(BillingSubscription(
            user_id=seed_data["user_id"], provider="stripe", status="active"
        ))
        db.session.commit()

        assert reminder_service.run_all(only_active=True) == 1
        assert FollowUp.query.one().user_id == seed_data["user_id"]
