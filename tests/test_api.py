"""HTTP tests for the JSON API.

Covers:
- Auth (register, login, me, logout) and the 401 envelope
- Error envelope for validation (422), bad JSON (400), not found (404),
  conflicts (409) and provider/mail failures (502)
- Work-event autopilot endpoint response shape
- Invoice, package, follow-up, settings, template, reminder, billing and
  audit endpoints
- Tenant isolation through the HTTP surface
"""

from unittest.mock import MagicMock, patch

from backoffice.errors import DeliveryError
from backoffice.extensions import db
from backoffice.models.billing import BillingSubscription
from backoffice.models.invoice import InvoiceDraft
from backoffice.models.package import Package
from backoffice.models.work_event import WorkEvent


def _log_session(auth_client, client_id, **overrides):
    payload = {
        "client_id": client_id,
        "type": "session",
        "start_at": "2026-01-15T10:00:00Z",
        "duration_minutes": 90,
    }
    payload.update(overrides)
    return auth_client.post("/api/work-events", json=payload)


class TestAuth:

    def test_register_logs_in(self, client):
        resp = client.post("/api/auth/register", json={
            "email": "New@Example.com",
            "password": "long-enough-pw",
            "full_name": "New Coach",
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["email"] == "new@example.com"

        me = client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["email"] == "new@example.com"

    def test_register_duplicate_email(self, client, seed_data):
        resp = client.post("/api/auth/register", json={
            "email": seed_data["email"], "password": "long-enough-pw",
        })
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "email_taken"

    def test_register_short_password(self, client):
        resp = client.post("/api/auth/register", json={
            "email": "a@example.com", "password": "short",
        })
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "invalid_password"

    def test_wrong_password(self, client, seed_data):
        resp = client.post("/api/auth/login", json={
            "email": seed_data["email"], "password": "nope-nope-nope",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "invalid_credentials"

    def test_api_requires_login(self, client, seed_data):
        resp = client.get("/api/clients")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "unauthorized"

    def test_logout(self, auth_client):
        assert auth_client.post("/api/auth/logout").status_code == 200
        assert auth_client.get("/api/auth/me").status_code == 401


class TestErrorEnvelope:

    def test_invalid_json_is_400(self, auth_client):
        resp = auth_client.post(
            "/api/work-events", data="{not json", content_type="application/json"
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "invalid_json"

    def test_json_array_is_400(self, auth_client):
        resp = auth_client.post("/api/clients", json=[1, 2])
        assert resp.status_code == 400

    def test_unknown_route_is_json_404(self, auth_client):
        resp = auth_client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "not_found"

    def test_wrong_method_is_json_405(self, auth_client):
        resp = auth_client.delete("/api/clients")
        assert resp.status_code == 405
        assert "error" in resp.get_json()

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}


class TestClientsApi:

    def test_create_list_get_update(self, auth_client):
        created = auth_client.post("/api/clients", json={
            "name": "Bo Learner", "email": "bo@example.com",
        })
        assert created.status_code == 201
        client_id = created.get_json()["data"]["id"]

        listed = auth_client.get("/api/clients?search=learner").get_json()["data"]
        assert [c["id"] for c in listed] == [client_id]

        patched = auth_client.patch(f"/api/clients/{client_id}", json={"phone": "555-0101"})
        assert patched.get_json()["data"]["phone"] == "555-0101"

        fetched = auth_client.get(f"/api/clients/{client_id}").get_json()["data"]
        assert fetched["name"] == "Bo Learner"

    def test_missing_name(self, auth_client):
        resp = auth_client.post("/api/clients", json={"email": "x@example.com"})
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "invalid_name"

    def test_foreign_client_is_404(self, auth_client, other_user):
        resp = auth_client.get(f"/api/clients/{other_user['client_id']}")
        assert resp.status_code == 404


class TestWorkEventsApi:

    def test_autopilot_response(self, auth_client, seed_data):
        db.session.add(Package(
            user_id=seed_data["user_id"], client_id=seed_data["client_id"],
            title="Four", total_sessions=4, used_sessions=1, currency="EUR",
        ))
        db.session.commit()

        resp = _log_session(auth_client, seed_data["client_id"])

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["work_event"]["duration_minutes"] == 90

        autopilot = data["autopilot"]
        assert autopilot["invoice_draft"]["amount_cents"] == 9000
        assert autopilot["invoice_draft"]["currency"] == "EUR"
        assert autopilot["invoice_draft"]["status"] == "draft"
        assert autopilot["invoice_line"]["quantity"] == "1.50"
        assert autopilot["invoice_line"]["description"] == "Session (1h 30m)"
        assert autopilot["package"]["remaining_sessions"] == 2
        assert autopilot["follow_up"]["due_at"].startswith("2026-01-18T10:00:00")

    def test_no_show_has_empty_autopilot(self, auth_client, seed_data):
        resp = _log_session(auth_client, seed_data["client_id"], type="no_show")
        assert resp.get_json()["data"]["autopilot"] == {
            "invoice_draft": None,
            "invoice_line": None,
            "package": None,
            "follow_up": None,
        }

    def test_validation_error_writes_nothing(self, auth_client, seed_data):
        resp = _log_session(auth_client, seed_data["client_id"], duration_minutes="long")
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "invalid_duration"
        assert WorkEvent.query.count() == 0

    def test_foreign_client_is_404(self, auth_client, other_user):
        resp = _log_session(auth_client, other_user["client_id"])
        assert resp.status_code == 404
        assert WorkEvent.query.count() == 0

    def test_list_by_range(self, auth_client, seed_data):
        _log_session(auth_client, seed_data["client_id"], start_at="2026-01-10T09:00:00Z")
        _log_session(auth_client, seed_data["client_id"], start_at="2026-02-10T09:00:00Z")

        resp = auth_client.get("/api/work-events?from=2026-02-01T00:00:00Z")
        events = resp.get_json()["data"]
        assert len(events) == 1
        assert events[0]["start_at"].startswith("2026-02-10")


class TestInvoicesApi:

    def _draft_id(self, auth_client, seed_data):
        resp = _log_session(auth_client, seed_data["client_id"])
        return resp.get_json()["data"]["autopilot"]["invoice_draft"]["id"]

    def test_detail_includes_lines(self, auth_client, seed_data):
        invoice_id = self._draft_id(auth_client, seed_data)
        data = auth_client.get(f"/api/invoice-drafts/{invoice_id}").get_json()["data"]
        assert len(data["lines"]) == 1
        assert data["payment_link"] is None

    def test_send_then_invalid_transition(self, auth_client, seed_data):
        invoice_id = self._draft_id(auth_client, seed_data)

        assert auth_client.post(f"/api/invoice-drafts/{invoice_id}/mark-paid").status_code == 200

        resp = auth_client.post(f"/api/invoice-drafts/{invoice_id}/send")
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "invalid_transition"
        assert error["details"] == {"from": "paid", "to": "sent"}

    def test_list_and_bulk_mark_sent(self, auth_client, seed_data):
        first = self._draft_id(auth_client, seed_data)
        second = self._draft_id(auth_client, seed_data)

        drafts = auth_client.get("/api/invoice-drafts").get_json()["data"]
        assert {d["id"] for d in drafts} == {first, second}

        resp = auth_client.post("/api/invoice-drafts/bulk/mark-sent", json={"ids": [first]})
        assert resp.get_json()["data"] == {"updated": 1}

        sent = auth_client.get("/api/invoice-drafts?status=sent").get_json()["data"]
        assert [d["id"] for d in sent] == [first]

    def test_bulk_listing_with_lines(self, auth_client, seed_data):
        self._draft_id(auth_client, seed_data)
        data = auth_client.get("/api/invoice-drafts/bulk").get_json()["data"]
        assert len(data) == 1
        assert len(data[0]["lines"]) == 1

    def test_invalid_status_filter(self, auth_client):
        resp = auth_client.get("/api/invoice-drafts?status=archived")
        assert resp.status_code == 422

    @patch("backoffice.services.pdf_service.render_invoice_pdf", return_value=b"%PDF-1.7 test")
    def test_pdf_download(self, mock_pdf, auth_client, seed_data):
        invoice_id = self._draft_id(auth_client, seed_data)
        resp = auth_client.get(f"/api/invoice-drafts/{invoice_id}/pdf")
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data == b"%PDF-1.7 test"

    @patch("backoffice.services.invoice_service.send_email", side_effect=DeliveryError("down"))
    @patch("backoffice.services.pdf_service.render_invoice_pdf", return_value=b"%PDF")
    def test_email_failure_is_502_and_state_kept(self, mock_pdf, mock_send, auth_client, seed_data):
        invoice_id = self._draft_id(auth_client, seed_data)

        resp = auth_client.post(f"/api/invoice-drafts/{invoice_id}/email", json={})

        assert resp.status_code == 502
        assert resp.get_json()["error"]["code"] == "email_failed"
        assert db.session.get(InvoiceDraft, invoice_id).status == "draft"

    @patch("backoffice.services.stripe_service.stripe.PaymentLink.create")
    def test_payment_link(self, mock_create, auth_client, seed_data):
        mock_create.return_value = MagicMock(id="plink_abc", url="https://buy.stripe.com/abc")
        invoice_id = self._draft_id(auth_client, seed_data)

        resp = auth_client.post(f"/api/invoice-drafts/{invoice_id}/payment-link")

        assert resp.status_code == 200
        link = resp.get_json()["data"]
        assert link["provider_id"] == "plink_abc"
        assert link["status"] == "active"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["metadata"] == {"invoice_draft_id": invoice_id}
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 9000
        assert kwargs["line_items"][0]["price_data"]["currency"] == "eur"

    def test_foreign_invoice_is_404(self, auth_client, seed_data, other_user):
        invoice = InvoiceDraft(
            user_id=other_user["user_id"], client_id=other_user["client_id"],
            amount_cents=100, currency="EUR", status="draft",
        )
        db.session.add(invoice)
        db.session.commit()

        assert auth_client.post(f"/api/invoice-drafts/{invoice.id}/void").status_code == 404
        assert db.session.get(InvoiceDraft, invoice.id).status == "draft"


class TestPackagesApi:

    def test_create_use_and_empty(self, auth_client, seed_data):
        created = auth_client.post("/api/packages", json={
            "client_id": seed_data["client_id"], "title": "Two", "total_sessions": 2,
        })
        assert created.status_code == 201
        package_id = created.get_json()["data"]["id"]
        assert created.get_json()["data"]["currency"] == "EUR"

        for _ in range(2):
            assert auth_client.post(f"/api/packages/{package_id}/use").status_code == 200

        resp = auth_client.post(f"/api/packages/{package_id}/use")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "package_empty"

        listed = auth_client.get(
            f"/api/packages?client_id={seed_data['client_id']}"
        ).get_json()["data"]
        assert listed[0]["remaining_sessions"] == 0


class TestFollowUpsApi:

    def test_list_and_done(self, auth_client, seed_data):
        _log_session(auth_client, seed_data["client_id"])

        open_items = auth_client.get("/api/follow-ups").get_json()["data"]
        assert len(open_items) == 1
        follow_up_id = open_items[0]["id"]

        resp = auth_client.post(f"/api/follow-ups/{follow_up_id}/done")
        assert resp.get_json()["data"]["status"] == "done"
        assert auth_client.get("/api/follow-ups").get_json()["data"] == []

    @patch("backoffice.services.follow_up_service.send_email")
    def test_email(self, mock_send, auth_client, seed_data):
        _log_session(auth_client, seed_data["client_id"])
        follow_up_id = auth_client.get("/api/follow-ups").get_json()["data"][0]["id"]

        resp = auth_client.post(f"/api/follow-ups/{follow_up_id}/email",
                                json={"subject": "Quick check-in"})

        assert resp.status_code == 200
        assert mock_send.call_args.kwargs["subject"] == "Quick check-in"


class TestSettingsApi:

    def test_get_defaults_without_row(self, client, app):
        client.post("/api/auth/register", json={
            "email": "fresh@example.com", "password": "long-enough-pw",
        })
        data = client.get("/api/settings").get_json()["data"]
        assert data["default_currency"] == app.config["DEFAULT_CURRENCY"]
        assert data["default_rate_cents"] is None

    def test_update(self, auth_client):
        resp = auth_client.put("/api/settings", json={
            "default_rate_cents": 7500, "default_currency": "usd", "follow_up_days": 0,
        })
        data = resp.get_json()["data"]
        assert data["default_rate_cents"] == 7500
        assert data["default_currency"] == "USD"
        assert data["follow_up_days"] == 0

    def test_invalid_values(self, auth_client):
        resp = auth_client.put("/api/settings", json={"default_currency": "EURO"})
        assert resp.get_json()["error"]["code"] == "invalid_currency"
        resp = auth_client.put("/api/settings", json={"invoice_reminder_days": -1})
        assert resp.get_json()["error"]["code"] == "invalid_days"

    def test_templates(self, auth_client):
        resp = auth_client.put("/api/templates/follow_up", json={"body": "Hey {{client_name}}"})
        assert resp.status_code == 200

        listed = {t["type"]: t for t in auth_client.get("/api/templates").get_json()["data"]}
        assert listed["follow_up"]["body"] == "Hey {{client_name}}"

        bad = auth_client.put("/api/templates/birthday", json={"body": "x"})
        assert bad.status_code == 422

    def test_audit_logs(self, auth_client, seed_data):
        _log_session(auth_client, seed_data["client_id"])
        invoice_id = auth_client.get("/api/invoice-drafts").get_json()["data"][0]["id"]
        auth_client.post(f"/api/invoice-drafts/{invoice_id}/void")

        entries = auth_client.get("/api/audit-logs").get_json()["data"]
        assert "invoice.voided" in [e["action"] for e in entries]


class TestRemindersApi:

    def test_run(self, auth_client, seed_data):
        resp = auth_client.post("/api/reminders/run")
        data = resp.get_json()["data"]
        assert data["created"] == 0
        assert data["last_reminder_run_at"] is not None


class TestBillingApi:

    def test_status_inactive_by_default(self, auth_client):
        assert auth_client.get("/api/billing/status").get_json()["data"] == {
            "status": "inactive"
        }

    @patch("backoffice.services.stripe_service.stripe.checkout.Session.create")
    def test_stripe_checkout(self, mock_create, auth_client, seed_data):
        mock_create.return_value = MagicMock(id="cs_1", url="https://checkout.stripe.com/c/cs_1")

        resp = auth_client.post("/api/billing/checkout", json={"plan": "pro"})

        assert resp.get_json()["data"] == {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}
        kwargs = mock_create.call_args.kwargs
        assert kwargs["client_reference_id"] == seed_data["user_id"]
        assert kwargs["metadata"] == {"user_id": seed_data["user_id"], "plan": "pro"}

    def test_stripe_checkout_invalid_plan(self, auth_client):
        resp = auth_client.post("/api/billing/checkout", json={"plan": "platinum"})
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "invalid_plan"

    @patch("backoffice.services.paypal_service.create_subscription",
           return_value={"id": "I-SUB1", "approve_url": "https://paypal.test/approve"})
    def test_paypal_checkout_records_pending(self, mock_create, auth_client, seed_data):
        resp = auth_client.post("/api/billing/paypal/checkout", json={})

        assert resp.get_json()["data"] == {
            "url": "https://paypal.test/approve", "subscription_id": "I-SUB1",
        }
        sub = BillingSubscription.query.filter_by(provider="paypal").one()
        assert sub.status == "pending"
        assert sub.subscription_id == "I-SUB1"

    @patch("backoffice.services.paypal_service.get_subscription")
    def test_paypal_confirm_is_idempotent(self, mock_get, auth_client, seed_data):
        mock_get.return_value = {
            "status": "ACTIVE",
            "subscriber": {"payer_id": "PAYER1"},
            "billing_info": {"next_billing_time": "2026-11-18T10:00:00Z"},
        }

        for _ in range(2):
            resp = auth_client.post("/api/billing/paypal/confirm",
                                    json={"subscription_id": "I-SUB1"})
            assert resp.status_code == 200

        data = auth_client.get("/api/billing/paypal/status").get_json()["data"]
        assert data["status"] == "active"
        assert data["customer_id"] == "PAYER1"
        assert data["is_active"] is True
        assert BillingSubscription.query.filter_by(user_id=seed_data["user_id"]).count() == 1

    def test_paypal_confirm_requires_id(self, auth_client):
        resp = auth_client.post("/api/billing/paypal/confirm", json={})
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "invalid_subscription"
