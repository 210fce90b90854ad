"""Tests for the message template resolver.

Covers:
- Hardcoded defaults per type
- User overrides, empty overrides falling back to the default
- Literal {{key}} substitution, unmatched placeholders left verbatim
- upsert validation and list_for_user merging
"""

import pytest

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models.message_template import MessageTemplate
from backoffice.services import template_service


class TestRender:

    def test_replaces_every_occurrence(self):
        body = "{{name}} and {{name}} again"
        assert template_service.render(body, {"name": "Ada"}) == "Ada and Ada again"

    def test_unmatched_placeholders_stay(self):
        assert template_service.render("Hi {{who}}", {}) == "Hi {{who}}"

    def test_non_string_values_are_stringified(self):
        assert template_service.render("#{{id}}", {"id": 42}) == "#42"


class TestResolve:

    def test_defaults(self, seed_data):
        user_id = seed_data["user_id"]
        assert template_service.resolve(user_id, "follow_up", {
            "client_name": "Ada", "session_date": "Jan 15",
        }) == "Follow up with Ada about your Jan 15 session."
        assert template_service.resolve(user_id, "payment_reminder", {
            "invoice_id": "42", "amount": "EUR 90.00",
        }) == "Reminder: invoice #42 for EUR 90.00 is ready when you are."
        assert template_service.resolve(user_id, "no_show") == (
            "Sorry we missed each other today. Let me know if you want to reschedule."
        )

    def test_override_wins(self, seed_data):
        template_service.upsert(seed_data["user_id"], "no_show", "Missed you, {{client_name}}!")
        db.session.commit()

        assert template_service.resolve(
            seed_data["user_id"], "no_show", {"client_name": "Ada"}
        ) == "Missed you, Ada!"

    def test_empty_stored_body_falls_back(self, seed_data):
        db.session.add(MessageTemplate(
            user_id=seed_data["user_id"], type="no_show", body=""
        ))
        db.session.commit()

        assert template_service.resolve(seed_data["user_id"], "no_show").startswith(
            "Sorry we missed"
        )

    def test_overrides_are_per_user(self, seed_data, other_user):
        template_service.upsert(other_user["user_id"], "follow_up", "Other text")
        db.session.commit()

        assert template_service.resolve(seed_data["user_id"], "follow_up", {}).startswith(
            "Follow up with"
        )

    def test_unknown_type_without_override_is_empty(self, seed_data):
        assert template_service.resolve(seed_data["user_id"], "birthday") == ""


class TestUpsert:

    def test_updates_existing_row(self, seed_data):
        template_service.upsert(seed_data["user_id"], "follow_up", "First")
        template_service.upsert(seed_data["user_id"], "follow_up", "Second", subject="Hi")
        db.session.commit()

        rows = MessageTemplate.query.filter_by(user_id=seed_data["user_id"]).all()
        assert len(rows) == 1
        assert rows[0].body == "Second"
        assert rows[0].subject == "Hi"

    def test_html_is_stripped(self, seed_data):
        template = template_service.upsert(
            seed_data["user_id"], "follow_up", "<b>Hello</b> {{client_name}}<script>x</script>"
        )
        assert "<" not in template.body
        assert template.body.startswith("Hello {{client_name}}")

    def test_invalid_type(self, seed_data):
        with pytest.raises(ValidationError) as exc:
            template_service.upsert(seed_data["user_id"], "birthday", "Hi")
        assert exc.value.code == "invalid_type"

    @pytest.mark.parametrize("body", ["", "   ", None, "<p></p>"])
    def test_empty_body(self, seed_data, body):
        with pytest.raises(ValidationError) as exc:
            template_service.upsert(seed_data["user_id"], "follow_up", body)
        assert exc.value.code == "invalid_body"


class TestListForUser:

    def test_merges_overrides_with_defaults(self, seed_data):
        template_service.upsert(seed_data["user_id"], "no_show", "Custom")
        db.session.commit()

        listed = {t["type"]: t for t in template_service.list_for_user(seed_data["user_id"])}

        assert set(listed) == {"follow_up", "payment_reminder", "no_show"}
        assert listed["no_show"]["body"] == "Custom"
        assert listed["no_show"]["is_default"] is False
        assert listed["follow_up"]["is_default"] is True
