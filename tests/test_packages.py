"""Tests for prepaid session packages.

Covers:
- Conditional increment never exceeds total_sessions
- Manual use, package_empty conflict
- Create / update validation (used <= total)
- Tenant isolation
"""

import pytest

from backoffice.errors import ConflictError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models.package import Package
from backoffice.services import package_service


def _create(seed_data, **overrides):
    data = {
        "client_id": seed_data["client_id"],
        "title": "10 sessions",
        "total_sessions": 10,
    }
    data.update(overrides)
    package = package_service.create_package(seed_data["user_id"], data, "EUR")
    db.session.commit()
    return package


class TestIncrement:

    def test_increment_stops_at_total(self, seed_data):
        package = _create(seed_data, total_sessions=2, used_sessions=1)

        assert package_service._increment_if_available(package.id) is True
        assert package_service._increment_if_available(package.id) is False
        db.session.commit()

        assert db.session.get(Package, package.id).used_sessions == 2

    def test_consume_skips_exhausted_and_returns_none_at_the_end(self, seed_data):
        package = _create(seed_data, total_sessions=1)

        first = package_service.consume_first_available(
            seed_data["user_id"], seed_data["client_id"]
        )
        second = package_service.consume_first_available(
            seed_data["user_id"], seed_data["client_id"]
        )

        assert first.id == package.id
        assert first.used_sessions == 1
        assert second is None

    def test_back_to_back_packages_consumed_in_creation_order(self, seed_data):
        """Packages created within the same second still go oldest first."""
        created = [
            _create(seed_data, title=f"Pack {n}", total_sessions=1) for n in range(4)
        ]

        consumed = [
            package_service.consume_first_available(
                seed_data["user_id"], seed_data["client_id"]
            ).id
            for _ in created
        ]

        assert consumed == [p.id for p in created]

    def test_created_at_keeps_sub_second_precision(self, seed_data):
        first = _create(seed_data, title="First")
        second = _create(seed_data, title="Second")

        first = db.session.get(Package, first.id)
        second = db.session.get(Package, second.id)
        assert first.created_at < second.created_at


class TestUseSession:

    def test_manual_use(self, seed_data):
        package = _create(seed_data, total_sessions=4, used_sessions=1)

        updated = package_service.use_session(seed_data["user_id"], package.id)

        assert updated.used_sessions == 2
        assert updated.remaining_sessions == 2

    def test_empty_package_conflicts(self, seed_data):
        package = _create(seed_data, total_sessions=3, used_sessions=3)

        with pytest.raises(ConflictError) as exc:
            package_service.use_session(seed_data["user_id"], package.id)

        assert exc.value.code == "package_empty"
        assert db.session.get(Package, package.id).used_sessions == 3

    def test_foreign_package_not_found(self, seed_data, other_user):
        foreign = Package(
            user_id=other_user["user_id"],
            client_id=other_user["client_id"],
            title="Theirs",
            total_sessions=3,
            used_sessions=0,
            currency="EUR",
        )
        db.session.add(foreign)
        db.session.commit()

        with pytest.raises(NotFoundError):
            package_service.use_session(seed_data["user_id"], foreign.id)
        assert db.session.get(Package, foreign.id).used_sessions == 0


class TestCreateAndUpdate:

    def test_create_uses_default_currency(self, seed_data):
        package = _create(seed_data, price_cents=50000)
        assert package.currency == "EUR"
        assert package.used_sessions == 0
        assert package.price_cents == 50000

    @pytest.mark.parametrize("overrides", [
        {"total_sessions": 0},
        {"total_sessions": "ten"},
        {"total_sessions": 3, "used_sessions": 4},
        {"used_sessions": -1},
        {"title": ""},
        {"title": "<b></b>"},
    ])
    def test_create_rejects_bad_input(self, seed_data, overrides):
        with pytest.raises(ValidationError) as exc:
            _create(seed_data, **overrides)
        assert exc.value.code == "invalid_package"

    def test_create_rejects_bad_currency(self, seed_data):
        with pytest.raises(ValidationError) as exc:
            _create(seed_data, currency="EURO")
        assert exc.value.code == "invalid_currency"

    def test_create_for_foreign_client_not_found(self, seed_data, other_user):
        with pytest.raises(NotFoundError):
            _create(seed_data, client_id=other_user["client_id"])

    def test_update_rechecks_used_within_total(self, seed_data):
        package = _create(seed_data, total_sessions=5, used_sessions=4)

        with pytest.raises(ValidationError):
            package_service.update_package(
                seed_data["user_id"], package.id, {"total_sessions": 3}
            )

        updated = package_service.update_package(
            seed_data["user_id"], package.id, {"total_sessions": 8, "title": "Bigger"}
        )
        assert updated.total_sessions == 8
        assert updated.title == "Bigger"

    def test_list_by_client(self, seed_data, other_user):
        _create(seed_data)
        assert len(package_service.list_packages(seed_data["user_id"])) == 1
        assert package_service.list_packages(
            seed_data["user_id"], client_id=other_user["client_id"]
        ) == []
