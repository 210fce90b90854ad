"""Package service — prepaid session bundles, consumed FIFO.

A session credit is taken with a single conditional UPDATE
(used_sessions < total_sessions in the WHERE clause). A zero rowcount
means another request took the last credit of that package between our
SELECT and UPDATE; we move on to the next candidate instead of trusting
the read.

Functions flush but do NOT commit — the caller commits.
"""

import logging

from sqlalchemy import update

from backoffice.errors import ConflictError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models.package import Package
from backoffice.services.client_service import get_client
from backoffice.utils import isoformat, sanitize_text

logger = logging.getLogger(__name__)


def _increment_if_available(package_id):
    """Atomically take one credit. Returns True when a row was updated."""
    result = db.session.execute(
        update(Package)
        .where(Package.id == package_id)
        .where(Package.used_sessions < Package.total_sessions)
        .values(used_sessions=Package.used_sessions + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def consume_first_available(user_id, client_id):
    """Take one session from the oldest package with capacity.

    Returns the updated Package, or None when no package has a credit left
    (not an error: a client without a package is a normal state).
    """
    candidates = (
        Package.query
        .filter_by(user_id=user_id, client_id=client_id)
        .filter(Package.used_sessions < Package.total_sessions)
        .order_by(Package.created_at.asc(), Package.id.asc())
        .with_for_update()
        .all()
    )

    for package in candidates:
        if _increment_if_available(package.id):
            db.session.refresh(package)
            return package
        logger.info(f"Package {package.id} exhausted concurrently, trying next")

    return None


def get_package(user_id, package_id):
    package = None
    if package_id:
        package = Package.query.filter_by(id=str(package_id), user_id=user_id).first()
    if package is None:
        raise NotFoundError("Package not found.")
    return package


def list_packages(user_id, client_id=None):
    query = Package.query.filter_by(user_id=user_id)
    if client_id:
        query = query.filter_by(client_id=client_id)
    return query.order_by(Package.created_at.asc(), Package.id.asc()).all()


def _positive_int(value, field, minimum):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.", code="invalid_package")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.", code="invalid_package")
    if value < minimum:
        raise ValidationError(
            f"{field} must be >= {minimum}.", code="invalid_package"
        )
    return value


def create_package(user_id, data, default_currency):
    """Create a package for one of the user's clients.

    Raises:
        NotFoundError: client missing or not owned.
        ValidationError: bad title/totals.
    """
    client = get_client(user_id, data.get("client_id"))

    title = sanitize_text(data.get("title"))
    if not title:
        raise ValidationError("Package title is required.", code="invalid_package")

    total = _positive_int(data.get("total_sessions"), "total_sessions", 1)
    used = _positive_int(data.get("used_sessions", 0), "used_sessions", 0)
    if used > total:
        raise ValidationError(
            "used_sessions cannot exceed total_sessions.", code="invalid_package"
        )

    price_cents = data.get("price_cents")
    if price_cents is not None:
        price_cents = _positive_int(price_cents, "price_cents", 0)

    currency = (data.get("currency") or default_currency).strip().upper()
    if len(currency) != 3:
        raise ValidationError("Currency must be a 3-letter code.", code="invalid_currency")

    package = Package(
        user_id=user_id,
        client_id=client.id,
        title=title,
        total_sessions=total,
        used_sessions=used,
        price_cents=price_cents,
        currency=currency,
    )
    db.session.add(package)
    db.session.flush()
    return package


def update_package(user_id, package_id, data):
    """Edit a package. used_sessions <= total_sessions is re-checked."""
    package = get_package(user_id, package_id)

    if "title" in data:
        title = sanitize_text(data["title"])
        if not title:
            raise ValidationError("Package title is required.", code="invalid_package")
        package.title = title

    total = package.total_sessions
    used = package.used_sessions
    if "total_sessions" in data:
        total = _positive_int(data["total_sessions"], "total_sessions", 1)
    if "used_sessions" in data:
        used = _positive_int(data["used_sessions"], "used_sessions", 0)
    if used > total:
        raise ValidationError(
            "used_sessions cannot exceed total_sessions.", code="invalid_package"
        )
    package.total_sessions = total
    package.used_sessions = used

    if "price_cents" in data:
        price_cents = data["price_cents"]
        if price_cents is not None:
            price_cents = _positive_int(price_cents, "price_cents", 0)
        package.price_cents = price_cents

    db.session.flush()
    return package


def use_session(user_id, package_id):
    """Manually take one credit from a specific package.

    Raises:
        ConflictError: package_empty when no credit is left.
    """
    package = get_package(user_id, package_id)
    if not _increment_if_available(package.id):
        raise ConflictError("Package has no sessions left.", code="package_empty")
    db.session.refresh(package)
    return package


def package_to_dict(package):
    return {
        "id": package.id,
        "client_id": package.client_id,
        "title": package.title,
        "total_sessions": package.total_sessions,
        "used_sessions": package.used_sessions,
        "remaining_sessions": package.remaining_sessions,
        "price_cents": package.price_cents,
        "currency": package.currency,
        "created_at": isoformat(package.created_at),
    }
