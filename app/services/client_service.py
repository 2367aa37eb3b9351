"""
Client Service — customer registry CRUD and search.

Uniqueness of ``customer_id`` and ``customer_number`` is enforced by the
database; the pre-checks here only produce a friendlier message.  A
concurrent writer that slips past them is turned into the same
ConflictError from the IntegrityError.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.client import Client

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10

_FIELD_LIMITS = {
    "customer_id": 50,
    "customer_number": 50,
    "name": 200,
    "email": 100,
    "phone": 20,
    "address": 200,
    "project_name": 200,
}

_ALIASES = {
    "customer_id": ("customerId",),
    "customer_number": ("customerNumber",),
    "project_name": ("projectName",),
}

_REQUIRED = ("customer_id", "customer_number", "name", "email")


def _read(data, key):
    for k in (key, *_ALIASES.get(key, ())):
        if data.get(k) is not None:
            return str(data[k]).strip()
    return None


def _check_lengths(values):
    too_long = {
        key: f"max {_FIELD_LIMITS[key]} characters"
        for key, value in values.items()
        if value and len(value) > _FIELD_LIMITS[key]
    }
    if too_long:
        raise ValidationError("Field length exceeded", details=too_long)


def _normalize_email(value):
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})


def _validate(data: dict) -> dict:
    values = {key: _read(data, key) for key in _FIELD_LIMITS}

    missing = [f for f in _REQUIRED if not values[f]]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    _check_lengths(values)
    values["email"] = _normalize_email(values["email"])
    values["phone"] = values["phone"] or ""
    values["address"] = values["address"] or ""
    values["project_name"] = values["project_name"] or None
    return values


def _validate_update(data: dict) -> dict:
    """Only the supplied keys; anything omitted keeps its stored value."""
    changes = {}
    for key in _FIELD_LIMITS:
        value = _read(data, key)
        if value is not None:
            changes[key] = value

    blanked = [f for f in _REQUIRED if f in changes and not changes[f]]
    if blanked:
        raise ValidationError(
            f"Required fields cannot be empty: {', '.join(blanked)}",
            details={"missing": blanked},
        )

    _check_lengths(changes)
    if "email" in changes:
        changes["email"] = _normalize_email(changes["email"])
    if "project_name" in changes:
        changes["project_name"] = changes["project_name"] or None
    return changes


def _check_unique(values, exclude_id=None):
    for field in ("customer_id", "customer_number"):
        q = Client.query.filter(getattr(Client, field) == values[field])
        if exclude_id is not None:
            q = q.filter(Client.id != exclude_id)
        if q.first():
            raise ConflictError("Client", field, values[field])


def _commit_unique(values):
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        msg = str(exc.orig).lower()
        field = "customer_id" if "customer_id" in msg else "customer_number"
        raise ConflictError("Client", field, values.get(field))


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def get_client(client_id) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def get_client_by_number(customer_number) -> Client:
    client = Client.query.filter_by(customer_number=customer_number).first()
    if not client:
        raise NotFoundError(resource="Client", resource_id=customer_number)
    return client


def clients_query(search=None):
    """Clients ordered by name, optionally filtered by name/number/email/id."""
    q = Client.query
    if search and search.strip():
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Client.name.ilike(like),
            Client.customer_number.ilike(like),
            Client.customer_id.ilike(like),
            Client.email.ilike(like),
        ))
    return q.order_by(Client.name.asc())


def search_clients(term):
    """Top matches for a typeahead box; empty term returns nothing."""
    if not term or not term.strip():
        return []
    return clients_query(term).limit(SEARCH_LIMIT).all()


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════


def create_client(data: dict) -> Client:
    values = _validate(data)
    _check_unique(values)
    client = Client(**values)
    db.session.add(client)
    _commit_unique(values)
    logger.info("Client created: %s (%s)", client.customer_number, client.id,
                extra={"event_type": "client_created"})
    return client


def update_client(client_id, data: dict) -> Client:
    client = get_client(client_id)
    changes = _validate_update(data)
    keys = {
        field: changes.get(field, getattr(client, field))
        for field in ("customer_id", "customer_number")
    }
    _check_unique(keys, exclude_id=client.id)
    for key, value in changes.items():
        setattr(client, key, value)
    _commit_unique(keys)
    logger.info("Client updated: %s", client.id, extra={"event_type": "client_updated"})
    return client


def delete_client(client_id) -> None:
    client = get_client(client_id)
    db.session.delete(client)
    db.session.commit()
    logger.info("Client deleted: %s", client_id, extra={"event_type": "client_deleted"})
