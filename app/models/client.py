"""
GeoBuild Back-Office API
Client registry model.

Both ``customer_id`` and ``customer_number`` are unique at the database
level; the service pre-checks for a friendly message and maps a losing
concurrent insert's IntegrityError to the same conflict.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = db.Column(db.String(50), nullable=False)
    customer_number = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), default="")
    address = db.Column(db.String(200), default="")
    project_name = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_clients_customer_id"),
        db.UniqueConstraint("customer_number", name="uq_clients_customer_number"),
        db.Index("ix_clients_name", "name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_number": self.customer_number,
            "name": self.name,
            "email": self.email,
            "phone": self.phone or "",
            "address": self.address or "",
            "project_name": self.project_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Client {self.customer_number} {self.name!r}>"
