from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _money(value) -> str | None:
    return None if value is None else format(value, "f")


class UniversalTransaction(db.Model):
    """
    Header for any business transaction (ORDER, PAYMENT, ...).

    Status is written unconditionally at this level; the owning workflow
    guards transitions.
    """
    __tablename__ = "universal_transactions"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "transaction_number", name="uq_universal_transactions_org_number"),
        db.Index("ix_universal_transactions_org_type_date", "organization_id", "transaction_type", "transaction_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid_str)
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False)
    transaction_number = db.Column(db.String(64), nullable=False)
    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Order session / order / entity the transaction is about
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "TransactionLine",
        backref="transaction",
        lazy=True,
        order_by="TransactionLine.line_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "transaction_type": self.transaction_type,
            "transaction_number": self.transaction_number,
            "transaction_date": to_utc_z(self.transaction_date),
            "total_amount": _money(self.total_amount),
            "currency": self.currency,
            "status": self.status,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TransactionLine(db.Model):
    """Line on a universal transaction; line_amount may be negative (discounts)."""
    __tablename__ = "transaction_lines"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_order", name="uq_transaction_lines_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.String(36),
        db.ForeignKey("universal_transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_id = db.Column(db.String(64), nullable=False)
    line_description = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_amount = db.Column(db.Numeric(12, 2), nullable=False)
    line_order = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "entity_id": self.entity_id,
            "line_description": self.line_description,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "line_amount": _money(self.line_amount),
            "line_order": self.line_order,
        }


class Sequence(db.Model):
    """
    Atomic counter per (scope, name).

    Used for transaction numbers (scope = org, name = "ORD-20260101") and
    per-session line order (scope = session id, name = "line_order").
    """
    __tablename__ = "sequences"
    __table_args__ = (
        db.UniqueConstraint("scope", "name", name="uq_sequences_scope_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)


class OrderConfirmation(db.Model):
    """One row per confirmed order session; makes confirmation idempotent."""
    __tablename__ = "order_confirmations"

    session_id = db.Column(db.String(36), primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)
    transaction_id = db.Column(
        db.String(36),
        db.ForeignKey("universal_transactions.id"),
        nullable=False,
        unique=True,
    )
    confirmed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
