# Overview: Service-layer operations for the universal transaction store; headers, lines, and the realtime feed.

"""
Universal Transaction Store

One header table and one line table for every kind of business transaction.
ORDER and PAYMENT are the types this system writes.

RULES:
- transaction_number is unique per organization (allocated from a sequence)
- line_order is unique per transaction; callers supply it
- update_status writes unconditionally; workflows own transition rules
- reads are always scoped to an organization
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import TransactionLine, UniversalTransaction
from ..time_utils import utcnow
from ..validation import require_text, to_money
from .concurrency import flush_or_commit, lock_for_update
from .realtime import Subscription, TransactionCallback, get_feed
from .sequence_service import next_transaction_number


TRANSACTION_TYPE_ORDER = "ORDER"
TRANSACTION_TYPE_PAYMENT = "PAYMENT"


@dataclass(frozen=True)
class LineInput:
    line_order: int
    entity_id: str
    line_description: str
    quantity: int
    unit_price: Decimal
    line_amount: Decimal

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineInput":
        quantity = data.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("line quantity must be an integer")
        line_order = data.get("line_order")
        if isinstance(line_order, bool) or not isinstance(line_order, int) or line_order < 1:
            raise ValidationError("line_order must be a positive integer")
        return cls(
            line_order=line_order,
            entity_id=require_text(data.get("entity_id"), "entity_id", max_length=64),
            line_description=require_text(data.get("line_description"), "line_description", max_length=255),
            quantity=quantity,
            unit_price=to_money(data.get("unit_price", 0), "unit_price", allow_negative=True),
            line_amount=to_money(data.get("line_amount", 0), "line_amount", allow_negative=True),
        )


def create_transaction_header(
    organization_id: str,
    transaction_type: str,
    total_amount: Any,
    *,
    transaction_number: str | None = None,
    number_prefix: str | None = None,
    transaction_date: datetime | None = None,
    currency: str = "USD",
    status: str = "pending",
    reference_id: str | None = None,
    commit: bool = False,
) -> UniversalTransaction:
    """
    Create a transaction header.

    Either pass transaction_number, or number_prefix to allocate
    "<PREFIX>-<YYYYMMDD>-<NNNN>" from the organization's sequence.
    """
    organization_id = require_text(organization_id, "organization_id", max_length=64)
    when = transaction_date or utcnow()
    if transaction_number is None:
        if not number_prefix:
            raise ValidationError("transaction_number or number_prefix is required")
        transaction_number = next_transaction_number(
            organization_id=organization_id,
            prefix=number_prefix,
            on_date=when,
        )

    header = UniversalTransaction(
        organization_id=organization_id,
        transaction_type=require_text(transaction_type, "transaction_type", max_length=32),
        transaction_number=require_text(transaction_number, "transaction_number", max_length=64),
        transaction_date=when,
        total_amount=to_money(total_amount, "total_amount", allow_negative=True),
        currency=require_text(currency, "currency", max_length=3).upper(),
        status=require_text(status, "status", max_length=16),
        reference_id=reference_id,
    )
    db.session.add(header)
    flush_or_commit(commit=commit, action=f"create {transaction_type} transaction")
    return header


def append_lines(
    transaction_id: str,
    lines: Iterable[LineInput | Mapping[str, Any]],
    *,
    commit: bool = False,
) -> list[TransactionLine]:
    """
    Append lines to an existing transaction.

    Raises:
        NotFoundError: unknown transaction
        ValidationError: line_order repeated within the batch or already used
    """
    header = db.session.get(UniversalTransaction, transaction_id)
    if header is None:
        raise NotFoundError(f"transaction {transaction_id} not found")

    inputs = [ln if isinstance(ln, LineInput) else LineInput.from_mapping(ln) for ln in lines]

    orders = [ln.line_order for ln in inputs]
    if len(orders) != len(set(orders)):
        raise ValidationError("line_order values must be unique within a transaction", details={"line_order": orders})
    taken = {
        order
        for (order,) in db.session.query(TransactionLine.line_order)
        .filter(TransactionLine.transaction_id == transaction_id, TransactionLine.line_order.in_(orders))
        .all()
    }
    if taken:
        raise ValidationError("line_order already used on this transaction", details={"line_order": sorted(taken)})

    created = []
    for ln in inputs:
        line = TransactionLine(
            transaction_id=transaction_id,
            entity_id=ln.entity_id,
            line_description=ln.line_description,
            quantity=ln.quantity,
            unit_price=ln.unit_price,
            line_amount=ln.line_amount,
            line_order=ln.line_order,
        )
        db.session.add(line)
        created.append(line)

    flush_or_commit(commit=commit, action="append transaction lines")
    return created


def update_status(transaction_id: str, new_status: str, *, commit: bool = False) -> UniversalTransaction:
    """Unconditional status write. Transition rules live in the workflow services."""
    header = db.session.get(UniversalTransaction, transaction_id)
    if header is None:
        raise NotFoundError(f"transaction {transaction_id} not found")
    header.status = require_text(new_status, "status", max_length=16)
    flush_or_commit(commit=commit, action="update transaction status")
    return header


def get_transaction(
    transaction_id: str,
    organization_id: str,
    *,
    transaction_type: str | None = None,
    for_update: bool = False,
) -> UniversalTransaction:
    q = db.session.query(UniversalTransaction).filter_by(id=transaction_id, organization_id=organization_id)
    if for_update:
        q = lock_for_update(q)
    header = q.first()
    if header is None or (transaction_type is not None and header.transaction_type != transaction_type):
        label = (transaction_type or "transaction").lower()
        raise NotFoundError(f"{label} {transaction_id} not found")
    return header


def get_lines(transaction_id: str) -> list[TransactionLine]:
    return (
        db.session.query(TransactionLine)
        .filter_by(transaction_id=transaction_id)
        .order_by(TransactionLine.line_order.asc())
        .all()
    )


def find_by_type(organization_id: str, transaction_type: str, *, limit: int = 20) -> list[UniversalTransaction]:
    """Newest first."""
    return (
        db.session.query(UniversalTransaction)
        .filter_by(organization_id=organization_id, transaction_type=transaction_type)
        .order_by(UniversalTransaction.transaction_date.desc(), UniversalTransaction.created_at.desc())
        .limit(limit)
        .all()
    )


def find_by_date_range(
    organization_id: str,
    start: datetime,
    end: datetime,
    *,
    transaction_type: str | None = None,
) -> list[UniversalTransaction]:
    """Inclusive on both ends, oldest first."""
    if start > end:
        raise ValidationError("start must be <= end")
    q = db.session.query(UniversalTransaction).filter(
        UniversalTransaction.organization_id == organization_id,
        UniversalTransaction.transaction_date >= start,
        UniversalTransaction.transaction_date <= end,
    )
    if transaction_type is not None:
        q = q.filter(UniversalTransaction.transaction_type == transaction_type)
    return q.order_by(UniversalTransaction.transaction_date.asc()).all()


def subscribe(
    organization_id: str,
    callback: TransactionCallback,
    transaction_type: str | None = None,
) -> Subscription:
    """Receive committed INSERT/UPDATE events for an organization's transactions."""
    return get_feed().subscribe(organization_id, callback, transaction_type)
