# Overview: Service-layer operations for sequences; allocates transaction numbers and line order atomically.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Sequence
from ..time_utils import utcnow


LINE_ORDER_SEQUENCE = "line_order"


def next_value(*, scope: str, name: str) -> int:
    """
    Atomically allocate the next value of the (scope, name) counter.

    Runs inside the caller's transaction: the UPDATE holds the row lock until
    the caller commits, so concurrent allocators serialize on it. The first
    allocation inserts the row under a savepoint; if another writer won the
    insert, fall back to the UPDATE path.
    """
    if not scope:
        raise ValidationError("sequence scope is required")
    if not name:
        raise ValidationError("sequence name is required")

    stmt = (
        update(Sequence)
        .where(Sequence.scope == scope, Sequence.name == name)
        .values(next_value=Sequence.next_value + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current(scope, name) - 1

    try:
        with db.session.begin_nested():
            db.session.add(Sequence(scope=scope, name=name, next_value=2))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current(scope, name) - 1


def _current(scope: str, name: str) -> int:
    return (
        db.session.query(Sequence.next_value)
        .filter_by(scope=scope, name=name)
        .scalar()
    )


def next_transaction_number(
    *,
    organization_id: str,
    prefix: str,
    on_date: datetime | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate "<PREFIX>-<YYYYMMDD>-<NNNN>", unique per organization.

    The counter restarts every day per prefix.
    """
    day = (on_date or utcnow()).strftime("%Y%m%d")
    counter = next_value(scope=organization_id, name=f"{prefix}-{day}")
    return f"{prefix}-{day}-{counter:0{pad}d}"


def next_line_order(session_id: str) -> int:
    """Gapless 1-based line order for items added to an order session."""
    return next_value(scope=session_id, name=LINE_ORDER_SEQUENCE)
