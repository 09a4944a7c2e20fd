# Overview: Realtime transaction feed; routes committed transaction inserts/updates to subscribers.

"""
Transaction Feed

Subscribers register a callback for an organization (optionally one
transaction type). Events are captured when UniversalTransaction rows are
flushed and delivered only after the enclosing database transaction commits;
rolled-back work is never announced.

Dispatch behavior:
1. Look up subscriptions matching organization and transaction type
2. Call handlers sequentially
3. Catch and log each handler failure
4. Continue with the next handler

Delivery is at-least-once from a subscriber's point of view; no ordering is
promised across subscribers.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app, has_app_context
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from ..models import UniversalTransaction

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"

FEED_EXTENSION_KEY = "transaction_feed"
_PENDING_KEY = "tableside.pending_transaction_events"
_MARKS_KEY = "tableside.savepoint_event_marks"


@dataclass(frozen=True)
class TransactionEvent:
    event_type: str
    organization_id: str
    transaction_id: str
    transaction_type: str
    status: str
    previous_status: str | None
    record: dict[str, Any] = field(default_factory=dict)


TransactionCallback = Callable[[TransactionEvent], None]


@dataclass
class Subscription:
    id: int
    organization_id: str
    callback: TransactionCallback
    transaction_type: str | None = None
    feed: "TransactionFeed | None" = field(default=None, repr=False)

    def matches(self, ev: TransactionEvent) -> bool:
        if ev.organization_id != self.organization_id:
            return False
        return self.transaction_type is None or ev.transaction_type == self.transaction_type

    def unsubscribe(self) -> None:
        if self.feed is not None:
            self.feed.unsubscribe(self)


class SubscriberRegistry:
    """Thread-safe list of subscriptions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def add(self, organization_id: str, callback: TransactionCallback, transaction_type: str | None) -> Subscription:
        with self._lock:
            sub = Subscription(
                id=next(self._ids),
                organization_id=organization_id,
                callback=callback,
                transaction_type=transaction_type,
            )
            self._subscriptions[sub.id] = sub
            return sub

    def remove(self, subscription_id: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(subscription_id, None) is not None

    def matching(self, ev: TransactionEvent) -> list[Subscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.matches(ev)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class TransactionFeed:
    """Per-application feed, stored in app.extensions["transaction_feed"]."""

    def __init__(self):
        self.registry = SubscriberRegistry()

    def subscribe(
        self,
        organization_id: str,
        callback: TransactionCallback,
        transaction_type: str | None = None,
    ) -> Subscription:
        if not organization_id:
            raise ValueError("organization_id is required to subscribe")
        sub = self.registry.add(organization_id, callback, transaction_type)
        sub.feed = self
        logger.debug("Subscription %s added for org %s (type=%s)", sub.id, organization_id, transaction_type)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.registry.remove(subscription.id)

    def publish(self, ev: TransactionEvent) -> dict:
        """Deliver one event. Never raises; handler failures are counted and logged."""
        result = {"notified": 0, "failed": 0, "failures": []}
        for sub in self.registry.matching(ev):
            handler_name = getattr(sub.callback, "__qualname__", repr(sub.callback))
            try:
                sub.callback(ev)
                result["notified"] += 1
            except Exception as exc:
                result["failed"] += 1
                result["failures"].append({"handler": handler_name, "error": str(exc)})
                logger.error(
                    "Subscriber %s failed for %s %s (transaction %s): %s",
                    handler_name, ev.event_type, ev.transaction_type, ev.transaction_id, exc,
                    exc_info=True,
                )
        return result


def get_feed() -> TransactionFeed:
    feed = current_app.extensions.get(FEED_EXTENSION_KEY)
    if feed is None:
        feed = TransactionFeed()
        current_app.extensions[FEED_EXTENSION_KEY] = feed
    return feed


# =============================================================================
# SQLALCHEMY HOOKS
# =============================================================================

def _snapshot(target: UniversalTransaction) -> dict:
    return target.to_dict()


def _queue(session: Session | None, ev: TransactionEvent) -> None:
    if session is None:
        return
    session.info.setdefault(_PENDING_KEY, []).append(ev)


def _after_insert(mapper, connection, target: UniversalTransaction) -> None:
    _queue(
        object_session(target),
        TransactionEvent(
            event_type=EVENT_INSERT,
            organization_id=target.organization_id,
            transaction_id=target.id,
            transaction_type=target.transaction_type,
            status=target.status,
            previous_status=None,
            record=_snapshot(target),
        ),
    )


def _after_update(mapper, connection, target: UniversalTransaction) -> None:
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else None
    _queue(
        object_session(target),
        TransactionEvent(
            event_type=EVENT_UPDATE,
            organization_id=target.organization_id,
            transaction_id=target.id,
            transaction_type=target.transaction_type,
            status=target.status,
            previous_status=previous,
            record=_snapshot(target),
        ),
    )


def _after_transaction_create(session: Session, transaction) -> None:
    if transaction.nested:
        marks = session.info.setdefault(_MARKS_KEY, {})
        marks[id(transaction)] = len(session.info.get(_PENDING_KEY, []))


def _after_soft_rollback(session: Session, previous_transaction) -> None:
    pending = session.info.get(_PENDING_KEY)
    marks = session.info.get(_MARKS_KEY, {})
    if previous_transaction.nested:
        mark = marks.pop(id(previous_transaction), None)
        if pending is not None and mark is not None:
            del pending[mark:]
        return
    session.info.pop(_PENDING_KEY, None)
    session.info.pop(_MARKS_KEY, None)


def _after_commit(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    session.info.pop(_MARKS_KEY, None)
    if not pending:
        return
    if not has_app_context():
        logger.debug("Dropping %d transaction events: no application context", len(pending))
        return
    feed = get_feed()
    for ev in pending:
        feed.publish(ev)


_installed = False
_install_lock = threading.Lock()


def install_listeners() -> None:
    """Attach the capture hooks once per process."""
    global _installed
    with _install_lock:
        if _installed:
            return
        event.listen(UniversalTransaction, "after_insert", _after_insert)
        event.listen(UniversalTransaction, "after_update", _after_update)
        event.listen(Session, "after_transaction_create", _after_transaction_create)
        event.listen(Session, "after_soft_rollback", _after_soft_rollback)
        event.listen(Session, "after_commit", _after_commit)
        _installed = True
