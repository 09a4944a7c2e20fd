# Overview: Service-layer state machines for order sessions, orders, and payments.

"""
Tableside Lifecycle Rules

================================================================================
ORDER SESSION:
    active -> completed      (order confirmed)
    active -> abandoned      (customer walked away)

ORDER (transaction status):
    pending -> confirmed -> preparing -> ready -> completed
    pending | confirmed | preparing -> cancelled

PAYMENT (transaction status):
    pending -> authorized -> captured -> completed -> refunded
    pending | authorized | captured -> failed
    pending | authorized -> cancelled
================================================================================

Every workflow that changes a status goes through ensure_transition() so the
rules live in one place. The transaction store itself writes statuses
unconditionally.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import InvalidTransitionError, ValidationError


@dataclass(frozen=True)
class StateMachine:
    name: str
    statuses: frozenset
    transitions: frozenset
    initial: str

    def validate_status(self, status: str) -> None:
        if status not in self.statuses:
            raise ValidationError(
                f"Invalid {self.name} status '{status}'. Must be one of: {', '.join(sorted(self.statuses))}"
            )

    def can_transition(self, from_status: str, to_status: str) -> bool:
        self.validate_status(from_status)
        self.validate_status(to_status)
        return (from_status, to_status) in self.transitions

    def ensure_transition(self, from_status: str, to_status: str) -> None:
        """
        Raises:
            ValidationError: unknown status value
            InvalidTransitionError: the move is not in the transition table
        """
        if not self.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                f"Cannot move {self.name} from '{from_status}' to '{to_status}'",
                details={"from": from_status, "to": to_status, "allowed": self.allowed_from(from_status)},
            )

    def allowed_from(self, status: str) -> list[str]:
        return sorted(to for (frm, to) in self.transitions if frm == status)

    def is_terminal(self, status: str) -> bool:
        return not self.allowed_from(status)


# Order session statuses
SESSION_ACTIVE = "active"
SESSION_COMPLETED = "completed"
SESSION_ABANDONED = "abandoned"

SESSION_LIFECYCLE = StateMachine(
    name="order session",
    statuses=frozenset({SESSION_ACTIVE, SESSION_COMPLETED, SESSION_ABANDONED}),
    transitions=frozenset({
        (SESSION_ACTIVE, SESSION_COMPLETED),
        (SESSION_ACTIVE, SESSION_ABANDONED),
    }),
    initial=SESSION_ACTIVE,
)

# Order statuses
ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PREPARING = "preparing"
ORDER_READY = "ready"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"

ORDER_LIFECYCLE = StateMachine(
    name="order",
    statuses=frozenset({
        ORDER_PENDING, ORDER_CONFIRMED, ORDER_PREPARING, ORDER_READY, ORDER_COMPLETED, ORDER_CANCELLED,
    }),
    transitions=frozenset({
        (ORDER_PENDING, ORDER_CONFIRMED),
        (ORDER_CONFIRMED, ORDER_PREPARING),
        (ORDER_PREPARING, ORDER_READY),
        (ORDER_READY, ORDER_COMPLETED),
        (ORDER_PENDING, ORDER_CANCELLED),
        (ORDER_CONFIRMED, ORDER_CANCELLED),
        (ORDER_PREPARING, ORDER_CANCELLED),
    }),
    initial=ORDER_PENDING,
)

# Payment statuses
PAYMENT_PENDING = "pending"
PAYMENT_AUTHORIZED = "authorized"
PAYMENT_CAPTURED = "captured"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_REFUNDED = "refunded"

PAYMENT_LIFECYCLE = StateMachine(
    name="payment",
    statuses=frozenset({
        PAYMENT_PENDING, PAYMENT_AUTHORIZED, PAYMENT_CAPTURED, PAYMENT_COMPLETED,
        PAYMENT_FAILED, PAYMENT_CANCELLED, PAYMENT_REFUNDED,
    }),
    transitions=frozenset({
        (PAYMENT_PENDING, PAYMENT_AUTHORIZED),
        (PAYMENT_AUTHORIZED, PAYMENT_CAPTURED),
        (PAYMENT_CAPTURED, PAYMENT_COMPLETED),
        (PAYMENT_COMPLETED, PAYMENT_REFUNDED),
        (PAYMENT_PENDING, PAYMENT_FAILED),
        (PAYMENT_AUTHORIZED, PAYMENT_FAILED),
        (PAYMENT_CAPTURED, PAYMENT_FAILED),
        (PAYMENT_PENDING, PAYMENT_CANCELLED),
        (PAYMENT_AUTHORIZED, PAYMENT_CANCELLED),
    }),
    initial=PAYMENT_PENDING,
)
