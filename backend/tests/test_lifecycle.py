# Overview: Pytest coverage for session, order and payment state machines.

import pytest

from tableside.errors import InvalidTransitionError, ValidationError
from tableside.services.lifecycle_service import (
    ORDER_LIFECYCLE,
    PAYMENT_LIFECYCLE,
    SESSION_LIFECYCLE,
)


class TestOrderLifecycle:
    @pytest.mark.parametrize("frm,to", [
        ("pending", "confirmed"),
        ("confirmed", "preparing"),
        ("preparing", "ready"),
        ("ready", "completed"),
        ("pending", "cancelled"),
        ("confirmed", "cancelled"),
        ("preparing", "cancelled"),
    ])
    def test_allowed(self, frm, to):
        assert ORDER_LIFECYCLE.can_transition(frm, to)
        ORDER_LIFECYCLE.ensure_transition(frm, to)

    @pytest.mark.parametrize("frm,to", [
        ("pending", "ready"),
        ("ready", "cancelled"),
        ("completed", "pending"),
        ("cancelled", "confirmed"),
        ("confirmed", "confirmed"),
    ])
    def test_rejected(self, frm, to):
        with pytest.raises(InvalidTransitionError) as exc:
            ORDER_LIFECYCLE.ensure_transition(frm, to)
        assert exc.value.details["from"] == frm
        assert exc.value.details["allowed"] == ORDER_LIFECYCLE.allowed_from(frm)

    def test_terminal_states(self):
        assert ORDER_LIFECYCLE.is_terminal("completed")
        assert ORDER_LIFECYCLE.is_terminal("cancelled")
        assert not ORDER_LIFECYCLE.is_terminal("ready")

    def test_unknown_status_is_validation_error(self):
        with pytest.raises(ValidationError):
            ORDER_LIFECYCLE.ensure_transition("pending", "shipped")


class TestPaymentLifecycle:
    def test_happy_path(self):
        path = ["pending", "authorized", "captured", "completed", "refunded"]
        for frm, to in zip(path, path[1:]):
            PAYMENT_LIFECYCLE.ensure_transition(frm, to)

    @pytest.mark.parametrize("frm", ["pending", "authorized", "captured"])
    def test_failure_allowed_before_completion(self, frm):
        assert PAYMENT_LIFECYCLE.can_transition(frm, "failed")

    def test_cancel_only_before_capture(self):
        assert PAYMENT_LIFECYCLE.can_transition("pending", "cancelled")
        assert PAYMENT_LIFECYCLE.can_transition("authorized", "cancelled")
        assert not PAYMENT_LIFECYCLE.can_transition("captured", "cancelled")
        assert not PAYMENT_LIFECYCLE.can_transition("completed", "cancelled")

    def test_refund_only_after_completion(self):
        assert PAYMENT_LIFECYCLE.allowed_from("pending") == ["authorized", "cancelled", "failed"]
        with pytest.raises(InvalidTransitionError):
            PAYMENT_LIFECYCLE.ensure_transition("captured", "refunded")

    def test_refunded_failed_cancelled_are_terminal(self):
        for status in ("refunded", "failed", "cancelled"):
            assert PAYMENT_LIFECYCLE.is_terminal(status)


class TestSessionLifecycle:
    def test_active_can_complete_or_abandon(self):
        assert SESSION_LIFECYCLE.allowed_from("active") == ["abandoned", "completed"]

    def test_completed_session_cannot_be_abandoned(self):
        with pytest.raises(InvalidTransitionError):
            SESSION_LIFECYCLE.ensure_transition("completed", "abandoned")
