# Overview: Pytest coverage for order sessions, item pricing, totals, confirmation, and order status.

"""
Order Workflow Tests

Covers the session -> items -> confirm path end to end against the stores:
- item pricing with size modifiers
- tax / loyalty totals
- confirmation into an ORDER transaction (idempotent, atomic)
- session and order state rules
"""

import uuid
from decimal import Decimal

import pytest

from tableside.errors import PersistenceError
from tableside.extensions import db
from tableside.models import DynamicAttribute, Entity, MetadataRecord, OrderConfirmation, Sequence, UniversalTransaction
from tableside.services import entity_store, metadata_store, order_service, transaction_store
from tableside.services.recommendations import HeuristicRecommendationEngine, Recommendation, RecommendationEngine


def _open_session(org_id, **kwargs):
    result = order_service.create_order_session(org_id, **kwargs)
    assert result.success, result.error
    return result.data


def _add(session_id, org_id, product_id, quantity=1, **extra):
    payload = {"product_id": product_id, "quantity": quantity}
    payload.update(extra)
    return order_service.add_item_to_order(session_id, org_id, payload)


class TestOrderSessions:
    def test_create_session_defaults(self, db_session, org_a):
        session = _open_session(org_a, customer_id="cust-1", staff_id="staff-9", session_meta={"table_number": 12})

        assert session.status == "active"
        assert session.session_code.startswith("SES-")
        assert session.customer_id == "cust-1"
        assert session.staff_member_id == "staff-9"
        assert session.table_number == "12"
        assert session.order_source == "in_store"
        assert session.service_type == "dine_in"
        assert session.total_amount == Decimal("0.00")

        config = metadata_store.latest_metadata(
            metadata_store.SUBJECT_ENTITY, session.id, "order_intelligence", "session_configuration",
        )
        assert config["ai_personalization"]["customer_preferences_applied"] is True

    def test_session_codes_are_unique(self, db_session, org_a):
        codes = {_open_session(org_a).session_code for _ in range(3)}
        assert len(codes) == 3

    def test_get_session_other_tenant_not_found(self, db_session, org_a, org_b):
        session = _open_session(org_a)
        result = order_service.get_order_session(session.id, org_b)
        assert not result.success
        assert result.error_code == "not_found"

    def test_abandon_session(self, db_session, org_a):
        session = _open_session(org_a)

        result = order_service.abandon_order_session(session.id, org_a)
        assert result.success
        assert result.data.status == "abandoned"

        again = order_service.abandon_order_session(session.id, org_a)
        assert again.error_code == "invalid_transition"

    def test_failed_session_write_leaves_nothing_behind(self, db_session, org_a, monkeypatch):
        def failing_append(**kwargs):
            raise PersistenceError("metadata write failed")

        monkeypatch.setattr(metadata_store, "append_metadata", failing_append)
        result = order_service.create_order_session(org_a, customer_id="cust-1")

        assert result.error_code == "persistence_error"
        assert db.session.query(Entity).count() == 0
        assert db.session.query(DynamicAttribute).count() == 0
        assert db.session.query(MetadataRecord).count() == 0
        assert db.session.query(Sequence).count() == 0


class TestItemsAndTotals:
    def test_single_item_totals(self, db_session, org_a, earl_grey):
        """4.50 x1 -> subtotal 4.50, tax 0.36, total 4.86, 4 loyalty points."""
        session = _open_session(org_a)
        added = _add(session.id, org_a, earl_grey.id)
        assert added.success, added.error

        calc = order_service.calculate_order_total(session.id, org_a).data
        assert calc.subtotal == Decimal("4.50")
        assert calc.tax_amount == Decimal("0.36")
        assert calc.total_amount == Decimal("4.86")
        assert calc.loyalty_points_earned == 4
        assert calc.item_count == 1
        assert calc.line_breakdown[0].line_tax == Decimal("0.36")

    def test_large_size_adjusts_unit_price(self, db_session, org_a, signature_latte):
        """base 10.00 + large 0.75 = 10.75; x2 = 21.50."""
        session = _open_session(org_a)
        item = _add(session.id, org_a, signature_latte.id, 2, modifications={"size": "large"}).data

        assert item.unit_price == Decimal("10.75")
        assert item.line_amount == Decimal("21.50")
        assert [(m.type, m.price_impact) for m in item.modifications] == [("size", Decimal("0.75"))]

    @pytest.mark.parametrize("size,unit", [
        ("small", "9.50"),
        ("Medium", "10.00"),
        ("Large (16oz)", "10.75"),
        ("Large(16oz)", "10.75"),
        ("large\t", "10.75"),
        (" SMALL-8oz", "9.50"),
        ("venti", "10.00"),
    ])
    def test_size_labels(self, db_session, org_a, signature_latte, size, unit):
        session = _open_session(org_a)
        item = _add(session.id, org_a, signature_latte.id, modifications={"size": size}).data
        assert item.unit_price == Decimal(unit)

    def test_non_price_modifications_are_kept(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        item = _add(
            session.id, org_a, earl_grey.id,
            modifications={"temperature": "iced", "milk": "oat"},
            special_instructions="no sugar",
        ).data

        assert item.unit_price == Decimal("4.50")
        assert {m.type for m in item.modifications} == {"temperature", "milk"}

        stored = order_service.get_order_session(session.id, org_a).data.items[0]
        assert stored.special_instructions == "no sugar"
        assert {m.type for m in stored.modifications} == {"temperature", "milk"}

    def test_overlong_special_instructions_rejected(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)

        result = _add(session.id, org_a, earl_grey.id, special_instructions="x" * 501)

        assert not result.success
        assert result.error_code == "validation_error"
        assert order_service.get_order_session(session.id, org_a).data.items == []

        kept = _add(session.id, org_a, earl_grey.id, special_instructions="  " + "x" * 500 + "  ").data
        assert kept.special_instructions == "x" * 500

    def test_line_order_increments(self, db_session, org_a, earl_grey, signature_latte):
        session = _open_session(org_a)
        orders = [
            _add(session.id, org_a, pid).data.line_order
            for pid in (earl_grey.id, signature_latte.id, earl_grey.id)
        ]
        assert orders == [1, 2, 3]

        view = order_service.get_order_session(session.id, org_a).data
        assert view.line_count == 3
        assert [i.line_order for i in view.items] == [1, 2, 3]

    def test_camel_case_product_id(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        result = order_service.add_item_to_order(session.id, org_a, {"productId": earl_grey.id, "quantity": "2"})
        assert result.success
        assert result.data.line_amount == Decimal("9.00")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "1e3", True])
    def test_rejects_bad_quantity(self, db_session, org_a, earl_grey, quantity):
        session = _open_session(org_a)
        result = _add(session.id, org_a, earl_grey.id, quantity)
        assert result.error_code == "validation_error"

    def test_unknown_or_inactive_product(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        assert _add(session.id, org_a, str(uuid.uuid4())).error_code == "not_found"

        entity_store.deactivate_entity(earl_grey.id, org_a, commit=True)
        assert _add(session.id, org_a, earl_grey.id).error_code == "not_found"

    def test_product_from_other_tenant(self, db_session, org_b, product_factory):
        foreign = product_factory("org-acme", "Foreign Tea", "TEA-F", "3.00")
        session = _open_session(org_b)
        assert _add(session.id, org_b, foreign.id).error_code == "not_found"

    def test_empty_session_totals_are_zero(self, db_session, org_a):
        session = _open_session(org_a)
        calc = order_service.calculate_order_total(session.id, org_a).data
        assert calc.total_amount == Decimal("0.00")
        assert calc.loyalty_points_earned == 0
        assert calc.line_breakdown == []

    def test_cannot_add_to_abandoned_session(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        order_service.abandon_order_session(session.id, org_a)
        assert _add(session.id, org_a, earl_grey.id).error_code == "invalid_transition"


class TestConfirmOrder:
    def test_confirm_creates_order_transaction(self, db_session, org_a, earl_grey, signature_latte, feed_events):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)
        _add(session.id, org_a, signature_latte.id, 2, modifications={"size": "large"})

        result = order_service.confirm_order(session.id, org_a, {"method": "credit_card"})
        assert result.success, result.error
        confirmed = result.data

        order = confirmed.transaction
        assert order["transaction_type"] == "ORDER"
        assert order["status"] == "confirmed"
        assert order["transaction_number"].startswith("ORD-")
        assert order["reference_id"] == session.id
        # 4.50 + 21.50 = 26.00; tax 2.08
        assert order["total_amount"] == "28.08"
        assert not confirmed.already_confirmed

        descriptions = [line["line_description"] for line in confirmed.lines]
        assert descriptions == ["Earl Grey Tea", "Signature Latte", "Sales Tax"]
        assert sum(Decimal(line["line_amount"]) for line in confirmed.lines) == Decimal("28.08")
        assert [line["line_order"] for line in confirmed.lines] == [1, 2, 3]

        view = order_service.get_order_session(session.id, org_a).data
        assert view.status == "completed"
        assert view.order_transaction_id == order["id"]
        assert view.total_amount == Decimal("28.08")
        assert view.loyalty_points_earned == 28

        # Created pending then confirmed, both announced after commit
        order_events = [(e.event_type, e.status) for e in feed_events if e.transaction_id == order["id"]]
        assert order_events == [("INSERT", "pending"), ("UPDATE", "confirmed")]

    def test_confirm_is_idempotent(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)

        first = order_service.confirm_order(session.id, org_a).data
        second = order_service.confirm_order(session.id, org_a).data

        assert second.already_confirmed
        assert second.transaction["id"] == first.transaction["id"]
        assert db.session.query(UniversalTransaction).filter_by(transaction_type="ORDER").count() == 1
        assert db.session.query(OrderConfirmation).count() == 1

    def test_confirm_empty_session_rejected(self, db_session, org_a):
        session = _open_session(org_a)
        result = order_service.confirm_order(session.id, org_a)

        assert result.error_code == "validation_error"
        assert db.session.query(UniversalTransaction).count() == 0
        assert order_service.get_order_session(session.id, org_a).data.status == "active"

    def test_failed_confirmation_leaves_nothing_behind(self, db_session, org_a, earl_grey, monkeypatch, feed_events):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)

        def failing_append_lines(transaction_id, lines, **kwargs):
            raise PersistenceError("line write failed")

        monkeypatch.setattr(transaction_store, "append_lines", failing_append_lines)
        result = order_service.confirm_order(session.id, org_a)

        assert result.error_code == "persistence_error"
        assert db.session.query(UniversalTransaction).count() == 0
        assert db.session.query(OrderConfirmation).count() == 0
        assert feed_events == []

        reopened = order_service.get_order_session(session.id, org_a).data
        assert reopened.status == "active"
        assert reopened.order_transaction_id is None
        assert len(reopened.items) == 1

    def test_confirm_abandoned_session_rejected(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)
        order_service.abandon_order_session(session.id, org_a)

        assert order_service.confirm_order(session.id, org_a).error_code == "invalid_transition"

    def test_cannot_add_after_confirm(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)
        order_service.confirm_order(session.id, org_a)

        assert _add(session.id, org_a, earl_grey.id).error_code == "invalid_transition"

    def test_get_order_includes_intelligence(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)
        order_id = order_service.confirm_order(session.id, org_a, {"method": "cash"}).data.transaction["id"]

        detail = order_service.get_order(order_id, org_a).data
        assert detail.transaction["id"] == order_id
        assert detail.intelligence["payment_method"] == "cash"
        assert len(detail.lines) == 2


class TestOrderStatus:
    @pytest.fixture
    def order_id(self, db_session, org_a, earl_grey):
        session = _open_session(org_a)
        _add(session.id, org_a, earl_grey.id)
        return order_service.confirm_order(session.id, org_a).data.transaction["id"]

    def test_kitchen_progression(self, org_a, order_id):
        for status in ("preparing", "ready", "completed"):
            result = order_service.update_order_status(order_id, org_a, status, notes=f"now {status}")
            assert result.success, result.error
            assert result.data.status == status

        history = metadata_store.read_metadata(metadata_store.SUBJECT_TRANSACTION, order_id, "order_status")
        assert [h.metadata_value["to"] for h in history] == ["completed", "ready", "preparing"]

    def test_skipping_a_step_is_rejected(self, org_a, order_id):
        result = order_service.update_order_status(order_id, org_a, "completed")
        assert result.error_code == "invalid_transition"
        assert result.details["allowed"] == ["cancelled", "preparing"]

    def test_cancelled_is_terminal(self, org_a, order_id):
        assert order_service.update_order_status(order_id, org_a, "cancelled").success
        assert order_service.update_order_status(order_id, org_a, "preparing").error_code == "invalid_transition"

    def test_unknown_status(self, org_a, order_id):
        assert order_service.update_order_status(order_id, org_a, "shipped").error_code == "validation_error"

    def test_recent_orders(self, org_a, order_id):
        orders = order_service.get_recent_orders(org_a).data
        assert [o["id"] for o in orders] == [order_id]
        assert orders[0]["session_id"]


class TestRecommendations:
    def test_excludes_items_in_cart(self, db_session, org_a, earl_grey, signature_latte, product_factory):
        scone = product_factory(org_a, "Blueberry Scone", "PST-SCONE", "3.75", category="pastry")

        recs = order_service.get_personalized_recommendations("cust-1", org_a, [earl_grey.id]).data

        assert {r.product_id for r in recs} == {signature_latte.id, scone.id}
        assert [r.confidence for r in recs] == [0.85, 0.75]
        assert all(r.product_id != earl_grey.id for r in recs)
        assert {r.price_impact for r in recs} == {Decimal("10.00"), Decimal("3.75")}

    @pytest.mark.parametrize("limit", [0, -1, -5])
    def test_non_positive_limit_returns_nothing(self, db_session, org_a, earl_grey, signature_latte, limit):
        engine = HeuristicRecommendationEngine()
        assert engine.recommend(org_a, None, [earl_grey.id], limit=limit) == []
        assert len(engine.recommend(org_a, None, [earl_grey.id], limit=1)) == 1

    def test_accepts_item_dicts(self, db_session, org_a, earl_grey):
        recs = order_service.get_personalized_recommendations(None, org_a, [{"productId": earl_grey.id}]).data
        assert recs == []

    def test_engine_is_pluggable(self, app, db_session, org_a):
        class FixedEngine(RecommendationEngine):
            name = "fixed"

            def recommend(self, organization_id, customer_id, current_product_ids, *, limit=3):
                return [Recommendation("p-1", "House Blend", "staff pick", 1.0, Decimal("5.00"), "upsell")]

        app.extensions["recommendation_engine"] = FixedEngine()
        recs = order_service.get_personalized_recommendations(None, org_a).data
        assert [r.product_name for r in recs] == ["House Blend"]
