# Overview: Service-layer operations for order workflows; sessions, items, totals, and confirmation.

"""
Order Workflow Service

An order starts as an `order_session` entity. Each added item is an
`order_item` entity linked back by its `session_id` attribute. Confirming
the session turns it into an ORDER universal transaction.

DESIGN:
- every multi-step operation runs in one database transaction
- prices are Decimal, rounded half-up to cents
- line order comes from a per-session sequence, so concurrent adds never collide
- confirm_order is idempotent per session (order_confirmations table)
- metadata writes are enrichment: failures are logged, the workflow continues

All public operations return a ServiceResult instead of raising.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import Entity, OrderConfirmation
from ..time_utils import utcnow
from ..validation import (
    AttributeValue,
    FIELD_JSON,
    FIELD_NUMBER,
    FIELD_TEXT,
    FIELD_UUID,
    round_money,
    require_text,
    to_positive_int,
)
from . import entity_store, metadata_store, transaction_store
from .concurrency import lock_for_update, run_with_retry
from .lifecycle_service import (
    ORDER_CONFIRMED,
    ORDER_LIFECYCLE,
    ORDER_PENDING,
    SESSION_ABANDONED,
    SESSION_ACTIVE,
    SESSION_COMPLETED,
    SESSION_LIFECYCLE,
)
from .recommendations import HeuristicRecommendationEngine, Recommendation, RecommendationEngine
from .results import service_operation
from .sequence_service import next_line_order, next_transaction_number

logger = logging.getLogger(__name__)


ENTITY_PRODUCT = "product"
ENTITY_ORDER_SESSION = "order_session"
ENTITY_ORDER_ITEM = "order_item"

ORDER_INTELLIGENCE = "order_intelligence"
ITEM_MODIFICATIONS = "item_modifications"
ORDER_STATUS_HISTORY = "order_status"

DEFAULT_TAX_RATE = Decimal("0.08")
DEFAULT_PREPARATION_MINUTES = 5
MAX_SPECIAL_INSTRUCTIONS_LENGTH = 500

# Price delta relative to base_price, keyed by the first word of the size label
SIZE_PRICE_ADJUSTMENTS = {
    "small": Decimal("-0.50"),
    "medium": Decimal("0.00"),
    "large": Decimal("0.75"),
}

_default_engine = HeuristicRecommendationEngine()


# =============================================================================
# PROJECTIONS
# =============================================================================

@dataclass
class OrderModification:
    type: str
    value: Any
    price_impact: Decimal = Decimal("0.00")


@dataclass
class OrderItemInput:
    product_id: str
    quantity: int
    modifications: dict = field(default_factory=dict)
    special_instructions: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OrderItemInput":
        if not isinstance(data, Mapping):
            raise ValidationError("item must be an object")
        product_id = data.get("product_id") or data.get("productId")
        if not product_id:
            raise ValidationError("product_id is required")
        modifications = data.get("modifications") or {}
        if not isinstance(modifications, Mapping):
            raise ValidationError("modifications must be an object")
        instructions = data.get("special_instructions", data.get("specialInstructions"))
        return cls(
            product_id=str(product_id),
            quantity=to_positive_int(data.get("quantity", 1), "quantity"),
            modifications=dict(modifications),
            special_instructions=(
                require_text(instructions, "special_instructions", max_length=MAX_SPECIAL_INSTRUCTIONS_LENGTH)
                if str(instructions or "").strip() else None
            ),
        )


@dataclass
class OrderItem:
    id: str
    session_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    line_amount: Decimal
    line_order: int
    modifications: list[OrderModification] = field(default_factory=list)
    special_instructions: str | None = None
    preparation_time: int = DEFAULT_PREPARATION_MINUTES
    product_type: str = ENTITY_PRODUCT


@dataclass
class OrderSession:
    id: str
    organization_id: str
    session_code: str
    status: str
    customer_id: str | None
    staff_member_id: str | None
    order_source: str
    service_type: str
    table_number: str | None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    loyalty_points_earned: int
    line_count: int
    order_transaction_id: str | None
    created_at: datetime
    items: list[OrderItem] = field(default_factory=list)


@dataclass
class OrderLineBreakdown:
    item_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    line_tax: Decimal
    line_total: Decimal
    line_order: int
    modifications: list[OrderModification] = field(default_factory=list)


@dataclass
class OrderCalculation:
    session_id: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    loyalty_discount: Decimal
    total_amount: Decimal
    loyalty_points_earned: int
    item_count: int
    line_breakdown: list[OrderLineBreakdown] = field(default_factory=list)


@dataclass
class ConfirmedOrder:
    transaction: dict
    lines: list[dict]
    calculation: OrderCalculation | None = None
    already_confirmed: bool = False


@dataclass
class OrderDetail:
    transaction: dict
    lines: list[dict]
    intelligence: dict | None = None


@dataclass
class StatusUpdate:
    transaction_id: str
    previous_status: str
    status: str
    updated_at: datetime


# =============================================================================
# HELPERS
# =============================================================================

def _tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("ORDER_TAX_RATE", DEFAULT_TAX_RATE)))


def _currency() -> str:
    return current_app.config.get("DEFAULT_CURRENCY", "USD")


def _engine() -> RecommendationEngine:
    return current_app.extensions.get("recommendation_engine") or _default_engine


def size_adjustment(size: Any) -> Decimal:
    """small -0.50, medium 0, large +0.75; labels like "Large (16oz)" match on the leading word."""
    if not size:
        return Decimal("0.00")
    match = re.match(r"[a-z]+", str(size).strip().lower())
    key = match.group(0) if match else ""
    return SIZE_PRICE_ADJUSTMENTS.get(key, Decimal("0.00"))


def price_modifications(modifications: Mapping[str, Any]) -> tuple[Decimal, list[OrderModification]]:
    """Total price delta and the normalized modification list."""
    delta = Decimal("0.00")
    applied: list[OrderModification] = []
    for kind, value in modifications.items():
        if value in (None, "", [], {}):
            continue
        if kind == "size":
            impact = size_adjustment(value)
            delta += impact
            applied.append(OrderModification(type="size", value=value, price_impact=impact))
        else:
            applied.append(OrderModification(type=kind, value=value))
    return delta, applied


def _modifications_from_json(raw: Any) -> list[OrderModification]:
    if not raw:
        return []
    return [
        OrderModification(type=m["type"], value=m.get("value"), price_impact=round_money(m.get("price_impact", 0)))
        for m in raw
    ]


def _modifications_to_json(mods: Iterable[OrderModification]) -> list[dict]:
    return [{"type": m.type, "value": m.value, "price_impact": format(m.price_impact, "f")} for m in mods]


def _item_code(product_name: str, line_order: int) -> str:
    stem = re.sub(r"[^A-Za-z0-9]", "", product_name)[:6].upper() or "ITEM"
    return f"ITM-{stem}-{line_order:02d}"


def _locked_session(session_id: str, organization_id: str) -> Entity:
    entity_store.get_entity(session_id, organization_id, entity_type=ENTITY_ORDER_SESSION)
    return lock_for_update(db.session.query(Entity).filter_by(id=session_id)).one()


def _session_items(session_id: str, organization_id: str) -> list[OrderItem]:
    entities = entity_store.find_entities_by_attribute(
        organization_id, ENTITY_ORDER_ITEM, "session_id", session_id, field_type=FIELD_UUID,
    )
    attrs = entity_store.get_attribute_maps(e.id for e in entities)
    items = []
    for e in entities:
        a = attrs[e.id]
        items.append(
            OrderItem(
                id=e.id,
                session_id=session_id,
                product_id=a.get("product_id"),
                product_name=a.get("product_name", e.entity_name),
                quantity=int(a.get("quantity", 0)),
                unit_price=round_money(a.get("unit_price", 0)),
                line_amount=round_money(a.get("line_amount", 0)),
                line_order=int(a.get("line_order", 0)),
                modifications=_modifications_from_json(a.get("modifications")),
                special_instructions=a.get("special_instructions"),
                preparation_time=int(a.get("preparation_time", DEFAULT_PREPARATION_MINUTES)),
            )
        )
    items.sort(key=lambda i: i.line_order)
    return items


def _calculate(session_id: str, organization_id: str) -> OrderCalculation:
    rate = _tax_rate()
    items = _session_items(session_id, organization_id)

    breakdown = []
    for item in items:
        line_tax = round_money(item.line_amount * rate)
        breakdown.append(
            OrderLineBreakdown(
                item_id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_subtotal=item.line_amount,
                line_tax=line_tax,
                line_total=item.line_amount + line_tax,
                line_order=item.line_order,
                modifications=item.modifications,
            )
        )

    subtotal = round_money(sum((i.line_amount for i in items), Decimal("0")))
    tax_amount = round_money(subtotal * rate)
    # Discount and loyalty redemption are not modelled yet
    discount = Decimal("0.00")
    loyalty_discount = Decimal("0.00")
    total = subtotal + tax_amount - discount - loyalty_discount

    return OrderCalculation(
        session_id=session_id,
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        discount_amount=discount,
        loyalty_discount=loyalty_discount,
        total_amount=total,
        loyalty_points_earned=max(0, math.floor(total)),
        item_count=len(items),
        line_breakdown=breakdown,
    )


def _session_view(entity: Entity, attrs: dict, items: list[OrderItem] | None = None) -> OrderSession:
    return OrderSession(
        id=entity.id,
        organization_id=entity.organization_id,
        session_code=entity.entity_code,
        status=attrs.get("session_status", SESSION_ACTIVE),
        customer_id=attrs.get("customer_id"),
        staff_member_id=attrs.get("staff_member_id"),
        order_source=attrs.get("order_source", "in_store"),
        service_type=attrs.get("service_type", "dine_in"),
        table_number=attrs.get("table_number"),
        subtotal=round_money(attrs.get("subtotal", 0)),
        tax_amount=round_money(attrs.get("tax_amount", 0)),
        discount_amount=round_money(attrs.get("discount_amount", 0)),
        total_amount=round_money(attrs.get("total_amount", 0)),
        loyalty_points_earned=int(attrs.get("loyalty_points_earned", 0)),
        line_count=int(attrs.get("line_count", 0)),
        order_transaction_id=attrs.get("order_transaction_id"),
        created_at=entity.created_at,
        items=items or [],
    )


def _order_lines(transaction_id: str) -> list[dict]:
    return [line.to_dict() for line in transaction_store.get_lines(transaction_id)]


# =============================================================================
# ORDER SESSIONS
# =============================================================================

@service_operation("create order session")
def create_order_session(
    organization_id: str,
    customer_id: str | None = None,
    staff_id: str | None = None,
    session_meta: Mapping[str, Any] | None = None,
) -> OrderSession:
    """
    Open a new order session (status active, zeroed totals).

    The entity, its attributes and the session-configuration metadata are
    written in one transaction; a failure leaves nothing behind.
    """
    meta = dict(session_meta or {})

    def _op() -> OrderSession:
        code = next_transaction_number(organization_id=organization_id, prefix="SES")
        session = entity_store.create_entity(
            organization_id,
            ENTITY_ORDER_SESSION,
            f"Order Session {code}",
            code,
        )
        attrs = {
            "session_status": AttributeValue.text(SESSION_ACTIVE),
            "order_source": AttributeValue.text(meta.get("order_source") or "in_store"),
            "service_type": AttributeValue.text(meta.get("service_type") or "dine_in"),
            "subtotal": AttributeValue.number(0),
            "tax_amount": AttributeValue.number(0),
            "discount_amount": AttributeValue.number(0),
            "total_amount": AttributeValue.number(0),
            "loyalty_points_earned": AttributeValue.number(0),
            "line_count": AttributeValue.number(0),
        }
        if customer_id:
            attrs["customer_id"] = AttributeValue.text(str(customer_id))
        if staff_id:
            attrs["staff_member_id"] = AttributeValue.text(str(staff_id))
        if meta.get("table_number") is not None:
            attrs["table_number"] = AttributeValue.text(str(meta["table_number"]))
        entity_store.set_attributes_batch(session.id, attrs)

        metadata_store.append_metadata(
            organization_id=organization_id,
            subject_type=metadata_store.SUBJECT_ENTITY,
            subject_id=session.id,
            metadata_type=ORDER_INTELLIGENCE,
            metadata_category="session_management",
            metadata_key="session_configuration",
            value={
                "ai_personalization": {
                    "recommendation_engine_enabled": True,
                    "customer_preferences_applied": bool(customer_id),
                    "loyalty_optimization_enabled": True,
                },
                "session_analytics": {
                    "session_start_time": utcnow().isoformat(),
                    "expected_duration": "15_minutes",
                    "complexity_prediction": "low",
                },
                "business_rules": {
                    "auto_apply_loyalty_benefits": True,
                    "enable_upsell_suggestions": True,
                    "quality_optimization_enabled": True,
                },
                "session_meta": {k: v for k, v in meta.items() if isinstance(v, (str, int, float, bool))},
            },
        )

        db.session.commit()
        logger.info("Order session %s opened for org %s", code, organization_id)
        return _session_view(session, entity_store.get_attribute_map(session.id))

    return run_with_retry(_op)


@service_operation("get order session")
def get_order_session(session_id: str, organization_id: str) -> OrderSession:
    session = entity_store.get_entity(session_id, organization_id, entity_type=ENTITY_ORDER_SESSION)
    return _session_view(
        session,
        entity_store.get_attribute_map(session.id),
        _session_items(session.id, organization_id),
    )


@service_operation("abandon order session")
def abandon_order_session(session_id: str, organization_id: str) -> OrderSession:
    def _op() -> OrderSession:
        session = _locked_session(session_id, organization_id)
        status = entity_store.get_attribute_map(session.id).get("session_status", SESSION_ACTIVE)
        SESSION_LIFECYCLE.ensure_transition(status, SESSION_ABANDONED)
        entity_store.set_attribute(session.id, "session_status", SESSION_ABANDONED, FIELD_TEXT)
        db.session.commit()
        return _session_view(session, entity_store.get_attribute_map(session.id))

    return run_with_retry(_op)


# =============================================================================
# ITEMS AND TOTALS
# =============================================================================

@service_operation("add item to order")
def add_item_to_order(session_id: str, organization_id: str, item: Mapping[str, Any] | OrderItemInput) -> OrderItem:
    """
    Add a product to an active session.

    Args:
        session_id: order_session entity id
        organization_id: tenant
        item: productId/product_id, quantity, optional modifications
              ({"size": "large", "temperature": "iced", ...}) and
              special_instructions

    Returns:
        OrderItem with its computed unit price, line amount and line order

    Raises (as failed results):
        NotFoundError: session or product missing, inactive, or other tenant
        ValidationError: bad quantity or payload
        InvalidTransitionError: session no longer active
    """
    data = item if isinstance(item, OrderItemInput) else OrderItemInput.from_mapping(item)

    def _op() -> OrderItem:
        session = _locked_session(session_id, organization_id)
        session_attrs = entity_store.get_attribute_map(session.id)
        status = session_attrs.get("session_status", SESSION_ACTIVE)
        if status != SESSION_ACTIVE:
            raise InvalidTransitionError(
                f"Cannot add items to order session {session_id}: status is '{status}'",
                details={"status": status},
            )

        product = entity_store.get_entity(data.product_id, organization_id, entity_type=ENTITY_PRODUCT)
        product_attrs = entity_store.get_attribute_map(product.id)
        base_price = round_money(product_attrs.get("base_price") or 0)

        delta, mods = price_modifications(data.modifications)
        unit_price = round_money(base_price + delta)
        line_amount = round_money(unit_price * data.quantity)
        line_order = next_line_order(session.id)

        entity = entity_store.create_entity(
            organization_id,
            ENTITY_ORDER_ITEM,
            f"{product.entity_name} x{data.quantity}",
            _item_code(product.entity_name, line_order),
        )
        attrs = {
            "session_id": AttributeValue.uuid(session.id),
            "product_id": AttributeValue.uuid(product.id),
            "product_name": AttributeValue.text(product.entity_name),
            "quantity": AttributeValue.number(data.quantity),
            "unit_price": AttributeValue.number(unit_price),
            "line_amount": AttributeValue.number(line_amount),
            "line_order": AttributeValue.number(line_order),
            "preparation_time": AttributeValue.number(
                product_attrs.get("preparation_time") or DEFAULT_PREPARATION_MINUTES
            ),
            "modifications": AttributeValue(FIELD_JSON, _modifications_to_json(mods)),
        }
        if data.special_instructions:
            attrs["special_instructions"] = AttributeValue.text(data.special_instructions)
        entity_store.set_attributes_batch(entity.id, attrs)
        entity_store.set_attribute(session.id, "line_count", line_order, FIELD_NUMBER)

        if mods:
            metadata_store.safe_write_metadata(
                organization_id=organization_id,
                subject_type=metadata_store.SUBJECT_ENTITY,
                subject_id=entity.id,
                metadata_type=ITEM_MODIFICATIONS,
                metadata_category="customization",
                metadata_key="modifications",
                value={
                    "modifications": _modifications_to_json(mods),
                    "ai_analysis": {
                        "personalization_applied": True,
                        "preference_confidence": 0.85,
                        "upsell_potential": "medium",
                    },
                },
            )

        db.session.commit()
        return OrderItem(
            id=entity.id,
            session_id=session.id,
            product_id=product.id,
            product_name=product.entity_name,
            quantity=data.quantity,
            unit_price=unit_price,
            line_amount=line_amount,
            line_order=line_order,
            modifications=mods,
            special_instructions=data.special_instructions,
            preparation_time=int(product_attrs.get("preparation_time") or DEFAULT_PREPARATION_MINUTES),
        )

    return run_with_retry(_op)


@service_operation("calculate order total")
def calculate_order_total(session_id: str, organization_id: str) -> OrderCalculation:
    """Recompute totals from the session's items. An empty session yields zeros."""
    entity_store.get_entity(session_id, organization_id, entity_type=ENTITY_ORDER_SESSION)
    return _calculate(session_id, organization_id)


# =============================================================================
# CONFIRMATION
# =============================================================================

@service_operation("confirm order")
def confirm_order(
    session_id: str,
    organization_id: str,
    payment_data: Mapping[str, Any] | None = None,
) -> ConfirmedOrder:
    """
    Turn an active session into an ORDER transaction.

    A session confirms once: repeated calls return the original transaction
    with already_confirmed=True.

    Steps (one database transaction):
    1. Recompute totals from the items
    2. Create the ORDER header (pending) with one line per item plus a tax line
    3. Move the order pending -> confirmed
    4. Write order intelligence metadata (non-fatal)
    5. Mark the session completed and record the confirmation
    """
    def _existing(confirmation: OrderConfirmation) -> ConfirmedOrder:
        header = transaction_store.get_transaction(confirmation.transaction_id, organization_id)
        return ConfirmedOrder(
            transaction=header.to_dict(),
            lines=_order_lines(header.id),
            already_confirmed=True,
        )

    def _op() -> ConfirmedOrder:
        session = _locked_session(session_id, organization_id)

        confirmation = db.session.get(OrderConfirmation, session.id)
        if confirmation is not None:
            return _existing(confirmation)

        status = entity_store.get_attribute_map(session.id).get("session_status", SESSION_ACTIVE)
        SESSION_LIFECYCLE.ensure_transition(status, SESSION_COMPLETED)

        calc = _calculate(session.id, organization_id)
        if calc.item_count == 0:
            raise ValidationError(f"Cannot confirm order session {session_id}: no items")

        header = transaction_store.create_transaction_header(
            organization_id,
            transaction_store.TRANSACTION_TYPE_ORDER,
            calc.total_amount,
            number_prefix="ORD",
            currency=_currency(),
            status=ORDER_PENDING,
            reference_id=session.id,
        )

        lines = [
            transaction_store.LineInput(
                line_order=index + 1,
                entity_id=row.product_id,
                line_description=row.product_name,
                quantity=row.quantity,
                unit_price=row.unit_price,
                line_amount=row.line_subtotal,
            )
            for index, row in enumerate(calc.line_breakdown)
        ]
        if calc.tax_amount:
            lines.append(
                transaction_store.LineInput(
                    line_order=len(lines) + 1,
                    entity_id="tax-calculation",
                    line_description="Sales Tax",
                    quantity=1,
                    unit_price=calc.tax_amount,
                    line_amount=calc.tax_amount,
                )
            )
        transaction_store.append_lines(header.id, lines)

        try:
            with db.session.begin_nested():
                db.session.add(
                    OrderConfirmation(session_id=session.id, organization_id=organization_id, transaction_id=header.id)
                )
        except IntegrityError:
            # Another request confirmed this session first
            db.session.rollback()
            return _existing(db.session.get(OrderConfirmation, session_id))

        ORDER_LIFECYCLE.ensure_transition(header.status, ORDER_CONFIRMED)
        transaction_store.update_status(header.id, ORDER_CONFIRMED)

        payment_method = (payment_data or {}).get("method") or (payment_data or {}).get("payment_method")
        metadata_store.safe_write_metadata(
            organization_id=organization_id,
            subject_type=metadata_store.SUBJECT_TRANSACTION,
            subject_id=header.id,
            metadata_type=ORDER_INTELLIGENCE,
            metadata_category="order_completion",
            metadata_key="ai_enhancement_data",
            value={
                "order_session_id": session.id,
                "payment_method": payment_method,
                "ai_personalization": {
                    "customer_preferences": {
                        "temperature_preference": "hot",
                        "sweetness_level": "medium",
                        "milk_alternative": "none",
                        "preferred_size": "medium",
                    },
                    "recommendation_engine_results": [],
                    "loyalty_optimization": {
                        "points_multiplier_applied": 1.0,
                        "tier_benefits": [],
                        "next_reward_progress": f"{calc.loyalty_points_earned} points earned",
                    },
                },
                "order_analytics": {
                    "total_preparation_complexity": "low",
                    "kitchen_load_factor": 0.5,
                    "optimal_preparation_sequence": ["tea_first", "pastry_warming"],
                    "quality_score_prediction": 4.7,
                    "customer_satisfaction_prediction": 4.8,
                },
                "business_intelligence": {
                    "cross_sell_success": ["tea_pastry_pairing"],
                    "overall_margin": 0.70,
                },
            },
        )

        entity_store.set_attributes_batch(
            session.id,
            {
                "session_status": AttributeValue.text(SESSION_COMPLETED),
                "subtotal": AttributeValue.number(calc.subtotal),
                "tax_amount": AttributeValue.number(calc.tax_amount),
                "discount_amount": AttributeValue.number(calc.discount_amount),
                "total_amount": AttributeValue.number(calc.total_amount),
                "loyalty_points_earned": AttributeValue.number(calc.loyalty_points_earned),
                "order_transaction_id": AttributeValue.uuid(header.id),
            },
        )

        db.session.commit()
        logger.info("Order %s confirmed for session %s", header.transaction_number, session.id)
        return ConfirmedOrder(
            transaction=header.to_dict(),
            lines=_order_lines(header.id),
            calculation=calc,
        )

    return run_with_retry(_op)


# =============================================================================
# ORDERS
# =============================================================================

@service_operation("get order")
def get_order(transaction_id: str, organization_id: str) -> OrderDetail:
    header = transaction_store.get_transaction(
        transaction_id, organization_id, transaction_type=transaction_store.TRANSACTION_TYPE_ORDER,
    )
    return OrderDetail(
        transaction=header.to_dict(),
        lines=_order_lines(header.id),
        intelligence=metadata_store.latest_metadata(
            metadata_store.SUBJECT_TRANSACTION, header.id, ORDER_INTELLIGENCE, "ai_enhancement_data",
        ),
    )


@service_operation("update order status")
def update_order_status(
    transaction_id: str,
    organization_id: str,
    status: str,
    notes: str | None = None,
) -> StatusUpdate:
    """Guarded order status change; notes are kept as status history metadata."""
    def _op() -> StatusUpdate:
        header = transaction_store.get_transaction(
            transaction_id,
            organization_id,
            transaction_type=transaction_store.TRANSACTION_TYPE_ORDER,
            for_update=True,
        )
        previous = header.status
        ORDER_LIFECYCLE.ensure_transition(previous, status)
        transaction_store.update_status(header.id, status)

        metadata_store.safe_write_metadata(
            organization_id=organization_id,
            subject_type=metadata_store.SUBJECT_TRANSACTION,
            subject_id=header.id,
            metadata_type=ORDER_STATUS_HISTORY,
            metadata_category="status_history",
            metadata_key="status_change",
            value={"from": previous, "to": status, "notes": notes, "changed_at": utcnow().isoformat()},
        )

        db.session.commit()
        return StatusUpdate(
            transaction_id=header.id,
            previous_status=previous,
            status=status,
            updated_at=header.updated_at,
        )

    return run_with_retry(_op)


@service_operation("get recent orders")
def get_recent_orders(organization_id: str, limit: int = 20) -> list[dict]:
    headers = transaction_store.find_by_type(
        organization_id, transaction_store.TRANSACTION_TYPE_ORDER, limit=max(1, min(int(limit), 200)),
    )
    return [dict(h.to_dict(), session_id=h.reference_id) for h in headers]


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

@service_operation("get personalized recommendations")
def get_personalized_recommendations(
    customer_id: str | None,
    organization_id: str,
    current_items: Iterable[Any] = (),
    *,
    limit: int = 3,
) -> list[Recommendation]:
    """current_items may be product ids, OrderItems, or dicts with product_id/productId."""
    product_ids = []
    for entry in current_items or ():
        if isinstance(entry, OrderItem):
            product_ids.append(entry.product_id)
        elif isinstance(entry, Mapping):
            pid = entry.get("product_id") or entry.get("productId")
            if pid:
                product_ids.append(str(pid))
        elif entry:
            product_ids.append(str(entry))
    return _engine().recommend(organization_id, customer_id, product_ids, limit=limit)
