# Overview: Service-layer operations for payment workflows; creation, risk checks, gateway processing, and analytics.

"""
Payment Workflow Service

A payment is a PAYMENT universal transaction whose lines break the charged
amount into base, tax, tip, discount and processing fee.

STATE MACHINE (see lifecycle_service.PAYMENT_LIFECYCLE):
    pending -> authorized -> captured -> completed -> refunded
    pending | authorized | captured -> failed
    pending | authorized -> cancelled

PROCESSING:
1. Payment must be pending
2. Risk assessment; "decline" marks the payment failed without calling the gateway
3. Gateway charge; success walks authorized -> captured -> completed,
   failure marks the payment failed
4. Assessment and gateway response are kept as metadata (non-fatal)

Card data is never stored; only the method type and the last four digits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from flask import current_app

from ..errors import FraudDeclineError, GatewayError, ValidationError
from ..extensions import db
from ..models import MetadataRecord, UniversalTransaction
from ..time_utils import timeframe_window, utcnow
from ..validation import require_text, to_money
from . import metadata_store, risk_service, transaction_store
from .analytics_service import AnalyticsAggregator, PaymentAnalytics, PaymentRecord, get_aggregator
from .concurrency import run_with_retry
from .gateway import GatewayResponse, PaymentGateway, SimulatedGateway, processing_fee
from .lifecycle_service import (
    PAYMENT_AUTHORIZED,
    PAYMENT_CANCELLED,
    PAYMENT_CAPTURED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_LIFECYCLE,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
)
from .results import service_operation

logger = logging.getLogger(__name__)


PAYMENT_INTELLIGENCE = "payment_intelligence"
FRAUD_DETECTION = "fraud_detection"
GATEWAY_ROUTING = "gateway_routing"

ACCEPTED_METHODS = ["credit_card", "debit_card", "digital_wallet", "cash"]
TIMEFRAMES = ("day", "week", "month", "year")

LINE_BASE = 1
LINE_TAX = 2
LINE_TIP = 3
LINE_DISCOUNT = 4
LINE_FEE = 5

SAMPLE_PAYMENTS = [
    {
        "order_id": "order-001",
        "amount": "23.75",
        "tax_amount": "1.81",
        "order_items": [
            {"item_id": "tea-001", "item_name": "Earl Grey Tea", "quantity": 1, "unit_price": "4.50"},
            {"item_id": "pastry-001", "item_name": "Butter Croissant", "quantity": 1, "unit_price": "3.25"},
        ],
    },
    {
        "order_id": "order-002",
        "amount": "18.50",
        "tax_amount": "1.41",
        "tip_amount": "3.00",
        "order_items": [
            {"item_id": "tea-002", "item_name": "Green Tea", "quantity": 2, "unit_price": "4.00"},
        ],
    },
    {
        "order_id": "order-003",
        "amount": "15.75",
        "tax_amount": "1.20",
        "discount_amount": "2.50",
        "order_items": [
            {"item_id": "pastry-002", "item_name": "Blueberry Scone", "quantity": 2, "unit_price": "3.75"},
        ],
    },
]


# =============================================================================
# PROJECTIONS
# =============================================================================

@dataclass
class PaymentRequest:
    order_id: str
    amount: Decimal
    tax_amount: Decimal = Decimal("0.00")
    tip_amount: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    currency: str = "USD"
    customer_id: str | None = None
    payment_method: str | None = None
    order_items_count: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, default_currency: str = "USD") -> "PaymentRequest":
        if not isinstance(data, Mapping):
            raise ValidationError("payment data must be an object")

        def pick(*keys, default=None):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        amount = to_money(pick("amount"), "amount") if pick("amount") is not None else None
        if amount is None or amount <= 0:
            raise ValidationError("amount must be > 0")
        tax = to_money(pick("tax_amount", "taxAmount", default=0), "tax_amount")
        if tax > amount:
            raise ValidationError("tax_amount cannot exceed amount")
        items = pick("order_items", "orderItems", default=[]) or []

        method = pick("payment_method", "paymentMethod")
        return cls(
            order_id=require_text(pick("order_id", "orderId"), "order_id", max_length=64),
            amount=amount,
            tax_amount=tax,
            tip_amount=to_money(pick("tip_amount", "tipAmount", default=0), "tip_amount"),
            discount_amount=to_money(pick("discount_amount", "discountAmount", default=0), "discount_amount"),
            currency=str(pick("currency", default=default_currency)).upper(),
            customer_id=pick("customer_id", "customerId"),
            payment_method=method_type(method) if method else None,
            order_items_count=len(items) if isinstance(items, list) else 0,
        )


@dataclass
class PaymentTransactionView:
    id: str
    organization_id: str
    transaction_number: str
    order_id: str | None
    amount: Decimal
    currency: str
    status: str
    transaction_date: datetime
    tax_amount: Decimal = Decimal("0.00")
    tip_amount: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    processing_fee: Decimal = Decimal("0.00")
    net_amount: Decimal = Decimal("0.00")
    payment_method: str | None = None
    gateway_transaction_id: str | None = None
    authorization_code: str | None = None
    fraud_score: Decimal | None = None
    risk_level: str | None = None
    pci_compliant: bool = False
    compliance_verified: bool = False
    lines: list[dict] = field(default_factory=list)


@dataclass
class PaymentRecommendation:
    type: str
    title: str
    description: str
    impact: float
    confidence: float
    action_required: bool = False


@dataclass
class PaymentResult:
    success: bool
    payment: PaymentTransactionView
    fraud_assessment: risk_service.FraudAssessment | None = None
    gateway_response: GatewayResponse | None = None
    recommendations: list[PaymentRecommendation] = field(default_factory=list)


@dataclass
class PaymentStatusUpdate:
    payment_id: str
    previous_status: str
    status: str
    updated_at: datetime


# =============================================================================
# HELPERS
# =============================================================================

def method_type(payment_method: Any) -> str:
    """Accepts "credit_card" or {"type": "credit_card", "card_data": {...}}."""
    if isinstance(payment_method, Mapping):
        payment_method = payment_method.get("type")
    if not payment_method or not str(payment_method).strip():
        raise ValidationError("payment_method is required")
    return str(payment_method).strip().lower()


def _card_last4(payment_method: Any) -> str | None:
    if not isinstance(payment_method, Mapping):
        return None
    card = payment_method.get("card_data") or payment_method.get("cardData") or {}
    number = str(card.get("number") or "")
    digits = "".join(ch for ch in number if ch.isdigit())
    return digits[-4:] if len(digits) >= 4 else None


def _gateway(gateway: PaymentGateway | None) -> PaymentGateway:
    if gateway is not None:
        return gateway
    configured = current_app.extensions.get("payment_gateway")
    if configured is not None:
        return configured
    return SimulatedGateway(delay=current_app.config.get("GATEWAY_SIMULATION_DELAY", 0.0))


def _load_payment(payment_id: str, organization_id: str, *, for_update: bool = False) -> UniversalTransaction:
    return transaction_store.get_transaction(
        payment_id,
        organization_id,
        transaction_type=transaction_store.TRANSACTION_TYPE_PAYMENT,
        for_update=for_update,
    )


def _view(header: UniversalTransaction) -> PaymentTransactionView:
    lines = transaction_store.get_lines(header.id)
    by_order = {line.line_order: line for line in lines}

    def amount(order: int) -> Decimal:
        line = by_order.get(order)
        return line.line_amount if line is not None else Decimal("0.00")

    def latest(metadata_type: str, key: str) -> dict:
        return metadata_store.latest_metadata(metadata_store.SUBJECT_TRANSACTION, header.id, metadata_type, key) or {}

    fee = amount(LINE_FEE)
    method = latest(PAYMENT_INTELLIGENCE, "payment_method")
    details = latest(PAYMENT_INTELLIGENCE, "payment_details")
    assessment = latest(FRAUD_DETECTION, "fraud_assessment")
    gateway = latest(GATEWAY_ROUTING, "gateway_response")
    pci_compliant = bool((details.get("compliance_status") or {}).get("pci_compliant"))
    score = assessment.get("risk_score")
    return PaymentTransactionView(
        id=header.id,
        organization_id=header.organization_id,
        transaction_number=header.transaction_number,
        order_id=header.reference_id,
        amount=header.total_amount,
        currency=header.currency,
        status=header.status,
        transaction_date=header.transaction_date,
        tax_amount=amount(LINE_TAX),
        tip_amount=amount(LINE_TIP),
        discount_amount=-amount(LINE_DISCOUNT),
        processing_fee=fee,
        net_amount=header.total_amount - fee,
        payment_method=method.get("type"),
        gateway_transaction_id=gateway.get("transaction_id"),
        authorization_code=gateway.get("authorization_code"),
        fraud_score=Decimal(str(score)) if score is not None else None,
        risk_level=assessment.get("risk_level"),
        pci_compliant=pci_compliant,
        # verified once a risk assessment passed and the gateway approved the charge
        compliance_verified=pci_compliant and bool(assessment) and bool(gateway.get("success")),
        lines=[line.to_dict() for line in lines],
    )


def _transition(header: UniversalTransaction, to_status: str) -> None:
    PAYMENT_LIFECYCLE.ensure_transition(header.status, to_status)
    transaction_store.update_status(header.id, to_status)


def payment_recommendations(
    amount: Decimal,
    assessment: risk_service.FraudAssessment,
    payment_method: str,
) -> list[PaymentRecommendation]:
    recommendations = []
    if amount > 50:
        recommendations.append(
            PaymentRecommendation(
                type="gateway_optimization",
                title="Optimize Payment Gateway",
                description="Consider using Stripe for lower processing fees on transactions over $50",
                impact=0.15,
                confidence=0.85,
            )
        )
    if assessment.risk_level == "medium":
        recommendations.append(
            PaymentRecommendation(
                type="fraud_prevention",
                title="Enhanced Verification",
                description="Enable 3D Secure for medium-risk transactions to reduce fraud",
                impact=0.25,
                confidence=0.90,
                action_required=True,
            )
        )
    if payment_method == "credit_card":
        recommendations.append(
            PaymentRecommendation(
                type="customer_experience",
                title="Digital Wallet Integration",
                description="Offer Apple Pay/Google Pay for faster checkout experience",
                impact=0.20,
                confidence=0.75,
            )
        )
    return recommendations[:3]


def _write_payment_method(organization_id: str, payment_id: str, method: str, last4: str | None = None) -> None:
    metadata_store.safe_write_metadata(
        mode="upsert",
        organization_id=organization_id,
        subject_type=metadata_store.SUBJECT_TRANSACTION,
        subject_id=payment_id,
        metadata_type=PAYMENT_INTELLIGENCE,
        metadata_category="payment_processing",
        metadata_key="payment_method",
        value={"type": method, "card_last4": last4},
    )


def _record_assessment(organization_id: str, payment_id: str, assessment: risk_service.FraudAssessment) -> None:
    metadata_store.safe_write_metadata(
        organization_id=organization_id,
        subject_type=metadata_store.SUBJECT_TRANSACTION,
        subject_id=payment_id,
        metadata_type=FRAUD_DETECTION,
        metadata_category="security",
        metadata_key="fraud_assessment",
        value=assessment.to_metadata(),
    )


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@service_operation("create payment transaction")
def create_payment_transaction(organization_id: str, order_payment_data: Mapping[str, Any]) -> PaymentTransactionView:
    """
    Create a pending PAYMENT transaction for an order.

    Lines (line_order):
        1 Order Payment           amount - tax
        2 Sales Tax               only when tax > 0
        3 Gratuity                only when tip > 0
        4 Discount Applied        negative, only when discount > 0
        5 Payment Processing Fee  round2(amount * 0.029 + 0.30)
    """
    request = PaymentRequest.from_mapping(
        order_payment_data,
        default_currency=current_app.config.get("DEFAULT_CURRENCY", "USD"),
    )

    def _op() -> PaymentTransactionView:
        fee = processing_fee(request.amount)
        net = request.amount - fee
        base = request.amount - request.tax_amount

        header = transaction_store.create_transaction_header(
            organization_id,
            transaction_store.TRANSACTION_TYPE_PAYMENT,
            request.amount,
            number_prefix="PAY",
            currency=request.currency,
            status=PAYMENT_PENDING,
            reference_id=request.order_id,
        )

        lines = [
            transaction_store.LineInput(LINE_BASE, request.order_id, "Order Payment", 1, base, base),
        ]
        if request.tax_amount > 0:
            lines.append(transaction_store.LineInput(
                LINE_TAX, "tax-calculation", "Sales Tax", 1, request.tax_amount, request.tax_amount,
            ))
        if request.tip_amount > 0:
            lines.append(transaction_store.LineInput(
                LINE_TIP, "tip-payment", "Gratuity", 1, request.tip_amount, request.tip_amount,
            ))
        if request.discount_amount > 0:
            lines.append(transaction_store.LineInput(
                LINE_DISCOUNT, "discount-applied", "Discount Applied", 1, -request.discount_amount, -request.discount_amount,
            ))
        lines.append(transaction_store.LineInput(
            LINE_FEE, "processing-fee", "Payment Processing Fee", 1, fee, fee,
        ))
        transaction_store.append_lines(header.id, lines)

        metadata_store.safe_write_metadata(
            organization_id=organization_id,
            subject_type=metadata_store.SUBJECT_TRANSACTION,
            subject_id=header.id,
            metadata_type=PAYMENT_INTELLIGENCE,
            metadata_category="payment_processing",
            metadata_key="payment_details",
            value={
                "order_reference": {
                    "order_id": request.order_id,
                    "customer_id": request.customer_id,
                    "order_items_count": request.order_items_count,
                },
                "payment_breakdown": {
                    "base_amount": format(base, "f"),
                    "tax_amount": format(request.tax_amount, "f"),
                    "tip_amount": format(request.tip_amount, "f"),
                    "discount_amount": format(request.discount_amount, "f"),
                    "processing_fee": format(fee, "f"),
                    "net_amount": format(net, "f"),
                },
                "fraud_prevention": {
                    "initial_risk_score": 0.1,
                    "risk_level": "low",
                    "verification_required": ["payment_method_validation"],
                    "fraud_checks_pending": True,
                },
                "processing_config": {
                    "gateway_preference": "stripe",
                    "payment_methods_accepted": ACCEPTED_METHODS,
                    "currency": request.currency,
                    "settlement_timeline": "1-2_business_days",
                },
                "compliance_status": {
                    "pci_compliant": True,
                    "data_encrypted": True,
                    "audit_trail_enabled": True,
                },
            },
        )
        if request.payment_method:
            _write_payment_method(organization_id, header.id, request.payment_method)

        db.session.commit()
        logger.info("Payment %s created for order %s", header.transaction_number, request.order_id)
        return _view(header)

    return run_with_retry(_op)


# =============================================================================
# RISK AND PROCESSING
# =============================================================================

@service_operation("perform fraud check")
def perform_fraud_check(
    transaction: Any,
    payment_method: Any,
    organization_id: str,
    *,
    at: datetime | None = None,
) -> risk_service.FraudAssessment:
    """
    Score a payment and append the assessment to its metadata.

    `transaction` is a payment id, a PaymentTransactionView, or a mapping with
    "id" (and optionally "amount").
    """
    if isinstance(transaction, PaymentTransactionView):
        payment_id, amount = transaction.id, transaction.amount
    elif isinstance(transaction, Mapping):
        payment_id, amount = transaction.get("id"), transaction.get("amount")
    else:
        payment_id, amount = transaction, None
    method = method_type(payment_method)

    header = _load_payment(str(payment_id), organization_id)
    assessment = risk_service.assess(amount if amount is not None else header.total_amount, method, at=at)
    _record_assessment(organization_id, header.id, assessment)
    db.session.commit()
    return assessment


@service_operation("process payment")
def process_payment(
    payment_id: str,
    organization_id: str,
    payment_method: Any,
    *,
    gateway: PaymentGateway | None = None,
    at: datetime | None = None,
) -> PaymentResult:
    """
    Run risk assessment and the gateway charge for a pending payment.

    Returns (as ServiceResult data) a PaymentResult on success. Fraud declines
    and gateway declines persist the failed status, then surface as failed
    results with error codes fraud_declined / gateway_error and the
    assessment in details.
    """
    method = method_type(payment_method)
    last4 = _card_last4(payment_method)
    processor = _gateway(gateway)

    def _op() -> PaymentResult:
        header = _load_payment(payment_id, organization_id, for_update=True)
        PAYMENT_LIFECYCLE.ensure_transition(header.status, PAYMENT_AUTHORIZED)

        assessment = risk_service.assess(header.total_amount, method, at=at)
        _record_assessment(organization_id, header.id, assessment)
        _write_payment_method(organization_id, header.id, method, last4)

        if assessment.declined:
            _transition(header, PAYMENT_FAILED)
            db.session.commit()
            logger.warning("Payment %s declined by risk assessment (score %s)", header.transaction_number, assessment.risk_score)
            raise FraudDeclineError(
                "Payment declined due to high fraud risk",
                details={"payment": _view(header), "fraud_assessment": assessment},
            )

        response = processor.charge(
            amount=header.total_amount,
            currency=header.currency,
            payment_method=method,
            risk_level=assessment.risk_level,
            reference=header.transaction_number,
        )
        metadata_store.safe_write_metadata(
            organization_id=organization_id,
            subject_type=metadata_store.SUBJECT_TRANSACTION,
            subject_id=header.id,
            metadata_type=GATEWAY_ROUTING,
            metadata_category="processing",
            metadata_key="gateway_response",
            value=response.to_metadata(),
        )

        if not response.success:
            _transition(header, PAYMENT_FAILED)
            db.session.commit()
            logger.warning("Payment %s failed at gateway: %s", header.transaction_number, response.error_code)
            raise GatewayError(
                response.error or "Payment processing failed",
                details={
                    "payment": _view(header),
                    "fraud_assessment": assessment,
                    "gateway_response": response,
                },
            )

        for status in (PAYMENT_AUTHORIZED, PAYMENT_CAPTURED, PAYMENT_COMPLETED):
            _transition(header, status)
        db.session.commit()

        logger.info("Payment %s completed via %s", header.transaction_number, response.gateway)
        return PaymentResult(
            success=True,
            payment=_view(header),
            fraud_assessment=assessment,
            gateway_response=response,
            recommendations=payment_recommendations(header.total_amount, assessment, method),
        )

    return run_with_retry(_op)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def _change_status(payment_id: str, organization_id: str, status: str, note: dict | None = None) -> PaymentStatusUpdate:
    def _op() -> PaymentStatusUpdate:
        header = _load_payment(payment_id, organization_id, for_update=True)
        previous = header.status
        _transition(header, status)
        if note is not None:
            metadata_store.safe_write_metadata(
                organization_id=organization_id,
                subject_type=metadata_store.SUBJECT_TRANSACTION,
                subject_id=header.id,
                metadata_type=PAYMENT_INTELLIGENCE,
                metadata_category="status_history",
                metadata_key=f"payment_{status}",
                value=dict(note, previous_status=previous, changed_at=utcnow().isoformat()),
            )
        db.session.commit()
        return PaymentStatusUpdate(
            payment_id=header.id,
            previous_status=previous,
            status=status,
            updated_at=header.updated_at,
        )

    return run_with_retry(_op)


@service_operation("update payment status")
def update_payment_status(payment_id: str, organization_id: str, status: str) -> PaymentStatusUpdate:
    """Guarded status change; any move outside the transition table fails."""
    return _change_status(payment_id, organization_id, status)


@service_operation("cancel payment")
def cancel_payment(payment_id: str, organization_id: str, reason: str | None = None) -> PaymentStatusUpdate:
    return _change_status(payment_id, organization_id, PAYMENT_CANCELLED, {"reason": reason})


@service_operation("refund payment")
def refund_payment(payment_id: str, organization_id: str, reason: str | None = None) -> PaymentStatusUpdate:
    """Full refund of a completed payment."""
    return _change_status(payment_id, organization_id, PAYMENT_REFUNDED, {"reason": reason})


# =============================================================================
# QUERIES
# =============================================================================

@service_operation("get payment")
def get_payment(payment_id: str, organization_id: str) -> PaymentTransactionView:
    return _view(_load_payment(payment_id, organization_id))


@service_operation("get recent payments")
def get_recent_payments(organization_id: str, limit: int = 10) -> list[PaymentTransactionView]:
    headers = transaction_store.find_by_type(
        organization_id, transaction_store.TRANSACTION_TYPE_PAYMENT, limit=max(1, min(int(limit), 200)),
    )
    return [_view(h) for h in headers]


def _payment_records(headers: list[UniversalTransaction]) -> list[PaymentRecord]:
    ids = [h.id for h in headers]
    methods: dict[str, str] = {}
    declined: set[str] = set()
    if ids:
        rows = (
            db.session.query(MetadataRecord)
            .filter(
                MetadataRecord.subject_type == metadata_store.SUBJECT_TRANSACTION,
                MetadataRecord.subject_id.in_(ids),
                MetadataRecord.metadata_key.in_(("payment_method", "fraud_assessment")),
            )
            .order_by(MetadataRecord.created_at.asc(), MetadataRecord.id.asc())
            .all()
        )
        for row in rows:
            if row.metadata_key == "payment_method":
                methods[row.subject_id] = row.metadata_value.get("type")
            elif row.metadata_value.get("recommendation") == "decline":
                declined.add(row.subject_id)

    return [
        PaymentRecord(
            transaction_id=h.id,
            amount=h.total_amount,
            status=h.status,
            payment_method=methods.get(h.id),
            transaction_date=h.transaction_date,
            fraud_declined=h.id in declined,
        )
        for h in headers
    ]


@service_operation("get payment analytics")
def get_payment_analytics(
    organization_id: str,
    timeframe: str = "day",
    *,
    aggregator: AnalyticsAggregator | None = None,
    now: datetime | None = None,
) -> PaymentAnalytics:
    """
    Revenue, counts and success rate for PAYMENT transactions in the trailing
    window. The aggregator decides how methods and days are broken down;
    PAYMENT_ANALYTICS_AGGREGATOR picks the default.
    """
    if timeframe not in TIMEFRAMES:
        raise ValidationError(f"timeframe must be one of: {', '.join(TIMEFRAMES)}")
    start, end = timeframe_window(timeframe, now=now)
    if aggregator is None:
        try:
            aggregator = get_aggregator(current_app.config.get("PAYMENT_ANALYTICS_AGGREGATOR"))
        except ValueError as exc:
            raise ValidationError(str(exc))

    headers = transaction_store.find_by_date_range(
        organization_id, start, end, transaction_type=transaction_store.TRANSACTION_TYPE_PAYMENT,
    )
    return aggregator.aggregate(_payment_records(headers), timeframe=timeframe, start=start, end=end)


# =============================================================================
# SAMPLE DATA
# =============================================================================

def seed_sample_payments(organization_id: str, *, gateway: PaymentGateway | None = None) -> list:
    """
    Create and process the three demo payments unless the organization
    already has payments. Returns the ServiceResults of processing.
    """
    existing = transaction_store.find_by_type(organization_id, transaction_store.TRANSACTION_TYPE_PAYMENT, limit=1)
    if existing:
        logger.info("Payment data already initialized for org %s", organization_id)
        return []

    results = []
    for sample in SAMPLE_PAYMENTS:
        created = create_payment_transaction(organization_id, sample)
        if not created.success:
            results.append(created)
            continue
        results.append(
            process_payment(
                created.data.id,
                organization_id,
                {"type": "credit_card", "card_data": {"number": "4242424242424242"}},
                gateway=gateway,
            )
        )
    return results
