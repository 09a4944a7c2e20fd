# Overview: Heuristic payment risk scoring; a pure, auditable rule table.

"""
Fraud Risk Scoring

risk_score = sum(weight * score) over the applicable factors:

    factor           applies when        weight   score
    amount_risk      amount > 100        0.30     min(amount / 500, 0.5)
    payment_method   always              0.20     table below (unknown: weight 0.30)
    time_risk        always              0.15     0.30 outside 06:00-22:00, else 0.05

    method           score
    credit_card      0.10
    digital_wallet   0.05
    cash             0.02 (weight 0.10)
    anything else    0.40 (weight 0.30), debit_card included

Thresholds: <0.3 low/approve, <0.6 medium/review, <0.8 high/review,
otherwise critical/decline.

Given the same amount, method and hour the result is always the same.
Arithmetic is Decimal so threshold comparisons are exact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..validation import to_money


AMOUNT_THRESHOLD = Decimal("100")
AMOUNT_WEIGHT = Decimal("0.3")
AMOUNT_SCALE = Decimal("500")
AMOUNT_SCORE_CAP = Decimal("0.5")

# method -> (weight, score)
METHOD_RISK = {
    "credit_card": (Decimal("0.2"), Decimal("0.1")),
    "digital_wallet": (Decimal("0.2"), Decimal("0.05")),
    "cash": (Decimal("0.1"), Decimal("0.02")),
}
UNKNOWN_METHOD_RISK = (Decimal("0.3"), Decimal("0.4"))

TIME_WEIGHT = Decimal("0.15")
OFF_HOURS_SCORE = Decimal("0.3")
BUSINESS_HOURS_SCORE = Decimal("0.05")
BUSINESS_HOURS_START = 6
BUSINESS_HOURS_END = 22

# upper bound (exclusive) -> (level, recommendation)
THRESHOLDS = (
    (Decimal("0.3"), "low", "approve"),
    (Decimal("0.6"), "medium", "review"),
    (Decimal("0.8"), "high", "review"),
)
CRITICAL = ("critical", "decline")

VERIFICATION_METHODS = ["cvv_check", "address_verification"]


@dataclass(frozen=True)
class RiskFactor:
    factor: str
    weight: Decimal
    score: Decimal
    description: str

    @property
    def weighted_score(self) -> Decimal:
        return self.weight * self.score


@dataclass
class FraudAssessment:
    risk_score: Decimal
    risk_level: str
    recommendation: str
    confidence: Decimal
    factors: list[RiskFactor] = field(default_factory=list)
    verification_methods: list[str] = field(default_factory=lambda: list(VERIFICATION_METHODS))
    assessed_at: datetime | None = None

    @property
    def declined(self) -> bool:
        return self.recommendation == "decline"

    def to_metadata(self) -> dict[str, Any]:
        return {
            "risk_score": float(self.risk_score),
            "risk_level": self.risk_level,
            "recommendation": self.recommendation,
            "confidence": float(self.confidence),
            "risk_factors": [
                {
                    "factor": f.factor,
                    "weight": float(f.weight),
                    "score": float(f.score),
                    "description": f.description,
                }
                for f in self.factors
            ],
            "verification_methods": list(self.verification_methods),
            "assessed_at": self.assessed_at.isoformat() if self.assessed_at else None,
        }


def classify(score: Decimal) -> tuple[str, str]:
    for bound, level, recommendation in THRESHOLDS:
        if score < bound:
            return level, recommendation
    return CRITICAL


def assess(amount: Any, payment_method: str, *, at: datetime | None = None) -> FraudAssessment:
    """
    Score one payment.

    `at` supplies the hour for the time-of-day factor; defaults to the
    server's local clock.
    """
    amount = to_money(amount, "amount")
    when = at or datetime.now()
    method = (payment_method or "").strip().lower()
    factors: list[RiskFactor] = []

    if amount > AMOUNT_THRESHOLD:
        factors.append(
            RiskFactor(
                factor="amount_risk",
                weight=AMOUNT_WEIGHT,
                score=min(amount / AMOUNT_SCALE, AMOUNT_SCORE_CAP),
                description="High transaction amount",
            )
        )

    weight, score = METHOD_RISK.get(method, UNKNOWN_METHOD_RISK)
    factors.append(
        RiskFactor(
            factor="payment_method_risk",
            weight=weight,
            score=score,
            description=f"Payment method: {method or 'unknown'}",
        )
    )

    off_hours = when.hour < BUSINESS_HOURS_START or when.hour > BUSINESS_HOURS_END
    factors.append(
        RiskFactor(
            factor="time_risk",
            weight=TIME_WEIGHT,
            score=OFF_HOURS_SCORE if off_hours else BUSINESS_HOURS_SCORE,
            description="Unusual transaction time" if off_hours else "Normal business hours",
        )
    )

    total = sum((f.weighted_score for f in factors), Decimal("0"))
    level, recommendation = classify(total)
    return FraudAssessment(
        risk_score=total,
        risk_level=level,
        recommendation=recommendation,
        confidence=Decimal("0.85") + Decimal("0.15") * (Decimal("1") - min(total, Decimal("1"))),
        factors=factors,
        assessed_at=when,
    )
