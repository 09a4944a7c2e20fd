# Overview: Payment gateway interface and the simulated processor used until a real client is wired in.

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from decimal import Decimal

from ..time_utils import utcnow
from ..validation import round_money

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    success: bool
    gateway: str
    transaction_id: str | None = None
    authorization_code: str | None = None
    processing_fee: Decimal | None = None
    error: str | None = None
    error_code: str | None = None
    processed_at: str | None = None

    def to_metadata(self) -> dict:
        return {
            "success": self.success,
            "gateway": self.gateway,
            "transaction_id": self.transaction_id,
            "authorization_code": self.authorization_code,
            "processing_fee": format(self.processing_fee, "f") if self.processing_fee is not None else None,
            "error": self.error,
            "error_code": self.error_code,
            "processed_at": self.processed_at,
        }


def processing_fee(amount: Decimal) -> Decimal:
    """Card-network approximation: 2.9% + 0.30, rounded to cents."""
    return round_money(amount * Decimal("0.029") + Decimal("0.30"))


class PaymentGateway:
    """What the payment workflow needs from a processor."""

    name = "base"

    def charge(self, *, amount: Decimal, currency: str, payment_method: str, risk_level: str, reference: str) -> GatewayResponse:
        raise NotImplementedError


class SimulatedGateway(PaymentGateway):
    """
    Stand-in processor. One random draw decides the outcome; the success
    probability depends on the assessed risk level.

    Pass a seeded random.Random (or anything with .random() and .choice())
    to make outcomes reproducible.
    """

    name = "stripe_simulation"

    SUCCESS_RATES = {"low": 0.98, "medium": 0.85}
    DEFAULT_SUCCESS_RATE = 0.70

    def __init__(self, rng: random.Random | None = None, delay: float = 0.0):
        self.rng = rng or random.Random()
        self.delay = delay

    def success_rate(self, risk_level: str) -> float:
        return self.SUCCESS_RATES.get(risk_level, self.DEFAULT_SUCCESS_RATE)

    def _token(self, alphabet: str, length: int) -> str:
        return "".join(self.rng.choice(alphabet) for _ in range(length))

    def charge(self, *, amount, currency, payment_method, risk_level, reference):
        if self.delay:
            time.sleep(self.delay)

        processed_at = utcnow().isoformat()
        if self.rng.random() < self.success_rate(risk_level):
            response = GatewayResponse(
                success=True,
                gateway=self.name,
                transaction_id="txn_" + self._token(string.ascii_lowercase + string.digits, 12),
                authorization_code="AUTH" + self._token(string.ascii_uppercase + string.digits, 6),
                processing_fee=processing_fee(amount),
                processed_at=processed_at,
            )
        else:
            response = GatewayResponse(
                success=False,
                gateway=self.name,
                error="Payment declined by issuing bank",
                error_code="card_declined",
                processed_at=processed_at,
            )
        logger.info(
            "Simulated charge %s %s via %s for %s: %s",
            amount, currency, payment_method, reference, "approved" if response.success else response.error_code,
        )
        return response
