# Overview: Pluggable recommendation engines used by the order workflow.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from ..validation import round_money
from .entity_store import find_entities_by_type, get_attribute_maps


@dataclass
class Recommendation:
    product_id: str
    product_name: str
    reason: str
    confidence: float
    price_impact: Decimal
    category: str
    metadata: dict = field(default_factory=dict)


class RecommendationEngine:
    """Interface the order workflow depends on."""

    name = "base"

    def recommend(
        self,
        organization_id: str,
        customer_id: str | None,
        current_product_ids: Iterable[str],
        *,
        limit: int = 3,
    ) -> list[Recommendation]:
        raise NotImplementedError


class HeuristicRecommendationEngine(RecommendationEngine):
    """
    Placeholder ranking: the newest active products not already in the cart,
    with a fixed confidence ladder and canned reasons.
    """

    name = "heuristic"

    SLOTS = (
        ("Based on your preference for tea", 0.85, "personalized"),
        ("Popular pairing with your current selection", 0.75, "cross_sell"),
        ("Highly rated by similar customers", 0.65, "upsell"),
    )

    def recommend(self, organization_id, customer_id, current_product_ids, *, limit=3):
        in_cart = set(current_product_ids or ())
        candidates = [
            p for p in find_entities_by_type(organization_id, "product")
            if p.id not in in_cart
        ][: max(0, min(limit, len(self.SLOTS)))]

        attrs = get_attribute_maps(p.id for p in candidates)
        recommendations = []
        for product, (reason, confidence, category) in zip(candidates, self.SLOTS):
            price = attrs[product.id].get("base_price")
            recommendations.append(
                Recommendation(
                    product_id=product.id,
                    product_name=product.entity_name,
                    reason=reason,
                    confidence=confidence,
                    price_impact=round_money(price if price is not None else 0),
                    category=category,
                    metadata={"engine": self.name, "customer_id": customer_id},
                )
            )
        return recommendations
