# Overview: Payment analytics aggregators; turn stored payment transactions into revenue and method statistics.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from ..validation import round_money


PROCESSING_COST_RATE = Decimal("0.029")


@dataclass
class PaymentRecord:
    """Flattened view of one PAYMENT transaction for aggregation."""
    transaction_id: str
    amount: Decimal
    status: str
    payment_method: str | None
    transaction_date: datetime
    fraud_declined: bool = False


@dataclass
class PaymentMethodStats:
    method: str
    count: int
    percentage: Decimal
    success_rate: Decimal
    average_amount: Decimal
    total_revenue: Decimal


@dataclass
class DailyPaymentStats:
    date: date
    transaction_count: int
    completed_count: int
    revenue: Decimal
    success_rate: Decimal


@dataclass
class PaymentAnalytics:
    timeframe: str
    period_start: datetime
    period_end: datetime
    total_revenue: Decimal
    total_transactions: int
    average_transaction_value: Decimal
    success_rate: Decimal
    fraud_rate: Decimal
    processing_costs: Decimal
    net_revenue: Decimal
    aggregator: str
    payment_method_distribution: list[PaymentMethodStats] = field(default_factory=list)
    daily_stats: list[DailyPaymentStats] = field(default_factory=list)


def _ratio(part: int, whole: int) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return round_money(Decimal(part) / Decimal(whole))


class AnalyticsAggregator:
    """
    Base aggregator. Headline figures are shared: revenue counts completed
    payments only; success rate is completed / all payments in the window.
    Subclasses decide method distribution, daily stats and fraud rate.
    """

    name = "base"

    def aggregate(
        self,
        records: Iterable[PaymentRecord],
        *,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> PaymentAnalytics:
        records = list(records)
        completed = [r for r in records if r.status == "completed"]
        revenue = round_money(sum((r.amount for r in completed), Decimal("0")))
        count = len(records)
        average = round_money(revenue / len(completed)) if completed else Decimal("0.00")
        processing_costs = round_money(revenue * PROCESSING_COST_RATE)

        return PaymentAnalytics(
            timeframe=timeframe,
            period_start=start,
            period_end=end,
            total_revenue=revenue,
            total_transactions=count,
            average_transaction_value=average,
            success_rate=_ratio(len(completed), count),
            fraud_rate=self.fraud_rate(records),
            processing_costs=processing_costs,
            net_revenue=revenue - processing_costs,
            aggregator=self.name,
            payment_method_distribution=self.method_distribution(records, revenue, average),
            daily_stats=self.daily_stats(records),
        )

    def fraud_rate(self, records: list[PaymentRecord]) -> Decimal:
        raise NotImplementedError

    def method_distribution(self, records: list[PaymentRecord], revenue: Decimal, average: Decimal) -> list[PaymentMethodStats]:
        raise NotImplementedError

    def daily_stats(self, records: list[PaymentRecord]) -> list[DailyPaymentStats]:
        raise NotImplementedError


class GroupByAggregator(AnalyticsAggregator):
    """Real per-method and per-day grouping over the stored payments."""

    name = "group_by"

    def fraud_rate(self, records):
        return _ratio(sum(1 for r in records if r.fraud_declined), len(records))

    def method_distribution(self, records, revenue, average):
        groups: dict[str, list[PaymentRecord]] = defaultdict(list)
        for r in records:
            groups[r.payment_method or "unknown"].append(r)

        stats = []
        for method, rows in groups.items():
            completed = [r for r in rows if r.status == "completed"]
            method_revenue = round_money(sum((r.amount for r in completed), Decimal("0")))
            stats.append(
                PaymentMethodStats(
                    method=method,
                    count=len(rows),
                    percentage=round_money(Decimal(100) * len(rows) / len(records)),
                    success_rate=_ratio(len(completed), len(rows)),
                    average_amount=round_money(method_revenue / len(completed)) if completed else Decimal("0.00"),
                    total_revenue=method_revenue,
                )
            )
        stats.sort(key=lambda s: (-s.count, s.method))
        return stats

    def daily_stats(self, records):
        days: dict[date, list[PaymentRecord]] = defaultdict(list)
        for r in records:
            days[r.transaction_date.date()].append(r)

        out = []
        for day in sorted(days):
            rows = days[day]
            completed = [r for r in rows if r.status == "completed"]
            out.append(
                DailyPaymentStats(
                    date=day,
                    transaction_count=len(rows),
                    completed_count=len(completed),
                    revenue=round_money(sum((r.amount for r in completed), Decimal("0"))),
                    success_rate=_ratio(len(completed), len(rows)),
                )
            )
        return out


class ProportionalSplitAggregator(AnalyticsAggregator):
    """
    Legacy estimate: fixed 60/25/15 split across credit card, digital wallet
    and cash, a flat 2% fraud rate, and no daily stats.
    """

    name = "proportional"

    SPLITS = (
        ("Credit Card", Decimal("0.60"), Decimal("0.98"), Decimal("1.1")),
        ("Digital Wallet", Decimal("0.25"), Decimal("0.99"), Decimal("0.9")),
        ("Cash", Decimal("0.15"), Decimal("1.00"), Decimal("0.8")),
    )

    def fraud_rate(self, records):
        return Decimal("0.02")

    def method_distribution(self, records, revenue, average):
        total = len(records)
        return [
            PaymentMethodStats(
                method=method,
                count=int(total * share),
                percentage=round_money(share * 100),
                success_rate=success,
                average_amount=round_money(average * avg_factor),
                total_revenue=round_money(revenue * share),
            )
            for method, share, success, avg_factor in self.SPLITS
        ]

    def daily_stats(self, records):
        return []


AGGREGATORS = {
    GroupByAggregator.name: GroupByAggregator,
    ProportionalSplitAggregator.name: ProportionalSplitAggregator,
}


def get_aggregator(name: str | None) -> AnalyticsAggregator:
    cls = AGGREGATORS.get(name or GroupByAggregator.name)
    if cls is None:
        raise ValueError(f"Unknown analytics aggregator '{name}'. Must be one of: {', '.join(sorted(AGGREGATORS))}")
    return cls()
