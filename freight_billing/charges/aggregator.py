"""Per-currency totals over a set of shipments.

Totals are keyed by whatever currencies actually occur; readers use the
``*_for`` accessors, which default to zero for a currency never seen.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from freight_billing.rates.normalizer import FALLBACK_CURRENCY, normalize
from freight_billing.rates.representations import ZERO
from freight_billing.shipments.models import Shipment

ShipmentPredicate = Callable[[Shipment], bool]


@dataclass(frozen=True)
class CurrencyTotals:
    total_shipments: dict[str, int] = field(default_factory=dict)
    total_revenue: dict[str, Decimal] = field(default_factory=dict)
    total_costs: dict[str, Decimal] = field(default_factory=dict)

    @property
    def currencies(self) -> set[str]:
        return set(self.total_shipments)

    def shipments_for(self, currency: str) -> int:
        return self.total_shipments.get(currency, 0)

    def revenue_for(self, currency: str) -> Decimal:
        return self.total_revenue.get(currency, ZERO)

    def costs_for(self, currency: str) -> Decimal:
        return self.total_costs.get(currency, ZERO)

    def margin_for(self, currency: str) -> Decimal:
        return self.revenue_for(currency) - self.costs_for(currency)

    def merge(self, other: CurrencyTotals) -> CurrencyTotals:
        shipments = dict(self.total_shipments)
        revenue = dict(self.total_revenue)
        costs = dict(self.total_costs)
        for currency, count in other.total_shipments.items():
            shipments[currency] = shipments.get(currency, 0) + count
        for currency, amount in other.total_revenue.items():
            revenue[currency] = revenue.get(currency, ZERO) + amount
        for currency, amount in other.total_costs.items():
            costs[currency] = costs.get(currency, ZERO) + amount
        return CurrencyTotals(total_shipments=shipments, total_revenue=revenue, total_costs=costs)


def aggregate(
    shipments: Iterable[Shipment],
    predicate: ShipmentPredicate | None = None,
    *,
    fallback_currency: str = FALLBACK_CURRENCY,
) -> CurrencyTotals:
    shipment_counts: dict[str, int] = {}
    revenue: dict[str, Decimal] = {}
    costs: dict[str, Decimal] = {}

    for shipment in shipments:
        if predicate is not None and not predicate(shipment):
            continue
        rate = normalize(shipment, fallback_currency=fallback_currency)
        shipment_counts[rate.currency] = shipment_counts.get(rate.currency, 0) + 1
        revenue[rate.currency] = revenue.get(rate.currency, ZERO) + rate.charge
        costs[rate.currency] = costs.get(rate.currency, ZERO) + rate.cost

    return CurrencyTotals(total_shipments=shipment_counts, total_revenue=revenue, total_costs=costs)
