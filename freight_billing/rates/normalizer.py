"""Rate normalization: any rate representation -> one (cost, charge, currency)."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from freight_billing.rates.representations import (
    ZERO,
    DualRate,
    ManualRates,
    NoRate,
    RateRepresentation,
    SingleRate,
)

if TYPE_CHECKING:
    from freight_billing.shipments.models import Shipment

FALLBACK_CURRENCY = "CAD"


@dataclass(frozen=True)
class NormalizedRate:
    cost: Decimal
    charge: Decimal
    currency: str

    @property
    def margin(self) -> Decimal:
        return self.charge - self.cost


def _first(*candidates: str | None, fallback: str) -> str:
    for candidate in candidates:
        if candidate:
            return candidate
    return fallback


def normalize_rates(
    rates: RateRepresentation,
    *,
    shipment_currency: str | None = None,
    fallback_currency: str = FALLBACK_CURRENCY,
) -> NormalizedRate:
    if isinstance(rates, ManualRates):
        cost = sum((line.cost for line in rates.lines), ZERO)
        charge = sum((line.charge for line in rates.lines), ZERO)
        first_currency = rates.lines[0].currency if rates.lines else None
        return NormalizedRate(
            cost=cost,
            charge=charge,
            currency=_first(first_currency, shipment_currency, fallback=fallback_currency),
        )

    if isinstance(rates, DualRate):
        return NormalizedRate(
            cost=rates.actual_total,
            charge=rates.markup_total,
            currency=_first(
                rates.markup_currency,
                shipment_currency,
                rates.selected_currency,
                rates.actual_currency,
                fallback=fallback_currency,
            ),
        )

    if isinstance(rates, SingleRate):
        return NormalizedRate(
            cost=rates.total,
            charge=rates.total,
            currency=_first(rates.currency, shipment_currency, fallback=fallback_currency),
        )

    if isinstance(rates, NoRate):
        return NormalizedRate(
            cost=ZERO,
            charge=ZERO,
            currency=_first(shipment_currency, fallback=fallback_currency),
        )

    raise TypeError(f"Unsupported rate representation: {type(rates).__name__}")


def normalize(shipment: Shipment, *, fallback_currency: str = FALLBACK_CURRENCY) -> NormalizedRate:
    return normalize_rates(
        shipment.rates,
        shipment_currency=shipment.currency,
        fallback_currency=fallback_currency,
    )
