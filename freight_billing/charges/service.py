from __future__ import annotations

import logging
from collections.abc import Sequence

from freight_billing.charges.aggregator import CurrencyTotals, aggregate
from freight_billing.charges.views import ChargeFilters, ChargeView, build_charge_view, sort_charges
from freight_billing.rates.normalizer import FALLBACK_CURRENCY
from freight_billing.shipments.models import Shipment
from freight_billing.stores.base import ShipmentStore

logger = logging.getLogger(__name__)

MAX_COMPANY_FILTER = 10


class ChargesService:
    def __init__(
        self,
        shipments: ShipmentStore,
        *,
        fetch_limit: int = 100,
        default_status: str = "uninvoiced",
        fallback_currency: str = FALLBACK_CURRENCY,
    ) -> None:
        self._shipments = shipments
        self._fetch_limit = fetch_limit
        self._default_status = default_status
        self._fallback_currency = fallback_currency

    async def fetch_charges(
        self,
        filters: ChargeFilters | None = None,
        *,
        connected_companies: Sequence[str] | None = None,
    ) -> list[ChargeView]:
        filters = filters or ChargeFilters(default_status=self._default_status)
        shipments = await self._load(connected_companies)
        charges = [
            build_charge_view(
                s,
                default_status=self._default_status,
                fallback_currency=self._fallback_currency,
            )
            for s in shipments
            if filters.matches(s)
        ]
        charges = sort_charges(charges, filters.sort_field, filters.sort_direction)
        logger.info("charges_fetched", extra={"count": len(charges)})
        return charges

    async def calculate_metrics(
        self,
        filters: ChargeFilters | None = None,
        *,
        connected_companies: Sequence[str] | None = None,
    ) -> CurrencyTotals:
        filters = filters or ChargeFilters(default_status=self._default_status)
        shipments = await self._load(connected_companies)
        return aggregate(shipments, filters.matches, fallback_currency=self._fallback_currency)

    async def _load(self, connected_companies: Sequence[str] | None) -> list[Shipment]:
        return await self._shipments.list_shipments(
            company_ids=self._company_scope(connected_companies),
            limit=self._fetch_limit,
        )

    @staticmethod
    def _company_scope(connected_companies: Sequence[str] | None) -> list[str] | None:
        # None means unrestricted (super admin); the store caps IN-lists at ten ids
        if not connected_companies:
            return None
        return list(connected_companies)[:MAX_COMPANY_FILTER]
