"""Rate representations carried by a shipment.

A shipment is priced in exactly one of three ways, decided once when the
shipment is loaded:

- ``ManualRates``: line items entered by hand (quick-ship path)
- ``DualRate``: carrier cost and marked-up customer charge as separate totals
- ``SingleRate``: one selected-rate total used for both cost and charge

``NoRate`` stands for a shipment with no usable pricing at all.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Union

ZERO = Decimal("0")


@dataclass(frozen=True)
class ManualLine:
    charge_name: str | None
    cost: Decimal
    charge: Decimal
    currency: str | None = None
    code: str | None = None


@dataclass(frozen=True)
class ManualRates:
    lines: tuple[ManualLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DualRate:
    actual_total: Decimal
    markup_total: Decimal
    actual_currency: str | None = None
    markup_currency: str | None = None
    selected_currency: str | None = None


@dataclass(frozen=True)
class SingleRate:
    total: Decimal
    currency: str | None = None


@dataclass(frozen=True)
class NoRate:
    pass


RateRepresentation = Union[ManualRates, DualRate, SingleRate, NoRate]


def to_decimal(value: Any) -> Decimal:
    """Parse a loosely typed amount; anything unusable becomes zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        parsed = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return ZERO
    return parsed if parsed.is_finite() else ZERO


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Return ``value`` if it is a mapping, else an empty one."""
    return value if isinstance(value, Mapping) else {}


def _currency(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip().upper()
    return value or None


def _has_amount(value: Any) -> bool:
    return value is not None and value != ""


def _manual_line(entry: Mapping[str, Any]) -> ManualLine:
    return ManualLine(
        charge_name=entry.get("chargeName") or entry.get("charge_name"),
        cost=to_decimal(entry.get("cost")),
        charge=to_decimal(entry.get("charge")),
        currency=_currency(
            entry.get("currency") or entry.get("chargeCurrency") or entry.get("charge_currency")
        ),
        code=entry.get("code"),
    )


def parse_rates(
    *,
    manual_rates: Sequence[Mapping[str, Any]] | None = None,
    actual_rates: Mapping[str, Any] | None = None,
    markup_rates: Mapping[str, Any] | None = None,
    selected_rate: Mapping[str, Any] | None = None,
) -> RateRepresentation:
    """Pick the representation by precedence: manual, then dual, then single."""
    if manual_rates and isinstance(manual_rates, Sequence) and not isinstance(manual_rates, str):
        lines = tuple(_manual_line(e) for e in manual_rates if isinstance(e, Mapping))
        if lines:
            return ManualRates(lines=lines)

    actual_rates = as_mapping(actual_rates)
    markup_rates = as_mapping(markup_rates)
    selected_rate = as_mapping(selected_rate)

    if _has_amount(actual_rates.get("totalCharges")) and _has_amount(markup_rates.get("totalCharges")):
        return DualRate(
            actual_total=to_decimal(actual_rates.get("totalCharges")),
            markup_total=to_decimal(markup_rates.get("totalCharges")),
            actual_currency=_currency(actual_rates.get("currency")),
            markup_currency=_currency(markup_rates.get("currency")),
            selected_currency=_currency(selected_rate.get("currency")),
        )

    if _has_amount(selected_rate.get("totalCharges")):
        return SingleRate(
            total=to_decimal(selected_rate.get("totalCharges")),
            currency=_currency(selected_rate.get("currency")),
        )

    return NoRate()
