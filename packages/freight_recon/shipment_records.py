"""Typed adapters over the historical rate shapes stored on a shipment.

A shipment record may carry any mix of these fields, written by different
generations of the platform:

- ``manualRates``: per-line entries typed in by hand (QuickShip shipments).
- ``updatedCharges`` (mirrored in ``chargesBreakdown``): inline edits.
- ``actualRates`` + ``markupRates``: carrier cost vs. marked-up customer rate.
- ``selectedRate``: the carrier API quote with ``billingDetails``.

Exactly one of them is authoritative for a given shipment.
:func:`classify_rate_source` decides which and returns a variant of the
``RateSource`` union; callers ``match`` on it so the priority chain is
exhaustive rather than a waterfall of ``.get()`` calls.

Models are lenient on purpose: amounts stay ``Any`` here and are coerced by
the projector, unknown keys are preserved, and a malformed entry is dropped
instead of failing the whole record.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .logging_setup import get_logger

logger = get_logger("freight_recon.shipment_records")

QUICKSHIP = "quickship"


class _RawEntry(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class ManualRateEntry(_RawEntry):
    id: Any = None
    carrier: str | None = None
    code: str | None = None
    chargeName: str | None = None
    cost: Any = None
    costCurrency: str | None = None
    charge: Any = None
    chargeCurrency: str | None = None
    invoiceNumber: str | None = None
    ediNumber: str | None = None
    commissionable: Any = None


class UpdatedChargeEntry(_RawEntry):
    id: Any = None
    code: str | None = None
    description: str | None = None
    chargeName: str | None = None
    name: str | None = None
    category: str | None = None
    quotedCost: Any = None
    quotedCharge: Any = None
    actualCost: Any = None
    actualCharge: Any = None
    cost: Any = None
    charge: Any = None
    currency: str | None = None
    invoiceNumber: str | None = None
    ediNumber: str | None = None
    commissionable: Any = None
    modifiedBy: str | None = None
    modifiedAt: Any = None


class MarkupCharge(_RawEntry):
    id: Any = None
    code: str | None = None
    name: str | None = None
    description: str | None = None
    category: str | None = None
    cost: Any = None
    charge: Any = None
    currency: str | None = None
    invoiceNumber: str | None = None
    ediNumber: str | None = None
    commissionable: Any = None


class BillingDetail(_RawEntry):
    code: str | None = None
    name: str | None = None
    category: str | None = None
    amount: Any = None
    actualAmount: Any = None


class SelectedRate(_RawEntry):
    carrier: Any = None
    service: Any = None
    pricing: Any = None
    billingDetails: Any = None

    @property
    def currency(self) -> str | None:
        if not isinstance(self.pricing, Mapping):
            return None
        cur = self.pricing.get("currency")
        return str(cur) if cur else None


# ---------------------------------------------------------------------------
# Discriminated union of rate sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ManualRateSource:
    entries: tuple[ManualRateEntry, ...]


@dataclass(frozen=True, slots=True)
class UpdatedChargesSource:
    entries: tuple[UpdatedChargeEntry, ...]


@dataclass(frozen=True, slots=True)
class MarkupRatesSource:
    entries: tuple[MarkupCharge, ...]


@dataclass(frozen=True, slots=True)
class SelectedRateSource:
    rate: SelectedRate
    details: tuple[BillingDetail, ...]


@dataclass(frozen=True, slots=True)
class NoRateSource:
    pass


type RateSource = (
    ManualRateSource | UpdatedChargesSource | MarkupRatesSource | SelectedRateSource | NoRateSource
)


def is_manual(shipment: Mapping[str, Any]) -> bool:
    return shipment.get("creationMethod") == QUICKSHIP


def _non_empty_list(value: Any) -> Sequence[Any] | None:
    if isinstance(value, (list, tuple)) and len(value) > 0:
        return value
    return None


def _parse_entries(model: type[BaseModel], raw: Sequence[Any], *, field: str) -> tuple[Any, ...]:
    out: list[BaseModel] = []
    for pos, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            logger.debug("skipping non-mapping %s[%d]: %r", field, pos, entry)
            continue
        try:
            out.append(model.model_validate(dict(entry)))
        except PydanticValidationError as exc:
            logger.debug("skipping malformed %s[%d]: %s", field, pos, exc)
    return tuple(out)


def parse_selected_rate(raw: Any) -> SelectedRate | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        return SelectedRate.model_validate(dict(raw))
    except PydanticValidationError as exc:
        logger.debug("ignoring malformed selectedRate: %s", exc)
        return None


def classify_rate_source(shipment: Mapping[str, Any]) -> RateSource:
    """Pick the authoritative rate representation for ``shipment``.

    Priority (per shipment, not per field):

    1. QuickShip shipments use ``manualRates`` exclusively.
    2. ``updatedCharges`` when it is a non-empty list (latest human edits).
    3. ``actualRates`` + ``markupRates`` with a non-empty
       ``markupRates.charges``.
    4. ``selectedRate.billingDetails`` when non-empty.
    5. Nothing, which is a valid state.
    """

    if is_manual(shipment):
        raw = _non_empty_list(shipment.get("manualRates")) or ()
        return ManualRateSource(_parse_entries(ManualRateEntry, raw, field="manualRates"))

    updated = _non_empty_list(shipment.get("updatedCharges"))
    if updated is not None:
        return UpdatedChargesSource(
            _parse_entries(UpdatedChargeEntry, updated, field="updatedCharges")
        )

    actual = shipment.get("actualRates")
    markup = shipment.get("markupRates")
    if actual and isinstance(markup, Mapping):
        markup_charges = _non_empty_list(markup.get("charges"))
        if markup_charges is not None:
            return MarkupRatesSource(
                _parse_entries(MarkupCharge, markup_charges, field="markupRates.charges")
            )

    rate = parse_selected_rate(shipment.get("selectedRate"))
    if rate is not None:
        details = _non_empty_list(rate.billingDetails)
        if details is not None:
            return SelectedRateSource(
                rate=rate,
                details=_parse_entries(BillingDetail, details, field="selectedRate.billingDetails"),
            )

    return NoRateSource()


__all__ = [
    "QUICKSHIP",
    "ManualRateEntry",
    "UpdatedChargeEntry",
    "MarkupCharge",
    "BillingDetail",
    "SelectedRate",
    "ManualRateSource",
    "UpdatedChargesSource",
    "MarkupRatesSource",
    "SelectedRateSource",
    "NoRateSource",
    "RateSource",
    "is_manual",
    "parse_selected_rate",
    "classify_rate_source",
]
