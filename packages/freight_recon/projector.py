"""Read path: project any stored shipment shape onto a :class:`ChargeLedger`.

``project`` is pure and total. Whatever the record looks like (missing
fields, string amounts, junk entries, not even a mapping) it returns a
structurally valid ledger, possibly with no charges and zero totals.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, assert_never

from .charge_codes import (
    DEFAULT_CODE,
    DEFAULT_CURRENCY,
    DEFAULT_NAME,
    NO_REFERENCE,
    code_to_category,
    first_nonzero_amount,
    first_present,
    is_absent,
    name_to_code,
    text_or,
    to_amount,
)
from .errors import NotFoundError
from .logging_setup import get_logger
from .models import CarrierInfo, ChargeLedger, ChargeLine, ServiceInfo
from .shipment_records import (
    BillingDetail,
    ManualRateEntry,
    ManualRateSource,
    MarkupCharge,
    MarkupRatesSource,
    NoRateSource,
    SelectedRate,
    SelectedRateSource,
    UpdatedChargeEntry,
    UpdatedChargesSource,
    classify_rate_source,
    parse_selected_rate,
)

logger = get_logger("freight_recon.projector")


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def _line_id(raw_id: Any, *, source: str, pos: int) -> str:
    # Deterministic positional ids keep ``project`` pure: projecting the same
    # record twice yields identical ledgers.
    return text_or(raw_id, f"{source}-{pos}")


def _carrier_from(value: Any) -> CarrierInfo:
    if isinstance(value, Mapping):
        return CarrierInfo(
            name=text_or(value.get("name"), ""),
            code=text_or(value.get("code"), ""),
            logo=text_or(value.get("logo"), ""),
        )
    return CarrierInfo(name=text_or(value, "")) if isinstance(value, str) else CarrierInfo()


def _service_from(value: Any) -> ServiceInfo:
    if isinstance(value, Mapping):
        return ServiceInfo(
            name=text_or(value.get("name"), ""),
            code=text_or(value.get("code"), ""),
            type=text_or(value.get("type"), ""),
        )
    return ServiceInfo(name=text_or(value, "")) if isinstance(value, str) else ServiceInfo()


# ---------------------------------------------------------------------------
# Per-variant adapters
# ---------------------------------------------------------------------------


def _from_manual(
    entries: tuple[ManualRateEntry, ...], shipment: Mapping[str, Any]
) -> Iterator[ChargeLine]:
    for pos, e in enumerate(entries):
        code = text_or(e.code, DEFAULT_CODE)
        yield ChargeLine(
            id=_line_id(e.id, source="manual", pos=pos),
            code=code,
            name=text_or(e.chargeName, DEFAULT_NAME),
            category=code_to_category(code),
            cost=first_nonzero_amount(e.cost, e.charge),
            charge=first_nonzero_amount(e.charge, e.cost),
            currency=text_or(first_present(e.chargeCurrency, e.costCurrency), DEFAULT_CURRENCY),
            invoice_number=text_or(e.invoiceNumber, NO_REFERENCE),
            edi_number=text_or(e.ediNumber, NO_REFERENCE),
            commissionable=_flag(e.commissionable),
            source="manual",
            added_by=text_or(shipment.get("createdBy"), ""),
            added_at=shipment.get("createdAt"),
        )


def _from_updated(entries: tuple[UpdatedChargeEntry, ...]) -> Iterator[ChargeLine]:
    for pos, e in enumerate(entries):
        code = text_or(e.code, DEFAULT_CODE)
        yield ChargeLine(
            id=_line_id(e.id, source="inline_edit", pos=pos),
            code=code,
            name=text_or(first_present(e.description, e.chargeName, e.name), DEFAULT_NAME),
            category=text_or(e.category, code_to_category(code)),
            # Quoted wins over actual: the quoted figure is what a human edited.
            cost=first_nonzero_amount(e.quotedCost, e.actualCost, e.cost),
            charge=first_nonzero_amount(e.quotedCharge, e.actualCharge, e.charge),
            currency=text_or(e.currency, DEFAULT_CURRENCY),
            invoice_number=text_or(e.invoiceNumber, NO_REFERENCE),
            edi_number=text_or(e.ediNumber, NO_REFERENCE),
            commissionable=_flag(e.commissionable),
            source="inline_edit",
            added_by=text_or(e.modifiedBy, ""),
            added_at=e.modifiedAt,
        )


def _from_markup(entries: tuple[MarkupCharge, ...]) -> Iterator[ChargeLine]:
    for pos, e in enumerate(entries):
        code = text_or(e.code, DEFAULT_CODE)
        yield ChargeLine(
            id=_line_id(e.id, source="api", pos=pos),
            code=code,
            name=text_or(first_present(e.name, e.description), DEFAULT_NAME),
            category=text_or(e.category, code_to_category(code)),
            cost=to_amount(e.cost),
            charge=to_amount(e.charge),
            currency=text_or(e.currency, DEFAULT_CURRENCY),
            invoice_number=text_or(e.invoiceNumber, NO_REFERENCE),
            edi_number=text_or(e.ediNumber, NO_REFERENCE),
            commissionable=_flag(e.commissionable),
            source="api",
        )


def _from_selected_rate(
    rate: SelectedRate, details: tuple[BillingDetail, ...], shipment: Mapping[str, Any]
) -> Iterator[ChargeLine]:
    currency = text_or(rate.currency, DEFAULT_CURRENCY)
    for pos, d in enumerate(details):
        code = d.code if not is_absent(d.code) else name_to_code(d.name)
        yield ChargeLine(
            id=f"api-{pos}",
            code=code.strip(),
            name=text_or(d.name, DEFAULT_NAME),
            category=text_or(d.category, code_to_category(code)),
            cost=first_nonzero_amount(d.actualAmount, d.amount),
            charge=to_amount(d.amount),
            currency=currency,
            source="api",
            added_by=text_or(shipment.get("createdBy"), ""),
            added_at=shipment.get("createdAt"),
        )


def _fallback_carrier(shipment: Mapping[str, Any]) -> CarrierInfo:
    rate = parse_selected_rate(shipment.get("selectedRate"))
    if rate is not None and rate.carrier:
        return _carrier_from(rate.carrier)
    return _carrier_from(shipment.get("selectedCarrier"))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def project(shipment: Any) -> ChargeLedger:
    """Convert a raw shipment record into its canonical charge ledger."""

    if not isinstance(shipment, Mapping):
        logger.debug("project() received a non-mapping record: %r", type(shipment).__name__)
        return ChargeLedger.build(shipment_id="")

    shipment_id = text_or(shipment.get("id"), "")
    carrier = CarrierInfo()
    service = ServiceInfo()

    source = classify_rate_source(shipment)
    match source:
        case ManualRateSource(entries=entries):
            charges = list(_from_manual(entries, shipment))
            first_carrier = entries[0].carrier if entries else None
            carrier = CarrierInfo(
                name=text_or(first_present(first_carrier, shipment.get("selectedCarrier")), "")
            )
        case UpdatedChargesSource(entries=entries):
            charges = list(_from_updated(entries))
            carrier = _fallback_carrier(shipment)
        case MarkupRatesSource(entries=entries):
            charges = list(_from_markup(entries))
            carrier = _fallback_carrier(shipment)
        case SelectedRateSource(rate=rate, details=details):
            charges = list(_from_selected_rate(rate, details, shipment))
            carrier = _carrier_from(rate.carrier)
            service = _service_from(rate.service)
        case NoRateSource():
            charges = []
        case _:
            assert_never(source)

    return ChargeLedger.build(
        shipment_id=shipment_id,
        charges=charges,
        last_modified=first_present(shipment.get("updatedAt"), shipment.get("createdAt")),
        modified_by=text_or(
            first_present(shipment.get("updatedBy"), shipment.get("createdBy")), ""
        ),
        carrier=carrier,
        service=service,
    )


def load_ledger(store, key: str) -> ChargeLedger:
    """Fetch ``key`` from ``store`` and project it.

    The projection itself never fails; a missing shipment does.
    """

    record = store.fetch_shipment(key)
    if record is None:
        raise NotFoundError("shipment", key)
    return project(record)


__all__ = ["project", "load_ledger"]
