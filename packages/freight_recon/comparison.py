"""Charge-by-charge comparison of an invoice against a shipment's system charges.

Rows are joined on the exact ``code|name`` pair. Two lines that share a name
but not a code (or the reverse) are different rows. Within one side a repeated
key overwrites the earlier line (last write wins); that is not an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, replace
from typing import Any

from .charge_codes import (
    DEFAULT_CODE,
    DEFAULT_CURRENCY,
    DEFAULT_NAME,
    first_present,
    invoice_line_amount,
    text_or,
    to_amount,
)
from .models import ChargeLine, ComparisonRow, ComparisonSummary
from .projector import project
from .shipment_records import UpdatedChargesSource, classify_rate_source

type ChargeInput = Mapping[str, Any] | ChargeLine


def _as_mapping(charge: ChargeInput) -> Mapping[str, Any]:
    if isinstance(charge, ChargeLine):
        return asdict(charge)
    return charge


def _key_parts(charge: Mapping[str, Any]) -> tuple[str, str]:
    code = text_or(first_present(charge.get("code"), charge.get("chargeCode")), DEFAULT_CODE)
    name = text_or(
        first_present(charge.get("name"), charge.get("description"), charge.get("chargeName")),
        DEFAULT_NAME,
    )
    return code, name


def compare(
    invoice_charges: Iterable[ChargeInput], system_charges: Iterable[ChargeInput]
) -> list[ComparisonRow]:
    """Align invoice lines with system lines and return one row per key.

    System side: quoted and actual figures default independently,
    ``quotedCost -> cost -> 0`` and ``actualCost -> cost -> 0`` (likewise for
    charge). Invoice side: ``amount``. Order is system keys first, then keys
    that only the invoice has, each in input order.
    """

    rows: dict[str, ComparisonRow] = {}

    for raw in system_charges:
        charge = _as_mapping(raw)
        code, name = _key_parts(charge)
        cost = charge.get("cost")
        amount = charge.get("charge")
        rows[f"{code}|{name}"] = ComparisonRow(
            code=code,
            name=name,
            currency=text_or(charge.get("currency"), DEFAULT_CURRENCY),
            system_quoted_cost=to_amount(first_present(charge.get("quotedCost"), cost)),
            system_quoted_charge=to_amount(first_present(charge.get("quotedCharge"), amount)),
            system_actual_cost=to_amount(first_present(charge.get("actualCost"), cost)),
            system_actual_charge=to_amount(first_present(charge.get("actualCharge"), amount)),
        )

    for raw in invoice_charges:
        charge = _as_mapping(raw)
        code, name = _key_parts(charge)
        key = f"{code}|{name}"
        invoice_amount = invoice_line_amount(charge)
        existing = rows.get(key)
        if existing is None:
            rows[key] = ComparisonRow(
                code=code,
                name=name,
                currency=text_or(charge.get("currency"), DEFAULT_CURRENCY),
                invoice_amount=invoice_amount,
            )
        else:
            rows[key] = replace(existing, invoice_amount=invoice_amount)

    return list(rows.values())


def summarize(rows: Iterable[ComparisonRow]) -> ComparisonSummary:
    materialized = list(rows)
    return ComparisonSummary(
        invoice_total=sum(r.invoice_amount for r in materialized),
        system_actual_total=sum(r.system_actual_cost for r in materialized),
    )


def system_charges_for(shipment: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return the system-side rows for ``shipment``.

    Shipments whose authoritative source is ``updatedCharges`` keep their own
    quoted/actual split. Everything else goes through the projector, where
    quoted and actual are the same figure.
    """

    if isinstance(classify_rate_source(shipment), UpdatedChargesSource):
        return [dict(c) for c in shipment.get("updatedCharges") or [] if isinstance(c, Mapping)]
    return [asdict(line) for line in project(shipment).charges]


def system_actual_total(shipment: Mapping[str, Any]) -> float:
    return sum(
        to_amount(first_present(c.get("actualCost"), c.get("cost")))
        for c in system_charges_for(shipment)
    )


__all__ = [
    "compare",
    "summarize",
    "system_charges_for",
    "system_actual_total",
]
