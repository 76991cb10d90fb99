"""Write path: decompose a :class:`ChargeLedger` into the shipment's native shape.

Which field is written depends on how the shipment was created, using the
same test as the projector:

- QuickShip shipments get ``manualRates``; ``updatedCharges`` and
  ``chargesBreakdown`` are nulled so a later read cannot pick up stale edits.
- Every other shipment gets ``updatedCharges`` (mirrored into the legacy
  ``chargesBreakdown``). Quoted and actual figures are both set to the
  ledger's value: a manual save means quoted and actual agree from here on.

Only these fields plus ``updatedAt``/``updatedBy`` are written, merged over
the freshly fetched record.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .charge_codes import DEFAULT_NAME, format_amount, text_or
from .errors import NotFoundError
from .logging_setup import get_logger
from .models import Actor, ChargeLedger
from .projector import project
from .shipment_records import NoRateSource, classify_rate_source, is_manual
from .store import ShipmentStore

logger = get_logger("freight_recon.persister")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def to_manual_rates(ledger: ChargeLedger) -> list[dict[str, Any]]:
    return [
        {
            "id": line.id or str(pos + 1),
            "carrier": ledger.carrier.name,
            "code": line.code,
            "chargeName": text_or(line.name, DEFAULT_NAME),
            "cost": format_amount(line.cost),
            "costCurrency": line.currency,
            "charge": format_amount(line.charge),
            "chargeCurrency": line.currency,
            "invoiceNumber": line.invoice_number,
            "ediNumber": line.edi_number,
            "commissionable": line.commissionable,
        }
        for pos, line in enumerate(ledger.charges)
    ]


def to_updated_charges(ledger: ChargeLedger, *, actor: Actor, at: str) -> list[dict[str, Any]]:
    return [
        {
            "id": line.id,
            "code": line.code,
            "description": text_or(line.name, DEFAULT_NAME),
            "category": line.category,
            "quotedCost": line.cost,
            "quotedCharge": line.charge,
            "actualCost": line.cost,
            "actualCharge": line.charge,
            "currency": line.currency,
            "invoiceNumber": line.invoice_number,
            "ediNumber": line.edi_number,
            "commissionable": line.commissionable,
            "modifiedBy": actor.email or actor.label,
            "modifiedAt": at,
        }
        for line in ledger.charges
    ]


def build_update(
    shipment: Mapping[str, Any], ledger: ChargeLedger, actor: Actor, *, at: str | None = None
) -> dict[str, Any]:
    """Return the partial record that :func:`persist` would merge."""

    stamp = at or _now_iso()
    update: dict[str, Any] = {"updatedAt": stamp, "updatedBy": actor.label}
    if is_manual(shipment):
        update["manualRates"] = to_manual_rates(ledger)
        update["updatedCharges"] = None
        update["chargesBreakdown"] = None
    else:
        rows = to_updated_charges(ledger, actor=actor, at=stamp)
        update["updatedCharges"] = rows
        update["chargesBreakdown"] = [dict(r) for r in rows]
    return update


def persist(store: ShipmentStore, shipment_id: str, ledger: ChargeLedger, actor: Actor) -> None:
    """Write ``ledger`` back onto shipment ``shipment_id``.

    Raises :class:`NotFoundError` when the shipment does not exist. Storage
    failures propagate unchanged.
    """

    shipment = store.fetch_shipment(shipment_id)
    if shipment is None:
        raise NotFoundError("shipment", shipment_id)

    update = build_update(shipment, ledger, actor)
    store.write_shipment(shipment_id, update)
    logger.info(
        "saved rates for %s shipment %s: %d charge(s), cost=%.2f charge=%.2f",
        "quickship" if is_manual(shipment) else "regular",
        shipment_id,
        len(ledger.charges),
        ledger.totals.cost,
        ledger.totals.charge,
    )


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MigrationEntry:
    shipment_id: str
    source: str
    charge_count: int
    total_cost: float
    total_charge: float
    written: bool


def migrate_rates(
    store: ShipmentStore, *, actor: Actor, write: bool = False
) -> list[MigrationEntry]:
    """Project every stored shipment and optionally rewrite it canonically.

    Without ``write`` this is a dry run that reports what each shipment's
    ledger looks like. With ``write``, shipments that have rate data are
    re-persisted through :func:`persist`, so legacy ``markupRates`` /
    ``selectedRate`` shipments gain an ``updatedCharges`` representation.
    Shipments without any rate data are left untouched.
    """

    report: list[MigrationEntry] = []
    for key in store.iter_shipment_keys():
        record = store.fetch_shipment(key)
        if record is None:
            continue
        source = classify_rate_source(record)
        ledger = project(record)
        do_write = write and not isinstance(source, NoRateSource)
        if do_write:
            persist(store, key, ledger, actor)
        report.append(
            MigrationEntry(
                shipment_id=key,
                source=type(source).__name__,
                charge_count=len(ledger.charges),
                total_cost=ledger.totals.cost,
                total_charge=ledger.totals.charge,
                written=do_write,
            )
        )
    logger.info(
        "migrated %d shipment(s) (%d written)", len(report), sum(e.written for e in report)
    )
    return report


__all__ = [
    "persist",
    "build_update",
    "to_manual_rates",
    "to_updated_charges",
    "migrate_rates",
    "MigrationEntry",
]
