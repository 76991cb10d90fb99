"""Collaborator boundary for the accounts-payable side of approval.

The workflow never talks to a billing system directly; it goes through an
:class:`ApGateway`. :class:`StoreBackedApGateway` is the local implementation
that records everything on the shipment document itself, which is what the
CLI and the tests use.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from .charge_codes import (
    DEFAULT_CURRENCY,
    first_present,
    invoice_line_amount,
    text_or,
    to_amount,
)
from .errors import NotFoundError
from .logging_setup import get_logger
from .models import Actor
from .store import ShipmentStore

logger = get_logger("freight_recon.gateways")


@dataclass(frozen=True, slots=True)
class CostPushResult:
    success: bool
    cost_comparison: Mapping[str, Any] | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ChargeCreateResult:
    success: bool
    charge_id: str | None = None
    error: str | None = None


class ApGateway(Protocol):
    def push_actual_cost(
        self, shipment_key: str, charges: Sequence[Mapping[str, Any]]
    ) -> CostPushResult: ...

    def create_approved_charge(
        self, shipment_key: str, line: Mapping[str, Any], confidence: float
    ) -> ChargeCreateResult: ...

    def match_invoice_to_shipment(
        self, extracted: Mapping[str, Any], *, carrier_hint: str | None = None
    ) -> Mapping[str, Any] | None: ...


def _line_name(line: Mapping[str, Any]) -> str:
    return text_or(first_present(line.get("name"), line.get("description")), "AP Charge")


class StoreBackedApGateway:
    """:class:`ApGateway` that writes AP results onto the shipment record.

    - ``push_actual_cost`` stores ``apCharges``, ``apTotalAmount`` and
      ``apCurrency`` and returns the invoice-vs-quoted comparison.
    - ``create_approved_charge`` appends to the shipment's ``approvedCharges``.
    - Matching needs an external service; without one every item stays
      unmatched (``None``).
    """

    def __init__(self, store: ShipmentStore, *, actor: Actor | None = None) -> None:
        self.store = store
        self.actor = actor or Actor()

    def _fetch(self, key: str) -> dict[str, Any]:
        record = self.store.fetch_shipment(key)
        if record is None:
            raise NotFoundError("shipment", key)
        return record

    def push_actual_cost(
        self, shipment_key: str, charges: Sequence[Mapping[str, Any]]
    ) -> CostPushResult:
        try:
            record = self._fetch(shipment_key)
        except NotFoundError as exc:
            return CostPushResult(success=False, error=str(exc))

        stamp = datetime.now(UTC).isoformat()
        ap_charges = [
            {
                "id": text_or(line.get("id"), f"ap-{pos}"),
                "name": _line_name(line),
                "amount": invoice_line_amount(line),
                "currency": text_or(line.get("currency"), DEFAULT_CURRENCY),
                "source": "ap-processing",
                "approvedAt": stamp,
                "approvedBy": self.actor.label,
            }
            for pos, line in enumerate(charges)
        ]
        total = sum(c["amount"] for c in ap_charges)
        currency = ap_charges[0]["currency"] if ap_charges else DEFAULT_CURRENCY
        self.store.write_shipment(
            shipment_key,
            {"apCharges": ap_charges, "apTotalAmount": total, "apCurrency": currency},
        )

        quoted = record.get("totals") if isinstance(record.get("totals"), Mapping) else {}
        quoted_cost = to_amount(quoted.get("cost")) if quoted else 0.0
        logger.debug(
            "pushed %d AP charge(s) to %s total=%.2f", len(ap_charges), shipment_key, total
        )
        return CostPushResult(
            success=True,
            cost_comparison={
                "actualCost": total,
                "quotedCost": quoted_cost,
                "variance": total - quoted_cost,
            },
        )

    def create_approved_charge(
        self, shipment_key: str, line: Mapping[str, Any], confidence: float
    ) -> ChargeCreateResult:
        try:
            record = self._fetch(shipment_key)
        except NotFoundError as exc:
            return ChargeCreateResult(success=False, error=str(exc))

        existing = [c for c in record.get("approvedCharges") or [] if isinstance(c, Mapping)]
        charge_id = f"{shipment_key}-ap-{len(existing) + 1}"
        existing.append(
            {
                "id": charge_id,
                "code": text_or(line.get("code"), ""),
                "name": _line_name(line),
                "amount": invoice_line_amount(line),
                "currency": text_or(line.get("currency"), DEFAULT_CURRENCY),
                "confidence": confidence,
                "approvedBy": self.actor.label,
                "approvedAt": datetime.now(UTC).isoformat(),
            }
        )
        self.store.write_shipment(shipment_key, {"approvedCharges": existing})
        return ChargeCreateResult(success=True, charge_id=charge_id)

    def match_invoice_to_shipment(
        self, extracted: Mapping[str, Any], *, carrier_hint: str | None = None
    ) -> Mapping[str, Any] | None:
        logger.debug("no invoice matcher configured; leaving item unmatched")
        return None


__all__ = [
    "ApGateway",
    "StoreBackedApGateway",
    "CostPushResult",
    "ChargeCreateResult",
]
