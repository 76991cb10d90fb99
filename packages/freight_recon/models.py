"""Data models for ``freight_recon``.

The canonical charge ledger is a *derived* view: it is rebuilt from a
shipment's native record on every read and decomposed back into that record
on write. Ledger types are frozen dataclasses; the review item is the one
mutable record because the workflow moves it through approval states.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from .charge_codes import DEFAULT_CURRENCY, NO_REFERENCE, invoice_line_amount

# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------

# A shipment document as stored by the platform: arbitrary keys, with the
# storage key injected under ``"id"`` by the store.
type ShipmentRecord = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Canonical ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChargeLine:
    """One billable/payable item on a shipment.

    ``cost`` is what the carrier is owed; ``charge`` is what the customer is
    billed. Both are finite and non-negative once normalized.
    """

    id: str
    code: str
    name: str
    category: str
    cost: float = 0.0
    charge: float = 0.0
    currency: str = DEFAULT_CURRENCY
    invoice_number: str = NO_REFERENCE
    edi_number: str = NO_REFERENCE
    commissionable: bool = False
    source: str = "manual"
    added_by: str = ""
    added_at: Any = None


@dataclass(frozen=True, slots=True)
class CarrierInfo:
    name: str = ""
    code: str = ""
    logo: str = ""


@dataclass(frozen=True, slots=True)
class ServiceInfo:
    name: str = ""
    code: str = ""
    type: str = ""


@dataclass(frozen=True, slots=True)
class LedgerTotals:
    cost: float = 0.0
    charge: float = 0.0
    currency: str = DEFAULT_CURRENCY


def compute_totals(charges: Iterable[ChargeLine]) -> LedgerTotals:
    lines = list(charges)
    return LedgerTotals(
        cost=sum(c.cost for c in lines),
        charge=sum(c.charge for c in lines),
        currency=lines[0].currency if lines else DEFAULT_CURRENCY,
    )


@dataclass(frozen=True, slots=True)
class ChargeLedger:
    """Canonical, normalized view of one shipment's charges.

    ``totals`` is always derived from ``charges``; use :meth:`build` or
    :meth:`with_charges` rather than constructing totals by hand.
    ``history`` is reserved for an audit trail and is currently always empty.
    """

    id: str
    shipment_id: str
    last_modified: Any
    modified_by: str
    carrier: CarrierInfo
    service: ServiceInfo
    charges: tuple[ChargeLine, ...]
    totals: LedgerTotals
    history: tuple[Mapping[str, Any], ...] = ()

    @classmethod
    def build(
        cls,
        *,
        shipment_id: str,
        charges: Iterable[ChargeLine] = (),
        last_modified: Any = None,
        modified_by: str = "",
        carrier: CarrierInfo | None = None,
        service: ServiceInfo | None = None,
    ) -> ChargeLedger:
        lines = tuple(charges)
        return cls(
            id=f"rates_{shipment_id}",
            shipment_id=shipment_id,
            last_modified=last_modified,
            modified_by=modified_by,
            carrier=carrier or CarrierInfo(),
            service=service or ServiceInfo(),
            charges=lines,
            totals=compute_totals(lines),
        )

    def with_charges(self, charges: Iterable[ChargeLine]) -> ChargeLedger:
        lines = tuple(charges)
        return replace(self, charges=lines, totals=compute_totals(lines))


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ComparisonRow:
    """Invoice vs. system view of one ``code|name`` key. Display only."""

    code: str
    name: str
    currency: str
    invoice_amount: float = 0.0
    system_quoted_cost: float = 0.0
    system_quoted_charge: float = 0.0
    system_actual_cost: float = 0.0
    system_actual_charge: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.code}|{self.name}"

    @property
    def variance_cost(self) -> float:
        return self.invoice_amount - self.system_actual_cost


@dataclass(frozen=True, slots=True)
class ComparisonSummary:
    invoice_total: float
    system_actual_total: float

    @property
    def variance(self) -> float:
        return self.invoice_total - self.system_actual_total


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    REVIEW = "review"
    EXCEPTION = "exception"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Output of the external matcher: confidence in [0, 1] plus best match.

    ``best_match`` is the matched system shipment as the matcher returned it
    (a mapping carrying some of ``id``/``shipmentID``/``shipmentId``).
    """

    confidence: float
    best_match: Mapping[str, Any] | None = None
    review_required: bool = False


@dataclass(slots=True)
class ReviewItem:
    """One extracted invoice shipment moving through AP review."""

    id: str
    upload_id: str | None
    extracted: Mapping[str, Any]
    charges: list[Mapping[str, Any]] = field(default_factory=list)
    match_result: MatchResult | None = None
    ap_status: ApprovalStatus | None = None

    @property
    def invoice_total(self) -> float:
        return sum(invoice_line_amount(c) for c in self.charges)

    @property
    def confidence(self) -> float | None:
        return self.match_result.confidence if self.match_result is not None else None


@dataclass(frozen=True, slots=True)
class Actor:
    """Who performed a write. ``label`` is what lands in ``updatedBy``."""

    email: str | None = None
    uid: str | None = None

    @property
    def label(self) -> str:
        return self.email or self.uid or "system"


__all__ = [
    "ShipmentRecord",
    "ChargeLine",
    "CarrierInfo",
    "ServiceInfo",
    "LedgerTotals",
    "ChargeLedger",
    "compute_totals",
    "ComparisonRow",
    "ComparisonSummary",
    "ApprovalStatus",
    "MatchResult",
    "ReviewItem",
    "Actor",
]
