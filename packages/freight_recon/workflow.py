"""AP review queue and the approval workflow that drives it.

Items move ``pending -> ready/review/exception -> approved/rejected``.
``exception`` is not terminal: an override approval can still promote it.
Batches run one item at a time with no locking. Every shipment write is a
fetch-then-merge of the fields this module owns.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .charge_codes import DEFAULT_CURRENCY, first_present, text_or, to_amount
from .comparison import system_actual_total
from .errors import ItemFailure, NotFoundError, PartialFailure, SoftFailure, ValidationError
from .gateways import ApGateway
from .logging_setup import get_logger, item_logger
from .models import Actor, ApprovalStatus, MatchResult, ReviewItem
from .persister import to_updated_charges
from .projector import project
from .shipment_records import UpdatedChargesSource, classify_rate_source, is_manual
from .status import is_balanced, is_eligible, resolve_status
from .store import ShipmentStore

logger = get_logger("freight_recon.workflow")

_MIN_KEY_LENGTH = 3
_BEST_MATCH_FIELDS = ("id", "shipmentID", "shipmentId")
_EXTRACTED_FIELDS = ("shipmentID", "shipmentId", "trackingNumber")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ReviewQueue:
    """The review items of one session, keyed by item id.

    There is one copy of each item. Status, upload and eligibility views are
    computed when read, so they cannot drift from the items themselves.
    """

    def __init__(self, items: Iterable[ReviewItem] = ()) -> None:
        self._items: dict[str, ReviewItem] = {}
        for item in items:
            self.add(item)

    def add(self, item: ReviewItem) -> None:
        self._items[item.id] = item

    def get(self, item_id: str) -> ReviewItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFoundError("review item", item_id) from None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ReviewItem]:
        return iter(list(self._items.values()))

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def items(
        self, *, status: ApprovalStatus | None = None, upload_id: str | None = None
    ) -> list[ReviewItem]:
        out = list(self._items.values())
        if status is not None:
            out = [i for i in out if resolve_status(i) is status]
        if upload_id is not None:
            out = [i for i in out if i.upload_id == upload_id]
        return out

    def eligible(self, *, override: bool = False) -> list[ReviewItem]:
        return [i for i in self._items.values() if is_eligible(i, override=override)]

    def counts(self) -> dict[ApprovalStatus, int]:
        tally = {s: 0 for s in ApprovalStatus}
        for item in self._items.values():
            tally[resolve_status(item)] += 1
        return tally


@dataclass(slots=True)
class ApprovalResult:
    approved_count: int = 0
    failed: list[ItemFailure] = field(default_factory=list)
    outcomes: list[dict[str, Any]] = field(default_factory=list)


def build_balance_update(
    record: Mapping[str, Any], *, actor: Actor, at: str | None = None
) -> dict[str, Any]:
    """Fields that accept a shipment's quoted figures as its actuals.

    Rows keep their own quoted values (``quotedCost -> cost``); actuals are
    overwritten with them. Shipments without ``updatedCharges`` get the
    canonical rows of their projected ledger. QuickShip shipments only get
    ``totals``: their manual rates hold a single figure per line.
    """

    stamp = at or _now_iso()
    if is_manual(record):
        ledger = project(record)
        return {
            "totals": {
                "cost": ledger.totals.cost,
                "charge": ledger.totals.charge,
                "currency": ledger.totals.currency,
            },
            "updatedAt": stamp,
            "updatedBy": actor.label,
        }
    if isinstance(classify_rate_source(record), UpdatedChargesSource):
        rows = []
        for raw in record.get("updatedCharges") or []:
            if not isinstance(raw, Mapping):
                continue
            quoted_cost = to_amount(first_present(raw.get("quotedCost"), raw.get("cost")))
            quoted_charge = to_amount(first_present(raw.get("quotedCharge"), raw.get("charge")))
            rows.append(
                {
                    **raw,
                    "quotedCost": quoted_cost,
                    "quotedCharge": quoted_charge,
                    "actualCost": quoted_cost,
                    "actualCharge": quoted_charge,
                }
            )
    else:
        rows = to_updated_charges(project(record), actor=actor, at=stamp)

    currency = text_or(rows[0].get("currency"), DEFAULT_CURRENCY) if rows else DEFAULT_CURRENCY
    return {
        "updatedCharges": rows,
        "chargesBreakdown": [dict(r) for r in rows],
        "totals": {
            "cost": sum(r["quotedCost"] for r in rows),
            "charge": sum(r["quotedCharge"] for r in rows),
            "currency": currency,
        },
        "updatedAt": stamp,
        "updatedBy": actor.label,
    }


def match_result_from(raw: Mapping[str, Any]) -> MatchResult:
    confidence = float(raw.get("confidence", 0))
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"match confidence {confidence!r} outside [0, 1]")
    best = raw.get("bestMatch")
    return MatchResult(
        confidence=confidence,
        best_match=best if isinstance(best, Mapping) else None,
        review_required=bool(raw.get("reviewRequired", False)),
    )


class ApprovalWorkflow:
    def __init__(
        self,
        store: ShipmentStore,
        gateway: ApGateway,
        actor: Actor,
        *,
        queue: ReviewQueue | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.actor = actor
        self.queue = queue if queue is not None else ReviewQueue()

    # ---- identifiers -------------------------------------------------------

    def _candidate_identifier(self, item: ReviewItem) -> str | None:
        best = (item.match_result.best_match if item.match_result else None) or {}
        values = [best.get(f) for f in _BEST_MATCH_FIELDS]
        values += [item.extracted.get(f) for f in _EXTRACTED_FIELDS]
        for value in values:
            if isinstance(value, str) and len(value.strip()) >= _MIN_KEY_LENGTH:
                return value.strip()
        return None

    def resolve_shipment_key(self, item: ReviewItem) -> str | None:
        """Return the storage key of the shipment ``item`` refers to, if any."""

        candidate = self._candidate_identifier(item)
        if candidate is None:
            return None
        if self.store.fetch_shipment(candidate) is not None:
            return candidate
        found = self.store.find_shipment_by_business_id(candidate)
        return found["id"] if found is not None else None

    # ---- approval ----------------------------------------------------------

    def approve_batch(
        self,
        items: Iterable[ReviewItem],
        *,
        override: bool = False,
        upload_id: str | None = None,
        notes: str = "",
    ) -> ApprovalResult:
        """Approve the eligible ``items`` and record the outcome.

        Raises :class:`ValidationError` when nothing is eligible,
        :class:`NotFoundError` when no item resolves to a shipment (or the
        upload is unknown) and :class:`PartialFailure` when pushing actual
        costs fails for any item. In that last case no approved charge has
        been created.
        """

        candidates = list(items)
        eligible = [i for i in candidates if is_eligible(i, override=override)]
        if not eligible:
            raise ValidationError(
                f"no items eligible for approval ({len(candidates)} considered, "
                f"override={override})"
            )
        if upload_id is not None and self.store.fetch_upload(upload_id) is None:
            raise NotFoundError("upload", upload_id)

        result = ApprovalResult()
        resolved: list[tuple[ReviewItem, str]] = []
        for item in eligible:
            key = self.resolve_shipment_key(item)
            if key is None:
                item_logger(logger, item=item.id).warning("no shipment found; skipping")
                result.failed.append(ItemFailure(item, "no matching shipment"))
                result.outcomes.append(
                    {"itemId": item.id, "status": "no_match", "message": "no matching shipment"}
                )
                continue
            resolved.append((item, key))
        if not resolved:
            raise NotFoundError("shipment", ", ".join(i.id for i in eligible))

        self._push_actual_costs(resolved)

        for item, key in resolved:
            log = item_logger(logger, item=item.id, shipment=key)
            balanced = self._auto_balance(item, key)
            created, errors = self._create_charges(item, key)
            if errors:
                reason = "; ".join(errors)
                log.error("approved charge creation failed: %s", reason)
                result.failed.append(ItemFailure(item, reason))
                result.outcomes.append(
                    {"itemId": item.id, "shipmentKey": key, "status": "error", "message": reason}
                )
                continue

            invoice_status = self._record_approval(
                item, key, balanced=balanced, override=override, upload_id=upload_id, notes=notes
            )
            item.ap_status = ApprovalStatus.APPROVED
            self.queue.add(item)
            result.approved_count += 1
            result.outcomes.append(
                {
                    "itemId": item.id,
                    "shipmentKey": key,
                    "status": "approved",
                    "invoiceStatus": invoice_status,
                    "totalAmount": item.invoice_total,
                    "chargesCount": len(created),
                }
            )
            log.info("approved (%d charge(s), invoiceStatus=%s)", len(created), invoice_status)

        if upload_id is not None:
            self.store.write_upload(
                upload_id,
                {
                    "processingStatus": "approved",
                    "approvalResults": {
                        "approvedBy": self.actor.label,
                        "approvedAt": _now_iso(),
                        "notes": notes,
                        "overrideExceptions": override,
                        "processedShipments": len(result.outcomes),
                        "successfulUpdates": result.approved_count,
                        "processingResults": result.outcomes,
                    },
                },
            )
        logger.info(
            "approval batch done: %d approved, %d failed", result.approved_count, len(result.failed)
        )
        return result

    def _push_actual_costs(self, resolved: list[tuple[ReviewItem, str]]) -> None:
        failures: list[ItemFailure] = []
        for item, key in resolved:
            log = item_logger(logger, item=item.id, shipment=key)
            try:
                pushed = self.gateway.push_actual_cost(key, item.charges)
            except Exception as exc:
                log.error("actual cost push raised: %s", exc)
                failures.append(ItemFailure(item, str(exc)))
                continue
            if not pushed.success:
                log.error("actual cost push failed: %s", pushed.error)
                failures.append(ItemFailure(item, pushed.error or "actual cost push failed"))
        if failures:
            raise PartialFailure("push_actual_cost", failures)

    def _auto_balance(self, item: ReviewItem, key: str) -> bool:
        """Return whether the invoice agrees with the system's actual total.

        When it does, the shipment's actuals are rewritten to its quoted
        figures. That rewrite is best effort: a failure is logged and the
        agreement still stands.
        """

        log = item_logger(logger, item=item.id, shipment=key)
        try:
            record = self.store.fetch_shipment(key)
            if record is None:
                raise SoftFailure(f"shipment {key!r} disappeared before auto-balance")
            system_total = system_actual_total(record)
        except Exception as exc:
            log.warning("balance check skipped: %s", exc)
            return False
        if not is_balanced(item.invoice_total, system_total):
            log.info(
                "variance %+.2f (invoice %.2f, system %.2f)",
                item.invoice_total - system_total,
                item.invoice_total,
                system_total,
            )
            return False
        try:
            self.store.write_shipment(key, build_balance_update(record, actor=self.actor))
        except Exception as exc:
            log.warning("auto-balance skipped: %s", exc)
        else:
            log.info("auto-balanced at %.2f", item.invoice_total)
        return True

    def _create_charges(self, item: ReviewItem, key: str) -> tuple[list[str], list[str]]:
        confidence = item.confidence or 0.0
        created: list[str] = []
        errors: list[str] = []
        for line in item.charges:
            try:
                res = self.gateway.create_approved_charge(key, line, confidence)
            except Exception as exc:
                errors.append(str(exc))
                continue
            if res.success:
                created.append(res.charge_id or "")
            else:
                errors.append(res.error or "charge creation failed")
        return created, errors

    def _record_approval(
        self,
        item: ReviewItem,
        key: str,
        *,
        balanced: bool,
        override: bool,
        upload_id: str | None,
        notes: str,
    ) -> str:
        invoice_status = "draft" if balanced else "exception"
        self.store.write_shipment(
            key,
            {
                "invoiceStatus": invoice_status,
                "apProcessing": {
                    "status": "approved",
                    "uploadId": upload_id,
                    "extractedShipmentId": item.extracted.get("shipmentId")
                    or item.extracted.get("shipmentID"),
                    "confidence": item.confidence or 0.0,
                    "approvedBy": self.actor.label,
                    "approvedAt": _now_iso(),
                    "notes": notes,
                    "overrideExceptions": override,
                },
            },
        )
        return invoice_status

    # ---- other transitions -------------------------------------------------

    def mark_exception(self, item: ReviewItem) -> str:
        """Flag ``item`` and its shipment as an exception. Charges are untouched."""

        key = self.resolve_shipment_key(item)
        if key is None:
            raise NotFoundError("shipment", item.id)
        self.store.write_shipment(
            key,
            {"invoiceStatus": "exception", "updatedAt": _now_iso(), "updatedBy": self.actor.label},
        )
        item.ap_status = ApprovalStatus.EXCEPTION
        self.queue.add(item)
        item_logger(logger, item=item.id, shipment=key).info("marked as exception")
        return key

    def reject(self, batch_id: str, reason: str) -> int:
        """Reject upload ``batch_id``; returns how many queued items it touched."""

        if self.store.fetch_upload(batch_id) is None:
            raise NotFoundError("upload", batch_id)
        self.store.write_upload(
            batch_id,
            {
                "apStatus": ApprovalStatus.REJECTED.value,
                "rejectedAt": _now_iso(),
                "rejectedBy": self.actor.label,
                "rejectionReason": reason,
            },
        )
        touched = self.queue.items(upload_id=batch_id)
        for item in touched:
            item.ap_status = ApprovalStatus.REJECTED
        logger.info("rejected upload %s (%d item(s)): %s", batch_id, len(touched), reason)
        return len(touched)

    def attach_matches(self, items: Iterable[ReviewItem], carrier_hint: str | None = None) -> int:
        """Ask the matcher about unmatched items. Matcher errors only log."""

        attached = 0
        for item in items:
            if item.match_result is not None:
                continue
            log = item_logger(logger, item=item.id)
            try:
                raw = self.gateway.match_invoice_to_shipment(
                    item.extracted, carrier_hint=carrier_hint
                )
                if raw is None:
                    continue
                item.match_result = match_result_from(raw)
            except Exception as exc:
                log.warning("matching skipped: %s", exc)
                continue
            self.queue.add(item)
            attached += 1
        return attached


__all__ = [
    "ReviewQueue",
    "ApprovalWorkflow",
    "ApprovalResult",
    "build_balance_update",
    "match_result_from",
]
