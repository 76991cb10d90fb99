"""Approval status derivation and the confidence bands it depends on.

The thresholds below are a contract with the approval workflow: normal-mode
bulk approval accepts everything at or above ``REVIEW_THRESHOLD``. Changing
them changes which shipments get approved without a second look.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .logging_setup import get_logger
from .models import ApprovalStatus, ReviewItem

logger = get_logger("freight_recon.status")

READY_THRESHOLD = 0.95
REVIEW_THRESHOLD = 0.80
# Half a cent. Invoice and system totals closer than this are "the same".
BALANCE_TOLERANCE = 0.005
# Differences are rounded before comparing so float noise (e.g.
# 500.005 - 500.0 == 0.00499999...) cannot move a value across the boundary.
_VARIANCE_PRECISION = 6


def _explicit_status(item: ReviewItem) -> ApprovalStatus | None:
    raw = item.ap_status
    if raw is None:
        return None
    try:
        return ApprovalStatus(raw)
    except ValueError:
        logger.debug("ignoring unknown explicit status %r on item %s", raw, item.id)
        return None


def status_for_confidence(confidence: float) -> ApprovalStatus:
    if confidence >= READY_THRESHOLD:
        return ApprovalStatus.READY
    if confidence >= REVIEW_THRESHOLD:
        return ApprovalStatus.REVIEW
    return ApprovalStatus.EXCEPTION


def resolve_status(item: ReviewItem) -> ApprovalStatus:
    """Map an item to its workflow state. Pure and total.

    1. An explicit status wins, whatever the confidence says.
    2. No match result means ``pending``.
    3. Otherwise the confidence bands decide.
    """

    explicit = _explicit_status(item)
    if explicit is not None:
        return explicit
    if item.match_result is None:
        return ApprovalStatus.PENDING
    return status_for_confidence(item.match_result.confidence)


def is_eligible(item: ReviewItem, *, override: bool = False) -> bool:
    """Whether ``item`` may enter an approval batch.

    Normal mode takes matched items in the ``ready``/``review`` bands. Override
    mode takes any matched item with a confidence above zero, including ones
    explicitly marked as exceptions. Approved or rejected items never qualify.
    """

    explicit = _explicit_status(item)
    if explicit is not None and explicit.is_terminal:
        return False
    if item.match_result is None:
        return False
    confidence = item.match_result.confidence
    if override:
        return confidence > 0
    if explicit is ApprovalStatus.EXCEPTION:
        return False
    return confidence >= REVIEW_THRESHOLD


def is_balanced(invoice_total: float, system_total: float) -> bool:
    return round(abs(invoice_total - system_total), _VARIANCE_PRECISION) < BALANCE_TOLERANCE


def derive_invoice_status(shipment: Mapping[str, Any]) -> str:
    """Billing status for a shipment when none was set explicitly."""

    explicit = shipment.get("invoiceStatus")
    if isinstance(explicit, str) and explicit:
        return explicit
    if shipment.get("invoiceId") or shipment.get("invoiceNumber"):
        return "invoiced"
    if shipment.get("paymentStatus") == "paid" or shipment.get("paid") is True:
        return "paid"
    return "uninvoiced"


__all__ = [
    "READY_THRESHOLD",
    "REVIEW_THRESHOLD",
    "BALANCE_TOLERANCE",
    "status_for_confidence",
    "resolve_status",
    "is_eligible",
    "is_balanced",
    "derive_invoice_status",
]
