"""Public API for the ``freight_recon`` package.

This module is the stable import surface used by the CLI and by callers that
embed the engine. Implementations live in the modules named below; nothing
here holds logic of its own.

- Read path: :func:`project`, :func:`load_ledger`
- Write path: :func:`persist`, :func:`migrate_rates`
- Comparison: :func:`compare`, :func:`summarize`, :func:`system_charges_for`
- Review: :func:`resolve_status`, :class:`ReviewQueue`, :class:`ApprovalWorkflow`
- Editing: :class:`ChargeEditor`
"""

from __future__ import annotations

from .comparison import compare, summarize, system_actual_total, system_charges_for
from .editor import ChargeEditor, EditableCharge
from .gateways import ApGateway, StoreBackedApGateway
from .ingest.review_items import load_invoice_charges, load_review_items, parse_review_items
from .persister import MigrationEntry, build_update, migrate_rates, persist
from .projector import load_ledger, project
from .status import derive_invoice_status, is_balanced, is_eligible, resolve_status
from .store import ShipmentStore, SqlShipmentStore
from .workflow import ApprovalResult, ApprovalWorkflow, ReviewQueue

__all__ = [
    # Read/write
    "project",
    "load_ledger",
    "persist",
    "build_update",
    "migrate_rates",
    "MigrationEntry",
    # Comparison
    "compare",
    "summarize",
    "system_charges_for",
    "system_actual_total",
    # Status
    "resolve_status",
    "is_eligible",
    "is_balanced",
    "derive_invoice_status",
    # Workflow
    "ReviewQueue",
    "ApprovalWorkflow",
    "ApprovalResult",
    "ApGateway",
    "StoreBackedApGateway",
    "ShipmentStore",
    "SqlShipmentStore",
    # Editing / ingest
    "ChargeEditor",
    "EditableCharge",
    "load_review_items",
    "parse_review_items",
    "load_invoice_charges",
]
