"""Public interface for the ``freight_recon`` package.

Re-exports the API functions and the public models as the stable import
surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    ApprovalWorkflow,
    ChargeEditor,
    ReviewQueue,
    compare,
    load_ledger,
    migrate_rates,
    persist,
    project,
    resolve_status,
)
from .errors import (
    NotFoundError,
    PartialFailure,
    ReconciliationError,
    SoftFailure,
    ValidationError,
)
from .models import (
    Actor,
    ApprovalStatus,
    ChargeLedger,
    ChargeLine,
    ComparisonRow,
    MatchResult,
    ReviewItem,
)

__all__ = [
    # API
    "project",
    "load_ledger",
    "persist",
    "migrate_rates",
    "compare",
    "resolve_status",
    "ReviewQueue",
    "ApprovalWorkflow",
    "ChargeEditor",
    # Models
    "ChargeLine",
    "ChargeLedger",
    "ComparisonRow",
    "ApprovalStatus",
    "MatchResult",
    "ReviewItem",
    "Actor",
    # Errors
    "ReconciliationError",
    "NotFoundError",
    "ValidationError",
    "PartialFailure",
    "SoftFailure",
]
