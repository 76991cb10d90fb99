"""Error taxonomy for the reconciliation engine.

- ``NotFoundError``: a referenced shipment or upload key does not exist.
  Always surfaced to the caller.
- ``ValidationError``: input that cannot be coerced into something actionable
  (e.g., no items eligible for approval). The batch aborts.
- ``PartialFailure``: raised once by the actual-cost push step with every
  per-item failure collected. Nothing downstream (charge creation) runs, but
  effects already committed by the external collaborator are not rolled back.
- ``SoftFailure``: auto-balance and status-derivation problems. Logged and
  skipped; never escapes the workflow.

The read path (``projector.project``) never raises any of these.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class ReconciliationError(Exception):
    """Base class for all engine errors."""


class NotFoundError(ReconciliationError, LookupError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class ValidationError(ReconciliationError, ValueError):
    pass


@dataclass(frozen=True, slots=True)
class ItemFailure:
    """One item that did not make it through a batch step, and why."""

    item: Any
    reason: str


class PartialFailure(ReconciliationError):
    def __init__(self, step: str, failures: Sequence[ItemFailure]) -> None:
        self.step = step
        self.failures = list(failures)
        super().__init__(f"{step} failed for {len(self.failures)} item(s)")


class SoftFailure(ReconciliationError):
    pass


__all__ = [
    "ReconciliationError",
    "NotFoundError",
    "ValidationError",
    "ItemFailure",
    "PartialFailure",
    "SoftFailure",
]
