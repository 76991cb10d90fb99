"""Load extracted invoice shipments and invoice lines from JSON files.

Accepted shapes for :func:`load_review_items`:

- a bare list of extracted shipments, or
- ``{"uploadId": "...", "shipments": [...]}``, in which case every item
  inherits the upload id unless it names its own.

Each shipment may carry ``charges`` (invoice lines), a ``matchResult``
(``confidence``, ``bestMatch``, ``reviewRequired``) and an explicit
``apStatus``. Everything else is kept as the item's ``extracted`` mapping.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from os import PathLike
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import ApprovalStatus, MatchResult, ReviewItem


class _MatchResultIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confidence: float
    bestMatch: dict[str, Any] | None = None
    reviewRequired: bool = False

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("confidence must lie in [0, 1]")
        return v


class _ExtractedShipmentIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    uploadId: str | None = None
    charges: list[dict[str, Any]] = Field(default_factory=list)
    matchResult: _MatchResultIn | None = None
    apStatus: ApprovalStatus | None = None


def _read_json(path: str | PathLike[str]) -> Any:
    p = Path(path)
    with p.open(encoding="utf-8") as f:
        return json.load(f)


def _to_item(model: _ExtractedShipmentIn, *, pos: int, upload_id: str | None) -> ReviewItem:
    extracted = dict(model.model_extra or {})
    item_id = model.id or str(
        extracted.get("shipmentId") or extracted.get("shipmentID") or f"item-{pos}"
    )
    match = None
    if model.matchResult is not None:
        match = MatchResult(
            confidence=model.matchResult.confidence,
            best_match=model.matchResult.bestMatch,
            review_required=model.matchResult.reviewRequired,
        )
    return ReviewItem(
        id=item_id,
        upload_id=model.uploadId or upload_id,
        extracted=extracted,
        charges=list(model.charges),
        match_result=match,
        ap_status=model.apStatus,
    )


def parse_review_items(data: Any) -> list[ReviewItem]:
    upload_id: str | None = None
    if isinstance(data, Mapping):
        upload_id = data.get("uploadId")
        data = data.get("shipments")
    if not isinstance(data, list):
        raise ValidationError("expected a list of shipments or an object with 'shipments'")

    items: list[ReviewItem] = []
    for pos, raw in enumerate(data):
        try:
            model = _ExtractedShipmentIn.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"invalid shipment at position {pos}: {e}") from e
        items.append(_to_item(model, pos=pos, upload_id=upload_id))
    return items


def load_review_items(path: str | PathLike[str]) -> list[ReviewItem]:
    return parse_review_items(_read_json(path))


def load_invoice_charges(path: str | PathLike[str]) -> list[dict[str, Any]]:
    """Read a bare JSON list of invoice lines."""

    data = _read_json(path)
    if not isinstance(data, list) or not all(isinstance(c, Mapping) for c in data):
        raise ValidationError(f"expected a JSON list of charge objects in {path}")
    return [dict(c) for c in data]


__all__ = ["parse_review_items", "load_review_items", "load_invoice_charges"]
