"""In-memory editing of an invoice's charge lines before they are committed.

Totals are always a fresh fold over the current lines; nothing is cached, so
the "changes made" indicator cannot go stale after an edit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from .charge_codes import DEFAULT_CURRENCY, DEFAULT_NAME, first_present, text_or, to_amount
from .errors import NotFoundError, ValidationError

_EDITABLE_FIELDS = frozenset({"code", "name", "amount", "currency"})
_NUMERIC_FIELDS = frozenset({"amount"})


@dataclass(slots=True)
class EditableCharge:
    id: str
    code: str = ""
    name: str = ""
    amount: float = 0.0
    currency: str = DEFAULT_CURRENCY
    is_edited: bool = False
    is_new: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], *, pos: int = 0) -> EditableCharge:
        return cls(
            id=text_or(raw.get("id"), f"line-{pos}"),
            code=text_or(raw.get("code"), ""),
            name=text_or(first_present(raw.get("name"), raw.get("description")), DEFAULT_NAME),
            amount=to_amount(first_present(raw.get("amount"), raw.get("cost"))),
            currency=text_or(raw.get("currency"), DEFAULT_CURRENCY),
        )


class ChargeEditor:
    def __init__(self, charges: Iterable[EditableCharge], original_total: float) -> None:
        self._charges: list[EditableCharge] = list(charges)
        self.original_total = original_total

    @classmethod
    def from_charges(
        cls, charges: Iterable[Mapping[str, Any]], original_total: float | None = None
    ) -> ChargeEditor:
        lines = [EditableCharge.from_mapping(c, pos=pos) for pos, c in enumerate(charges)]
        if original_total is None:
            original_total = sum(line.amount for line in lines)
        return cls(lines, original_total)

    @property
    def charges(self) -> tuple[EditableCharge, ...]:
        return tuple(self._charges)

    def _find(self, charge_id: str) -> EditableCharge:
        for line in self._charges:
            if line.id == charge_id:
                return line
        raise NotFoundError("charge", charge_id)

    def add(self) -> EditableCharge:
        line = EditableCharge(id=f"new-{uuid4().hex[:12]}", is_edited=True, is_new=True)
        self._charges.append(line)
        return line

    def update(self, charge_id: str, field: str, value: Any) -> EditableCharge:
        if field not in _EDITABLE_FIELDS:
            raise ValidationError(f"field {field!r} cannot be edited")
        line = self._find(charge_id)
        if field in _NUMERIC_FIELDS:
            setattr(line, field, to_amount(value))
        else:
            setattr(line, field, "" if value is None else str(value))
        line.is_edited = True
        return line

    def remove(self, charge_id: str) -> None:
        self._charges.remove(self._find(charge_id))

    def total(self) -> float:
        return sum(line.amount for line in self._charges)

    def has_changes(self) -> bool:
        return round(self.total(), 2) != round(self.original_total, 2)

    def mark_saved(self) -> None:
        for line in self._charges:
            line.is_new = False
        self.original_total = self.total()

    def to_invoice_charges(self) -> list[dict[str, Any]]:
        return [
            {
                "id": line.id,
                "code": line.code,
                "name": line.name,
                "amount": line.amount,
                "currency": line.currency,
            }
            for line in self._charges
        ]


__all__ = ["EditableCharge", "ChargeEditor"]
