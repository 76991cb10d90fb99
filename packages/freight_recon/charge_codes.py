"""Charge code tables and the permissive amount coercion shared by every path.

Amounts arrive from many historical shapes: JSON numbers, numeric strings
("600", "$1,234.50", "12.5 CAD"), ``None``, booleans, or junk. ``to_amount``
folds all of them into a finite, non-negative ``float`` and never raises.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

DEFAULT_CODE = "FRT"
DEFAULT_CURRENCY = "CAD"
DEFAULT_NAME = "Unnamed Charge"
# Sentinel used for unset invoice/EDI references.
NO_REFERENCE = "-"

_CODE_TO_CATEGORY: Mapping[str, str] = {
    "FRT": "freight",
    "FUE": "fuel",
    "FSC": "fuel",
    "ACC": "accessorial",
    "SUR": "surcharge",
    "TAX": "tax",
    "GST": "tax",
    "HST": "tax",
    "PST": "tax",
}

_NAME_TO_CODE: Mapping[str, str] = {
    "Freight": "FRT",
    "Fuel Surcharge": "FSC",
    "Fuel": "FUE",
    "Accessorial": "ACC",
    "Surcharge": "SUR",
    "Tax": "TAX",
    "GST": "GST",
    "HST": "HST",
    "PST": "PST",
}

# Substring fallbacks, checked in order ("fuel surcharge" must hit fuel first).
_NAME_FRAGMENTS: tuple[tuple[str, str], ...] = (
    ("freight", "FRT"),
    ("fuel", "FSC"),
    ("tax", "TAX"),
    ("surcharge", "SUR"),
)

# Leading numeric prefix, the way a permissive float parse reads "12.5abc".
_NUMERIC_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def code_to_category(code: str | None) -> str:
    if not code:
        return "other"
    return _CODE_TO_CATEGORY.get(str(code).strip().upper(), "other")


def name_to_code(name: str | None) -> str:
    if not name:
        return "OTHER"
    s = str(name).strip()
    if s in _NAME_TO_CODE:
        return _NAME_TO_CODE[s]
    lowered = s.lower()
    for fragment, code in _NAME_FRAGMENTS:
        if fragment in lowered:
            return code
    return "OTHER"


def is_absent(value: Any) -> bool:
    """``None`` and blank strings count as missing; ``0`` is a real value."""

    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def first_present(*values: Any) -> Any:
    for v in values:
        if not is_absent(v):
            return v
    return None


def to_amount(raw: Any) -> float:
    """Coerce ``raw`` to a finite, non-negative float (``0.0`` on failure)."""

    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float, Decimal)):
        value = float(raw)
    elif isinstance(raw, str):
        s = raw.strip()
        # Currency symbol and thousands separators, as seen in keyed entries.
        if s.startswith("$"):
            s = s[1:].lstrip()
        s = s.replace(",", "")
        m = _NUMERIC_PREFIX.match(s)
        if m is None:
            return 0.0
        try:
            value = float(m.group(0))
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    # Normalise -0.0 from inputs like "-0".
    return value + 0.0


def first_nonzero_amount(*values: Any) -> float:
    """First value that coerces to a non-zero amount, else ``0.0``.

    Rate adapters chain quoted, actual and bare fields this way: a zero quote
    on a line billed later (an accessorial added after booking) yields to the
    actual figure.
    """

    for v in values:
        amount = to_amount(v)
        if amount:
            return amount
    return 0.0


def invoice_line_amount(line: Mapping[str, Any]) -> float:
    """Billed amount of an invoice line: ``amount``, else ``cost``."""

    return to_amount(first_present(line.get("amount"), line.get("cost")))


def format_amount(value: float) -> str:
    """Render an amount as a lossless string without a trailing ``.0``."""

    s = repr(float(value))
    return s[:-2] if s.endswith(".0") else s


def text_or(value: Any, default: str) -> str:
    if is_absent(value):
        return default
    return str(value).strip()


__all__ = [
    "DEFAULT_CODE",
    "DEFAULT_CURRENCY",
    "DEFAULT_NAME",
    "NO_REFERENCE",
    "code_to_category",
    "name_to_code",
    "is_absent",
    "first_present",
    "first_nonzero_amount",
    "invoice_line_amount",
    "to_amount",
    "format_amount",
    "text_or",
]
