from __future__ import annotations

import json
from pathlib import Path

import pytest

from freight_recon.errors import ValidationError
from freight_recon.ingest.review_items import (
    load_invoice_charges,
    load_review_items,
    parse_review_items,
)
from freight_recon.models import ApprovalStatus
from freight_recon.status import resolve_status

from tests.helpers.db import DATA_DIR


def test_load_review_items_with_upload_envelope():
    items = load_review_items(DATA_DIR / "review_items.json")

    assert [i.id for i in items] == ["IC-500", "IC-600", "IC-700"]
    assert all(i.upload_id == "U-2026-03" for i in items)
    first = items[0]
    assert first.extracted["carrier"] == "Day & Ross"
    assert first.invoice_total == 500.0
    assert first.match_result.best_match == {"shipmentID": "IC-500"}
    assert resolve_status(items[2]) is ApprovalStatus.EXCEPTION


def test_bare_list_and_explicit_status():
    items = parse_review_items(
        [
            {"trackingNumber": "1Z999", "apStatus": "exception"},
            {"id": "x1", "matchResult": {"confidence": 0.5}, "uploadId": "U9"},
        ]
    )

    assert items[0].id == "item-0"
    assert items[0].upload_id is None
    assert items[0].ap_status is ApprovalStatus.EXCEPTION
    assert items[1].upload_id == "U9"


@pytest.mark.parametrize(
    "payload",
    [
        [{"matchResult": {"confidence": 1.5}}],
        [{"matchResult": {"confidence": -0.1}}],
        [{"apStatus": "lost"}],
        [{"charges": "not-a-list"}],
        {"uploadId": "U1"},
        "nope",
    ],
)
def test_invalid_payloads(payload):
    with pytest.raises(ValidationError):
        parse_review_items(payload)


def test_load_invoice_charges(tmp_path: Path):
    good = tmp_path / "invoice.json"
    good.write_text(json.dumps([{"code": "FRT", "name": "Freight", "amount": 500}]))
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"charges": []}))

    assert load_invoice_charges(good) == [{"code": "FRT", "name": "Freight", "amount": 500}]
    with pytest.raises(ValidationError):
        load_invoice_charges(bad)
