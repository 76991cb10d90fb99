from __future__ import annotations

import pytest

from freight_recon.errors import NotFoundError, PartialFailure, ValidationError
from freight_recon.gateways import StoreBackedApGateway
from freight_recon.models import ApprovalStatus, MatchResult, ReviewItem
from freight_recon.status import resolve_status
from freight_recon.store import SqlShipmentStore
from freight_recon.workflow import ApprovalWorkflow, ReviewQueue, build_balance_update

from tests.helpers.db import seed_shipments
from tests.helpers.gateway_stub import GatewayStub


def _shipment(business_id: str, *, quoted: float, actual: float) -> dict:
    return {
        "shipmentID": business_id,
        "updatedCharges": [
            {
                "id": "c1",
                "code": "FRT",
                "description": "Freight",
                "quotedCost": quoted,
                "actualCost": actual,
                "quotedCharge": 600,
                "actualCharge": 620,
            }
        ],
    }


def _item(
    item_id: str,
    business_id: str,
    *,
    confidence: float | None = 0.97,
    amount: float = 500.0,
    upload_id: str | None = None,
) -> ReviewItem:
    match = None
    if confidence is not None:
        match = MatchResult(confidence=confidence, best_match={"shipmentID": business_id})
    return ReviewItem(
        id=item_id,
        upload_id=upload_id,
        extracted={"shipmentId": business_id},
        charges=[{"code": "FRT", "name": "Freight", "amount": amount}],
        match_result=match,
    )


@pytest.fixture
def seeded(store):
    seed_shipments(
        store,
        {
            "SHP1": _shipment("IC-500", quoted=480, actual=500),
            "SHP2": _shipment("IC-600", quoted=600, actual=600),
        },
    )
    return store


def _store_workflow(store, actor):
    return ApprovalWorkflow(store, StoreBackedApGateway(store, actor=actor), actor)


# ---- identifiers ---------------------------------------------------------------


def test_resolve_by_storage_key_then_business_id(seeded, actor):
    wf = _store_workflow(seeded, actor)

    by_business_id = _item("i1", "IC-500")
    direct = ReviewItem(
        id="i2", upload_id=None, extracted={}, match_result=MatchResult(0.9, {"id": "SHP2"})
    )
    from_tracking = ReviewItem(id="i3", upload_id=None, extracted={"trackingNumber": " IC-600 "})

    assert wf.resolve_shipment_key(by_business_id) == "SHP1"
    assert wf.resolve_shipment_key(direct) == "SHP2"
    assert wf.resolve_shipment_key(from_tracking) == "SHP2"


def test_short_identifiers_are_ignored(seeded, actor):
    wf = _store_workflow(seeded, actor)
    item = ReviewItem(id="i1", upload_id=None, extracted={"shipmentId": "AB"})

    assert wf.resolve_shipment_key(item) is None


# ---- approval ------------------------------------------------------------------


def test_clean_approval(seeded, actor):
    wf = _store_workflow(seeded, actor)
    item = _item("i1", "IC-500", confidence=0.97, amount=500.0)
    assert resolve_status(item) is ApprovalStatus.READY

    result = wf.approve_batch([item])

    assert result.approved_count == 1
    assert result.failed == []
    assert item.ap_status is ApprovalStatus.APPROVED
    record = seeded.fetch_shipment("SHP1")
    assert record["invoiceStatus"] == "draft"
    assert record["apTotalAmount"] == 500.0
    assert len(record["approvedCharges"]) == 1
    # Auto-balance: actuals now equal quoted.
    (row,) = record["updatedCharges"]
    assert row["actualCost"] == row["quotedCost"] == 480.0
    assert row["actualCharge"] == 600.0
    assert record["totals"] == {"cost": 480.0, "charge": 600.0, "currency": "CAD"}
    assert record["chargesBreakdown"] == record["updatedCharges"]
    assert record["apProcessing"]["approvedBy"] == "ap.clerk@example.com"


def test_auto_balance_just_inside_tolerance(seeded, actor):
    wf = _store_workflow(seeded, actor)

    wf.approve_batch([_item("i1", "IC-500", amount=500.004)])

    record = seeded.fetch_shipment("SHP1")
    assert record["updatedCharges"][0]["actualCost"] == 480.0
    assert record["invoiceStatus"] == "draft"


def test_auto_balance_boundary_is_exclusive(seeded, actor):
    wf = _store_workflow(seeded, actor)

    result = wf.approve_batch([_item("i1", "IC-500", amount=500.005)])

    assert result.approved_count == 1
    record = seeded.fetch_shipment("SHP1")
    assert record["updatedCharges"][0]["actualCost"] == 500
    assert "totals" not in record
    assert record["invoiceStatus"] == "exception"


def test_cost_keyed_invoice_line_balances_like_an_amount(seeded, actor):
    wf = _store_workflow(seeded, actor)
    item = _item("i1", "IC-500")
    item.charges = [{"code": "FRT", "name": "Freight", "cost": 500}]
    assert item.invoice_total == 500.0

    result = wf.approve_batch([item])

    assert result.approved_count == 1
    record = seeded.fetch_shipment("SHP1")
    assert record["apTotalAmount"] == 500.0
    assert record["invoiceStatus"] == "draft"
    assert record["updatedCharges"][0]["actualCost"] == 480.0
    assert record["approvedCharges"][0]["amount"] == 500.0


def test_exception_band_needs_override(seeded, actor):
    wf = _store_workflow(seeded, actor)

    with pytest.raises(ValidationError):
        wf.approve_batch([_item("i1", "IC-500", confidence=0.65)])

    result = wf.approve_batch([_item("i2", "IC-500", confidence=0.01)], override=True)
    assert result.approved_count == 1

    with pytest.raises(ValidationError):
        wf.approve_batch([_item("i3", "IC-600", confidence=0.0)], override=True)


def test_unresolved_items_are_reported_not_fatal(seeded, actor):
    wf = _store_workflow(seeded, actor)
    good = _item("i1", "IC-600", amount=600.0)
    lost = _item("i2", "NOPE-1")

    result = wf.approve_batch([good, lost])

    assert result.approved_count == 1
    assert [(f.item.id, f.reason) for f in result.failed] == [("i2", "no matching shipment")]
    assert lost.ap_status is None


def test_all_unresolved_aborts(seeded, actor):
    gateway = GatewayStub()
    wf = ApprovalWorkflow(seeded, gateway, actor)

    with pytest.raises(NotFoundError):
        wf.approve_batch([_item("i1", "NOPE-1"), _item("i2", "NOPE-2")])
    assert gateway.pushes == []


def test_failed_cost_push_blocks_every_charge(seeded, actor):
    gateway = GatewayStub(fail_push_for={"SHP2"}, raise_push_for={"SHP1"})
    wf = ApprovalWorkflow(seeded, gateway, actor)
    items = [_item("i1", "IC-500"), _item("i2", "IC-600")]

    with pytest.raises(PartialFailure) as excinfo:
        wf.approve_batch(items)

    assert sorted(f.item.id for f in excinfo.value.failures) == ["i1", "i2"]
    assert excinfo.value.step == "push_actual_cost"
    assert len(gateway.pushes) == 2
    assert gateway.charges == []
    assert all(i.ap_status is None for i in items)
    assert "invoiceStatus" not in seeded.fetch_shipment("SHP1")


def test_one_failed_push_still_blocks_the_batch(seeded, actor):
    gateway = GatewayStub(fail_push_for={"SHP2"})
    wf = ApprovalWorkflow(seeded, gateway, actor)

    with pytest.raises(PartialFailure) as excinfo:
        wf.approve_batch([_item("i1", "IC-500"), _item("i2", "IC-600")])

    assert [f.item.id for f in excinfo.value.failures] == ["i2"]
    assert gateway.charges == []


class _BalanceWriteFails(SqlShipmentStore):
    def write_shipment(self, key, fields):
        if "totals" in fields:
            raise RuntimeError("write conflict")
        super().write_shipment(key, fields)


def test_auto_balance_failure_is_soft(database_url, actor):
    store = _BalanceWriteFails(database_url=database_url)
    seed_shipments(store, {"SHP1": _shipment("IC-500", quoted=480, actual=500)})
    gateway = GatewayStub()
    wf = ApprovalWorkflow(store, gateway, actor)

    result = wf.approve_batch([_item("i1", "IC-500")])

    assert result.approved_count == 1
    assert len(gateway.charges) == 1
    record = store.fetch_shipment("SHP1")
    assert "totals" not in record
    assert record["updatedCharges"][0]["actualCost"] == 500
    assert record["invoiceStatus"] == "draft"


def test_charge_creation_failure_is_per_item(seeded, actor):
    gateway = GatewayStub(fail_charge_for={"SHP1"})
    wf = ApprovalWorkflow(seeded, gateway, actor)
    failing = _item("i1", "IC-500")
    passing = _item("i2", "IC-600", amount=600.0)

    result = wf.approve_batch([failing, passing])

    assert result.approved_count == 1
    assert [f.item.id for f in result.failed] == ["i1"]
    assert failing.ap_status is None
    assert passing.ap_status is ApprovalStatus.APPROVED


def test_approval_commits_the_upload(seeded, actor):
    seeded.put_upload("U1", {"fileName": "carrier-invoice.pdf"})
    wf = _store_workflow(seeded, actor)

    wf.approve_batch([_item("i1", "IC-500", upload_id="U1")], upload_id="U1", notes="March batch")

    upload = seeded.fetch_upload("U1")
    assert upload["processingStatus"] == "approved"
    results = upload["approvalResults"]
    assert results["notes"] == "March batch"
    assert results["successfulUpdates"] == 1
    assert results["processedShipments"] == 1
    assert results["overrideExceptions"] is False


def test_unknown_upload_fails_before_any_push(seeded, actor):
    gateway = GatewayStub()
    wf = ApprovalWorkflow(seeded, gateway, actor)

    with pytest.raises(NotFoundError):
        wf.approve_batch([_item("i1", "IC-500")], upload_id="missing")
    assert gateway.pushes == []


# ---- exception / reject --------------------------------------------------------


def test_mark_exception_leaves_charges_alone(seeded, actor):
    wf = _store_workflow(seeded, actor)
    item = _item("i1", "IC-500")
    before = seeded.fetch_shipment("SHP1")["updatedCharges"]

    assert wf.mark_exception(item) == "SHP1"

    record = seeded.fetch_shipment("SHP1")
    assert record["invoiceStatus"] == "exception"
    assert record["updatedCharges"] == before
    assert item.ap_status is ApprovalStatus.EXCEPTION
    assert wf.queue.items(status=ApprovalStatus.EXCEPTION) == [item]


def test_mark_exception_unresolvable(seeded, actor):
    wf = _store_workflow(seeded, actor)

    with pytest.raises(NotFoundError):
        wf.mark_exception(_item("i1", "NOPE-1"))


def test_reject_updates_upload_and_its_items_only(seeded, actor):
    seeded.put_upload("U1", {"fileName": "a.pdf"})
    seeded.put_upload("U2", {"fileName": "b.pdf"})
    mine = _item("i1", "IC-500", upload_id="U1")
    other = _item("i2", "IC-600", upload_id="U2")
    wf = ApprovalWorkflow(
        seeded, GatewayStub(), actor, queue=ReviewQueue([mine, other])
    )
    shipment_before = seeded.fetch_shipment("SHP1")

    assert wf.reject("U1", "duplicate invoice") == 1

    upload = seeded.fetch_upload("U1")
    assert upload["apStatus"] == "rejected"
    assert upload["rejectionReason"] == "duplicate invoice"
    assert upload["rejectedBy"] == "ap.clerk@example.com"
    assert mine.ap_status is ApprovalStatus.REJECTED
    assert other.ap_status is None
    assert seeded.fetch_shipment("SHP1") == shipment_before
    assert "apStatus" not in seeded.fetch_upload("U2")


def test_reject_unknown_upload(seeded, actor):
    wf = _store_workflow(seeded, actor)

    with pytest.raises(NotFoundError):
        wf.reject("missing", "whatever")


# ---- matching / queue ----------------------------------------------------------


def test_attach_matches_is_soft_on_matcher_errors(seeded, actor):
    gateway = GatewayStub(
        matches={"IC-500": {"confidence": 0.9, "bestMatch": {"shipmentID": "IC-500"}}}
    )
    wf = ApprovalWorkflow(seeded, gateway, actor)
    hit = _item("i1", "IC-500", confidence=None)
    boom = _item("i2", "BOOM", confidence=None)
    miss = _item("i3", "IC-999", confidence=None)
    already = _item("i4", "IC-600", confidence=0.5)

    assert wf.attach_matches([hit, boom, miss, already]) == 1

    assert hit.match_result.confidence == 0.9
    assert resolve_status(hit) is ApprovalStatus.REVIEW
    assert boom.match_result is None
    assert miss.match_result is None
    assert already.match_result.confidence == 0.5


def test_store_gateway_has_no_matcher(seeded, actor):
    gateway = StoreBackedApGateway(seeded, actor=actor)
    assert gateway.match_invoice_to_shipment({"shipmentId": "IC-500"}) is None

    wf = _store_workflow(seeded, actor)
    item = _item("i1", "IC-500", confidence=None)

    assert wf.attach_matches([item]) == 0
    assert item.match_result is None


def test_queue_views_are_computed_on_read():
    ready = _item("i1", "IC-500", confidence=0.97, upload_id="U1")
    review = _item("i2", "IC-600", confidence=0.85, upload_id="U1")
    low = _item("i3", "IC-700", confidence=0.4, upload_id="U2")
    queue = ReviewQueue([ready, review, low])

    assert queue.items(status=ApprovalStatus.READY) == [ready]
    assert queue.items(upload_id="U1") == [ready, review]
    assert queue.eligible() == [ready, review]
    assert queue.eligible(override=True) == [ready, review, low]

    low.ap_status = ApprovalStatus.REJECTED
    assert queue.counts()[ApprovalStatus.REJECTED] == 1
    assert queue.eligible(override=True) == [ready, review]

    with pytest.raises(NotFoundError):
        queue.get("nope")


def test_build_balance_update_from_projected_ledger(actor):
    record = {
        "selectedRate": {
            "billingDetails": [{"name": "Freight", "amount": 120, "actualAmount": 100}]
        }
    }

    update = build_balance_update(record, actor=actor, at="2026-01-01T00:00:00+00:00")

    (row,) = update["updatedCharges"]
    assert row["actualCost"] == row["quotedCost"] == 100.0
    assert update["totals"] == {"cost": 100.0, "charge": 120.0, "currency": "CAD"}
