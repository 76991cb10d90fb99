from __future__ import annotations

from dataclasses import replace

import pytest

from freight_recon.errors import NotFoundError
from freight_recon.persister import build_update, migrate_rates, persist
from freight_recon.projector import load_ledger, project

from tests.helpers.db import seed_shipments


def _essentials(ledger):
    return [(c.code, c.name, c.cost, c.charge, c.currency) for c in ledger.charges]


REGULAR = {
    "shipmentID": "IC-100",
    "notes": "keep me",
    "selectedRate": {
        "carrier": {"name": "Canpar"},
        "pricing": {"currency": "USD"},
        "billingDetails": [
            {"code": "FRT", "name": "Freight", "amount": 120, "actualAmount": 100},
            {"name": "Fuel Surcharge", "amount": 15},
        ],
    },
}

QUICKSHIP = {
    "shipmentID": "IC-200",
    "creationMethod": "quickship",
    "manualRates": [
        {
            "id": "7",
            "carrier": "Day & Ross",
            "code": "FRT",
            "chargeName": "Freight",
            "cost": "600",
            "charge": "750",
        },
    ],
    "updatedCharges": [{"code": "OLD", "quotedCost": 1}],
}


def test_regular_shipment_round_trip(store, actor):
    seed_shipments(store, {"S2": REGULAR})
    ledger = load_ledger(store, "S2")
    edited = ledger.with_charges([replace(ledger.charges[0], cost=110.0), *ledger.charges[1:]])

    persist(store, "S2", edited, actor)

    record = store.fetch_shipment("S2")
    assert record["notes"] == "keep me"
    assert record["updatedBy"] == "ap.clerk@example.com"
    assert record["updatedAt"]
    assert record["chargesBreakdown"] == record["updatedCharges"]
    assert _essentials(project(record)) == _essentials(edited)


def test_regular_save_collapses_quoted_and_actual(store, actor):
    seed_shipments(
        store,
        {
            "S3": {
                "updatedCharges": [
                    {
                        "id": "a",
                        "code": "FRT",
                        "description": "Freight",
                        "quotedCost": 500,
                        "actualCost": 480,
                    }
                ]
            }
        },
    )

    persist(store, "S3", load_ledger(store, "S3"), actor)

    (row,) = store.fetch_shipment("S3")["updatedCharges"]
    assert row["quotedCost"] == row["actualCost"] == 500.0
    assert row["id"] == "a"
    assert row["modifiedBy"] == "ap.clerk@example.com"


def test_quickship_round_trip_writes_manual_rates(store, actor):
    seed_shipments(store, {"Q1": QUICKSHIP})
    ledger = load_ledger(store, "Q1")
    edited = ledger.with_charges([replace(ledger.charges[0], charge=800.0)])

    persist(store, "Q1", edited, actor)

    record = store.fetch_shipment("Q1")
    assert record["updatedCharges"] is None
    assert record["chargesBreakdown"] is None
    (row,) = record["manualRates"]
    assert (row["id"], row["cost"], row["charge"]) == ("7", "600", "800")
    assert row["carrier"] == "Day & Ross"
    assert _essentials(project(record)) == _essentials(edited)


def test_blank_names_are_written_as_the_default(store, actor):
    seed_shipments(store, {"S2": REGULAR, "Q1": QUICKSHIP})

    cases = (("S2", "updatedCharges", "description"), ("Q1", "manualRates", "chargeName"))
    for key, rows_field, name_field in cases:
        ledger = load_ledger(store, key)
        persist(store, key, ledger.with_charges([replace(ledger.charges[0], name="")]), actor)

        record = store.fetch_shipment(key)
        assert record[rows_field][0][name_field] == "Unnamed Charge"
        once = load_ledger(store, key)
        persist(store, key, once, actor)
        assert _essentials(load_ledger(store, key)) == _essentials(once)


def test_build_update_only_touches_owned_fields(actor):
    update = build_update(REGULAR, project(REGULAR), actor, at="2026-01-01T00:00:00+00:00")

    assert set(update) == {"updatedAt", "updatedBy", "updatedCharges", "chargesBreakdown"}
    assert update["updatedAt"] == "2026-01-01T00:00:00+00:00"


def test_persist_missing_shipment(store, actor):
    with pytest.raises(NotFoundError):
        persist(store, "nope", project({}), actor)


def test_migrate_rates_dry_run_then_write(store, actor):
    seed_shipments(store, {"S2": REGULAR, "Q1": QUICKSHIP, "E1": {"shipmentID": "IC-300"}})

    report = migrate_rates(store, actor=actor)
    assert [(e.shipment_id, e.source, e.written) for e in report] == [
        ("E1", "NoRateSource", False),
        ("Q1", "ManualRateSource", False),
        ("S2", "SelectedRateSource", False),
    ]
    assert "updatedCharges" not in store.fetch_shipment("S2")

    report = migrate_rates(store, actor=actor, write=True)
    assert [e.written for e in report] == [False, True, True]
    s2 = store.fetch_shipment("S2")
    assert [r["code"] for r in s2["updatedCharges"]] == ["FRT", "FSC"]
    assert report[2].total_cost == 115.0
    assert "updatedAt" not in store.fetch_shipment("E1")
