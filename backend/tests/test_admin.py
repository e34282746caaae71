"""
Tableau de bord admin : réservations par jour, colis par district,
réconciliation des écritures incomplètes.
"""
from datetime import datetime, timedelta, timezone

from services import admin_service
from services.admin_service import booking_stats, district_stats, reconciliation_report


async def _insert_parcel(mongo, parcel_id, **fields):
    await mongo.parcels.insert_one({"parcel_id": parcel_id, "tracking_id": f"TRK-{parcel_id}", **fields})


async def test_booking_stats_last_seven_days_ascending(mongo):
    start = datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    for day in range(9):
        for n in range(day + 1):
            await _insert_parcel(mongo, f"p{day}-{n}", created_at=start + timedelta(days=day))

    stats = await booking_stats()
    assert [s["date"] for s in stats] == [f"2024-03-{d:02d}" for d in range(3, 10)]
    assert [s["count"] for s in stats] == [3, 4, 5, 6, 7, 8, 9]


async def test_booking_stats_tolerates_malformed_dates(mongo):
    await _insert_parcel(mongo, "ok1", created_at=datetime(2024, 1, 2, 8, tzinfo=timezone.utc))
    await _insert_parcel(mongo, "ok2", created_at="2024-01-02T18:30:00Z")
    await _insert_parcel(mongo, "ok3", created_at="2024-01-01T09:00:00")
    await _insert_parcel(mongo, "bad1", created_at="not-a-date")
    await _insert_parcel(mongo, "bad2", created_at=None)
    await _insert_parcel(mongo, "bad3")

    stats = await booking_stats()
    assert stats == [
        {"date": "2024-01-01", "count": 1},
        {"date": "2024-01-02", "count": 2},
    ]


async def test_booking_stats_empty():
    assert await booking_stats() == []


async def test_district_stats_descending(mongo):
    for i, district in enumerate(["Khulna", "Dhaka", "Dhaka", "Sylhet", "Dhaka", "Khulna", None, "  "]):
        await _insert_parcel(mongo, f"d{i}", sender_district=district)

    assert await district_stats() == [
        {"district": "Dhaka", "count": 3},
        {"district": "Khulna", "count": 2},
        {"district": "Sylhet", "count": 1},
    ]


async def test_stats_endpoints_are_admin_only(client, auth_headers, admin, make_parcel):
    await make_parcel(sender_district="Dhaka")

    resp = await client.get("/api/admin/stats/bookings", headers=auth_headers("alice@test.com"))
    assert resp.status_code == 403

    resp = await client.get("/api/admin/stats/bookings", headers=auth_headers(admin["email"]))
    assert resp.status_code == 200
    assert [b["count"] for b in resp.json()["bookings"]] == [1]

    resp = await client.get("/api/admin/stats/districts", headers=auth_headers(admin["email"]))
    assert resp.json()["districts"] == [{"district": "Dhaka", "count": 1}]


async def test_reconciliation_clean_after_normal_flow(client, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    parcel = await make_parcel()
    await client.patch(f"/api/parcels/{parcel['parcel_id']}/assign", json=assign_body(rider), headers=auth_headers(admin["email"]))

    resp = await client.get("/api/admin/reconciliation", headers=auth_headers(admin["email"]))
    assert resp.status_code == 200
    assert not any(resp.json().values())


async def test_reconciliation_reports_partial_writes(mongo):
    await _insert_parcel(mongo, "paid-no-receipt", payment_status="paid")
    await mongo.payments.insert_one({"payment_id": "pay_1", "parcel_id": "receipt-only"})
    await _insert_parcel(mongo, "cashed-no-ledger", is_cashed_out=True, payment_status="unpaid")
    await mongo.riders.insert_one({"rider_id": "rdr_busy", "work_status": "in delivery"})
    await mongo.riders.insert_one({"rider_id": "rdr_idle", "work_status": "available"})
    await _insert_parcel(mongo, "active-idle", delivery_status="picked", rider_id="rdr_idle")

    report = await reconciliation_report()
    assert report == {
        "paid_without_receipt": ["paid-no-receipt"],
        "receipt_without_payment": ["receipt-only"],
        "cashed_out_without_ledger": ["cashed-no-ledger"],
        "busy_riders_without_parcel": ["rdr_busy"],
        "active_parcels_with_idle_rider": ["active-idle"],
    }


async def test_stats_are_computed_by_the_database(monkeypatch, mongo, failing_db):
    await _insert_parcel(mongo, "a", created_at=datetime(2024, 5, 1, 9, tzinfo=timezone.utc), sender_district="Dhaka")
    await _insert_parcel(mongo, "b", created_at="2024-05-02T10:00:00Z", sender_district="Dhaka")
    # Aucun parcours document par document côté application
    monkeypatch.setattr(admin_service, "db", failing_db(parcels={"find"}))

    assert await booking_stats() == [
        {"date": "2024-05-01", "count": 1},
        {"date": "2024-05-02", "count": 1},
    ]
    assert await district_stats() == [{"district": "Dhaka", "count": 2}]
