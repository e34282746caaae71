"""
Gains livreur et retraits : taux par district, retrait unique par colis,
scénario complet réservation → paiement → livraison → retrait.
"""
import asyncio

import pytest
from fastapi import HTTPException

from services import settlement_service
from services.settlement_service import cashout, compute_earning, rider_rate

PARCEL_BODY = {
    "sender_name": "Alice",
    "sender_district": "Dhaka",
    "receiver_name": "Bob",
    "receiver_district": "Dhaka",
    "delivery_cost": 500,
}


@pytest.mark.parametrize("sender, receiver, cost, expected", [
    ("Dhaka", "Dhaka", 1000, 800.0),
    ("Dhaka", "Khulna", 1000, 300.0),
    (" dhaka ", "DHAKA", 1000, 800.0),
    ("Dhaka", "Dhaka", 0, 0.0),
    ("Dhaka", "Sylhet", 333.33, 100.0),
])
def test_compute_earning(sender, receiver, cost, expected):
    parcel = {"sender_district": sender, "receiver_district": receiver, "delivery_cost": cost}
    assert compute_earning(parcel) == expected


def test_missing_district_counts_as_cross_district():
    assert rider_rate({"sender_district": None, "receiver_district": None}) == 0.30


async def _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body, **kwargs):
    parcel = await make_parcel(**kwargs)
    pid = parcel["parcel_id"]
    await client.patch(f"/api/parcels/{pid}/assign", json=assign_body(rider), headers=auth_headers(admin["email"]))
    await client.patch(f"/api/parcels/{pid}/deliver", headers=auth_headers(rider["email"]))
    return pid


async def test_full_delivery_and_cashout_scenario(client, mongo, auth_headers, admin, make_rider, assign_body):
    alice = auth_headers("alice@test.com")
    rider = await make_rider()
    rider_headers = auth_headers(rider["email"])

    # Réservation
    resp = await client.post("/api/parcels", json=PARCEL_BODY, headers=alice)
    assert resp.status_code == 201
    pid = resp.json()["parcel_id"]

    # Paiement
    resp = await client.post("/api/payments/intent", json={"parcel_id": pid}, headers=alice)
    assert resp.status_code == 200
    intent_id = resp.json()["intent_id"]
    resp = await client.post("/api/payments", json={"parcel_id": pid, "transaction_id": intent_id}, headers=alice)
    assert resp.status_code == 201

    # Assignation puis livraison
    resp = await client.patch(f"/api/parcels/{pid}/assign", json=assign_body(rider), headers=auth_headers(admin["email"]))
    assert resp.status_code == 200
    assert (await client.patch(f"/api/parcels/{pid}/pickup", headers=rider_headers)).status_code == 200
    assert (await client.patch(f"/api/parcels/{pid}/deliver", headers=rider_headers)).status_code == 200

    resp = await client.get("/api/riders/me/earnings", headers=rider_headers)
    assert resp.status_code == 200
    earnings = resp.json()
    assert earnings["total_earned"] == 400.0
    assert earnings["pending_cashout"] == 400.0

    # Retrait : le montant annoncé est indicatif, le registre garde le montant calculé
    resp = await client.post("/api/riders/me/cashout", json={"parcel_id": pid, "amount": 500}, headers=rider_headers)
    assert resp.status_code == 200
    withdrawal = resp.json()
    assert withdrawal["amount"] == 400.0
    assert withdrawal["requested_amount"] == 500

    resp = await client.post("/api/riders/me/cashout", json={"parcel_id": pid, "amount": 500}, headers=rider_headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "already_processed"

    assert await mongo.withdrawals.count_documents({"parcel_id": pid}) == 1
    stored = await mongo.parcels.find_one({"parcel_id": pid})
    assert stored["is_cashed_out"] is True

    earnings = (await client.get("/api/riders/me/earnings", headers=rider_headers)).json()
    assert earnings["cashed_out"] == 400.0
    assert earnings["pending_cashout"] == 0.0

    resp = await client.get("/api/riders/me/withdrawals", headers=rider_headers)
    assert resp.json()["total"] == 1


async def test_earnings_by_district(client, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    await _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body, cost=1000)
    await _delivered_parcel(
        client, auth_headers, admin, make_parcel, rider, assign_body,
        cost=1000, receiver_district="Khulna",
    )

    earnings = (await client.get("/api/riders/me/earnings", headers=auth_headers(rider["email"]))).json()
    assert sorted(line["earning"] for line in earnings["parcels"]) == [300.0, 800.0]
    assert earnings["total_earned"] == 1100.0


async def test_cashout_requires_delivered_parcel(client, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    parcel = await make_parcel()
    pid = parcel["parcel_id"]
    await client.patch(f"/api/parcels/{pid}/assign", json=assign_body(rider), headers=auth_headers(admin["email"]))

    resp = await client.post("/api/riders/me/cashout", json={"parcel_id": pid}, headers=auth_headers(rider["email"]))
    assert resp.status_code == 400


async def test_cashout_by_another_rider_is_forbidden(client, mongo, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    other = await make_rider(email="other@test.com")
    pid = await _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body)

    resp = await client.post("/api/riders/me/cashout", json={"parcel_id": pid}, headers=auth_headers(other["email"]))
    assert resp.status_code == 403
    assert await mongo.withdrawals.count_documents({}) == 0


async def test_cashout_requires_rider_role(client, auth_headers):
    resp = await client.post("/api/riders/me/cashout", json={"parcel_id": "prc_x"}, headers=auth_headers("alice@test.com"))
    assert resp.status_code == 403


async def test_cashout_unknown_parcel(make_rider):
    rider = await make_rider()
    with pytest.raises(HTTPException) as exc:
        await cashout("prc_missing", rider_email=rider["email"])
    assert exc.value.status_code == 404


async def test_ledger_failure_keeps_parcel_flagged(
    monkeypatch, client, mongo, failing_db, auth_headers, admin, make_parcel, make_rider, assign_body,
):
    rider = await make_rider()
    pid = await _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body)
    monkeypatch.setattr(settlement_service, "db", failing_db(withdrawals={"insert_one"}))

    with pytest.raises(HTTPException) as exc:
        await cashout(pid, rider_email=rider["email"])
    assert exc.value.status_code == 500
    assert exc.value.detail["error"] == "inconsistent"
    assert exc.value.detail["context"]["failed_step"] == "withdrawals.insert"

    # Aucun second retrait possible
    monkeypatch.undo()
    with pytest.raises(HTTPException) as exc:
        await cashout(pid, rider_email=rider["email"])
    assert exc.value.status_code == 409
    assert await mongo.withdrawals.count_documents({}) == 0


async def test_admin_withdrawal_ledger(client, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    pid = await _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body)
    await client.post("/api/riders/me/cashout", json={"parcel_id": pid}, headers=auth_headers(rider["email"]))

    assert (await client.get("/api/admin/withdrawals", headers=auth_headers(rider["email"]))).status_code == 403
    resp = await client.get("/api/admin/withdrawals", headers=auth_headers(admin["email"]))
    assert resp.status_code == 200
    assert [w["parcel_id"] for w in resp.json()["withdrawals"]] == [pid]


async def test_concurrent_cashouts_pay_once(monkeypatch, client, mongo, auth_headers, admin, make_parcel, make_rider, assign_body):
    rider = await make_rider()
    pid = await _delivered_parcel(client, auth_headers, admin, make_parcel, rider, assign_body)

    # Les deux lectures précèdent les deux écritures
    read_parcel = settlement_service.get_parcel

    async def _yielding_read(parcel_id):
        parcel = await read_parcel(parcel_id)
        await asyncio.sleep(0)
        return parcel
    monkeypatch.setattr(settlement_service, "get_parcel", _yielding_read)

    results = await asyncio.gather(
        cashout(pid, rider_email=rider["email"]),
        cashout(pid, rider_email=rider["email"]),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, dict)]
    losers = [r for r in results if isinstance(r, HTTPException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].status_code == 409
    assert losers[0].detail["error"] == "already_processed"
    assert await mongo.withdrawals.count_documents({"parcel_id": pid}) == 1
