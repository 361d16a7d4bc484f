"""HTTP tests: the full marketplace flow and error responses."""
from conftest import hours_from_now


def _register(client, username, role="user"):
    resp = client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "secret123", "role": role},
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}, resp.json()["user"]


def _booking_body(slot_id, start_in=2, hours=3):
    start, end = hours_from_now(start_in, hours)
    return {"slot_id": slot_id, "start_time": start.isoformat(), "end_time": end.isoformat(), "duration": hours}


def test_end_to_end_booking_flow(client, admin, login, gateway):
    admin_headers = login("admin")
    owner_headers, _ = _register(client, "lotowner", role="owner")
    driver_headers, driver = _register(client, "commuter")

    pending = client.get("/api/owners/pending", headers=admin_headers).json()
    assert len(pending) == 1
    resp = client.patch(f"/api/owners/{pending[0]['id']}/status", json={"status": "approved"}, headers=admin_headers)
    assert resp.json()["status"] == "approved"

    resp = client.post(
        "/api/slots",
        json={
            "name": "Bandra West P2",
            "address": "14 Hill Road",
            "city": "Mumbai",
            "vehicle_type": "4-wheeler",
            "slot_type": "open",
            "price_per_hour": 50,
        },
        headers=owner_headers,
    )
    assert resp.status_code == 200, resp.text
    slot_id = resp.json()["id"]

    search = client.get("/api/slots", params={"city": "Mumbai", "vehicle_type": "4-wheeler"}).json()
    assert [s["id"] for s in search] == [slot_id]

    resp = client.post("/api/bookings", json=_booking_body(slot_id, hours=3), headers=driver_headers)
    assert resp.status_code == 200, resp.text
    booking = resp.json()
    assert booking["status"] == "pending"
    assert booking["total_amount"] == "195.00"

    requests = client.get("/api/bookings/pending", headers=owner_headers).json()
    assert [b["id"] for b in requests] == [booking["id"]]

    resp = client.patch(f"/api/bookings/{booking['id']}/decision", json={"decision": "approved"}, headers=owner_headers)
    assert resp.json()["status"] == "approved"
    # Approved for a later window; the slot is still free now
    assert [s["id"] for s in client.get("/api/slots", params={"city": "Mumbai"}).json()] == [slot_id]

    resp = client.post("/api/payments/capture", json={"booking_id": booking["id"]}, headers=driver_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["provider_reference"] == "pi_test_1"

    resp = client.patch(f"/api/bookings/{booking['id']}/status", json={"status": "completed"}, headers=owner_headers)
    assert resp.json()["status"] == "completed"

    slot = client.get(f"/api/slots/{slot_id}").json()
    assert slot["is_available"] is True
    mine = client.get("/api/bookings/user", headers=driver_headers).json()
    assert [(b["id"], b["status"]) for b in mine] == [(booking["id"], "completed")]

    inbox = client.get("/api/notifications", headers=driver_headers).json()["notifications"]
    assert all(n["user_id"] == driver["id"] for n in inbox)
    assert [n["title"] for n in reversed(inbox)] == ["Booking Created", "Booking approved", "Booking completed"]

    stats = client.get("/api/owner/stats", headers=owner_headers).json()
    assert stats["monthly_revenue"] == "195.00"
    assert stats["occupied_slots"] == 0
    assert client.get("/api/admin/stats", headers=admin_headers).json()["total_owners"] == 1


class TestErrorResponses:
    def test_missing_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "authentication_error"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_bad_credentials(self, client, driver):
        resp = client.post("/api/auth/login", json={"email": "driver@example.com", "password": "nope"})
        assert resp.status_code == 401

    def test_duplicate_registration(self, client, driver):
        resp = client.post(
            "/api/auth/register",
            json={"username": "driver", "email": "driver@example.com", "password": "secret123"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "validation_error", "detail": "User already exists"}

    def test_user_cannot_create_slot(self, client, driver, login):
        resp = client.post(
            "/api/slots",
            json={"name": "x", "address": "y", "city": "z", "vehicle_type": "suv", "slot_type": "open", "price_per_hour": 10},
            headers=login("driver"),
        )
        assert resp.status_code == 403
        assert resp.json() == {"error": "not_permitted", "detail": "Not permitted"}

    def test_unknown_slot(self, client):
        resp = client.get("/api/slots/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_availability_not_editable_through_update(self, client, owner, slot, login):
        resp = client.put(f"/api/slots/{slot.id}", json={"is_available": False}, headers=login("owner"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_decide_twice_is_invalid_state(self, client, driver, owner, slot, login):
        booking = client.post("/api/bookings", json=_booking_body(slot.id), headers=login("driver")).json()
        headers = login("owner")
        url = f"/api/bookings/{booking['id']}/decision"
        assert client.patch(url, json={"decision": "rejected"}, headers=headers).status_code == 200
        resp = client.patch(url, json={"decision": "approved"}, headers=headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"

    def test_lost_slot_is_conflict(self, client, owner, slot, make_user, login):
        make_user("alice")
        make_user("bob")
        first = client.post("/api/bookings", json=_booking_body(slot.id, 2, 3), headers=login("alice")).json()
        second = client.post("/api/bookings", json=_booking_body(slot.id, 3, 3), headers=login("bob")).json()
        headers = login("owner")
        client.patch(f"/api/bookings/{first['id']}/decision", json={"decision": "approved"}, headers=headers)
        resp = client.patch(f"/api/bookings/{second['id']}/decision", json={"decision": "approved"}, headers=headers)
        assert resp.status_code == 409
        assert resp.json() == {"error": "conflict", "detail": "Slot no longer available, please choose another"}

    def test_payment_failure_is_bad_gateway(self, client, driver, owner, slot, login, gateway):
        booking = client.post("/api/bookings", json=_booking_body(slot.id), headers=login("driver")).json()
        client.patch(f"/api/bookings/{booking['id']}/decision", json={"decision": "approved"}, headers=login("owner"))
        gateway.fail = True
        resp = client.post("/api/payments/capture", json={"booking_id": booking["id"]}, headers=login("driver"))
        assert resp.status_code == 502
        assert resp.json()["error"] == "payment_error"
        mine = client.get("/api/bookings/user", headers=login("driver")).json()
        assert mine[0]["status"] == "approved"

    def test_delete_user_with_bookings_is_conflict(self, client, admin, driver, slot, login):
        client.post("/api/bookings", json=_booking_body(slot.id), headers=login("driver"))
        resp = client.delete(f"/api/admin/users/{driver.id}", headers=login("admin"))
        assert resp.status_code == 409


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
