from __future__ import annotations

from watermonitor.services.store import SAMPLE_DEVICES, SAMPLE_USER
from watermonitor.services.ussd_service import INVALID_OPTION, MAIN_MENU


def _register(api, email, password="secret123", full_name="Amina Yusuf"):
    return api.post("/auth/register", json={"fullName": full_name, "email": email, "password": password})


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["service"] == "water-monitor-backend"
    assert body["sampling"] is False
    assert "timestamp" in body


def test_root_lists_endpoints(api):
    body = api.get("/").json()
    assert body["endpoints"]["latest_readings"] == "GET /latest-readings"


def test_latest_readings_from_seed(api):
    response = api.get("/latest-readings")
    assert response.status_code == 200
    body = response.json()

    assert body["ph"] == {"value": 7.2, "status": "normal", "range": "6.5-8.5"}
    assert body["turbidity"] == {"value": 3.5, "status": "normal", "unit": "NTU", "range": "0-10"}
    assert body["temperature"] == {"value": 25.4, "status": "normal", "unit": "°C", "range": "20-30"}
    # The seeded pH sensor is off
    assert body["deviceStatus"] == "offline"
    assert "lastUpdate" in body


def test_device_status(api):
    response = api.get("/device-status")
    assert response.status_code == 200
    devices = response.json()
    assert len(devices) == len(SAMPLE_DEVICES)
    assert [d["id"] for d in devices] == sorted(d["id"] for d in devices)
    first = devices[0]
    assert {"name", "metric", "status", "battery", "heartbeat", "signal", "calibration"} <= set(first)
    assert "freshnessMinutes" in first
    assert "lastUpdate" in first


def test_history(api):
    response = api.get("/history", params={"limit": 3})
    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 3
    assert [r["timestamp"] for r in rows] == sorted((r["timestamp"] for r in rows), reverse=True)
    assert set(rows[0]) == {"id", "ph", "turbidity", "temperature", "status", "timestamp"}


def test_history_rejects_bad_limit(api):
    assert api.get("/history", params={"limit": 0}).status_code == 400
    assert api.get("/history", params={"limit": 1001}).status_code == 400


def test_history_search_without_match(api):
    response = api.get("/history", params={"q": "1999-01-01"})
    assert response.status_code == 200
    assert response.json() == []


def test_iot_reading_is_stored_and_becomes_latest(api):
    response = api.post("/iot/readings", json={"ph": "9.1", "turbidity": 3, "temperature": 25.5})
    assert response.status_code == 201
    body = response.json()
    assert isinstance(body["id"], int)
    assert body["status"] == "warning"
    assert (body["ph"], body["turbidity"], body["temperature"]) == (9.1, 3.0, 25.5)

    latest = api.get("/latest-readings").json()
    assert latest["ph"]["value"] == 9.1
    assert latest["ph"]["status"] == "warning"
    assert latest["turbidity"]["status"] == "normal"


def test_iot_reading_status_follows_stored_two_decimal_values(api):
    response = api.post("/iot/readings", json={"ph": 8.5049, "turbidity": 3, "temperature": 25})
    assert response.status_code == 201
    body = response.json()
    assert body["ph"] == 8.5
    assert body["status"] == "normal"

    latest = api.get("/latest-readings").json()
    assert latest["ph"] == {"value": 8.5, "status": "normal", "range": "6.5-8.5"}

    newest = api.get("/history", params={"limit": 1}).json()[0]
    assert (newest["ph"], newest["status"]) == (8.5, "normal")


def test_iot_reading_just_past_threshold_after_rounding_is_warning(api):
    body = api.post("/iot/readings", json={"ph": 8.5051, "turbidity": 8.0049, "temperature": 19.996}).json()
    assert (body["ph"], body["turbidity"], body["temperature"]) == (8.51, 8.0, 20.0)
    assert body["status"] == "warning"


def test_iot_reading_accepts_urlencoded_form(api):
    response = api.post("/iot/readings", data={"ph": "7.31", "turbidity": "2.5", "temperature": "24"})
    assert response.status_code == 201
    body = response.json()
    assert (body["ph"], body["turbidity"], body["temperature"]) == (7.31, 2.5, 24.0)
    assert body["status"] == "normal"

    bad = api.post("/iot/readings", data={"ph": "seven", "turbidity": "2.5", "temperature": "24"})
    assert bad.status_code == 400


def test_iot_reading_rejects_malformed_json(api):
    response = api.post(
        "/iot/readings",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400


def test_iot_reading_rejects_non_numeric(api):
    bad = [
        {"ph": "abc", "turbidity": 3, "temperature": 25},
        {"ph": 7, "turbidity": 3},
        {"ph": 7, "turbidity": "", "temperature": 25},
        {},
    ]
    for payload in bad:
        response = api.post("/iot/readings", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"] == "ph, turbidity and temperature must be numeric values"

    assert api.post("/iot/readings").status_code == 400


def test_register_and_login(api):
    response = _register(api, "amina@example.com")
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["fullName"] == "Amina Yusuf"
    assert body["user"]["email"] == "amina@example.com"
    assert body["token"]

    assert _register(api, "AMINA@example.com").status_code == 409

    login = api.post("/auth/login", json={"email": "amina@example.com", "password": "secret123"})
    assert login.status_code == 200
    assert login.json()["user"]["id"] == body["user"]["id"]

    wrong = api.post("/auth/login", json={"email": "amina@example.com", "password": "nope-nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid credentials"


def test_register_validation(api):
    missing = api.post("/auth/register", json={"email": "x@example.com"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "fullName, email and password are required"

    assert _register(api, "not-an-email").status_code == 400


def test_login_validation(api):
    assert api.post("/auth/login", json={"email": "x@example.com"}).status_code == 400


def test_seeded_operator_can_log_in(api):
    response = api.post(
        "/auth/login",
        json={"email": SAMPLE_USER["email"], "password": SAMPLE_USER["password"]},
    )
    assert response.status_code == 200


def test_users_requires_token(api):
    assert api.get("/users").status_code == 401
    assert api.get("/users", headers={"Authorization": "Bearer made-up"}).status_code == 401

    token = _register(api, "lister@example.com").json()["token"]
    response = api.get("/users", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    users = response.json()
    assert any(u["email"] == "lister@example.com" for u in users)
    assert all("createdAt" in u and "password" not in u for u in users)


def test_forgot_password_answer_does_not_leak(api):
    known = api.post("/auth/forgot-password", json={"email": SAMPLE_USER["email"]})
    unknown = api.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert api.post("/auth/forgot-password", json={}).status_code == 400


def test_reset_password_validation(api):
    assert api.post("/auth/reset-password", json={"token": "x"}).status_code == 400

    short = api.post("/auth/reset-password", json={"token": "x", "newPassword": "123"})
    assert short.status_code == 400

    bogus = api.post("/auth/reset-password", json={"token": "x", "newPassword": "long-enough"})
    assert bogus.status_code == 400
    assert bogus.json()["detail"] == "Invalid or expired reset token"


def test_ussd_menu(api):
    form = {"sessionId": "s1", "serviceCode": "*384#", "phoneNumber": "+254700000000"}

    menu = api.post("/ussd", data={**form, "text": ""})
    assert menu.status_code == 200
    assert menu.text == MAIN_MENU

    latest = api.post("/ussd", data={**form, "text": "1"})
    assert latest.text.startswith("END Latest Readings")

    history = api.post("/ussd", data={**form, "text": "2"})
    assert history.text.startswith("END Recent Records:")
    assert history.text.count("\n") == 6

    assert api.post("/ussd", data={**form, "text": "7"}).text == INVALID_OPTION
