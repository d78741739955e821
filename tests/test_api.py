from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ntt_booking.api import deps
from ntt_booking.api.errors import install_error_handlers
from ntt_booking.api.routes import auth, availability, bookings, cron, misc, payments
from ntt_booking.config import get_settings
from ntt_booking.core import security
from ntt_booking.core.errors import GatewayUnavailableError
from ntt_booking.db import models
from ntt_booking.db.models.payment import PaymentChannel
from ntt_booking.db.session import get_db
from ntt_booking.services import booking_service, payment_service


@pytest.fixture()
def app(session_factory, fake_gateway):
    app = FastAPI()
    install_error_handlers(app)
    for module in (auth, availability, bookings, payments, cron, misc):
        app.include_router(module.router, prefix="/api/v1")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_payment_gateway] = lambda: fake_gateway
    return app


@pytest.fixture()
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def as_owner(app):
    app.dependency_overrides[deps.get_current_staff] = lambda: models.StaffUser(
        id=1, login="owner", role=models.StaffRole.owner, business_id=None
    )


@pytest.fixture()
def payment(db_session, make_slot, booking_payload, fake_gateway):
    booking = booking_service.create_booking(db_session, booking_payload(make_slot(capacity=10)))
    return payment_service.create_payment(
        db_session,
        booking.id,
        PaymentChannel.FPX,
        app_url="https://ntt.example.test",
        gateway_client=fake_gateway,
    )


def _confirmation(payment, result, base="http://testserver"):
    return f"{base}/book/ntt/confirmation?ref={payment.booking.ref_code}&payment={result}"


def test_health(client):
    assert client.get("/api/v1/health").json() == {"status": "ok"}


def test_public_booking_flow(client, make_slot, booking_payload):
    slot = make_slot(capacity=10, booked_count=8)

    check = client.get("/api/v1/availability/check", params={"slot_id": slot.id, "pax": 2})
    assert check.status_code == 200
    assert check.json()["available"] is True
    assert check.json()["remaining"] == 2

    response = client.post("/api/v1/bookings", json=booking_payload(slot, pax=2))
    assert response.status_code == 201
    ref_code = response.json()["ref_code"]

    lookup = client.get(f"/api/v1/bookings/ref/{ref_code}")
    assert lookup.status_code == 200
    assert lookup.json()["status"] == "pending"
    assert lookup.json()["pax"] == 2


def test_booking_errors_are_structured(client, make_slot, booking_payload):
    slot = make_slot(capacity=10, booked_count=8)

    response = client.post("/api/v1/bookings", json=booking_payload(slot, pax=3))
    assert response.status_code == 409
    assert response.json() == {"detail": "Only 2 spots remaining", "code": "capacity_exceeded"}

    response = client.post("/api/v1/bookings", json=booking_payload(slot, availability_id=9999))
    assert response.status_code == 404
    assert response.json()["detail"] == "Time slot not found"

    response = client.post("/api/v1/bookings", json=booking_payload(slot, customer_email="nope"))
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_error"
    assert "customer_email" in body["errors"]

    response = client.get("/api/v1/bookings/ref/NTT-ZZZZZZ")
    assert response.status_code == 404
    assert response.json()["code"] == "booking_not_found"


def test_staff_endpoints_require_login(client):
    assert client.get("/api/v1/bookings").status_code == 401
    assert client.post("/api/v1/bookings/1/confirm").status_code == 401


def test_staff_cancel_and_double_cancel(client, as_owner, make_slot, booking_payload):
    slot = make_slot(capacity=10)
    booking_id = client.post("/api/v1/bookings", json=booking_payload(slot, pax=2)).json()["booking_id"]

    response = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "customer requested"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancelled_reason"] == "customer requested"

    response = client.post(f"/api/v1/bookings/{booking_id}/cancel")
    assert response.status_code == 409
    assert response.json()["code"] == "already_cancelled"

    response = client.post(f"/api/v1/bookings/{booking_id}/complete")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"

    listed = client.get("/api/v1/bookings", params={"booking_status": "cancelled"}).json()
    assert [item["id"] for item in listed] == [booking_id]


def test_return_with_query_string(client, payment):
    response = client.get(
        "/api/v1/payments/return",
        params={"payment_id": payment.id, "status_id": 3, "transaction_id": "TX-1"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "success")


def test_return_with_form_post(client, payment):
    response = client.post(
        "/api/v1/payments/return",
        data={"payment_id": str(payment.id), "status_id": "2"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "failed")


def test_return_with_multipart_post(client, payment):
    response = client.post(
        "/api/v1/payments/return",
        data={"payment_id": str(payment.id), "status_id": "3"},
        files={"receipt": ("receipt.txt", b"-", "text/plain")},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "success")


def test_return_with_json_post(client, payment):
    response = client.post(
        "/api/v1/payments/return",
        json={"payment_id": payment.id, "status": 3},
        headers={"x-forwarded-proto": "https"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "success", base="https://testserver")


def test_return_degrades_to_pending(client, payment, fake_gateway):
    fake_gateway.query_error = GatewayUnavailableError("timeout")
    response = client.get(
        "/api/v1/payments/return",
        params={"payment_id": payment.id, "status_id": 1},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "pending")


def test_return_unexpected_error_redirects_pending(client, db_session, payment, fake_gateway):
    fake_gateway.query_error = AttributeError("'str' object has no attribute 'get'")
    response = client.get(
        "/api/v1/payments/return",
        params={"payment_id": payment.id},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == _confirmation(payment, "pending")

    db_session.refresh(payment)
    assert payment.status == models.PaymentStatus.processing
    assert payment.booking.status == models.BookingStatus.pending


def test_return_without_payment_goes_home(client):
    response = client.get("/api/v1/payments/return", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "http://testserver/"

    response = client.get("/api/v1/payments/return", params={"payment_id": 999}, follow_redirects=False)
    assert response.headers["location"] == "http://testserver/"


def test_create_payment_endpoint(client, make_slot, booking_payload, fake_gateway):
    slot = make_slot(capacity=10)
    booking_id = client.post("/api/v1/bookings", json=booking_payload(slot)).json()["booking_id"]

    response = client.post(
        "/api/v1/payments/create", json={"booking_id": booking_id, "payment_channel": "FPX"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["checkout_url"].startswith("https://pay.example.test/checkout/NTT-")
    assert fake_gateway.intents[0]["return_url"] == (
        f"http://testserver/api/v1/payments/return?payment_id={body['payment_id']}"
    )

    response = client.post(
        "/api/v1/payments/create", json={"booking_id": booking_id, "payment_channel": "PAYPAL"}
    )
    assert response.status_code == 400


def test_callback_endpoint(client, payment):
    response = client.post(
        "/api/v1/payments/callback",
        data={"order_number": payment.booking.ref_code, "status": "3", "checksum": "valid"},
    )
    assert response.status_code == 200
    assert response.json()["payment"] == "success"

    response = client.post(
        "/api/v1/payments/callback",
        data={"order_number": payment.booking.ref_code, "status": "3", "checksum": "bad"},
    )
    assert response.status_code == 400


def test_cron_auto_cancel(client, db_session, make_slot, booking_payload, monkeypatch):
    monkeypatch.setattr(get_settings(), "cron_secret", "s3cret")
    slot = make_slot(capacity=10)
    booking_service.create_booking(
        db_session,
        booking_payload(slot, pax=3),
        now=datetime.now(timezone.utc) - timedelta(hours=1),
    )

    assert client.get("/api/v1/cron/auto-cancel").status_code == 401
    assert client.get("/api/v1/cron/auto-cancel", headers={"x-api-key": "wrong"}).status_code == 401

    response = client.post("/api/v1/cron/auto-cancel", headers={"Authorization": "Bearer s3cret"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["cancelled_count"] == 1
    assert "duration_ms" in body and "timestamp" in body

    response = client.get("/api/v1/cron/auto-cancel", headers={"x-api-key": "s3cret"})
    assert response.json()["cancelled_count"] == 0


def test_staff_slot_management(client, as_owner, business):
    response = client.post(
        "/api/v1/availability",
        json={
            "business_id": business.id,
            "date": "2026-06-01",
            "start_time": "09:00:00",
            "end_time": "11:00:00",
            "capacity": 8,
        },
    )
    assert response.status_code == 201
    slot_id = response.json()["id"]

    response = client.post(
        "/api/v1/availability/recurring",
        json={
            "business_id": business.id,
            "pattern_type": "weekly",
            "days_of_week": [1],
            "start_date": "2026-06-01",
            "end_date": "2026-06-15",
            "start_time": "09:00:00",
            "end_time": "11:00:00",
            "capacity": 8,
        },
    )
    assert response.status_code == 201
    assert response.json()["count"] == 2

    listed = client.get(
        "/api/v1/availability", params={"business_id": business.id, "year": 2026, "month": 6}
    ).json()
    assert len(listed) == 3

    response = client.post(
        "/api/v1/availability/block", json={"business_id": business.id, "date": "2026-06-01"}
    )
    assert response.status_code == 200
    assert response.json()[0]["is_blocked"] is True

    assert client.patch(f"/api/v1/availability/{slot_id}", json={"capacity": 4}).json()["capacity"] == 4
    assert client.delete(f"/api/v1/availability/{slot_id}").status_code == 204
    assert client.delete(f"/api/v1/availability/{slot_id}").status_code == 404


def test_login_and_me(client, db_session):
    db_session.add(
        models.StaffUser(
            login="captain",
            password_hash=security.get_password_hash("boat-pass"),
            role=models.StaffRole.staff,
        )
    )
    db_session.commit()

    response = client.post("/api/v1/auth/login", data={"username": "captain", "password": "wrong"})
    assert response.status_code == 400

    response = client.post("/api/v1/auth/login", data={"username": "captain", "password": "boat-pass"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["login"] == "captain"
    assert me.json()["role"] == "staff"
