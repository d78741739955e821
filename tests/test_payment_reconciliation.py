from datetime import datetime, timedelta, timezone

import pytest

from ntt_booking.core.errors import (
    GatewayUnavailableError,
    InvalidTransitionError,
    PaymentNotFoundError,
    ValidationError,
)
from ntt_booking.db import models
from ntt_booking.db.models.booking import BookingStatus
from ntt_booking.db.models.payment import PaymentChannel, PaymentStatus
from ntt_booking.services import booking_service, payment_service
from ntt_booking.services.payments.gateway import GatewayStatus

APP_URL = "https://ntt.example.test"


@pytest.fixture()
def pending_booking(db_session, make_slot, booking_payload):
    slot = make_slot(capacity=10)
    return booking_service.create_booking(db_session, booking_payload(slot, pax=2))


@pytest.fixture()
def processing_payment(db_session, pending_booking, fake_gateway):
    return payment_service.create_payment(
        db_session,
        pending_booking.id,
        PaymentChannel.FPX,
        app_url=APP_URL,
        gateway_client=fake_gateway,
    )


def _reload(db_session, payment):
    db_session.expire_all()
    payment = db_session.get(models.Payment, payment.id)
    return payment, payment.booking


def _actions(db_session, action):
    return db_session.query(models.AuditLog).filter_by(action=action).count()


def test_create_payment_opens_checkout(db_session, pending_booking, fake_gateway):
    payment = payment_service.create_payment(
        db_session,
        pending_booking.id,
        PaymentChannel.DUITNOW_QR,
        app_url=APP_URL + "/",
        gateway_client=fake_gateway,
    )

    assert payment.status == PaymentStatus.processing
    assert payment.gateway_session_id == "pi_test123"
    assert payment.checkout_url.endswith(pending_booking.ref_code)
    assert payment.method == "DUITNOW_QR"
    assert payment.amount == pending_booking.total_amount
    intent = fake_gateway.intents[0]
    assert intent["return_url"] == f"{APP_URL}/api/v1/payments/return?payment_id={payment.id}"
    assert intent["order_number"] == pending_booking.ref_code
    assert intent["channel"] == PaymentChannel.DUITNOW_QR


def test_create_payment_reuses_pending_attempt(db_session, pending_booking, fake_gateway):
    existing = models.Payment(
        booking_id=pending_booking.id,
        amount=pending_booking.total_amount,
        status=PaymentStatus.pending,
        gateway=models.PaymentGateway.bayarcash,
    )
    db_session.add(existing)
    db_session.commit()

    payment = payment_service.create_payment(
        db_session, pending_booking.id, PaymentChannel.FPX, app_url=APP_URL, gateway_client=fake_gateway
    )
    assert payment.id == existing.id
    assert db_session.query(models.Payment).count() == 1


def test_gateway_failure_marks_payment_failed(db_session, pending_booking, fake_gateway):
    fake_gateway.create_error = GatewayUnavailableError("Failed to connect to payment gateway")
    with pytest.raises(GatewayUnavailableError):
        payment_service.create_payment(
            db_session, pending_booking.id, PaymentChannel.FPX, app_url=APP_URL, gateway_client=fake_gateway
        )
    db_session.expire_all()
    payment = db_session.query(models.Payment).one()
    assert payment.status == PaymentStatus.failed
    assert booking_service.get_booking(db_session, pending_booking.id).status == BookingStatus.pending


def test_create_payment_requires_pending_booking(db_session, pending_booking, fake_gateway):
    booking_service.confirm_booking(db_session, pending_booking.id, actor="staff@ntt")
    with pytest.raises(InvalidTransitionError):
        payment_service.create_payment(
            db_session, pending_booking.id, PaymentChannel.FPX, app_url=APP_URL, gateway_client=fake_gateway
        )
    assert fake_gateway.intents == []


def test_create_payment_for_expired_booking_cancels_it(db_session, make_slot, booking_payload, fake_gateway):
    slot = make_slot(capacity=10)
    booking = booking_service.create_booking(
        db_session,
        booking_payload(slot, pax=2),
        now=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    with pytest.raises(InvalidTransitionError) as exc:
        payment_service.create_payment(
            db_session, booking.id, PaymentChannel.FPX, app_url=APP_URL, gateway_client=fake_gateway
        )
    assert str(exc.value) == "Booking has expired"
    db_session.expire_all()
    assert booking_service.get_booking(db_session, booking.id).status == BookingStatus.cancelled
    assert db_session.get(models.AvailabilitySlot, slot.id).booked_count == 0


def test_success_code_confirms_booking(db_session, processing_payment, fake_gateway):
    outcome = payment_service.reconcile_return(
        db_session,
        processing_payment.id,
        status_code="3",
        transaction_id="TX-1001",
        gateway_client=fake_gateway,
    )

    assert outcome.result == "success"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.succeeded
    assert payment.gateway_payment_id == "TX-1001"
    assert booking.status == BookingStatus.confirmed
    assert booking.expires_at is None
    assert fake_gateway.queries == []


def test_replayed_success_is_a_no_op(db_session, processing_payment, fake_gateway):
    for _ in range(2):
        outcome = payment_service.reconcile_return(
            db_session, processing_payment.id, status_code=3, gateway_client=fake_gateway
        )
        assert outcome.result == "success"

    payment, booking = _reload(db_session, processing_payment)
    assert booking.status == BookingStatus.confirmed
    assert booking.slot.booked_count == 2
    assert _actions(db_session, "payment_succeeded") == 1
    assert _actions(db_session, "booking_confirmed") == 1


@pytest.mark.parametrize("code", ["2", "4"])
def test_failure_codes_never_confirm(db_session, processing_payment, fake_gateway, code):
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code=code, gateway_client=fake_gateway
    )
    assert outcome.result == "failed"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.failed
    assert booking.status == BookingStatus.pending

    # a later success for the same attempt does not reopen it
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="3", gateway_client=fake_gateway
    )
    assert outcome.result == "failed"
    payment, booking = _reload(db_session, processing_payment)
    assert booking.status == BookingStatus.pending


def test_ambiguous_code_falls_back_to_gateway_query(db_session, processing_payment, fake_gateway):
    fake_gateway.query_result = GatewayStatus(
        status=PaymentStatus.succeeded,
        raw_status=3,
        transaction_id="TX-2002",
        exchange_ref_number="EX-9",
    )
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="1", gateway_client=fake_gateway
    )
    assert outcome.result == "success"
    assert fake_gateway.queries == ["pi_test123"]
    payment, booking = _reload(db_session, processing_payment)
    assert payment.gateway_payment_id == "TX-2002"
    assert payment.exchange_ref_number == "EX-9"
    assert booking.status == BookingStatus.confirmed


def test_missing_code_uses_gateway_query(db_session, processing_payment, fake_gateway):
    fake_gateway.query_result = GatewayStatus(status=PaymentStatus.failed, raw_status=2)
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, gateway_client=fake_gateway
    )
    assert outcome.result == "failed"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.failed
    assert booking.status == BookingStatus.pending


def test_gateway_error_leaves_state_unchanged(db_session, processing_payment, fake_gateway):
    fake_gateway.query_error = GatewayUnavailableError("timeout")
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="0", gateway_client=fake_gateway
    )
    assert outcome.result == "pending"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.processing
    assert booking.status == BookingStatus.pending


def test_unresolved_query_reports_pending(db_session, processing_payment, fake_gateway):
    fake_gateway.query_result = GatewayStatus(status=PaymentStatus.processing, raw_status=1)
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="banana", gateway_client=fake_gateway
    )
    assert outcome.result == "pending"
    payment, _ = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.processing


def test_payment_without_intent_is_not_queried(db_session, pending_booking, fake_gateway):
    payment = models.Payment(
        booking_id=pending_booking.id,
        amount=pending_booking.total_amount,
        status=PaymentStatus.pending,
        gateway=models.PaymentGateway.bayarcash,
    )
    db_session.add(payment)
    db_session.commit()
    outcome = payment_service.reconcile_return(db_session, payment.id, gateway_client=fake_gateway)
    assert outcome.result == "pending"
    assert fake_gateway.queries == []


def test_late_success_on_cancelled_booking(db_session, processing_payment, fake_gateway):
    booking_service.cancel_booking(
        db_session, processing_payment.booking_id, actor="system", reason="payment_timeout"
    )
    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="3", gateway_client=fake_gateway
    )
    assert outcome.result == "success"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.succeeded
    assert booking.status == BookingStatus.cancelled
    assert booking.slot.booked_count == 0
    assert _actions(db_session, "payment_after_cancellation") == 1


def test_unknown_payment(db_session, fake_gateway):
    with pytest.raises(PaymentNotFoundError):
        payment_service.reconcile_return(db_session, 404, status_code="3", gateway_client=fake_gateway)


def test_reconcile_locks_booking_before_payment(db_session, processing_payment, fake_gateway, monkeypatch):
    locks = []
    get_booking = booking_service.get_booking
    get_payment = payment_service._get_payment

    def locking_booking(db, booking_id, *, lock=False):
        if lock:
            locks.append("booking")
        return get_booking(db, booking_id, lock=lock)

    def locking_payment(db, payment_id, *, lock=False):
        if lock:
            locks.append("payment")
        return get_payment(db, payment_id, lock=lock)

    monkeypatch.setattr(booking_service, "get_booking", locking_booking)
    monkeypatch.setattr(payment_service, "_get_payment", locking_payment)

    outcome = payment_service.reconcile_return(
        db_session, processing_payment.id, status_code="3", gateway_client=fake_gateway
    )

    assert outcome.result == "success"
    assert locks == ["booking", "payment"]


def test_callback_reconciles_latest_payment(db_session, processing_payment, fake_gateway):
    booking = processing_payment.booking
    outcome = payment_service.handle_callback(
        db_session,
        {
            "order_number": booking.ref_code,
            "status": "3",
            "transaction_id": "TX-3003",
            "payer_bank_name": "Maybank2u",
            "checksum": "valid",
        },
        gateway_client=fake_gateway,
    )
    assert outcome.result == "success"
    payment, booking = _reload(db_session, processing_payment)
    assert payment.payer_bank_code == "Maybank2u"
    assert payment.gateway_payload["transaction_id"] == "TX-3003"
    assert "checksum" not in payment.gateway_payload
    assert booking.status == BookingStatus.confirmed


def test_callback_with_bad_checksum_is_rejected(db_session, processing_payment, fake_gateway):
    with pytest.raises(ValidationError) as exc:
        payment_service.handle_callback(
            db_session,
            {"order_number": processing_payment.booking.ref_code, "status": "3", "checksum": "forged"},
            gateway_client=fake_gateway,
        )
    assert "checksum" in exc.value.errors
    payment, booking = _reload(db_session, processing_payment)
    assert payment.status == PaymentStatus.processing
    assert booking.status == BookingStatus.pending
