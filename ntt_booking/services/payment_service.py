import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..core.constants import GATEWAY_ACTOR, PAYMENT_TIMEOUT_REASON, SYSTEM_ACTOR
from ..core.errors import (
    GatewayUnavailableError,
    InvalidTransitionError,
    PaymentNotFoundError,
    ValidationError,
)
from ..db import models
from ..db.models.booking import BookingStatus
from ..db.models.payment import PaymentChannel, PaymentGateway, PaymentStatus
from . import booking_service
from .payments.gateway import BasePaymentGateway, get_gateway

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "success"
RESULT_PENDING = "pending"
RESULT_FAILED = "failed"

_RESULT_BY_STATUS = {
    PaymentStatus.succeeded: RESULT_SUCCESS,
    PaymentStatus.failed: RESULT_FAILED,
    PaymentStatus.refunded: RESULT_FAILED,
}

_RESOLVED = (PaymentStatus.succeeded, PaymentStatus.failed)


@dataclass
class ReconcileOutcome:
    payment: models.Payment
    booking: models.Booking
    result: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _record(
    db: Session,
    payment: models.Payment,
    action: str,
    actor: str,
    actor_type: models.ActorType,
    **payload,
) -> None:
    db.add(
        models.AuditLog(
            actor_type=actor_type,
            actor=actor,
            action=action,
            entity_id=payment.id,
            payload={"booking_id": payment.booking_id, "status": payment.status.value, **payload},
        )
    )


def return_url_for(app_url: str, payment_id: int) -> str:
    return f"{app_url.rstrip('/')}/api/v1/payments/return?payment_id={payment_id}"


def _get_payment(db: Session, payment_id: int, *, lock: bool = False) -> models.Payment:
    stmt = select(models.Payment).where(models.Payment.id == payment_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    payment = db.execute(stmt).scalar_one_or_none()
    if payment is None:
        raise PaymentNotFoundError()
    return payment


def create_payment(
    db: Session,
    booking_id: int,
    channel: PaymentChannel,
    *,
    app_url: str,
    gateway_client: BasePaymentGateway | None = None,
    now: datetime | None = None,
) -> models.Payment:
    """Open (or reuse) a payment attempt and ask the gateway for a checkout URL."""
    settings = get_settings()
    gateway_client = gateway_client or get_gateway(settings)
    now = now or _utc_now()

    booking = booking_service.get_booking(db, booking_id, lock=True)
    if booking.status != BookingStatus.pending:
        db.rollback()
        raise InvalidTransitionError("Booking is not awaiting payment")
    if booking_service.is_expired(booking, now):
        booking_service.apply_cancellation(
            db,
            booking,
            actor=SYSTEM_ACTOR,
            actor_type=models.ActorType.system,
            reason=PAYMENT_TIMEOUT_REASON,
            now=now,
        )
        db.commit()
        raise InvalidTransitionError("Booking has expired")

    payment = db.execute(
        select(models.Payment)
        .where(models.Payment.booking_id == booking.id)
        .where(models.Payment.status == PaymentStatus.pending)
        .order_by(models.Payment.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if payment is None:
        payment = models.Payment(
            booking_id=booking.id,
            amount=booking_service.amount_due(booking),
            currency=(settings.payment_currency or "MYR").upper(),
            status=PaymentStatus.pending,
            gateway=PaymentGateway(gateway_client.name),
        )
        db.add(payment)
    payment.method = channel.value
    db.flush()
    _record(db, payment, "payment_initiated", booking.customer_email, models.ActorType.customer, channel=channel.value)
    db.commit()

    try:
        intent = gateway_client.create_payment_intent(
            order_number=booking.ref_code,
            amount=payment.amount,
            payer_name=booking.customer_name,
            payer_email=booking.customer_email,
            payer_phone=booking.customer_phone,
            channel=channel,
            return_url=return_url_for(app_url, payment.id),
        )
    except GatewayUnavailableError as exc:
        payment.status = PaymentStatus.failed
        payment.updated_at = _utc_now()
        _record(db, payment, "payment_intent_failed", GATEWAY_ACTOR, models.ActorType.gateway, error=exc.message)
        db.commit()
        logger.error(
            "Payment intent creation failed",
            extra={"payment_id": payment.id, "ref_code": booking.ref_code},
        )
        raise

    payment.gateway_session_id = intent.intent_id
    payment.checkout_url = intent.checkout_url
    payment.status = PaymentStatus.processing
    payment.updated_at = _utc_now()
    db.commit()
    db.refresh(payment)
    logger.info(
        "Payment intent created",
        extra={"payment_id": payment.id, "ref_code": booking.ref_code, "intent_id": intent.intent_id},
    )
    return payment


def apply_payment_status(
    db: Session,
    payment: models.Payment,
    booking: models.Booking,
    status: PaymentStatus,
    *,
    transaction_id: str | None = None,
    exchange_ref: str | None = None,
    bank_code: str | None = None,
    payload: dict[str, Any] | None = None,
) -> None:
    """Record a resolved gateway status; only ``succeeded`` confirms the booking."""
    if status not in _RESOLVED:
        raise ValueError(f"Cannot apply unresolved payment status {status}")
    payment.status = status
    payment.updated_at = _utc_now()
    if transaction_id:
        payment.gateway_payment_id = transaction_id
    if exchange_ref:
        payment.exchange_ref_number = exchange_ref
    if bank_code:
        payment.payer_bank_code = bank_code
    if payload:
        payment.gateway_payload = payload
    _record(db, payment, f"payment_{status.value}", GATEWAY_ACTOR, models.ActorType.gateway, transaction_id=transaction_id)

    if status != PaymentStatus.succeeded:
        return
    if booking.status == BookingStatus.pending:
        booking_service.apply_confirmation(
            db, booking, actor=GATEWAY_ACTOR, actor_type=models.ActorType.gateway
        )
    elif booking.status == BookingStatus.cancelled:
        # seats were already released; staff must refund or rebook by hand
        _record(db, payment, "payment_after_cancellation", GATEWAY_ACTOR, models.ActorType.gateway, ref_code=booking.ref_code)
        logger.warning(
            "Payment succeeded for a cancelled booking",
            extra={"payment_id": payment.id, "ref_code": booking.ref_code},
        )


def _query_gateway(
    gateway_client: BasePaymentGateway, payment: models.Payment
):
    if not payment.gateway_session_id:
        logger.warning("Payment has no gateway session to query", extra={"payment_id": payment.id})
        return None
    try:
        return gateway_client.query_status(payment.gateway_session_id)
    except GatewayUnavailableError as exc:
        logger.warning(
            "Gateway status query failed",
            extra={"payment_id": payment.id, "error": exc.message},
        )
        return None


def reconcile_return(
    db: Session,
    payment_id: int,
    *,
    status_code: Any = None,
    transaction_id: str | None = None,
    exchange_ref: str | None = None,
    bank_code: str | None = None,
    payload: dict[str, Any] | None = None,
    gateway_client: BasePaymentGateway | None = None,
) -> ReconcileOutcome:
    """Bring a payment in line with the gateway.

    A definitive status on the event is applied directly; anything else falls
    back to the gateway status API. When neither resolves the payment the
    stored state is left untouched and the outcome is ``pending``.
    """
    gateway_client = gateway_client or get_gateway(get_settings())
    booking_id = db.execute(
        select(models.Payment.booking_id).where(models.Payment.id == payment_id)
    ).scalar_one_or_none()
    if booking_id is None:
        raise PaymentNotFoundError()
    # booking before payment, same order as the expiry sweep
    booking = booking_service.get_booking(db, booking_id, lock=True)
    payment = _get_payment(db, payment_id, lock=True)

    if payment.is_terminal:
        db.commit()
        logger.info(
            "Payment already settled",
            extra={"payment_id": payment.id, "payment_status": payment.status.value},
        )
        return ReconcileOutcome(payment, booking, _RESULT_BY_STATUS[payment.status])

    status = gateway_client.parse_status(status_code) if status_code is not None else None
    if status not in _RESOLVED:
        reported = _query_gateway(gateway_client, payment)
        status = reported.status if reported is not None else None
        if reported is not None:
            transaction_id = transaction_id or reported.transaction_id
            exchange_ref = exchange_ref or reported.exchange_ref_number
            bank_code = bank_code or reported.payer_bank_code
            payload = payload or reported.payload

    if status not in _RESOLVED:
        db.commit()
        logger.info(
            "Payment status unresolved",
            extra={"payment_id": payment.id, "status_code": status_code},
        )
        return ReconcileOutcome(payment, booking, RESULT_PENDING)

    apply_payment_status(
        db,
        payment,
        booking,
        status,
        transaction_id=transaction_id,
        exchange_ref=exchange_ref,
        bank_code=bank_code,
        payload=payload,
    )
    db.commit()
    db.refresh(payment)
    db.refresh(booking)
    logger.info(
        "Payment reconciled",
        extra={
            "payment_id": payment.id,
            "ref_code": booking.ref_code,
            "payment_status": payment.status.value,
            "booking_status": booking.status.value,
        },
    )
    return ReconcileOutcome(payment, booking, _RESULT_BY_STATUS[payment.status])


def handle_callback(
    db: Session,
    data: dict[str, Any],
    *,
    gateway_client: BasePaymentGateway | None = None,
) -> ReconcileOutcome:
    gateway_client = gateway_client or get_gateway(get_settings())
    if not gateway_client.verify_callback(data):
        logger.warning("Rejected gateway callback", extra={"order_number": data.get("order_number")})
        raise ValidationError.for_field("checksum", "Invalid checksum")

    order_number = str(data.get("order_number") or "")
    if not order_number:
        raise ValidationError.for_field("order_number", "Missing order number")
    booking = booking_service.get_booking_by_ref(db, order_number)
    if not booking.payments:
        raise PaymentNotFoundError()
    payment = booking.payments[-1]
    return reconcile_return(
        db,
        payment.id,
        status_code=data.get("status"),
        transaction_id=data.get("transaction_id") or None,
        exchange_ref=data.get("exchange_reference_number") or None,
        bank_code=data.get("payer_bank_name") or None,
        payload={key: value for key, value in data.items() if key != "checksum"},
        gateway_client=gateway_client,
    )


def list_payments(
    db: Session,
    *,
    booking_id: int | None = None,
    status: PaymentStatus | None = None,
) -> list[models.Payment]:
    stmt = select(models.Payment).order_by(models.Payment.id.desc())
    if booking_id is not None:
        stmt = stmt.where(models.Payment.booking_id == booking_id)
    if status is not None:
        stmt = stmt.where(models.Payment.status == status)
    return list(db.execute(stmt).scalars().all())
