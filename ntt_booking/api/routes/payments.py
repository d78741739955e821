import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from ...api import deps
from ...config import get_settings
from ...core.errors import BookingError, PaymentNotFoundError
from ...db.session import get_db
from ...db import models, schemas
from ...db.models.payment import PaymentStatus
from ...services import payment_service
from ...services.payments.gateway import BasePaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def app_url_from(request: Request) -> str:
    host = request.headers.get("host")
    if not host:
        return get_settings().app_url.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    return f"{proto}://{host}"


async def read_gateway_params(request: Request) -> dict[str, Any]:
    """Merge query string and body; the gateway may send either."""
    params: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return params
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update({key: value for key, value in body.items() if value is not None})
    elif content_type.startswith(_FORM_TYPES):
        form = await request.form()
        params.update({key: value for key, value in form.items() if isinstance(value, str)})
    return params


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@router.get("", response_model=list[schemas.Payment])
def list_payments(
    booking_id: int | None = None,
    payment_status: PaymentStatus | None = None,
    db: Session = Depends(get_db),
    _: models.StaffUser = Depends(deps.require_roles("owner", "admin")),
):
    return payment_service.list_payments(db, booking_id=booking_id, status=payment_status)


@router.post("/create", response_model=schemas.PaymentCheckout)
def create_payment_endpoint(
    payload: schemas.PaymentCreate,
    request: Request,
    db: Session = Depends(get_db),
    gateway_client: BasePaymentGateway = Depends(deps.get_payment_gateway),
):
    payment = payment_service.create_payment(
        db,
        payload.booking_id,
        payload.payment_channel,
        app_url=app_url_from(request),
        gateway_client=gateway_client,
    )
    return schemas.PaymentCheckout(checkout_url=payment.checkout_url, payment_id=payment.id)


def _confirmation_url(app_url: str, booking: models.Booking, result: str) -> str:
    return f"{app_url}/book/{booking.business.slug}/confirmation?ref={booking.ref_code}&payment={result}"


def _pending_url(db: Session, app_url: str, payment_id: int) -> str:
    payment = db.get(models.Payment, payment_id)
    if payment is None or payment.booking is None:
        return f"{app_url}/"
    return _confirmation_url(app_url, payment.booking, payment_service.RESULT_PENDING)


def _resolve_return(
    db: Session,
    gateway_client: BasePaymentGateway,
    app_url: str,
    params: dict[str, Any],
) -> str:
    payment_id = _as_int(params.get("payment_id"))
    if payment_id is None:
        logger.warning("Payment return without payment id")
        return f"{app_url}/"
    status_code = params.get("status_id")
    if status_code is None:
        status_code = params.get("status")
    try:
        outcome = payment_service.reconcile_return(
            db,
            payment_id,
            status_code=status_code,
            transaction_id=params.get("transaction_id") or None,
            exchange_ref=params.get("exchange_reference_number") or None,
            gateway_client=gateway_client,
        )
    except PaymentNotFoundError:
        logger.warning("Payment return for unknown payment", extra={"payment_id": payment_id})
        return f"{app_url}/"
    except BookingError as exc:
        db.rollback()
        logger.warning(
            "Payment return could not be reconciled",
            extra={"payment_id": payment_id, "error": exc.message},
        )
        return _pending_url(db, app_url, payment_id)
    except Exception:
        db.rollback()
        logger.exception("Payment return failed", extra={"payment_id": payment_id})
        return _pending_url(db, app_url, payment_id)
    return _confirmation_url(app_url, outcome.booking, outcome.result)


@router.api_route("/return", methods=["GET", "POST"])
async def payment_return(
    request: Request,
    db: Session = Depends(get_db),
    gateway_client: BasePaymentGateway = Depends(deps.get_payment_gateway),
):
    params = await read_gateway_params(request)
    target = await run_in_threadpool(_resolve_return, db, gateway_client, app_url_from(request), params)
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/callback")
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    gateway_client: BasePaymentGateway = Depends(deps.get_payment_gateway),
):
    params = await read_gateway_params(request)
    outcome = await run_in_threadpool(
        payment_service.handle_callback, db, params, gateway_client=gateway_client
    )
    return {"success": True, "ref_code": outcome.booking.ref_code, "payment": outcome.result}
