"""Bayarcash (FPX / DuitNow) payment gateway client."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum
from typing import Any, Final, Mapping

import httpx

from ...config import Settings
from ...core.errors import GatewayUnavailableError
from ...db.models.payment import PaymentChannel, PaymentStatus
from .gateway import BasePaymentGateway, GatewayStatus, PaymentIntent

logger = logging.getLogger(__name__)

SANDBOX_API_URL: Final[str] = "https://console.bayarcash-sandbox.com/api/v2"
PRODUCTION_API_URL: Final[str] = "https://console.bayar.cash/api/v2"


class BayarcashStatus(IntEnum):
    NEW = 0
    PENDING = 1
    UNSUCCESSFUL = 2
    SUCCESSFUL = 3
    CANCELLED = 4


STATUS_MAP: Final[dict[BayarcashStatus, PaymentStatus]] = {
    BayarcashStatus.NEW: PaymentStatus.pending,
    BayarcashStatus.PENDING: PaymentStatus.processing,
    BayarcashStatus.UNSUCCESSFUL: PaymentStatus.failed,
    BayarcashStatus.SUCCESSFUL: PaymentStatus.succeeded,
    BayarcashStatus.CANCELLED: PaymentStatus.failed,
}

# Textual statuses seen on the payment-intent endpoints
_STATUS_NAMES: Final[dict[str, PaymentStatus]] = {
    **{member.name.lower(): STATUS_MAP[member] for member in BayarcashStatus},
    "completed": PaymentStatus.succeeded,
    "succeeded": PaymentStatus.succeeded,
    "failed": PaymentStatus.failed,
}

CHANNEL_CODES: Final[dict[PaymentChannel, int]] = {
    PaymentChannel.FPX: 1,
    PaymentChannel.FPX_LINE_OF_CREDIT: 4,
    PaymentChannel.DUITNOW_DOBW: 5,
    PaymentChannel.DUITNOW_QR: 6,
}

CALLBACK_CHECKSUM_FIELDS: Final[tuple[str, ...]] = (
    "record_type",
    "transaction_id",
    "exchange_reference_number",
    "exchange_transaction_id",
    "order_number",
    "currency",
    "amount",
    "payer_name",
    "payer_email",
    "payer_bank_name",
    "status",
    "status_description",
    "datetime",
)

_INTENT_ID_RE = re.compile(r"/payment-intent/(pi_[a-zA-Z0-9]+)")


def map_status_code(value: Any) -> PaymentStatus | None:
    """Translate a gateway status code or name; unknown values give None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            value = int(text)
        else:
            return _STATUS_NAMES.get(text.lower())
    if isinstance(value, int):
        try:
            return STATUS_MAP[BayarcashStatus(value)]
        except ValueError:
            return None
    return None


def _sign(secret_key: str, message: str) -> str:
    return hmac.new(secret_key.encode(), message.encode(), hashlib.sha256).hexdigest()


def format_amount(amount: Decimal) -> str:
    # Bayarcash reads the value in ringgit, not sen
    quantized = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if quantized == quantized.to_integral_value():
        return str(int(quantized))
    return format(quantized, "f")


def payment_intent_checksum(secret_key: str, data: Mapping[str, Any]) -> str:
    payload = {
        "payment_channel": str(data["payment_channel"]),
        "order_number": str(data["order_number"]),
        "amount": str(data["amount"]),
        "payer_name": str(data["payer_name"]),
        "payer_email": str(data["payer_email"]),
    }
    return _sign(secret_key, "|".join(payload[key] for key in sorted(payload)))


def callback_checksum(secret_key: str, data: Mapping[str, Any]) -> str:
    message = "|".join(str(data.get(name) or "") for name in CALLBACK_CHECKSUM_FIELDS)
    return _sign(secret_key, message)


class BayarcashGateway(BasePaymentGateway):
    name = "bayarcash"

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        super().__init__(settings)
        self.api_url = SANDBOX_API_URL if settings.bayarcash_sandbox else PRODUCTION_API_URL
        self._client = client

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.settings.gateway_timeout_seconds)
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.settings.bayarcash_api_token}",
        }

    def create_payment_intent(
        self,
        *,
        order_number: str,
        amount: Decimal,
        payer_name: str,
        payer_email: str,
        payer_phone: str,
        channel: PaymentChannel,
        return_url: str,
    ) -> PaymentIntent:
        settings = self.settings
        if not (
            settings.bayarcash_portal_key
            and settings.bayarcash_api_token
            and settings.bayarcash_api_secret_key
        ):
            raise GatewayUnavailableError("Bayarcash credentials not configured")

        data: dict[str, Any] = {
            "portal_key": settings.bayarcash_portal_key,
            "order_number": order_number,
            "amount": format_amount(amount),
            "payer_name": payer_name,
            "payer_email": payer_email,
            "payer_telephone_number": payer_phone,
            "payment_channel": CHANNEL_CODES[channel],
            "return_url": return_url,
        }
        data["checksum"] = payment_intent_checksum(settings.bayarcash_api_secret_key, data)
        logger.info(
            "Creating Bayarcash payment intent",
            extra={"order_number": order_number, "channel": channel.value},
        )
        try:
            response = self._http().post(
                f"{self.api_url}/payment-intents", json=data, headers=self._headers()
            )
            result = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Bayarcash payment intent request failed", extra={"order_number": order_number})
            raise GatewayUnavailableError("Failed to connect to payment gateway") from exc

        if not isinstance(result, Mapping):
            logger.error(
                "Bayarcash returned an unreadable response",
                extra={"order_number": order_number, "status_code": response.status_code},
            )
            raise GatewayUnavailableError("Payment gateway returned an unreadable response")

        if response.is_error:
            message = result.get("message") or result.get("error") or str(result)
            logger.error(
                "Bayarcash rejected payment intent",
                extra={"order_number": order_number, "status_code": response.status_code},
            )
            raise GatewayUnavailableError(f"Payment gateway error: {message}")

        url = result.get("url")
        if not url:
            raise GatewayUnavailableError("Payment gateway returned no checkout URL")
        intent_id = str(result["id"]) if result.get("id") else None
        if intent_id is None:
            match = _INTENT_ID_RE.search(url)
            intent_id = match.group(1) if match else None
        return PaymentIntent(checkout_url=url, intent_id=intent_id)

    def _fetch(self, url: str) -> Any | None:
        try:
            response = self._http().get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewayUnavailableError("Failed to connect to payment gateway") from exc
        if response.is_error:
            logger.info("Bayarcash lookup miss", extra={"url": url, "status_code": response.status_code})
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def _to_status(self, record: Mapping[str, Any]) -> GatewayStatus:
        raw = record.get("status")
        if raw is None:
            raw = record.get("payment_status", record.get("transaction_status"))
        return GatewayStatus(
            status=self.parse_status(raw),
            raw_status=raw,
            transaction_id=_text(record.get("transaction_id", record.get("id"))),
            exchange_ref_number=_text(
                record.get("exchange_reference_number", record.get("reference_number"))
            ),
            payer_bank_code=_text(record.get("payer_bank_name")),
            payload=dict(record),
        )

    def query_status(self, intent_id: str) -> GatewayStatus:
        if not self.settings.bayarcash_api_token:
            raise GatewayUnavailableError("Bayarcash credentials not configured")

        intent = self._fetch(f"{self.api_url}/payment-intent/{intent_id}")
        if isinstance(intent, Mapping) and (
            "status" in intent or "payment_status" in intent
        ):
            return self._to_status(intent)

        transactions = self._fetch(f"{self.api_url}/transactions?payment_intent_id={intent_id}")
        if isinstance(transactions, Mapping):
            transactions = [transactions]
        if isinstance(transactions, list):
            records = [record for record in transactions if isinstance(record, Mapping)]
            if records:
                return self._to_status(records[0])

        transaction = self._fetch(f"{self.api_url}/transactions/{intent_id}")
        if isinstance(transaction, Mapping):
            return self._to_status(transaction)

        raise GatewayUnavailableError("Could not retrieve status from any known endpoint")

    def verify_callback(self, data: dict[str, Any]) -> bool:
        secret = self.settings.bayarcash_api_secret_key
        received = data.get("checksum")
        if not secret or not received:
            return False
        return hmac.compare_digest(callback_checksum(secret, data), str(received))

    def parse_status(self, raw: Any) -> PaymentStatus | None:
        return map_status_code(raw)


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
