from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ...config import Settings
from ...db.models.payment import PaymentChannel, PaymentStatus


@dataclass(frozen=True)
class PaymentIntent:
    checkout_url: str
    intent_id: str | None


@dataclass(frozen=True)
class GatewayStatus:
    """Status reported by the gateway; ``status`` is None when ambiguous."""

    status: PaymentStatus | None
    raw_status: Any = None
    transaction_id: str | None = None
    exchange_ref_number: str | None = None
    payer_bank_code: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class BasePaymentGateway(ABC):
    name = "base"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
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
        raise NotImplementedError

    @abstractmethod
    def query_status(self, intent_id: str) -> GatewayStatus:
        raise NotImplementedError

    @abstractmethod
    def verify_callback(self, data: dict[str, Any]) -> bool:
        raise NotImplementedError

    @abstractmethod
    def parse_status(self, raw: Any) -> PaymentStatus | None:
        raise NotImplementedError


def get_gateway(settings: Settings) -> BasePaymentGateway:
    if settings.payment_provider == "stub":
        from .stub import StubGateway

        return StubGateway(settings)
    if settings.payment_provider == "bayarcash":
        from .bayarcash import BayarcashGateway

        return BayarcashGateway(settings)
    raise ValueError(f"Unsupported payment provider {settings.payment_provider}")
