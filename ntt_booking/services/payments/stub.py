from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from ...db.models.payment import PaymentChannel, PaymentStatus
from .bayarcash import BayarcashStatus, map_status_code
from .gateway import BasePaymentGateway, GatewayStatus, PaymentIntent


class StubGateway(BasePaymentGateway):
    """Local gateway that sends the customer straight back as paid."""

    name = "stub"

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
        separator = "&" if "?" in return_url else "?"
        return PaymentIntent(
            checkout_url=f"{return_url}{separator}status_id={int(BayarcashStatus.SUCCESSFUL)}",
            intent_id=f"pi_stub{uuid.uuid4().hex[:16]}",
        )

    def query_status(self, intent_id: str) -> GatewayStatus:
        return GatewayStatus(status=PaymentStatus.succeeded, raw_status=int(BayarcashStatus.SUCCESSFUL))

    def verify_callback(self, data: dict[str, Any]) -> bool:
        # Callbacks are never sent for the stub provider
        return True

    def parse_status(self, raw: Any) -> PaymentStatus | None:
        return map_status_code(raw)
