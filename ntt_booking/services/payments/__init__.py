from .gateway import BasePaymentGateway, GatewayStatus, PaymentIntent, get_gateway
from .bayarcash import BayarcashGateway, BayarcashStatus, STATUS_MAP, map_status_code
from .stub import StubGateway

__all__ = [
    "BasePaymentGateway",
    "GatewayStatus",
    "PaymentIntent",
    "get_gateway",
    "BayarcashGateway",
    "BayarcashStatus",
    "STATUS_MAP",
    "map_status_code",
    "StubGateway",
]
