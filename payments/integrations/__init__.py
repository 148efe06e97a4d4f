from ..gateway_data import MANUAL, PAYPAL, STRIPE
from .base import CaptureResult, GatewayClient, RemoteOrder
from .manual import ManualTransferClient
from .paypal import PayPalClient
from .stripe_checkout import StripeClient

CLIENTS = {
    MANUAL: ManualTransferClient,
    PAYPAL: PayPalClient,
    STRIPE: StripeClient,
}


def get_gateway(method: str) -> GatewayClient:
    try:
        return CLIENTS[method]()
    except KeyError:
        raise ValueError(f"No gateway client for payment method {method!r}")


__all__ = [
    "CaptureResult", "GatewayClient", "RemoteOrder",
    "ManualTransferClient", "PayPalClient", "StripeClient", "get_gateway",
]
