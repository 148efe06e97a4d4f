from django.conf import settings

from storefront.errors import GatewayError

from ..gateway_data import MANUAL
from .base import GatewayClient, RemoteOrder


class ManualTransferClient(GatewayClient):
    """Bank transfer: nothing to call, payment is confirmed by reviewing a proof."""
    provider = MANUAL

    def __init__(self, instructions=None):
        self.instructions = instructions if instructions is not None else settings.BANK_TRANSFER_INSTRUCTIONS

    def create_remote_order(self, order, base_url):
        return RemoteOrder(
            external_id="",
            redirect_url=f"{base_url}/order/{order.pk}/payment",
            data={"instructions": self.instructions},
        )

    def capture(self, external_token, order_id):
        raise GatewayError("Bank transfers are confirmed by payment review", provider=self.provider)

    def sync(self, reference, order_id):
        raise GatewayError("Bank transfers are confirmed by payment review", provider=self.provider)
