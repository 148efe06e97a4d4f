from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class RemoteOrder:
    """A checkout created at the provider; the customer is sent to ``redirect_url``."""
    external_id: str
    redirect_url: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of asking the provider about a checkout.

    ``completed`` means money was captured. ``failed`` means the checkout is
    over without payment (declined, expired, voided). Neither means it is
    still pending at the provider.
    """
    completed: bool
    external_capture_id: str = ""
    raw_status: str = ""
    failed: bool = False
    error: str = ""
    data: dict = field(default_factory=dict)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class GatewayClient:
    provider = ""

    def create_remote_order(self, order, base_url: str) -> RemoteOrder:
        raise NotImplementedError

    def capture(self, external_token: str, order_id) -> CaptureResult:
        raise NotImplementedError

    def sync(self, reference: str, order_id) -> CaptureResult:
        raise NotImplementedError
