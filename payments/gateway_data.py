"""Typed per-provider payment data stored on ``Order.gateway_data``.

The JSON column holds one variant tagged with ``provider``. Updates go
through :meth:`merged`, which only touches the named fields and rejects
unknown ones, so data written by one step is never dropped by the next.
"""
from dataclasses import asdict, dataclass, fields, replace
from typing import Optional

MANUAL = "BANK_TRANSFER"
STRIPE = "STRIPE"
PAYPAL = "PAYPAL"


@dataclass(frozen=True)
class _GatewayData:
    provider = ""

    def merged(self, **updates):
        return replace(self, **updates)

    def to_json(self) -> dict:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["provider"] = self.provider
        return data

    @classmethod
    def from_json(cls, raw: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (raw or {}).items() if k in names})


@dataclass(frozen=True)
class ManualData(_GatewayData):
    provider = MANUAL
    proof_id: Optional[int] = None
    instructions: Optional[str] = None


@dataclass(frozen=True)
class StripeData(_GatewayData):
    provider = STRIPE
    session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    checkout_url: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    expired_at: Optional[str] = None
    failed_at: Optional[str] = None
    last_error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass(frozen=True)
class PaypalData(_GatewayData):
    provider = PAYPAL
    paypal_order_id: Optional[str] = None
    status: Optional[str] = None
    capture_id: Optional[str] = None
    capture_status: Optional[str] = None
    charged_currency: Optional[str] = None
    charged_amount: Optional[str] = None
    exchange_rate: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


VARIANTS = {cls.provider: cls for cls in (ManualData, StripeData, PaypalData)}


def variant_for(provider: str):
    try:
        return VARIANTS[provider]
    except KeyError:
        raise ValueError(f"Unknown gateway provider: {provider!r}")


def load(provider: str, raw: Optional[dict]):
    """Read the stored variant for ``provider``.

    Data tagged with another provider is stale and ignored.
    """
    cls = variant_for(provider)
    if not raw or raw.get("provider") != provider:
        return cls()
    return cls.from_json(raw)


def merge(provider: str, raw: Optional[dict], **updates) -> dict:
    return load(provider, raw).merged(**updates).to_json()
