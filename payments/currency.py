"""Conversion between ledger amounts and the units payment gateways expect."""
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional

from django.conf import settings

from storefront.errors import ValidationError

# Charged in whole units by card gateways. IDR is deliberately absent: Stripe
# treats it as two-decimal.
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})

STRIPE_MINIMUM_AMOUNTS = {
    "IDR": Decimal("7000"),
    "USD": Decimal("0.50"),
    "EUR": Decimal("0.50"),
}
DEFAULT_STRIPE_MINIMUM = Decimal("0.50")


def decimal_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def _to_decimal(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except ArithmeticError:
        raise ValidationError(f"Invalid amount: {amount}")
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount}")
    return value


def to_gateway_units(amount, currency: str) -> int:
    """Major amount -> integer minor units (IDR 199000 -> 19900000, JPY 1000 -> 1000)."""
    value = _to_decimal(amount) * (10 ** decimal_exponent(currency))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_gateway_units(units: int, currency: str) -> Decimal:
    exponent = decimal_exponent(currency)
    return Decimal(int(units)).scaleb(-exponent)


@dataclass(frozen=True)
class GatewayAmount:
    """What a gateway is actually asked to charge.

    Informational only: the order keeps its own currency and total.
    """
    amount: Decimal
    currency: str
    converted: bool = False
    source_currency: Optional[str] = None
    source_amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None

    @property
    def minor_units(self) -> int:
        return to_gateway_units(self.amount, self.currency)

    def formatted(self) -> str:
        return f"{self.amount:.{decimal_exponent(self.currency)}f}"


def convert_for_gateway(amount, currency: str, supported=None, rates=None) -> GatewayAmount:
    """Express ``amount`` in a currency the gateway accepts.

    ``supported`` is the gateway's currency set (``None`` means any).
    Unsupported currencies use the fixed ``rates`` table
    (``{source: (target, source units per target unit)}``), rounded up to
    the target's minor unit with a minimum charge of 1.
    """
    currency = currency.upper()
    value = _to_decimal(amount)
    if supported is None or currency in {c.upper() for c in supported}:
        return GatewayAmount(amount=value, currency=currency)

    if rates is None:
        rates = getattr(settings, "CURRENCY_CONVERSION_RATES", {})
    if currency not in rates:
        raise ValidationError(f"Currency {currency} is not supported by this payment method")
    target, rate = rates[currency]
    target = target.upper()
    rate = _to_decimal(rate)
    if rate <= 0:
        raise ValidationError(f"Invalid conversion rate for {currency}")

    step = Decimal(1).scaleb(-decimal_exponent(target))
    converted = (value / rate).quantize(step, rounding=ROUND_CEILING)
    converted = max(converted, Decimal(1))
    return GatewayAmount(
        amount=converted,
        currency=target,
        converted=True,
        source_currency=currency,
        source_amount=value,
        rate=rate,
    )


def ensure_stripe_minimum(amount, currency: str) -> None:
    currency = currency.upper()
    minimum = STRIPE_MINIMUM_AMOUNTS.get(currency, DEFAULT_STRIPE_MINIMUM)
    if _to_decimal(amount) < minimum:
        raise ValidationError(
            f"Minimum order amount for card payments is {currency} {minimum}. "
            "Please use bank transfer for smaller amounts."
        )
