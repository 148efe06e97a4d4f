from decimal import Decimal

from django.test import SimpleTestCase

from storefront.errors import ValidationError

from . import gateway_data
from .currency import (
    convert_for_gateway,
    ensure_stripe_minimum,
    from_gateway_units,
    to_gateway_units,
)

RATES = {"IDR": ("USD", Decimal("15500"))}


class GatewayUnitsTests(SimpleTestCase):
    def test_two_decimal_currencies(self):
        self.assertEqual(to_gateway_units(199000, "IDR"), 19900000)
        self.assertEqual(to_gateway_units("9.68", "usd"), 968)

    def test_zero_decimal_currencies(self):
        self.assertEqual(to_gateway_units(1000, "JPY"), 1000)
        self.assertEqual(from_gateway_units(1000, "JPY"), Decimal("1000"))

    def test_back_to_major_units(self):
        self.assertEqual(from_gateway_units(19900000, "IDR"), Decimal("199000.00"))

    def test_garbage_amount(self):
        with self.assertRaises(ValidationError):
            to_gateway_units("abc", "USD")


class ConvertForGatewayTests(SimpleTestCase):
    def test_supported_currency_passes_through(self):
        amount = convert_for_gateway(150000, "IDR")
        self.assertFalse(amount.converted)
        self.assertEqual(amount.currency, "IDR")
        self.assertEqual(amount.minor_units, 15000000)

    def test_idr_to_usd_rounds_up(self):
        amount = convert_for_gateway(150000, "IDR", supported=["USD", "EUR"], rates=RATES)
        self.assertTrue(amount.converted)
        self.assertEqual(amount.currency, "USD")
        self.assertEqual(amount.amount, Decimal("9.68"))
        self.assertEqual(amount.formatted(), "9.68")
        self.assertEqual(amount.source_currency, "IDR")
        self.assertEqual(amount.source_amount, Decimal("150000"))

    def test_minimum_charge(self):
        amount = convert_for_gateway(1000, "IDR", supported=["USD"], rates=RATES)
        self.assertEqual(amount.amount, Decimal("1"))

    def test_unconvertible_currency(self):
        with self.assertRaises(ValidationError):
            convert_for_gateway(100, "THB", supported=["USD"], rates=RATES)


class StripeMinimumTests(SimpleTestCase):
    def test_idr_minimum(self):
        ensure_stripe_minimum(7000, "IDR")
        with self.assertRaises(ValidationError):
            ensure_stripe_minimum(6999, "IDR")

    def test_default_minimum(self):
        with self.assertRaises(ValidationError):
            ensure_stripe_minimum("0.49", "GBP")


class GatewayDataTests(SimpleTestCase):
    def test_merge_keeps_existing_fields(self):
        raw = gateway_data.merge(gateway_data.PAYPAL, None, paypal_order_id="PP-1", status="CREATED")
        raw = gateway_data.merge(gateway_data.PAYPAL, raw, capture_id="CAP-1", status="COMPLETED")
        self.assertEqual(
            raw, {"provider": "PAYPAL", "paypal_order_id": "PP-1", "capture_id": "CAP-1", "status": "COMPLETED"}
        )

    def test_other_provider_data_is_discarded(self):
        stripe_raw = gateway_data.merge(gateway_data.STRIPE, None, session_id="cs_1")
        loaded = gateway_data.load(gateway_data.PAYPAL, stripe_raw)
        self.assertEqual(loaded, gateway_data.PaypalData())

    def test_unknown_field_rejected(self):
        with self.assertRaises(TypeError):
            gateway_data.merge(gateway_data.MANUAL, None, session_id="cs_1")
