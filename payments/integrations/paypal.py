import base64
import json
import logging

import requests
from django.conf import settings
from requests import RequestException

from storefront.errors import GatewayError

from ..currency import convert_for_gateway
from ..gateway_data import PAYPAL
from .base import CaptureResult, GatewayClient, RemoteOrder, now_iso

logger = logging.getLogger(__name__)

# Order states that will never turn into a capture
FINAL_FAILED_STATUSES = ("VOIDED",)


def _json(resp) -> dict:
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text[:800]}


def _hint(status_code: int) -> str:
    if status_code == 401:
        return "Check PAYPAL_CLIENT_ID/PAYPAL_CLIENT_SECRET and PAYPAL_ENV."
    if status_code == 400:
        return "Bad request: amount/currency/return_url."
    if status_code == 404:
        return "PayPal order not found."
    if status_code >= 500:
        return f"PayPal error {status_code}."
    return f"HTTP {status_code}"


def _first_capture(data: dict) -> dict:
    for unit in data.get("purchase_units") or []:
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return captures[0]
    return {}


class PayPalClient(GatewayClient):
    provider = PAYPAL

    def __init__(self, client_id=None, client_secret=None, base_url=None, timeout=None, brand_name=None):
        self.client_id = client_id if client_id is not None else settings.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.PAYPAL_CLIENT_SECRET
        self.base_url = (base_url or settings.PAYPAL_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.brand_name = brand_name or settings.STORE_BRAND_NAME

    def _fail(self, action: str, resp) -> GatewayError:
        data = _json(resp)
        detail = data.get("name") or data.get("error") or ""
        debug_id = data.get("debug_id", "")
        logger.error("PayPal %s failed: status=%s name=%s debug_id=%s", action, resp.status_code, detail, debug_id)
        return GatewayError(
            f"PayPal {action} failed: {_hint(resp.status_code)}",
            provider=self.provider,
            provider_status=resp.status_code,
        )

    def _transport_error(self, action: str, exc: Exception) -> GatewayError:
        logger.error("PayPal %s request failed: %s", action, exc.__class__.__name__)
        return GatewayError(f"PayPal request failed: {exc.__class__.__name__}", provider=self.provider)

    def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise GatewayError("PayPal credentials not configured", provider=self.provider)
        raw = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        headers = {
            "Authorization": f"Basic {base64.b64encode(raw).decode('utf-8')}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        try:
            resp = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                headers=headers,
                data="grant_type=client_credentials",
                timeout=self.timeout,
            )
        except RequestException as e:
            raise self._transport_error("token", e)
        if resp.status_code != 200:
            raise self._fail("token", resp)
        token = _json(resp).get("access_token")
        if not token:
            raise GatewayError("PayPal token response missing access_token", provider=self.provider,
                               provider_status=resp.status_code)
        return token

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._access_token()}", "Content-Type": "application/json"}

    def create_remote_order(self, order, base_url):
        amount = convert_for_gateway(order.total, order.currency, supported=settings.PAYPAL_SUPPORTED_CURRENCIES)
        if amount.converted:
            logger.info(
                "PayPal order for %s converted %s %s -> %s %s at %s",
                order.order_number, amount.source_amount, amount.source_currency,
                amount.formatted(), amount.currency, amount.rate,
            )
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": str(order.pk),
                "custom_id": str(order.pk),
                "description": f"Order {order.order_number}",
                "amount": {"currency_code": amount.currency, "value": amount.formatted()},
            }],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "NO_PREFERENCE",
                "user_action": "PAY_NOW",
                "return_url": f"{base_url}/payments/paypal/capture?orderId={order.pk}",
                "cancel_url": f"{base_url}/order/{order.pk}/payment?paypal=cancelled",
            },
        }
        headers = self._headers()
        try:
            resp = requests.post(
                f"{self.base_url}/v2/checkout/orders", headers=headers, json=payload, timeout=self.timeout
            )
        except RequestException as e:
            raise self._transport_error("create order", e)
        if resp.status_code not in (200, 201):
            raise self._fail("create order", resp)

        data = _json(resp)
        approval_url = next(
            (link.get("href") for link in data.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not data.get("id") or not approval_url:
            logger.error("PayPal create order returned no approval link: %s", json.dumps(data)[:800])
            raise GatewayError("PayPal did not return an approval URL", provider=self.provider,
                               provider_status=resp.status_code)

        return RemoteOrder(
            external_id=data["id"],
            redirect_url=approval_url,
            data={
                "paypal_order_id": data["id"],
                "status": data.get("status"),
                "charged_currency": amount.currency,
                "charged_amount": amount.formatted(),
                "exchange_rate": str(amount.rate) if amount.converted else None,
                "created_at": now_iso(),
            },
        )

    def _result(self, data: dict, fallback_status="") -> CaptureResult:
        status = str(data.get("status") or fallback_status)
        capture = _first_capture(data)
        completed = status == "COMPLETED" and capture.get("status", "COMPLETED") == "COMPLETED"
        fields = {"status": status}
        if capture:
            fields.update(capture_id=capture.get("id"), capture_status=capture.get("status"))
        if completed:
            fields["completed_at"] = now_iso()
        return CaptureResult(
            completed=completed,
            external_capture_id=capture.get("id", "") if capture else "",
            raw_status=status,
            failed=status in FINAL_FAILED_STATUSES or capture.get("status") == "DECLINED",
            error="" if completed else f"PayPal status {status}",
            data=fields,
        )

    def capture(self, external_token, order_id):
        headers = self._headers()
        try:
            resp = requests.post(
                f"{self.base_url}/v2/checkout/orders/{external_token}/capture",
                headers=headers,
                json={},
                timeout=self.timeout,
            )
        except RequestException as e:
            raise self._transport_error("capture", e)

        if resp.status_code == 422:
            data = _json(resp)
            issue = ((data.get("details") or [{}])[0] or {}).get("issue") or data.get("name") or "UNPROCESSABLE"
            if issue == "ORDER_ALREADY_CAPTURED":
                return self.sync(external_token, order_id)
            logger.warning("PayPal capture for order %s declined: %s", order_id, issue)
            return CaptureResult(completed=False, raw_status=issue, failed=True,
                                 error=f"PayPal declined the payment ({issue})", data={"status": issue})
        if resp.status_code not in (200, 201):
            raise self._fail("capture", resp)
        return self._result(_json(resp))

    def sync(self, reference, order_id):
        headers = self._headers()
        try:
            resp = requests.get(f"{self.base_url}/v2/checkout/orders/{reference}", headers=headers, timeout=self.timeout)
        except RequestException as e:
            raise self._transport_error("order status", e)
        if resp.status_code != 200:
            raise self._fail("order status", resp)
        data = _json(resp)
        # Approved by the buyer but never captured (the redirect was lost)
        if data.get("status") == "APPROVED":
            return self.capture(reference, order_id)
        return self._result(data)
