import time
from urllib.parse import parse_qs, urlparse

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import FileSystemStorage
from django.test import SimpleTestCase, TestCase

from audit.models import AuditAction, AuditLogEntry
from orders import services
from storefront.errors import INVALID_LINK_MESSAGE, ExpiredLinkError, MalformedLinkError, SignatureError
from storefront.tests.factories import make_asset, make_order, make_product, make_user, paid_order

from .entitlements import check_entitlement
from .signing import DownloadSigner


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class DownloadSignerTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.signer = DownloadSigner("s3cret", default_ttl=60, clock=self.clock)

    def test_round_trip_until_expiry(self):
        link = self.signer.issue(7, 3, 11)
        args = (link.asset_id, link.user_id, link.order_id, link.expires_ms, link.signature)

        self.assertTrue(self.signer.verify(*args))
        self.clock.now += 60
        self.assertTrue(self.signer.verify(*args))
        self.clock.now += 1
        self.assertFalse(self.signer.verify(*args))

    def test_any_signature_change_fails(self):
        link = self.signer.issue(7, 3, 11)
        for i in (0, len(link.signature) // 2, len(link.signature) - 1):
            flipped = "0" if link.signature[i] != "0" else "1"
            forged = link.signature[:i] + flipped + link.signature[i + 1:]
            self.assertFalse(self.signer.verify(7, 3, 11, link.expires_ms, forged))

    def test_fields_are_bound(self):
        link = self.signer.issue(7, 3, 11)
        self.assertFalse(self.signer.verify(8, 3, 11, link.expires_ms, link.signature))
        self.assertFalse(self.signer.verify(7, 4, 11, link.expires_ms, link.signature))
        self.assertFalse(self.signer.verify(7, 3, 12, link.expires_ms, link.signature))
        self.assertFalse(self.signer.verify(7, 3, 11, link.expires_ms + 1, link.signature))

    def test_missing_fields_fail_closed(self):
        link = self.signer.issue(7, 3, 11)
        self.assertFalse(self.signer.verify(7, 3, None, link.expires_ms, link.signature))
        self.assertFalse(self.signer.verify(7, 3, 11, link.expires_ms, ""))

    def test_other_secret_rejected(self):
        link = self.signer.issue(7, 3, 11)
        other = DownloadSigner("different", clock=self.clock)
        self.assertFalse(other.verify(7, 3, 11, link.expires_ms, link.signature))

    def test_check_error_kinds(self):
        link = self.signer.issue(7, 3, 11)
        query = {k: str(v) for k, v in link.query().items()}

        self.assertEqual(self.signer.check(query), link)
        with self.assertRaises(MalformedLinkError):
            self.signer.check({**query, "order": ""})
        with self.assertRaises(MalformedLinkError):
            self.signer.check({**query, "expires": "soon"})
        with self.assertRaises(SignatureError):
            self.signer.check({**query, "sig": "0" * 64})
        self.clock.now += 3600
        with self.assertRaises(ExpiredLinkError) as ctx:
            self.signer.check(query)
        self.assertEqual(ctx.exception.message, INVALID_LINK_MESSAGE)

    def test_tampered_expired_link_reports_signature(self):
        link = self.signer.issue(7, 3, 11)
        self.clock.now += 3600
        with self.assertRaises(SignatureError):
            self.signer.check({**link.query(), "sig": "f" * 64})

    def test_non_ascii_signature_is_a_mismatch(self):
        link = self.signer.issue(7, 3, 11)
        forged = "é" + link.signature[1:]

        self.assertFalse(self.signer.verify(7, 3, 11, link.expires_ms, forged))
        with self.assertRaises(SignatureError):
            self.signer.check({**link.query(), "sig": forged})


class EntitlementTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.product = make_product()
        self.asset = make_asset(self.product)

    def test_unpaid_order_grants_nothing(self):
        make_order(self.user, [self.product])
        self.assertIsNone(check_entitlement(self.user.pk, self.asset.pk))

    def test_paid_order_grants_access(self):
        order = paid_order(self.user, self.product)
        self.assertEqual(check_entitlement(self.user.pk, self.asset.pk), order)
        self.assertEqual(check_entitlement(self.user.pk, self.asset.pk, order.pk), order)

    def test_other_products_order_does_not_count(self):
        other_order = paid_order(self.user, make_product(name="Other"))
        self.assertIsNone(check_entitlement(self.user.pk, self.asset.pk, other_order.pk))

    def test_refund_revokes_access(self):
        admin = make_user("admin", staff=True)
        order = paid_order(self.user, self.product, reviewer=admin)
        services.refund_order(order.pk, actor=admin)
        self.assertIsNone(check_entitlement(self.user.pk, self.asset.pk))

    def test_unknown_asset(self):
        self.assertIsNone(check_entitlement(self.user.pk, 424242))


class DownloadFlowTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.admin = make_user("admin", staff=True)
        self.product = make_product()
        storage = FileSystemStorage(location=settings.PRIVATE_DOWNLOADS_ROOT)
        key = storage.save("presets.zip", ContentFile(b"PK\x03\x04 presets"))
        self.asset = make_asset(self.product, storage_key=key)

    def _request(self, **params):
        self.client.force_login(self.user)
        return self.client.get(f"/downloads/{self.asset.pk}", params)

    def _fetch(self, url):
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        return self.client.get(parsed.path, query)

    def test_not_purchased(self):
        make_order(self.user, [self.product])
        resp = self._request()
        self.assertEqual(resp.status_code, 404)

    def test_requires_login(self):
        resp = self.client.get(f"/downloads/{self.asset.pk}")
        self.assertEqual(resp.status_code, 401)

    def test_two_step_download(self):
        order = paid_order(self.user, self.product, reviewer=self.admin)

        resp = self._request(orderId=order.pk)
        self.assertEqual(resp.status_code, 200)
        url = resp.json()["downloadUrl"]
        self.assertTrue(url.startswith("https://shop.example.com/downloads/file?"))
        self.assertIn("expiresAt", resp.json())

        resp = self._fetch(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Disposition"], 'attachment; filename="presets.zip"')
        self.assertEqual(b"".join(resp.streaming_content), b"PK\x03\x04 presets")
        resp.close()

        actions = set(AuditLogEntry.objects.filter(entity_type="DigitalAsset").values_list("action", flat=True))
        self.assertEqual(actions, {AuditAction.DOWNLOAD_REQUEST, AuditAction.DOWNLOAD_COMPLETE})

    def test_link_stops_working_after_refund(self):
        order = paid_order(self.user, self.product, reviewer=self.admin)
        url = self._request().json()["downloadUrl"]
        services.refund_order(order.pk, actor=self.admin)

        resp = self._fetch(url)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"code": "not_entitled", "message": INVALID_LINK_MESSAGE})

    def test_link_for_own_unrelated_order(self):
        paid_order(self.user, self.product, reviewer=self.admin)
        other = paid_order(self.user, make_product(name="Other"), reviewer=self.admin)
        url = self._request().json()["downloadUrl"]
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        # Swapping the order id breaks the signature
        resp = self.client.get(parsed.path, {**query, "order": other.pk})
        self.assertEqual(resp.status_code, 403)

        # Even a correctly signed link fails when the order lacks the asset
        signer = DownloadSigner(settings.DOWNLOAD_SIGNING_SECRET)
        forged = signer.issue(self.asset.pk, self.user.pk, other.pk)
        resp = self.client.get(parsed.path, {k: str(v) for k, v in forged.query().items()})
        self.assertEqual(resp.status_code, 404)

        # And step one refuses to issue it
        self.assertEqual(self._request(orderId=other.pk).status_code, 404)

    def test_expired_and_malformed_links(self):
        order = paid_order(self.user, self.product, reviewer=self.admin)
        past = DownloadSigner(settings.DOWNLOAD_SIGNING_SECRET, clock=lambda: time.time() - 3600)
        link = past.issue(self.asset.pk, self.user.pk, order.pk, ttl=60)

        resp = self.client.get("/downloads/file", {k: str(v) for k, v in link.query().items()})
        self.assertEqual(resp.status_code, 410)

        resp = self.client.get("/downloads/file", {"asset": self.asset.pk})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], INVALID_LINK_MESSAGE)

    def test_non_ascii_signature_in_query(self):
        paid_order(self.user, self.product, reviewer=self.admin)
        parsed = urlparse(self._request().json()["downloadUrl"])
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        resp = self.client.get(parsed.path, {**query, "sig": "é" + query["sig"][1:]})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json(), {"code": "invalid_link", "message": INVALID_LINK_MESSAGE})
