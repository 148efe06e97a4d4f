import json

from django.core.cache import cache
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from unittest.mock import patch

from audit.models import AuditAction, AuditLogEntry
from storefront.tests.factories import make_user

from .ratelimit import CacheRateLimiter
from .views import admin_count


class LoginTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = make_user("maya")

    def _login(self, email="maya@example.com", password="pass1234", **extra):
        return self.client.post(
            "/auth/login",
            data=json.dumps({"email": email, "password": password}),
            content_type="application/json",
            **extra,
        )

    def test_login_success(self):
        resp = self._login(email="Maya@Example.com", HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["user"], {
            "id": self.user.pk, "email": "maya@example.com", "username": "maya", "role": "CUSTOMER",
        })
        self.assertEqual(int(self.client.session["_auth_user_id"]), self.user.pk)
        entry = AuditLogEntry.objects.get(action=AuditAction.USER_LOGIN)
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.ip_address, "203.0.113.5")

    def test_wrong_password(self):
        resp = self._login(password="nope")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["code"], "unauthenticated")
        self.assertFalse(AuditLogEntry.objects.exists())

    def test_unknown_email_same_answer(self):
        resp = self._login(email="ghost@example.com")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Invalid email or password")

    def test_inactive_account(self):
        self.user.is_active = False
        self.user.save()
        resp = self._login()
        self.assertEqual(resp.status_code, 403)

    def test_missing_fields(self):
        resp = self._login(email="not-an-email", password="")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(set(resp.json()["fields"]), {"email", "password"})

    def test_rate_limited_after_five_attempts(self):
        for _ in range(5):
            self.assertEqual(self._login(password="nope").status_code, 401)
        resp = self._login()
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["code"], "rate_limited")

        # Other accounts are unaffected
        make_user("ravi")
        self.assertEqual(self._login(email="ravi@example.com").status_code, 200)

    def test_logout(self):
        self.client.force_login(self.user)
        resp = self.client.post("/auth/logout")
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("_auth_user_id", self.client.session)
        self.assertTrue(AuditLogEntry.objects.filter(action=AuditAction.USER_LOGOUT, actor=self.user).exists())


class SetupStatusTests(TestCase):
    def setUp(self):
        admin_count.invalidate()
        self.addCleanup(admin_count.invalidate)

    def test_needs_setup_without_admin(self):
        resp = self.client.get("/setup/status")
        self.assertEqual(resp.json(), {"ok": True, "needsSetup": True, "adminCount": 0, "dbConnected": True})

    def test_count_is_cached(self):
        self.client.get("/setup/status")
        make_user("root", staff=True)
        self.assertTrue(self.client.get("/setup/status").json()["needsSetup"])

        admin_count.invalidate()
        self.assertEqual(self.client.get("/setup/status").json()["adminCount"], 1)

    def test_database_unavailable(self):
        with patch.object(admin_count, "_loader", side_effect=DatabaseError("no such table")):
            with self.assertLogs("accounts.views", level="ERROR"):
                resp = self.client.get("/setup/status")
        self.assertFalse(resp.json()["dbConnected"])
        self.assertTrue(resp.json()["needsSetup"])


class CacheRateLimiterTests(SimpleTestCase):
    def setUp(self):
        self.limiter = CacheRateLimiter()
        self.limiter.cache.clear()

    def test_limit_per_key(self):
        results = [self.limiter.hit("login:a@example.com", 3, 60) for _ in range(4)]
        self.assertEqual(results, [True, True, True, False])
        self.assertTrue(self.limiter.hit("login:b@example.com", 3, 60))

    def test_reset(self):
        for _ in range(3):
            self.limiter.hit("k", 2, 60)
        self.limiter.reset("k")
        self.assertTrue(self.limiter.hit("k", 2, 60))
