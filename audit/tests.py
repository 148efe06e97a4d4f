from django.test import RequestFactory, TestCase

from storefront.tests.factories import make_user

from .models import AuditAction, AuditLogEntry
from .recorder import record_event


class RecordEventTests(TestCase):
    def setUp(self):
        self.user = make_user("ops", staff=True)

    def test_fields_from_request(self):
        request = RequestFactory().post("/orders", HTTP_USER_AGENT="curl/8", REMOTE_ADDR="198.51.100.7")
        request.user = self.user

        entry = record_event(
            AuditAction.ORDER_CREATE,
            entity_type="Order",
            entity_id=12,
            description="Order ORD-1 created",
            metadata={"total": 150000},
            request=request,
        )

        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.entity_id, "12")
        self.assertEqual(entry.ip_address, "198.51.100.7")
        self.assertEqual(entry.user_agent, "curl/8")
        self.assertEqual(entry.metadata, {"total": 150000, "description": "Order ORD-1 created"})
        self.assertEqual(entry.description, "Order ORD-1 created")

    def test_unknown_action_is_logged_not_raised(self):
        with self.assertLogs("audit.recorder", level="ERROR"):
            self.assertIsNone(record_event("order.teleport", entity_type="Order"))
        self.assertFalse(AuditLogEntry.objects.exists())

    def test_entries_are_append_only(self):
        entry = record_event(AuditAction.USER_LOGIN, entity_type="User", entity_id=self.user.pk, actor=self.user)
        entry.entity_id = "999"
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()
        self.assertEqual(AuditLogEntry.objects.get().entity_id, str(self.user.pk))


class AuditLogViewTests(TestCase):
    def setUp(self):
        self.admin = make_user("ops", staff=True)
        self.customer = make_user("maya")
        record_event(AuditAction.USER_LOGIN, entity_type="User", entity_id=self.customer.pk, actor=self.customer)
        record_event(AuditAction.ORDER_CREATE, entity_type="Order", entity_id=5, actor=self.customer)
        record_event(AuditAction.ORDER_FULFILL, entity_type="Order", entity_id=5, actor=self.admin)

    def test_filters(self):
        self.client.force_login(self.admin)

        data = self.client.get("/admin/audit-log", {"entityType": "Order", "entityId": "5"}).json()
        self.assertEqual(data["total"], 2)
        self.assertEqual(data["logs"][0]["action"], AuditAction.ORDER_FULFILL)

        data = self.client.get("/admin/audit-log", {"actorId": self.customer.pk}).json()
        self.assertEqual({log["action"] for log in data["logs"]}, {AuditAction.USER_LOGIN, AuditAction.ORDER_CREATE})

        data = self.client.get("/admin/audit-log", {"limit": 1, "offset": 1}).json()
        self.assertEqual((data["total"], len(data["logs"]), data["offset"]), (3, 1, 1))

    def test_customers_cannot_read(self):
        self.client.force_login(self.customer)
        self.assertEqual(self.client.get("/admin/audit-log").status_code, 403)

    def test_anonymous(self):
        self.assertEqual(self.client.get("/admin/audit-log").status_code, 401)
