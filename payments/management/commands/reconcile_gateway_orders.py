import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from orders import services
from orders.models import Order
from payments.gateway_data import PAYPAL, STRIPE
from payments.integrations import get_gateway
from storefront.errors import ConflictError, GatewayError


class Command(BaseCommand):
    help = "Poll PayPal/Stripe for orders still waiting on a gateway payment and settle them locally"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=1)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            Order.objects.filter(
                status__in=Order.CHECKOUT_STATUSES,
                payment_status=Order.PaymentStatus.PROCESSING,
                payment_method__in=[PAYPAL, STRIPE],
                updated_at__lt=cutoff,
            )
            .exclude(gateway_reference="")
            .order_by("updated_at")[:opts["max"]]
        )
        orders = list(qs)
        if not orders:
            self.stdout.write(self.style.SUCCESS("No pending gateway orders to reconcile."))
            return

        for o in orders:
            provider = o.payment_method
            try:
                result = get_gateway(provider).sync(o.gateway_reference, o.pk)
                if result.completed:
                    _, changed = services.confirm_gateway_capture(
                        o.pk, provider=provider, reference=o.gateway_reference, **result.data
                    )
                    self.stdout.write(self.style.SUCCESS(f"{o.order_number}: paid" + ("" if changed else " (already)")))
                elif result.failed:
                    new_status = Order.PaymentStatus.EXPIRED if "expired" in result.error.lower() else Order.PaymentStatus.FAILED
                    services.record_gateway_failure(
                        o.pk, provider=provider, reference=o.gateway_reference,
                        error=result.error, new_status=new_status, **result.data
                    )
                    self.stdout.write(self.style.WARNING(f"{o.order_number}: {result.raw_status}"))
                else:
                    self.stdout.write(f"{o.order_number}: still {result.raw_status or 'pending'}")
            except (GatewayError, ConflictError) as e:
                self.stdout.write(self.style.WARNING(f"{o.order_number}: {e}"))
            time.sleep(opts["sleep"])
