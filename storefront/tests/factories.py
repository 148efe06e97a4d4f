import itertools

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile

from catalog.models import DigitalAsset, Product
from orders import services

_seq = itertools.count(1)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def make_user(username=None, staff=False, password="pass1234"):
    username = username or f"user{next(_seq)}"
    return get_user_model().objects.create_user(
        username=username, email=f"{username}@example.com", password=password, is_staff=staff
    )


def make_product(name="Lightroom Presets", price=150000, **extra):
    n = next(_seq)
    extra.setdefault("status", Product.Status.PUBLISHED)
    return Product.objects.create(name=name, slug=f"product-{n}", price=price, **extra)


def make_asset(product, storage_key="presets.zip", filename="presets.zip"):
    return DigitalAsset.objects.create(
        product=product, storage_key=storage_key, filename=filename, mime_type="application/zip"
    )


def make_order(user, products=None, method="BANK_TRANSFER", quantity=1):
    products = products or [make_product()]
    return services.create_order(user=user, items=[(p.pk, quantity) for p in products], payment_method=method)


def proof_image(name="proof.png", content_type="image/png", data=PNG_BYTES):
    return SimpleUploadedFile(name, data, content_type=content_type)


def paid_order(user, product, reviewer=None):
    """A bank transfer order taken through proof approval."""
    reviewer = reviewer or make_user(staff=True)
    order = make_order(user, [product])
    proof = services.submit_payment_proof(order.pk, user=user, evidence=proof_image())
    services.approve_payment_proof(proof.pk, reviewer=reviewer)
    order.refresh_from_db()
    return order
