from django.db import models

from storefront.errors import ConflictError


class Product(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PUBLISHED = "PUBLISHED", "Published"
        ARCHIVED = "ARCHIVED", "Archived"

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    price = models.PositiveBigIntegerField(help_text="Price in the store currency's ledger units")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT, db_index=True)
    is_sold_out = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return self.name

    @property
    def is_published(self) -> bool:
        return self.status == self.Status.PUBLISHED


class DigitalAsset(models.Model):
    """A purchasable file. Shared read-only by every order containing its product."""

    IMMUTABLE_FIELDS = ("product_id", "storage_key", "filename", "mime_type")

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="digital_assets")
    storage_key = models.CharField(max_length=255)
    filename = models.CharField(max_length=255)
    mime_type = models.CharField(max_length=100, blank=True, default="application/octet-stream")
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.filename

    def save(self, *args, **kwargs):
        if self.pk is not None:
            current = DigitalAsset.objects.select_related("product").filter(pk=self.pk).first()
            if current and current.product.is_published:
                changed = [f for f in self.IMMUTABLE_FIELDS if getattr(current, f) != getattr(self, f)]
                if changed:
                    raise ConflictError("Assets of a published product cannot be modified")
        super().save(*args, **kwargs)
