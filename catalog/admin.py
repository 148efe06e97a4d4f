from django.contrib import admin

from .models import DigitalAsset, Product


class DigitalAssetInline(admin.TabularInline):
    model = DigitalAsset
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "price", "status", "is_sold_out", "created_at")
    search_fields = ("name", "slug")
    list_filter = ("status", "is_sold_out")
    prepopulated_fields = {"slug": ("name",)}
    inlines = [DigitalAssetInline]
