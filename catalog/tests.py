from django.test import TestCase

from storefront.errors import ConflictError
from storefront.tests.factories import make_asset, make_product

from .models import DigitalAsset, Product


class DigitalAssetTests(TestCase):
    def test_published_asset_is_frozen(self):
        asset = make_asset(make_product())
        asset.storage_key = "presets-v2.zip"

        with self.assertRaises(ConflictError):
            asset.save()
        self.assertEqual(DigitalAsset.objects.get(pk=asset.pk).storage_key, "presets.zip")

    def test_draft_asset_can_be_edited(self):
        asset = make_asset(make_product(status=Product.Status.DRAFT))
        asset.storage_key = "presets-v2.zip"
        asset.save()
        self.assertEqual(DigitalAsset.objects.get(pk=asset.pk).storage_key, "presets-v2.zip")

    def test_unchanged_save_is_allowed(self):
        asset = make_asset(make_product())
        asset.save()
