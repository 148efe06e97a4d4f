from django.contrib import admin
from django.urls import include, path

from . import views

handler404 = "storefront.views.error_404_view"
handler500 = "storefront.views.error_500_view"

# App URLconfs carry their full paths (/orders, /payments/..., /admin/...)
urlpatterns = [
    path("django-admin/", admin.site.urls),
    path("health", views.health_view, name="health"),
    path("", include("accounts.urls")),
    path("", include("orders.urls")),
    path("", include("payments.urls")),
    path("", include("audit.urls")),
    path("", include("downloads.urls")),
]
