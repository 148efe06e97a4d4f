from django.urls import path

from . import views

urlpatterns = [
    path("downloads/file", views.download_file_view, name="download_file"),
    path("downloads/<int:asset_id>", views.request_download_view, name="download_request"),
]
