from django.urls import path

from . import views

urlpatterns = [
    path("auth/login", views.login_view, name="login"),
    path("auth/logout", views.logout_view, name="logout"),
    path("setup/status", views.setup_status_view, name="setup_status"),
]
