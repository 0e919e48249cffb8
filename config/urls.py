# config/urls.py

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from drf_spectacular.views import SpectacularAPIView

admin_url = settings.ADMIN_URL.strip("/") + "/"

urlpatterns = [
    path(admin_url, admin.site.urls),

    # --- APIs ---
    path("api/v1/auth/", include("apps.accounts.urls")),
    path("api/v1/", include("apps.orders.urls")),
    path("api/v1/utils/", include("apps.utils.urls")),

    # --- Schema ---
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
]
