"""
coachconnect_config/urls.py
─────────────────────────────────────────────────────────────────────
Root URL configuration
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path


def health_check(request):
    """Docker health-check endpoint."""
    return JsonResponse({"status": "ok"})


urlpatterns = [
    # ── Admin ─────────────────────────────────────────────────────────
    path("admin/", admin.site.urls),

    # ── Health Check (برای Docker) ────────────────────────────────────
    path("health/", health_check, name="health"),

    # ── درگاه پرداخت ──────────────────────────────────────────────────
    path("payments/", include("coachconnect.urls", namespace="payments")),
]
