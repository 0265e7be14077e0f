"""
coachconnect/urls.py
─────────────────────────────────────────────────────────────────────
مسیرهای بازگشت از درگاه پرداخت
"""
from django.urls import path

from .views.gateway_views import PaymentCallbackView, RefundCallbackView

app_name = "payments"

urlpatterns = [
    path("callback/",        PaymentCallbackView.as_view(), name="callback"),
    path("refund-callback/", RefundCallbackView.as_view(),  name="refund-callback"),
]
