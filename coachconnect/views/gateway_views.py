"""
views/gateway_views.py
─────────────────────────────────────────────────────────────────────
بازگشت از درگاه پرداخت
Gateway callbacks. The user lands here after checkout; the refund
endpoint receives asynchronous settlement notices.

Flow:
  1. Zarinpal redirects back → PaymentCallbackView → verify → mark succeeded / failed
  2. Gateway posts refund result → RefundCallbackView → mark_refund_settled
"""

from __future__ import annotations

import json
import logging

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from ..errors import DomainError
from ..models import Payment
from ..services.enrollment_service import EnrollmentService
from ..services.gateway import GatewayError, get_gateway
from ..services.refund_service import RefundService

logger = logging.getLogger(__name__)


class PaymentCallbackView(View):
    """
    GET  /payments/callback/?Authority=...&Status=OK|NOK

    بدون نیاز به لاگین (نشست کاربر ممکن است منقضی شده باشد).
    """

    def get(self, request):
        authority = request.GET.get("Authority", "")
        status    = request.GET.get("Status", "")

        payment = Payment.objects.filter(
            authority=authority, payment_type=Payment.PaymentType.ENROLLMENT,
        ).first() if authority else None
        if payment is None:
            logger.warning("Zarinpal callback: authority not found: %s", authority)
            return JsonResponse({"ok": False, "error": "PAYMENT_NOT_FOUND"}, status=404)

        # ── کاربر پرداخت را لغو کرد ──────────────────────────────
        if status != "OK":
            payment = EnrollmentService.mark_payment_failed(
                payment.pk, raw={"Status": status, "Authority": authority},
            )
            return JsonResponse({"ok": False, "payment": str(payment.pk), "status": payment.status})

        # ── پرداخت قبلاً تعیین تکلیف شده ──────────────────────────
        # checkout باطل‌شده verify نمی‌شود؛ زرین‌پال وجه تأییدنشده را به پرداخت‌کننده برمی‌گرداند.
        if payment.status != Payment.Status.PENDING:
            logger.warning("Zarinpal callback for non-pending payment: payment=%s status=%s",
                           payment.pk, payment.status)
            succeeded = payment.status == Payment.Status.SUCCEEDED
            return JsonResponse({
                "ok":      succeeded,
                "payment": str(payment.pk),
                "status":  payment.status,
                "ref_id":  payment.ref_id,
                "error":   "" if succeeded else "PAYMENT_NOT_PENDING",
            }, status=200 if succeeded else 409)

        # ── تأیید تراکنش ─────────────────────────────────────────
        try:
            result = get_gateway().verify_payment(authority, payment.total_amount)
        except GatewayError as e:
            # وضعیت نامشخص؛ پرداخت در انتظار می‌ماند تا بازگشت بعدی یا بررسی دستی
            logger.error("Zarinpal verify error: payment=%s %s", payment.pk, e)
            return JsonResponse({"ok": False, "error": "GATEWAY_FAILURE"}, status=502)

        if result.ok:
            payment = EnrollmentService.mark_payment_succeeded(payment.pk, ref_id=result.ref_id, raw=result.raw)
            logger.info("Zarinpal payment SUCCESS: payment=%s ref_id=%s", payment.pk, result.ref_id)
        else:
            payment = EnrollmentService.mark_payment_failed(payment.pk, raw=result.raw)

        return JsonResponse({
            "ok":      payment.status == Payment.Status.SUCCEEDED,
            "payment": str(payment.pk),
            "status":  payment.status,
            "ref_id":  payment.ref_id,
        })


@method_decorator(csrf_exempt, name="dispatch")
class RefundCallbackView(View):
    """
    POST /payments/refund-callback/
    body: {"refund_payment_id": "...", "status": "succeeded" | "failed"}
    """

    def post(self, request):
        try:
            body = json.loads(request.body or b"{}")
        except ValueError:
            return JsonResponse({"ok": False, "error": "INVALID_INPUT"}, status=400)

        refund_payment_id = body.get("refund_payment_id")
        if not refund_payment_id or body.get("status") not in ("succeeded", "failed"):
            return JsonResponse({"ok": False, "error": "INVALID_INPUT"}, status=400)

        try:
            payment = RefundService.mark_refund_settled(
                refund_payment_id, succeeded=body["status"] == "succeeded", raw=body,
            )
        except ValidationError:
            return JsonResponse({"ok": False, "error": "INVALID_INPUT"}, status=400)
        except DomainError as e:
            return JsonResponse({"ok": False, "error": e.code.value}, status=404)

        return JsonResponse({"ok": True, "payment": str(payment.pk), "status": payment.status})
