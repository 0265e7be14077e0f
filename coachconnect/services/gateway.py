"""
services/gateway.py
─────────────────────────────────────────────────────────────────────
آداپتور درگاه پرداخت
Payment gateway adapter: start a checkout, verify it, refund it.

The engine only talks to ``PaymentGateway``; the concrete class is picked
from ``settings.PAYMENT_GATEWAY_CLASS`` so tests can swap in a fake.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

import requests
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

# ── Zarinpal API endpoints ────────────────────────────────────────
ZP_SANDBOX_BASE    = "https://sandbox.zarinpal.com"
ZP_PRODUCTION_BASE = "https://api.zarinpal.com"
ZP_REQUEST_PATH    = "/pg/v4/payment/request.json"
ZP_VERIFY_PATH     = "/pg/v4/payment/verify.json"
ZP_REFUND_PATH     = "/pg/v4/payment/refund.json"
ZP_SANDBOX_STARTPAY    = "https://sandbox.zarinpal.com/pg/StartPay/{authority}"
ZP_PRODUCTION_STARTPAY = "https://www.zarinpal.com/pg/StartPay/{authority}"
ZP_CURRENCY        = "IRT"   # تومان

ZP_OK_CODES = (100, 101)     # 101 = قبلاً تأیید شده (idempotent)


class GatewayError(Exception):
    """Gateway unreachable, timed out, or answered with a non-success code."""

    def __init__(self, message: str, code: Optional[int] = None, raw: Optional[Dict] = None):
        super().__init__(message)
        self.code = code
        self.raw = raw or {}


# ────────────────────────────────────────────────────────────────────
#  Data Transfer Objects
# ────────────────────────────────────────────────────────────────────

@dataclass
class PaymentHandle:
    """نتیجه شروع پرداخت: شناسه درگاه + آدرس هدایت کاربر."""
    authority: str
    redirect_url: str
    raw: Dict = field(default_factory=dict)


@dataclass
class VerifyResult:
    ok: bool
    ref_id: str = ""
    code: Optional[int] = None
    raw: Dict = field(default_factory=dict)


@dataclass
class RefundResult:
    gateway_ref: str
    raw: Dict = field(default_factory=dict)


# ────────────────────────────────────────────────────────────────────
#  Helper: تبدیل ریال به تومان
# ────────────────────────────────────────────────────────────────────
def rial_to_toman(amount: Decimal) -> int:
    return max(int(amount) // 10, 1000)   # حداقل ۱۰۰۰ تومان


def refund_rial_to_toman(amount: Decimal) -> int:
    """تبدیل دقیق برای بازگشت وجه؛ بدون حداقل، هرگز بیش از مبلغ ریالی."""
    return max(int(amount) // 10, 0)


# ────────────────────────────────────────────────────────────────────
#  Gateway interface
# ────────────────────────────────────────────────────────────────────
class PaymentGateway(ABC):
    """Abstract payment gateway. Implementations raise GatewayError on failure."""

    @abstractmethod
    def initiate_payment(self, amount: Decimal, description: str, metadata: Dict) -> PaymentHandle:
        """Start a checkout for ``amount`` rials and return the redirect handle."""

    @abstractmethod
    def verify_payment(self, authority: str, amount: Decimal) -> VerifyResult:
        """Confirm a checkout the user came back from."""

    @abstractmethod
    def refund(self, amount: Decimal, payment_id: str, metadata: Dict) -> RefundResult:
        """
        Reverse ``amount`` rials of a settled payment.
        ``metadata["idempotency_key"]`` is stable across retries of one refund.
        """


# ────────────────────────────────────────────────────────────────────
#  Zarinpal
# ────────────────────────────────────────────────────────────────────
class ZarinpalGateway(PaymentGateway):

    def __init__(self, merchant_id: Optional[str] = None, sandbox: Optional[bool] = None,
                 callback_url: Optional[str] = None, timeout: Optional[int] = None):
        self.merchant_id  = merchant_id or settings.ZARINPAL_MERCHANT_ID
        self.sandbox      = settings.ZARINPAL_SANDBOX if sandbox is None else sandbox
        self.callback_url = callback_url or settings.PAYMENT_CALLBACK_URL
        self.timeout      = timeout or getattr(settings, "ZARINPAL_TIMEOUT", 15)
        self.base_url     = ZP_SANDBOX_BASE if self.sandbox else ZP_PRODUCTION_BASE
        self.startpay_url = ZP_SANDBOX_STARTPAY if self.sandbox else ZP_PRODUCTION_STARTPAY

    # ── 1. شروع پرداخت ───────────────────────────────────────────────
    def initiate_payment(self, amount, description, metadata):
        payload = {
            "merchant_id":  self.merchant_id,
            "amount":       rial_to_toman(amount),
            "currency":     ZP_CURRENCY,
            "callback_url": self.callback_url,
            "description":  description,
            "metadata":     {k: str(v) for k, v in metadata.items()},
        }
        data = self._post(ZP_REQUEST_PATH, payload)
        code      = data.get("data", {}).get("code")
        authority = data.get("data", {}).get("authority", "")

        if code != 100 or not authority:
            error_msg = self._error_message(data, code)
            logger.error("Zarinpal init failed: code=%s  msg=%s", code, error_msg)
            raise GatewayError(error_msg, code=code, raw=data)

        logger.info("Zarinpal payment initiated: authority=%s", authority)
        return PaymentHandle(
            authority=authority,
            redirect_url=self.startpay_url.format(authority=authority),
            raw=data,
        )

    # ── 2. تأیید پرداخت ──────────────────────────────────────────────
    def verify_payment(self, authority, amount):
        payload = {
            "merchant_id": self.merchant_id,
            "amount":      rial_to_toman(amount),
            "authority":   authority,
        }
        data = self._post(ZP_VERIFY_PATH, payload)
        code   = data.get("data", {}).get("code")
        ref_id = str(data.get("data", {}).get("ref_id", ""))

        if code in ZP_OK_CODES:
            return VerifyResult(ok=True, ref_id=ref_id, code=code, raw=data)

        logger.warning("Zarinpal verify failed: code=%s msg=%s", code, self._error_message(data, code))
        return VerifyResult(ok=False, code=code, raw=data)

    # ── 3. بازگشت وجه ────────────────────────────────────────────────
    def refund(self, amount, payment_id, metadata):
        payload = {
            "merchant_id":     self.merchant_id,
            "amount":          refund_rial_to_toman(amount),
            "session_id":      payment_id,
            "method":          "PAYA",
            "reason":          "CUSTOMER_REQUEST",
            "idempotency_key": str(metadata.get("idempotency_key", "")),
            "description":     str(metadata.get("description", "")),
        }
        data = self._post(ZP_REFUND_PATH, payload)
        code = data.get("data", {}).get("code")

        if code not in ZP_OK_CODES:
            error_msg = self._error_message(data, code)
            logger.error("Zarinpal refund failed: payment=%s code=%s msg=%s", payment_id, code, error_msg)
            raise GatewayError(error_msg, code=code, raw=data)

        ref = str(data.get("data", {}).get("refund_id") or data.get("data", {}).get("ref_id", ""))
        logger.info("Zarinpal refund accepted: payment=%s ref=%s", payment_id, ref)
        return RefundResult(gateway_ref=ref, raw=data)

    # ── Helpers ───────────────────────────────────────────────────────
    def _post(self, path: str, payload: Dict) -> Dict:
        try:
            response = requests.post(self.base_url + path, json=payload, timeout=self.timeout)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Zarinpal request timeout/error on %s: %s", path, e)
            raise GatewayError(f"ارتباط با درگاه پرداخت برقرار نشد: {e}") from e

    @staticmethod
    def _error_message(data: Dict, code) -> str:
        errors = data.get("errors") or {}
        if isinstance(errors, dict):
            return errors.get("message", f"کد: {code}")
        return f"کد: {code}"


def get_gateway() -> PaymentGateway:
    """Instantiate the gateway configured in ``PAYMENT_GATEWAY_CLASS``."""
    return import_string(settings.PAYMENT_GATEWAY_CLASS)()
