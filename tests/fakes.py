"""
tests/fakes.py
─────────────────────────────────────────────────────────────────────
درگاه پرداخت جعلی برای تست‌ها (PAYMENT_GATEWAY_CLASS در settings.test)
State is class-level because ``get_gateway()`` builds a fresh instance per call.
"""
from __future__ import annotations

import itertools

from coachconnect.services.gateway import (
    GatewayError,
    PaymentGateway,
    PaymentHandle,
    RefundResult,
    VerifyResult,
)


class FakeGateway(PaymentGateway):
    initiate_calls: list = []
    verify_calls: list = []
    refund_calls: list = []

    fail_initiate = False
    fail_refund = False
    verify_ok = True

    _seq = itertools.count(1)

    @classmethod
    def reset(cls):
        cls.initiate_calls = []
        cls.verify_calls = []
        cls.refund_calls = []
        cls.fail_initiate = False
        cls.fail_refund = False
        cls.verify_ok = True

    def initiate_payment(self, amount, description, metadata):
        cls = type(self)
        cls.initiate_calls.append({"amount": amount, "description": description, "metadata": metadata})
        if cls.fail_initiate:
            raise GatewayError("درگاه در دسترس نیست", code=-9)
        authority = f"A{next(cls._seq):012d}"
        return PaymentHandle(
            authority=authority,
            redirect_url=f"https://gateway.test/StartPay/{authority}",
            raw={"data": {"code": 100, "authority": authority}},
        )

    def verify_payment(self, authority, amount):
        cls = type(self)
        cls.verify_calls.append({"authority": authority, "amount": amount})
        if not cls.verify_ok:
            return VerifyResult(ok=False, code=-51, raw={"data": {"code": -51}})
        ref_id = f"REF-{authority}"
        return VerifyResult(ok=True, ref_id=ref_id, code=100, raw={"data": {"code": 100, "ref_id": ref_id}})

    def refund(self, amount, payment_id, metadata):
        cls = type(self)
        cls.refund_calls.append({"amount": amount, "payment_id": payment_id, "metadata": metadata})
        if cls.fail_refund:
            raise GatewayError("بازگشت وجه توسط درگاه رد شد", code=-60)
        ref = f"RF{next(cls._seq):010d}"
        return RefundResult(gateway_ref=ref, raw={"data": {"code": 100, "refund_id": ref}})
