"""
tests/test_gateway_views.py
─────────────────────────────────────────────────────────────────────
Gateway callback endpoints.
"""
from __future__ import annotations

import json

import pytest
from django.urls import reverse

from coachconnect.models import Payment, RefundRequest, SessionParticipant
from coachconnect.services.enrollment_service import EnrollmentService
from coachconnect.services.refund_service import RefundService

pytestmark = pytest.mark.django_db


@pytest.fixture
def checkout(player, make_session):
    return EnrollmentService.enroll(player, make_session().pk)


# ════════════════════════════════════════════════════════════════════
#  Payment callback
# ════════════════════════════════════════════════════════════════════

class TestPaymentCallback:

    def test_ok_verifies_and_confirms(self, client, checkout, fake_gateway):
        response = client.get(reverse("payments:callback"),
                              {"Authority": checkout.payment.authority, "Status": "OK"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["ref_id"] == f"REF-{checkout.payment.authority}"
        assert fake_gateway.verify_calls[0]["amount"] == checkout.payment.total_amount
        participant = SessionParticipant.objects.get(pk=checkout.participant.pk)
        assert participant.player_status == SessionParticipant.PlayerStatus.ATTENDING

    def test_user_cancelled(self, client, checkout, fake_gateway):
        response = client.get(reverse("payments:callback"),
                              {"Authority": checkout.payment.authority, "Status": "NOK"})

        assert response.json()["ok"] is False
        assert fake_gateway.verify_calls == []
        assert Payment.objects.get(pk=checkout.payment.pk).status == Payment.Status.FAILED

    def test_verification_rejected(self, client, checkout, fake_gateway):
        fake_gateway.verify_ok = False
        response = client.get(reverse("payments:callback"),
                              {"Authority": checkout.payment.authority, "Status": "OK"})

        assert response.json()["status"] == Payment.Status.FAILED
        participant = SessionParticipant.objects.get(pk=checkout.participant.pk)
        assert participant.player_status == SessionParticipant.PlayerStatus.CANCELLED

    def test_unknown_authority(self, client):
        response = client.get(reverse("payments:callback"), {"Authority": "missing", "Status": "OK"})
        assert response.status_code == 404

    def test_superseded_checkout_is_not_verified(self, client, player, make_session, fake_gateway):
        session = make_session()
        first = EnrollmentService.enroll(player, session.pk)
        second = EnrollmentService.enroll(player, session.pk)

        response = client.get(reverse("payments:callback"),
                              {"Authority": first.payment.authority, "Status": "OK"})

        assert response.status_code == 409
        assert response.json()["error"] == "PAYMENT_NOT_PENDING"
        # بدون verify، درگاه وجه را برداشت نمی‌کند
        assert fake_gateway.verify_calls == []
        assert Payment.objects.get(pk=first.payment.pk).status == Payment.Status.FAILED
        assert Payment.objects.get(pk=second.payment.pk).status == Payment.Status.PENDING
        participant = SessionParticipant.objects.get(pk=second.participant.pk)
        assert participant.player_status == SessionParticipant.PlayerStatus.PENDING

        # checkout جدید همچنان قابل تأیید است
        response = client.get(reverse("payments:callback"),
                              {"Authority": second.payment.authority, "Status": "OK"})
        assert response.json()["ok"] is True
        assert [c["authority"] for c in fake_gateway.verify_calls] == [second.payment.authority]

    def test_checkout_replaced_by_cash_is_not_verified(self, client, player, make_session, fake_gateway):
        session = make_session()
        online = EnrollmentService.enroll(player, session.pk)
        EnrollmentService.enroll(player, session.pk, payment_method="cash")

        response = client.get(reverse("payments:callback"),
                              {"Authority": online.payment.authority, "Status": "OK"})

        assert response.status_code == 409
        assert fake_gateway.verify_calls == []
        participant = SessionParticipant.objects.get(pk=online.participant.pk)
        assert participant.payment_status == SessionParticipant.PaymentStatus.CASH

    def test_repeated_ok_callback_verifies_once(self, client, checkout, fake_gateway):
        params = {"Authority": checkout.payment.authority, "Status": "OK"}
        client.get(reverse("payments:callback"), params)
        response = client.get(reverse("payments:callback"), params)

        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert len(fake_gateway.verify_calls) == 1


# ════════════════════════════════════════════════════════════════════
#  Refund callback
# ════════════════════════════════════════════════════════════════════

class TestRefundCallback:

    def _post(self, client, payload):
        return client.post(reverse("payments:refund-callback"),
                           data=json.dumps(payload), content_type="application/json")

    def test_settles_refund(self, client, player, make_session, make_participant, fake_gateway):
        fake_gateway.fail_refund = True
        request = RefundService.resolve_refund_request(make_participant(make_session(), player))

        response = self._post(client, {"refund_payment_id": str(request.refund_payment_id), "status": "succeeded"})

        assert response.status_code == 200
        request.refresh_from_db()
        assert request.execution_status == RefundRequest.ExecutionStatus.SUCCEEDED

    @pytest.mark.parametrize("payload", [
        {},
        {"refund_payment_id": "x"},
        {"refund_payment_id": "not-a-uuid", "status": "succeeded"},
    ])
    def test_invalid_payload(self, client, payload):
        assert self._post(client, payload).status_code == 400

    def test_unknown_refund_payment(self, client):
        response = self._post(client, {
            "refund_payment_id": "00000000-0000-0000-0000-000000000000", "status": "failed",
        })
        assert response.status_code == 404
        assert response.json()["error"] == "PAYMENT_NOT_FOUND"
