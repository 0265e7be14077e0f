"""
tests/test_refunds.py
─────────────────────────────────────────────────────────────────────
Refund requests: auto vs admin path, adjudication, two-phase execution,
retry of failed / stalled intents and asynchronous settlement.
"""
from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from coachconnect.errors import (
    ConflictError,
    ErrorCode,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from coachconnect.models import (
    Notification,
    Payment,
    RefundRequest,
    Session,
    SessionParticipant,
)
from coachconnect.services.refund_service import RefundService

pytestmark = pytest.mark.django_db

EXEC = RefundRequest.ExecutionStatus


@pytest.fixture
def paid_participant(make_session, make_participant, player):
    def _make(status=Session.Status.CREATED, method=SessionParticipant.PaymentMethod.ONLINE):
        start_in = timedelta(days=1) if status == Session.Status.CREATED else -timedelta(minutes=30)
        session = make_session(status, start_in=start_in)
        return make_participant(session, player, method=method)
    return _make


@pytest.fixture
def pending_request(paid_participant):
    return RefundService.resolve_refund_request(paid_participant(Session.Status.ONGOING), reason="کیفیت پایین")


def _open_intent(participant):
    """Intent committed but never executed (process died after commit)."""
    with transaction.atomic():
        return RefundService.open_refund_request(participant)


# ════════════════════════════════════════════════════════════════════
#  Opening
# ════════════════════════════════════════════════════════════════════

class TestOpenRefund:

    def test_auto_path_executes_immediately(self, paid_participant, fake_gateway):
        participant = paid_participant()
        request = RefundService.resolve_refund_request(participant)

        assert request.status == RefundRequest.Status.ACCEPTED
        assert request.refund_request_type == RefundRequest.RequestType.AUTO_ACCEPTED
        assert request.execution_status == EXEC.SUCCEEDED
        assert request.gateway_ref
        call = fake_gateway.refund_calls[0]
        assert call["amount"] == request.refunded_amount
        assert call["metadata"]["idempotency_key"] == str(request.idempotency_key)

    def test_platform_fee_is_not_refunded(self, paid_participant):
        participant = paid_participant()
        Payment.objects.filter(participant=participant).update(platform_fee=Decimal("5000"), total_amount=Decimal("105000"))

        request = RefundService.resolve_refund_request(participant)

        assert request.refunded_amount == Decimal("100000")
        assert request.refund_payment.total_amount == Decimal("100000")
        assert request.refund_payment.platform_fee == 0

    def test_admin_path_waits(self, pending_request, fake_gateway):
        assert pending_request.status == RefundRequest.Status.PENDING
        assert pending_request.execution_status == EXEC.NOT_REQUIRED
        assert pending_request.refund_payment is None
        assert fake_gateway.refund_calls == []

    def test_duplicate_rejected(self, paid_participant):
        participant = paid_participant(Session.Status.ONGOING)
        RefundService.resolve_refund_request(participant)
        with pytest.raises(ConflictError) as exc:
            RefundService.resolve_refund_request(participant)
        assert exc.value.code is ErrorCode.DUPLICATE_REFUND_REQUEST

    def test_cash_has_no_payment_to_refund(self, paid_participant):
        participant = paid_participant(method=SessionParticipant.PaymentMethod.CASH)
        with pytest.raises(NotFoundError) as exc:
            RefundService.resolve_refund_request(participant)
        assert exc.value.code is ErrorCode.PAYMENT_NOT_FOUND
        assert not RefundRequest.objects.exists()


# ════════════════════════════════════════════════════════════════════
#  Adjudication
# ════════════════════════════════════════════════════════════════════

class TestAdjudication:

    def test_accept(self, platform_admin, player, pending_request):
        request = RefundService.accept_refund_request(platform_admin, pending_request.pk)

        assert request.status == RefundRequest.Status.ACCEPTED
        assert request.accepted_by == platform_admin
        assert request.execution_status == EXEC.SUCCEEDED
        request.refresh_from_db()
        assert request.refund_payment.status == Payment.Status.SUCCEEDED
        assert request.payment.status == Payment.Status.REFUNDED
        assert request.participant.payment_status == SessionParticipant.PaymentStatus.REFUNDED
        assert Notification.objects.filter(
            recipient=player, type=Notification.NotificationType.REFUND_ACCEPTED,
        ).exists()

    def test_accept_twice(self, platform_admin, pending_request):
        RefundService.accept_refund_request(platform_admin, pending_request.pk)
        with pytest.raises(ConflictError) as exc:
            RefundService.accept_refund_request(platform_admin, pending_request.pk)
        assert exc.value.code is ErrorCode.INVALID_REFUND_STATUS

    def test_accept_requires_admin(self, player, pending_request):
        with pytest.raises(UnauthorizedError):
            RefundService.accept_refund_request(player, pending_request.pk)

    def test_accept_unknown_request(self, platform_admin):
        with pytest.raises(NotFoundError) as exc:
            RefundService.accept_refund_request(platform_admin, uuid.uuid4())
        assert exc.value.code is ErrorCode.REFUND_REQUEST_NOT_FOUND

    def test_reject_requires_note(self, platform_admin, pending_request):
        with pytest.raises(InvalidInputError):
            RefundService.reject_refund_request(platform_admin, pending_request.pk, note="  ")
        pending_request.refresh_from_db()
        assert pending_request.status == RefundRequest.Status.PENDING

    def test_reject(self, platform_admin, player, pending_request, fake_gateway):
        request = RefundService.reject_refund_request(platform_admin, pending_request.pk, note="جلسه کامل برگزار شد")

        assert request.status == RefundRequest.Status.CANCELLED
        assert request.rejection_note == "جلسه کامل برگزار شد"
        assert request.rejected_by == platform_admin
        assert request.participant.payment_status == SessionParticipant.PaymentStatus.PAID
        assert fake_gateway.refund_calls == []
        assert Notification.objects.filter(
            recipient=player, type=Notification.NotificationType.REFUND_REJECTED,
        ).exists()

    def test_new_request_after_rejection(self, platform_admin, pending_request):
        RefundService.reject_refund_request(platform_admin, pending_request.pk, note="رد")
        again = RefundService.resolve_refund_request(pending_request.participant)
        assert again.pk != pending_request.pk
        assert again.status == RefundRequest.Status.PENDING

    def test_reject_auto_accepted(self, platform_admin, paid_participant):
        request = RefundService.resolve_refund_request(paid_participant())
        with pytest.raises(ConflictError) as exc:
            RefundService.reject_refund_request(platform_admin, request.pk, note="x")
        assert exc.value.code is ErrorCode.INVALID_REFUND_STATUS


# ════════════════════════════════════════════════════════════════════
#  Execution & retry
# ════════════════════════════════════════════════════════════════════

class TestExecution:

    def test_failed_execution_retried_after_window(self, paid_participant, fake_gateway):
        fake_gateway.fail_refund = True
        request = RefundService.resolve_refund_request(paid_participant())
        assert request.execution_status == EXEC.FAILED
        assert request.last_error

        fake_gateway.fail_refund = False
        now = timezone.now()
        assert RefundService.retry_stalled_refunds(now).attempted == 0

        later = now + timedelta(seconds=settings.REFUND_RETRY_AFTER_SECONDS + 1)
        batch = RefundService.retry_stalled_refunds(later)
        assert batch.attempted == 1
        assert batch.succeeded == 1

        request.refresh_from_db()
        assert request.execution_status == EXEC.SUCCEEDED
        assert request.attempts == 2
        keys = {c["metadata"]["idempotency_key"] for c in fake_gateway.refund_calls}
        assert keys == {str(request.idempotency_key)}

    def test_gives_up_after_max_attempts(self, paid_participant, platform_admin, fake_gateway):
        fake_gateway.fail_refund = True
        request = RefundService.resolve_refund_request(paid_participant())
        RefundRequest.objects.filter(pk=request.pk).update(attempts=settings.REFUND_MAX_ATTEMPTS - 1)

        request = RefundService.execute_refund(request.pk)

        assert request.attempts == settings.REFUND_MAX_ATTEMPTS
        assert Notification.objects.filter(
            recipient=platform_admin, level=Notification.Level.CRITICAL,
        ).exists()
        later = timezone.now() + timedelta(hours=1)
        assert RefundService.retry_stalled_refunds(later).attempted == 0

    def test_succeeded_is_not_executed_again(self, paid_participant, fake_gateway):
        request = RefundService.resolve_refund_request(paid_participant())
        RefundService.execute_refund(request.pk)
        assert len(fake_gateway.refund_calls) == 1

    def test_orphaned_intent_picked_up(self, paid_participant, fake_gateway):
        request = _open_intent(paid_participant())
        assert request.execution_status == EXEC.PENDING
        assert fake_gateway.refund_calls == []

        now = timezone.now()
        RefundRequest.objects.filter(pk=request.pk).update(updated_at=now - timedelta(hours=1))
        assert RefundService.retry_stalled_refunds(now).succeeded == 1
        request.refresh_from_db()
        assert request.execution_status == EXEC.SUCCEEDED

    def test_stuck_processing_reclaimed(self, paid_participant, fake_gateway):
        request = _open_intent(paid_participant())
        now = timezone.now()
        RefundRequest.objects.filter(pk=request.pk).update(
            execution_status=EXEC.PROCESSING, attempts=1, last_attempt_at=now - timedelta(hours=1),
        )

        # بدون reclaim_before، ردیف در حال اجرا برداشته نمی‌شود
        assert RefundService.execute_refund(request.pk).execution_status == EXEC.PROCESSING
        assert RefundService.retry_stalled_refunds(now).succeeded == 1
        assert len(fake_gateway.refund_calls) == 1


# ════════════════════════════════════════════════════════════════════
#  Asynchronous settlement
# ════════════════════════════════════════════════════════════════════

class TestSettlement:

    def test_settled_success(self, paid_participant, fake_gateway):
        fake_gateway.fail_refund = True
        request = RefundService.resolve_refund_request(paid_participant())

        refund_payment = RefundService.mark_refund_settled(request.refund_payment_id, succeeded=True)

        assert refund_payment.status == Payment.Status.SUCCEEDED
        request.refresh_from_db()
        assert request.execution_status == EXEC.SUCCEEDED
        assert request.payment.status == Payment.Status.REFUNDED

    def test_settled_failure_requeues(self, paid_participant):
        request = RefundService.resolve_refund_request(paid_participant())

        refund_payment = RefundService.mark_refund_settled(request.refund_payment_id, succeeded=False, raw={"code": -60})

        assert refund_payment.status == Payment.Status.FAILED
        assert refund_payment.raw_response == {"code": -60}
        request.refresh_from_db()
        assert request.execution_status == EXEC.FAILED

    def test_enrollment_payment_is_not_a_refund(self, paid_participant):
        participant = paid_participant()
        payment = Payment.objects.get(participant=participant)
        with pytest.raises(NotFoundError):
            RefundService.mark_refund_settled(payment.pk, succeeded=True)
