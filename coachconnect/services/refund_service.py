"""
services/refund_service.py
─────────────────────────────────────────────────────────────────────
داوری و اجرای بازگشت وجه
Refund resolution: strategy selection by session state, admin
adjudication, and two-phase execution against the payment gateway.

Execution is two-phase:
  1. inside the caller's transaction the request is written with
     ``execution_status=PENDING`` (durable intent, fresh idempotency key)
  2. after commit ``execute_refund`` claims the row, calls the gateway,
     and records SUCCEEDED / FAILED. FAILED rows and rows stuck in
     PENDING / PROCESSING are picked up again by ``retry_stalled_refunds``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from ..errors import ConflictError, ErrorCode, InvalidInputError, NotFoundError
from ..models import (
    CustomUser,
    DuePayout,
    Notification,
    Payment,
    RefundRequest,
    Role,
    Session,
    SessionParticipant,
)
from .access import require_role
from .gateway import GatewayError, RefundResult, get_gateway
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────
#  Strategy selection
# ────────────────────────────────────────────────────────────────────

class RefundStrategy(str, Enum):
    AUTO_ACCEPT    = "auto_accept"
    ADMIN_APPROVAL = "admin_approval"


# جلسه‌ای که هنوز شروع نشده یا لغو شده → بازگشت خودکار
# جلسه‌ای که شروع یا تمام شده → نیازمند داوری مدیر
REFUND_STRATEGY_BY_STATUS = {
    Session.Status.CREATED:   RefundStrategy.AUTO_ACCEPT,
    Session.Status.CANCELLED: RefundStrategy.AUTO_ACCEPT,
    Session.Status.ONGOING:   RefundStrategy.ADMIN_APPROVAL,
    Session.Status.COMPLETED: RefundStrategy.ADMIN_APPROVAL,
}


def select_refund_strategy(session_status: str) -> RefundStrategy:
    return REFUND_STRATEGY_BY_STATUS[Session.Status(session_status)]


@dataclass
class RetryBatch:
    """نتیجه یک دور تلاش مجدد بازگشت وجه‌های معوق."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    request_ids: List[str] = field(default_factory=list)


# ────────────────────────────────────────────────────────────────────
#  Refund Service
# ────────────────────────────────────────────────────────────────────

class RefundService:
    """
    سرویس بازگشت وجه.
    تمام تصمیم‌های مالیِ «چه زمانی پول برگردد» اینجاست.
    """

    # ── 1. Open (inside caller's transaction) ────────────────────────

    @classmethod
    def open_refund_request(
        cls,
        participant: SessionParticipant,
        reason: str = "",
        strategy: Optional[RefundStrategy] = None,
        now: Optional[datetime] = None,
    ) -> RefundRequest:
        """
        ثبت درخواست بازگشت وجه برای یک شرکت‌کننده.
        باید داخل transaction.atomic فراخوانی شود؛ تماس با درگاه اینجا انجام نمی‌شود.
        """
        now = now or timezone.now()
        session = participant.session

        payment = (
            Payment.objects
            .filter(
                participant=participant,
                payment_type=Payment.PaymentType.ENROLLMENT,
                status=Payment.Status.SUCCEEDED,
            )
            .order_by("-created_at")
            .first()
        )
        if payment is None:
            raise NotFoundError(
                ErrorCode.PAYMENT_NOT_FOUND,
                "پرداخت موفقی برای این شرکت‌کننده یافت نشد.",
            )

        duplicate = (
            RefundRequest.objects
            .filter(participant=participant, session=session)
            .exclude(status=RefundRequest.Status.CANCELLED)
            .exists()
        )
        if duplicate:
            raise ConflictError(
                ErrorCode.DUPLICATE_REFUND_REQUEST,
                "برای این ثبت‌نام قبلاً درخواست بازگشت وجه ثبت شده است.",
            )

        strategy = strategy or select_refund_strategy(session.status)

        try:
            with transaction.atomic():
                if strategy == RefundStrategy.AUTO_ACCEPT:
                    request = RefundRequest.objects.create(
                        session=session,
                        participant=participant,
                        payment=payment,
                        refund_payment=cls._create_refund_payment(payment),
                        status=RefundRequest.Status.ACCEPTED,
                        refund_request_type=RefundRequest.RequestType.AUTO_ACCEPTED,
                        refunded_amount=payment.session_fee,
                        reason=reason,
                        resolved_at=now,
                        execution_status=RefundRequest.ExecutionStatus.PENDING,
                    )
                    participant.payment_status = SessionParticipant.PaymentStatus.REFUNDED
                    participant.save(update_fields=["payment_status", "updated_at"])
                else:
                    request = RefundRequest.objects.create(
                        session=session,
                        participant=participant,
                        payment=payment,
                        status=RefundRequest.Status.PENDING,
                        refund_request_type=RefundRequest.RequestType.ADMIN_APPROVAL,
                        refunded_amount=payment.session_fee,
                        reason=reason,
                        execution_status=RefundRequest.ExecutionStatus.NOT_REQUIRED,
                    )
                    # تسویه‌ای که هنوز پرداخت نشده تا تعیین تکلیف معلق می‌ماند
                    DuePayout.objects.filter(
                        session=session, status=DuePayout.Status.PENDING
                    ).update(status=DuePayout.Status.HOLD, updated_at=now)
        except IntegrityError:
            raise ConflictError(
                ErrorCode.DUPLICATE_REFUND_REQUEST,
                "برای این ثبت‌نام قبلاً درخواست بازگشت وجه ثبت شده است.",
            )

        logger.info(
            "درخواست بازگشت وجه %s ثبت شد: جلسه=%s بازیکن=%s نوع=%s مبلغ=%s",
            request.pk, session.pk, participant.player_id,
            request.refund_request_type, request.refunded_amount,
        )
        return request

    @staticmethod
    def _create_refund_payment(payment: Payment) -> Payment:
        """پرداخت قرینه از نوع بازگشت؛ کارمزد سامانه بازگردانده نمی‌شود."""
        return Payment.objects.create(
            payment_type=Payment.PaymentType.REFUND,
            session_id=payment.session_id,
            participant_id=payment.participant_id,
            payer_id=payment.payer_id,
            session_fee=payment.session_fee,
            platform_fee=0,
            status=Payment.Status.PENDING,
            refund_of=payment,
        )

    # ── 2. Open + execute + notify ───────────────────────────────────

    @classmethod
    def resolve_refund_request(
        cls,
        participant: SessionParticipant,
        reason: str = "",
        strategy: Optional[RefundStrategy] = None,
    ) -> RefundRequest:
        with transaction.atomic():
            participant = SessionParticipant.objects.select_for_update(of=("self",)).select_related(
                "session", "player"
            ).get(pk=participant.pk)
            request = cls.open_refund_request(participant, reason=reason, strategy=strategy)
        return cls.dispatch_refund(request)

    @classmethod
    def dispatch_refund(cls, request: RefundRequest) -> RefundRequest:
        """
        مرحله دوم پس از commit: اجرای تراکنش (در صورت نیاز) و اعلان‌ها.
        خطای درگاه اینجا به بیرون منتقل نمی‌شود.
        """
        if request.execution_status == RefundRequest.ExecutionStatus.PENDING:
            request = cls.execute_refund(request.pk)

        player = request.participant.player
        session = request.session
        if request.status == RefundRequest.Status.ACCEPTED:
            NotificationService.notify(
                player,
                "درخواست بازگشت وجه پذیرفته شد",
                f"مبلغ {request.refunded_amount:,.0f} ریال بابت جلسه «{session.title}» بازگردانده می‌شود.",
                type=Notification.NotificationType.REFUND_ACCEPTED,
                session=session,
            )
        elif request.status == RefundRequest.Status.PENDING:
            NotificationService.notify(
                player,
                "درخواست بازگشت وجه ثبت شد",
                f"درخواست شما برای جلسه «{session.title}» در انتظار بررسی مدیر است.",
                type=Notification.NotificationType.REFUND_PENDING,
                session=session,
            )
            NotificationService.notify_admins(
                "درخواست بازگشت وجه جدید",
                f"{player.get_full_name()} برای جلسه «{session.title}» درخواست بازگشت وجه ثبت کرد.",
                type=Notification.NotificationType.REFUND_PENDING,
                level=Notification.Level.WARNING,
                session=session,
            )
        return request

    # ── 3. Execute against the gateway ───────────────────────────────

    @classmethod
    def execute_refund(
        cls,
        refund_request_id,
        now: Optional[datetime] = None,
        reclaim_before: Optional[datetime] = None,
    ) -> RefundRequest:
        """
        Claim the intent, call the gateway, record the outcome.

        Only one caller wins the claim; the others return the row untouched.
        Gateway errors mark the intent FAILED and are not raised.
        """
        now = now or timezone.now()
        claimable = Q(execution_status__in=[
            RefundRequest.ExecutionStatus.PENDING,
            RefundRequest.ExecutionStatus.FAILED,
        ])
        if reclaim_before is not None:
            claimable |= Q(
                execution_status=RefundRequest.ExecutionStatus.PROCESSING,
                last_attempt_at__lt=reclaim_before,
            )

        claimed = RefundRequest.objects.filter(claimable, pk=refund_request_id).update(
            execution_status=RefundRequest.ExecutionStatus.PROCESSING,
            attempts=F("attempts") + 1,
            last_attempt_at=now,
            updated_at=now,
        )
        request = RefundRequest.objects.select_related(
            "payment", "refund_payment", "participant__player", "session"
        ).get(pk=refund_request_id)
        if not claimed:
            logger.debug("بازگشت وجه %s قابل برداشت نیست (%s)", request.pk, request.execution_status)
            return request

        if request.refunded_amount <= 0:
            # مبلغ صفر به درگاه ارسال نمی‌شود
            result = RefundResult(gateway_ref="", raw={})
            logger.info("بازگشت وجه %s با مبلغ صفر بدون تماس با درگاه بسته شد.", request.pk)
        else:
            try:
                result = get_gateway().refund(
                    amount=request.refunded_amount,
                    payment_id=request.payment.authority or str(request.payment_id),
                    metadata={
                        "idempotency_key":   str(request.idempotency_key),
                        "refund_request_id": str(request.pk),
                        "session_id":        str(request.session_id),
                        "description":       f"بازگشت وجه جلسه {request.session.title}",
                    },
                )
            except GatewayError as e:
                request.execution_status = RefundRequest.ExecutionStatus.FAILED
                request.last_error = str(e)
                request.save(update_fields=["execution_status", "last_error", "updated_at"])
                logger.warning("اجرای بازگشت وجه %s ناموفق بود (تلاش %d): %s",
                               request.pk, request.attempts, e)
                if request.attempts >= settings.REFUND_MAX_ATTEMPTS:
                    NotificationService.notify_admins(
                        "بازگشت وجه اجرا نشد",
                        f"بازگشت وجه {request.pk} پس از {request.attempts} تلاش ناموفق ماند: {e}",
                        level=Notification.Level.CRITICAL,
                        session=request.session,
                    )
                return request

        with transaction.atomic():
            request.execution_status = RefundRequest.ExecutionStatus.SUCCEEDED
            request.gateway_ref = result.gateway_ref
            request.last_error = ""
            request.save(update_fields=["execution_status", "gateway_ref", "last_error", "updated_at"])
            if request.refund_payment_id:
                Payment.objects.filter(pk=request.refund_payment_id).update(
                    status=Payment.Status.SUCCEEDED,
                    ref_id=result.gateway_ref,
                    raw_response=result.raw,
                    paid_at=now,
                    updated_at=now,
                )
            Payment.objects.filter(pk=request.payment_id).update(
                status=Payment.Status.REFUNDED, updated_at=now,
            )

        logger.info("بازگشت وجه %s اجرا شد: ref=%s مبلغ=%s",
                    request.pk, result.gateway_ref, request.refunded_amount)
        return request

    @classmethod
    def retry_stalled_refunds(cls, now: Optional[datetime] = None) -> RetryBatch:
        """
        بازگشت وجه‌های ناموفق یا گیرکرده را دوباره اجرا می‌کند.
        هر درخواست کلید یکتایی ثابت دارد؛ تکرار در درگاه دوبار پول برنمی‌گرداند.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(seconds=settings.REFUND_RETRY_AFTER_SECONDS)

        stalled = (
            RefundRequest.objects
            .filter(attempts__lt=settings.REFUND_MAX_ATTEMPTS)
            .filter(
                Q(execution_status__in=[
                    RefundRequest.ExecutionStatus.FAILED,
                    RefundRequest.ExecutionStatus.PROCESSING,
                ], last_attempt_at__lt=cutoff)
                | Q(execution_status=RefundRequest.ExecutionStatus.PENDING, updated_at__lt=cutoff)
            )
            .values_list("pk", flat=True)
        )

        batch = RetryBatch()
        for pk in list(stalled):
            request = cls.execute_refund(pk, now=now, reclaim_before=cutoff)
            batch.attempted += 1
            batch.request_ids.append(str(pk))
            if request.execution_status == RefundRequest.ExecutionStatus.SUCCEEDED:
                batch.succeeded += 1
            else:
                batch.failed += 1

        if batch.attempted:
            logger.info("[تلاش مجدد بازگشت وجه] تلاش:%d موفق:%d ناموفق:%d",
                        batch.attempted, batch.succeeded, batch.failed)
        return batch

    # ── 4. Admin adjudication ────────────────────────────────────────

    @classmethod
    def accept_refund_request(
        cls,
        admin: CustomUser,
        refund_request_id,
        now: Optional[datetime] = None,
    ) -> RefundRequest:
        require_role(admin, Role.ADMIN)
        now = now or timezone.now()

        with transaction.atomic():
            request = cls._lock_request(refund_request_id)
            if (
                request.status != RefundRequest.Status.PENDING
                or request.refund_request_type != RefundRequest.RequestType.ADMIN_APPROVAL
            ):
                raise ConflictError(
                    ErrorCode.INVALID_REFUND_STATUS,
                    "فقط درخواست‌های در انتظار بررسی قابل تأیید هستند.",
                )

            request.refund_payment = cls._create_refund_payment(request.payment)
            request.status = RefundRequest.Status.ACCEPTED
            request.accepted_by = admin
            request.resolved_at = now
            request.execution_status = RefundRequest.ExecutionStatus.PENDING
            request.save(update_fields=[
                "refund_payment", "status", "accepted_by", "resolved_at",
                "execution_status", "updated_at",
            ])

            participant = request.participant
            participant.payment_status = SessionParticipant.PaymentStatus.REFUNDED
            participant.save(update_fields=["payment_status", "updated_at"])

        logger.info("درخواست بازگشت وجه %s توسط %s تأیید شد.", request.pk, admin.pk)
        return cls.dispatch_refund(request)

    @classmethod
    def reject_refund_request(
        cls,
        admin: CustomUser,
        refund_request_id,
        note: str,
        now: Optional[datetime] = None,
    ) -> RefundRequest:
        require_role(admin, Role.ADMIN)
        if not (note or "").strip():
            raise InvalidInputError("دلیل رد درخواست الزامی است.")
        now = now or timezone.now()

        with transaction.atomic():
            request = cls._lock_request(refund_request_id)
            if request.status != RefundRequest.Status.PENDING:
                raise ConflictError(
                    ErrorCode.INVALID_REFUND_STATUS,
                    "فقط درخواست‌های در انتظار بررسی قابل رد هستند.",
                )
            request.status = RefundRequest.Status.CANCELLED
            request.rejection_note = note.strip()
            request.rejected_by = admin
            request.resolved_at = now
            request.save(update_fields=[
                "status", "rejection_note", "rejected_by", "resolved_at", "updated_at",
            ])

        logger.info("درخواست بازگشت وجه %s توسط %s رد شد.", request.pk, admin.pk)
        NotificationService.notify(
            request.participant.player,
            "درخواست بازگشت وجه رد شد",
            f"درخواست شما برای جلسه «{request.session.title}» رد شد. دلیل: {request.rejection_note}",
            type=Notification.NotificationType.REFUND_REJECTED,
            session=request.session,
        )
        return request

    @staticmethod
    def _lock_request(refund_request_id) -> RefundRequest:
        request = (
            RefundRequest.objects
            .select_for_update(of=("self",))
            .select_related("payment", "participant__player", "session")
            .filter(pk=refund_request_id)
            .first()
        )
        if request is None:
            raise NotFoundError(
                ErrorCode.REFUND_REQUEST_NOT_FOUND,
                "درخواست بازگشت وجه یافت نشد.",
            )
        return request

    # ── 5. Gateway settlement callback ───────────────────────────────

    @classmethod
    @transaction.atomic
    def mark_refund_settled(cls, refund_payment_id, succeeded: bool, raw: Optional[dict] = None) -> Payment:
        """
        نتیجه نهایی بازگشت وجه که درگاه به‌صورت غیرهمزمان اعلام می‌کند.
        شکست، درخواست را دوباره در صف تلاش مجدد قرار می‌دهد.
        """
        refund_payment = (
            Payment.objects
            .select_for_update()
            .filter(pk=refund_payment_id, payment_type=Payment.PaymentType.REFUND)
            .first()
        )
        if refund_payment is None:
            raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, "پرداخت بازگشتی یافت نشد.")

        request = RefundRequest.objects.filter(refund_payment=refund_payment).first()
        if succeeded:
            refund_payment.status = Payment.Status.SUCCEEDED
            Payment.objects.filter(pk=refund_payment.refund_of_id).update(status=Payment.Status.REFUNDED)
            if request:
                request.execution_status = RefundRequest.ExecutionStatus.SUCCEEDED
                request.save(update_fields=["execution_status", "updated_at"])
        else:
            refund_payment.status = Payment.Status.FAILED
            if request:
                request.execution_status = RefundRequest.ExecutionStatus.FAILED
                request.last_error = "درگاه بازگشت وجه را رد کرد."
                request.save(update_fields=["execution_status", "last_error", "updated_at"])
        if raw:
            refund_payment.raw_response = raw
        refund_payment.save(update_fields=["status", "raw_response", "updated_at"])

        logger.info("تسویه بازگشت وجه %s: %s", refund_payment.pk, "موفق" if succeeded else "ناموفق")
        return refund_payment
