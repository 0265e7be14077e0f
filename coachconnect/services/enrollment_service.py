"""
services/enrollment_service.py
─────────────────────────────────────────────────────────────────────
ثبت‌نام بازیکن در جلسه
Enrollment: free, cash and online paths. Every precondition is checked
inside one transaction with the session row locked, so two players racing
for the last seat cannot both be admitted.

Online flow:
  1. enroll()                  → participant PENDING + Payment PENDING → redirect_url
  2. gateway callback OK       → mark_payment_succeeded() → ATTENDING / PAID
     gateway callback NOK      → mark_payment_failed()    → CANCELLED / FAILED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..errors import (
    ConflictError,
    ErrorCode,
    ExternalDependencyError,
    InvalidInputError,
    NotFoundError,
)
from ..models import (
    CustomUser,
    Notification,
    Payment,
    PlatformFee,
    Role,
    Session,
    SessionParticipant,
)
from .access import require_role
from .gateway import GatewayError, get_gateway
from .jalali_utils import jalali_datetime_display
from .lifecycle_service import lock_session
from .notification_service import NotificationService
from .refund_service import RefundService, RefundStrategy

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentResult:
    participant: SessionParticipant
    payment: Optional[Payment] = None
    redirect_url: str = ""

    @property
    def needs_payment(self) -> bool:
        return bool(self.redirect_url)


class EnrollmentService:

    # ── 1. Enroll ────────────────────────────────────────────────────

    @classmethod
    def enroll(
        cls,
        player: CustomUser,
        session_id,
        payment_method: str = SessionParticipant.PaymentMethod.ONLINE,
        now: Optional[datetime] = None,
    ) -> EnrollmentResult:
        require_role(player, Role.PLAYER)
        if payment_method not in SessionParticipant.PaymentMethod.values:
            raise InvalidInputError("روش پرداخت نامعتبر است.")
        now = now or timezone.now()
        platform_fee = PlatformFee.current()

        try:
            with transaction.atomic():
                session = lock_session(session_id)
                cls.validate_enrollment(session, player, now)
                is_free = session.fee <= 0 and platform_fee <= 0

                if is_free:
                    participant = cls._activate_participant(
                        session, player,
                        payment_status=SessionParticipant.PaymentStatus.PAID,
                        payment_method=SessionParticipant.PaymentMethod.ONLINE,
                    )
                    payment = None
                elif payment_method == SessionParticipant.PaymentMethod.CASH:
                    participant = cls._activate_participant(
                        session, player,
                        payment_status=SessionParticipant.PaymentStatus.CASH,
                        payment_method=SessionParticipant.PaymentMethod.CASH,
                    )
                    payment = None
                else:
                    participant = cls._pending_participant(session, player)
                    payment = Payment.objects.create(
                        payment_type=Payment.PaymentType.ENROLLMENT,
                        session=session,
                        participant=participant,
                        payer=player,
                        session_fee=session.fee,
                        platform_fee=platform_fee,
                        status=Payment.Status.PENDING,
                    )
        except IntegrityError:
            # partial unique index: یک ثبت‌نام فعال برای هر بازیکن
            raise ConflictError(ErrorCode.ALREADY_ENROLLED, "شما قبلاً در این جلسه ثبت‌نام کرده‌اید.")

        if payment is None:
            logger.info("بازیکن %s در جلسه %s ثبت‌نام شد (%s).",
                        player.pk, session.pk, participant.payment_status)
            cls._notify_enrolled(session, participant)
            return EnrollmentResult(participant=participant)

        return cls._start_checkout(session, participant, payment)

    @staticmethod
    def validate_enrollment(session: Session, player: CustomUser, now: datetime) -> None:
        """پیش‌شرط‌های ثبت‌نام؛ باید روی ردیف قفل‌شده جلسه اجرا شود."""
        if session.status != Session.Status.CREATED:
            raise ConflictError(ErrorCode.SESSION_NOT_OPEN, "ثبت‌نام در این جلسه امکان‌پذیر نیست.")
        if session.coach_id == player.pk:
            raise ConflictError(ErrorCode.OWN_SESSION, "مربی نمی‌تواند در جلسه خودش ثبت‌نام کند.")
        if session.attending_paid_count() >= session.max_participants:
            raise ConflictError(ErrorCode.SESSION_FULL, "ظرفیت جلسه تکمیل است.")
        if session.participants.filter(
            player=player, player_status=SessionParticipant.PlayerStatus.ATTENDING,
        ).exists():
            raise ConflictError(ErrorCode.ALREADY_ENROLLED, "شما قبلاً در این جلسه ثبت‌نام کرده‌اید.")

        age = player.age_on(timezone.localdate(now))
        if age is None or age < session.participant_min_age:
            raise InvalidInputError(
                f"حداقل سن برای این جلسه {session.participant_min_age} سال است.",
                code=ErrorCode.AGE_REQUIREMENT,
            )

    @staticmethod
    def _activate_participant(session, player, *, payment_status, payment_method) -> SessionParticipant:
        """ردیف در انتظار (در صورت وجود) بازاستفاده می‌شود؛ وگرنه ردیف جدید."""
        participant = session.participants.filter(
            player=player, player_status=SessionParticipant.PlayerStatus.PENDING,
        ).first()
        reused = participant is not None
        if not reused:
            participant = SessionParticipant(session=session, player=player)
        participant.player_status = SessionParticipant.PlayerStatus.ATTENDING
        participant.payment_status = payment_status
        participant.payment_method = payment_method
        participant.save()
        if reused:
            Payment.objects.filter(
                participant=participant, status=Payment.Status.PENDING,
                payment_type=Payment.PaymentType.ENROLLMENT,
            ).update(status=Payment.Status.FAILED)
        return participant

    @staticmethod
    def _pending_participant(session, player) -> SessionParticipant:
        participant = session.participants.filter(
            player=player, player_status=SessionParticipant.PlayerStatus.PENDING,
        ).first()
        if participant is not None:
            # پرداخت نیمه‌کاره قبلی باطل می‌شود؛ checkout تازه ساخته می‌شود
            Payment.objects.filter(
                participant=participant, status=Payment.Status.PENDING,
                payment_type=Payment.PaymentType.ENROLLMENT,
            ).update(status=Payment.Status.FAILED)
            return participant
        return SessionParticipant.objects.create(
            session=session,
            player=player,
            player_status=SessionParticipant.PlayerStatus.PENDING,
            payment_status=SessionParticipant.PaymentStatus.PENDING,
            payment_method=SessionParticipant.PaymentMethod.ONLINE,
        )

    @classmethod
    def _start_checkout(cls, session, participant, payment) -> EnrollmentResult:
        try:
            handle = get_gateway().initiate_payment(
                amount=payment.total_amount,
                description=f"ثبت‌نام در جلسه {session.title} — {participant.player.get_full_name()}",
                metadata={
                    "payment_id": str(payment.pk),
                    "session_id": str(session.pk),
                    "player_id":  str(participant.player_id),
                },
            )
        except GatewayError as e:
            with transaction.atomic():
                payment.status = Payment.Status.FAILED
                payment.raw_response = e.raw or {"error": str(e)}
                payment.save(update_fields=["status", "raw_response", "updated_at"])
                participant.player_status = SessionParticipant.PlayerStatus.CANCELLED
                participant.payment_status = SessionParticipant.PaymentStatus.FAILED
                participant.cancelled_at = timezone.now()
                participant.save(update_fields=["player_status", "payment_status", "cancelled_at", "updated_at"])
            logger.error("شروع پرداخت برای جلسه %s ناموفق بود: %s", session.pk, e)
            raise ExternalDependencyError("ارتباط با درگاه پرداخت برقرار نشد. لطفاً مجدداً تلاش کنید.")

        payment.authority = handle.authority
        payment.raw_response = handle.raw
        payment.save(update_fields=["authority", "raw_response", "updated_at"])
        logger.info("پرداخت %s برای جلسه %s شروع شد: authority=%s", payment.pk, session.pk, handle.authority)
        return EnrollmentResult(participant=participant, payment=payment, redirect_url=handle.redirect_url)

    @staticmethod
    def _notify_enrolled(session: Session, participant: SessionParticipant) -> None:
        player = participant.player
        NotificationService.notify(
            session.coach,
            "ثبت‌نام جدید",
            f"{player.get_full_name()} در جلسه «{session.title}» ثبت‌نام کرد.",
            type=Notification.NotificationType.ENROLLMENT,
            session=session,
        )
        NotificationService.notify(
            player,
            "ثبت‌نام انجام شد",
            f"ثبت‌نام شما در جلسه «{session.title}» ({jalali_datetime_display(session.started_at)}) قطعی شد.",
            type=Notification.NotificationType.ENROLLMENT,
            session=session,
        )

    # ── 2. Gateway callbacks ─────────────────────────────────────────

    @classmethod
    def mark_payment_succeeded(cls, payment_id, ref_id: str = "", raw: Optional[dict] = None) -> Payment:
        """
        پرداخت موفق. Idempotent.
        اگر در این فاصله جلسه پر، شروع یا لغو شده باشد، ثبت‌نام لغو و وجه خودکار بازگردانده می‌شود.
        """
        refund_needed = False
        with transaction.atomic():
            payment = cls._lock_payment(payment_id)
            if payment.status != Payment.Status.PENDING:
                logger.info("پرداخت %s قبلاً پردازش شده است (%s).", payment.pk, payment.status)
                return payment

            session = lock_session(payment.session_id)
            participant = SessionParticipant.objects.select_for_update(of=("self",)).select_related("player").get(
                pk=payment.participant_id
            )

            payment.status = Payment.Status.SUCCEEDED
            payment.ref_id = ref_id
            payment.paid_at = timezone.now()
            if raw:
                payment.raw_response = raw
            payment.save(update_fields=["status", "ref_id", "paid_at", "raw_response", "updated_at"])

            seat_free = session.attending_paid_count() < session.max_participants
            if (
                session.status == Session.Status.CREATED
                and seat_free
                and participant.player_status == SessionParticipant.PlayerStatus.PENDING
            ):
                participant.player_status = SessionParticipant.PlayerStatus.ATTENDING
                participant.payment_status = SessionParticipant.PaymentStatus.PAID
                participant.save(update_fields=["player_status", "payment_status", "updated_at"])
            else:
                participant.player_status = SessionParticipant.PlayerStatus.CANCELLED
                participant.payment_status = SessionParticipant.PaymentStatus.PAID
                participant.cancelled_at = timezone.now()
                participant.save(update_fields=["player_status", "payment_status", "cancelled_at", "updated_at"])
                request = RefundService.open_refund_request(
                    participant,
                    reason="ظرفیت یا وضعیت جلسه در زمان تأیید پرداخت اجازه ثبت‌نام نداد.",
                    strategy=RefundStrategy.AUTO_ACCEPT,
                )
                refund_needed = True

        if refund_needed:
            logger.warning("پرداخت %s پس از تکمیل ظرفیت/شروع جلسه رسید؛ بازگشت خودکار.", payment.pk)
            RefundService.dispatch_refund(request)
        else:
            logger.info("پرداخت %s موفق بود: ref_id=%s", payment.pk, ref_id)
            cls._notify_enrolled(session, participant)
        return payment

    @classmethod
    def mark_payment_failed(cls, payment_id, raw: Optional[dict] = None) -> Payment:
        with transaction.atomic():
            payment = cls._lock_payment(payment_id)
            if payment.status != Payment.Status.PENDING:
                return payment
            payment.status = Payment.Status.FAILED
            if raw:
                payment.raw_response = raw
            payment.save(update_fields=["status", "raw_response", "updated_at"])

            SessionParticipant.objects.filter(
                pk=payment.participant_id,
                player_status=SessionParticipant.PlayerStatus.PENDING,
            ).update(
                player_status=SessionParticipant.PlayerStatus.CANCELLED,
                payment_status=SessionParticipant.PaymentStatus.FAILED,
                cancelled_at=timezone.now(),
                updated_at=timezone.now(),
            )

        logger.info("پرداخت %s ناموفق ثبت شد.", payment.pk)
        NotificationService.notify(
            payment.payer,
            "پرداخت ناموفق",
            "پرداخت شما انجام نشد و ثبت‌نام لغو شد.",
            type=Notification.NotificationType.PAYMENT_FAILED,
            level=Notification.Level.WARNING,
            session=payment.session,
        )
        return payment

    @staticmethod
    def _lock_payment(payment_id) -> Payment:
        payment = (
            Payment.objects
            .select_for_update()
            .filter(pk=payment_id, payment_type=Payment.PaymentType.ENROLLMENT)
            .first()
        )
        if payment is None:
            raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, "پرداخت یافت نشد.")
        return payment
