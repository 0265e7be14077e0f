"""
services/cancellation_service.py
─────────────────────────────────────────────────────────────────────
لغو جلسه / انصراف بازیکن / گزارش جلسه
Cancellation dispatch by actor role, plus post-start session reports.

Each role has a policy function that inspects the locked session and
returns a ``CancellationPlan``; one executor applies any plan. Record
mutations and refund intents commit together; gateway calls and
notifications happen after the commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from ..errors import ConflictError, DomainError, ErrorCode, InvalidInputError, NotFoundError, UnauthorizedError
from ..models import (
    CustomUser,
    Notification,
    Payment,
    RefundRequest,
    Role,
    Session,
    SessionParticipant,
    SessionReport,
)
from .access import require_role
from .jalali_utils import jalali_datetime_display
from .lifecycle_service import lock_session
from .notification_service import NotificationService
from .refund_service import RefundService

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────
#  Data Transfer Objects
# ────────────────────────────────────────────────────────────────────

@dataclass
class CancellationPlan:
    """آنچه یک سیاست لغو تصمیم می‌گیرد؛ اجرای آن با executor است."""
    cancel_session: bool = False
    participants_to_cancel: List[SessionParticipant] = field(default_factory=list)
    refund_targets: List[SessionParticipant] = field(default_factory=list)
    # لغو گروهی: خطای یک بازگشت وجه بقیه را متوقف نمی‌کند
    tolerate_refund_errors: bool = False
    notify_players: List[CustomUser] = field(default_factory=list)
    notify_coach: bool = False


@dataclass
class CancellationOutcome:
    session: Session
    cancelled_participants: List[SessionParticipant] = field(default_factory=list)
    refund_requests: List[RefundRequest] = field(default_factory=list)
    refund_failures: List[str] = field(default_factory=list)


@dataclass
class ReportOutcome:
    report: SessionReport
    refund_request: Optional[RefundRequest] = None


# ────────────────────────────────────────────────────────────────────
#  Policies (role → plan)
# ────────────────────────────────────────────────────────────────────

def _active_participants(session: Session) -> List[SessionParticipant]:
    return list(
        session.participants
        .select_for_update(of=("self",))
        .select_related("player")
        .filter(player_status__in=SessionParticipant.ACTIVE_PLAYER_STATUSES)
    )


def _online_paid(participants: List[SessionParticipant]) -> List[SessionParticipant]:
    return [
        p for p in participants
        if p.player_status == SessionParticipant.PlayerStatus.ATTENDING and p.is_online_paid
    ]


def coach_cancellation_policy(session: Session, actor: CustomUser, now: datetime) -> CancellationPlan:
    if session.coach_id != actor.pk:
        raise UnauthorizedError("فقط مربی برگزارکننده می‌تواند جلسه را لغو کند.")
    if session.status != Session.Status.CREATED or session.started_at <= now:
        raise ConflictError(ErrorCode.SESSION_ALREADY_STARTED, "جلسه شروع شده و مربی نمی‌تواند آن را لغو کند.")

    participants = _active_participants(session)
    return CancellationPlan(
        cancel_session=True,
        participants_to_cancel=participants,
        refund_targets=[] if session.is_free else _online_paid(participants),
        tolerate_refund_errors=True,
        notify_players=[p.player for p in participants],
    )


def admin_cancellation_policy(session: Session, actor: CustomUser, now: datetime) -> CancellationPlan:
    if session.status == Session.Status.CREATED:
        raise ConflictError(
            ErrorCode.SESSION_NOT_STARTED,
            "مدیر فقط جلسه‌ای را لغو می‌کند که شروع شده باشد؛ پیش از شروع، لغو با مربی است.",
        )
    if session.status in Session.TERMINAL_STATUSES:
        raise ConflictError(ErrorCode.INVALID_TRANSITION, "جلسه پایان یافته یا قبلاً لغو شده است.")

    participants = _active_participants(session)
    return CancellationPlan(
        cancel_session=True,
        participants_to_cancel=participants,
        refund_targets=[] if session.is_free else _online_paid(participants),
        tolerate_refund_errors=True,
        notify_players=[p.player for p in participants],
        notify_coach=True,
    )


def player_cancellation_policy(session: Session, actor: CustomUser, now: datetime) -> CancellationPlan:
    if session.status in Session.TERMINAL_STATUSES:
        raise ConflictError(ErrorCode.INVALID_TRANSITION, "جلسه پایان یافته یا لغو شده است.")

    participant = (
        session.participants
        .select_for_update(of=("self",))
        .select_related("player")
        .filter(player=actor, player_status__in=SessionParticipant.ACTIVE_PLAYER_STATUSES)
        .first()
    )
    if participant is None:
        raise NotFoundError(ErrorCode.PARTICIPANT_NOT_FOUND, "ثبت‌نام فعالی در این جلسه ندارید.")

    plan = CancellationPlan(notify_players=[actor])

    # checkout نیمه‌کاره: فقط رها می‌شود
    if participant.player_status == SessionParticipant.PlayerStatus.PENDING:
        plan.participants_to_cancel = [participant]
        return plan

    if session.is_free:
        plan.participants_to_cancel = [participant]
        return plan

    if session.status == Session.Status.CREATED:
        plan.participants_to_cancel = [participant]
    if participant.is_online_paid:
        plan.refund_targets = [participant]

    if not plan.participants_to_cancel and not plan.refund_targets:
        raise ConflictError(
            ErrorCode.SESSION_ALREADY_STARTED,
            "پس از شروع جلسه، انصراف از ثبت‌نام نقدی امکان‌پذیر نیست.",
        )
    return plan


CANCELLATION_POLICIES: Dict[str, Callable[[Session, CustomUser, datetime], CancellationPlan]] = {
    Role.COACH:  coach_cancellation_policy,
    Role.ADMIN:  admin_cancellation_policy,
    Role.PLAYER: player_cancellation_policy,
}


# ────────────────────────────────────────────────────────────────────
#  Cancellation Service
# ────────────────────────────────────────────────────────────────────

class CancellationService:

    # ── 1. Cancel ────────────────────────────────────────────────────

    @classmethod
    def cancel_session(
        cls,
        actor: CustomUser,
        session_id,
        actor_role: str,
        note: str = "",
        now: Optional[datetime] = None,
    ) -> CancellationOutcome:
        try:
            role = Role(actor_role)
        except ValueError:
            raise InvalidInputError("نقش نامعتبر است.")
        require_role(actor, role)
        policy = CANCELLATION_POLICIES[role]
        now = now or timezone.now()

        with transaction.atomic():
            session = lock_session(session_id)
            plan = policy(session, actor, now)
            outcome = CancellationOutcome(session=session)

            if plan.cancel_session:
                session.status = Session.Status.CANCELLED
                session.report_valid = False
                session.cancelled_at = now
                session.cancelled_by = actor
                session.cancellation_note = note
                session.save()

            for participant in plan.participants_to_cancel:
                cls._cancel_participant(participant, now)
                outcome.cancelled_participants.append(participant)

            reason = note or f"لغو توسط {role.label}"
            for participant in plan.refund_targets:
                if not plan.tolerate_refund_errors:
                    outcome.refund_requests.append(
                        RefundService.open_refund_request(participant, reason=reason, now=now)
                    )
                    continue
                try:
                    with transaction.atomic():
                        outcome.refund_requests.append(
                            RefundService.open_refund_request(participant, reason=reason, now=now)
                        )
                except DomainError as e:
                    logger.error("ثبت بازگشت وجه برای شرکت‌کننده %s در لغو جلسه %s ناموفق بود: %s",
                                 participant.pk, session.pk, e)
                    outcome.refund_failures.append(str(participant.pk))

        logger.info(
            "لغو توسط %s (%s): جلسه=%s لغو جلسه=%s شرکت‌کننده=%d بازگشت=%d خطا=%d",
            actor.pk, role, session.pk, plan.cancel_session,
            len(outcome.cancelled_participants), len(outcome.refund_requests), len(outcome.refund_failures),
        )

        # ── پس از commit: اجرای بازگشت وجه و اعلان‌ها ────────────────
        for request in outcome.refund_requests:
            RefundService.dispatch_refund(request)
        cls._notify_cancellation(session, plan, note)
        return outcome

    @staticmethod
    def _cancel_participant(participant: SessionParticipant, now: datetime) -> None:
        if participant.player_status == SessionParticipant.PlayerStatus.PENDING:
            participant.payment_status = SessionParticipant.PaymentStatus.FAILED
            Payment.objects.filter(
                participant=participant, status=Payment.Status.PENDING,
                payment_type=Payment.PaymentType.ENROLLMENT,
            ).update(status=Payment.Status.FAILED, updated_at=now)
        participant.player_status = SessionParticipant.PlayerStatus.CANCELLED
        participant.cancelled_at = now
        participant.save(update_fields=["player_status", "payment_status", "cancelled_at", "updated_at"])

    @staticmethod
    def _notify_cancellation(session: Session, plan: CancellationPlan, note: str) -> None:
        when = jalali_datetime_display(session.started_at)
        if plan.cancel_session:
            title = "جلسه لغو شد"
            message = f"جلسه «{session.title}» ({when}) لغو شد."
        else:
            title = "انصراف از جلسه ثبت شد"
            message = f"ثبت‌نام شما در جلسه «{session.title}» ({when}) به‌روزرسانی شد."
        if note:
            message += f" توضیح: {note}"

        for player in plan.notify_players:
            NotificationService.notify(
                player, title, message,
                type=Notification.NotificationType.SESSION_CANCELLED, session=session,
            )
        if plan.notify_coach:
            NotificationService.notify(
                session.coach, title, message,
                type=Notification.NotificationType.SESSION_CANCELLED,
                level=Notification.Level.WARNING, session=session,
            )

    # ── 2. Report ────────────────────────────────────────────────────

    @classmethod
    def report_session(
        cls,
        player: CustomUser,
        session_id,
        description: str,
        ask_refund: bool = False,
        now: Optional[datetime] = None,
    ) -> ReportOutcome:
        """
        گزارش بازیکن درباره جلسه در حال برگزاری.
        با ask_refund، برای پرداخت آنلاین درخواست بازگشت وجه (نیازمند تأیید مدیر) ثبت می‌شود.
        """
        require_role(player, Role.PLAYER)
        if not (description or "").strip():
            raise InvalidInputError("شرح گزارش الزامی است.")
        now = now or timezone.now()

        request = None
        with transaction.atomic():
            session = lock_session(session_id)
            participant = (
                session.participants
                .select_for_update(of=("self",))
                .filter(player=player, player_status=SessionParticipant.PlayerStatus.ATTENDING)
                .first()
            )
            if participant is None:
                raise ConflictError(ErrorCode.NOT_ENROLLED, "فقط شرکت‌کنندگان جلسه می‌توانند گزارش ثبت کنند.")
            report_open = (
                session.status == Session.Status.ONGOING
                and session.report_valid
                and session.report_till is not None
                and now <= session.report_till
            )
            if not report_open:
                raise ConflictError(ErrorCode.REPORT_WINDOW_CLOSED, "مهلت ثبت گزارش برای این جلسه به پایان رسیده است.")
            if ask_refund and participant.payment_method == SessionParticipant.PaymentMethod.CASH:
                raise ConflictError(ErrorCode.CASH_NOT_REFUNDABLE, "پرداخت نقدی قابل بازگشت نیست.")

            report = SessionReport.objects.create(
                session=session,
                participant=participant,
                description=description.strip(),
                need_refund=ask_refund,
            )
            if (
                ask_refund
                and not session.is_free
                and participant.payment_status == SessionParticipant.PaymentStatus.PAID
            ):
                request = RefundService.open_refund_request(participant, reason=report.description, now=now)

        logger.info("گزارش جلسه %s توسط بازیکن %s ثبت شد (بازگشت وجه: %s).",
                    session.pk, player.pk, bool(request))
        if request is not None:
            RefundService.dispatch_refund(request)
        else:
            NotificationService.notify_admins(
                "گزارش جدید جلسه",
                f"{player.get_full_name()} برای جلسه «{session.title}» گزارش ثبت کرد.",
                level=Notification.Level.WARNING,
                session=session,
            )
        return ReportOutcome(report=report, refund_request=request)
