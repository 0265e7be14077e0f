"""
services/payout_service.py
─────────────────────────────────────────────────────────────────────
محاسبه تسویه مربی برای جلسات پایان‌یافته
Coach payout settlement. One DuePayout per completed session; never
computed while a refund request for that session awaits adjudication.
No money moves here; release is done by finance outside the engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..models import (
    DuePayout,
    Notification,
    RefundRequest,
    Session,
    SessionParticipant,
)
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────
#  Data Transfer Objects
# ────────────────────────────────────────────────────────────────────

@dataclass
class PayoutBatch:
    """نتیجه یک دور بررسی تسویه جلسات پایان‌یافته."""
    created_count: int = 0
    deferred_count: int = 0     # درخواست بازگشت وجه در انتظار
    skipped_count: int = 0      # قبلاً ایجاد شده
    payouts: List[DuePayout] = field(default_factory=list)


@dataclass
class HoldRefresh:
    held: int = 0
    released: int = 0


# ────────────────────────────────────────────────────────────────────
#  Payout Service
# ────────────────────────────────────────────────────────────────────

class PayoutService:

    CREATED  = "created"
    DEFERRED = "deferred"
    SKIPPED  = "skipped"

    # ── 1. Amount ────────────────────────────────────────────────────

    @staticmethod
    def payable_participants(session: Session):
        """فقط حاضرینِ پرداخت آنلاین؛ نقدی مستقیم به مربی رسیده و بازگشت‌خورده‌ها حذف می‌شوند."""
        return session.participants.filter(
            player_status=SessionParticipant.PlayerStatus.ATTENDING,
            payment_status=SessionParticipant.PaymentStatus.PAID,
        )

    @classmethod
    def compute_payable(cls, session: Session):
        count = cls.payable_participants(session).count()
        return Decimal(session.fee) * count, count

    @staticmethod
    def has_pending_refunds(session: Session) -> bool:
        return RefundRequest.objects.filter(
            session=session, status=RefundRequest.Status.PENDING
        ).exists()

    # ── 2. Settle one session ────────────────────────────────────────

    @classmethod
    def settle_session(cls, session_id, now: Optional[datetime] = None):
        """
        Create the DuePayout for one completed session.
        Returns ``(outcome, payout)`` where outcome is created / deferred / skipped.
        """
        now = now or timezone.now()
        try:
            with transaction.atomic():
                session = Session.objects.select_for_update().get(pk=session_id)

                existing = DuePayout.objects.filter(session=session).first()
                if existing is not None:
                    return cls.SKIPPED, existing
                if session.status != Session.Status.COMPLETED:
                    return cls.SKIPPED, None
                if cls.has_pending_refunds(session):
                    logger.info("تسویه جلسه %s تا بررسی درخواست‌های بازگشت وجه به تعویق افتاد.", session.pk)
                    return cls.DEFERRED, None

                amount, count = cls.compute_payable(session)
                payout = DuePayout.objects.create(
                    session=session,
                    coach_id=session.coach_id,
                    total_amount=amount,
                    paid_participants=count,
                    status=DuePayout.Status.PENDING,
                )
        except IntegrityError:
            # ردیف توسط tick دیگری ساخته شده است
            return cls.SKIPPED, DuePayout.objects.filter(session_id=session_id).first()

        logger.info("تسویه جلسه %s ایجاد شد: مربی=%s شرکت‌کننده=%d مبلغ=%s ریال",
                    session.pk, session.coach_id, count, amount)
        NotificationService.notify(
            session.coach,
            "تسویه جلسه آماده شد",
            f"مبلغ {amount:,.0f} ریال بابت جلسه «{session.title}» ({count} شرکت‌کننده) در انتظار پرداخت است.",
            type=Notification.NotificationType.PAYOUT_READY,
            session=session,
        )
        return cls.CREATED, payout

    # ── 3. Scan ──────────────────────────────────────────────────────

    @classmethod
    def settle_completed_sessions(cls, now: Optional[datetime] = None) -> PayoutBatch:
        """تمام جلسات پایان‌یافته بدون تسویه را بررسی می‌کند. Idempotent."""
        now = now or timezone.now()
        batch = PayoutBatch()
        session_ids = list(
            Session.objects
            .filter(status=Session.Status.COMPLETED, due_payout__isnull=True)
            .values_list("pk", flat=True)
        )
        for session_id in session_ids:
            outcome, payout = cls.settle_session(session_id, now=now)
            if outcome == cls.CREATED:
                batch.created_count += 1
                batch.payouts.append(payout)
            elif outcome == cls.DEFERRED:
                batch.deferred_count += 1
            else:
                batch.skipped_count += 1
        return batch

    # ── 4. Holds ─────────────────────────────────────────────────────

    @classmethod
    def refresh_holds(cls, now: Optional[datetime] = None) -> HoldRefresh:
        """
        PENDING → HOLD وقتی درخواست بازگشت وجه معلق دارد؛
        HOLD → PENDING با مبلغ بازمحاسبه‌شده وقتی همه درخواست‌ها تعیین تکلیف شدند.
        """
        now = now or timezone.now()
        result = HoldRefresh()
        pending_sessions = RefundRequest.objects.filter(
            status=RefundRequest.Status.PENDING
        ).values("session_id")

        result.held = DuePayout.objects.filter(
            status=DuePayout.Status.PENDING, session_id__in=pending_sessions,
        ).update(status=DuePayout.Status.HOLD, updated_at=now)

        for payout_id in list(
            DuePayout.objects
            .filter(status=DuePayout.Status.HOLD)
            .exclude(session_id__in=pending_sessions)
            .values_list("pk", flat=True)
        ):
            with transaction.atomic():
                payout = DuePayout.objects.select_for_update(of=("self",)).select_related("session").get(pk=payout_id)
                if payout.status != DuePayout.Status.HOLD or cls.has_pending_refunds(payout.session):
                    continue
                amount, count = cls.compute_payable(payout.session)
                payout.total_amount = amount
                payout.paid_participants = count
                payout.status = DuePayout.Status.PENDING
                payout.save(update_fields=["total_amount", "paid_participants", "status", "updated_at"])
                result.released += 1
            logger.info("تسویه %s از حالت تعلیق خارج شد: مبلغ جدید=%s", payout.pk, amount)

        if result.held:
            logger.info("%d تسویه به دلیل درخواست بازگشت وجه معلق شد.", result.held)
        return result
