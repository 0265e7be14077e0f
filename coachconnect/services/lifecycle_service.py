"""
services/lifecycle_service.py
─────────────────────────────────────────────────────────────────────
چرخه عمر جلسه: ایجاد، ویرایش، شروع و پایان زمان‌محور
Session lifecycle:  Created → Ongoing → Completed,  Created|Ongoing → Cancelled

Time-driven transitions run from ``tick`` (Celery beat, every
SESSION_TICK_SECONDS). Every transition is a conditional update so a
repeated or overlapping tick is a no-op.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from itertools import islice
from typing import Iterable, List, Optional

from dateutil import rrule
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..errors import ConflictError, ErrorCode, InvalidInputError, NotFoundError, UnauthorizedError
from ..models import CustomUser, Notification, Role, Session, SessionParticipant
from .access import require_role
from .jalali_utils import jalali_datetime_display, weekdays_to_rrule
from .notification_service import NotificationService
from .payout_service import PayoutService
from .refund_service import RefundService

logger = logging.getLogger(__name__)

RECURRENT_MAX_OCCURRENCES = 100

EDITABLE_FIELDS = frozenset({
    "title", "description", "address", "objectives", "equipments",
    "additional_notes", "fee", "max_participants", "participant_min_age",
})


@dataclass
class TickSummary:
    """خلاصه یک tick زمان‌بند."""
    started: int = 0
    completed: int = 0
    payouts_created: int = 0
    payouts_deferred: int = 0
    payouts_held: int = 0
    payouts_unheld: int = 0
    refunds_retried: int = 0

    def as_dict(self) -> dict:
        return dict(self.__dict__)


def lock_session(session_id) -> Session:
    """Row-lock a session inside the current transaction or raise NotFoundError."""
    session = Session.objects.select_for_update().filter(pk=session_id).first()
    if session is None:
        raise NotFoundError(ErrorCode.SESSION_NOT_FOUND, "جلسه یافت نشد.")
    return session


class SessionLifecycleService:

    # ── 1. Create ────────────────────────────────────────────────────

    @classmethod
    def create_session(
        cls,
        coach: CustomUser,
        *,
        title: str,
        started_at: datetime,
        max_participants: int,
        objectives: List[str],
        fee=0,
        participant_min_age: int = 1,
        completed_at: Optional[datetime] = None,
        description: str = "",
        address: str = "",
        equipments: Optional[List[str]] = None,
        additional_notes: str = "",
        now: Optional[datetime] = None,
    ) -> Session:
        now = now or timezone.now()
        cls._check_coach(coach)
        fields = cls._validated_fields(
            title=title, started_at=started_at, completed_at=completed_at,
            max_participants=max_participants, objectives=objectives, fee=fee,
            participant_min_age=participant_min_age, now=now,
        )
        with transaction.atomic():
            session = Session.objects.create(
                coach=coach,
                description=description,
                address=address,
                equipments=list(equipments or []),
                additional_notes=additional_notes,
                **fields,
            )
        logger.info("جلسه %s توسط مربی %s ایجاد شد (شروع %s).", session.pk, coach.pk, session.started_at)
        cls._notify_created(coach, [session])
        return session

    @classmethod
    def create_recurrent_sessions(
        cls,
        coach: CustomUser,
        *,
        recurrent_days: Iterable[str],
        recurrent_until,
        title: str,
        started_at: datetime,
        max_participants: int,
        objectives: List[str],
        fee=0,
        participant_min_age: int = 1,
        completed_at: Optional[datetime] = None,
        description: str = "",
        address: str = "",
        equipments: Optional[List[str]] = None,
        additional_notes: str = "",
        now: Optional[datetime] = None,
    ) -> List[Session]:
        """
        یک جلسه برای هر روز انتخاب‌شده هفته از started_at تا recurrent_until.
        مدت هر جلسه برابر completed_at - started_at است. همه یا هیچ.
        """
        now = now or timezone.now()
        cls._check_coach(coach)
        fields = cls._validated_fields(
            title=title, started_at=started_at, completed_at=completed_at,
            max_participants=max_participants, objectives=objectives, fee=fee,
            participant_min_age=participant_min_age, now=now,
        )
        duration = fields["completed_at"] - fields["started_at"]

        try:
            weekdays = weekdays_to_rrule(recurrent_days)
        except KeyError as e:
            raise InvalidInputError(f"روز هفته نامعتبر: {e}")
        if not weekdays:
            raise InvalidInputError("حداقل یک روز هفته برای تکرار لازم است.")

        until = recurrent_until
        if isinstance(until, date) and not isinstance(until, datetime):
            until = datetime.combine(until, time.max, tzinfo=started_at.tzinfo)
        if until <= started_at:
            raise InvalidInputError("تاریخ پایان تکرار باید بعد از شروع باشد.")

        occurrences = list(islice(
            rrule.rrule(rrule.WEEKLY, byweekday=weekdays, dtstart=fields["started_at"], until=until),
            RECURRENT_MAX_OCCURRENCES + 1,
        ))
        if not occurrences:
            raise InvalidInputError("هیچ جلسه‌ای در بازه انتخاب‌شده قرار نمی‌گیرد.")
        if len(occurrences) > RECURRENT_MAX_OCCURRENCES:
            raise InvalidInputError(f"حداکثر {RECURRENT_MAX_OCCURRENCES} جلسه تکراری مجاز است.")

        group = uuid.uuid4()
        sessions = []
        with transaction.atomic():
            for start in occurrences:
                sessions.append(Session.objects.create(
                    coach=coach,
                    title=fields["title"],
                    objectives=fields["objectives"],
                    fee=fields["fee"],
                    max_participants=fields["max_participants"],
                    participant_min_age=fields["participant_min_age"],
                    started_at=start,
                    completed_at=start + duration,
                    description=description,
                    address=address,
                    equipments=list(equipments or []),
                    additional_notes=additional_notes,
                    recurrence_group=group,
                ))
        logger.info("%d جلسه تکراری (گروه %s) توسط مربی %s ایجاد شد.", len(sessions), group, coach.pk)
        cls._notify_created(coach, sessions)
        return sessions

    @staticmethod
    def _check_coach(coach: CustomUser) -> None:
        if coach is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND, "مربی یافت نشد.")
        require_role(coach, Role.COACH)
        if coach.is_blocked:
            raise UnauthorizedError("حساب مربی مسدود است و امکان ایجاد جلسه ندارد.")

    @staticmethod
    def _validated_fields(*, title, started_at, completed_at, max_participants,
                          objectives, fee, participant_min_age, now) -> dict:
        """now=None skips the start-in-the-future check (edits of an existing session)."""
        if not (title or "").strip():
            raise InvalidInputError("عنوان جلسه الزامی است.")
        try:
            fee = Decimal(str(fee))
        except InvalidOperation:
            raise InvalidInputError("هزینه جلسه نامعتبر است.")
        if fee < 0:
            raise InvalidInputError("هزینه جلسه نمی‌تواند منفی باشد.")
        if max_participants is None or int(max_participants) < 1:
            raise InvalidInputError("حداقل ظرفیت جلسه ۱ نفر است.")
        if participant_min_age is None or int(participant_min_age) < 1:
            raise InvalidInputError("حداقل سن باید بزرگ‌تر از صفر باشد.")
        if not objectives or not [o for o in objectives if str(o).strip()]:
            raise InvalidInputError("حداقل یک هدف برای جلسه لازم است.")
        if started_at is None or (now is not None and started_at <= now):
            raise InvalidInputError("زمان شروع باید در آینده باشد.")
        if completed_at is None:
            completed_at = started_at + timedelta(hours=settings.SESSION_DEFAULT_DURATION_HOURS)
        if completed_at <= started_at:
            raise InvalidInputError("زمان پایان باید بعد از زمان شروع باشد.")
        return {
            "title": title.strip(),
            "fee": fee,
            "max_participants": int(max_participants),
            "participant_min_age": int(participant_min_age),
            "objectives": [str(o).strip() for o in objectives if str(o).strip()],
            "started_at": started_at,
            "completed_at": completed_at,
        }

    @staticmethod
    def _notify_created(coach: CustomUser, sessions: List[Session]) -> None:
        first = sessions[0]
        if len(sessions) == 1:
            message = f"جلسه «{first.title}» برای {jalali_datetime_display(first.started_at)} ایجاد شد."
        else:
            message = (f"{len(sessions)} جلسه «{first.title}» از "
                       f"{jalali_datetime_display(first.started_at)} ایجاد شد.")
        NotificationService.notify(
            coach, "جلسه ایجاد شد", message,
            type=Notification.NotificationType.SESSION_CREATED, session=first,
        )

    # ── 2. Update ────────────────────────────────────────────────────

    @classmethod
    def update_session(cls, coach: CustomUser, session_id, now: Optional[datetime] = None, **changes) -> Session:
        """ویرایش جلسه توسط مربی مالک؛ فقط پیش از شروع."""
        now = now or timezone.now()
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"فیلدهای غیرقابل ویرایش: {', '.join(sorted(unknown))}")

        with transaction.atomic():
            session = lock_session(session_id)
            if session.coach_id != coach.pk:
                raise UnauthorizedError("فقط مربی برگزارکننده می‌تواند جلسه را ویرایش کند.")
            if session.status != Session.Status.CREATED:
                raise ConflictError(ErrorCode.SESSION_LOCKED, "جلسه پس از شروع یا لغو قابل ویرایش نیست.")

            merged = {
                "title": session.title, "objectives": session.objectives, "fee": session.fee,
                "max_participants": session.max_participants,
                "participant_min_age": session.participant_min_age,
            }
            merged.update({k: v for k, v in changes.items() if k in merged})
            fields = cls._validated_fields(
                started_at=session.started_at, completed_at=session.completed_at,
                now=None, **merged,
            )

            if fields["max_participants"] < session.attending_paid_count():
                raise ConflictError(ErrorCode.SESSION_FULL, "ظرفیت نمی‌تواند از تعداد ثبت‌نام‌شدگان کمتر باشد.")
            if fields["fee"] != session.fee and session.participants.filter(
                player_status__in=SessionParticipant.ACTIVE_PLAYER_STATUSES,
            ).exists():
                raise ConflictError(ErrorCode.SESSION_LOCKED, "پس از ثبت‌نام بازیکنان، هزینه جلسه قابل تغییر نیست.")

            for name in ("description", "address", "equipments", "additional_notes"):
                if name in changes:
                    setattr(session, name, changes[name])
            for name in ("title", "objectives", "fee", "max_participants", "participant_min_age"):
                setattr(session, name, fields[name])
            session.save()

        logger.info("جلسه %s ویرایش شد: %s", session.pk, ", ".join(sorted(changes)))
        return session

    @classmethod
    def warn_coach(cls, admin: CustomUser, session_id, note: str) -> Notification:
        require_role(admin, Role.ADMIN)
        if not (note or "").strip():
            raise InvalidInputError("متن اخطار الزامی است.")
        session = Session.objects.select_related("coach").filter(pk=session_id).first()
        if session is None:
            raise NotFoundError(ErrorCode.SESSION_NOT_FOUND, "جلسه یافت نشد.")
        logger.warning("اخطار به مربی %s برای جلسه %s: %s", session.coach_id, session.pk, note)
        return NotificationService.notify(
            session.coach, "اخطار مدیر سامانه", note.strip(),
            type=Notification.NotificationType.COACH_WARNING,
            level=Notification.Level.WARNING,
            session=session,
        )

    # ── 3. Time-driven transitions ───────────────────────────────────

    @classmethod
    def start_due_sessions(cls, now: Optional[datetime] = None) -> int:
        """Created → Ongoing برای جلساتی که زمان شروعشان رسیده. Idempotent."""
        now = now or timezone.now()
        started = Session.objects.filter(
            status=Session.Status.CREATED, started_at__lte=now,
        ).update(
            status=Session.Status.ONGOING,
            report_valid=True,
            report_till=now + timedelta(hours=settings.SESSION_REPORT_WINDOW_HOURS),
            updated_at=now,
        )
        if started:
            logger.info("[tick] %d جلسه شروع شد.", started)
        return started

    @classmethod
    def complete_due_sessions(cls, now: Optional[datetime] = None) -> dict:
        """
        Ongoing → Completed برای جلساتی که زمان پایانشان رسیده.
        فقط برنده به‌روزرسانی شرطی، تسویه مربی را فعال می‌کند.
        خروجی: {session_id: نتیجه تسویه}
        """
        now = now or timezone.now()
        due_ids = list(
            Session.objects
            .filter(status=Session.Status.ONGOING, completed_at__lte=now)
            .values_list("pk", flat=True)
        )
        completed = {}
        for session_id in due_ids:
            with transaction.atomic():
                won = Session.objects.filter(
                    pk=session_id, status=Session.Status.ONGOING,
                ).update(
                    status=Session.Status.COMPLETED,
                    report_valid=False,
                    updated_at=now,
                )
            if won:
                outcome, _payout = PayoutService.settle_session(session_id, now=now)
                completed[session_id] = outcome
        if completed:
            logger.info("[tick] %d جلسه پایان یافت.", len(completed))
        return completed

    @classmethod
    def tick(cls, now: Optional[datetime] = None) -> TickSummary:
        """یک دور کامل زمان‌بند: شروع، پایان، تسویه، تعلیق و تلاش مجدد بازگشت وجه."""
        now = now or timezone.now()
        summary = TickSummary()
        summary.started = cls.start_due_sessions(now)
        completed = cls.complete_due_sessions(now)
        summary.completed = len(completed)

        batch = PayoutService.settle_completed_sessions(now)
        summary.payouts_created = batch.created_count + sum(
            1 for outcome in completed.values() if outcome == PayoutService.CREATED
        )
        summary.payouts_deferred = batch.deferred_count

        holds = PayoutService.refresh_holds(now)
        summary.payouts_held = holds.held
        summary.payouts_unheld = holds.released

        summary.refunds_retried = RefundService.retry_stalled_refunds(now).attempted
        return summary
