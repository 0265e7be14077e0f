"""
tests/test_lifecycle.py
─────────────────────────────────────────────────────────────────────
Session creation, edits and time-driven transitions (start / complete / tick).
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.conf import settings
from django.utils import timezone

from coachconnect.errors import ConflictError, ErrorCode, InvalidInputError, UnauthorizedError
from coachconnect.models import DuePayout, Notification, Session
from coachconnect.services.lifecycle_service import SessionLifecycleService
from coachconnect.services.payout_service import PayoutService

pytestmark = pytest.mark.django_db


def _create(coach, **overrides):
    fields = {
        "title": "تمرین شوت",
        "started_at": timezone.now() + timedelta(days=2),
        "max_participants": 8,
        "objectives": ["شوت از راه دور"],
        "fee": 150000,
    }
    fields.update(overrides)
    return SessionLifecycleService.create_session(coach, **fields)


# ════════════════════════════════════════════════════════════════════
#  Create
# ════════════════════════════════════════════════════════════════════

class TestCreateSession:

    def test_creates_in_created_state(self, coach):
        session = _create(coach)
        assert session.status == Session.Status.CREATED
        assert session.fee == Decimal("150000")
        assert not session.report_valid

    def test_default_duration(self, coach):
        session = _create(coach)
        expected = timedelta(hours=settings.SESSION_DEFAULT_DURATION_HOURS)
        assert session.completed_at - session.started_at == expected

    def test_coach_is_notified(self, coach):
        session = _create(coach)
        assert Notification.objects.filter(
            recipient=coach, type=Notification.NotificationType.SESSION_CREATED, related_session=session,
        ).exists()

    def test_start_in_past_rejected(self, coach):
        with pytest.raises(InvalidInputError):
            _create(coach, started_at=timezone.now() - timedelta(minutes=1))
        assert Session.objects.count() == 0

    def test_end_before_start_rejected(self, coach):
        start = timezone.now() + timedelta(days=1)
        with pytest.raises(InvalidInputError):
            _create(coach, started_at=start, completed_at=start - timedelta(hours=1))

    @pytest.mark.parametrize("overrides", [
        {"objectives": []},
        {"objectives": ["  "]},
        {"max_participants": 0},
        {"participant_min_age": 0},
        {"fee": -1},
        {"fee": "abc"},
        {"title": ""},
    ])
    def test_invalid_fields(self, coach, overrides):
        with pytest.raises(InvalidInputError) as exc:
            _create(coach, **overrides)
        assert exc.value.code is ErrorCode.INVALID_INPUT

    def test_non_coach_rejected(self, player):
        with pytest.raises(UnauthorizedError):
            _create(player)

    def test_blocked_coach_rejected(self, make_user):
        blocked = make_user(is_coach=True, is_blocked=True)
        with pytest.raises(UnauthorizedError):
            _create(blocked)


class TestRecurrentSessions:

    @staticmethod
    def _next_saturday():
        base = timezone.now() + timedelta(days=1)
        start = base + timedelta(days=(5 - base.weekday()) % 7)
        return start.replace(hour=18, minute=0, second=0, microsecond=0)

    def test_one_session_per_selected_weekday(self, coach):
        start = self._next_saturday()
        sessions = SessionLifecycleService.create_recurrent_sessions(
            coach,
            recurrent_days=["sat", "mon"],
            recurrent_until=start + timedelta(days=13),
            title="تمرین هفتگی",
            started_at=start,
            completed_at=start + timedelta(hours=2),
            max_participants=10,
            objectives=["آمادگی جسمانی"],
        )
        assert [s.started_at for s in sessions] == [
            start, start + timedelta(days=2), start + timedelta(days=7), start + timedelta(days=9),
        ]
        assert len({s.recurrence_group for s in sessions}) == 1
        assert all(s.completed_at - s.started_at == timedelta(hours=2) for s in sessions)
        assert all(s.status == Session.Status.CREATED for s in sessions)

    def test_unknown_weekday_rejected(self, coach):
        start = self._next_saturday()
        with pytest.raises(InvalidInputError):
            SessionLifecycleService.create_recurrent_sessions(
                coach, recurrent_days=["xyz"], recurrent_until=start + timedelta(days=7),
                title="t", started_at=start, max_participants=5, objectives=["o"],
            )
        assert Session.objects.count() == 0

    def test_until_before_start_rejected(self, coach):
        start = self._next_saturday()
        with pytest.raises(InvalidInputError):
            SessionLifecycleService.create_recurrent_sessions(
                coach, recurrent_days=["sat"], recurrent_until=start - timedelta(days=1),
                title="t", started_at=start, max_participants=5, objectives=["o"],
            )


# ════════════════════════════════════════════════════════════════════
#  Update / warn
# ════════════════════════════════════════════════════════════════════

class TestUpdateSession:

    def test_owner_can_edit_before_start(self, coach, make_session):
        session = make_session()
        updated = SessionLifecycleService.update_session(coach, session.pk, title="عنوان جدید", address="سالن ۲")
        assert updated.title == "عنوان جدید"
        assert updated.address == "سالن ۲"

    def test_other_coach_rejected(self, make_user, make_session):
        session = make_session()
        with pytest.raises(UnauthorizedError):
            SessionLifecycleService.update_session(make_user(is_coach=True), session.pk, title="x")

    def test_started_session_locked(self, coach, make_session):
        session = make_session(Session.Status.ONGOING)
        with pytest.raises(ConflictError) as exc:
            SessionLifecycleService.update_session(coach, session.pk, title="x")
        assert exc.value.code is ErrorCode.SESSION_LOCKED

    def test_status_is_not_editable(self, coach, make_session):
        session = make_session()
        with pytest.raises(InvalidInputError):
            SessionLifecycleService.update_session(coach, session.pk, status=Session.Status.CANCELLED)

    def test_fee_locked_after_enrollment(self, coach, make_session, make_participant, player):
        session = make_session()
        make_participant(session, player)
        with pytest.raises(ConflictError) as exc:
            SessionLifecycleService.update_session(coach, session.pk, fee=1)
        assert exc.value.code is ErrorCode.SESSION_LOCKED

    def test_capacity_not_below_enrolled(self, coach, make_session, make_participant, make_player):
        session = make_session(max_participants=3)
        make_participant(session, make_player())
        make_participant(session, make_player())
        with pytest.raises(ConflictError) as exc:
            SessionLifecycleService.update_session(coach, session.pk, max_participants=1)
        assert exc.value.code is ErrorCode.SESSION_FULL


class TestWarnCoach:

    def test_admin_warning_reaches_coach(self, platform_admin, coach, make_session):
        session = make_session()
        notification = SessionLifecycleService.warn_coach(platform_admin, session.pk, "تأخیر در شروع جلسه")
        assert notification.recipient == coach
        assert notification.type == Notification.NotificationType.COACH_WARNING

    def test_non_admin_rejected(self, player, make_session):
        with pytest.raises(UnauthorizedError):
            SessionLifecycleService.warn_coach(player, make_session().pk, "x")


# ════════════════════════════════════════════════════════════════════
#  Status guard
# ════════════════════════════════════════════════════════════════════

class TestStatusGuard:

    def test_skip_to_completed_rejected(self, make_session):
        session = make_session()
        session.status = Session.Status.COMPLETED
        with pytest.raises(ConflictError) as exc:
            session.save()
        assert exc.value.code is ErrorCode.INVALID_TRANSITION

    def test_terminal_cannot_reopen(self, make_session):
        session = make_session(Session.Status.CANCELLED)
        session.status = Session.Status.CREATED
        with pytest.raises(ConflictError):
            session.save()

    def test_new_session_must_be_created(self, coach):
        now = timezone.now()
        with pytest.raises(ConflictError):
            Session.objects.create(
                coach=coach, title="x", objectives=["o"], max_participants=1,
                started_at=now + timedelta(hours=1), completed_at=now + timedelta(hours=2),
                status=Session.Status.ONGOING,
            )


# ════════════════════════════════════════════════════════════════════
#  Time-driven transitions
# ════════════════════════════════════════════════════════════════════

class TestTimeDriven:

    def test_start_due_sessions(self, make_session):
        due = make_session(start_in=-timedelta(minutes=5))
        future = make_session()
        now = timezone.now()

        assert SessionLifecycleService.start_due_sessions(now) == 1
        due.refresh_from_db()
        future.refresh_from_db()
        assert due.status == Session.Status.ONGOING
        assert due.report_valid
        assert due.report_till == now + timedelta(hours=settings.SESSION_REPORT_WINDOW_HOURS)
        assert future.status == Session.Status.CREATED

    def test_start_is_idempotent(self, make_session):
        make_session(start_in=-timedelta(minutes=5))
        now = timezone.now()
        assert SessionLifecycleService.start_due_sessions(now) == 1
        assert SessionLifecycleService.start_due_sessions(now) == 0

    def test_complete_due_sessions_creates_payout(self, make_session):
        session = make_session(Session.Status.ONGOING, start_in=-timedelta(hours=3))
        result = SessionLifecycleService.complete_due_sessions(timezone.now())

        assert result == {session.pk: PayoutService.CREATED}
        session.refresh_from_db()
        assert session.status == Session.Status.COMPLETED
        assert not session.report_valid
        assert DuePayout.objects.filter(session=session).count() == 1

    def test_complete_is_idempotent(self, make_session):
        make_session(Session.Status.ONGOING, start_in=-timedelta(hours=3))
        now = timezone.now()
        SessionLifecycleService.complete_due_sessions(now)
        assert SessionLifecycleService.complete_due_sessions(now) == {}
        assert DuePayout.objects.count() == 1

    def test_cancelled_session_untouched(self, make_session):
        session = make_session(Session.Status.CANCELLED, start_in=-timedelta(hours=3))
        SessionLifecycleService.tick(timezone.now())
        session.refresh_from_db()
        assert session.status == Session.Status.CANCELLED
        assert not DuePayout.objects.exists()

    def test_tick_runs_full_cycle(self, make_session):
        make_session(start_in=-timedelta(hours=2), duration=timedelta(hours=1))
        summary = SessionLifecycleService.tick(timezone.now())
        assert summary.started == 1
        assert summary.completed == 1
        assert summary.payouts_created == 1

    def test_repeated_tick_is_noop(self, make_session):
        make_session(start_in=-timedelta(hours=2), duration=timedelta(hours=1))
        now = timezone.now()
        SessionLifecycleService.tick(now)
        second = SessionLifecycleService.tick(now)
        assert second.as_dict() == {
            "started": 0, "completed": 0, "payouts_created": 0, "payouts_deferred": 0,
            "payouts_held": 0, "payouts_unheld": 0, "refunds_retried": 0,
        }
        assert DuePayout.objects.count() == 1
