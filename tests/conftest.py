"""
tests/conftest.py
─────────────────────────────────────────────────────────────────────
Shared fixtures: users per role, a session factory and the fake gateway.

Sessions are always inserted as CREATED (the status guard rejects
anything else on insert) and moved to other states with ``.update()``.
"""
from __future__ import annotations

import itertools
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.cache import cache
from django.utils import timezone

from coachconnect.models import CustomUser, Payment, Session, SessionParticipant

from .fakes import FakeGateway

SESSION_FEE = Decimal("100000")


@pytest.fixture(autouse=True)
def fake_gateway():
    FakeGateway.reset()
    cache.clear()
    yield FakeGateway
    FakeGateway.reset()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(**extra):
        n = next(counter)
        fields = {"first_name": "کاربر", "last_name": f"شماره {n}", "dob": date(1995, 5, 1)}
        fields.update(extra)
        return CustomUser.objects.create_user(username=f"user{n}", password="pass", **fields)
    return _make


@pytest.fixture
def coach(make_user):
    return make_user(is_coach=True)


@pytest.fixture
def player(make_user):
    return make_user(is_player=True)


@pytest.fixture
def platform_admin(make_user):
    return make_user(is_platform_admin=True)


@pytest.fixture
def make_session(db, coach):
    def _make(status=Session.Status.CREATED, *, fee=SESSION_FEE, max_participants=10,
              start_in=timedelta(days=1), duration=timedelta(hours=2), owner=None, **extra):
        start = timezone.now() + start_in
        session = Session.objects.create(
            coach=owner or coach,
            title="تمرین گروهی",
            objectives=["پاس کاری"],
            fee=fee,
            max_participants=max_participants,
            started_at=start,
            completed_at=start + duration,
            **extra,
        )
        if status != Session.Status.CREATED:
            changes = {"status": status}
            if status == Session.Status.ONGOING:
                changes.update(report_valid=True, report_till=timezone.now() + timedelta(hours=24))
            Session.objects.filter(pk=session.pk).update(**changes)
            session.refresh_from_db()
        return session
    return _make


@pytest.fixture
def make_participant(db):
    """ثبت‌نام قطعی؛ برای آنلاین یک پرداخت موفق هم ساخته می‌شود."""
    def _make(session, user, method=SessionParticipant.PaymentMethod.ONLINE):
        online = method == SessionParticipant.PaymentMethod.ONLINE
        participant = SessionParticipant.objects.create(
            session=session,
            player=user,
            player_status=SessionParticipant.PlayerStatus.ATTENDING,
            payment_status=SessionParticipant.PaymentStatus.PAID if online else SessionParticipant.PaymentStatus.CASH,
            payment_method=method,
        )
        if online and not session.is_free:
            Payment.objects.create(
                session=session,
                participant=participant,
                payer=user,
                session_fee=session.fee,
                status=Payment.Status.SUCCEEDED,
                authority=f"AUTH-{participant.pk}",
                paid_at=timezone.now(),
            )
        return participant
    return _make


@pytest.fixture
def make_player(make_user):
    def _make(**extra):
        return make_user(is_player=True, **extra)
    return _make
