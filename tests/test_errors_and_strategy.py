"""
tests/test_errors_and_strategy.py
─────────────────────────────────────────────────────────────────────
Pure tests: error taxonomy, refund strategy table, status transitions,
role checks and Jalali helpers. No database required.
"""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from dateutil import rrule

from coachconnect.errors import (
    ConflictError,
    DomainError,
    ErrorCode,
    ExternalDependencyError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from coachconnect.models import CustomUser, Role, Session
from coachconnect.services.access import has_role, require_role
from coachconnect.services.gateway import ZarinpalGateway, refund_rial_to_toman, rial_to_toman
from coachconnect.services.jalali_utils import jalali_datetime_display, weekdays_to_rrule
from coachconnect.services.refund_service import RefundStrategy, select_refund_strategy


# ════════════════════════════════════════════════════════════════════
#  Error taxonomy
# ════════════════════════════════════════════════════════════════════

class TestErrors:

    def test_every_error_is_a_domain_error(self):
        for exc in (
            InvalidInputError("x"),
            NotFoundError(ErrorCode.SESSION_NOT_FOUND, "x"),
            ConflictError(ErrorCode.SESSION_FULL, "x"),
            UnauthorizedError(),
            ExternalDependencyError(),
        ):
            assert isinstance(exc, DomainError)

    def test_default_codes(self):
        assert InvalidInputError("x").code is ErrorCode.INVALID_INPUT
        assert UnauthorizedError().code is ErrorCode.NOT_ALLOWED
        assert ExternalDependencyError().code is ErrorCode.GATEWAY_FAILURE

    def test_invalid_input_accepts_specific_code(self):
        assert InvalidInputError("x", code=ErrorCode.AGE_REQUIREMENT).code is ErrorCode.AGE_REQUIREMENT

    def test_str_carries_code_and_message(self):
        err = ConflictError(ErrorCode.SESSION_FULL, "ظرفیت تکمیل است")
        assert str(err) == "SESSION_FULL: ظرفیت تکمیل است"
        assert err.message == "ظرفیت تکمیل است"


# ════════════════════════════════════════════════════════════════════
#  Refund strategy
# ════════════════════════════════════════════════════════════════════

class TestRefundStrategy:

    @pytest.mark.parametrize("status,expected", [
        (Session.Status.CREATED,   RefundStrategy.AUTO_ACCEPT),
        (Session.Status.CANCELLED, RefundStrategy.AUTO_ACCEPT),
        (Session.Status.ONGOING,   RefundStrategy.ADMIN_APPROVAL),
        (Session.Status.COMPLETED, RefundStrategy.ADMIN_APPROVAL),
    ])
    def test_strategy_by_session_status(self, status, expected):
        assert select_refund_strategy(status) is expected

    def test_accepts_raw_string(self):
        assert select_refund_strategy("ongoing") is RefundStrategy.ADMIN_APPROVAL

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            select_refund_strategy("archived")


# ════════════════════════════════════════════════════════════════════
#  Status transitions
# ════════════════════════════════════════════════════════════════════

class TestSessionTransitions:

    @pytest.mark.parametrize("old,new", [
        ("created", "ongoing"),
        ("created", "cancelled"),
        ("ongoing", "completed"),
        ("ongoing", "cancelled"),
        ("completed", "completed"),
    ])
    def test_allowed(self, old, new):
        assert Session.is_allowed_transition(old, new)

    @pytest.mark.parametrize("old,new", [
        ("created", "completed"),
        ("ongoing", "created"),
        ("completed", "ongoing"),
        ("completed", "cancelled"),
        ("cancelled", "created"),
        ("cancelled", "ongoing"),
    ])
    def test_rejected(self, old, new):
        assert not Session.is_allowed_transition(old, new)


# ════════════════════════════════════════════════════════════════════
#  Roles
# ════════════════════════════════════════════════════════════════════

class TestRoles:

    def test_flags_map_to_roles(self):
        user = CustomUser(username="u", is_coach=True, is_player=True)
        assert has_role(user, Role.COACH)
        assert has_role(user, Role.PLAYER)
        assert not has_role(user, Role.ADMIN)

    def test_superuser_counts_as_admin(self):
        assert has_role(CustomUser(username="root", is_superuser=True), Role.ADMIN)

    def test_inactive_user_has_no_role(self):
        assert not has_role(CustomUser(username="u", is_coach=True, is_active=False), Role.COACH)

    def test_require_role_raises_unauthorized(self):
        with pytest.raises(UnauthorizedError) as exc:
            require_role(CustomUser(username="u", is_player=True), Role.COACH)
        assert exc.value.code is ErrorCode.NOT_ALLOWED


# ════════════════════════════════════════════════════════════════════
#  Helpers
# ════════════════════════════════════════════════════════════════════

class TestHelpers:

    def test_weekday_keys(self):
        assert weekdays_to_rrule(["sat", "Mon", "friday"]) == [rrule.SA, rrule.MO, rrule.FR]

    def test_unknown_weekday_raises(self):
        with pytest.raises(KeyError):
            weekdays_to_rrule(["xyz"])

    def test_jalali_display(self):
        # نوروز ۱۴۰۳، ۱۲:۰۰ UTC = ۱۵:۳۰ تهران
        dt = datetime(2024, 3, 20, 12, 0, tzinfo=dt_timezone.utc)
        assert jalali_datetime_display(dt) == "1403/01/01 15:30"

    def test_jalali_display_none(self):
        assert jalali_datetime_display(None) == "—"

    @pytest.mark.parametrize("rial,toman", [
        (Decimal("100000"), 10000),
        (Decimal("5000"), 1000),
    ])
    def test_rial_to_toman(self, rial, toman):
        assert rial_to_toman(rial) == toman

    @pytest.mark.parametrize("rial,toman", [
        (Decimal("0"), 0),
        (Decimal("3000"), 300),
        (Decimal("3005"), 300),
        (Decimal("100000"), 10000),
    ])
    def test_refund_rial_to_toman_has_no_minimum(self, rial, toman):
        assert refund_rial_to_toman(rial) == toman

    def test_zarinpal_refund_sends_exact_amount(self, monkeypatch):
        sent = []

        class _Response:
            def json(self):
                return {"data": {"code": 100, "refund_id": "RF-1"}}

        def _post(url, json, timeout):
            sent.append(json)
            return _Response()

        monkeypatch.setattr("coachconnect.services.gateway.requests.post", _post)
        gateway = ZarinpalGateway(merchant_id="m", sandbox=True, callback_url="http://t/cb", timeout=5)

        result = gateway.refund(Decimal("3000"), "A1", {"idempotency_key": "k"})

        assert result.gateway_ref == "RF-1"
        assert sent[0]["amount"] == 300
        assert sent[0]["idempotency_key"] == "k"
