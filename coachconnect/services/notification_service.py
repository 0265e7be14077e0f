"""
services/notification_service.py
─────────────────────────────────────────────────────────────────────
ثبت اعلان‌های درون‌برنامه‌ای
Notification adapter. Delivery is best-effort: a failed write is logged
and never rolls back or blocks the caller's financial path.
"""

from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction

from ..models import CustomUser, Notification, Session

logger = logging.getLogger(__name__)


class NotificationService:

    @classmethod
    def notify(
        cls,
        recipient: CustomUser,
        title: str,
        message: str,
        *,
        type: str = Notification.NotificationType.GENERAL,
        level: str = Notification.Level.INFO,
        audience: str = Notification.Audience.USER,
        session: Optional[Session] = None,
    ) -> Optional[Notification]:
        try:
            # savepoint: a failed insert must not poison an enclosing atomic block
            with transaction.atomic():
                return Notification.objects.create(
                    recipient=recipient,
                    title=title,
                    message=message,
                    type=type,
                    level=level,
                    audience=audience,
                    related_session=session,
                )
        except Exception as e:
            logger.warning("ارسال اعلان به %s ناموفق بود: %s", recipient.pk, e)
            return None

    @classmethod
    def notify_admins(
        cls,
        title: str,
        message: str,
        *,
        type: str = Notification.NotificationType.GENERAL,
        level: str = Notification.Level.INFO,
        session: Optional[Session] = None,
    ) -> int:
        """اعلان به تمام مدیران سامانه؛ تعداد اعلان‌های ثبت‌شده را برمی‌گرداند."""
        sent = 0
        for admin in CustomUser.objects.filter(is_platform_admin=True, is_active=True):
            if cls.notify(admin, title, message, type=type, level=level,
                          audience=Notification.Audience.ADMIN, session=session):
                sent += 1
        return sent
