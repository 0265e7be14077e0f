"""
signals.py
─────────────────────────────────────────────────────────────────────
نگهبان انتقال وضعیت جلسه
Every Session.save() must follow Session.ALLOWED_TRANSITIONS.

Bulk ``.update()`` calls in the lifecycle service bypass these receivers;
their WHERE clause encodes the same transition.
"""
from __future__ import annotations

import logging

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .errors import ConflictError, ErrorCode
from .models import Session

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Session)
def _guard_status_transition(sender, instance: Session, **kwargs):
    """وضعیت قبلی را نگه می‌دارد و انتقال غیرمجاز را رد می‌کند."""
    if instance._state.adding:
        instance._old_status = None
        if instance.status != Session.Status.CREATED:
            raise ConflictError(ErrorCode.INVALID_TRANSITION, "جلسه جدید باید در وضعیت «ایجاد شده» باشد.")
        return

    old = Session.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
    instance._old_status = old
    if old is not None and not Session.is_allowed_transition(old, instance.status):
        raise ConflictError(
            ErrorCode.INVALID_TRANSITION,
            f"انتقال وضعیت جلسه از «{old}» به «{instance.status}» مجاز نیست.",
        )


@receiver(post_save, sender=Session)
def on_session_status_change(sender, instance: Session, created: bool, **kwargs):
    if created:
        return
    old = getattr(instance, "_old_status", None)
    if old is not None and old != instance.status:
        logger.info("جلسه %s: %s → %s", instance.pk, old, instance.status)
